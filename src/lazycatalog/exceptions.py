"""Custom exceptions for lazycatalog."""

from pathlib import Path
from typing import Optional


class LazyCatalogError(Exception):
    """Base class for all lazycatalog errors."""


class ConfigurationError(LazyCatalogError):
    """Raised when a catalog is constructed with invalid arguments."""


class ExtractionError(LazyCatalogError):
    """Raised when a module could not be inspected in an isolated process."""

    def __init__(self, module_path: Path | str, reason: str):
        self.module_path = Path(module_path)
        self.reason = reason
        super().__init__(f"Failed to extract metadata from {self.module_path}: {reason}")


class ActivationError(LazyCatalogError):
    """Raised when a lazy extension could not be materialized in the host."""

    def __init__(
        self,
        exported_name: str,
        reason: str,
        module_path: Optional[Path | str] = None,
    ):
        self.exported_name = exported_name
        self.reason = reason
        self.module_path = Path(module_path) if module_path else None
        message = f"Failed to activate extension '{exported_name}'"
        if self.module_path:
            message += f" from {self.module_path}"
        super().__init__(f"{message}: {reason}")
