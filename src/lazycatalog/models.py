"""
Metadata record schema.

Defines the serializable description of one discovered extension. Records are
validated using Pydantic, are immutable and hashable, and never reference a
loaded module.
"""

import logging
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

AttributeValue = Union[str, int, float, bool, None]


class ActivationDescriptor(BaseModel):
    """
    Enough information to load a module and construct an extension later.

    The attribute is a dotted path inside the module, e.g. ``AlphaPlugin`` or
    ``Outer.Inner`` for nested classes.
    """

    model_config = ConfigDict(frozen=True)

    module_path: str = Field(..., description="Absolute path of the module file")
    attribute: str = Field(..., description="Dotted attribute path in the module")

    @field_validator("attribute")
    @classmethod
    def validate_attribute(cls, value: str) -> str:
        """Reject local objects and empty path segments."""
        if not value or "<locals>" in value or any(not p for p in value.split(".")):
            raise ValueError(f"attribute must be a module-level dotted path, got: {value!r}")
        return value


class MetadataRecord(BaseModel):
    """
    Immutable descriptor of one declared extension.

    Attributes keep their declaration order for stable display; lookups by
    key go through ``metadata``.
    """

    model_config = ConfigDict(frozen=True)

    exported_name: str = Field(..., min_length=1, description="Logical capability name")
    attributes: Tuple[Tuple[str, AttributeValue], ...] = Field(
        default=(),
        description="Declared metadata as ordered (key, value) pairs",
    )
    source_module_path: str = Field(..., description="Absolute path of the owning module")
    activation: ActivationDescriptor

    @field_validator("source_module_path")
    @classmethod
    def validate_source_module_path(cls, value: str) -> str:
        """Source paths must be absolute so records survive cwd changes."""
        if not Path(value).is_absolute():
            raise ValueError(f"source_module_path must be absolute, got: {value}")
        return value

    @property
    def metadata(self) -> Mapping[str, AttributeValue]:
        """Read-only mapping view of the declared attributes."""
        return MappingProxyType(dict(self.attributes))

    def get(self, key: str, default: Any = None) -> Any:
        """Return a single metadata attribute."""
        return self.metadata.get(key, default)

    @property
    def module_file_name(self) -> str:
        """File name of the owning module (the cache key name)."""
        return Path(self.source_module_path).name

    @classmethod
    def from_declaration(
        cls,
        exported_name: str,
        attributes: Mapping[str, AttributeValue],
        module_path: Path | str,
        attribute: str,
    ) -> "MetadataRecord":
        """
        Build a record from a declaration found on a module object.

        Args:
            exported_name: Capability name given to ``export``
            attributes: Declared metadata in declaration order
            module_path: Absolute path of the module file
            attribute: Dotted attribute path of the exported object

        Returns:
            MetadataRecord instance
        """
        module_path = str(Path(module_path).resolve())
        return cls(
            exported_name=exported_name,
            attributes=tuple(attributes.items()),
            source_module_path=module_path,
            activation=ActivationDescriptor(module_path=module_path, attribute=attribute),
        )


class CacheKey(BaseModel):
    """Identity of one cache entry: module file name plus its modification time."""

    model_config = ConfigDict(frozen=True)

    module_file_name: str
    timestamp: datetime
    content_hash: Optional[str] = None
    source_module_path: Optional[str] = None
