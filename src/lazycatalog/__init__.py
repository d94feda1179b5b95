"""
lazycatalog - lazy, cached, isolation-safe extension catalog.

Discovers extension modules on disk, extracts their declared metadata in
disposable child processes, caches it per module version and only loads a
module into the host when one of its extensions is first used.
"""

from lazycatalog.activation import HandleState, LazyExtension
from lazycatalog.cache import MetadataCache
from lazycatalog.catalog import LazyDirectoryCatalog, RefreshResult
from lazycatalog.declarations import export
from lazycatalog.exceptions import (
    ActivationError,
    ConfigurationError,
    ExtractionError,
    LazyCatalogError,
)
from lazycatalog.extractor import ExtractionBatch, IsolatedExtractor
from lazycatalog.models import ActivationDescriptor, CacheKey, MetadataRecord

__version__ = "0.1.0"

__all__ = [
    "ActivationDescriptor",
    "ActivationError",
    "CacheKey",
    "ConfigurationError",
    "ExtractionBatch",
    "ExtractionError",
    "HandleState",
    "IsolatedExtractor",
    "LazyCatalogError",
    "LazyDirectoryCatalog",
    "LazyExtension",
    "MetadataCache",
    "MetadataRecord",
    "RefreshResult",
    "export",
]
