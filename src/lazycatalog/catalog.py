"""
Lazy directory catalog.

Discovers extension modules in a directory and exposes their metadata
without importing them into the host process. Metadata is extracted in
isolated child processes and cached per module version, so a refresh only
pays for modules that changed.
"""

import fnmatch
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from lazycatalog.activation import LazyExtension
from lazycatalog.cache import MetadataCache
from lazycatalog.config import Settings
from lazycatalog.config import settings as default_settings
from lazycatalog.exceptions import ConfigurationError, ExtractionError
from lazycatalog.extractor import IsolatedExtractor
from lazycatalog.models import MetadataRecord
from lazycatalog.utils.hashing import calculate_file_hash, get_modified_time

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Summary of one catalog refresh."""

    extracted: List[Path] = field(default_factory=list)
    reused: List[Path] = field(default_factory=list)
    removed: List[Path] = field(default_factory=list)
    failures: Dict[Path, ExtractionError] = field(default_factory=dict)
    record_count: int = 0
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a dictionary for display or serialization."""
        return {
            "extracted": [str(p) for p in self.extracted],
            "reused": [str(p) for p in self.reused],
            "removed": [str(p) for p in self.removed],
            "failures": {str(p): e.reason for p, e in self.failures.items()},
            "record_count": self.record_count,
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass(frozen=True)
class CatalogSnapshot:
    """Records and their handles as of one completed refresh."""

    parts: Tuple[MetadataRecord, ...] = ()
    extensions: Tuple[LazyExtension[Any], ...] = ()


class LazyDirectoryCatalog:
    """
    Catalog of extensions discovered in a directory.

    Construction validates the arguments and performs an initial refresh.
    ``parts`` and ``extensions`` always reflect the last completed refresh;
    a refresh replaces both at once.
    """

    def __init__(
        self,
        root_directory: Optional[Path | str],
        pattern: Optional[str],
        recursive: bool = False,
        cache_dir: Optional[Path | str] = None,
        extractor: Optional[IsolatedExtractor] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize the catalog and run the first refresh.

        Args:
            root_directory: Directory to scan for module files
            pattern: Glob pattern for module file names (e.g. "*.py")
            recursive: Whether to scan subdirectories
            cache_dir: Metadata cache directory (defaults to settings.cache_dir)
            extractor: Extractor to use (defaults to one built from settings)
            settings: Settings to read defaults from

        Raises:
            ConfigurationError: If the root directory is missing or not a
                directory, or the pattern is empty
        """
        if root_directory is None or str(root_directory) == "":
            raise ConfigurationError("root_directory must not be empty")

        root = Path(root_directory).expanduser()
        if not root.exists():
            raise ConfigurationError(f"Directory does not exist: {root}")
        if not root.is_dir():
            raise ConfigurationError(f"Not a directory: {root}")

        if not pattern:
            raise ConfigurationError("pattern must not be empty")

        self.settings = settings or default_settings
        self.root_directory = root.resolve()
        self.pattern = pattern
        self.recursive = recursive

        self.cache = MetadataCache(
            Path(cache_dir).expanduser() if cache_dir else self.settings.cache_directory
        )
        self.extractor = extractor or IsolatedExtractor(
            timeout=self.settings.extraction_timeout,
            max_workers=self.settings.extraction_workers,
            start_method=self.settings.extraction_start_method,
        )

        self._snapshot = CatalogSnapshot()
        self._snapshot_lock = threading.Lock()
        # Serializes refreshes so cache writes for one module never race
        self._refresh_lock = threading.Lock()
        self.last_refresh: Optional[RefreshResult] = None

        self.refresh()

    @property
    def parts(self) -> Tuple[MetadataRecord, ...]:
        """Metadata records from the last completed refresh."""
        return self._snapshot.parts

    @property
    def extensions(self) -> Tuple[LazyExtension[Any], ...]:
        """Lazy handles, one per record, from the last completed refresh."""
        return self._snapshot.extensions

    def discover(self) -> List[Path]:
        """
        List candidate module files under the root directory.

        Returns:
            Matching files, sorted by path
        """
        if self.recursive:
            matches = self.root_directory.rglob(self.pattern)
        else:
            matches = self.root_directory.glob(self.pattern)
        return sorted(p.resolve() for p in matches if p.is_file())

    def refresh(self) -> RefreshResult:
        """
        Re-scan the root directory and rebuild the snapshot.

        Cache entries for modules in this catalog's scope that were renamed
        or deleted are removed first. Modules without a current cache entry
        are then extracted in isolation and cached. Every remaining entry in
        the cache store is merged into the new snapshot. Extraction failures are collected in the result and logged;
        they never abort the refresh.

        Returns:
            RefreshResult describing the work done
        """
        with self._refresh_lock:
            started = time.monotonic()
            result = RefreshResult()

            candidates = self.discover()
            logger.info(
                f"Discovered {len(candidates)} module file(s) in {self.root_directory} "
                f"matching {self.pattern!r}"
            )
            result.removed = self._purge_orphaned_entries(set(candidates))

            stale: Dict[Path, Tuple[datetime, str]] = {}
            seen_names: Dict[str, Path] = {}
            for module_path in candidates:
                if module_path.name in seen_names:
                    # Cache entries are keyed by file name only
                    result.failures[module_path] = ExtractionError(
                        module_path,
                        f"file name collides with {seen_names[module_path.name]}",
                    )
                    continue
                seen_names[module_path.name] = module_path

                try:
                    timestamp = get_modified_time(module_path)
                    content_hash = calculate_file_hash(module_path)
                except (OSError, ValueError) as e:
                    result.failures[module_path] = ExtractionError(module_path, str(e))
                    continue

                if self.cache.has_current_entry(module_path.name, timestamp, content_hash):
                    result.reused.append(module_path)
                else:
                    stale[module_path] = (timestamp, content_hash)

            if stale:
                batch = self.extractor.extract_many(stale)
                for module_path, records in batch.records.items():
                    timestamp, content_hash = stale[module_path]
                    try:
                        self.cache.write_entry(
                            module_path.name,
                            timestamp,
                            records,
                            content_hash,
                            source_module_path=str(module_path),
                        )
                    except OSError as e:
                        result.failures[module_path] = ExtractionError(
                            module_path, f"failed to write cache entry: {e}"
                        )
                        continue
                    result.extracted.append(module_path)
                for module_path in batch.failures:
                    # A module that no longer loads contributes nothing
                    self.cache.remove_entry(module_path.name)
                result.failures.update(batch.failures)

            for module_path, error in result.failures.items():
                logger.warning(f"Extraction failed for {module_path.name}: {error.reason}")

            self._replace_snapshot(self._merge_entries())

            result.record_count = len(self._snapshot.parts)
            result.duration_ms = (time.monotonic() - started) * 1000
            self.last_refresh = result

            logger.info(
                f"Catalog refreshed: {result.record_count} part(s), "
                f"{len(result.extracted)} extracted, {len(result.reused)} reused, "
                f"{len(result.failures)} failed ({result.duration_ms:.0f}ms)"
            )
            return result

    def _in_scope(self, module_path: Path) -> bool:
        """Check whether a path is one this catalog would discover."""
        if not fnmatch.fnmatch(module_path.name, self.pattern):
            return False
        if self.recursive:
            return self.root_directory in module_path.parents
        return module_path.parent == self.root_directory

    def _purge_orphaned_entries(self, candidates: Set[Path]) -> List[Path]:
        """
        Remove cache entries for modules in this catalog's scope that are gone.

        Entries written by catalogs over other directories are left alone.

        Returns:
            Source paths whose entries were removed
        """
        removed = []
        for key, records in self.cache.read_all_entries():
            source = key.source_module_path
            if source is None and records:
                source = records[0].source_module_path
            if source is None:
                continue

            source_path = Path(source)
            if not self._in_scope(source_path) or source_path in candidates:
                continue

            logger.info(f"Dropping cache entry for missing module {source_path}")
            self.cache.remove_entry(key.module_file_name)
            removed.append(source_path)
        return removed

    def _merge_entries(self) -> Tuple[MetadataRecord, ...]:
        merged: Dict[MetadataRecord, None] = {}
        for _key, records in self.cache.read_all_entries():
            for record in records:
                merged.setdefault(record, None)
        return tuple(merged)

    def _replace_snapshot(self, parts: Tuple[MetadataRecord, ...]) -> None:
        snapshot = CatalogSnapshot(
            parts=parts,
            extensions=tuple(LazyExtension(record) for record in parts),
        )
        with self._snapshot_lock:
            self._snapshot = snapshot

    def get(self, exported_name: str) -> Optional[LazyExtension[Any]]:
        """Return the first extension exported under ``exported_name``."""
        for extension in self.extensions:
            if extension.exported_name == exported_name:
                return extension
        return None

    def find(
        self, exported_name: Optional[str] = None, **attributes: Any
    ) -> List[LazyExtension[Any]]:
        """
        Find extensions by exported name and/or metadata attribute values.

        Args:
            exported_name: Exported capability name to match (any if None)
            **attributes: Metadata attributes that must all be equal

        Returns:
            Matching extensions in catalog order
        """
        matches = []
        for extension in self.extensions:
            if exported_name is not None and extension.exported_name != exported_name:
                continue
            metadata = extension.metadata
            if all(key in metadata and metadata[key] == value for key, value in attributes.items()):
                matches.append(extension)
        return matches

    def names(self) -> List[str]:
        """Distinct exported names in catalog order."""
        return list(dict.fromkeys(record.exported_name for record in self.parts))

    def __iter__(self) -> Iterator[LazyExtension[Any]]:
        return iter(self.extensions)

    def __len__(self) -> int:
        return len(self.parts)

    def __repr__(self) -> str:
        return (
            f"LazyDirectoryCatalog(root={str(self.root_directory)!r}, "
            f"pattern={self.pattern!r}, recursive={self.recursive}, parts={len(self)})"
        )
