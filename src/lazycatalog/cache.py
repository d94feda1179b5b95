"""File-based cache of extracted metadata records."""

import glob
import json
import logging
import os
import re
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError

from lazycatalog.models import CacheKey, MetadataRecord

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".parts.json"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S%f"

_ENTRY_PATTERN = re.compile(r"^(?P<name>.+)\.(?P<stamp>\d{20})" + re.escape(ENTRY_SUFFIX) + "$")


def format_timestamp(timestamp: datetime) -> str:
    """Render a timestamp as the 20-digit UTC stamp used in entry file names."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(stamp: str) -> datetime:
    return datetime.strptime(stamp, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class MetadataCache:
    """File-based cache of metadata records, one file per module version.

    Entry files are named ``<module file name>.<timestamp>.parts.json``. At
    most one entry per module file name is kept: writing a new version
    removes the others. The cache only saves re-extraction work, so
    unreadable entries are dropped rather than reported.
    """

    def __init__(self, cache_dir: Path):
        """Initialize the metadata cache.

        Args:
            cache_dir: Directory to store cache files (created if missing)
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()

    def entry_path(self, module_file_name: str, timestamp: datetime) -> Path:
        return self.cache_dir / f"{module_file_name}.{format_timestamp(timestamp)}{ENTRY_SUFFIX}"

    def has_current_entry(
        self,
        module_file_name: str,
        timestamp: datetime,
        content_hash: Optional[str] = None,
    ) -> bool:
        """Check whether an entry exists for exactly this module version.

        Args:
            module_file_name: File name of the module
            timestamp: Module's last-modified time
            content_hash: Optional content digest; when given, an entry with a
                different stored digest is not current

        Returns:
            True if a matching entry exists
        """
        entry_file = self.entry_path(module_file_name, timestamp)
        if not entry_file.exists():
            logger.debug(f"Cache miss: {entry_file.name}")
            return False

        if content_hash is None:
            return True

        try:
            with open(entry_file, "r", encoding="utf-8") as f:
                stored_hash = json.load(f).get("content_hash")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read cache entry {entry_file.name}: {e}")
            return False

        if stored_hash and stored_hash != content_hash:
            logger.debug(f"Cache entry {entry_file.name} has a different content hash")
            return False
        return True

    def write_entry(
        self,
        module_file_name: str,
        timestamp: datetime,
        records: Iterable[MetadataRecord],
        content_hash: Optional[str] = None,
        source_module_path: Optional[str] = None,
    ) -> Path:
        """Persist the records extracted from one module version.

        Existing entries for the same file name are removed first. The new
        entry is written to a temporary file and renamed into place, so a
        reader never sees a partial entry.

        Args:
            module_file_name: File name of the module
            timestamp: Module's last-modified time
            records: Records extracted from the module
            content_hash: Optional content digest stored alongside the records
            source_module_path: Absolute path of the module file the records
                came from; lets a catalog purge entries for deleted modules

        Returns:
            Path of the written entry
        """
        entry_file = self.entry_path(module_file_name, timestamp)
        data = {
            "module_file_name": module_file_name,
            "timestamp": format_timestamp(timestamp),
            "content_hash": content_hash,
            "source_module_path": source_module_path,
            "cached_at": datetime.now(timezone.utc).isoformat(),
            "records": [record.model_dump(mode="json") for record in records],
        }

        with self._write_lock:
            # The directory may have been wiped since construction
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            for stale in self.entries_for(module_file_name):
                if stale != entry_file:
                    logger.debug(f"Removing superseded cache entry: {stale.name}")
                    stale.unlink(missing_ok=True)

            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_name, entry_file)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        logger.debug(f"Cached {len(data['records'])} record(s): {entry_file.name}")
        return entry_file

    def read_all_entries(self) -> List[Tuple[CacheKey, List[MetadataRecord]]]:
        """Read every persisted entry, ordered by entry file name.

        Returns:
            List of (key, records) pairs
        """
        entries = []
        for entry_file in sorted(self.cache_dir.glob(f"*{ENTRY_SUFFIX}")):
            match = _ENTRY_PATTERN.match(entry_file.name)
            if match is None:
                continue

            try:
                with open(entry_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                records = [MetadataRecord.model_validate(r) for r in data["records"]]
            except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
                logger.warning(f"Dropping unreadable cache entry {entry_file.name}: {e}")
                entry_file.unlink(missing_ok=True)
                continue

            key = CacheKey(
                module_file_name=match.group("name"),
                timestamp=parse_timestamp(match.group("stamp")),
                content_hash=data.get("content_hash"),
                source_module_path=data.get("source_module_path"),
            )
            entries.append((key, records))

        return entries

    def entries_for(self, module_file_name: str) -> List[Path]:
        """List entry files stored for one module file name."""
        pattern = f"{glob.escape(module_file_name)}.*{ENTRY_SUFFIX}"
        matches = []
        for entry_file in sorted(self.cache_dir.glob(pattern)):
            match = _ENTRY_PATTERN.match(entry_file.name)
            # "a.py.*" also matches entries for "a.py.bak"
            if match and match.group("name") == module_file_name:
                matches.append(entry_file)
        return matches

    def remove_entry(self, module_file_name: str) -> int:
        """Remove all entries for a module file name.

        Returns:
            Number of entry files removed
        """
        with self._write_lock:
            removed = 0
            for entry_file in self.entries_for(module_file_name):
                entry_file.unlink(missing_ok=True)
                removed += 1
        return removed

    def clear(self) -> int:
        """Remove every entry (and leftover temporary file) from the cache.

        Returns:
            Number of entry files removed
        """
        removed = 0
        with self._write_lock:
            for entry_file in self.cache_dir.glob(f"*{ENTRY_SUFFIX}"):
                entry_file.unlink(missing_ok=True)
                removed += 1
            for tmp_file in self.cache_dir.glob("*.tmp"):
                tmp_file.unlink(missing_ok=True)

        if removed > 0:
            logger.info(f"Cleared {removed} cache entries")
        return removed

    def stats(self) -> dict[str, int]:
        """Get cache statistics.

        Returns:
            Dictionary with entry and record counts
        """
        entries = self.read_all_entries()
        return {
            "entries": len(entries),
            "records": sum(len(records) for _, records in entries),
        }
