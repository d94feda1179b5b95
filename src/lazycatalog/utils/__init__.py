"""Filesystem helpers shared by the cache and the catalog."""

from lazycatalog.utils.hashing import calculate_file_hash, get_modified_time

__all__ = ["calculate_file_hash", "get_modified_time"]
