"""Module file fingerprinting used to detect changed builds."""

import hashlib
from datetime import datetime, timedelta, timezone
from functools import partial
from pathlib import Path


def calculate_file_hash(file_path: Path | str, chunk_size: int = 65536) -> str:
    """
    SHA-256 of a module file's bytes, the content half of a cache key.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the path is a directory
    """
    file_path = Path(file_path)
    if file_path.is_dir():
        raise ValueError(f"Not a file: {file_path}")

    digest = hashlib.sha256()
    with file_path.open("rb") as module_file:
        for chunk in iter(partial(module_file.read, chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def get_modified_time(file_path: Path | str) -> datetime:
    """Return the file's last-modified time as an aware UTC datetime."""
    mtime_ns = Path(file_path).stat().st_mtime_ns
    seconds, remainder = divmod(mtime_ns, 1_000_000_000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(
        microseconds=remainder // 1000
    )
