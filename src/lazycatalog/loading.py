"""
Host-side module loading.

Extension modules are loaded from their file path under a deterministic
module name derived from that path, so the host's load state for a module can
be checked in ``sys.modules`` and a module is never executed twice.
"""

import hashlib
import importlib.machinery
import importlib.util
import logging
import re
import sys
import threading
from pathlib import Path
from types import ModuleType
from typing import Dict

logger = logging.getLogger(__name__)

MODULE_NAME_PREFIX = "lazycatalog_ext"

# module name -> lock guarding its first import
_module_locks: Dict[str, threading.RLock] = {}
_module_locks_guard = threading.Lock()


def module_name_for(module_path: Path | str) -> str:
    """
    Derive the ``sys.modules`` name used for a module file.

    The name combines a sanitized file stem with a short digest of the
    absolute path, so two files named ``plugin.py`` in different
    directories never collide.
    """
    resolved = str(Path(module_path).resolve())
    stem = re.sub(r"\W", "_", Path(resolved).stem)
    digest = hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:12]
    return f"{MODULE_NAME_PREFIX}_{stem}_{digest}"


def is_module_loaded(module_path: Path | str) -> bool:
    """Check whether a module file has been loaded into this process."""
    return module_name_for(module_path) in sys.modules


def import_from_path(module_path: Path | str, module_name: str) -> ModuleType:
    """
    Import a source file under ``module_name`` and register it in sys.modules.

    Any file is treated as Python source regardless of its suffix, so
    patterns such as "*.plugin" work. The module is registered before
    execution so it can import itself recursively; a failed execution
    removes it again.

    Raises:
        ImportError: If no loader can be created for the file
        Exception: Whatever the module raises while executing
    """
    loader = importlib.machinery.SourceFileLoader(module_name, str(module_path))
    spec = importlib.util.spec_from_file_location(module_name, str(module_path), loader=loader)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot create a module loader for {module_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def _lock_for(module_name: str) -> threading.RLock:
    with _module_locks_guard:
        lock = _module_locks.get(module_name)
        if lock is None:
            lock = _module_locks[module_name] = threading.RLock()
        return lock


def load_module(module_path: Path | str) -> ModuleType:
    """
    Load a module file into the host process exactly once.

    Concurrent callers for the same file wait on a per-module lock and all
    receive the same module object.

    Args:
        module_path: Path of the module file

    Returns:
        The loaded module
    """
    module_name = module_name_for(module_path)

    # sys.modules holds a module while it executes, so only trust it under the lock
    with _lock_for(module_name):
        module = sys.modules.get(module_name)
        if module is not None:
            return module

        logger.info(f"Loading extension module {module_path} as {module_name}")
        return import_from_path(module_path, module_name)


def resolve_attribute(module: ModuleType, attribute: str) -> object:
    """
    Resolve a dotted attribute path inside a module.

    Raises:
        AttributeError: If any segment is missing
    """
    target: object = module
    for part in attribute.split("."):
        target = getattr(target, part)
    return target
