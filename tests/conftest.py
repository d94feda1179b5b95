"""
Pytest configuration and fixtures for lazycatalog tests.

Provides temporary plugin directories, an isolated metadata cache per test
and helpers for writing extension modules.
"""

import logging
import os
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from lazycatalog.extractor import IsolatedExtractor
from lazycatalog.loading import module_name_for

ALPHA_SOURCE = '''
from lazycatalog import export


@export("Alpha", Name="Alpha", Version="1.0")
class AlphaPlugin:
    def initialize(self):
        return "Alpha initialized"
'''

BETA_SOURCE = '''
from lazycatalog import export


@export("Beta", Name="Beta", Version="2.0")
class BetaPlugin:
    def initialize(self):
        return "Beta initialized"
'''

# Records the pid of every process that imports the module
LOAD_TRACKING_SOURCE = '''
import os
from pathlib import Path

from lazycatalog import export

with open(Path(__file__).with_suffix(".loads"), "a") as _log:
    _log.write(f"{os.getpid()}\\n")


@export("First", Role="primary")
class First:
    pass


@export("Second", Role="secondary")
class Second:
    pass
'''


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Per-test metadata cache directory."""
    return tmp_path / "cache"


@pytest.fixture
def plugin_root(tmp_path: Path) -> Path:
    """Empty directory to write extension modules into."""
    root = tmp_path / "plugins"
    root.mkdir()
    return root


@pytest.fixture
def write_module() -> Callable[[Path, str, str], Path]:
    """Return a helper that writes a dedented module source file."""

    def _write(directory: Path, file_name: str, source: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        module_path = directory / file_name
        module_path.write_text(textwrap.dedent(source), encoding="utf-8")
        return module_path

    return _write


@pytest.fixture
def scenario_root(plugin_root: Path, write_module) -> Path:
    """Directory with A.ext (Alpha 1.0) and B.ext (Beta 2.0)."""
    write_module(plugin_root, "A.ext", ALPHA_SOURCE)
    write_module(plugin_root, "B.ext", BETA_SOURCE)
    return plugin_root


@pytest.fixture
def extractor() -> IsolatedExtractor:
    """Real extractor with a short timeout."""
    return IsolatedExtractor(timeout=20.0)


@pytest.fixture(autouse=True)
def unload_extension_modules():
    """Drop extension modules loaded by a test so tests stay independent."""
    before = set(sys.modules)
    yield
    for name in set(sys.modules) - before:
        if name.startswith("lazycatalog_ext_"):
            del sys.modules[name]


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handlers installed by setup_logging (the CLI calls it)."""
    yield
    package_logger = logging.getLogger("lazycatalog")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def alpha_source() -> str:
    return ALPHA_SOURCE


@pytest.fixture
def beta_source() -> str:
    return BETA_SOURCE


@pytest.fixture
def load_tracking_source() -> str:
    """Module source that appends the importing pid to ``<file>.loads``."""
    return LOAD_TRACKING_SOURCE


@pytest.fixture
def host_loads() -> Callable[[Path], int]:
    """Return a helper counting how often this process imported a tracked module."""

    def _count(module_path: Path) -> int:
        log_file = module_path.with_suffix(".loads")
        if not log_file.exists():
            return 0
        return log_file.read_text().split().count(str(os.getpid()))

    return _count


@pytest.fixture
def set_mtime() -> Callable[[Path, float], None]:
    """Return a helper that sets a file's modification time exactly."""

    def _set(module_path: Path, seconds: float) -> None:
        ns = int(seconds * 1_000_000_000)
        os.utime(module_path, ns=(ns, ns))

    return _set


@pytest.fixture
def is_loaded() -> Callable[[Path], bool]:
    """Return a helper checking whether a module file is imported in this process."""

    def _check(module_path: Path) -> bool:
        return module_name_for(module_path) in sys.modules

    return _check
