"""
Directory watching for automatic catalog refresh.

Monitors a catalog's root directory and refreshes the catalog when module
files matching its pattern are created, modified, moved or deleted. Handles
that were already materialized keep their instances; a refresh only replaces
the catalog's snapshot.
"""

import fnmatch
import logging
import platform
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler

# Use PollingObserver on macOS to avoid fsevents thread-safety crashes
# during rapid observer start/stop cycles
if platform.system() == "Darwin":
    from watchdog.observers.polling import PollingObserver as Observer
else:
    from watchdog.observers import Observer

from lazycatalog.catalog import LazyDirectoryCatalog, RefreshResult

logger = logging.getLogger(__name__)


class CatalogEventHandler(FileSystemEventHandler):
    """
    Watchdog event handler that schedules debounced catalog refreshes.

    Bursts of events (write, flush, close, rename) collapse into a single
    refresh that runs ``debounce_seconds`` after the last event.
    """

    def __init__(
        self,
        catalog: LazyDirectoryCatalog,
        debounce_seconds: float = 1.0,
        on_refresh: Optional[Callable[[RefreshResult], None]] = None,
    ):
        super().__init__()
        self.catalog = catalog
        self.debounce_seconds = debounce_seconds
        self.on_refresh = on_refresh
        self.refresh_count = 0

        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()

    def matches(self, path: str) -> bool:
        """Check whether a path is a module file the catalog would pick up."""
        file_path = Path(path)
        if not fnmatch.fnmatch(file_path.name, self.catalog.pattern):
            return False
        if self.catalog.recursive:
            return True
        return file_path.parent.resolve() == self.catalog.root_directory

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self.matches(str(event.src_path)):
            self.schedule_refresh()

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self.matches(str(event.src_path)):
            self.schedule_refresh()

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self.matches(str(event.src_path)):
            self.schedule_refresh()

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if self.matches(str(event.src_path)) or self.matches(str(event.dest_path)):
            self.schedule_refresh()

    def schedule_refresh(self) -> None:
        """Start (or restart) the debounce timer."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._run_refresh)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Cancel a pending refresh, if any."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _run_refresh(self) -> None:
        try:
            result = self.catalog.refresh()
        except Exception as e:
            logger.error(f"Catalog refresh failed: {e}", exc_info=True)
            return

        self.refresh_count += 1
        if self.on_refresh:
            self.on_refresh(result)


class CatalogWatcher:
    """
    Keeps a catalog in sync with its root directory.

    Manages the watchdog observer and the debounced refresh handler.
    """

    def __init__(
        self,
        catalog: LazyDirectoryCatalog,
        debounce_seconds: Optional[float] = None,
        on_refresh: Optional[Callable[[RefreshResult], None]] = None,
    ):
        if debounce_seconds is None:
            debounce_seconds = catalog.settings.watch_debounce_seconds

        self.catalog = catalog
        self.event_handler = CatalogEventHandler(
            catalog,
            debounce_seconds=debounce_seconds,
            on_refresh=on_refresh,
        )
        self.observer = Observer()
        self.observer.schedule(
            self.event_handler,
            str(catalog.root_directory),
            recursive=catalog.recursive,
        )

    def start(self) -> None:
        """Start watching in the background."""
        logger.info(f"Watching {self.catalog.root_directory} for {self.catalog.pattern!r}")
        self.observer.start()

    def stop(self) -> None:
        """Stop watching and cancel any pending refresh."""
        self.event_handler.cancel()
        try:
            self.observer.stop()
            self.observer.join(timeout=3)
            if self.observer.is_alive():
                logger.warning("Observer thread did not stop cleanly")
        except Exception as e:
            logger.error(f"Error stopping observer: {e}", exc_info=True)

    def is_running(self) -> bool:
        return self.observer.is_alive()

    def __enter__(self) -> "CatalogWatcher":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
