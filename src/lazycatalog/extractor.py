"""
Isolated metadata extraction.

Each module is imported in a fresh child process (``spawn`` start method by
default), its declared extensions are turned into plain dictionaries and sent
back over a ``multiprocessing.Queue``. The child is discarded afterwards, so
module-level side effects, crashes and import conflicts never reach the host.
"""

import logging
import multiprocessing
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from queue import Empty
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from lazycatalog.declarations import iter_declarations
from lazycatalog.exceptions import ExtractionError
from lazycatalog.loading import import_from_path, module_name_for
from lazycatalog.models import MetadataRecord

logger = logging.getLogger(__name__)

# How often the parent checks whether the child is still alive
_POLL_INTERVAL = 0.05

# Grace period for a terminated child before it is killed
_TERMINATE_GRACE = 2.0


def _extract_in_child(module_path: str, result_queue: "multiprocessing.Queue[Any]") -> None:
    """
    Entry point of the extraction child process.

    Imports the module, enumerates its declarations and puts a single result
    message on ``result_queue``: ``{"ok": True, "records": [...]}`` or
    ``{"ok": False, "error": "..."}``.
    """
    logging.basicConfig(
        level=logging.WARNING,
        format="[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s",
    )
    # Inspection must not leave __pycache__ entries next to the module
    sys.dont_write_bytecode = True

    try:
        module = import_from_path(module_path, module_name_for(module_path))
        records = [
            MetadataRecord.from_declaration(name, attributes, module_path, attribute).model_dump(
                mode="json"
            )
            for name, attributes, attribute in iter_declarations(module)
        ]
    except (Exception, SystemExit) as e:
        result_queue.put({"ok": False, "error": f"{type(e).__name__}: {e}"})
        return

    result_queue.put({"ok": True, "records": records})


@dataclass
class ExtractionBatch:
    """Outcome of extracting several modules."""

    records: Dict[Path, List[MetadataRecord]] = field(default_factory=dict)
    failures: Dict[Path, ExtractionError] = field(default_factory=dict)


class IsolatedExtractor:
    """
    Extracts metadata records from module files in disposable processes.

    One child process is started per module and torn down unconditionally
    after extraction, whether it succeeded, failed or timed out.
    """

    def __init__(
        self,
        timeout: Optional[float] = 30.0,
        max_workers: int = 1,
        start_method: str = "spawn",
    ) -> None:
        """
        Initialize the extractor.

        Args:
            timeout: Seconds to wait for one module (None waits forever)
            max_workers: Number of modules extracted concurrently
            start_method: multiprocessing start method for child processes
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.timeout = timeout
        self.max_workers = max_workers
        self.start_method = start_method
        self._context = multiprocessing.get_context(start_method)
        self._invocations_lock = threading.Lock()

        # Number of child processes started, used to observe cache effectiveness
        self.invocations = 0

    def extract(self, module_path: Path | str) -> List[MetadataRecord]:
        """
        Extract the metadata records declared by one module.

        Args:
            module_path: Path of the module file

        Returns:
            Records in declaration order

        Raises:
            ExtractionError: If the module cannot be imported or inspected,
                the child crashes, or the timeout expires
        """
        module_path = Path(module_path).resolve()
        if not module_path.is_file():
            raise ExtractionError(module_path, "module file does not exist")

        try:
            result_queue = self._context.Queue()
        except OSError as e:
            raise ExtractionError(module_path, f"failed to create result queue: {e}") from e

        process = self._context.Process(
            target=_extract_in_child,
            args=(str(module_path), result_queue),
            name=f"lazycatalog-extract-{module_path.name}",
            daemon=True,
        )

        started = time.monotonic()
        with self._invocations_lock:
            self.invocations += 1
        try:
            process.start()
        except Exception as e:
            result_queue.close()
            raise ExtractionError(module_path, f"failed to start extractor process: {e}") from e
        logger.debug(f"Started extractor process {process.pid} for {module_path.name}")

        try:
            payload = self._wait_for_result(module_path, process, result_queue)
        except BaseException:
            self._teardown(process, result_queue, graceful=False)
            raise
        self._teardown(process, result_queue, graceful=True)

        if not payload.get("ok"):
            raise ExtractionError(module_path, str(payload.get("error", "unknown error")))

        try:
            records = [MetadataRecord.model_validate(r) for r in payload.get("records", [])]
        except ValidationError as e:
            raise ExtractionError(module_path, f"invalid metadata: {e}") from e

        duration_ms = (time.monotonic() - started) * 1000
        logger.debug(
            f"Extracted {len(records)} record(s) from {module_path.name} in {duration_ms:.0f}ms"
        )
        return records

    def extract_many(self, module_paths: Iterable[Path]) -> ExtractionBatch:
        """
        Extract several modules; a failing module never affects the others.

        Args:
            module_paths: Module files to extract

        Returns:
            ExtractionBatch with per-module records and failures, in input order
        """
        paths = list(module_paths)
        batch = ExtractionBatch()
        if not paths:
            return batch

        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(paths)),
            thread_name_prefix="lazycatalog-extract",
        ) as executor:
            futures = [(path, executor.submit(self.extract, path)) for path in paths]

            for path, future in futures:
                try:
                    batch.records[path] = future.result()
                except ExtractionError as e:
                    batch.failures[path] = e
                except Exception as e:
                    logger.error(f"Unexpected error extracting {path.name}: {e}", exc_info=True)
                    batch.failures[path] = ExtractionError(path, f"{type(e).__name__}: {e}")

        return batch

    def _wait_for_result(
        self,
        module_path: Path,
        process: Any,
        result_queue: Any,
    ) -> Dict[str, Any]:
        # Read before join: a child blocked on a full pipe never exits
        deadline = None if self.timeout is None else time.monotonic() + self.timeout

        while True:
            try:
                return result_queue.get(timeout=_POLL_INTERVAL)
            except Empty:
                pass

            if not process.is_alive():
                # The result may still be in flight after the child exited
                try:
                    return result_queue.get(timeout=_POLL_INTERVAL)
                except Empty:
                    raise ExtractionError(
                        module_path,
                        f"extractor process exited with code {process.exitcode} "
                        "without reporting a result",
                    )

            if deadline is not None and time.monotonic() >= deadline:
                raise ExtractionError(module_path, f"timed out after {self.timeout}s")

    def _teardown(self, process: Any, result_queue: Any, graceful: bool) -> None:
        # A child that reported its result exits on its own
        if graceful:
            process.join(timeout=_TERMINATE_GRACE)
        if process.is_alive():
            logger.warning(f"Terminating extractor process {process.pid}")
            process.terminate()
            process.join(timeout=_TERMINATE_GRACE)
        if process.is_alive():
            process.kill()
            process.join()

        process.close()
        result_queue.close()
        result_queue.join_thread()
