"""
Lazy activation handles.

A handle exposes an extension's metadata immediately and only loads the
owning module and constructs the extension on first access to ``value``.
"""

import logging
import threading
from enum import Enum
from typing import Any, Generic, Mapping, Optional, TypeVar

from lazycatalog.exceptions import ActivationError
from lazycatalog.loading import load_module, resolve_attribute
from lazycatalog.models import AttributeValue, MetadataRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HandleState(str, Enum):
    """Materialization state of a lazy handle."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class LazyExtension(Generic[T]):
    """
    Deferred-construction handle for one metadata record.

    ``metadata`` never triggers loading. The first access to ``value`` loads
    the module (once per module file, shared between handles), resolves the
    exported object and calls it with no arguments. Concurrent first accesses
    converge on a single instance. A failed activation raises
    ``ActivationError`` and is retried on the next access.
    """

    def __init__(self, record: MetadataRecord):
        self._record = record
        self._value: Optional[T] = None
        self._state = HandleState.UNLOADED
        self._lock = threading.Lock()

    @property
    def record(self) -> MetadataRecord:
        """The immutable record this handle was built from."""
        return self._record

    @property
    def exported_name(self) -> str:
        return self._record.exported_name

    @property
    def metadata(self) -> Mapping[str, AttributeValue]:
        """Declared metadata; available without loading the module."""
        return self._record.metadata

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def is_value_created(self) -> bool:
        return self._state is HandleState.LOADED

    @property
    def value(self) -> T:
        """
        Materialize the extension on first access and return it.

        Raises:
            ActivationError: If the module cannot be loaded or the exported
                object cannot be found or constructed
        """
        if self._state is HandleState.LOADED:
            return self._value  # type: ignore[return-value]

        with self._lock:
            if self._state is HandleState.LOADED:
                return self._value  # type: ignore[return-value]

            self._state = HandleState.LOADING
            try:
                self._value = self._materialize()
            except BaseException:
                self._state = HandleState.FAILED
                raise
            self._state = HandleState.LOADED
            return self._value

    def _materialize(self) -> Any:
        descriptor = self._record.activation

        try:
            module = load_module(descriptor.module_path)
        except (Exception, SystemExit) as e:
            raise ActivationError(
                self.exported_name,
                f"module failed to load: {e}",
                module_path=descriptor.module_path,
            ) from e

        try:
            factory = resolve_attribute(module, descriptor.attribute)
        except AttributeError as e:
            raise ActivationError(
                self.exported_name,
                f"module has no attribute {descriptor.attribute}",
                module_path=descriptor.module_path,
            ) from e

        if not callable(factory):
            raise ActivationError(
                self.exported_name,
                f"{descriptor.attribute} is not callable",
                module_path=descriptor.module_path,
            )

        try:
            instance = factory()
        except (Exception, SystemExit) as e:
            raise ActivationError(
                self.exported_name,
                f"failed to construct {descriptor.attribute}: {e}",
                module_path=descriptor.module_path,
            ) from e

        logger.debug(f"Activated extension {self.exported_name} ({descriptor.attribute})")
        return instance

    def __repr__(self) -> str:
        return (
            f"LazyExtension(name={self.exported_name!r}, "
            f"module={self._record.module_file_name!r}, state={self._state.value})"
        )
