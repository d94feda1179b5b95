"""
Extension declaration surface.

Module authors mark classes or factory callables with ``export`` to publish
them as extensions:

    from lazycatalog import export

    @export("Alpha", Name="Alpha", Version="1.0")
    class AlphaPlugin:
        ...

Declarations are plain data attached to the object. They are read by the
isolated extractor and never cause the catalog to import anything in the host.
"""

import logging
from types import ModuleType
from typing import Any, Callable, Dict, List, Tuple, TypeVar

from lazycatalog.models import AttributeValue

logger = logging.getLogger(__name__)

EXPORTS_ATTRIBUTE = "__lazycatalog_exports__"

_PRIMITIVES = (str, int, float, bool, type(None))

T = TypeVar("T", bound=Callable[..., Any])


def export(name: str, **attributes: AttributeValue) -> Callable[[T], T]:
    """
    Declare an extension named ``name`` with ordered metadata ``attributes``.

    Args:
        name: Exported capability name
        **attributes: Metadata attributes; values must be JSON primitives

    Returns:
        Decorator that records the declaration and returns the object unchanged

    Raises:
        ValueError: If name is empty
        TypeError: If an attribute value is not a primitive
    """
    if not name:
        raise ValueError("Export name cannot be empty")

    for key, value in attributes.items():
        if not isinstance(value, _PRIMITIVES):
            raise TypeError(
                f"Metadata attribute '{key}' must be str, int, float, bool or None, "
                f"got {type(value).__name__}"
            )

    def decorator(obj: T) -> T:
        if not callable(obj):
            raise TypeError(f"Only classes and callables can be exported, got {obj!r}")

        # Copy so a subclass never appends to its parent's declarations
        declared = list(obj.__dict__.get(EXPORTS_ATTRIBUTE, ()))
        # Decorators apply bottom-up; insert at the front to keep source order
        declared.insert(0, (name, dict(attributes)))
        setattr(obj, EXPORTS_ATTRIBUTE, tuple(declared))
        return obj

    return decorator


def iter_declarations(
    module: ModuleType,
) -> List[Tuple[str, Dict[str, AttributeValue], str]]:
    """
    Enumerate the extensions declared in an imported module.

    Only objects defined in ``module`` itself are considered, so objects
    re-exported from other modules do not produce duplicate declarations.
    Nested classes are found by walking class namespaces. The attribute path
    is the name the object is reachable under, not its ``__qualname__``, so
    objects built by factories and bound at module level still resolve.

    Args:
        module: Imported module to inspect

    Returns:
        List of (exported_name, attributes, attribute_path) in definition order
    """
    found: List[Tuple[str, Dict[str, AttributeValue], str]] = []
    seen: set[int] = set()

    def visit(namespace: Dict[str, Any], prefix: str) -> None:
        for key, value in namespace.items():
            if key.startswith("__"):
                continue
            if id(value) in seen:
                continue
            if getattr(value, "__module__", None) != module.__name__:
                continue
            seen.add(id(value))

            path = f"{prefix}{key}"
            declared = getattr(value, "__dict__", {}).get(EXPORTS_ATTRIBUTE, ())
            for exported_name, attributes in declared:
                found.append((exported_name, dict(attributes), path))

            if isinstance(value, type):
                visit(dict(vars(value)), f"{path}.")

    visit(dict(vars(module)), "")
    return found
