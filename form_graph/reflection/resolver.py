"""Target class resolution.

Every form class registers itself here when it is defined. A target
class name is looked up the way nested namespaces resolve names: first
inside the owner's own qualified name, then each enclosing scope
outward, then at module level. Each bare candidate that does not
resolve is retried with the ``Form`` suffix.
"""

from __future__ import annotations

import importlib
import logging
import sys
import threading
import weakref
from typing import Any

from form_graph.core.exceptions import UnresolvedTargetClassError

logger = logging.getLogger(__name__)

FORM_SUFFIX = "Form"

_lock = threading.RLock()
_forms_by_qualname: dict[str, list[weakref.ref[type]]] = {}
_all_forms: weakref.WeakSet[type] = weakref.WeakSet()


def register_form_class(cls: type) -> None:
    """Record a form class so names can be resolved before or after its module loads."""
    with _lock:
        _all_forms.add(cls)
        refs = _forms_by_qualname.setdefault(cls.__qualname__, [])
        refs[:] = [ref for ref in refs if ref() is not None]
        refs.append(weakref.ref(cls))


def is_form_class(cls: Any) -> bool:
    return isinstance(cls, type) and cls in _all_forms


def candidate_names(owner: type, type_name: str) -> list[str]:
    """Candidates for ``type_name`` as seen from ``owner``, innermost scope first."""
    if "." in type_name:
        candidates = [type_name]
    else:
        scopes = owner.__qualname__.split(".")
        candidates = [
            ".".join([*scopes[:depth], type_name]) for depth in range(len(scopes), 0, -1)
        ]
        candidates.append(type_name)
    suffixed = [f"{name}{FORM_SUFFIX}" for name in candidates if not name.endswith(FORM_SUFFIX)]
    return candidates + suffixed


def _lookup_in_module(module_name: str, dotted: str) -> Any:
    obj: Any = sys.modules.get(module_name)
    for part in dotted.split("."):
        if obj is None:
            return None
        obj = getattr(obj, part, None)
    return obj


def _lookup_absolute(dotted: str) -> Any:
    parts = dotted.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            importlib.import_module(module_name)
        except ImportError:
            continue
        return _lookup_in_module(module_name, ".".join(parts[split:]))
    return None


def _lookup_registered(owner: type, qualname: str) -> type | None:
    with _lock:
        refs = list(_forms_by_qualname.get(qualname, []))
    classes = [cls for cls in (ref() for ref in refs) if cls is not None]
    if not classes:
        return None
    # Latest definition in the owner's module wins, then a unique match elsewhere
    for cls in reversed(classes):
        if cls.__module__ == owner.__module__:
            return cls
    modules = {cls.__module__ for cls in classes}
    return classes[-1] if len(modules) == 1 else None


def resolve_class(owner: type, type_name: str) -> type | None:
    """Resolve a single candidate name to a form class, or None."""
    found = _lookup_in_module(owner.__module__, type_name)
    if is_form_class(found):
        return found
    found = _lookup_registered(owner, type_name)
    if found is not None:
        return found
    if "." in type_name:
        found = _lookup_absolute(type_name)
        if is_form_class(found):
            return found
    return None


def compute_type(owner: type, type_name: str, association: str) -> type:
    """Resolve ``type_name`` from ``owner``'s scope.

    Raises:
        UnresolvedTargetClassError: If no candidate names a form class.
    """
    candidates = candidate_names(owner, type_name)
    for candidate in candidates:
        cls = resolve_class(owner, candidate)
        if cls is not None:
            logger.debug(
                "Resolved %s.%s target '%s' to %s",
                owner.__name__,
                association,
                type_name,
                cls.__qualname__,
            )
            return cls
    raise UnresolvedTargetClassError(owner.__name__, association, candidates)
