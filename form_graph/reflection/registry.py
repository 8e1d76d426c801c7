"""Reflection registry - per-class association metadata.

Tables are keyed by class identity. Each class's table is copy-on-write:
a class that never declared an association reads its nearest ancestor's
table, and its first declaration copies that table before adding to it.

    registry.declare(OrderForm, "items", Macro.ONE_TO_MANY, {"index_errors": True})
    registry.lookup(OrderForm, "items")      # fast, nearest table only
    registry.resolve_all(SpecialOrderForm)   # merged over the MRO, memoized
"""

from __future__ import annotations

import keyword
import logging
import threading
import weakref
from collections.abc import Callable
from typing import Any

from form_graph.core.callbacks import build_chains
from form_graph.core.enums import Macro
from form_graph.core.exceptions import DeclarationError
from form_graph.core.options import (
    CALLBACK_NAMES,
    AssociationOptions,
    HasManyOptions,
    HasOneOptions,
    parse_options,
)
from form_graph.reflection.descriptor import Reflection

logger = logging.getLogger(__name__)

_OPTION_MODELS: dict[Macro, type[AssociationOptions]] = {
    Macro.ONE_TO_ONE: HasOneOptions,
    Macro.ONE_TO_MANY: HasManyOptions,
}


class ReflectionRegistry:
    """Association metadata for every form class.

    Declarations normally all happen at class-definition time; a lock
    keeps late declarations (``Form.has_many(...)`` after import) safe
    against concurrent readers.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: weakref.WeakKeyDictionary[type, dict[str, Reflection]] = (
            weakref.WeakKeyDictionary()
        )
        self._merged: weakref.WeakKeyDictionary[type, dict[str, Reflection]] = (
            weakref.WeakKeyDictionary()
        )

    def declare(
        self,
        owner: type,
        name: Any,
        macro: Macro,
        options: dict[str, Any] | None = None,
        scope: Callable[..., Any] | None = None,
    ) -> Reflection:
        """Register an association on ``owner``.

        Replaces any same-named association inherited from an ancestor,
        adds the declaration to subclasses that already have their own
        table, and invalidates the merged tables of ``owner`` and its
        subclasses.

        Raises:
            DeclarationError: On an invalid name, unknown options, or options
                the macro does not support.
        """
        if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
            raise DeclarationError(owner.__name__, name, "association names must be identifiers")
        if scope is not None and not callable(scope):
            raise DeclarationError(owner.__name__, name, "scope must be callable")

        parsed = parse_options(_OPTION_MODELS[macro], owner.__name__, name, dict(options or {}))

        with self._lock:
            inherited = self._nearest_table(owner)
            parent = self._ancestor_reflection(owner, name)
            declared = {event: getattr(parsed, event, ()) for event in CALLBACK_NAMES}
            reflection = Reflection(
                name=name,
                macro=macro,
                owner=owner,
                options=parsed,
                scope=scope,
                callbacks=build_chains(declared, parent.callbacks if parent else None),
                parent_reflection=parent,
            )
            table = {key: value for key, value in inherited.items() if key != name}
            table[name] = reflection
            self._tables[owner] = table
            self._push_to_descendants(owner, reflection)
            self._invalidate(owner)

        logger.debug("Declared %s %s.%s", macro.value, owner.__name__, name)
        return reflection

    def lookup(self, owner: type, name: str) -> Reflection | None:
        """Find an association in the nearest table only, without merging."""
        return self._nearest_table(owner).get(name)

    def resolve_all(self, owner: type) -> dict[str, Reflection]:
        """All associations visible on ``owner``; own declarations win by name."""
        merged = self._merged.get(owner)
        if merged is not None:
            return merged
        with self._lock:
            merged = {}
            for cls in reversed(owner.__mro__):
                table = self._tables.get(cls)
                if table:
                    merged.update(table)
            self._merged[owner] = merged
        return merged

    def _nearest_table(self, owner: type) -> dict[str, Reflection]:
        for cls in owner.__mro__:
            table = self._tables.get(cls)
            if table is not None:
                return table
        return {}

    def _ancestor_reflection(self, owner: type, name: str) -> Reflection | None:
        for cls in owner.__mro__[1:]:
            table = self._tables.get(cls)
            if table is not None and name in table:
                return table[name]
        return None

    def _push_to_descendants(self, owner: type, reflection: Reflection) -> None:
        """Copy a late declaration into subclass tables created before it."""
        pending = list(owner.__subclasses__())
        while pending:
            cls = pending.pop()
            pending.extend(cls.__subclasses__())
            table = self._tables.get(cls)
            if table is None:
                continue
            current = table.get(reflection.name)
            # A declaration made below ``owner`` still shadows this one
            shadowed = current is not None and current.owner is not owner
            if shadowed and issubclass(current.owner, owner):
                continue
            table[reflection.name] = reflection

    def _invalidate(self, owner: type) -> None:
        pending = [owner]
        while pending:
            cls = pending.pop()
            self._merged.pop(cls, None)
            pending.extend(cls.__subclasses__())

    def __contains__(self, owner: object) -> bool:
        return owner in self._tables

    def __len__(self) -> int:
        """Number of classes with their own table."""
        return len(self._tables)


reflections = ReflectionRegistry()
