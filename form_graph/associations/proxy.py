"""Relation and collection proxy.

``Relation`` is an in-memory, read-only list of records with the query
helpers forms need (no query building). ``CollectionProxy`` is the
relation returned by a one-to-many reader; every read and write goes
through its association.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from form_graph.core.exceptions import UnsupportedOperationError
from form_graph.core.inflection import camelize

if TYPE_CHECKING:
    from form_graph.associations.collection import CollectionAssociation
    from form_graph.reflection.descriptor import Reflection


class Relation:
    """In-memory list of records of one form class."""

    def __init__(self, klass: type, records: list[Any] | None = None) -> None:
        self.klass = klass
        self._records = list(records or [])

    @property
    def records(self) -> list[Any]:
        return self._records

    def to_list(self) -> list[Any]:
        return list(self.records)

    def size(self) -> int:
        return len(self.records)

    def empty(self) -> bool:
        return self.size() == 0

    def any(self, predicate: Callable[[Any], bool] | None = None) -> bool:
        if predicate is not None:
            return any(predicate(record) for record in self.records)
        return not self.empty()

    def none(self, predicate: Callable[[Any], bool] | None = None) -> bool:
        return not self.any(predicate)

    def one(self) -> bool:
        return self.size() == 1

    def many(self) -> bool:
        return self.size() > 1

    def first(self, limit: int | None = None) -> Any:
        records = self.records
        if limit is not None:
            return records[:limit]
        return records[0] if records else None

    def last(self, limit: int | None = None) -> Any:
        records = self.records
        if limit is not None:
            return records[-limit:] if limit else []
        return records[-1] if records else None

    def take(self, limit: int | None = None) -> Any:
        return self.first(limit)

    def where(self, **conditions: Any) -> Relation:
        """Records whose attributes equal every given value."""
        matched = [
            record
            for record in self.records
            if all(record.read_attribute(name) == value for name, value in conditions.items())
        ]
        return Relation(self.klass, matched)

    def find_by(self, **conditions: Any) -> Any:
        return self.where(**conditions).first()

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self.records))

    def __len__(self) -> int:
        return self.size()

    def __bool__(self) -> bool:
        return not self.empty()

    def __getitem__(self, index: Any) -> Any:
        return self.records[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Relation):
            return self.records == other.records
        if isinstance(other, list):
            return self.records == other
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.records!r}>"


class CollectionProxy(Relation):
    """The reader of a one-to-many association."""

    def __init__(self, klass: type, association: CollectionAssociation) -> None:
        super().__init__(klass)
        self._association = association

    @property
    def proxy_association(self) -> CollectionAssociation:
        return self._association

    @property
    def records(self) -> list[Any]:
        return self._association.load_target()

    @property
    def target(self) -> list[Any]:
        return self._association.target

    @property
    def loaded(self) -> bool:
        return self._association.loaded

    def load_target(self) -> list[Any]:
        return self._association.load_target()

    def build(self, attributes: Any = None, **kwargs: Any) -> Any:
        if kwargs:
            attributes = {**(attributes or {}), **kwargs}
        return self._association.build(attributes)

    new = build

    def append(self, *records: Any) -> CollectionProxy:
        self._association.concat(*records)
        return self

    push = append

    def extend(self, records: Any) -> CollectionProxy:
        return self.append(*records)

    def concat(self, *records: Any) -> bool:
        return self._association.concat(*records)

    def prepend(self, *records: Any) -> None:
        raise UnsupportedOperationError(
            "prepend on association is not defined. Please use append, push or concat"
        )

    def delete(self, *records: Any) -> list[Any]:
        return self._association.delete(*records)

    def clear(self) -> CollectionProxy:
        self._association.delete_all()
        return self

    def replace(self, other_array: Any) -> list[Any]:
        return self._association.replace(other_array)

    def size(self) -> int:
        return self._association.size()

    def empty(self) -> bool:
        return self._association.empty()

    def include(self, record: Any) -> bool:
        return bool(self._association.include(record))

    def __contains__(self, record: object) -> bool:
        return self.include(record)

    def find(self, record_id: Any) -> Any:
        return self._association.find(record_id)

    @property
    def ids(self) -> list[Any]:
        return self._association.ids_reader()

    def scope(self) -> Relation:
        """The target filtered through the association's scope, if it declares one."""
        relation = Relation(self.klass, self.records)
        scope = self._association.reflection.scope
        if scope is None:
            return relation
        return scope(relation)

    def with_context(self, context: Any) -> CollectionProxy:
        for record in self.records:
            record.with_context(context)
        return self

    def reload(self) -> CollectionProxy:
        self._association.reload()
        return self

    def reset(self) -> CollectionProxy:
        self._association.reset()
        return self


def proxy_class_for(reflection: Reflection) -> type[CollectionProxy]:
    """The proxy class for a reflection, mixing in its ``extend`` modules.

    Built once and kept on the reflection.
    """
    cached = reflection.__dict__.get("_proxy_class")
    if cached is not None:
        return cached
    extensions = tuple(getattr(reflection.options, "extend", ()))
    if extensions:
        name = f"{camelize(reflection.name)}AssociationProxy"
        cached = type(name, (*extensions, CollectionProxy), {})
    else:
        cached = CollectionProxy
    object.__setattr__(reflection, "_proxy_class", cached)
    return cached
