"""Persistence hook protocol.

The association layer never queries a store itself. Anything that would
need one (loading a target, counting, existence checks, inserting)
goes through an ``AssociationHooks`` implementation configured on the
form class. ``InMemoryHooks`` answers everything from the in-memory
target.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from form_graph.associations.association import Association


@runtime_checkable
class AssociationHooks(Protocol):
    """Narrow persistence surface consumed by associations."""

    def find_target(self, association: Association) -> Any:
        """Load the target: a record or None, or a list of records for collections."""
        ...

    def cached_count(self, association: Association) -> int | None:
        """A cheap, denormalised count for a collection, if one is available."""
        ...

    def count_records(self, association: Association) -> int:
        """Count the persisted records of a collection."""
        ...

    def exists(self, association: Association, record_id: Any = None) -> bool:
        """Whether the collection has any persisted record (with ``record_id``, if given)."""
        ...

    def insert_record(self, association: Association, record: Any) -> bool:
        """Attach ``record`` for a persisted owner. False rejects the record."""
        ...


class InMemoryHooks:
    """Default hooks: the in-memory target is the only source of truth."""

    def find_target(self, association: Association) -> Any:
        return association.target

    def cached_count(self, association: Association) -> int | None:
        column = getattr(association.options, "counter_cache", None)
        if not column or not association.owner.has_attribute(column):
            return None
        value = association.owner.read_attribute(column)
        return None if value is None else int(value)

    def count_records(self, association: Association) -> int:
        return sum(1 for record in association.target if record.persisted)

    def exists(self, association: Association, record_id: Any = None) -> bool:
        for record in association.target:
            if not record.persisted:
                continue
            if record_id is None or str(record.id) == str(record_id):
                return True
        return False

    def insert_record(self, association: Association, record: Any) -> bool:
        return True
