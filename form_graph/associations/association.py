"""Association base class.

An association is the per-instance proxy between an owner form and the
target of one reflection. It is created on first access through
``owner.association(name)`` and lives in the owner's association cache.

    Association
      SingularAssociation    one-to-one
      CollectionAssociation  one-to-many

Through and polymorphic reflections are handled inside these two classes
by checking ``reflection.kind``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from form_graph.associations.hooks import AssociationHooks
from form_graph.core.enums import ReflectionKind
from form_graph.core.exceptions import (
    NestedAttributesError,
    ReadOnlyAssociationError,
    TypeMismatchError,
)
from form_graph.core.options import AssociationOptions

if TYPE_CHECKING:
    from form_graph.reflection.descriptor import Reflection

logger = logging.getLogger(__name__)


class Association:
    """Holds the lazily loaded target of one association on one owner."""

    def __init__(self, owner: Any, reflection: Reflection) -> None:
        self.owner = owner
        self.reflection = reflection
        self._loaded = False
        self._target: Any = None
        self._stale_state: Any = None
        self.reset()

    @property
    def options(self) -> AssociationOptions:
        return self.reflection.options

    @property
    def hooks(self) -> AssociationHooks:
        return type(self.owner).association_hooks

    @property
    def target(self) -> Any:
        return self._target

    @target.setter
    def target(self, value: Any) -> None:
        self._target = value
        self.mark_loaded()

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def klass(self) -> type | None:
        """Target class for this owner; None for a polymorphic association without a type."""
        return self.reflection.klass_for(self.owner)

    def reset(self) -> None:
        """Forget the target; the next read re-derives it."""
        self._loaded = False
        self._target = None
        self._stale_state = None

    def reload(self) -> Association:
        self.reset()
        self.load_target()
        return self

    def mark_loaded(self) -> None:
        self._loaded = True
        self._stale_state = self.stale_state()

    def stale_state(self) -> Any:
        """The owner identity the target was loaded for."""
        return self.owner.read_attribute(type(self.owner).primary_key)

    def stale_target(self) -> bool:
        return self._loaded and self._stale_state != self.stale_state()

    def load_target(self) -> Any:
        if self.stale_target() or self._find_target_needed():
            if self.stale_target():
                logger.debug("Reloading stale %r on %r", self.reflection, self.owner)
            self._target = self._find_target()
        self.mark_loaded()
        return self._target

    def _find_target_needed(self) -> bool:
        if self.reflection.kind is ReflectionKind.THROUGH:
            return True
        return not self._loaded and self.owner.persisted

    def _find_target(self) -> Any:
        if self.reflection.kind is ReflectionKind.THROUGH:
            return self._through_target()
        return self.hooks.find_target(self)

    def _through_records(self) -> list[Any]:
        """Records reached through the intermediate association, de-duplicated."""
        through = self.owner.association(self.reflection.through_name)
        intermediate = through.reader()
        if intermediate is None:
            sources: list[Any] = []
        elif through.reflection.collection:
            sources = list(intermediate)
        else:
            sources = [intermediate]

        records: list[Any] = []
        for source in sources:
            source_association = source.association(self.reflection.source_name(type(source)))
            value = source_association.reader()
            values = list(value) if source_association.reflection.collection else [value]
            for record in values:
                if record is not None and not any(record is seen for seen in records):
                    records.append(record)
        return records

    def _through_target(self) -> Any:
        raise NotImplementedError

    def _ensure_writable(self) -> None:
        if self.reflection.kind is ReflectionKind.THROUGH:
            raise ReadOnlyAssociationError(type(self.owner).__name__, self.reflection.name)

    def _raise_on_type_mismatch(self, record: Any) -> None:
        if not self.reflection.accepts(self.owner, record):
            klass = self.klass
            raise TypeMismatchError(
                self.reflection.name,
                klass.__name__ if klass is not None else "a form",
                f"{type(record).__name__}",
            )

    # --- Inverse linkage ---

    def set_inverse_instance(self, record: Any) -> Any:
        inverse = self._inverse_association_for(record)
        if inverse is not None:
            inverse.inversed_from(self.owner)
        return record

    def inversed_from(self, record: Any) -> None:
        self.target = record

    def _inverse_association_for(self, record: Any) -> Association | None:
        if not record.has_attribute(self.reflection.foreign_key):
            return None
        name = self.reflection.inverse_name(type(record))
        if name is None:
            return None
        return record.association(name)

    # --- Building ---

    def build_record(self, attributes: Mapping[str, Any] | None) -> Any:
        """Instantiate a target record without attaching it.

        Raises:
            NestedAttributesError: For a polymorphic association whose type is unknown.
        """
        self._ensure_writable()
        klass = self.klass
        if klass is None:
            raise NestedAttributesError(
                f"Cannot build association `{self.reflection.name}'. Are you trying "
                f"to build a polymorphic one-to-one association?"
            )
        record = self.reflection.build_association(klass, attributes)
        self.initialize_attributes(record, attributes)
        return record

    def initialize_attributes(
        self,
        record: Any,
        except_from_scope_attributes: Mapping[str, Any] | None = None,
    ) -> None:
        """Apply owner-derived attributes the caller has not set explicitly."""
        assigned = record.changed_keys() | {str(key) for key in (except_from_scope_attributes or {})}
        creation = {
            key: value for key, value in self._creation_attributes(record).items()
            if key not in assigned
        }
        if creation:
            record.assign_attributes(creation)
        self.set_inverse_instance(record)

    def _creation_attributes(self, record: Any) -> dict[str, Any]:
        owner_id = self.owner.read_attribute(type(self.owner).primary_key)
        foreign_key = self.reflection.foreign_key
        if owner_id is None or self.reflection.through or not record.has_attribute(foreign_key):
            return {}
        return {foreign_key: owner_id}

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {type(self.owner).__name__}.{self.reflection.name} "
            f"loaded={self._loaded}>"
        )
