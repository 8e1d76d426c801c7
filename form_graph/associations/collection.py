"""One-to-many association.

The target is an ordered list of child forms. Records are compared by
identifier when both sides carry one, and by object identity otherwise,
so a freshly built child never collides with another unsaved child.

Besides the list itself the association tracks the records it attached
through add/replace since the last reset. A record in that set that is
added again takes over its existing slot instead of being appended.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from form_graph.associations.association import Association
from form_graph.associations.proxy import CollectionProxy, proxy_class_for
from form_graph.core.callbacks import run_chain
from form_graph.core.exceptions import NestedRecordNotFoundError, ReplaceFailedError
from form_graph.core.validation import is_blank

logger = logging.getLogger(__name__)


def same_record(a: Any, b: Any) -> bool:
    """Identity for new records, class family plus identifier for persisted ones."""
    if a is b:
        return True
    if not (a.persisted and b.persisted):
        return False
    if not (isinstance(a, type(b)) or isinstance(b, type(a))):
        return False
    return str(a.id) == str(b.id)


def index_of(records: list[Any], record: Any) -> int | None:
    for index, candidate in enumerate(records):
        if same_record(candidate, record):
            return index
    return None


def contains(records: list[Any], record: Any) -> bool:
    return index_of(records, record) is not None


def difference(a: list[Any], b: list[Any]) -> list[Any]:
    """Records of ``a`` not present in ``b``."""
    return [record for record in a if not contains(b, record)]


def intersection(a: list[Any], b: list[Any]) -> list[Any]:
    """Records of ``a`` also present in ``b``."""
    return [record for record in a if contains(b, record)]


def merge_unchanged(target: Any, source: Any) -> None:
    """Copy ``source`` values into ``target`` for every field ``target`` has not changed."""
    changed = target.changed_keys()
    for name in target.attribute_names():
        if name in changed or not source.has_attribute(name):
            continue
        target.write_attribute(name, source.read_attribute(name))


def merge_target_lists(persisted: list[Any], memory: list[Any]) -> list[Any]:
    """Combine freshly found records with the in-memory target.

    A record found in memory keeps its in-memory object and changed
    fields; unsaved in-memory records are kept after the found ones.
    """
    if not memory:
        return persisted
    merged: list[Any] = []
    for record in persisted:
        index = index_of(memory, record)
        if index is None:
            merged.append(record)
            continue
        in_memory = memory[index]
        if in_memory is not record:
            merge_unchanged(in_memory, record)
        merged.append(in_memory)
    for record in memory:
        if record.new_record and not any(record is seen for seen in merged):
            merged.append(record)
    return merged


def _flatten(records: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for record in records:
        if isinstance(record, (list, tuple, CollectionProxy)):
            flat.extend(_flatten(record))
        else:
            flat.append(record)
    return flat


class CollectionAssociation(Association):
    """Association holding an ordered, de-duplicated list of records."""

    def __init__(self, owner: Any, reflection: Any) -> None:
        self._proxy: CollectionProxy | None = None
        super().__init__(owner, reflection)

    def reset(self) -> None:
        super().reset()
        self._target = []
        self._replaced_or_added: list[Any] = []
        self._association_ids: list[Any] | None = None

    def reader(self) -> CollectionProxy:
        if self.stale_target():
            self.load_target()
        if self._proxy is None:
            self._proxy = proxy_class_for(self.reflection)(self.reflection.klass, self)
        return self._proxy

    def writer(self, records: Iterable[Any]) -> None:
        self.replace(records)

    def load_target(self) -> list[Any]:
        if self.stale_target() or self._find_target_needed():
            found = self._find_target()
            if self.reflection.through:
                self._target = list(found)
            elif found is not self._target:
                self._target = merge_target_lists(list(found or []), self._target)
        self.mark_loaded()
        return self._target

    def _through_target(self) -> list[Any]:
        return self._through_records()

    # --- Adding ---

    def build(self, attributes: Any = None) -> Any:
        """Build and append a new record (or one per mapping in a list)."""
        if isinstance(attributes, list):
            return [self.build(item) for item in attributes]
        return self.add_to_target(self.build_record(attributes), replace=True)

    def concat(self, *records: Any) -> bool:
        """Attach records; returns False if any of them was rejected."""
        self._ensure_writable()
        flat = _flatten(records)
        for record in flat:
            self._raise_on_type_mismatch(record)
        if self.owner.new_record:
            self.load_target()
        return self._concat_records(flat)

    def _concat_records(self, records: list[Any]) -> bool:
        result = True
        for record in records:
            if self.add_to_target(record) is None:
                result = False
                continue
            if self.owner.persisted and not self.hooks.insert_record(self, record):
                result = False
        return result

    def add_to_target(self, record: Any, skip_callbacks: bool = False, replace: bool = True) -> Any:
        """Attach one record, running before_add/after_add unless skipped.

        Returns the record, or None when a before_add callback aborted.
        """
        return self._replace_on_target(record, skip_callbacks, replace=replace)

    def inversed_from(self, record: Any) -> None:
        self._replace_on_target(record, True, replace=True, inversing=True)

    def _was_replaced_or_added(self, record: Any) -> bool:
        return any(record is seen for seen in self._replaced_or_added)

    def _replace_on_target(
        self,
        record: Any,
        skip_callbacks: bool,
        replace: bool,
        inversing: bool = False,
        guard: bool = True,
    ) -> Any:
        index = None
        if replace and (record.persisted or self._was_replaced_or_added(record)):
            index = index_of(self._target, record)

        if guard and not skip_callbacks:
            chain = self.reflection.callbacks_for("before_add")
            if not run_chain(chain, self.owner, record, cancellable=True):
                return None

        if not inversing:
            self.set_inverse_instance(record)

        if index is None and self._was_replaced_or_added(record):
            index = index_of(self._target, record)

        tracked = inversing or index is not None or record.new_record
        if tracked and not self._was_replaced_or_added(record):
            self._replaced_or_added.append(record)

        if index is not None:
            self._target[index] = record
        else:
            self._association_ids = None
            self._target.append(record)

        if not skip_callbacks:
            chain = self.reflection.callbacks_for("after_add")
            run_chain(chain, self.owner, record, cancellable=False)
        return record

    # --- Removing ---

    def delete(self, *records: Any) -> list[Any]:
        """Detach records from the target; returns those actually removed."""
        self._ensure_writable()
        flat = _flatten(records)
        for record in flat:
            self._raise_on_type_mismatch(record)
        self.load_target()
        return self._delete_records(flat)

    def delete_all(self) -> list[Any]:
        return self.delete(*list(self.load_target()))

    def _delete_records(self, records: list[Any], guard: bool = True) -> list[Any]:
        removed = []
        for record in records:
            chain = self.reflection.callbacks_for("before_remove")
            if guard and not run_chain(chain, self.owner, record, cancellable=True):
                continue
            index = index_of(self._target, record)
            if index is not None:
                del self._target[index]
            self._replaced_or_added = [
                seen for seen in self._replaced_or_added if not same_record(seen, record)
            ]
            self._association_ids = None
            chain = self.reflection.callbacks_for("after_remove")
            run_chain(chain, self.owner, record, cancellable=False)
            removed.append(record)
        return removed

    # --- Replacing ---

    def replace(self, other_array: Iterable[Any]) -> list[Any]:
        """Make the target equal ``other_array`` by diffing against the current one.

        Mappings in ``other_array`` are built into new records. Records on
        both sides keep their slot. Removals and additions are applied as
        one batch; if any is rejected the previous target is restored.

        Raises:
            ReplaceFailedError: When a record could not be added or removed.
        """
        self._ensure_writable()
        records = []
        for other in other_array:
            if isinstance(other, Mapping):
                records.append(self.build_record(other))
            else:
                self._raise_on_type_mismatch(other)
                records.append(other)

        original_target = list(self.load_target())
        snapshot = (original_target, list(self._replaced_or_added), self._association_ids)

        try:
            if self.owner.persisted:
                self._replace_common_records_in_memory(records, original_target)
                if len(records) == len(original_target) and all(
                    same_record(a, b) for a, b in zip(records, original_target)
                ):
                    return self._target
            return self._replace_records(records, snapshot)
        except ReplaceFailedError:
            raise
        except Exception:
            self._restore(snapshot)
            raise

    def _replace_common_records_in_memory(self, new_target: list[Any], original: list[Any]) -> None:
        for record in intersection(new_target, original):
            existing = original[index_of(original, record)]  # type: ignore[index]
            if existing is not record:
                merge_unchanged(record, existing)
            self._replace_on_target(record, True, replace=True)

    def _replace_records(self, new_target: list[Any], snapshot: tuple[Any, ...]) -> list[Any]:
        removed = difference(self._target, new_target)
        added = difference(new_target, self._target)
        # Every guard and insert hook must accept before anything is touched
        accepted = self._guards_pass("before_remove", removed)
        accepted = accepted and self._guards_pass("before_add", added)
        if accepted and self.owner.persisted:
            accepted = all([self.hooks.insert_record(self, record) for record in added])
        if not accepted:
            self._restore(snapshot)
            logger.warning(
                "Replace of %s on %s rejected; previous target restored",
                self.reflection.name,
                type(self.owner).__name__,
            )
            raise ReplaceFailedError(self.reflection.name)
        self._delete_records(removed, guard=False)
        for record in added:
            self._replace_on_target(record, False, replace=True, guard=False)
        return self._target

    def _guards_pass(self, event: str, records: list[Any]) -> bool:
        chain = self.reflection.callbacks_for(event)
        return all(run_chain(chain, self.owner, record, cancellable=True) for record in records)

    def _restore(self, snapshot: tuple[Any, ...]) -> None:
        target, replaced_or_added, association_ids = snapshot
        self._target = list(target)
        self._replaced_or_added = list(replaced_or_added)
        self._association_ids = association_ids

    # --- Queries ---

    def size(self) -> int:
        """Number of records, without loading the target when a cheaper answer exists."""
        if self.reflection.through:
            return len(self.load_target())
        if not self._find_target_needed() or self._loaded:
            return len(self._target)
        if self._association_ids is not None:
            return len(self._association_ids)
        cached = self.hooks.cached_count(self)
        if cached is not None:
            return cached
        unsaved = [record for record in self._target if record.new_record]
        return len(unsaved) + self._count_records()

    def _count_records(self) -> int:
        count = self.hooks.count_records(self)
        if count == 0:
            # Nothing stored: the target can only hold unsaved records
            self._target = [record for record in self._target if record.new_record]
            self.mark_loaded()
        return count

    def empty(self) -> bool:
        if self.reflection.through:
            return not self.load_target()
        if self._target:
            return False
        if self._loaded or self._association_ids is not None:
            return self.size() == 0
        if getattr(self.options, "counter_cache", None):
            return self.size() == 0
        return not self.hooks.exists(self)

    def include(self, record: Any) -> bool:
        if not self.reflection.accepts(self.owner, record):
            return False
        if record.new_record:
            return self._include_in_memory(record)
        if self._loaded:
            return contains(self._target, record)
        return self.hooks.exists(self, record.id)

    def _include_in_memory(self, record: Any) -> bool:
        if self.reflection.through:
            # The intermediate association is authoritative; the cached target may be stale
            return any(record is candidate for candidate in self._through_records())
        return contains(self._target, record)

    def find(self, record_id: Any) -> Any:
        """Scan the loaded target for a record with ``record_id``."""
        for record in self.load_target():
            if record.id is not None and str(record.id) == str(record_id):
                return record
        return None

    def ids_reader(self) -> list[Any]:
        if self._association_ids is None:
            self._association_ids = [record.id for record in self.load_target()]
        return list(self._association_ids)

    def ids_writer(self, ids: Iterable[Any]) -> None:
        """Replace the target with the in-memory records matching ``ids``.

        Raises:
            NestedRecordNotFoundError: If an identifier matches no record.
        """
        records = []
        for record_id in ids:
            if is_blank(record_id):
                continue
            record = self.find(record_id)
            if record is None:
                raise NestedRecordNotFoundError(
                    self.reflection.klass.__name__,
                    self.reflection.name,
                    record_id,
                    type(self.owner).__name__,
                    self.owner.id,
                )
            records.append(record)
        self.replace(records)
