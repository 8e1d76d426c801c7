"""Nested attribute assignment.

Walks a raw payload for one association of an owner form and, per
entry, updates the matching child, builds a new one, or marks one for
destruction.

    form.assign_nested_attributes("items", [
        {"id": 1, "qty": 3},           # update child 1
        {"id": 2, "_destroy": "1"},    # mark child 2 for destruction
        {"sku": "B-7"},                # build a new child
    ])

A mapping payload for a collection is read as ``{"0": {...}, "1": {...}}``
unless it carries an ``id`` key, in which case it is a single entry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from form_graph.core.exceptions import (
    NestedAttributesError,
    NestedRecordNotFoundError,
    TooManyRecordsError,
)
from form_graph.core.options import NestedAttributesOptions
from form_graph.core.validation import call_with_optional_argument, is_blank

logger = logging.getLogger(__name__)

UNASSIGNABLE_KEYS = ("id", "_destroy")

# Anything else that is not blank counts as true
FALSE_VALUES = frozenset({"0", "f", "F", "false", "FALSE", "off", "OFF"})


def has_destroy_flag(attributes: Mapping[str, Any]) -> bool:
    value = attributes.get("_destroy")
    if is_blank(value):
        return False
    if isinstance(value, str):
        return value.strip() not in FALSE_VALUES
    return value != 0


def all_blank(attributes: Mapping[str, Any]) -> bool:
    return all(key == "_destroy" or is_blank(value) for key, value in attributes.items())


def assignable(attributes: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in attributes.items() if key not in UNASSIGNABLE_KEYS}


def _same_id(record: Any, record_id: Any) -> bool:
    return record.id is not None and str(record.id) == str(record_id)


class NestedAttributesAssignment:
    """Applies one nested payload to one association of ``owner``."""

    def __init__(self, owner: Any, name: str) -> None:
        self.owner = owner
        self.name = name
        self.association = owner.association(name)
        self.reflection = self.association.reflection
        self.options: NestedAttributesOptions = type(owner).nested_attributes_options_for(name)

    def assign(self, payload: Any) -> None:
        if self.reflection.collection:
            self.assign_collection(payload)
        else:
            self.assign_one_to_one(payload)

    # --- One-to-one ---

    def assign_one_to_one(self, payload: Any) -> None:
        attributes = self._normalize_entry(payload)
        record_id = attributes.get("id")
        existing = self.association.reader()
        update_only = self.options.update_only

        matches = existing is not None and (update_only or _same_id(existing, record_id))
        if (update_only or not is_blank(record_id)) and matches:
            if not self._call_reject_if(attributes):
                logger.debug("Updating %s on %r", self.name, self.owner)
                self._assign_to_or_mark_for_destruction(existing, attributes)
        elif not is_blank(record_id):
            self._raise_not_found(record_id)
        elif not self._reject_new_record(attributes):
            if existing is not None and existing.new_record:
                existing.assign_attributes(assignable(attributes))
                self.association.initialize_attributes(existing)
            else:
                logger.debug("Building %s on %r", self.name, self.owner)
                self.association.build(assignable(attributes))

    # --- One-to-many ---

    def assign_collection(self, payload: Any) -> None:
        entries = self._normalize_collection(payload)
        limit = self.options.limit
        if limit is not None and len(entries) > limit:
            raise TooManyRecordsError(self.name, limit)

        for entry in entries:
            attributes = self._normalize_entry(entry)
            record_id = attributes.get("id")
            if is_blank(record_id):
                if not self._reject_new_record(attributes):
                    self.association.build(assignable(attributes))
                continue
            if self._call_reject_if(attributes):
                continue

            record = None
            for candidate in self.association.load_target():
                if _same_id(candidate, record_id):
                    record = candidate
                    break
            if record is None:
                # Child given by id but not loaded: attach it as-is
                logger.debug("Attaching %s id=%s on %r", self.name, record_id, self.owner)
                fields = {key: value for key, value in attributes.items() if key != "_destroy"}
                record = self.association.build_record(fields)
                self.association.add_to_target(record, skip_callbacks=True)
            self._assign_to_or_mark_for_destruction(record, attributes)

    # --- Helpers ---

    def _normalize_entry(self, payload: Any) -> dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise NestedAttributesError(
                f"Hash expected for attribute `{self.name}', got "
                f"{type(payload).__name__} ({payload!r})"
            )
        return {str(key): value for key, value in payload.items()}

    def _normalize_collection(self, payload: Any) -> list[Any]:
        if isinstance(payload, Mapping):
            if "id" in {str(key) for key in payload}:
                return [payload]
            return list(payload.values())
        if isinstance(payload, (list, tuple)):
            return list(payload)
        raise NestedAttributesError(
            f"Hash or Array expected for attribute `{self.name}', got "
            f"{type(payload).__name__} ({payload!r})"
        )

    def _assign_to_or_mark_for_destruction(self, record: Any, attributes: Mapping[str, Any]) -> None:
        record.assign_attributes(assignable(attributes))
        if self.options.allow_destroy and has_destroy_flag(attributes):
            record.mark_for_destruction()

    def _will_be_destroyed(self, attributes: Mapping[str, Any]) -> bool:
        return self.options.allow_destroy and has_destroy_flag(attributes)

    def _reject_new_record(self, attributes: Mapping[str, Any]) -> bool:
        return self._will_be_destroyed(attributes) or self._call_reject_if(attributes)

    def _call_reject_if(self, attributes: Mapping[str, Any]) -> bool:
        if self._will_be_destroyed(attributes):
            return False
        reject_if = self.options.reject_if
        if reject_if is None:
            return False
        if reject_if == "all_blank":
            rejected = all_blank(attributes)
        elif isinstance(reject_if, str):
            rejected = call_with_optional_argument(getattr(self.owner, reject_if), attributes)
        else:
            rejected = call_with_optional_argument(reject_if, attributes)
        if rejected:
            logger.debug("Rejected %s entry %r on %r", self.name, attributes, self.owner)
        return bool(rejected)

    def _raise_not_found(self, record_id: Any) -> None:
        klass = self.association.klass
        raise NestedRecordNotFoundError(
            klass.__name__ if klass is not None else self.reflection.class_name,
            self.name,
            record_id,
            type(self.owner).__name__,
            self.owner.id,
        )
