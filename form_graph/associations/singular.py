"""One-to-one association."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from form_graph.associations.association import Association

logger = logging.getLogger(__name__)


class SingularAssociation(Association):
    """Association holding at most one target record."""

    def reader(self) -> Any:
        return self.load_target()

    def writer(self, record: Any) -> None:
        self.replace(record)

    def replace(self, record: Any) -> Any:
        self._ensure_writable()
        if record is not None:
            self._raise_on_type_mismatch(record)
            self._remember_type(record)
        self.load_target()
        if record is not None:
            self.set_inverse_instance(record)
        self.target = record
        return record

    def build(self, attributes: Mapping[str, Any] | None = None) -> Any:
        """Build a new target record and make it the target. Does not validate."""
        record = self.build_record(attributes)
        self.target = record
        return record

    def force_reload_reader(self) -> Any:
        self.reload()
        return self._target

    def _through_target(self) -> Any:
        records = self._through_records()
        return records[0] if records else None

    def _remember_type(self, record: Any) -> None:
        """Record the target's class name on the owner for polymorphic associations."""
        if not self.reflection.polymorphic:
            return
        foreign_type = self.reflection.foreign_type
        if self.owner.has_attribute(foreign_type):
            self.owner.write_attribute(foreign_type, type(record).__name__)
