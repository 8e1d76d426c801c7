"""Shared test fixtures."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from form_graph.associations.hooks import InMemoryHooks


class RecordingHooks(InMemoryHooks):
    """In-memory hooks that record calls and can fake a stored count."""

    def __init__(self, stored_count: int | None = None, accept_inserts: bool = True) -> None:
        self.stored_count = stored_count
        self.accept_inserts = accept_inserts
        self.calls: list[tuple[str, Any]] = []

    def count_records(self, association: Any) -> int:
        self.calls.append(("count_records", association.reflection.name))
        if self.stored_count is not None:
            return self.stored_count
        return super().count_records(association)

    def exists(self, association: Any, record_id: Any = None) -> bool:
        self.calls.append(("exists", record_id))
        return super().exists(association, record_id)

    def insert_record(self, association: Any, record: Any) -> bool:
        self.calls.append(("insert_record", record))
        return self.accept_inserts


@pytest.fixture
def recording_hooks() -> RecordingHooks:
    """Hooks that record every call made by an association."""
    return RecordingHooks()


@pytest.fixture
def debug_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Capture form_graph DEBUG records."""
    caplog.set_level(logging.DEBUG, logger="form_graph")
    return caplog


@pytest.fixture
def hooks_factory() -> type[RecordingHooks]:
    """The RecordingHooks class, for tests that need custom counts or insert results."""
    return RecordingHooks
