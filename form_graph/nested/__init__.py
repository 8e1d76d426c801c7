"""Nested attribute assignment and validation propagation."""

from __future__ import annotations

from form_graph.nested.attributes import UNASSIGNABLE_KEYS, NestedAttributesAssignment
from form_graph.nested.validation import (
    association_valid,
    run_non_cyclic,
    validate_associated_records,
)

__all__ = [
    "NestedAttributesAssignment",
    "UNASSIGNABLE_KEYS",
    "association_valid",
    "run_non_cyclic",
    "validate_associated_records",
]
