"""Reflection layer - association metadata and target class resolution."""

from __future__ import annotations

from form_graph.reflection.descriptor import Reflection
from form_graph.reflection.registry import ReflectionRegistry, reflections
from form_graph.reflection.resolver import compute_type, register_form_class

__all__ = [
    "Reflection",
    "ReflectionRegistry",
    "reflections",
    "compute_type",
    "register_form_class",
]
