"""Association enumerations."""

from __future__ import annotations

from enum import Enum


class Macro(Enum):
    """Cardinality of a declared association."""

    ONE_TO_ONE = "has_one"
    ONE_TO_MANY = "has_many"


class ReflectionKind(Enum):
    """How an association reaches its target."""

    DIRECT = "direct"
    THROUGH = "through"
    POLYMORPHIC = "polymorphic"
