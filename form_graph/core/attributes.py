"""Typed form attributes.

``Attribute`` is a descriptor that casts assigned values with a Pydantic
``TypeAdapter`` (lax mode, so ``"5"`` becomes ``5`` for an ``int``
attribute). Values live in a per-instance ``AttributeSet`` that also
tracks which keys changed since the last snapshot.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

# Types whose blank strings are kept as-is instead of cast to None
_STRING_TYPES: tuple[Any, ...] = (str, Any, object)


class Attribute:
    """Declares a typed attribute on a form class.

    Args:
        type_: Any type Pydantic can validate. Defaults to ``Any`` (no casting).
        default: Default value, or a zero-argument callable producing one.
    """

    def __init__(self, type_: Any = Any, *, default: Any = None) -> None:
        self.type_ = type_
        self.default = default
        self.name: str | None = None
        self._adapter: TypeAdapter[Any] = TypeAdapter(type_)

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        declare = getattr(owner, "_declare_attribute", None)
        if declare is not None:
            declare(self)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.read_attribute(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.write_attribute(self.name, value)

    def default_value(self) -> Any:
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)

    def cast(self, value: Any) -> Any:
        """Cast a raw value to the declared type; uncastable values become None."""
        if value is None:
            return None
        if isinstance(value, str) and not value.strip() and self.type_ not in _STRING_TYPES:
            return None
        try:
            return self._adapter.validate_python(value)
        except ValidationError:
            logger.debug("Could not cast %r for attribute '%s'", value, self.name)
            return None

    def __repr__(self) -> str:
        return f"Attribute({self.name!r}, {self.type_!r})"


class AttributeSet:
    """Per-instance attribute values with dirty tracking."""

    def __init__(self, definitions: Mapping[str, Attribute]) -> None:
        self._definitions = definitions
        self._values: dict[str, Any] = {
            name: attribute.default_value() for name, attribute in definitions.items()
        }
        self._original: dict[str, Any] = dict(self._values)

    def get(self, name: str) -> Any:
        return self._values.get(name)

    def set(self, name: str, value: Any) -> None:
        """Cast and store a value.

        Raises:
            KeyError: If no attribute of that name is declared.
        """
        self._values[name] = self._definitions[name].cast(value)

    def has(self, name: str) -> bool:
        return name in self._definitions

    def changed_keys(self) -> set[str]:
        """Names whose value differs from the last snapshot."""
        return {name for name, value in self._values.items() if value != self._original.get(name)}

    def changes_applied(self) -> None:
        """Take a new snapshot; nothing is considered changed afterwards."""
        self._original = dict(self._values)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)

    def keys(self) -> list[str]:
        return list(self._definitions)

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)
