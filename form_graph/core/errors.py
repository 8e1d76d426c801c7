"""Validation error list.

Validation never raises. Each failed rule appends a ``FormError`` to
``form.errors``; nested forms' errors are re-homed onto the parent under
a dotted path such as ``"items[1].code"``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

MESSAGES: dict[str, str] = {
    "blank": "can't be blank",
    "required": "must exist",
    "invalid": "is invalid",
    "too_long": "is too long",
    "inclusion": "is not included in the list",
}


def _humanize(attribute: str) -> str:
    text = attribute.replace(".", " ").replace("_", " ").strip()
    return text[:1].upper() + text[1:]


@dataclass(frozen=True)
class FormError:
    """A single validation error."""

    attribute: str
    type: str
    message: str

    @property
    def full_message(self) -> str:
        if self.attribute == "base":
            return self.message
        return f"{_humanize(self.attribute)} {self.message}"


class Errors:
    """Ordered collection of FormError entries."""

    def __init__(self) -> None:
        self._errors: list[FormError] = []

    def add(self, attribute: str, type: str = "invalid", message: str | None = None) -> FormError:
        """Record an error on an attribute.

        ``type`` is the message code; ``message`` defaults to the code's
        standard text.
        """
        error = FormError(str(attribute), type, message or MESSAGES.get(type, type))
        self._errors.append(error)
        return error

    def import_error(self, error: FormError, attribute: str | None = None) -> FormError:
        """Copy an error from another form, optionally under a new attribute path."""
        imported = FormError(attribute or error.attribute, error.type, error.message)
        self._errors.append(imported)
        return imported

    def uniq(self) -> None:
        """Drop repeated errors, keeping the first occurrence."""
        self._errors = list(dict.fromkeys(self._errors))

    def clear(self) -> None:
        self._errors.clear()

    def group_by_attribute(self) -> dict[str, list[FormError]]:
        grouped: dict[str, list[FormError]] = {}
        for error in self._errors:
            grouped.setdefault(error.attribute, []).append(error)
        return grouped

    def as_dict(self) -> dict[str, list[str]]:
        return {
            attribute: [error.message for error in errors]
            for attribute, errors in self.group_by_attribute().items()
        }

    @property
    def attribute_names(self) -> list[str]:
        return list(self.group_by_attribute())

    @property
    def details(self) -> dict[str, list[dict[str, str]]]:
        return {
            attribute: [{"error": error.type} for error in errors]
            for attribute, errors in self.group_by_attribute().items()
        }

    def full_messages(self) -> list[str]:
        return [error.full_message for error in self._errors]

    def __getitem__(self, attribute: str) -> list[str]:
        return [error.message for error in self._errors if error.attribute == attribute]

    def __contains__(self, attribute: object) -> bool:
        return any(error.attribute == attribute for error in self._errors)

    def __iter__(self) -> Iterator[FormError]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __repr__(self) -> str:
        return f"Errors({self.full_messages()!r})"
