"""form_graph exception hierarchy.

Structural problems (bad declarations, unknown associations, wrong
types) are raised. Invalid user input is never raised: it ends up in
``form.errors`` and ``valid()`` returns False.
"""

from __future__ import annotations

from typing import Any


class FormGraphError(Exception):
    """Base exception for all form_graph errors."""


# --- Declaration ---


class DeclarationError(FormGraphError):
    """Raised when an association declaration is invalid."""

    def __init__(self, owner_class: str, name: Any, detail: str) -> None:
        self.owner_class = owner_class
        self.name = name
        super().__init__(f"Invalid association {name!r} on {owner_class}: {detail}")


class UnresolvedTargetClassError(FormGraphError):
    """Raised when the target form class of an association cannot be derived."""

    def __init__(self, owner_class: str, name: str, candidates: list[str]) -> None:
        self.owner_class = owner_class
        self.name = name
        self.candidates = candidates
        super().__init__(
            f"Couldn't find a valid form for association '{name}' on {owner_class} "
            f"(tried {candidates}). Provide the class_name option on the declaration "
            f"and make sure it names a FormBase subclass."
        )


# --- Association access ---


class AssociationNotFoundError(FormGraphError):
    """Raised when an undeclared association name is accessed."""

    def __init__(self, owner_class: str, name: str) -> None:
        self.owner_class = owner_class
        self.name = name
        super().__init__(
            f"Association named '{name}' was not found on {owner_class}; "
            f"perhaps you misspelled it?"
        )


class TypeMismatchError(FormGraphError):
    """Raised when an object of the wrong class is assigned to an association."""

    def __init__(self, name: str, expected: str, got: str) -> None:
        self.name = name
        self.expected = expected
        self.got = got
        super().__init__(f"{name}: expected {expected}, got {got}")


class ReadOnlyAssociationError(FormGraphError):
    """Raised when a through association is mutated directly."""

    def __init__(self, owner_class: str, name: str) -> None:
        self.owner_class = owner_class
        self.name = name
        super().__init__(
            f"Cannot modify association '{owner_class}#{name}' because it goes "
            f"through another association"
        )


class UnsupportedOperationError(FormGraphError, TypeError):
    """Raised for a collection operation associations do not define."""


class ReplaceFailedError(FormGraphError):
    """Raised when a collection replace is rejected; the previous target is restored."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Failed to replace {name} because one or more of the new records "
            f"could not be added."
        )


class AbortCallback(FormGraphError):
    """Raised from a before_add/before_remove callback to cancel the operation."""


# --- Attributes ---


class UnknownAttributeError(FormGraphError):
    """Raised when assigning an attribute the form does not declare."""

    def __init__(self, form_class: str, attribute: str) -> None:
        self.form_class = form_class
        self.attribute = attribute
        super().__init__(f"unknown attribute '{attribute}' for {form_class}.")


# --- Nested attributes ---


class NestedAttributesError(FormGraphError, ValueError):
    """Raised for malformed nested-attribute payloads or unbuildable associations."""


class TooManyRecordsError(NestedAttributesError):
    """Raised when a nested payload exceeds the declared limit."""

    def __init__(self, name: str, limit: int) -> None:
        self.name = name
        self.limit = limit
        super().__init__(f"Maximum {limit} records are allowed for '{name}'.")


class NestedRecordNotFoundError(FormGraphError):
    """Raised when a nested payload references an identifier with no matching child."""

    def __init__(
        self,
        target_class: str,
        name: str,
        record_id: Any,
        owner_class: str,
        owner_id: Any,
    ) -> None:
        self.target_class = target_class
        self.name = name
        self.record_id = record_id
        self.owner_class = owner_class
        self.owner_id = owner_id
        super().__init__(
            f"Couldn't find {target_class} with ID={record_id} for {owner_class} "
            f"with ID={owner_id} (association '{name}')"
        )
