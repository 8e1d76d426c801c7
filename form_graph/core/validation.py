"""Validation rules.

Rules are frozen dataclasses declared on a form class and run in
declaration order. A rule inspects the form and appends to
``form.errors``; it never raises for bad input.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Sized
from dataclasses import dataclass
from typing import Any, Protocol


def is_blank(value: Any) -> bool:
    """None, False, whitespace-only strings and empty containers are blank."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Sized):
        return len(value) == 0
    return False


class Rule(Protocol):
    """A declared validation rule."""

    def run(self, form: Any) -> None:
        """Evaluate the rule and record any errors on ``form.errors``."""
        ...


@dataclass(frozen=True)
class PresenceRule:
    """The attribute (or association reader) must not be blank."""

    attribute: str
    type: str = "blank"
    message: str | None = None

    def run(self, form: Any) -> None:
        if is_blank(getattr(form, self.attribute)):
            form.errors.add(self.attribute, self.type, self.message)


@dataclass(frozen=True)
class InclusionRule:
    """The attribute value must be one of ``choices``."""

    attribute: str
    choices: tuple[Any, ...]
    allow_none: bool = False
    message: str | None = None

    def run(self, form: Any) -> None:
        value = getattr(form, self.attribute)
        if value is None and self.allow_none:
            return
        if value not in self.choices:
            form.errors.add(self.attribute, "inclusion", self.message)


@dataclass(frozen=True)
class LengthRule:
    """The attribute value must be at most ``maximum`` long."""

    attribute: str
    maximum: int
    message: str | None = None

    def run(self, form: Any) -> None:
        value = getattr(form, self.attribute)
        if value is not None and len(value) > self.maximum:
            form.errors.add(self.attribute, "too_long", self.message)


@dataclass(frozen=True)
class AssociatedValidRule:
    """A present one-to-one child must itself be valid."""

    association: str

    def run(self, form: Any) -> None:
        record = getattr(form, self.association)
        if record is not None and not record.valid():
            form.errors.add(self.association, "invalid")


@dataclass(frozen=True)
class MethodRule:
    """Calls a form method by name, or a callable with the form."""

    method: str | Callable[..., Any]

    def run(self, form: Any) -> None:
        if isinstance(self.method, str):
            getattr(form, self.method)()
        else:
            self.method(form)


def run_rules(form: Any, rules: Iterable[Rule]) -> None:
    for rule in rules:
        rule.run(form)


def call_with_optional_argument(func: Callable[..., Any], argument: Any) -> Any:
    """Call ``func`` with ``argument`` unless it takes no positional parameters."""
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return func(argument)
    accepts = any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL) for p in params
    )
    return func(argument) if accepts else func()
