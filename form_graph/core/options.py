"""Association and nested-attribute option models.

Options are validated with Pydantic when an association is declared.
Unknown keys are rejected, so a typo fails at class-definition time
instead of being silently ignored.
"""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from form_graph.core.exceptions import DeclarationError

OptionsT = TypeVar("OptionsT", bound="NestedAttributesOptions")

CALLBACK_NAMES = ("before_add", "after_add", "before_remove", "after_remove")


class NestedAttributesOptions(BaseModel):
    """Options accepted by ``accepts_nested_attributes_for``."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    allow_destroy: bool = False
    reject_if: Any = None
    update_only: bool = False
    limit: int | None = Field(default=None, ge=1)

    @field_validator("reject_if")
    @classmethod
    def _check_reject_if(cls, value: Any) -> Any:
        if value is None or isinstance(value, str) or callable(value):
            return value
        raise ValueError("reject_if must be a method name, a callable or 'all_blank'")


class AssociationOptions(NestedAttributesOptions):
    """Options shared by one-to-one and one-to-many declarations."""

    class_name: str | None = None
    anonymous_class: type | None = None
    foreign_key: str | None = None
    primary_key: str | None = None
    inverse_of: str | Literal[False] | None = None
    validate_association: bool | None = Field(default=None, alias="validate")
    autosave: bool | None = None
    through: str | None = None
    source: str | None = None
    index_errors: bool = False


class HasOneOptions(AssociationOptions):
    """Options for a one-to-one association."""

    required: bool = False
    polymorphic: bool = False


class HasManyOptions(AssociationOptions):
    """Options for a one-to-many association."""

    before_add: tuple[Any, ...] = ()
    after_add: tuple[Any, ...] = ()
    before_remove: tuple[Any, ...] = ()
    after_remove: tuple[Any, ...] = ()
    counter_cache: str | None = None
    extend: tuple[type, ...] = ()

    @field_validator(*CALLBACK_NAMES, "extend", mode="before")
    @classmethod
    def _as_tuple(cls, value: Any) -> tuple[Any, ...]:
        if value is None:
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(value)
        return (value,)


def parse_options(
    model: type[OptionsT],
    owner_class: str,
    name: Any,
    options: dict[str, Any],
) -> OptionsT:
    """Validate raw declaration options into an options model.

    Raises:
        DeclarationError: On unknown keys or values of the wrong type.
    """
    try:
        return model(**options)
    except ValidationError as e:
        unknown = [str(err["loc"][0]) for err in e.errors() if err["type"] == "extra_forbidden"]
        if unknown:
            detail = f"unknown option(s) {sorted(unknown)}"
        else:
            detail = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
        raise DeclarationError(owner_class, name, detail) from e
