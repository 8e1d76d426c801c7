"""Reflection descriptor - the metadata of one declared association.

A reflection is created once, when the owning class declares the
association, and shared read-only by every instance of that class and
its subclasses. The target class is resolved lazily on first use and
cached.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from form_graph.core.callbacks import CallbackChain
from form_graph.core.enums import Macro, ReflectionKind
from form_graph.core.exceptions import UnresolvedTargetClassError
from form_graph.core.inflection import camelize, singularize, underscore
from form_graph.core.options import AssociationOptions
from form_graph.reflection.resolver import compute_type, is_form_class

_klass_lock = threading.Lock()


@dataclass(frozen=True, eq=False)
class Reflection:
    """Metadata describing one association of a form class."""

    name: str
    macro: Macro
    owner: type
    options: AssociationOptions
    scope: Callable[..., Any] | None = None
    callbacks: Mapping[str, CallbackChain] = field(default_factory=dict)
    parent_reflection: Reflection | None = None

    @property
    def kind(self) -> ReflectionKind:
        if self.options.through:
            return ReflectionKind.THROUGH
        if getattr(self.options, "polymorphic", False):
            return ReflectionKind.POLYMORPHIC
        return ReflectionKind.DIRECT

    @property
    def collection(self) -> bool:
        return self.macro is Macro.ONE_TO_MANY

    @property
    def polymorphic(self) -> bool:
        return self.kind is ReflectionKind.POLYMORPHIC

    @property
    def through(self) -> bool:
        return self.kind is ReflectionKind.THROUGH

    @property
    def class_name(self) -> str:
        """Explicit ``class_name`` or one derived from the association name."""
        if self.options.class_name:
            return self.options.class_name
        name = singularize(self.name) if self.collection else self.name
        return camelize(name)

    @property
    def klass(self) -> type:
        """The target form class, resolved once and cached.

        Raises:
            UnresolvedTargetClassError: If the class cannot be found, or the
                association is polymorphic (its class depends on the owner).
        """
        cached = self.__dict__.get("_klass")
        if cached is not None:
            return cached
        if self.polymorphic:
            raise UnresolvedTargetClassError(self.owner.__name__, self.name, [])
        with _klass_lock:
            cached = self.__dict__.get("_klass")
            if cached is None:
                if self.options.anonymous_class is not None:
                    cached = self.options.anonymous_class
                else:
                    cached = compute_type(self.owner, self.class_name, self.name)
                object.__setattr__(self, "_klass", cached)
        return cached

    def klass_for(self, owner: Any) -> type | None:
        """Target class as seen from one owner instance.

        Polymorphic associations read it from the owner's type attribute and
        return None while that is blank.
        """
        if not self.polymorphic:
            return self.klass
        if not owner.has_attribute(self.foreign_type):
            return None
        type_name = owner.read_attribute(self.foreign_type)
        if not type_name:
            return None
        return compute_type(self.owner, str(type_name), self.name)

    def accepts(self, owner: Any, record: Any) -> bool:
        """Whether ``record`` may be assigned to this association on ``owner``."""
        klass = self.klass_for(owner)
        if klass is None:
            return is_form_class(type(record))
        return klass.accepts_instance(record)

    @property
    def foreign_key(self) -> str:
        if self.options.foreign_key:
            return self.options.foreign_key
        return f"{underscore(self.owner.model_name())}_id"

    @property
    def foreign_type(self) -> str:
        return f"{self.name}_type"

    @property
    def validate(self) -> bool:
        """Whether the owner validates this association's targets.

        Explicit ``validate`` wins; otherwise collections and autosave
        associations are validated.
        """
        if self.options.validate_association is not None:
            return self.options.validate_association
        return self.options.autosave is True or self.collection

    @property
    def through_name(self) -> str | None:
        return self.options.through

    def source_name(self, through_klass: type) -> str:
        """Name of the association on the intermediate class that yields the target."""
        if self.options.source:
            return self.options.source
        singular = singularize(self.name)
        for candidate in (self.name, singular):
            if through_klass._reflect_on_association(candidate) is not None:
                return candidate
        return singular

    def inverse_name(self, record_class: type) -> str | None:
        """Name of the association on ``record_class`` that points back at the owner."""
        if self.options.inverse_of is False or self.through:
            return None
        if self.options.inverse_of:
            return self.options.inverse_of
        candidate = underscore(self.owner.model_name())
        inverse = record_class._reflect_on_association(candidate)
        if inverse is None or inverse is self:
            return None
        return candidate

    def callbacks_for(self, event: str) -> CallbackChain:
        return self.callbacks.get(event, ())

    def build_association(self, klass: type, attributes: Mapping[str, Any] | None) -> Any:
        return klass(attributes)

    def __repr__(self) -> str:
        return f"<Reflection {self.macro.value} {self.owner.__name__}.{self.name}>"
