"""FormBase - the class every form derives from.

Forms declare typed attributes, associations and validation rules in the
class body:

    class OrderForm(FormBase):
        number = Attribute(str)
        customer = HasOne(required=True)
        items = HasMany(nested=True, allow_destroy=True, index_errors=True)

    OrderForm.validates("number", presence=True)

    order = OrderForm.from_params({"number": "A-1", "items_attributes": [{"sku": "X"}]})
    order.valid()

Class-level configuration (attribute definitions, rules, nested options)
is copy-on-write: a subclass inherits its parent's and only copies when
it declares something of its own.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from types import SimpleNamespace
from typing import Any, ClassVar

from form_graph.associations import Association, association_class_for
from form_graph.associations.hooks import AssociationHooks, InMemoryHooks
from form_graph.core.attributes import Attribute, AttributeSet
from form_graph.core.enums import Macro
from form_graph.core.errors import Errors
from form_graph.core.exceptions import (
    AssociationNotFoundError,
    DeclarationError,
    UnknownAttributeError,
)
from form_graph.core.inflection import demodulize, singularize
from form_graph.core.options import NestedAttributesOptions, parse_options
from form_graph.core.validation import (
    AssociatedValidRule,
    InclusionRule,
    LengthRule,
    MethodRule,
    PresenceRule,
    Rule,
    call_with_optional_argument,
    is_blank,
    run_rules,
)
from form_graph.nested.attributes import NestedAttributesAssignment
from form_graph.nested.validation import run_non_cyclic, validate_associated_records
from form_graph.reflection.descriptor import Reflection
from form_graph.reflection.registry import reflections
from form_graph.reflection.resolver import register_form_class

logger = logging.getLogger(__name__)


# --- Accessor descriptors ---


class AssociationAccessor:
    """Declares an association in a class body and delegates reads/writes to it."""

    macro: ClassVar[Macro]

    def __init__(
        self,
        scope: Callable[..., Any] | None = None,
        *,
        nested: bool | Mapping[str, Any] = False,
        **options: Any,
    ) -> None:
        self.scope = scope
        self.nested = nested
        self.options = options
        self.name: str | None = None

    def __set_name__(self, owner: type[FormBase], name: str) -> None:
        self.name = name
        owner._declare_association(name, self.macro, self.options, self.scope)
        if self.nested:
            nested_options = dict(self.nested) if isinstance(self.nested, Mapping) else {}
            owner.accepts_nested_attributes_for(name, **nested_options)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.association(self.name).reader()

    def __set__(self, instance: Any, value: Any) -> None:
        instance.association(self.name).writer(value)


class HasOne(AssociationAccessor):
    macro = Macro.ONE_TO_ONE


class HasMany(AssociationAccessor):
    macro = Macro.ONE_TO_MANY


class IdsAccessor:
    """``<singular>_ids`` for a one-to-many association."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.association(self.name).ids_reader()

    def __set__(self, instance: Any, value: Iterable[Any]) -> None:
        instance.association(self.name).ids_writer(value)


class NestedAttributesWriter:
    """Write-only ``<name>_attributes`` accessor."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        raise AttributeError(f"'{self.name}_attributes' is write-only")

    def __set__(self, instance: Any, value: Any) -> None:
        instance.assign_nested_attributes(self.name, value)


_WRITERS = (AssociationAccessor, IdsAccessor, NestedAttributesWriter)


def _field_names(record: Any) -> list[str]:
    """Field names of a pydantic model, dataclass or plain object instance."""
    model_fields = getattr(type(record), "model_fields", None)
    if model_fields is not None:
        return list(model_fields)
    if dataclasses.is_dataclass(record):
        return [f.name for f in dataclasses.fields(record)]
    try:
        return [name for name in vars(record) if not name.startswith("_")]
    except TypeError:
        return []


class FormBase:
    """Base class for form objects."""

    primary_key: ClassVar[str] = "id"
    model: ClassVar[Any] = None
    association_hooks: ClassVar[AssociationHooks] = InMemoryHooks()

    _attribute_definitions: ClassVar[dict[str, Attribute]] = {}
    _validation_rules: ClassVar[tuple[Rule, ...]] = ()
    _before_validation: ClassVar[tuple[Any, ...]] = ()
    _nested_attributes_options: ClassVar[dict[str, NestedAttributesOptions]] = {}

    id = Attribute(int | str)
    _destroy = Attribute(bool, default=False)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        register_form_class(cls)

    def __init__(self, attributes: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        self._attributes = AttributeSet(type(self)._attribute_definitions)
        self._association_cache: dict[str, Association] = {}
        self._already_called: dict[str, bool] = {}
        self.errors = Errors()
        self.context: Any = None
        if kwargs:
            attributes = {**(attributes or {}), **kwargs}
        if attributes:
            self.assign_attributes(attributes)

    # --- Attributes ---

    @classmethod
    def _declare_attribute(cls, attribute: Attribute) -> None:
        cls._attribute_definitions = {**cls._attribute_definitions, attribute.name: attribute}

    @classmethod
    def attribute(cls, name: str, type_: Any = Any, *, default: Any = None) -> Attribute:
        """Declare an attribute after the class body."""
        attribute = Attribute(type_, default=default)
        setattr(cls, name, attribute)
        attribute.__set_name__(cls, name)
        return attribute

    def read_attribute(self, name: str) -> Any:
        return self._attributes.get(name)

    def write_attribute(self, name: str, value: Any) -> None:
        if not self._attributes.has(name):
            raise UnknownAttributeError(type(self).__name__, name)
        self._attributes.set(name, value)

    def has_attribute(self, name: str) -> bool:
        return self._attributes.has(name)

    def attribute_names(self) -> list[str]:
        return self._attributes.keys()

    @property
    def attributes(self) -> dict[str, Any]:
        return self._attributes.to_dict()

    def changed_keys(self) -> set[str]:
        return self._attributes.changed_keys()

    def changes_applied(self) -> None:
        self._attributes.changes_applied()

    def assign_attributes(self, attributes: Mapping[str, Any]) -> None:
        """Assign attributes, association writers and nested writers by key.

        Raises:
            UnknownAttributeError: For a key the form does not know.
        """
        for key, value in attributes.items():
            name = str(key)
            if self.has_attribute(name):
                self.write_attribute(name, value)
            elif self._writable(name):
                setattr(self, name, value)
            else:
                raise UnknownAttributeError(type(self).__name__, name)

    def _writable(self, name: str) -> bool:
        return isinstance(getattr(type(self), name, None), _WRITERS)

    # --- Associations ---

    @classmethod
    def _declare_association(
        cls,
        name: str,
        macro: Macro,
        options: dict[str, Any],
        scope: Callable[..., Any] | None = None,
    ) -> Reflection:
        reflection = reflections.declare(cls, name, macro, options, scope)
        if reflection.collection:
            setattr(cls, f"{singularize(name)}_ids", IdsAccessor(name))
        elif reflection.options.required:
            cls._add_rule(PresenceRule(name, type="required"))
            cls._add_rule(AssociatedValidRule(name))
        return reflection

    @classmethod
    def has_one(cls, name: str, scope: Callable[..., Any] | None = None, **options: Any) -> Reflection:
        """Declare a one-to-one association after the class body."""
        return cls._declare_accessor(HasOne(scope, **options), name)

    @classmethod
    def has_many(cls, name: str, scope: Callable[..., Any] | None = None, **options: Any) -> Reflection:
        """Declare a one-to-many association after the class body."""
        return cls._declare_accessor(HasMany(scope, **options), name)

    @classmethod
    def _declare_accessor(cls, accessor: AssociationAccessor, name: str) -> Reflection:
        accessor.__set_name__(cls, name)
        setattr(cls, name, accessor)
        return reflections.lookup(cls, name)  # type: ignore[return-value]

    @classmethod
    def accepts_nested_attributes_for(cls, *names: str, **options: Any) -> None:
        """Install ``<name>_attributes`` writers for the named associations.

        Raises:
            DeclarationError: On unknown options or an undeclared association.
        """
        for name in names:
            if cls._reflect_on_association(name) is None:
                raise DeclarationError(
                    cls.__name__, name, "no association found; has it been defined yet?"
                )
            if options:
                parsed = parse_options(NestedAttributesOptions, cls.__name__, name, dict(options))
                cls._nested_attributes_options = {**cls._nested_attributes_options, name: parsed}
            setattr(cls, f"{name}_attributes", NestedAttributesWriter(name))

    @classmethod
    def nested_attributes_options_for(cls, name: str) -> NestedAttributesOptions:
        """Options given to accepts_nested_attributes_for, else the association's own."""
        options = cls._nested_attributes_options.get(name)
        if options is not None:
            return options
        reflection = cls._reflect_on_association(name)
        if reflection is None:
            raise AssociationNotFoundError(cls.__name__, name)
        return reflection.options

    def association(self, name: str) -> Association:
        """The association instance for ``name``, created on first use.

        Raises:
            AssociationNotFoundError: If no association of that name is declared.
        """
        association = self._association_cache.get(name)
        if association is None:
            reflection = type(self)._reflect_on_association(name)
            if reflection is None:
                raise AssociationNotFoundError(type(self).__name__, name)
            association = association_class_for(reflection)(self, reflection)
            self._association_cache[name] = association
        return association

    def association_cached(self, name: str) -> Association | None:
        return self._association_cache.get(name)

    def build_association(self, name: str, attributes: Mapping[str, Any] | None = None) -> Any:
        return self.association(name).build(attributes)

    def assign_nested_attributes(self, name: str, payload: Any) -> None:
        NestedAttributesAssignment(self, name).assign(payload)

    @classmethod
    def _reflect_on_association(cls, name: str) -> Reflection | None:
        return reflections.lookup(cls, name)

    @classmethod
    def reflect_on_association(cls, name: str) -> Reflection | None:
        return reflections.resolve_all(cls).get(name)

    @classmethod
    def reflect_on_all_associations(cls, macro: Macro | str | None = None) -> list[Reflection]:
        found = list(reflections.resolve_all(cls).values())
        if macro is None:
            return found
        macro = Macro(macro)
        return [reflection for reflection in found if reflection.macro is macro]

    @classmethod
    def reflect_on_all_autosave_associations(cls) -> list[Reflection]:
        return [
            reflection
            for reflection in cls.reflect_on_all_associations()
            if reflection.options.autosave
        ]

    # --- Validation ---

    @classmethod
    def _add_rule(cls, rule: Rule) -> None:
        cls._validation_rules = (*cls._validation_rules, rule)

    @classmethod
    def validates(
        cls,
        *names: str,
        presence: bool = False,
        inclusion: Iterable[Any] | None = None,
        length: int | None = None,
        allow_none: bool = False,
        message: str | None = None,
    ) -> None:
        for name in names:
            if presence:
                cls._add_rule(PresenceRule(name, message=message))
            if inclusion is not None:
                cls._add_rule(InclusionRule(name, tuple(inclusion), allow_none, message))
            if length is not None:
                cls._add_rule(LengthRule(name, length, message))

    @classmethod
    def validate(cls, method: str | Callable[..., Any]) -> None:
        cls._add_rule(MethodRule(method))

    @classmethod
    def before_validation(cls, hook: str | Callable[..., Any]) -> None:
        cls._before_validation = (*cls._before_validation, hook)

    def valid(self) -> bool:
        """Run own rules, then validate every loaded association target.

        Returns False when any error was recorded; never raises for bad input.
        """
        for hook in type(self)._before_validation:
            if isinstance(hook, str):
                getattr(self, hook)()
            else:
                call_with_optional_argument(hook, self)

        self.errors.clear()
        run_rules(self, type(self)._validation_rules)
        results = [len(self.errors) == 0]
        for reflection in type(self).reflect_on_all_associations():
            if not reflection.validate:
                continue
            key = f"validate_associated_records_for_{reflection.name}"
            results.append(
                run_non_cyclic(self, key, lambda r=reflection: validate_associated_records(self, r))
            )
        self.errors.uniq()
        return all(results)

    def invalid(self) -> bool:
        return not self.valid()

    # --- Identity ---

    @property
    def persisted(self) -> bool:
        value = self.id
        if is_blank(value):
            return False
        try:
            return int(value) > 0
        except (TypeError, ValueError):
            return True

    @property
    def new_record(self) -> bool:
        return not self.persisted

    @property
    def marked_for_destruction(self) -> bool:
        return bool(self._destroy)

    def mark_for_destruction(self) -> None:
        self.write_attribute("_destroy", True)

    def to_key(self) -> list[Any]:
        return [self.id]

    @classmethod
    def accepts_instance(cls, record: Any) -> bool:
        return isinstance(record, cls)

    # --- Model ---

    @classmethod
    def acts_like_model(cls, model: Any) -> None:
        cls.model = model

    @classmethod
    def inherit_model_validations(cls, model: Any, *names: str) -> None:
        """Declare presence and length rules from a Pydantic model's field constraints.

        A required field becomes a presence rule; ``max_length`` metadata
        becomes a length rule.

        Raises:
            DeclarationError: If ``model`` is not a Pydantic model or has no
                field of a given name.
        """
        fields = getattr(model, "model_fields", None)
        if fields is None:
            raise DeclarationError(cls.__name__, model, "expected a Pydantic model class")
        for name in names:
            info = fields.get(name)
            if info is None:
                raise DeclarationError(cls.__name__, name, f"no such field on {model.__name__}")
            if info.is_required():
                cls._add_rule(PresenceRule(name))
            for constraint in info.metadata:
                maximum = getattr(constraint, "max_length", None)
                if maximum is not None:
                    cls._add_rule(LengthRule(name, maximum))

    @classmethod
    def model_name(cls) -> str:
        """``model`` if set, else the class name without its ``Form`` suffix."""
        if isinstance(cls.model, str):
            return cls.model
        if cls.model is not None:
            return demodulize(getattr(cls.model, "__name__", str(cls.model)))
        return cls.__name__.removesuffix("Form") or cls.__name__

    def map_model(self, record: Any) -> None:
        """Hook called at the end of from_model."""

    @classmethod
    def from_model(cls, record: Any) -> FormBase:
        return cls().assign_model(record)

    def assign_model(self, record: Any) -> FormBase:
        """Copy fields and associated records from a model instance."""
        primary_key = type(self).primary_key
        for name in _field_names(record):
            if name != primary_key and self.has_attribute(name):
                self.write_attribute(name, getattr(record, name))

        for reflection in type(self).reflect_on_all_associations():
            if reflection.through or not hasattr(record, reflection.name):
                continue
            value = getattr(record, reflection.name)
            if reflection.collection:
                proxy = self.association(reflection.name).reader()
                for item in value or []:
                    proxy.build().assign_model(item)
            elif value is not None:
                self.build_association(reflection.name).assign_model(value)

        self.write_attribute(primary_key, getattr(record, primary_key, None))
        self.map_model(record)
        return self

    # --- Params ---

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        additional_params: Mapping[str, Any] | None = None,
    ) -> FormBase:
        return cls().assign_params(params, additional_params)

    def assign_params(
        self,
        params: Mapping[str, Any],
        additional_params: Mapping[str, Any] | None = None,
    ) -> FormBase:
        """Assign every key the form knows; unknown keys are ignored."""
        merged = {**params, **(additional_params or {})}
        for key, value in merged.items():
            name = str(key)
            if self.has_attribute(name) or self._writable(name):
                setattr(self, name, value)
            else:
                logger.debug("Ignoring unknown parameter '%s' for %s", name, type(self).__name__)
        return self

    @classmethod
    def from_json(cls, text: str | bytes) -> FormBase:
        return cls.from_params(json.loads(text))

    # --- Context ---

    def with_context(self, context: Any = None, **values: Any) -> FormBase:
        """Attach a context namespace to this form and every associated form."""
        if context is None or isinstance(context, Mapping):
            context = SimpleNamespace(**{**(context or {}), **values})
        run_non_cyclic(self, "with_context", lambda: self._propagate_context(context))
        return self

    def _propagate_context(self, context: Any) -> None:
        self.context = context
        for reflection in type(self).reflect_on_all_associations():
            value = getattr(self, reflection.name)
            if value is not None:
                value.with_context(context)

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{name}={value!r}" for name, value in self._attributes.to_dict().items()
        )
        return f"<{type(self).__name__} {fields}>"
