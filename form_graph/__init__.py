"""form_graph - form objects with associations, nested attributes and graph validation."""

from __future__ import annotations

from form_graph.associations import (
    Association,
    AssociationHooks,
    CollectionAssociation,
    CollectionProxy,
    InMemoryHooks,
    Relation,
    SingularAssociation,
)
from form_graph.base import FormBase, HasMany, HasOne
from form_graph.core.attributes import Attribute
from form_graph.core.enums import Macro, ReflectionKind
from form_graph.core.errors import Errors, FormError
from form_graph.core.exceptions import (
    AbortCallback,
    AssociationNotFoundError,
    DeclarationError,
    FormGraphError,
    NestedAttributesError,
    NestedRecordNotFoundError,
    ReadOnlyAssociationError,
    ReplaceFailedError,
    TooManyRecordsError,
    TypeMismatchError,
    UnknownAttributeError,
    UnresolvedTargetClassError,
    UnsupportedOperationError,
)
from form_graph.reflection import Reflection, ReflectionRegistry, reflections

__all__ = [
    # Forms
    "FormBase",
    "Attribute",
    "HasOne",
    "HasMany",
    # Associations
    "Association",
    "SingularAssociation",
    "CollectionAssociation",
    "CollectionProxy",
    "Relation",
    "AssociationHooks",
    "InMemoryHooks",
    # Reflection
    "Reflection",
    "ReflectionRegistry",
    "reflections",
    # Validation
    "Errors",
    "FormError",
    # Enums
    "Macro",
    "ReflectionKind",
    # Exceptions
    "FormGraphError",
    "DeclarationError",
    "UnresolvedTargetClassError",
    "AssociationNotFoundError",
    "TypeMismatchError",
    "ReadOnlyAssociationError",
    "ReplaceFailedError",
    "UnsupportedOperationError",
    "AbortCallback",
    "UnknownAttributeError",
    "NestedAttributesError",
    "TooManyRecordsError",
    "NestedRecordNotFoundError",
]
