"""Association layer - per-instance proxies between an owner form and its targets."""

from __future__ import annotations

from form_graph.associations.association import Association
from form_graph.associations.collection import CollectionAssociation
from form_graph.associations.hooks import AssociationHooks, InMemoryHooks
from form_graph.associations.proxy import CollectionProxy, Relation
from form_graph.associations.singular import SingularAssociation
from form_graph.core.enums import Macro
from form_graph.reflection.descriptor import Reflection

_ASSOCIATION_CLASSES: dict[Macro, type[Association]] = {
    Macro.ONE_TO_ONE: SingularAssociation,
    Macro.ONE_TO_MANY: CollectionAssociation,
}


def association_class_for(reflection: Reflection) -> type[Association]:
    return _ASSOCIATION_CLASSES[reflection.macro]


__all__ = [
    "Association",
    "AssociationHooks",
    "CollectionAssociation",
    "CollectionProxy",
    "InMemoryHooks",
    "Relation",
    "SingularAssociation",
    "association_class_for",
]
