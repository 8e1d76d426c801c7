"""Validation propagation across associations.

The owner validates the targets its associations already hold and
copies each child error onto itself under ``name.attr``, or
``name[i].attr`` for collections declared with ``index_errors``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from form_graph.reflection.descriptor import Reflection

logger = logging.getLogger(__name__)


def run_non_cyclic(owner: Any, key: str, func: Callable[[], Any], default: Any = True) -> Any:
    """Run ``func`` unless ``key`` is already running on ``owner``; then return ``default``."""
    if owner._already_called.get(key):
        logger.debug("Skipping re-entrant %s on %r", key, owner)
        return default
    owner._already_called[key] = True
    try:
        return func()
    finally:
        owner._already_called[key] = False


def validate_associated_records(owner: Any, reflection: Reflection) -> bool:
    """Validate the loaded target of one association. Never loads anything."""
    association = owner.association_cached(reflection.name)
    if association is None:
        return True
    target = association.target
    if reflection.collection:
        results = [
            association_valid(owner, reflection, record, index)
            for index, record in enumerate(list(target or []))
        ]
        return all(results)
    if target is None:
        return True
    return association_valid(owner, reflection, target)


def association_valid(owner: Any, reflection: Reflection, record: Any, index: int | None = None) -> bool:
    if record.marked_for_destruction:
        return True
    valid = record.valid()
    if not valid:
        indexed = index is not None and reflection.options.index_errors
        for attribute, errors in record.errors.group_by_attribute().items():
            if indexed:
                path = f"{reflection.name}[{index}].{attribute}"
            else:
                path = f"{reflection.name}.{attribute}"
            for error in errors:
                owner.errors.import_error(error, attribute=path)
    return valid
