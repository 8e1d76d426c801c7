"""Collection callback chains.

A chain is an ordered tuple of ``(label, callback)`` pairs stored on the
reflection. Every callback is normalised to ``callback(owner, record)``.
A ``before_*`` callback cancels the operation by raising ``AbortCallback``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from form_graph.core.exceptions import AbortCallback
from form_graph.core.options import CALLBACK_NAMES

logger = logging.getLogger(__name__)

Callback = Callable[[Any, Any], Any]
CallbackChain = tuple[tuple[str, Callback], ...]


def _normalize(event: str, entry: Any) -> tuple[str, Callback]:
    if isinstance(entry, str):

        def call_method(owner: Any, record: Any) -> Any:
            return getattr(owner, entry)(record)

        return entry, call_method
    if callable(entry):
        return getattr(entry, "__qualname__", repr(entry)), entry

    # An object exposing a method named after the event
    def call_handler(owner: Any, record: Any) -> Any:
        return getattr(entry, event)(owner, record)

    return type(entry).__name__, call_handler


def build_chains(
    declared: Mapping[str, Iterable[Any]],
    inherited: Mapping[str, CallbackChain] | None = None,
) -> dict[str, CallbackChain]:
    """Normalise declared callbacks and append them to the inherited chains."""
    chains: dict[str, CallbackChain] = {}
    for event in CALLBACK_NAMES:
        own = tuple(_normalize(event, entry) for entry in declared.get(event, ()))
        base = inherited.get(event, ()) if inherited else ()
        if base or own:
            chains[event] = base + own
    return chains


def run_chain(chain: CallbackChain, owner: Any, record: Any, *, cancellable: bool) -> bool:
    """Run a callback chain. Returns False if a cancellable chain was aborted."""
    for label, callback in chain:
        if not cancellable:
            callback(owner, record)
            continue
        try:
            callback(owner, record)
        except AbortCallback:
            logger.debug("Callback %s aborted for %r", label, record)
            return False
    return True
