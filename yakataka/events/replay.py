"""Replay: fold an ordered event sequence into aggregate state.

Transitions are pure functions of (state, event). They never read the
clock, generate ids, or validate business rules; validation happens in the
aggregate commands against the current state, before anything is appended.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TypeVar

from yakataka.models import StoredEvent

logger = logging.getLogger(__name__)

S = TypeVar("S")

Transition = Callable[[S, StoredEvent], S]


def fold(
    initial: S,
    events: Iterable[StoredEvent],
    transitions: Mapping[str, Transition],
) -> S:
    """Apply each event's transition in order. Unknown event types are skipped."""
    state = initial
    for event in events:
        transition = transitions.get(event.event_type)
        if transition is None:
            logger.debug("No transition for %s, skipping", event.event_type)
            continue
        state = transition(state, event)
    return state
