"""Event sourcing: append-only event store, replay fold and live fan-out."""

from yakataka.events.broadcaster import EventBroadcaster, Subscription
from yakataka.events.replay import fold
from yakataka.events.store import EventStore

__all__ = ["EventBroadcaster", "EventStore", "Subscription", "fold"]
