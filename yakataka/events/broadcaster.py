"""In-memory fan-out of appended project events to live listeners.

The broadcaster is owned by the application lifespan: it is constructed
once, started, handed to the EventStore, and stopped on shutdown. Listener
registrations live only in memory; a listener that connects after an event
was broadcast never receives it and has to refetch the project.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from yakataka.models import StoredEvent

logger = logging.getLogger(__name__)

Message = dict[str, Any]
Deliver = Callable[[Message], None]


@dataclass
class _Listener:
    project_id: str
    deliver: Deliver
    on_remove: Callable[[], None] | None = None


class ListenerOverflowError(Exception):
    def __init__(self, listener_id: str, pending: int) -> None:
        self.listener_id = listener_id
        self.pending = pending
        super().__init__(f"Listener {listener_id} has {pending} undelivered messages")


class EventBroadcaster:
    """Delivers project events to the listeners registered for that project."""

    def __init__(self) -> None:
        self._listeners: dict[str, _Listener] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        """Stop broadcasting and drop every listener."""
        self._running = False
        for listener_id in list(self._listeners):
            self.remove_listener(listener_id)

    def add_listener(
        self,
        listener_id: str,
        project_id: str,
        deliver: Deliver,
        on_remove: Callable[[], None] | None = None,
    ) -> None:
        """Register a listener. Re-registering an id replaces the old entry."""
        if not self._running:
            raise RuntimeError("EventBroadcaster is not running")
        self._listeners[listener_id] = _Listener(project_id, deliver, on_remove)

    def remove_listener(self, listener_id: str) -> None:
        """Deregister a listener. Unknown ids are ignored."""
        listener = self._listeners.pop(listener_id, None)
        if listener is not None and listener.on_remove is not None:
            listener.on_remove()

    def listener_count(self, project_id: str | None = None) -> int:
        if project_id is None:
            return len(self._listeners)
        return sum(
            1 for listener in self._listeners.values()
            if listener.project_id == project_id
        )

    def broadcast(self, project_id: str, event: StoredEvent) -> None:
        """Deliver an event to every listener of the project, in registration order."""
        if not self._running:
            return
        message: Message = {
            "type": event.event_type,
            "data": event.event_data,
            "timestamp": event.timestamp.isoformat(),
            "version": event.version,
        }
        for listener_id, listener in list(self._listeners.items()):
            if listener.project_id != project_id:
                continue
            try:
                listener.deliver(message)
            except Exception:
                logger.info("Dropping listener %s after failed delivery", listener_id)
                self.remove_listener(listener_id)

    def subscribe(self, project_id: str, max_pending: int = 256) -> "Subscription":
        """Register a queue-backed listener for one project."""
        subscription = Subscription(self, project_id, max_pending=max_pending)
        self.add_listener(
            subscription.listener_id,
            project_id,
            subscription.deliver,
            on_remove=subscription.close,
        )
        return subscription


class Subscription:
    """A listener whose messages are read back with ``await get()``.

    Once closed (by the consumer, by the broadcaster stopping, or after an
    overflow), ``get`` drains what was already queued and then returns None.
    """

    def __init__(
        self, broadcaster: EventBroadcaster, project_id: str, max_pending: int = 256
    ) -> None:
        self.listener_id = str(uuid4())
        self.project_id = project_id
        self.closed = False
        self._broadcaster = broadcaster
        self._max_pending = max_pending
        self._queue: asyncio.Queue[Message | None] = asyncio.Queue()

    def deliver(self, message: Message) -> None:
        if self.closed:
            raise RuntimeError(f"Subscription {self.listener_id} is closed")
        if self._queue.qsize() >= self._max_pending:
            raise ListenerOverflowError(self.listener_id, self._queue.qsize())
        self._queue.put_nowait(message)

    async def get(self, timeout: float | None = None) -> Message | None:
        """Wait for the next message. Raises TimeoutError when idle past timeout."""
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)
        self._broadcaster.remove_listener(self.listener_id)
