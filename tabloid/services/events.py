"""In-process event channel carrying delta notifications to subscribers.

The scheduler publishes; the display layer (or the CLI console printer)
subscribes and receives each event on its own bounded asyncio queue.
Publishing never blocks: a subscriber that falls behind loses its oldest
pending events, not the publisher's time.

Event names on the wire:
    new-records, source-error, price-update, network-status
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

from tabloid.ingestion.schemas import PriceSnapshot, Record

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """Base class for channel events. Subclasses set `type`."""

    type: ClassVar[str] = "event"

    emitted_at: datetime = field(default_factory=_utc_now, kw_only=True)

    def payload(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "emitted_at": self.emitted_at.isoformat(),
            "data": self.payload(),
        }


@dataclass(frozen=True)
class NewRecordsEvent(Event):
    """Newly fetched records for one source, newest first."""

    type: ClassVar[str] = "new-records"

    source_id: str
    records: list[Record]

    def payload(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "records": [r.to_event_payload() for r in self.records],
        }


@dataclass(frozen=True)
class SourceErrorEvent(Event):
    """A fetch for one source failed this cycle."""

    type: ClassVar[str] = "source-error"

    source_id: str
    message: str

    def payload(self) -> dict[str, Any]:
        return {"source_id": self.source_id, "message": self.message}


@dataclass(frozen=True)
class PriceUpdateEvent(Event):
    """The merged price snapshot after a successful price poll."""

    type: ClassVar[str] = "price-update"

    snapshot: PriceSnapshot
    vs_currency: str = "usd"

    def payload(self) -> dict[str, Any]:
        return {"snapshot": self.snapshot.to_event_payload(self.vs_currency)}


@dataclass(frozen=True)
class NetworkStatusEvent(Event):
    type: ClassVar[str] = "network-status"

    is_online: bool

    def payload(self) -> dict[str, Any]:
        return {"is_online": self.is_online}


class EventChannel:
    """Fan-out of events to subscriber queues.

    Lifecycle:
        1. ``subscribe()`` returns a queue that receives every later event
        2. ``publish(event)`` puts the event on every subscriber queue
        3. ``unsubscribe(queue)`` or ``close()`` detaches subscribers
    """

    def __init__(self, max_pending: int = 1000) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._max_pending = max_pending
        self._subscribers: list[asyncio.Queue[Event]] = []
        self._published = 0
        self._dropped = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def published_count(self) -> int:
        return self._published

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def subscribe(self) -> asyncio.Queue[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_pending)
        self._subscribers.append(queue)
        logger.debug("Event subscriber added (total=%d)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        try:
            self._subscribers.remove(queue)
        except ValueError:
            return
        logger.debug("Event subscriber removed (total=%d)", len(self._subscribers))

    @asynccontextmanager
    async def subscription(self) -> AsyncIterator[asyncio.Queue[Event]]:
        """Subscribe for the duration of an ``async with`` block."""
        queue = self.subscribe()
        try:
            yield queue
        finally:
            self.unsubscribe(queue)

    def publish(self, event: Event) -> int:
        """Deliver `event` to all subscribers without waiting.

        Returns:
            Number of subscribers the event was delivered to.
        """
        self._published += 1
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
                self._dropped += 1
                logger.warning(
                    "Event subscriber lagging, dropped oldest event (type=%s)",
                    event.type,
                )
            queue.put_nowait(event)

        logger.debug(
            "Published %s to %d subscribers", event.type, len(self._subscribers),
        )
        return len(self._subscribers)

    def close(self) -> None:
        """Detach all subscribers."""
        self._subscribers.clear()
