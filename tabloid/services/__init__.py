"""Background services - poll scheduler, event channel and connectivity."""

from tabloid.services.events import (
    Event,
    EventChannel,
    NetworkStatusEvent,
    NewRecordsEvent,
    PriceUpdateEvent,
    SourceErrorEvent,
)
from tabloid.services.network import NetworkMonitor
from tabloid.services.scheduler import JobState, PollScheduler, SchedulerState

__all__ = [
    "Event",
    "EventChannel",
    "JobState",
    "NetworkMonitor",
    "NetworkStatusEvent",
    "NewRecordsEvent",
    "PollScheduler",
    "PriceUpdateEvent",
    "SchedulerState",
    "SourceErrorEvent",
]
