"""
Poll scheduler - drives the feed, price and cleanup jobs.

Each job has its own timer task. A tick spawns one cycle; if the
previous cycle of that job is still running the tick is skipped, so a
job never overlaps itself. Every job runs once right after start().

Features:
- Concurrent per-source fetches with isolated failures
- Atomic persist + cursor advance per source
- In-memory price snapshot that only ever merges
- Connectivity inferred from fetch outcomes
- Graceful stop that lets in-flight cycles finish
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

import structlog

from tabloid.config.settings import get_settings
from tabloid.ingestion.base_client import BaseFeedClient, BasePriceClient
from tabloid.ingestion.http_client import ClientError, ConfigError, TransientNetworkError
from tabloid.ingestion.schemas import PriceSnapshot, Record
from tabloid.observability.metrics import get_metrics
from tabloid.services.events import (
    EventChannel,
    NetworkStatusEvent,
    NewRecordsEvent,
    PriceUpdateEvent,
    SourceErrorEvent,
)
from tabloid.services.network import NetworkMonitor
from tabloid.sources.schemas import Source
from tabloid.storage.errors import StoreError
from tabloid.storage.store import RecordStore

logger = structlog.get_logger(__name__)

FEED_POLL = "feed-poll"
PRICE_POLL = "price-poll"
CLEANUP = "cleanup"

JOB_NAMES = (FEED_POLL, PRICE_POLL, CLEANUP)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class JobStatus:
    """Run-state and counters for one job."""

    name: str
    interval: float
    state: JobState = JobState.IDLE
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.state == JobState.RUNNING


@dataclass
class SchedulerState:
    """All mutable scheduler state, owned by one PollScheduler."""

    jobs: dict[str, JobStatus]
    started: bool = False
    snapshot: PriceSnapshot = field(default_factory=PriceSnapshot)
    timers: dict[str, asyncio.Task] = field(default_factory=dict)
    in_flight: set[asyncio.Task] = field(default_factory=set)


@dataclass
class SourceOutcome:
    """Result of polling one source in a feed cycle."""

    source_id: str
    fetched: int = 0
    inserted: int = 0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FeedCycleResult:
    outcomes: list[SourceOutcome] = field(default_factory=list)
    skipped_sources: int = 0

    @property
    def polled(self) -> int:
        return len(self.outcomes)

    @property
    def new_records(self) -> int:
        return sum(o.inserted for o in self.outcomes)

    @property
    def errors(self) -> dict[str, str]:
        return {o.source_id: str(o.error) for o in self.outcomes if o.error is not None}


class PollScheduler:
    """
    Owns the three periodic jobs and publishes their results.

    Usage:
        scheduler = PollScheduler(store, feed_client, price_client, channel)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: RecordStore,
        feed_client: BaseFeedClient,
        price_client: BasePriceClient,
        channel: EventChannel,
        network: NetworkMonitor | None = None,
        feed_interval: float | None = None,
        price_interval: float | None = None,
        cleanup_interval: float | None = None,
        retention_hours: float | None = None,
        vs_currency: str | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize scheduler.

        Args:
            store: Record store (reads and writes)
            feed_client: Client used for every feed source
            price_client: Client used for ticker prices
            channel: Channel events are published to
            network: Connectivity tracker (created if omitted)
            feed_interval: Seconds between feed-poll ticks
            price_interval: Seconds between price-poll ticks
            cleanup_interval: Seconds between cleanup ticks
            retention_hours: Age after which records are pruned
            vs_currency: Quote currency used in price-update payloads
            clock: Returns the current UTC time (for the retention cutoff)
        """
        settings = get_settings()

        self._store = store
        self._feed_client = feed_client
        self._price_client = price_client
        self._channel = channel
        self._network = network or NetworkMonitor()
        self._retention = timedelta(hours=retention_hours or settings.retention_hours)
        self._vs_currency = vs_currency or settings.price_vs_currency
        self._clock = clock
        self._metrics = get_metrics()

        intervals = {
            FEED_POLL: feed_interval or settings.feed_poll_interval_seconds,
            PRICE_POLL: price_interval or settings.price_poll_interval_seconds,
            CLEANUP: cleanup_interval or settings.cleanup_interval_seconds,
        }
        for name, interval in intervals.items():
            if interval <= 0:
                raise ValueError(f"{name} interval must be positive")

        self._state = SchedulerState(
            jobs={name: JobStatus(name=name, interval=intervals[name]) for name in JOB_NAMES}
        )
        self._cycles: dict[str, Callable[[], Awaitable[object]]] = {
            FEED_POLL: self.run_feed_cycle,
            PRICE_POLL: self.run_price_cycle,
            CLEANUP: self.run_cleanup_cycle,
        }

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def snapshot(self) -> PriceSnapshot:
        """Latest merged price snapshot."""
        return self._state.snapshot

    @property
    def is_running(self) -> bool:
        return self._state.started

    @property
    def network(self) -> NetworkMonitor:
        return self._network

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """
        Schedule all jobs. Jobs already scheduled are left alone.

        Publishes the current network status, then each job runs once
        immediately and again on every tick of its interval.
        """
        first_start = not self._state.started
        self._state.started = True

        if first_start:
            self._channel.publish(NetworkStatusEvent(is_online=self._network.is_online))

        for name in JOB_NAMES:
            timer = self._state.timers.get(name)
            if timer is not None and not timer.done():
                logger.debug("Job already scheduled", job=name)
                continue

            self._state.timers[name] = asyncio.create_task(
                self._run_timer(name), name=f"timer_{name}",
            )
            logger.info(
                "Job scheduled", job=name, interval=self._state.jobs[name].interval,
            )

    async def stop(self) -> None:
        """
        Cancel all timers and wait for in-flight cycles to finish.

        Safe to call repeatedly or before start().
        """
        self._state.started = False

        timers = list(self._state.timers.values())
        self._state.timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        in_flight = list(self._state.in_flight)
        if in_flight:
            logger.info("Waiting for in-flight cycles", count=len(in_flight))
            await asyncio.gather(*in_flight, return_exceptions=True)

        if timers:
            logger.info("Scheduler stopped")

    async def _run_timer(self, name: str) -> None:
        interval = self._state.jobs[name].interval
        self.trigger(name)
        while True:
            await asyncio.sleep(interval)
            self.trigger(name)

    def trigger(self, name: str) -> asyncio.Task | None:
        """
        Start one cycle of `name` in the background.

        Returns:
            The cycle task, or None if the tick was skipped because the job
            is still running or the scheduler is stopped
        """
        job = self._state.jobs[name]
        if not self._state.started:
            return None
        if job.is_running:
            job.skipped += 1
            self._metrics.record_skipped_cycle(name)
            logger.debug("Skipping tick, job still running", job=name)
            return None

        # Mark running before the task is first scheduled
        job.state = JobState.RUNNING
        task = asyncio.create_task(self._run_job(name), name=f"cycle_{name}")
        self._state.in_flight.add(task)
        task.add_done_callback(self._state.in_flight.discard)
        return task

    async def run_job(self, name: str) -> bool:
        """
        Run one cycle of `name` now, in the caller's task.

        Returns:
            False if the job was already running and nothing was done
        """
        job = self._state.jobs[name]
        if job.is_running:
            job.skipped += 1
            self._metrics.record_skipped_cycle(name)
            return False
        job.state = JobState.RUNNING
        await self._run_job(name)
        return True

    async def _run_job(self, name: str) -> None:
        job = self._state.jobs[name]
        job.state = JobState.RUNNING
        job.last_started_at = _utc_now()
        start_time = time.monotonic()

        try:
            await self._cycles[name]()
            job.last_error = None
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            logger.error("Job cycle failed", job=name, error=str(e))
        finally:
            latency = time.monotonic() - start_time
            job.runs += 1
            job.last_finished_at = _utc_now()
            job.state = JobState.IDLE
            self._metrics.record_cycle(name, latency)
            logger.debug("Job cycle finished", job=name, latency_s=round(latency, 3))

    # ── Feed poll ───────────────────────────────────────────────

    async def run_feed_cycle(self) -> FeedCycleResult:
        """
        Poll every feed source concurrently and publish what changed.

        A failing source emits source-error and keeps its cursor; the
        others are unaffected.
        """
        result = FeedCycleResult()

        try:
            sources = await self._store.list_sources()
        except StoreError as e:
            logger.error("Could not load sources for feed poll", error=str(e))
            return result
        except Exception:
            logger.exception("Unexpected error loading sources for feed poll")
            return result

        pollable = [s for s in sources if self._is_pollable(s)]
        result.skipped_sources = len(sources) - len(pollable)
        if not pollable:
            logger.debug("No pollable sources configured")
            return result

        result.outcomes = list(
            await asyncio.gather(*(self._poll_source(s) for s in pollable))
        )

        config_errors = [o for o in result.outcomes if isinstance(o.error, ConfigError)]
        if config_errors:
            logger.error(
                "Feed client is not configured",
                client=self._feed_client.name,
                error=str(config_errors[0].error),
                sources=len(config_errors),
            )

        self._update_network(result.outcomes)

        logger.info(
            "Feed poll complete",
            polled=result.polled,
            new_records=result.new_records,
            errors=len(result.errors),
        )
        return result

    def _is_pollable(self, source: Source) -> bool:
        return source.is_pollable and source.kind == self._feed_client.kind

    async def _poll_source(self, source: Source) -> SourceOutcome:
        outcome = SourceOutcome(source_id=source.id)

        try:
            fetched = await self._feed_client.fetch_batch(
                source.upstream_account_id, since_cursor=source.cursor,
            )
        except ClientError as e:
            outcome.error = e
            self._report_source_error(source, e)
            return outcome
        except Exception as e:
            logger.exception("Unexpected error polling source", source_id=source.id)
            outcome.error = e
            self._report_source_error(source, e)
            return outcome

        outcome.fetched = len(fetched)
        self._metrics.record_fetch(source.id, len(fetched))
        if not fetched:
            return outcome

        records: list[Record] = [r.for_source(source.id) for r in fetched]
        try:
            outcome.inserted = await self._store.store_batch(source.id, records)
        except StoreError as e:
            # Fetch succeeded; persistence did not, so the cursor is unchanged
            outcome.error = e
            self._report_source_error(source, e)
            return outcome
        except Exception as e:
            logger.exception("Unexpected error storing batch", source_id=source.id)
            outcome.error = e
            self._report_source_error(source, e)
            return outcome

        self._metrics.record_stored(source.id, outcome.inserted)
        logger.info(
            "New records",
            source=source.name,
            source_id=source.id,
            fetched=outcome.fetched,
            inserted=outcome.inserted,
            cursor=records[0].id,
        )
        self._channel.publish(NewRecordsEvent(source_id=source.id, records=records))
        return outcome

    def _report_source_error(self, source: Source, error: Exception) -> None:
        self._metrics.record_fetch_error(source.id, type(error).__name__)
        if not isinstance(error, ConfigError):
            logger.warning(
                "Source poll failed",
                source=source.name,
                source_id=source.id,
                error_type=type(error).__name__,
                error=str(error),
            )
        self._channel.publish(SourceErrorEvent(source_id=source.id, message=str(error)))

    def _update_network(self, outcomes: list[SourceOutcome]) -> None:
        fetch_ok = any(o.error is None or isinstance(o.error, StoreError) for o in outcomes)
        all_transient = bool(outcomes) and all(
            isinstance(o.error, TransientNetworkError) for o in outcomes
        )

        if fetch_ok:
            changed = self._network.update(True)
        elif all_transient:
            changed = self._network.update(False)
        else:
            return

        if changed:
            self._channel.publish(NetworkStatusEvent(is_online=self._network.is_online))

    # ── Price poll ──────────────────────────────────────────────

    async def run_price_cycle(self) -> PriceSnapshot | None:
        """
        Fetch quotes for all tickers and merge them into the snapshot.

        Returns:
            The merged snapshot, or None when nothing was fetched
        """
        try:
            tickers = await self._store.list_ticker_configs()
        except StoreError as e:
            logger.error("Could not load tickers for price poll", error=str(e))
            return None

        if not tickers:
            logger.debug("No tickers configured")
            return None

        fetched = await self._price_client.fetch_prices([t.id for t in tickers])
        if not fetched:
            return None

        self._state.snapshot = self._state.snapshot.merge(fetched)
        self._metrics.record_price_update()
        self._channel.publish(
            PriceUpdateEvent(snapshot=self._state.snapshot, vs_currency=self._vs_currency)
        )
        logger.debug("Price update", tickers=len(fetched))
        return self._state.snapshot

    # ── Cleanup ─────────────────────────────────────────────────

    async def run_cleanup_cycle(self) -> int:
        """Delete records older than the retention window. Never raises."""
        cutoff = self._clock() - self._retention
        try:
            deleted = await self._store.delete_older_than(cutoff)
        except StoreError as e:
            logger.error("Cleanup failed", cutoff=cutoff.isoformat(), error=str(e))
            return 0
        except Exception:
            logger.exception("Unexpected error during cleanup", cutoff=cutoff.isoformat())
            return 0

        self._metrics.record_cleanup(deleted)
        logger.info("Cleanup complete", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted
