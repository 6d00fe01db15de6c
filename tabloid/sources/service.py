"""Inbound command layer for the display surface.

Each command returns a plain result object and never raises for expected
failures (bad input, slot taken, store unavailable); the error is carried
in the result so callers can render it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from tabloid.config.defaults import DEFAULT_SOURCES, DEFAULT_TICKERS
from tabloid.ingestion.schemas import Record
from tabloid.services.network import NetworkMonitor
from tabloid.sources.config import SourcesConfig
from tabloid.sources.schemas import FEED_KIND, NewSourcePayload, Source, TickerConfig
from tabloid.storage.errors import ConflictError, ConflictKind, StoreError
from tabloid.storage.store import RecordStore

logger = logging.getLogger(__name__)


def _parse_default_source(entry: dict) -> Source:
    """Convert a default source entry to a Source dataclass."""
    return Source(
        id=entry["upstream_account_id"],
        name=entry["name"],
        slot=entry["slot"],
        kind=entry.get("kind", FEED_KIND),
        handle=entry.get("handle"),
        logo_url=entry.get("logo_url"),
        upstream_account_id=entry["upstream_account_id"],
    )


@dataclass
class SourceCommandResult:
    """Outcome of add/remove with the source list as it stands afterwards."""

    success: bool
    sources: list[Source] = field(default_factory=list)
    error: str | None = None
    conflict: ConflictKind | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "sources": [s.to_dict() for s in self.sources],
        }
        if self.error is not None:
            result["error"] = self.error
        if self.conflict is not None:
            result["conflict"] = self.conflict.value
        return result


@dataclass
class InitialLoad:
    """Everything the display layer needs on startup."""

    sources: list[Source]
    records_by_source: dict[str, list[Record]]
    ticker_configs: list[TickerConfig]
    is_online: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [s.to_dict() for s in self.sources],
            "records_by_source": {
                source_id: [r.to_event_payload() for r in records]
                for source_id, records in self.records_by_source.items()
            },
            "ticker_configs": [t.to_dict() for t in self.ticker_configs],
            "is_online": self.is_online,
        }


class SourcesService:
    """Commands over the source registry and stored records.

    Wraps the RecordStore so callers get result objects instead of
    store exceptions, and seeds defaults into an empty database.
    """

    def __init__(
        self,
        store: RecordStore,
        network: NetworkMonitor | None = None,
        config: SourcesConfig | None = None,
    ) -> None:
        self._store = store
        self._network = network or NetworkMonitor()
        self._config = config or SourcesConfig()

    @property
    def store(self) -> RecordStore:
        return self._store

    # ── Seed ────────────────────────────────────────────────────

    async def ensure_seeded(self) -> tuple[int, int]:
        """Seed default sources and tickers if their tables are empty.

        Returns (sources seeded, tickers seeded).
        """
        if not self._config.seed_on_init:
            return 0, 0

        sources = [_parse_default_source(e) for e in DEFAULT_SOURCES]
        tickers = [TickerConfig(**e) for e in DEFAULT_TICKERS]
        seeded = await self._store.seed_defaults(sources, tickers)
        if any(seeded):
            logger.info("Seeded %d sources and %d tickers", *seeded)
        return seeded

    # ── Queries ─────────────────────────────────────────────────

    async def list_sources(self) -> list[Source]:
        return await self._store.list_sources()

    async def get_records_since(self, source_id: str, limit: int | None = None) -> list[Record]:
        """Most recent records for a source, newest first."""
        return await self._store.records_since(
            source_id, limit or self._config.default_records_limit
        )

    async def get_ticker_configs(self) -> list[TickerConfig]:
        return await self._store.list_ticker_configs()

    async def initial_load(self) -> InitialLoad:
        """
        Sources, recent records grouped by source, tickers and network status.

        Every source has an entry in records_by_source. If the store is
        unavailable the lists are empty and the error is logged.
        """
        try:
            sources = await self._store.list_sources()
            grouped = await self._store.records_by_source(self._config.records_per_source)
            tickers = await self._store.list_ticker_configs()
        except StoreError as e:
            logger.error("Failed to build initial load: %s", e)
            return InitialLoad(
                sources=[],
                records_by_source={},
                ticker_configs=[],
                is_online=self._network.is_online,
            )

        records_by_source = {s.id: grouped.get(s.id, []) for s in sources}
        return InitialLoad(
            sources=sources,
            records_by_source=records_by_source,
            ticker_configs=tickers,
            is_online=self._network.is_online,
        )

    async def check_network_status(self) -> bool:
        """Check connectivity now and return whether we are online."""
        return await self._network.check()

    # ── Commands ────────────────────────────────────────────────

    async def add_source(self, payload: NewSourcePayload | dict[str, Any]) -> SourceCommandResult:
        """Validate and add a feed source keyed by its upstream account id."""
        try:
            if not isinstance(payload, NewSourcePayload):
                payload = NewSourcePayload.model_validate(payload)
        except ValidationError as e:
            message = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            logger.warning("Rejected add_source payload: %s", message)
            return SourceCommandResult(
                success=False,
                sources=await self._current_sources(),
                error=message,
            )

        source = payload.to_source()
        try:
            await self._store.add_source(source)
        except ConflictError as e:
            return SourceCommandResult(
                success=False,
                sources=await self._current_sources(),
                error=str(e),
                conflict=e.kind,
            )
        except StoreError as e:
            logger.error("Failed to add source %s: %s", source.id, e)
            return SourceCommandResult(
                success=False,
                sources=await self._current_sources(),
                error=str(e),
            )

        return SourceCommandResult(success=True, sources=await self._current_sources())

    async def remove_source(self, source_id: str) -> SourceCommandResult:
        """Remove a source and its records. Removing an unknown id succeeds."""
        try:
            await self._store.remove_source(source_id)
        except StoreError as e:
            logger.error("Failed to remove source %s: %s", source_id, e)
            return SourceCommandResult(
                success=False,
                sources=await self._current_sources(),
                error=str(e),
            )

        return SourceCommandResult(success=True, sources=await self._current_sources())

    async def _current_sources(self) -> list[Source]:
        try:
            return await self._store.list_sources()
        except StoreError as e:
            logger.warning("Could not refresh source list: %s", e)
            return []
