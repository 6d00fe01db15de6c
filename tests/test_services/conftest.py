"""In-memory fakes for scheduler tests."""

import asyncio
from datetime import datetime

import pytest

from tabloid.ingestion.base_client import BaseFeedClient, BasePriceClient
from tabloid.ingestion.schemas import PriceSnapshot, Record
from tabloid.services.events import EventChannel
from tabloid.services.network import NetworkMonitor
from tabloid.sources.schemas import Source, TickerConfig
from tabloid.storage.errors import PersistenceError


class FakeStore:
    """Dict-backed stand-in for RecordStore with the same async surface."""

    def __init__(self, sources=None, tickers=None):
        self.sources: dict[str, Source] = {s.id: s for s in sources or []}
        self.tickers: list[TickerConfig] = list(tickers or [])
        self.records: dict[str, Record] = {}
        self.fail_store_batch = False
        self.fail_list_sources = False
        self.fail_delete = False
        # Raised as-is, for driver errors that escape the store wrapper
        self.store_batch_errors: dict[str, Exception] = {}
        self.delete_error: Exception | None = None
        self.cutoffs: list[datetime] = []

    async def list_sources(self) -> list[Source]:
        if self.fail_list_sources:
            raise PersistenceError("list_sources failed")
        return sorted(self.sources.values(), key=lambda s: s.slot)

    async def list_ticker_configs(self) -> list[TickerConfig]:
        return sorted(self.tickers, key=lambda t: t.display_order)

    async def store_batch(self, source_id: str, records: list[Record]) -> int:
        if self.fail_store_batch:
            raise PersistenceError("store_batch failed")
        if source_id in self.store_batch_errors:
            raise self.store_batch_errors[source_id]
        inserted = 0
        for record in records:
            if record.id not in self.records:
                self.records[record.id] = record
                inserted += 1
        if records:
            self.sources[source_id].cursor = records[0].id
        return inserted

    async def delete_older_than(self, cutoff: datetime) -> int:
        self.cutoffs.append(cutoff)
        if self.fail_delete:
            raise PersistenceError("delete_older_than failed")
        if self.delete_error is not None:
            raise self.delete_error
        stale = [rid for rid, r in self.records.items() if r.created_at < cutoff]
        for rid in stale:
            del self.records[rid]
        return len(stale)


class FakeFeedClient(BaseFeedClient):
    """Serves queued responses per account id. An Exception entry is raised."""

    def __init__(self):
        self.responses: dict[str, list] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.gate: asyncio.Event | None = None

    @property
    def kind(self) -> str:
        return "twitter"

    def queue(self, account_id: str, *responses) -> None:
        self.responses.setdefault(account_id, []).extend(responses)

    async def fetch_batch(self, account_id, since_cursor=None):
        self.calls.append((account_id, since_cursor))
        if self.gate is not None:
            await self.gate.wait()
        pending = self.responses.get(account_id)
        response = pending.pop(0) if pending else []
        if isinstance(response, Exception):
            raise response
        return list(response)


class FakePriceClient(BasePriceClient):
    def __init__(self):
        self.responses: list[PriceSnapshot | None] = []
        self.calls: list[list[str]] = []

    async def fetch_prices(self, provider_ids):
        self.calls.append(list(provider_ids))
        return self.responses.pop(0) if self.responses else None


@pytest.fixture
def feed_source() -> Source:
    return Source(
        id="3437070832",
        name="Coinbase",
        slot=0,
        handle="coinbase",
        upstream_account_id="3437070832",
        cursor="100",
    )


@pytest.fixture
def second_source() -> Source:
    return Source(
        id="902926941413453824",
        name="CZ",
        slot=1,
        handle="cz_binance",
        upstream_account_id="902926941413453824",
    )


@pytest.fixture
def fake_store(feed_source, second_source) -> FakeStore:
    return FakeStore(
        sources=[feed_source, second_source],
        tickers=[
            TickerConfig(id="bitcoin", symbol="BTC", name="Bitcoin", display_order=0),
            TickerConfig(id="ethereum", symbol="ETH", name="Ethereum", display_order=1),
        ],
    )


@pytest.fixture
def feed_client() -> FakeFeedClient:
    return FakeFeedClient()


@pytest.fixture
def price_client() -> FakePriceClient:
    return FakePriceClient()


@pytest.fixture
def channel() -> EventChannel:
    return EventChannel(max_pending=100)


@pytest.fixture
def network() -> NetworkMonitor:
    return NetworkMonitor(check_url="https://connectivity.test/", initial=True)
