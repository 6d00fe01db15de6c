"""Sources: the durable registry of feed sources and price tickers."""

from tabloid.sources.config import SourcesConfig
from tabloid.sources.repository import SourcesRepository, TickerRepository
from tabloid.sources.schemas import NewSourcePayload, Source, TickerConfig

__all__ = [
    "NewSourcePayload",
    "Source",
    "SourcesConfig",
    "SourcesRepository",
    "TickerConfig",
    "TickerRepository",
]
