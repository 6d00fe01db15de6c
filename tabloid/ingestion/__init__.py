"""Upstream clients - rate limiting, HTTP retries, schemas."""

from tabloid.ingestion.schemas import (
    Author,
    EngagementMetrics,
    Media,
    MediaType,
    PriceQuote,
    PriceSnapshot,
    Record,
)

__all__ = [
    "Author",
    "EngagementMetrics",
    "Media",
    "MediaType",
    "PriceQuote",
    "PriceSnapshot",
    "Record",
]
