"""
Record and price schemas shared by the clients, the store and the scheduler.

Records are immutable once fetched. Field names are the contract with the
display layer, so keep them stable.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class MediaType(str, Enum):
    """Kinds of media attached to a post."""

    PHOTO = "photo"
    VIDEO = "video"
    GIF = "gif"


class Media(BaseModel):
    """A single media attachment."""

    model_config = ConfigDict(frozen=True)

    type: MediaType
    url: str = ""
    preview_url: str | None = None


class Author(BaseModel):
    """Author descriptor as shown next to a post."""

    model_config = ConfigDict(frozen=True)

    name: str = "Unknown Author"
    handle: str = "unknown"
    avatar_url: str | None = None


class EngagementMetrics(BaseModel):
    """Like and share counters reported upstream."""

    model_config = ConfigDict(frozen=True)

    likes: int = Field(default=0, ge=0, description="Likes or favorites")
    shares: int = Field(default=0, ge=0, description="Retweets or reposts")


class Record(BaseModel):
    """
    A fetched post.

    `id` is assigned upstream and is globally unique. `created_at` is the
    authoritative upstream creation time and drives retention.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Upstream post id")
    source_id: str = Field(..., description="Owning source id")
    author: Author = Field(default_factory=Author)
    content: str = ""
    created_at: datetime = Field(..., description="UTC creation time upstream")
    fetched_at: datetime = Field(default_factory=_utc_now)
    metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    media: list[Media] = Field(default_factory=list)

    @field_validator("created_at", "fetched_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are treated as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def for_source(self, source_id: str) -> "Record":
        """Return a copy owned by `source_id`."""
        if source_id == self.source_id:
            return self
        return self.model_copy(update={"source_id": source_id})

    def to_event_payload(self) -> dict[str, Any]:
        """Serialize for the event channel (JSON-safe)."""
        return self.model_dump(mode="json")


class PriceQuote(BaseModel):
    """Current price and 24h change for one asset."""

    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(..., ge=0)
    change_24h: float | None = None


class PriceSnapshot(BaseModel):
    """
    Latest known quotes keyed by upstream provider id.

    Held in memory only. New polls are merged in with `merge()`, which
    never drops existing entries.
    """

    quotes: dict[str, PriceQuote] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.quotes)

    def __bool__(self) -> bool:
        return bool(self.quotes)

    def merge(self, other: "PriceSnapshot | None") -> "PriceSnapshot":
        """Return a new snapshot with `other`'s quotes layered on top."""
        if not other:
            return PriceSnapshot(quotes=dict(self.quotes))
        return PriceSnapshot(quotes={**self.quotes, **other.quotes})

    @classmethod
    def from_provider_payload(
        cls,
        payload: dict[str, Any],
        vs_currency: str = "usd",
    ) -> "PriceSnapshot":
        """
        Build a snapshot from a `/simple/price` style response.

        Entries without a price for `vs_currency` are skipped.
        """
        change_key = f"{vs_currency}_24h_change"
        quotes: dict[str, PriceQuote] = {}
        for provider_id, values in payload.items():
            if not isinstance(values, dict) or values.get(vs_currency) is None:
                continue
            quotes[provider_id] = PriceQuote(
                price=Decimal(str(values[vs_currency])),
                change_24h=values.get(change_key),
            )
        return cls(quotes=quotes)

    def to_event_payload(self, vs_currency: str = "usd") -> dict[str, dict[str, Any]]:
        """Serialize in the provider's shape: id -> {usd, usd_24h_change}."""
        return {
            provider_id: {
                vs_currency: float(quote.price),
                f"{vs_currency}_24h_change": quote.change_24h,
            }
            for provider_id, quote in self.quotes.items()
        }
