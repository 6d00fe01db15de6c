"""Data models for the source registry."""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

FEED_KIND = "twitter"


@dataclass
class Source:
    """A configured feed source shown in one display slot.

    `cursor` is the newest upstream record id already stored for this
    source; fetches ask only for records after it.
    """

    id: str
    name: str
    slot: int
    kind: str = FEED_KIND
    handle: str | None = None
    logo_url: str | None = None
    upstream_account_id: str | None = None
    cursor: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pollable(self) -> bool:
        return self.kind == FEED_KIND and bool(self.upstream_account_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "handle": self.handle,
            "kind": self.kind,
            "slot": self.slot,
            "logo_url": self.logo_url,
            "upstream_account_id": self.upstream_account_id,
            "cursor": self.cursor,
        }


@dataclass
class TickerConfig:
    """A tracked price ticker. `id` is the price provider's coin id."""

    id: str
    symbol: str
    display_order: int
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.symbol.upper()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "display_name": self.display_name,
            "display_order": self.display_order,
        }


class NewSourcePayload(BaseModel):
    """Inbound request to add a feed source."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    upstream_account_id: str = Field(..., min_length=1, pattern=r"^\d+$")
    slot: int = Field(..., ge=0)
    handle: str | None = None
    logo_url: str | None = None

    @field_validator("handle")
    @classmethod
    def strip_handle(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.lstrip("@") or None

    def to_source(self) -> Source:
        # Feed sources are keyed by their upstream account id
        return Source(
            id=self.upstream_account_id,
            name=self.name,
            slot=self.slot,
            kind=FEED_KIND,
            handle=self.handle,
            logo_url=self.logo_url,
            upstream_account_id=self.upstream_account_id,
        )
