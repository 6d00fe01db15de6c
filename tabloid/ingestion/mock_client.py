"""
Mock clients for testing and development.

Generates synthetic posts and prices that mimic the real upstream data.
Useful for:
- Running the engine without API credentials (`tabloid run --mock`)
- Exercising the display layer with a steady trickle of updates
"""

import random
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from tabloid.ingestion.base_client import BaseFeedClient, BasePriceClient
from tabloid.ingestion.schemas import (
    Author,
    EngagementMetrics,
    Media,
    MediaType,
    PriceQuote,
    PriceSnapshot,
    Record,
)

POST_TEMPLATES = [
    "{asset} just reclaimed a key level. Watching for follow-through.",
    "On-chain data: {asset} exchange outflows at a 3-month high.",
    "New listing incoming. {asset} trading opens at 14:00 UTC.",
    "Funding rates on {asset} perps flipped negative overnight.",
    "Weekly recap: {asset} volume up {pct}% week over week.",
    "Heads up: scheduled maintenance on {asset} withdrawals tonight.",
]

ASSETS = ["$BTC", "$ETH", "$SOL", "$ARB", "$OP", "$LINK"]

BASE_PRICES = {
    "bitcoin": 65000.0,
    "ethereum": 3200.0,
    "solana": 150.0,
}


class MockFeedClient(BaseFeedClient):
    """
    Feed client that generates synthetic posts.

    Ids increase monotonically across calls, so cursors behave the same
    way they do against the real API.
    """

    def __init__(self, max_posts_per_fetch: int = 3, kind: str = "twitter"):
        """
        Initialize mock client.

        Args:
            max_posts_per_fetch: Upper bound on posts returned per call
            kind: Source kind to serve
        """
        self._max_posts = max_posts_per_fetch
        self._kind = kind
        self._next_id = int(time.time() * 1000) << 22

    @property
    def kind(self) -> str:
        return self._kind

    async def fetch_batch(
        self,
        account_id: str,
        since_cursor: str | None = None,
    ) -> list[Record]:
        """Generate 0..max_posts new posts for `account_id`, newest first."""
        if since_cursor and since_cursor.isdigit():
            self._next_id = max(self._next_id, int(since_cursor) + 1)

        now = datetime.now(timezone.utc)
        records = []
        for _ in range(random.randint(0, self._max_posts)):
            post_id = self._next_id
            self._next_id += random.randint(1, 1000)

            media = []
            if random.random() < 0.2:
                media.append(
                    Media(
                        type=MediaType.PHOTO,
                        url=f"https://example.com/media/{post_id}.jpg",
                        preview_url=f"https://example.com/media/{post_id}_small.jpg",
                    )
                )

            records.append(
                Record(
                    id=str(post_id),
                    source_id=account_id,
                    author=Author(
                        name=f"Mock {account_id}",
                        handle=f"mock_{account_id}",
                    ),
                    content=random.choice(POST_TEMPLATES).format(
                        asset=random.choice(ASSETS),
                        pct=random.randint(5, 80),
                    ),
                    created_at=now - timedelta(seconds=random.randint(0, 50)),
                    metrics=EngagementMetrics(
                        likes=random.randint(0, 500),
                        shares=random.randint(0, 100),
                    ),
                    media=media,
                )
            )

        # Upstream order: newest (highest id) first
        records.sort(key=lambda r: int(r.id), reverse=True)
        return records


class MockPriceClient(BasePriceClient):
    """Price client that random-walks around fixed base prices."""

    def __init__(self, volatility: float = 0.002):
        self._volatility = volatility
        self._prices = dict(BASE_PRICES)

    async def fetch_prices(self, provider_ids: list[str]) -> PriceSnapshot | None:
        if not provider_ids:
            return None

        quotes = {}
        for provider_id in provider_ids:
            base = self._prices.get(provider_id, 1.0)
            price = max(0.0, base * (1 + random.uniform(-self._volatility, self._volatility)))
            self._prices[provider_id] = price
            quotes[provider_id] = PriceQuote(
                price=Decimal(str(round(price, 2))),
                change_24h=round(random.uniform(-5.0, 5.0), 2),
            )
        return PriceSnapshot(quotes=quotes)
