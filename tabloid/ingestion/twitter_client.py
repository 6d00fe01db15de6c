"""
Twitter API v2 feed client.

Fetches the recent timeline of one account per call, newer than a
since_id cursor. All calls made through one client instance share a
single rolling request budget.

Handles:
- Rate limiting (1450 requests/15 min, below the 1500 cap)
- 429 reset headers and bounded exponential backoff
- Tweet expansions (author, media)
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from tabloid.config.settings import get_settings
from tabloid.ingestion.base_client import BaseFeedClient
from tabloid.ingestion.http_client import ConfigError, HTTPClient, RetryConfig
from tabloid.ingestion.rate_limit import RollingWindowLimiter
from tabloid.ingestion.schemas import (
    Author,
    EngagementMetrics,
    Media,
    MediaType,
    Record,
)

logger = logging.getLogger(__name__)

_MEDIA_TYPES = {
    "photo": MediaType.PHOTO,
    "video": MediaType.VIDEO,
    "animated_gif": MediaType.GIF,
}


def _parse_created_at(value: str) -> datetime:
    # Twitter returns e.g. "2024-05-01T12:34:56.000Z"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _upgrade_avatar(url: str | None) -> str | None:
    """Swap the 48px `_normal` avatar for the 400px variant."""
    if not url:
        return None
    return url.replace("_normal", "_400x400")


class TwitterFeedClient(BaseFeedClient):
    """
    Twitter API v2 client for per-account timelines.

    Uses GET /users/{id}/tweets with author and media expansions.

    Rate Limits:
        - 1450 requests per 15-minute window (local budget)
        - Server 429s pause every caller until the advertised reset
    """

    def __init__(
        self,
        bearer_token: str | None = None,
        base_url: str | None = None,
        max_results: int | None = None,
        limiter: RollingWindowLimiter | None = None,
        retry_config: RetryConfig | None = None,
        http_client: HTTPClient | None = None,
    ):
        """
        Initialize Twitter client.

        Args:
            bearer_token: Twitter API bearer token (or from env)
            base_url: API base URL (or from env)
            max_results: Tweets per request (5-100)
            limiter: Rolling window limiter (or built from settings)
            retry_config: Retry behavior (or built from settings)
            http_client: Pre-built HTTP client (mainly for tests)
        """
        settings = get_settings()

        self._bearer_token = bearer_token or settings.twitter_bearer_token
        self._base_url = (base_url or settings.twitter_api_base_url).rstrip("/")
        self._max_results = max_results or settings.twitter_max_results
        self._limiter = limiter or RollingWindowLimiter(
            max_requests=settings.twitter_max_requests_per_window,
            window_seconds=settings.twitter_window_seconds,
            name=self.name,
        )
        self._http = http_client or HTTPClient(
            retry_config=retry_config or RetryConfig(max_attempts=settings.http_max_attempts),
            timeout=settings.http_timeout_seconds,
        )

        if not self._bearer_token:
            logger.warning(
                "Twitter bearer token not configured. Feed polling will fail "
                "until TWITTER_BEARER_TOKEN is set."
            )

    @property
    def kind(self) -> str:
        return "twitter"

    @property
    def limiter(self) -> RollingWindowLimiter:
        return self._limiter

    def _build_params(self, since_cursor: str | None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "tweet.fields": "created_at,public_metrics,attachments,author_id",
            "expansions": "author_id,attachments.media_keys",
            "user.fields": "name,username,profile_image_url",
            "media.fields": "url,preview_image_url,type",
            "max_results": self._max_results,
        }
        if since_cursor:
            params["since_id"] = since_cursor
        return params

    async def fetch_batch(
        self,
        account_id: str,
        since_cursor: str | None = None,
    ) -> list[Record]:
        """
        Fetch tweets posted by `account_id` after `since_cursor`.

        Returns:
            Records ordered newest first (upstream order)

        Raises:
            ConfigError: Bearer token missing
            RateLimitError, TransientNetworkError, UpstreamError: see HTTPClient.get
        """
        if not self._bearer_token:
            raise ConfigError("Twitter API bearer token is not configured")

        if not self._http.is_open:
            await self._http.open()

        logger.debug(
            f"Fetching tweets for {account_id} since {since_cursor or 'start'} "
            f"(window usage {self._limiter.state.request_count}/{self._limiter.max_requests})"
        )

        response = await self._http.get(
            f"{self._base_url}/users/{account_id}/tweets",
            params=self._build_params(since_cursor),
            headers={"Authorization": f"Bearer {self._bearer_token}"},
            limiter=self._limiter,
        )

        return self.parse_response(response.json(), account_id)

    def parse_response(self, data: dict[str, Any], source_id: str) -> list[Record]:
        """
        Convert a timeline response into Records, keeping upstream order.

        Upstream `errors` and empty `data` arrays yield an empty list.
        """
        if data.get("errors") and not data.get("data"):
            messages = ", ".join(e.get("message", "?") for e in data["errors"])
            logger.warning(f"Twitter API returned errors for {source_id}: {messages}")
            return []

        tweets = data.get("data") or []
        includes = data.get("includes") or {}
        users = {u["id"]: u for u in includes.get("users", []) if "id" in u}
        media_items = {
            m["media_key"]: m for m in includes.get("media", []) if "media_key" in m
        }

        records = []
        for tweet in tweets:
            record = self._transform(tweet, users, media_items, source_id)
            if record is not None:
                records.append(record)
        return records

    def _transform(
        self,
        tweet: dict[str, Any],
        users: dict[str, dict[str, Any]],
        media_items: dict[str, dict[str, Any]],
        source_id: str,
    ) -> Record | None:
        """
        Transform a raw tweet into a Record.

        Returns None for tweets that cannot be parsed. Media keys without
        a matching expansion are skipped.
        """
        try:
            user = users.get(tweet.get("author_id"), {})
            metrics = tweet.get("public_metrics") or {}

            media = []
            for key in (tweet.get("attachments") or {}).get("media_keys") or []:
                item = media_items.get(key)
                media_type = _MEDIA_TYPES.get(item.get("type")) if item else None
                if media_type is None:
                    logger.debug(f"Skipping unresolved media {key} on tweet {tweet.get('id')}")
                    continue
                url = item.get("url") or ""
                media.append(
                    Media(
                        type=media_type,
                        url=url,
                        preview_url=item.get("preview_image_url") or url or None,
                    )
                )

            return Record(
                id=tweet["id"],
                source_id=source_id,
                author=Author(
                    name=user.get("name") or "Unknown Author",
                    handle=user.get("username") or "unknown",
                    avatar_url=_upgrade_avatar(user.get("profile_image_url")),
                ),
                content=tweet.get("text", ""),
                created_at=_parse_created_at(tweet["created_at"]),
                metrics=EngagementMetrics(
                    likes=metrics.get("like_count") or 0,
                    shares=metrics.get("retweet_count") or 0,
                ),
                media=media,
            )

        except (KeyError, ValueError, ValidationError) as e:
            logger.warning(f"Dropping malformed tweet {tweet.get('id')}: {e}")
            return None

    async def aclose(self) -> None:
        await self._http.close()
