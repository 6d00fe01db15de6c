"""Shared fixtures for sources tests."""

from datetime import datetime, timezone

import pytest

from tabloid.sources.schemas import Source


@pytest.fixture
def sample_source() -> Source:
    """A sample Source for testing."""
    return Source(
        id="3437070832",
        name="Coinbase",
        slot=0,
        handle="coinbase",
        logo_url="https://pbs.twimg.com/profile_images/1/logo_400x400.jpg",
        upstream_account_id="3437070832",
    )


@pytest.fixture
def sample_db_row() -> dict:
    """A dict mimicking an asyncpg Record for a source."""
    return {
        "id": "3437070832",
        "name": "Coinbase",
        "handle": "coinbase",
        "kind": "twitter",
        "slot": 0,
        "logo_url": None,
        "upstream_account_id": "3437070832",
        "last_record_id": "1790000000000000003",
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }


@pytest.fixture
def sample_news_row(sample_db_row) -> dict:
    """A non-feed source row (no upstream account)."""
    return {
        **sample_db_row,
        "id": "news-desk",
        "name": "News Desk",
        "handle": None,
        "kind": "news",
        "slot": 5,
        "upstream_account_id": None,
        "last_record_id": None,
    }
