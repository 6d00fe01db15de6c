"""
Base client interfaces for upstream sources.

A feed client returns posts for one upstream account, newest first. A
price client returns a snapshot of quotes, or None when nothing could be
fetched. The scheduler only depends on these interfaces, so real and
mock clients are interchangeable.
"""

from abc import ABC, abstractmethod

from tabloid.ingestion.schemas import PriceSnapshot, Record


class BaseFeedClient(ABC):
    """
    Abstract base class for feed clients.

    Subclasses must implement:
        - kind: Source kind this client serves (matches Source.kind)
        - fetch_batch(): Fetch posts newer than a cursor

    fetch_batch() raises ClientError subclasses on failure; an upstream
    "no results" answer is an empty list, not an error.
    """

    @property
    @abstractmethod
    def kind(self) -> str:
        """Source kind handled by this client."""
        ...

    @property
    def name(self) -> str:
        """Human-readable client name."""
        return f"{self.kind}_client"

    @abstractmethod
    async def fetch_batch(
        self,
        account_id: str,
        since_cursor: str | None = None,
    ) -> list[Record]:
        """
        Fetch posts for `account_id` newer than `since_cursor`.

        Returns:
            Records ordered newest first, owned by `account_id`
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        return None


class BasePriceClient(ABC):
    """Abstract base class for price clients. Never raises from fetch_prices()."""

    @abstractmethod
    async def fetch_prices(self, provider_ids: list[str]) -> PriceSnapshot | None:
        """
        Fetch quotes for the given provider ids.

        Returns:
            Snapshot of quotes, or None on failure / no data
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        return None
