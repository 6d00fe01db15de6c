"""
CoinGecko price client.

Fetches spot prices and 24h change for a list of CoinGecko coin ids in a
single request. Price updates are best-effort: any failure is logged and
reported as "no update" so the scheduler keeps the last known quotes.
"""

import logging

from tabloid.config.settings import get_settings
from tabloid.ingestion.base_client import BasePriceClient
from tabloid.ingestion.http_client import ClientError, HTTPClient, RetryConfig
from tabloid.ingestion.schemas import PriceSnapshot

logger = logging.getLogger(__name__)


class CoinGeckoPriceClient(BasePriceClient):
    """Client for the CoinGecko /simple/price endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        vs_currency: str | None = None,
        http_client: HTTPClient | None = None,
    ):
        settings = get_settings()

        self._base_url = (base_url or settings.coingecko_api_base_url).rstrip("/")
        self._api_key = api_key or settings.coingecko_api_key
        self._vs_currency = vs_currency or settings.price_vs_currency
        # Single attempt: a missed price tick is picked up by the next poll
        self._http = http_client or HTTPClient(
            retry_config=RetryConfig(max_attempts=1),
            timeout=settings.http_timeout_seconds,
        )

    @property
    def vs_currency(self) -> str:
        return self._vs_currency

    async def fetch_prices(self, provider_ids: list[str]) -> PriceSnapshot | None:
        """
        Fetch quotes for `provider_ids` (e.g. ["bitcoin", "ethereum"]).

        Returns:
            PriceSnapshot with one quote per priced id, or None on failure,
            empty input, or an empty response
        """
        if not provider_ids:
            return None

        params = {
            "ids": ",".join(provider_ids),
            "vs_currencies": self._vs_currency,
            "include_24hr_change": "true",
        }
        headers = {"x-cg-demo-api-key": self._api_key} if self._api_key else None

        try:
            if not self._http.is_open:
                await self._http.open()
            response = await self._http.get(
                f"{self._base_url}/simple/price",
                params=params,
                headers=headers,
            )
            payload = response.json()
        except ClientError as e:
            logger.error(f"CoinGecko request failed: {e}")
            return None
        except ValueError as e:
            logger.error(f"CoinGecko returned an unreadable payload: {e}")
            return None

        if not isinstance(payload, dict):
            logger.error(f"CoinGecko returned unexpected payload type {type(payload).__name__}")
            return None

        try:
            snapshot = PriceSnapshot.from_provider_payload(payload, self._vs_currency)
        except (ValueError, ArithmeticError) as e:
            logger.error(f"CoinGecko returned invalid quotes: {e}")
            return None

        if not snapshot:
            logger.info("CoinGecko returned no prices")
            return None
        return snapshot

    async def aclose(self) -> None:
        await self._http.close()
