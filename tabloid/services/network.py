"""
Connectivity tracking.

Status is inferred from poll outcomes and can be confirmed on demand
with a lightweight HTTP request.
"""

import httpx
import structlog

from tabloid.config.settings import get_settings
from tabloid.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class NetworkMonitor:
    """
    Holds the last observed online/offline status.

    Usage:
        monitor = NetworkMonitor()
        if monitor.update(False):
            channel.publish(NetworkStatusEvent(is_online=False))
    """

    def __init__(
        self,
        check_url: str | None = None,
        timeout: float = 5.0,
        initial: bool = True,
    ):
        """
        Initialize monitor.

        Args:
            check_url: URL requested by check() (default from settings)
            timeout: Check timeout in seconds
            initial: Status assumed before the first observation
        """
        self._check_url = check_url or get_settings().network_check_url
        self._timeout = timeout
        self._is_online = initial
        get_metrics().set_network_online(initial)

    @property
    def is_online(self) -> bool:
        return self._is_online

    def update(self, is_online: bool) -> bool:
        """
        Record an observed status.

        Returns:
            True if the status changed
        """
        changed = is_online != self._is_online
        self._is_online = is_online
        if changed:
            get_metrics().set_network_online(is_online)
            logger.info("Network status changed", is_online=is_online)
        return changed

    async def check(self) -> bool:
        """Request the check URL and record the result. Any HTTP response counts as online."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                await client.get(self._check_url)
            online = True
        except httpx.HTTPError as e:
            logger.debug("Network check failed", url=self._check_url, error=str(e))
            online = False

        self.update(online)
        return online
