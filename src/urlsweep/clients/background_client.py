"""HTTP messenger from a page context to the background API."""

import httpx
from typing import Any, Dict, Optional

from ..config import BACKGROUND_URL, HTTP_TIMEOUT
from ..errors import MessagingUnavailable
from ..logging import get_logger

logger = get_logger(__name__)


class BackgroundClient:
    """Sends getState / recordStats messages to the background context over HTTP."""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url or BACKGROUND_URL
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=HTTP_TIMEOUT)

    async def send(self, message: Dict[str, Any]) -> Any:
        """
        Send one message and return the background's reply.

        Raises:
            MessagingUnavailable: if the background is not reachable
        """
        try:
            response = await self.client.post("/messages", json=message)
        except httpx.TransportError as e:
            raise MessagingUnavailable(f"Background at {self.base_url} unreachable: {e}") from e

        if response.status_code == 503:
            raise MessagingUnavailable("Background context is not ready")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Background API error: {e.response.status_code} - {e.response.text}")
            raise

        return response.json().get("response")

    async def aclose(self) -> None:
        await self.client.aclose()
