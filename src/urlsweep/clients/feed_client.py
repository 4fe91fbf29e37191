"""HTTP client for the upstream tracking-parameter feed."""

import httpx
from typing import Any, Dict, Optional, Set

from ..config import HTTP_TIMEOUT, UPSTREAM_DATA_URL, USER_AGENT
from ..engine.extractor import extract_parameters, parse_feed
from ..errors import FetchFailure, ParseFailure
from ..logging import get_logger

logger = get_logger(__name__)


class FeedClient:
    """Client for fetching the upstream provider rules."""

    def __init__(self, url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.url = url or UPSTREAM_DATA_URL
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=HTTP_TIMEOUT,
            follow_redirects=True,
        )

    async def fetch_feed(self) -> Dict[str, Any]:
        """
        Fetch and validate the upstream feed.

        Returns:
            Providers mapping of the feed

        Raises:
            FetchFailure: on transport error or non-success status
            ParseFailure: on malformed JSON or unexpected shape
        """
        try:
            response = await self.client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchFailure(f"HTTP error! status: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchFailure(f"Request to {self.url} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ParseFailure(f"Feed is not valid JSON: {e}") from e

        return parse_feed(payload)

    async def fetch_parameters(self) -> Set[str]:
        """Fetch the feed and extract its parameter names."""
        providers = await self.fetch_feed()
        params = extract_parameters(providers)
        logger.info(f"Fetched {len(params)} parameters from {self.url}")
        return params

    async def aclose(self) -> None:
        await self.client.aclose()
