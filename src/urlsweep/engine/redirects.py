"""Attribute observed redirects to the removal rules.

The interception host does not tag redirects caused by our rules, so a
redirect is counted when host and path are unchanged and the query lost keys.
This is a best-effort classifier, not a guarantee.
"""

from urllib.parse import parse_qsl, urlsplit

from ..logging import get_logger
from .stats import StatsAggregator

logger = get_logger(__name__)


def _query_keys(query: str) -> list:
    return [key for key, _ in parse_qsl(query, keep_blank_values=True)]


def removed_by_redirect(url: str, redirect_url: str) -> int:
    """
    Number of query parameters a redirect stripped, or 0 if it does not look like ours.
    """
    try:
        original = urlsplit(url)
        redirected = urlsplit(redirect_url)
        if original.hostname != redirected.hostname or original.path != redirected.path:
            return 0
        removed = len(_query_keys(original.query)) - len(_query_keys(redirected.query))
    except ValueError:
        return 0
    return max(removed, 0)


class RedirectObserver:
    """Feeds request and redirect notifications into the stats ledger."""

    def __init__(self, stats: StatsAggregator):
        self.stats = stats

    async def on_before_request(self) -> None:
        await self.stats.record(None, 0, 1)

    async def on_before_redirect(self, url: str, redirect_url: str) -> int:
        removed = removed_by_redirect(url, redirect_url)
        if removed > 0:
            hostname = urlsplit(url).hostname
            logger.debug(f"Redirect stripped {removed} parameters on {hostname}")
            await self.stats.record(hostname, removed, 0)
        return removed
