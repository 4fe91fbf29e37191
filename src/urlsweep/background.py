"""Background coordination context: rule synchronization, stats and page messages."""

import asyncio
from typing import Any, Dict, Optional

from .clients.feed_client import FeedClient
from .config import REFRESH_ALARM_NAME, REFRESH_PERIOD_MINUTES
from .engine.compiler import merge_trackers
from .engine.models import SyncResult
from .engine.redirects import RedirectObserver
from .engine.ruleset import MemoryRuleSink, RuleSink
from .engine.stats import StatsAggregator
from .engine.sync import SyncOrchestrator
from .errors import MessagingUnavailable
from .logging import get_logger
from .settings import Settings
from .store.store import ALLOWLIST, CUSTOM_TRACKERS, GLOBALLY_DISABLED, STATS, UPSTREAM_PARAMS, Store

logger = get_logger(__name__)

GET_STATE = "getState"
RECORD_STATS = "recordStats"


class Background:
    """Owns the orchestrator and the stats ledger, and answers page contexts."""

    def __init__(
        self,
        store: Store,
        sink: Optional[RuleSink] = None,
        feed_client: Optional[FeedClient] = None,
    ):
        self.store = store
        self.sink = sink or MemoryRuleSink()
        self.orchestrator = SyncOrchestrator(store, self.sink, feed_client)
        self.stats = StatsAggregator(store)
        self.redirects = RedirectObserver(self.stats)
        self.settings = Settings(store, self.stats)
        self._attached = False

    def attach(self) -> None:
        """Start listening for storage changes that require resynchronization."""
        if not self._attached:
            self.store.subscribe(self.orchestrator.on_storage_changed)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self.store.unsubscribe(self.orchestrator.on_storage_changed)
            self._attached = False

    async def start(self) -> SyncResult:
        """Run the install trigger on a store never set up before, the startup trigger otherwise."""
        data = await self.store.get([ALLOWLIST, CUSTOM_TRACKERS, STATS])
        if not data:
            logger.info("Empty store, running first-install setup")
            return await self.orchestrator.on_installed()
        return await self.orchestrator.on_startup()

    async def aclose(self) -> None:
        self.detach()
        await self.orchestrator.feed_client.aclose()

    async def get_state(self, domain: Optional[str]) -> Dict[str, Any]:
        data = await self.store.get([UPSTREAM_PARAMS, CUSTOM_TRACKERS, ALLOWLIST, GLOBALLY_DISABLED])
        return {
            "trackers": merge_trackers(data.get(UPSTREAM_PARAMS) or [], data.get(CUSTOM_TRACKERS) or []),
            "isAllowed": domain in (data.get(ALLOWLIST) or []),
            "isGloballyDisabled": bool(data.get(GLOBALLY_DISABLED, False)),
        }

    async def handle_message(self, request: Dict[str, Any]) -> Any:
        """
        Answer a message from a page context.

        Raises:
            ValueError: for unknown actions
        """
        action = request.get("action")
        if action == GET_STATE:
            return await self.get_state(request.get("domain"))
        if action == RECORD_STATS:
            await self.stats.record(request.get("domain"), int(request.get("count") or 0), 0)
            return None
        raise ValueError(f"Unknown action: {action!r}")

    async def run_alarm(self, stop: asyncio.Event, period_minutes: float = REFRESH_PERIOD_MINUTES) -> None:
        """Fire the refresh alarm every period until stop is set."""
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=period_minutes * 60)
            except asyncio.TimeoutError:
                await self.orchestrator.on_alarm(REFRESH_ALARM_NAME)


class LocalMessenger:
    """In-process channel from a page context to a Background."""

    def __init__(self, background: Optional[Background] = None):
        self.background = background

    def connect(self, background: Background) -> None:
        self.background = background

    async def send(self, message: Dict[str, Any]) -> Any:
        if self.background is None:
            raise MessagingUnavailable("Background context is not connected")
        return await self.background.handle_message(message)
