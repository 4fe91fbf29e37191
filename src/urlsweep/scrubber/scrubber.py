"""Client-side scrubber for addresses rewritten by single-page applications.

SPAs change the address through the History API without a request, so the
network rules never see those parameters. Changes are detected from three
independent sources (a poll, navigation events and popstate events) which all
call the same idempotent cleaning operation; redundant triggers are harmless.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Dict, Optional, Protocol, Set
from urllib.parse import urlsplit

from ..background import GET_STATE, RECORD_STATS
from ..config import ALWAYS_EXEMPT_DOMAINS, NAVIGATE_FALLBACK_DELAY, POLL_INTERVAL, POPSTATE_DELAY
from ..errors import InvalidURL, MessagingUnavailable
from ..logging import get_logger
from ..store.store import ALLOWLIST, CUSTOM_TRACKERS, GLOBALLY_DISABLED, NAMESPACE, UPSTREAM_PARAMS, StorageChange
from .cleaner import clean_url

logger = get_logger(__name__)


class BrowsingContext(Protocol):
    """The page whose address is scrubbed."""

    async def current_url(self) -> str:
        ...

    async def replace_state(self, url: str) -> None:
        """Replace the address without navigating or reloading."""
        ...


class Messenger(Protocol):
    async def send(self, message: Dict[str, Any]) -> Any:
        ...


class ScrubberState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


def hostname_of(url: str) -> str:
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def is_always_exempt(hostname: str) -> bool:
    return any(domain in hostname for domain in ALWAYS_EXEMPT_DOMAINS)


class ClientScrubber:
    """One scrubber per browsing context."""

    def __init__(
        self,
        context: BrowsingContext,
        messenger: Messenger,
        poll_interval: float = POLL_INTERVAL,
        navigate_delay: float = NAVIGATE_FALLBACK_DELAY,
        popstate_delay: float = POPSTATE_DELAY,
    ):
        self.context = context
        self.messenger = messenger
        self.poll_interval = poll_interval
        self.navigate_delay = navigate_delay
        self.popstate_delay = popstate_delay

        self.state = ScrubberState.UNINITIALIZED
        self.trackers: frozenset = frozenset()
        self.is_globally_disabled = False
        self.is_allowed = False
        # Hostname the current trackers and flags were resolved for
        self.hostname: Optional[str] = None
        self.last_checked_url: Optional[str] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def ready(self) -> bool:
        return self.state is ScrubberState.READY

    def reset(self) -> None:
        """Forget the resolved state; nothing is cleaned until initialize() succeeds again."""
        self.state = ScrubberState.UNINITIALIZED
        self.hostname = None
        self.is_allowed = False
        self.trackers = frozenset()

    def on_load(self) -> asyncio.Task:
        """A new document was loaded into the context."""
        self.reset()
        self.last_checked_url = None
        return self._spawn(self.initialize())

    async def initialize(self) -> bool:
        """
        Resolve trackers and flags for the current page.

        Returns:
            True once the scrubber is READY
        """
        href = await self.context.current_url()
        if self.last_checked_url is None:
            self.last_checked_url = href
        domain = hostname_of(href)

        if is_always_exempt(domain):
            self.is_allowed = True
            self.hostname = domain
            self.state = ScrubberState.READY
            return True

        try:
            response = await self.messenger.send({"action": GET_STATE, "domain": domain})
        except MessagingUnavailable:
            logger.debug("Could not fetch initial state.")
            return False

        if not response:
            return False

        self.is_globally_disabled = bool(response.get("isGloballyDisabled"))
        self.is_allowed = bool(response.get("isAllowed"))
        self.trackers = frozenset(response.get("trackers") or [])
        self.hostname = domain
        self.state = ScrubberState.READY

        await self.clean_current_url()
        return True

    async def clean_current_url(self) -> int:
        """
        Strip tracking parameters from the current address in place.

        Returns:
            Number of parameters removed (0 when nothing changed)
        """
        if not self.ready:
            return 0

        href = await self.context.current_url()
        if hostname_of(href) != self.hostname:
            # Flags belong to the previous host; resolve them again before touching the address
            self.reset()
            await self.initialize()
            return 0
        if self.is_globally_disabled or self.is_allowed or not self.trackers:
            return 0

        try:
            result = clean_url(href, self.trackers)
        except InvalidURL:
            return 0

        if not result.changed:
            return 0

        await self.context.replace_state(result.url)
        self.last_checked_url = result.url
        logger.debug(f"Removed {result.removed} parameters from {href}")

        await self._report(hostname_of(result.url), result.removed)
        return result.removed

    async def _report(self, domain: str, count: int) -> None:
        try:
            await self.messenger.send({"action": RECORD_STATS, "domain": domain, "count": count})
        except MessagingUnavailable:
            logger.debug("Could not report stats, background unavailable.")

    async def check_for_change(self) -> bool:
        """Poll tick: clean if the address differs from the last one seen."""
        href = await self.context.current_url()
        if href == self.last_checked_url:
            return False
        self.last_checked_url = href
        await self.clean_current_url()
        return True

    async def poll(self, stop: asyncio.Event) -> None:
        """Run the fixed-interval poll until stop is set."""
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                await self.check_for_change()

    def on_navigate(self, transition_finished: Optional[Awaitable[Any]] = None) -> asyncio.Task:
        """
        Navigation event: clean once the route transition has finished.

        Args:
            transition_finished: Awaitable resolved when the framework has
                written its history entry; a fixed delay is used without one
        """
        async def deferred() -> None:
            if transition_finished is None:
                await asyncio.sleep(self.navigate_delay)
            else:
                try:
                    await transition_finished
                except Exception as e:
                    # Aborted transitions still leave an address to check
                    logger.debug(f"Route transition did not complete: {e}")
            await self.clean_current_url()

        return self._spawn(deferred())

    def on_popstate(self) -> asyncio.Task:
        async def deferred() -> None:
            await asyncio.sleep(self.popstate_delay)
            await self.clean_current_url()

        return self._spawn(deferred())

    async def on_storage_changed(self, changes: Dict[str, StorageChange], namespace: str) -> None:
        """Apply live settings changes."""
        if namespace != NAMESPACE:
            return

        if GLOBALLY_DISABLED in changes:
            self.is_globally_disabled = bool(changes[GLOBALLY_DISABLED].new_value)
        if ALLOWLIST in changes:
            domain = hostname_of(await self.context.current_url())
            self.is_allowed = is_always_exempt(domain) or domain in (changes[ALLOWLIST].new_value or [])

        if UPSTREAM_PARAMS in changes or CUSTOM_TRACKERS in changes:
            # Full re-init so trackers are never a partial merge
            await self.initialize()
        else:
            await self.clean_current_url()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def settle(self) -> None:
        """Wait for every deferred clean scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
