"""Playwright browser client running the client scrubber inside a real page."""

import asyncio
from typing import List, Optional
from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError, async_playwright

from ..config import BROWSER_HEADLESS, BROWSER_TIMEOUT, TRANSITION_TIMEOUT
from ..logging import get_logger
from ..scrubber.scrubber import ClientScrubber, Messenger
from ..store.store import Store

logger = get_logger(__name__)

NOTIFY_BINDING = "__urlsweepNotify"

# Forwards navigation lifecycle and popstate events to Python
INIT_SCRIPT = """
(() => {
  const notify = (kind) => {
    if (window.%(binding)s) window.%(binding)s(kind);
  };
  if (window.navigation) {
    window.navigation.addEventListener("navigate", () => notify("navigate"));
    window.navigation.addEventListener("navigatesuccess", () => notify("navigated"));
    window.navigation.addEventListener("navigateerror", () => notify("navigated"));
  }
  window.addEventListener("popstate", () => notify("popstate"));
})();
""" % {"binding": NOTIFY_BINDING}


class PlaywrightContext:
    """BrowsingContext backed by a Playwright page."""

    def __init__(self, page: Page, transition_timeout: float = TRANSITION_TIMEOUT):
        self.page = page
        self.transition_timeout = transition_timeout
        self.scrubber: Optional[ClientScrubber] = None
        self._transitions: List[asyncio.Future] = []

    async def current_url(self) -> str:
        return await self.page.evaluate("() => window.location.href")

    async def replace_state(self, url: str) -> None:
        await self.page.evaluate("(url) => window.history.replaceState(window.history.state, '', url)", url)

    async def attach(self, scrubber: ClientScrubber) -> None:
        """Install the event bridge; must run before the first navigation."""
        self.scrubber = scrubber
        await self.page.expose_function(NOTIFY_BINDING, self._on_event)
        await self.page.add_init_script(INIT_SCRIPT)
        self.page.on("load", lambda _page: scrubber.on_load())

    async def _wait_transition(self, future: asyncio.Future) -> None:
        try:
            await asyncio.wait_for(future, timeout=self.transition_timeout)
        except asyncio.TimeoutError:
            logger.debug("Route transition did not settle in time")

    def _on_event(self, kind: str) -> None:
        if self.scrubber is None:
            return
        if kind == "navigate":
            future = asyncio.get_running_loop().create_future()
            self._transitions.append(future)
            self.scrubber.on_navigate(self._wait_transition(future))
        elif kind == "navigated":
            pending, self._transitions = self._transitions, []
            for future in pending:
                if not future.done():
                    future.set_result(None)
        elif kind == "popstate":
            self.scrubber.on_popstate()


class BrowserClient:
    """Opens pages in Chromium with a scrubber attached."""

    def __init__(self, headless: bool = BROWSER_HEADLESS):
        self.headless = headless

    async def watch(
        self,
        url: str,
        messenger: Messenger,
        duration: Optional[float] = None,
        store: Optional[Store] = None,
    ) -> str:
        """
        Open url and scrub its address until the page closes or duration elapses.

        Args:
            url: Page to open
            messenger: Channel to the background context
            duration: Seconds to keep watching (None: until the page is closed)
            store: Settings store; its changes reconfigure the scrubber live

        Returns:
            The page address when watching stopped
        """
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=self.headless)
            scrubber: Optional[ClientScrubber] = None
            try:
                page = await browser.new_page()
                page.set_default_timeout(BROWSER_TIMEOUT)
                context = PlaywrightContext(page)
                scrubber = ClientScrubber(context, messenger)
                await context.attach(scrubber)
                if store is not None:
                    store.subscribe(scrubber.on_storage_changed)

                try:
                    await page.goto(url, wait_until="load", timeout=BROWSER_TIMEOUT)
                except PlaywrightTimeoutError:
                    logger.warning(f"Page load timeout for {url}, scrubbing partial page")

                stop = asyncio.Event()
                poller = asyncio.ensure_future(scrubber.poll(stop))
                try:
                    if duration is None:
                        await page.wait_for_event("close", timeout=0)
                    else:
                        await asyncio.sleep(duration)
                finally:
                    stop.set()
                    await poller
                    await scrubber.settle()

                final_url = page.url if page.is_closed() else await context.current_url()
                logger.info(f"Stopped watching {url} at {final_url}")
                return final_url
            finally:
                if store is not None and scrubber is not None:
                    store.unsubscribe(scrubber.on_storage_changed)
                await browser.close()
