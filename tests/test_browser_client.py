"""Tests for the Playwright event bridge (no browser is launched)."""

import asyncio

from urlsweep.clients import browser_client
from urlsweep.clients.browser_client import INIT_SCRIPT, NOTIFY_BINDING, BrowserClient, PlaywrightContext
from urlsweep.store.store import Store


class DummyPage:
    """Records evaluated scripts; location is a plain attribute."""

    def __init__(self, url):
        self.href = url
        self.evaluated = []

    async def evaluate(self, script, arg=None):
        self.evaluated.append(script)
        if "replaceState" in script:
            self.href = arg
            return None
        return self.href


class DummyScrubber:
    def __init__(self):
        self.navigations = []
        self.popstates = 0

    def on_navigate(self, transition_finished=None):
        task = asyncio.ensure_future(transition_finished)
        self.navigations.append(task)
        return task

    def on_popstate(self):
        self.popstates += 1


def test_context_reads_and_replaces_address():
    page = DummyPage("https://example.com/?fbclid=1")
    context = PlaywrightContext(page)

    async def scenario():
        before = await context.current_url()
        await context.replace_state("https://example.com/")
        return before, await context.current_url()

    assert asyncio.run(scenario()) == ("https://example.com/?fbclid=1", "https://example.com/")


def test_navigate_waits_for_navigated_event():
    context = PlaywrightContext(DummyPage("https://example.com/"), transition_timeout=5.0)
    scrubber = DummyScrubber()
    context.scrubber = scrubber

    async def scenario():
        context._on_event("navigate")
        await asyncio.sleep(0.01)
        waiting = not scrubber.navigations[0].done()
        context._on_event("navigated")
        await asyncio.wait_for(scrubber.navigations[0], timeout=1.0)
        context._on_event("popstate")
        return waiting

    assert asyncio.run(scenario()) is True
    assert scrubber.popstates == 1


def test_transition_timeout_falls_back():
    context = PlaywrightContext(DummyPage("https://example.com/"), transition_timeout=0.01)
    scrubber = DummyScrubber()
    context.scrubber = scrubber

    async def scenario():
        context._on_event("navigate")
        await asyncio.wait_for(scrubber.navigations[0], timeout=1.0)

    asyncio.run(scenario())


def test_init_script_uses_binding():
    assert NOTIFY_BINDING in INIT_SCRIPT
    assert "navigatesuccess" in INIT_SCRIPT
    assert "popstate" in INIT_SCRIPT


class DummyBrowserPage(DummyPage):
    """Enough of a Playwright page for BrowserClient.watch."""

    def __init__(self, on_goto=None):
        super().__init__("about:blank")
        self.handlers = {}
        self.on_goto = on_goto

    def set_default_timeout(self, timeout):
        self.timeout = timeout

    async def expose_function(self, name, fn):
        self.exposed = (name, fn)

    async def add_init_script(self, script):
        self.init_script = script

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def goto(self, url, wait_until=None, timeout=None):
        self.href = url
        if self.on_goto is not None:
            await self.on_goto(self)
        for handler in self.handlers.get("load", []):
            handler(self)

    def is_closed(self):
        return False


class DummyBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class DummyPlaywright:
    def __init__(self, page):
        self.browser = DummyBrowser(page)
        self.chromium = self

    async def launch(self, headless=True):
        return self.browser

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class DummyMessenger:
    """Reports removal as globally disabled."""

    def __init__(self):
        self.sent = []

    async def send(self, message):
        self.sent.append(message)
        if message["action"] == "getState":
            return {"trackers": ["utm_source"], "isAllowed": False, "isGloballyDisabled": True}
        return None


def test_watch_reconfigures_scrubber_from_store(tmp_path, monkeypatch):
    store = Store(tmp_path / "store")
    seen_listeners = []

    async def on_goto(page):
        seen_listeners.extend(store._listeners)

    page = DummyBrowserPage(on_goto)
    playwright = DummyPlaywright(page)
    monkeypatch.setattr(browser_client, "async_playwright", lambda: playwright)

    async def scenario():
        async def enable_later():
            await asyncio.sleep(0.05)
            await store.set({"isGloballyDisabled": False})

        enabler = asyncio.ensure_future(enable_later())
        final_url = await BrowserClient().watch(
            "https://example.com/?utm_source=a&id=1", DummyMessenger(), duration=0.2, store=store
        )
        await enabler
        return final_url

    final_url = asyncio.run(scenario())
    store_listeners = list(store._listeners)
    store.close()

    assert final_url == "https://example.com/?id=1"
    assert len(seen_listeners) == 1
    assert store_listeners == []
    assert playwright.browser.closed


def test_load_event_reinitializes_scrubber():
    page = DummyBrowserPage()
    context = PlaywrightContext(page)
    loads = []

    class LoadScrubber:
        def on_load(self):
            loads.append(True)

    async def scenario():
        await context.attach(LoadScrubber())
        await page.goto("https://example.com/")

    asyncio.run(scenario())
    assert loads == [True]
    assert page.exposed[0] == NOTIFY_BINDING
