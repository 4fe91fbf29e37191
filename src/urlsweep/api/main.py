"""FastAPI surface of the background coordination context."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException

from ..background import Background
from ..config import RULES_OUT
from ..engine.ruleset import JsonRuleSink, MemoryRuleSink
from ..errors import InvalidURL
from ..logging import get_logger, setup_logging
from ..scrubber.cleaner import purify
from ..settings import normalize_domain
from ..store.store import Store
from .models import (
    DomainRequest,
    GlobalToggleRequest,
    HealthResponse,
    MessageRequest,
    MessageResponse,
    ParametersAddedResponse,
    ParametersRequest,
    PurifyRequest,
    PurifyResponse,
    RecordStatsRequest,
    RedirectRequest,
    RedirectResponse,
    SettingsResponse,
    StateResponse,
    StatsResponse,
    SyncResponse,
    ToggleSiteResponse,
)

logger = get_logger(__name__)

# Background will be initialized lazily on first request
_background: Optional[Background] = None


def get_background() -> Background:
    """Get or create the background instance."""
    global _background
    if _background is None:
        sink = JsonRuleSink(RULES_OUT) if RULES_OUT else MemoryRuleSink()
        _background = Background(Store(), sink=sink)
        _background.attach()
    return _background


@asynccontextmanager
async def lifespan(app: FastAPI):
    background = app.dependency_overrides.get(get_background, get_background)()
    await background.start()
    stop = asyncio.Event()
    alarm = asyncio.ensure_future(background.run_alarm(stop))
    try:
        yield
    finally:
        stop.set()
        await alarm
        await background.aclose()


def create_app(background: Optional[Background] = None) -> FastAPI:
    """Build the app; pass a Background to bypass the lazily created default."""
    app = FastAPI(
        title="URLSweep background",
        description="Tracking-parameter rules, page state and usage statistics",
        version="0.1.0",
        lifespan=lifespan,
    )
    if background is not None:
        app.dependency_overrides[get_background] = lambda: background

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return HealthResponse(status="ok")

    @app.post("/messages", response_model=MessageResponse)
    async def messages(request: MessageRequest, bg: Background = Depends(get_background)):
        """Inter-context messaging endpoint used by page scrubbers."""
        try:
            response = await bg.handle_message(request.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return MessageResponse(response=response)

    @app.get("/state", response_model=StateResponse)
    async def state(domain: str, bg: Background = Depends(get_background)):
        return StateResponse(**await bg.get_state(domain))

    @app.post("/stats", status_code=204)
    async def record_stats(request: RecordStatsRequest, bg: Background = Depends(get_background)):
        await bg.stats.record(request.domain, request.count, 0)

    @app.get("/stats", response_model=StatsResponse)
    async def stats(bg: Background = Depends(get_background)):
        summary = await bg.stats.summary()
        return StatsResponse(**summary, ledger=await bg.stats.load())

    @app.get("/rules")
    async def rules(bg: Background = Depends(get_background)) -> List[Dict[str, Any]]:
        return [rule.to_declarative() for rule in await bg.sink.get_rules()]

    @app.post("/sync", response_model=SyncResponse)
    async def sync(force: bool = False, bg: Background = Depends(get_background)):
        result = await bg.orchestrator.synchronize(force_fetch=force)
        return SyncResponse(**result.model_dump())

    @app.post("/purify", response_model=PurifyResponse)
    async def purify_url(request: PurifyRequest, bg: Background = Depends(get_background)):
        state = await bg.get_state(None)
        try:
            cleaned = purify(request.url, state["trackers"])
        except InvalidURL:
            raise HTTPException(status_code=400, detail="Invalid URL format")
        return PurifyResponse(url=cleaned)

    async def settings_state(bg: Background) -> SettingsResponse:
        return SettingsResponse(
            allowlist=await bg.settings.allowlist(),
            customTrackers=await bg.settings.custom_parameters(),
            isGloballyDisabled=await bg.settings.is_globally_disabled(),
        )

    @app.get("/settings", response_model=SettingsResponse)
    async def get_settings(bg: Background = Depends(get_background)):
        return await settings_state(bg)

    @app.post("/allowlist", response_model=SettingsResponse)
    async def add_allowed(request: DomainRequest, bg: Background = Depends(get_background)):
        await bg.settings.add_allowed_domain(request.domain)
        return await settings_state(bg)

    @app.delete("/allowlist/{domain}", response_model=SettingsResponse)
    async def remove_allowed(domain: str, bg: Background = Depends(get_background)):
        if not await bg.settings.remove_allowed_domain(domain):
            raise HTTPException(status_code=404, detail=f"{domain} is not in the allowlist")
        return await settings_state(bg)

    @app.post("/allowlist/toggle", response_model=ToggleSiteResponse)
    async def toggle_site(request: DomainRequest, bg: Background = Depends(get_background)):
        """Popup-style per-site switch."""
        domain = normalize_domain(request.domain)
        try:
            allowed = await bg.settings.toggle_site(domain)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return ToggleSiteResponse(domain=domain, isAllowed=allowed)

    @app.post("/parameters", response_model=ParametersAddedResponse)
    async def add_parameters(request: ParametersRequest, bg: Background = Depends(get_background)):
        return ParametersAddedResponse(added=await bg.settings.add_custom_parameters(request.parameters))

    @app.delete("/parameters/{param}", response_model=SettingsResponse)
    async def remove_parameter(param: str, bg: Background = Depends(get_background)):
        if not await bg.settings.remove_custom_parameter(param):
            raise HTTPException(status_code=404, detail=f"{param} is not a custom parameter")
        return await settings_state(bg)

    @app.put("/disabled", response_model=SettingsResponse)
    async def set_disabled(request: GlobalToggleRequest, bg: Background = Depends(get_background)):
        await bg.settings.set_globally_disabled(request.disabled)
        return await settings_state(bg)

    @app.get("/backup")
    async def export_backup(bg: Background = Depends(get_background)) -> Dict[str, Any]:
        return await bg.settings.export_backup()

    @app.post("/backup", response_model=SettingsResponse)
    async def import_backup(backup: Any = Body(...), bg: Background = Depends(get_background)):
        try:
            await bg.settings.import_backup(backup)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return await settings_state(bg)

    @app.post("/requests", status_code=204)
    async def observe_request(bg: Background = Depends(get_background)):
        """One request inspected by the interception host."""
        await bg.redirects.on_before_request()

    @app.post("/redirects", response_model=RedirectResponse)
    async def observe_redirect(request: RedirectRequest, bg: Background = Depends(get_background)):
        removed = await bg.redirects.on_before_redirect(request.url, request.redirectUrl)
        return RedirectResponse(removed=removed)

    @app.post("/install", response_model=SyncResponse)
    async def install(bg: Background = Depends(get_background)):
        result = await bg.orchestrator.on_installed()
        return SyncResponse(**result.model_dump())

    return app


def build_default_app() -> FastAPI:
    setup_logging()
    return create_app()
