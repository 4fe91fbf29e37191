"""API request/response models."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class MessageRequest(BaseModel):
    """Page-context message (getState or recordStats)."""

    action: str = Field(..., description="'getState' or 'recordStats'")
    domain: Optional[str] = Field(default=None, description="Hostname of the page")
    count: int = Field(default=0, ge=0, description="Removed parameter count (recordStats)")


class MessageResponse(BaseModel):
    response: Optional[Any] = None


class StateResponse(BaseModel):
    """Scrubber state for one domain."""

    trackers: List[str] = Field(default_factory=list)
    isAllowed: bool = False
    isGloballyDisabled: bool = False


class RecordStatsRequest(BaseModel):
    domain: str = Field(..., min_length=1)
    count: int = Field(..., ge=0)


class StatsResponse(BaseModel):
    inspected: int = 0
    total: int = 0
    ratio_percent: float = 0.0
    ledger: Dict[str, Any] = Field(default_factory=dict)


class PurifyRequest(BaseModel):
    url: str = Field(..., description="URL to purify")


class PurifyResponse(BaseModel):
    url: Optional[str] = None


class SyncResponse(BaseModel):
    fetched: bool
    fetch_failed: bool
    parameter_count: int
    allowlist_count: int
    removal_rules: int
    allow_rules: int
    globally_disabled: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"


class SettingsResponse(BaseModel):
    """Current allowlist, custom parameters and global toggle."""

    allowlist: List[str] = Field(default_factory=list)
    customTrackers: List[str] = Field(default_factory=list)
    isGloballyDisabled: bool = False


class DomainRequest(BaseModel):
    domain: str = Field(..., min_length=1, description="Hostname or full URL")


class ToggleSiteResponse(BaseModel):
    domain: str
    isAllowed: bool


class ParametersRequest(BaseModel):
    parameters: str = Field(..., description="Comma or newline separated parameter names")


class ParametersAddedResponse(BaseModel):
    added: List[str] = Field(default_factory=list)


class GlobalToggleRequest(BaseModel):
    disabled: bool


class RedirectRequest(BaseModel):
    """Observed redirect from the interception host."""

    url: str
    redirectUrl: str


class RedirectResponse(BaseModel):
    removed: int = 0
