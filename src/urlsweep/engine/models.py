"""Compiled rule models and the rule-id enumeration."""

from enum import Enum
from typing import Any, Dict, List, Literal, NamedTuple, Union
from pydantic import BaseModel, Field

from ..config import (
    ALLOW_PRIORITY,
    ALLOW_RULE_ID_BASE,
    ALLOW_RULE_ID_LIMIT,
    CHUNK_SIZE,
    CUSTOM_TRACKER_RULE_ID,
    REMOVAL_PRIORITY,
    REMOVAL_RULE_ID_BASE,
    RESOURCE_TYPES,
)
from ..errors import RuleIdOverflow


class RuleKind(str, Enum):
    """Kinds of rule, each owning a disjoint id range."""

    REMOVAL = "removal"
    CUSTOM = "custom"
    ALLOW = "allow"


class RuleSlot(NamedTuple):
    kind: RuleKind
    index: int = 0


# Half-open [start, end) id range per kind
_ID_RANGES = {
    RuleKind.REMOVAL: (REMOVAL_RULE_ID_BASE, CUSTOM_TRACKER_RULE_ID),
    RuleKind.CUSTOM: (CUSTOM_TRACKER_RULE_ID, CUSTOM_TRACKER_RULE_ID + 1),
    RuleKind.ALLOW: (ALLOW_RULE_ID_BASE, ALLOW_RULE_ID_LIMIT),
}


def rule_id(slot: RuleSlot) -> int:
    """
    Map a rule slot to its integer id.

    Args:
        slot: (kind, index) where index is the chunk index for removal rules
            and the allowlist position for allow rules

    Returns:
        Integer id inside the range reserved for the kind

    Raises:
        RuleIdOverflow: if the index does not fit in the range
    """
    start, end = _ID_RANGES[slot.kind]
    value = start + slot.index
    if slot.index < 0 or value >= end:
        raise RuleIdOverflow(f"{slot.kind.value} rule index {slot.index} outside id range [{start}, {end})")
    return value


def slot_for_id(value: int) -> RuleSlot:
    """Inverse of rule_id."""
    for kind, (start, end) in _ID_RANGES.items():
        if start <= value < end:
            return RuleSlot(kind, value - start)
    raise RuleIdOverflow(f"Rule id {value} belongs to no range")


class RemovalRule(BaseModel):
    """Redirect matching requests with the listed query parameters stripped."""

    kind: Literal["removal"] = "removal"
    id: int = Field(..., ge=1)
    priority: int = REMOVAL_PRIORITY
    chunk: List[str] = Field(..., min_length=1, max_length=CHUNK_SIZE)
    resource_types: List[str] = Field(default_factory=lambda: list(RESOURCE_TYPES))

    def to_declarative(self) -> Dict[str, Any]:
        """Render in the shape the interception mechanism consumes."""
        return {
            "id": self.id,
            "priority": self.priority,
            "action": {
                "type": "redirect",
                "redirect": {
                    "transform": {"queryTransform": {"removeParams": list(self.chunk)}},
                },
            },
            "condition": {"resourceTypes": list(self.resource_types)},
        }


class AllowRule(BaseModel):
    """Bypass every other rule for requests to one domain."""

    kind: Literal["allow"] = "allow"
    id: int = Field(..., ge=1)
    priority: int = ALLOW_PRIORITY
    domain: str = Field(..., min_length=1)
    resource_types: List[str] = Field(default_factory=lambda: list(RESOURCE_TYPES))

    def to_declarative(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority,
            "action": {"type": "allowAllRequests"},
            "condition": {
                "requestDomains": [self.domain],
                "resourceTypes": list(self.resource_types),
            },
        }


CompiledRule = Union[RemovalRule, AllowRule]


class SyncResult(BaseModel):
    """Summary of one synchronization pass."""

    fetched: bool = False
    fetch_failed: bool = False
    parameter_count: int = 0
    allowlist_count: int = 0
    removal_rules: int = 0
    allow_rules: int = 0
    globally_disabled: bool = False

    @property
    def total_rules(self) -> int:
        return self.removal_rules + self.allow_rules
