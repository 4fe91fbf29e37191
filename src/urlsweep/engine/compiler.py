"""Compile tracking parameters and the allowlist into declarative rules."""

from typing import Iterable, Iterator, List, Sequence

from ..config import CHUNK_SIZE
from .models import AllowRule, CompiledRule, RemovalRule, RuleKind, RuleSlot, rule_id


def merge_trackers(*sources: Iterable[str]) -> List[str]:
    """Union of the given parameter lists, first-seen order, exact-string dedup."""
    seen = set()
    merged: List[str] = []
    for source in sources:
        for param in source or ():
            if param not in seen:
                seen.add(param)
                merged.append(param)
    return merged


def chunked(items: Sequence[str], size: int = CHUNK_SIZE) -> Iterator[List[str]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def compile_rules(trackers: Iterable[str], allowlist: Iterable[str]) -> List[CompiledRule]:
    """
    Build the full rule set.

    Args:
        trackers: Tracking parameter names (duplicates allowed)
        allowlist: Domains exempt from removal, in list order

    Returns:
        Removal rules (one per chunk of at most CHUNK_SIZE names) followed by
        one allow rule per allowlist entry
    """
    unique = merge_trackers(trackers)

    rules: List[CompiledRule] = []
    for index, chunk in enumerate(chunked(unique)):
        rules.append(
            RemovalRule(id=rule_id(RuleSlot(RuleKind.REMOVAL, index)), chunk=chunk)
        )

    for index, domain in enumerate(allowlist):
        rules.append(
            AllowRule(id=rule_id(RuleSlot(RuleKind.ALLOW, index)), domain=domain)
        )

    return rules
