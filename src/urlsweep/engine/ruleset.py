"""Rule sinks: where compiled rules are handed to the interception mechanism."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Protocol, Sequence

from ..logging import get_logger
from .models import CompiledRule

logger = get_logger(__name__)


class RuleSink(Protocol):
    """Interface of the request-interception mechanism."""

    async def get_rules(self) -> List[CompiledRule]:
        ...

    async def update_rules(self, remove_rule_ids: Sequence[int], add_rules: Sequence[CompiledRule]) -> None:
        ...


class MemoryRuleSink:
    """Keeps the active dynamic rule set in memory."""

    def __init__(self):
        self._rules: Dict[int, CompiledRule] = {}
        self.update_count = 0

    async def get_rules(self) -> List[CompiledRule]:
        return sorted(self._rules.values(), key=lambda rule: rule.id)

    async def update_rules(self, remove_rule_ids: Sequence[int], add_rules: Sequence[CompiledRule]) -> None:
        """
        Remove then add rules in one call.

        Raises:
            ValueError: if an added id is duplicated or still in use
        """
        removed = set(remove_rule_ids)
        remaining = {rule_id: rule for rule_id, rule in self._rules.items() if rule_id not in removed}
        for rule in add_rules:
            if rule.id in remaining:
                raise ValueError(f"Rule id {rule.id} is already in use")
            remaining[rule.id] = rule
        self._rules = remaining
        self.update_count += 1
        logger.debug(f"Rule set updated: -{len(remove_rule_ids)} +{len(add_rules)} -> {len(self._rules)} active")

    def declarative(self) -> List[Dict[str, Any]]:
        return [rule.to_declarative() for rule in sorted(self._rules.values(), key=lambda rule: rule.id)]


class JsonRuleSink(MemoryRuleSink):
    """Memory sink that also writes the rendered rule set to a JSON file."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)

    async def update_rules(self, remove_rule_ids: Sequence[int], add_rules: Sequence[CompiledRule]) -> None:
        await super().update_rules(remove_rule_ids, add_rules)
        write_rules_file(self.path, self.declarative())


def write_rules_file(path: Path, rules: Iterable[Dict[str, Any]]) -> None:
    """Atomically replace path with the JSON-encoded rules."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=".rules-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(list(rules), f, indent=2)
        os.replace(tmp, path)
    except Exception:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    logger.info(f"Wrote rules to {path}")
