"""Storage-level settings operations (allowlist, custom parameters, backups)."""

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from .engine.stats import StatsAggregator
from .logging import get_logger
from .store.store import ALLOWLIST, CUSTOM_TRACKERS, GLOBALLY_DISABLED, STATS, Store

logger = get_logger(__name__)

PARAM_SEPARATORS = re.compile(r"[\n,]+")


def normalize_domain(value: str) -> str:
    """Trim and lowercase; take the hostname when a full URL is pasted."""
    domain = (value or "").strip().lower()
    if "http" in domain:
        try:
            hostname = urlsplit(domain).hostname
        except ValueError:
            hostname = None
        if hostname:
            domain = hostname
    return domain


def split_parameters(raw: str) -> List[str]:
    """Split on commas or newlines, trimming and dropping empty entries."""
    return [p.strip() for p in PARAM_SEPARATORS.split(raw or "") if p.strip()]


def _union(current: List[str], extra: List[str]) -> List[str]:
    merged = list(current)
    for item in extra:
        if item not in merged:
            merged.append(item)
    return merged


def _backup_entries(backup: Dict[str, Any], key: str, normalize: Callable[[str], List[str]]) -> Optional[List[str]]:
    """Normalized entries of one backup list, or None when the list is absent."""
    entries = backup.get(key)
    if not isinstance(entries, list):
        return None
    result: List[str] = []
    for entry in entries:
        if not isinstance(entry, str):
            raise ValueError(f"Invalid {key} entry: {entry!r}")
        normalized = [value for value in normalize(entry) if value]
        if not normalized:
            raise ValueError(f"Empty {key} entry")
        result.extend(normalized)
    return result


class Settings:
    """Allowlist, custom parameter and global toggle management."""

    def __init__(self, store: Store, stats: Optional[StatsAggregator] = None):
        self.store = store
        self.stats = stats or StatsAggregator(store)

    async def _get_list(self, key: str) -> List[str]:
        data = await self.store.get(key)
        return list(data.get(key) or [])

    async def allowlist(self) -> List[str]:
        return await self._get_list(ALLOWLIST)

    async def custom_parameters(self) -> List[str]:
        return await self._get_list(CUSTOM_TRACKERS)

    async def add_allowed_domain(self, value: str) -> bool:
        """Returns True if the allowlist changed."""
        domain = normalize_domain(value)
        allowlist = await self.allowlist()
        if not domain or domain in allowlist:
            return False
        allowlist.append(domain)
        await self.store.set({ALLOWLIST: allowlist})
        return True

    async def remove_allowed_domain(self, domain: str) -> bool:
        allowlist = await self.allowlist()
        if domain not in allowlist:
            return False
        await self.store.set({ALLOWLIST: [d for d in allowlist if d != domain]})
        return True

    async def toggle_site(self, domain: str) -> bool:
        """
        Flip allowlist membership of domain; returns the new allowed state.

        Raises:
            ValueError: if domain is empty after normalization
        """
        domain = normalize_domain(domain)
        if not domain:
            raise ValueError("Domain must not be empty")
        if await self.remove_allowed_domain(domain):
            return False
        allowlist = await self.allowlist()
        allowlist.append(domain)
        await self.store.set({ALLOWLIST: allowlist})
        return True

    async def is_globally_disabled(self) -> bool:
        data = await self.store.get(GLOBALLY_DISABLED)
        return bool(data.get(GLOBALLY_DISABLED, False))

    async def set_globally_disabled(self, disabled: bool) -> None:
        await self.store.set({GLOBALLY_DISABLED: bool(disabled)})

    async def add_custom_parameters(self, raw: str) -> List[str]:
        """Add comma/newline separated parameters; returns the ones actually added."""
        current = await self.custom_parameters()
        added = [p for p in dict.fromkeys(split_parameters(raw)) if p not in current]
        if added:
            await self.store.set({CUSTOM_TRACKERS: current + added})
        return added

    async def remove_custom_parameter(self, param: str) -> bool:
        current = await self.custom_parameters()
        if param not in current:
            return False
        await self.store.set({CUSTOM_TRACKERS: [p for p in current if p != param]})
        return True

    async def export_backup(self) -> Dict[str, Any]:
        data = await self.store.get([ALLOWLIST, CUSTOM_TRACKERS, STATS])
        return {
            "allowlist": list(data.get(ALLOWLIST) or []),
            "customTrackers": list(data.get(CUSTOM_TRACKERS) or []),
            "stats": data.get(STATS) or {},
            "exportedAt": datetime.now(timezone.utc).isoformat(),
        }

    async def import_backup(self, backup: Any) -> None:
        """
        Merge a backup into the current settings.

        Raises:
            ValueError: if backup is not a backup object, a list entry is not
                a non-empty string, or the stats ledger is malformed
        """
        if not isinstance(backup, dict):
            raise ValueError("Invalid backup file formatting.")

        # Validate every list before anything is written
        domains = _backup_entries(backup, "allowlist", lambda entry: [normalize_domain(entry)])
        params = _backup_entries(backup, "customTrackers", split_parameters)

        if "stats" in backup and isinstance(backup["stats"], dict):
            await self.stats.merge(backup["stats"])

        updates: Dict[str, Any] = {}
        if domains is not None:
            updates[ALLOWLIST] = _union(await self.allowlist(), domains)
        if params is not None:
            updates[CUSTOM_TRACKERS] = _union(await self.custom_parameters(), params)
        if updates:
            await self.store.set(updates)
        logger.info("Backup imported")
