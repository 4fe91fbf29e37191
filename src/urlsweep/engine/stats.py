"""Usage statistics keyed by local calendar date and domain.

Ledger layout::

    {"2026-10-19": {"total": 12, "inspected": 340, "example.com": 5},
     "total": 200, "inspected": 9000}

Writes are read-modify-write against the shared store. Concurrent records
from different contexts can lose an increment; counts are advisory.
"""

from datetime import date
from typing import Any, Callable, Dict, Optional

from ..logging import get_logger
from ..store.store import STATS, Store

logger = get_logger(__name__)

TOTAL = "total"
INSPECTED = "inspected"
_TOTAL_KEYS = (TOTAL, INSPECTED)


def today_key() -> str:
    """Local (not UTC) date as YYYY-MM-DD."""
    return date.today().isoformat()


class StatsAggregator:
    """Accumulates removal and inspection counts in the store."""

    def __init__(self, store: Store, date_key: Callable[[], str] = today_key):
        self.store = store
        self.date_key = date_key

    async def load(self) -> Dict[str, Any]:
        data = await self.store.get(STATS)
        return data.get(STATS) or {}

    async def record(self, domain: Optional[str] = None, removed_count: int = 0, inspected_count: int = 0) -> None:
        """
        Add counts to the grand totals and today's bucket.

        Args:
            domain: Hostname the removal happened on (optional)
            removed_count: Parameters removed
            inspected_count: Requests inspected
        """
        if not domain and inspected_count == 0:
            return

        stats = await self.load()

        stats[TOTAL] = stats.get(TOTAL, 0) + removed_count
        stats[INSPECTED] = stats.get(INSPECTED, 0) + inspected_count

        bucket = stats.setdefault(self.date_key(), {TOTAL: 0, INSPECTED: 0})
        bucket[TOTAL] = bucket.get(TOTAL, 0) + removed_count
        bucket[INSPECTED] = bucket.get(INSPECTED, 0) + inspected_count

        if domain and removed_count > 0:
            bucket[domain] = bucket.get(domain, 0) + removed_count

        await self.store.set({STATS: stats})

    async def reset(self) -> None:
        await self.store.set({STATS: {TOTAL: 0}})
        logger.info("Statistics reset")

    async def domain_total(self, domain: str) -> int:
        """Removals on a domain summed over every date bucket."""
        stats = await self.load()
        return sum(
            bucket.get(domain, 0)
            for key, bucket in stats.items()
            if key not in _TOTAL_KEYS and isinstance(bucket, dict)
        )

    async def merge(self, imported: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add an imported ledger to the current one.

        Top-level numbers are summed; date buckets are merged key by key.

        Raises:
            ValueError: if imported is not a ledger-shaped mapping
        """
        if not isinstance(imported, dict):
            raise ValueError("Imported stats must be an object")

        stats = await self.load()
        for key, value in imported.items():
            if isinstance(value, bool):
                raise ValueError(f"Invalid stats value for {key!r}")
            current = stats.get(key)
            if isinstance(value, (int, float)):
                if current is not None and not isinstance(current, (int, float)):
                    raise ValueError(f"Cannot add a number to the bucket {key!r}")
                stats[key] = (current or 0) + value
            elif isinstance(value, dict):
                if current is not None and not isinstance(current, dict):
                    raise ValueError(f"Cannot merge a bucket into the number {key!r}")
                bucket = stats.setdefault(key, {})
                for sub_key, count in value.items():
                    if isinstance(count, bool) or not isinstance(count, (int, float)):
                        raise ValueError(f"Invalid stats value for {key!r}/{sub_key!r}")
                    bucket[sub_key] = bucket.get(sub_key, 0) + count
            else:
                raise ValueError(f"Invalid stats value for {key!r}")

        await self.store.set({STATS: stats})
        return stats

    async def summary(self) -> Dict[str, Any]:
        stats = await self.load()
        inspected = stats.get(INSPECTED, 0)
        total = stats.get(TOTAL, 0)
        ratio = (total / inspected * 100) if inspected > 0 else 0.0
        return {"inspected": inspected, "total": total, "ratio_percent": round(ratio, 3)}
