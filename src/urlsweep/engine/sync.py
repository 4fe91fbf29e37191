"""Keep the active rule set in step with upstream, custom parameters and the allowlist."""

import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..clients.feed_client import FeedClient
from ..config import REFETCH_INTERVAL_MS, REFRESH_ALARM_NAME
from ..errors import FetchFailure
from ..logging import get_logger
from ..store.store import (
    ALLOWLIST,
    CUSTOM_TRACKERS,
    GLOBALLY_DISABLED,
    LAST_FETCH_TIME,
    NAMESPACE,
    STATS,
    UPSTREAM_PARAMS,
    StorageChange,
    Store,
)
from .compiler import compile_rules, merge_trackers
from .models import AllowRule, RemovalRule, SyncResult
from .ruleset import RuleSink

logger = get_logger(__name__)

# Changes to these keys resynchronize the rule set
SYNC_TRIGGER_KEYS = (ALLOWLIST, CUSTOM_TRACKERS, GLOBALLY_DISABLED)


def now_ms() -> int:
    return int(time.time() * 1000)


def should_fetch(force_fetch: bool, upstream: Sequence[str], last_fetch_time: Optional[int], now: int) -> bool:
    """Refetch when forced, when nothing is cached, or when the cache is older than 7 days."""
    return force_fetch or len(upstream) == 0 or now - (last_fetch_time or 0) > REFETCH_INTERVAL_MS


class SyncOrchestrator:
    """Decides when to refetch upstream data and swaps the compiled rule set."""

    def __init__(
        self,
        store: Store,
        sink: RuleSink,
        feed_client: Optional[FeedClient] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.sink = sink
        self.feed_client = feed_client or FeedClient()
        self.clock = clock

    async def fetch_upstream(self) -> Tuple[List[str], bool]:
        """
        Fetch upstream parameters, falling back to the persisted ones.

        Returns:
            (upstream parameters, whether the fetch succeeded)
        """
        try:
            params = sorted(await self.feed_client.fetch_parameters())
        except FetchFailure as e:
            logger.error(f"Failed to fetch upstream data: {e}")
        except Exception as e:
            logger.error(f"Unexpected error fetching upstream data: {e}", exc_info=True)
        else:
            await self.store.set({UPSTREAM_PARAMS: params, LAST_FETCH_TIME: self.clock()})
            logger.info(f"Successfully fetched {len(params)} upstream parameters")
            return params, True

        data = await self.store.get(UPSTREAM_PARAMS)
        return list(data.get(UPSTREAM_PARAMS) or []), False

    async def synchronize(self, force_fetch: bool = False) -> SyncResult:
        """
        Recompile and replace the whole active rule set.

        Args:
            force_fetch: Refetch upstream even if the cache is fresh

        Returns:
            SyncResult summary
        """
        data = await self.store.get([ALLOWLIST, CUSTOM_TRACKERS, UPSTREAM_PARAMS, LAST_FETCH_TIME, GLOBALLY_DISABLED])

        upstream = list(data.get(UPSTREAM_PARAMS) or [])
        result = SyncResult()

        if should_fetch(force_fetch, upstream, data.get(LAST_FETCH_TIME), self.clock()):
            upstream, ok = await self.fetch_upstream()
            result.fetched = ok
            result.fetch_failed = not ok

        custom = data.get(CUSTOM_TRACKERS) or []
        allowlist = data.get(ALLOWLIST) or []
        trackers = merge_trackers(upstream, custom)

        # While globally disabled only allow rules stay active
        result.globally_disabled = bool(data.get(GLOBALLY_DISABLED))
        rules = compile_rules([] if result.globally_disabled else trackers, allowlist)

        existing = await self.sink.get_rules()
        await self.sink.update_rules(
            remove_rule_ids=[rule.id for rule in existing],
            add_rules=rules,
        )

        result.parameter_count = len(trackers)
        result.allowlist_count = len(allowlist)
        result.removal_rules = sum(1 for rule in rules if isinstance(rule, RemovalRule))
        result.allow_rules = sum(1 for rule in rules if isinstance(rule, AllowRule))

        logger.info(
            f"Rules synchronized: {result.total_rules} rules total, covering {len(trackers)} parameters "
            f"and {len(allowlist)} allowed domains"
            + (" (removal suspended: globally disabled)" if result.globally_disabled else "")
        )
        return result

    async def on_installed(self) -> SyncResult:
        """Seed missing settings and force a fetch."""
        data = await self.store.get([ALLOWLIST, CUSTOM_TRACKERS, STATS])
        defaults = {ALLOWLIST: [], CUSTOM_TRACKERS: [], STATS: {}}
        missing = {key: value for key, value in defaults.items() if key not in data}
        if missing:
            await self.store.set(missing)
        return await self.synchronize(force_fetch=True)

    async def on_startup(self) -> SyncResult:
        return await self.synchronize(force_fetch=False)

    async def on_alarm(self, name: str) -> Optional[SyncResult]:
        if name == REFRESH_ALARM_NAME:
            return await self.synchronize(force_fetch=True)
        return None

    async def on_storage_changed(self, changes: Dict[str, StorageChange], namespace: str) -> Optional[SyncResult]:
        if namespace == NAMESPACE and any(key in changes for key in SYNC_TRIGGER_KEYS):
            return await self.synchronize(force_fetch=False)
        return None
