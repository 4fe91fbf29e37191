"""Disk-backed key-value store with change notifications."""

import copy
import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union
import diskcache

from ..config import STORE_DIR
from ..logging import get_logger

logger = get_logger(__name__)

NAMESPACE = "local"

# Store keys
ALLOWLIST = "allowlist"
CUSTOM_TRACKERS = "customTrackers"
UPSTREAM_PARAMS = "upstreamParams"
LAST_FETCH_TIME = "lastFetchTime"
GLOBALLY_DISABLED = "isGloballyDisabled"
STATS = "stats"

_MISSING = object()


@dataclass(frozen=True)
class StorageChange:
    """Old and new value of one changed key. None means absent."""

    old_value: Any = None
    new_value: Any = None


ChangeListener = Callable[[Dict[str, StorageChange], str], Union[None, Awaitable[None]]]


class Store:
    """
    Async get/set over a diskcache directory.

    Every read may be stale by the time it is used; callers that update a
    value do their own read-modify-write.
    """

    def __init__(self, store_dir: Optional[Path] = None, namespace: str = NAMESPACE):
        store_dir = store_dir or STORE_DIR
        self.namespace = namespace
        self.cache = diskcache.Cache(str(store_dir))
        self._listeners: List[ChangeListener] = []

    async def get(self, keys: Union[str, Iterable[str], None] = None) -> Dict[str, Any]:
        """
        Read keys from the store.

        Args:
            keys: A key, an iterable of keys, or None for everything

        Returns:
            Dict of the keys that exist (absent keys are omitted)
        """
        if keys is None:
            keys = list(self.cache.iterkeys())
        elif isinstance(keys, str):
            keys = [keys]

        result: Dict[str, Any] = {}
        for key in keys:
            value = self.cache.get(key, default=_MISSING)
            if value is not _MISSING:
                result[key] = value
        return result

    async def set(self, items: Dict[str, Any]) -> None:
        """Write items and notify listeners of the keys whose value changed."""
        changes: Dict[str, StorageChange] = {}
        for key, value in items.items():
            old = self.cache.get(key, default=None)
            self.cache.set(key, value)
            if old != value:
                changes[key] = StorageChange(old_value=old, new_value=copy.deepcopy(value))

        if changes:
            logger.debug("Store changed: %s", ", ".join(sorted(changes)))
            await self._notify(changes)

    async def remove(self, keys: Union[str, Iterable[str]]) -> None:
        """Delete keys, notifying listeners with new_value=None."""
        if isinstance(keys, str):
            keys = [keys]
        changes: Dict[str, StorageChange] = {}
        for key in keys:
            old = self.cache.pop(key, default=_MISSING)
            if old is not _MISSING:
                changes[key] = StorageChange(old_value=old, new_value=None)
        if changes:
            await self._notify(changes)

    def subscribe(self, listener: ChangeListener) -> None:
        """Register a change listener (sync or async callable)."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, changes: Dict[str, StorageChange]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(changes, self.namespace)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Store change listener %r failed", listener)

    def close(self) -> None:
        self.cache.close()

    def clear(self) -> None:
        """Clear the whole store (no notifications)."""
        self.cache.clear()
        logger.info("Store cleared")
