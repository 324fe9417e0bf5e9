"""In-memory implementation of TTLStore.

Single-process only. Useful for local dev and tests. Values are stored
JSON-encoded so callers get the same copy semantics as with Redis.
"""
from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional, Set, Tuple

from application.ports.ttl_store import TTLStore


class InMemoryTTLStore(TTLStore):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._sets: Dict[str, Tuple[Set[str], Optional[float]]] = {}

    def _deadline(self, ttl: Optional[float]) -> Optional[float]:
        if ttl is None or ttl <= 0:
            return None
        return self._clock() + ttl

    def _alive(self, deadline: Optional[float]) -> bool:
        return deadline is None or self._clock() < deadline

    def _purge(self, key: str) -> None:
        # Lazy expiry on access
        entry = self._values.get(key)
        if entry is not None and not self._alive(entry[1]):
            del self._values[key]
        members = self._sets.get(key)
        if members is not None and not self._alive(members[1]):
            del self._sets[key]

    # No await between check and write below, so each call is atomic on the event loop.

    async def get(self, key: str) -> Any:  # type: ignore[override]
        self._purge(key)
        entry = self._values.get(key)
        return json.loads(entry[0]) if entry is not None else None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:  # type: ignore[override]
        self._values[key] = (json.dumps(value, default=str), self._deadline(ttl))

    async def delete(self, key: str) -> bool:  # type: ignore[override]
        self._purge(key)
        removed = self._values.pop(key, None) is not None
        removed = self._sets.pop(key, None) is not None or removed
        return removed

    async def set_if_absent(self, key: str, value: Any, ttl: float) -> bool:  # type: ignore[override]
        self._purge(key)
        if key in self._values:
            return False
        self._values[key] = (json.dumps(value, default=str), self._deadline(ttl))
        return True

    async def delete_if_equals(self, key: str, value: Any) -> bool:  # type: ignore[override]
        self._purge(key)
        entry = self._values.get(key)
        if entry is None or entry[0] != json.dumps(value, default=str):
            return False
        del self._values[key]
        return True

    async def add_to_set(self, set_key: str, member: str, ttl: Optional[float] = None) -> None:  # type: ignore[override]
        self._purge(set_key)
        members, deadline = self._sets.get(set_key, (set(), None))
        members.add(member)
        if ttl is not None and ttl > 0:
            deadline = self._deadline(ttl)
        self._sets[set_key] = (members, deadline)

    async def remove_from_set(self, set_key: str, member: str) -> None:  # type: ignore[override]
        self._purge(set_key)
        entry = self._sets.get(set_key)
        if entry is None:
            return
        entry[0].discard(member)
        if not entry[0]:
            del self._sets[set_key]

    async def members_of(self, set_key: str) -> Set[str]:  # type: ignore[override]
        self._purge(set_key)
        entry = self._sets.get(set_key)
        return set(entry[0]) if entry is not None else set()

    async def aclose(self) -> None:  # type: ignore[override]
        self._values.clear()
        self._sets.clear()
