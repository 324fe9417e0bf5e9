"""
TTL store port (contracts-first).

All coordination state of the refresh subsystem (token records, the
per-user token index, the refresh lock and the shared-result cache)
lives behind this contract, so correctness holds across multiple
process instances. Implementations must make ``set_if_absent`` and
``delete_if_equals`` atomic and raise ``StoreUnavailableException`` on
backend failures instead of retrying.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, Set


class TTLStore(Protocol):
    """Key-value store with per-key expiry. TTLs are in seconds."""

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def set_if_absent(self, key: str, value: Any, ttl: float) -> bool: ...

    async def delete_if_equals(self, key: str, value: Any) -> bool: ...

    async def add_to_set(self, set_key: str, member: str, ttl: Optional[float] = None) -> None: ...

    async def remove_from_set(self, set_key: str, member: str) -> None: ...

    async def members_of(self, set_key: str) -> Set[str]: ...

    async def aclose(self) -> None: ...

__all__ = ["TTLStore"]
