"""In-memory implementation of AccountLookup.

Single-process only. Useful for local dev and tests; production
deployments plug in their user store behind the same port.
"""
from __future__ import annotations

from typing import Dict

from application.ports.accounts import AccountLookup, AccountStatus, MISSING_ACCOUNT


class InMemoryAccountDirectory(AccountLookup):
    def __init__(self) -> None:
        self._enabled: Dict[int, bool] = {}

    def register(self, user_id: int, *, enabled: bool = True) -> None:
        self._enabled[user_id] = enabled

    def disable(self, user_id: int) -> None:
        if user_id in self._enabled:
            self._enabled[user_id] = False

    def remove(self, user_id: int) -> None:
        self._enabled.pop(user_id, None)

    async def get_account(self, user_id: int) -> AccountStatus:  # type: ignore[override]
        if user_id not in self._enabled:
            return MISSING_ACCOUNT
        return AccountStatus(exists=True, enabled=self._enabled[user_id])
