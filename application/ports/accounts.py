"""Account lookup port consumed at refresh time."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class AccountStatus:
    exists: bool
    enabled: bool

    @property
    def can_refresh(self) -> bool:
        return self.exists and self.enabled


MISSING_ACCOUNT = AccountStatus(exists=False, enabled=False)


class AccountLookup(Protocol):
    async def get_account(self, user_id: int) -> AccountStatus: ...


__all__ = ["AccountStatus", "AccountLookup", "MISSING_ACCOUNT"]
