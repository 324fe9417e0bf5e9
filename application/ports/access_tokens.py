"""Access-token issuer port.

Access tokens are stateless and short-lived; minting one must not
depend on the TTL store.
"""
from __future__ import annotations

from typing import Optional, Protocol


class AccessTokenIssuer(Protocol):
    def mint(self, user_id: int) -> str: ...

    def verify(self, token: str) -> Optional[int]: ...


__all__ = ["AccessTokenIssuer"]
