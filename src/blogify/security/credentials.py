"""Bearer credential supplied to the store and agent clients.

Issuing tokens is the auth service's job; the client only checks that a
token is present and, when it is a JWT, that its ``exp`` has not passed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

import logging
import jwt

from ..core.errors import AuthError

logger = logging.getLogger("blogify.auth")


class BearerCredential:
    def __init__(self, token: Optional[str]) -> None:
        self._token = (token or "").strip() or None

    @property
    def token(self) -> Optional[str]:
        return self._token

    def expires_at(self) -> Optional[datetime]:
        if not self._token:
            return None
        try:
            claims = jwt.decode(self._token, options={"verify_signature": False})
        except jwt.PyJWTError:
            # Opaque token; the server is the only judge of its validity
            return None
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires = self.expires_at()
        if expires is None:
            return False
        return expires <= (now or datetime.now(timezone.utc))

    def require(self) -> str:
        if not self._token:
            raise AuthError("Missing bearer credential; please sign in")
        if self.is_expired():
            logger.info("Bearer credential expired at %s", self.expires_at())
            raise AuthError("Bearer credential expired; please sign in again")
        return self._token

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.require()}",
            "Content-Type": "application/json",
        }
