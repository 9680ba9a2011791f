"""
Admin login for privileged endpoints.

A successful login hands out an opaque bearer token. Tokens live in
memory only (a restart logs everybody out) and expire after a fixed
lifetime; logout revokes a token immediately. Several tokens may be
valid at once, one per device that logged in.
"""

import hmac
import logging
import secrets
import threading
import time
from typing import Dict, Mapping, Optional


log = logging.getLogger(__name__)


class AdminAuth:
    """In-memory admin token issuer."""

    def __init__(
        self,
        username: str = "admin",
        password: str = "",
        token_ttl: float = 12 * 3600,
        clock=time.monotonic,
    ):
        self._username = username
        self._password = password
        self._ttl = token_ttl
        self._clock = clock
        self._tokens: Dict[str, float] = {}   # token -> issued at
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._password)

    def login(self, username: str, password: str) -> Optional[str]:
        """Issue a token for matching credentials, else None."""
        if not self.enabled:
            return None
        user_ok = hmac.compare_digest(str(username or "").encode(), self._username.encode())
        pass_ok = hmac.compare_digest(str(password or "").encode(), self._password.encode())
        if not (user_ok and pass_ok):
            log.warning(f"Failed admin login for {username!r}")
            return None

        token = secrets.token_urlsafe(32)
        with self._lock:
            self._prune()
            self._tokens[token] = self._clock()
        log.info(f"Admin {username} logged in")
        return token

    def is_valid(self, token: Optional[str]) -> bool:
        if not token:
            return False
        with self._lock:
            issued = self._tokens.get(token)
            if issued is None:
                return False
            if self._expired(issued):
                del self._tokens[token]
                return False
            return True

    def revoke(self, token: Optional[str]) -> bool:
        with self._lock:
            return self._tokens.pop(token, None) is not None

    def _expired(self, issued: float) -> bool:
        return self._ttl > 0 and self._clock() - issued > self._ttl

    def _prune(self) -> None:
        for token in [t for t, issued in self._tokens.items() if self._expired(issued)]:
            del self._tokens[token]


def extract_token(body: Optional[Mapping], headers: Optional[Mapping]) -> Optional[str]:
    """Admin credential from the JSON body or an Authorization header."""
    if body:
        credential = body.get("adminCredential") or body.get("adminKey")
        if credential:
            return str(credential)
    if headers:
        auth = headers.get("Authorization", "")
        if auth.lower().startswith("bearer "):
            return auth[7:].strip() or None
    return None
