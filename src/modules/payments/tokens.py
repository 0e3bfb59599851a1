"""Bearer-token provider for the payment gateway.

One credential is shared by the whole process.  The token's ``exp``
claim decides when it is refreshed; a token that is missing, malformed
or within ``leeway`` seconds of expiring is replaced.  Refreshes are
single-flight: concurrent callers that find an expired token wait on one
lock, and only the first of them calls the credential endpoint.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import httpx
import jwt
import structlog

from modules.payments.exceptions import GatewayTokenError

logger = structlog.get_logger(__name__)


class TokenProvider:
    """Lazily refreshed, lock-guarded gateway credential."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        http_client: httpx.Client,
        leeway: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._http = http_client
        self._leeway = leeway
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None

    def get_token(self) -> str:
        """Return a valid token, refreshing it at most once per expiry."""
        token = self._current()
        if token is not None:
            return token
        with self._lock:
            # Another thread may have refreshed while we waited.
            token = self._current()
            if token is not None:
                return token
            return self._refresh()

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = None
        logger.info("gateway.token_invalidated")

    def _current(self) -> Optional[str]:
        token, expires_at = self._token, self._expires_at
        if token is None or expires_at is None:
            return None
        if self._clock() >= expires_at - self._leeway:
            return None
        return token

    def _refresh(self) -> str:
        log = logger.bind(token_url=self._token_url)
        try:
            response = self._http.post(
                self._token_url,
                json={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "client_credentials",
                },
            )
        except httpx.HTTPError as exc:
            log.error("gateway.token_request_failed", error=type(exc).__name__)
            raise GatewayTokenError() from exc

        if response.is_error:
            log.error("gateway.token_rejected", status_code=response.status_code)
            raise GatewayTokenError()

        try:
            token = response.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            log.error("gateway.token_malformed_response")
            raise GatewayTokenError() from exc
        if not isinstance(token, str) or not token:
            log.error("gateway.token_malformed_response")
            raise GatewayTokenError()

        expires_at = read_expiry(token)
        if expires_at is None:
            log.warning("gateway.token_without_expiry")
        self._token = token
        self._expires_at = expires_at
        log.info("gateway.token_refreshed", expires_at=expires_at)
        return token


def read_expiry(token: str) -> Optional[float]:
    """The token's ``exp`` claim, or ``None`` when absent or unreadable.

    The signature is not checked: the token is only forwarded to the
    gateway, which is the party that validates it.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)
