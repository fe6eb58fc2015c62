"""Access token ownership and lazy refresh.

The manager holds exactly one ``AccessToken`` per bucket. Before every
privileged call the bucket asks for a valid token; if the stored one expires
within ``TOKEN_REFRESH_BUFFER`` seconds a single exchange replaces it. The
check, exchange and swap run under one lock so concurrent callers never
trigger overlapping exchanges.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from extrabucket.assertion import build_assertion
from extrabucket.credentials import (
    AuthMode,
    Credentials,
    ServiceAccountCredentials,
)

if TYPE_CHECKING:
    from extrabucket.token_exchange import TokenExchanger

# Seconds before expiry at which a token is treated as stale
TOKEN_REFRESH_BUFFER = 60


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the Unix time at which it expires."""

    token: str
    expires_at: float

    def is_valid(self, buffer_seconds: int = TOKEN_REFRESH_BUFFER, now: float | None = None) -> bool:
        """Check if token is still valid with a safety buffer."""
        current = time.time() if now is None else now
        return current < self.expires_at - buffer_seconds

    def expires_in_seconds(self, now: float | None = None) -> int:
        """Return seconds until token expires."""
        current = time.time() if now is None else now
        return max(0, int(self.expires_at - current))

    @property
    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def __repr__(self) -> str:
        return f"AccessToken(token='***', expires_at={self.expires_at!r})"


class TokenManager:
    """Owns the current access token and refreshes it when it goes stale.

    An exchange is performed during construction, so a manager never exists
    without a token. Errors from that first exchange propagate unchanged.

    Args:
        credentials: Resolved credentials; their type fixes the auth mode.
        exchanger: Performs the token endpoint round trips.
        clock: Returns the current Unix time.
    """

    def __init__(
        self,
        credentials: Credentials,
        exchanger: TokenExchanger,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._auth_mode = credentials.auth_mode
        self._exchanger = exchanger
        self._clock = clock
        self._lock = threading.Lock()
        self._token = self._exchange()

    @property
    def auth_mode(self) -> AuthMode:
        """Return the active authentication mode."""
        return self._auth_mode

    @property
    def current_token(self) -> AccessToken:
        """The stored token, without any validity check."""
        return self._token

    def ensure_valid_token(self) -> AccessToken:
        """Return a token that is valid for at least the refresh buffer.

        No network call is made while the stored token is valid. Otherwise
        exactly one exchange is performed and its result replaces the
        stored token.
        """
        with self._lock:
            if self._token.is_valid(now=self._clock()):
                return self._token
            logger.info(
                "Access token expires in {} seconds, refreshing",
                self._token.expires_in_seconds(now=self._clock()),
            )
            self._token = self._exchange()
            return self._token

    def refresh(self) -> AccessToken:
        """Replace the stored token unconditionally."""
        with self._lock:
            self._token = self._exchange()
            return self._token

    def _exchange(self) -> AccessToken:
        credentials = self._credentials
        if isinstance(credentials, ServiceAccountCredentials):
            assertion = build_assertion(
                credentials.private_key,
                issuer_email=credentials.client_email,
                now=self._clock(),
            )
            return self._exchanger.exchange_assertion(assertion)
        return self._exchanger.exchange_refresh_token(
            credentials.client_id,
            credentials.client_secret,
            credentials.refresh_token,
        )
