"""Token endpoint round trips.

Both grant types post a form body to the same endpoint and get back the same
JSON shape: ``{"access_token": ..., "expires_in": ..., ...}``. Failures are
never retried; they surface to the caller as ``AuthError``.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import httpx
from loguru import logger

from extrabucket.assertion import TOKEN_URL
from extrabucket.exceptions import AuthError
from extrabucket.token_manager import AccessToken

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
REFRESH_TOKEN_GRANT = "refresh_token"
EXCHANGE_TIMEOUT = 10


class TokenExchanger:
    """Exchanges a signed assertion or a refresh token for an access token.

    Args:
        http_client: Client used for the POST. The caller owns its lifetime.
        token_url: Token endpoint.
        clock: Returns the current Unix time; ``expires_at`` is computed
            from it when the response arrives.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        token_url: str = TOKEN_URL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = http_client
        self._token_url = token_url
        self._clock = clock

    def exchange_assertion(self, assertion: str) -> AccessToken:
        """Exchange a signed JWT assertion (service account flow)."""
        return self._exchange(
            {"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            flow="service account",
        )

    def exchange_refresh_token(
        self, client_id: str, client_secret: str, refresh_token: str
    ) -> AccessToken:
        """Exchange an OAuth2 refresh token (delegated flow)."""
        return self._exchange(
            {
                "grant_type": REFRESH_TOKEN_GRANT,
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
            },
            flow="OAuth2",
        )

    def _exchange(self, form: dict[str, str], flow: str) -> AccessToken:
        try:
            response = self._client.post(self._token_url, data=form, timeout=EXCHANGE_TIMEOUT)
        except httpx.TimeoutException as e:
            raise AuthError(f"Token exchange timed out ({flow}): {e}") from e
        except httpx.RequestError as e:
            raise AuthError(f"Failed to connect to token endpoint ({flow}): {e}") from e

        if not response.is_success:
            body = response.text
            raise AuthError(
                f"Failed to authenticate to Google Cloud Storage ({flow}): "
                f"{response.status_code} {body}",
                status_code=response.status_code,
                body=body,
            )

        received_at = self._clock()
        access_token, expires_in = _parse_token_response(response, flow)
        logger.debug("Obtained access token via {} (expires in {} seconds)", flow, expires_in)
        return AccessToken(token=access_token, expires_at=received_at + expires_in)


def _parse_token_response(response: httpx.Response, flow: str) -> tuple[str, float]:
    try:
        payload = response.json()
    except ValueError as e:
        raise AuthError(
            f"Token endpoint returned invalid JSON ({flow})",
            status_code=response.status_code,
            body=response.text,
        ) from e

    if not isinstance(payload, dict) or "access_token" not in payload or "expires_in" not in payload:
        raise AuthError(
            f"Token response is missing access_token or expires_in ({flow})",
            status_code=response.status_code,
            body=response.text,
        )

    access_token = payload["access_token"]
    expires_in = _lifetime_seconds(payload["expires_in"])
    if not isinstance(access_token, str) or not access_token:
        raise AuthError(
            f"Token response has an invalid access_token ({flow})",
            status_code=response.status_code,
            body=response.text,
        )
    if expires_in is None:
        raise AuthError(
            f"Token response has an invalid expires_in ({flow}): {payload['expires_in']!r}",
            status_code=response.status_code,
            body=response.text,
        )
    return access_token, expires_in


def _lifetime_seconds(value: object) -> float | None:
    """Return a positive lifetime from a number or numeric string, else None."""
    # bool is an int subclass
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not value > 0:
        return None
    return float(value)
