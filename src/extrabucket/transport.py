"""HTTP transport for the Cloud Storage JSON API.

Executes ``StorageRequest`` values built in ``extrabucket.endpoints`` with an
``httpx.Client`` and turns every non-success response or network failure
into an ``ApiError`` carrying the status and response body.
"""

from __future__ import annotations

import ssl
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

import certifi
import httpx
from loguru import logger

from extrabucket.exceptions import ApiError

if TYPE_CHECKING:
    from extrabucket.endpoints import StorageRequest
    from extrabucket.token_manager import AccessToken

# List and delete calls time out like the token exchange; transfers do not
METADATA_TIMEOUT = 10
TRANSFER_TIMEOUT = None

Timeout = Union[float, None]


def create_http_client() -> httpx.Client:
    """Create an httpx client that verifies TLS against certifi's bundle."""
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    return httpx.Client(verify=ssl_context, headers={"Accept": "application/json"})


class StorageTransport:
    """Sends storage API requests and maps failures to ``ApiError``.

    Args:
        http_client: Client used for all calls. The caller owns its lifetime.
    """

    def __init__(self, http_client: httpx.Client) -> None:
        self._client = http_client

    def send(
        self,
        request: StorageRequest,
        token: AccessToken | None,
        *,
        operation: str,
        timeout: Timeout = METADATA_TIMEOUT,
        accept_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Send a request and return the response.

        Args:
            request: The request to send.
            token: Bearer token, or None for calls authorized by a session URI.
            operation: Name used in log lines and error messages.
            timeout: Seconds to wait, or None to wait indefinitely.
            accept_status: Non-2xx statuses to hand back instead of raising.

        Raises:
            ApiError: On network failure or an unexpected status.
        """
        headers = dict(request.headers)
        if token is not None:
            headers.update(token.authorization_header)

        logger.debug("{} {} {}", operation, request.method, request.url)
        try:
            response = self._client.request(
                request.method,
                request.url,
                params=request.params or None,
                headers=headers,
                content=request.content,
                timeout=timeout,
            )
        except httpx.RequestError as e:
            raise ApiError(f"Failed in call to {operation}: network error: {e}") from e

        if response.is_success or response.status_code in accept_status:
            return response
        raise _api_error(operation, response)

    def download(
        self,
        request: StorageRequest,
        token: AccessToken,
        destination: Path,
        *,
        operation: str = "download_file",
    ) -> int:
        """Stream a response body into ``destination``.

        ``destination`` is not touched when the API answers with an error.
        A partially written file is removed if the connection drops or the
        local write fails; the ``OSError`` of a failed write propagates.

        Returns:
            Number of bytes written.
        """
        headers = dict(request.headers)
        headers.update(token.authorization_header)

        logger.debug("{} {} {} -> {}", operation, request.method, request.url, destination)
        written = 0
        try:
            with self._client.stream(
                request.method,
                request.url,
                params=request.params or None,
                headers=headers,
                timeout=TRANSFER_TIMEOUT,
            ) as response:
                if not response.is_success:
                    response.read()
                    raise _api_error(operation, response)
                with destination.open("wb") as fh:
                    try:
                        for chunk in response.iter_bytes():
                            fh.write(chunk)
                            written += len(chunk)
                    except (httpx.RequestError, OSError):
                        try:
                            fh.close()
                        finally:
                            destination.unlink(missing_ok=True)
                        raise
        except httpx.RequestError as e:
            raise ApiError(f"Failed in call to {operation}: network error: {e}") from e
        return written

    @staticmethod
    def json_body(response: httpx.Response, *, operation: str) -> dict[str, Any]:
        """Parse a success response as a JSON object.

        Raises:
            ApiError: If the body is not a JSON object, e.g. a proxy error page.
        """
        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError(
                f"Failed in call to {operation}: response is not valid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from e
        if not isinstance(payload, dict):
            raise ApiError(
                f"Failed in call to {operation}: expected a JSON object",
                status_code=response.status_code,
                body=response.text,
            )
        return payload


def _api_error(operation: str, response: httpx.Response) -> ApiError:
    body = response.text
    return ApiError(
        f"Failed in call to {operation}: {response.status_code} {response.reason_phrase}: {body}",
        status_code=response.status_code,
        body=body,
    )
