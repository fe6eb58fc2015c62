"""Credential shapes and authentication mode selection.

Two authentication modes are supported:
1. Service account - a private key signs an assertion that is exchanged
   for an access token
2. Delegated - an OAuth2 refresh token is exchanged for an access token

The mode is decided once, when the bucket is constructed, and carried as an
``AuthMode`` from then on. When both credential sets are complete the
service account wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from loguru import logger

from extrabucket.assertion import is_json_key, parse_key_material
from extrabucket.exceptions import ConfigError, NotFoundError


class AuthMode(str, Enum):
    """Authentication flow used to obtain access tokens."""

    SERVICE_ACCOUNT = "service_account"
    DELEGATED = "delegated"


@dataclass(frozen=True)
class ServiceAccountCredentials:
    """Service account identity and its private key.

    Attributes:
        client_email: Service account email used as the assertion issuer.
        private_key: PEM key text or the full service account JSON blob.
    """

    client_email: str
    private_key: str

    @property
    def auth_mode(self) -> AuthMode:
        return AuthMode.SERVICE_ACCOUNT

    def __repr__(self) -> str:
        return f"ServiceAccountCredentials(client_email={self.client_email!r})"


@dataclass(frozen=True)
class DelegatedCredentials:
    """OAuth2 client and refresh token for user-delegated access."""

    client_id: str
    client_secret: str
    refresh_token: str

    @property
    def auth_mode(self) -> AuthMode:
        return AuthMode.DELEGATED

    def __repr__(self) -> str:
        return f"DelegatedCredentials(client_id={self.client_id!r})"


Credentials = Union[ServiceAccountCredentials, DelegatedCredentials]


def resolve_credentials(
    *,
    client_email: str | None = None,
    private_key: str | None = None,
    private_key_file: str | Path | None = None,
    client_id: str | None = None,
    client_secret: str | None = None,
    refresh_token: str | None = None,
) -> Credentials:
    """Pick the authentication mode from the supplied options.

    ``private_key_file`` is read once here and then treated exactly as if its
    contents had been passed as ``private_key``. An inline ``private_key``
    takes precedence over the file. Empty strings count as absent.

    Raises:
        ConfigError: If neither credential set is complete.
        NotFoundError: If ``private_key_file`` does not exist.
    """
    if private_key_file and not private_key:
        private_key = _read_private_key_file(private_key_file)

    if private_key:
        email = client_email or _embedded_email(private_key)
        if email:
            logger.debug("Using service account credentials for {}", email)
            return ServiceAccountCredentials(client_email=email, private_key=private_key)

    if client_id and client_secret and refresh_token:
        logger.debug("Using delegated OAuth2 credentials for client {}", client_id)
        return DelegatedCredentials(
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
        )

    raise ConfigError(
        "Must provide either service account credentials "
        "(private_key or private_key_file, plus client_email) "
        "or OAuth2 credentials (client_id, client_secret and refresh_token)"
    )


def _read_private_key_file(path: str | Path) -> str:
    key_path = Path(path)
    if not key_path.is_file():
        raise NotFoundError(str(key_path), "Private key file")
    return key_path.read_text(encoding="utf-8")


def _embedded_email(private_key: str) -> str | None:
    """Return the client_email of a JSON key blob, if it has one."""
    if not is_json_key(private_key):
        return None
    return parse_key_material(private_key).client_email
