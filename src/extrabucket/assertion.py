"""Signed JWT assertions for the service account token exchange.

The assertion is the RS256-signed claim set Google's token endpoint accepts
with the ``urn:ietf:params:oauth:grant-type:jwt-bearer`` grant. A new one is
minted for every exchange; nothing here is cached.

Key material may be supplied either as a PEM-encoded RSA private key or as a
service account JSON key file's contents. Keys coming from environment
variables or secret managers often carry literal ``\\n`` sequences instead of
line breaks, so those are normalized before parsing.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from google.auth import crypt, jwt

from extrabucket.exceptions import ConfigError, KeyParseError

TOKEN_URL = "https://oauth2.googleapis.com/token"
STORAGE_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# Google caps service account assertions at one hour
ASSERTION_LIFETIME = 3600

_JSON_BLOB = re.compile(r"^\s*\{")


@dataclass(frozen=True)
class KeyMaterial:
    """Private key and identity extracted from user supplied key text."""

    private_key: str
    client_email: str | None = None
    private_key_id: str | None = None


def is_json_key(key_text: str) -> bool:
    """Return True if the key text looks like a service account JSON blob."""
    return bool(_JSON_BLOB.match(key_text))


def parse_key_material(key_text: str) -> KeyMaterial:
    """Split key text into PEM key plus any identity fields embedded with it.

    Raises:
        KeyParseError: If a JSON blob is malformed, has no ``private_key``, or
            carries a non-string identity field.
    """
    if not is_json_key(key_text):
        return KeyMaterial(private_key=_unescape_newlines(key_text))

    try:
        data = json.loads(key_text)
    except json.JSONDecodeError as e:
        raise KeyParseError(f"Invalid service account JSON: {e}") from e

    if not isinstance(data, dict) or not data.get("private_key"):
        raise KeyParseError("Service account JSON has no private_key field")
    if not isinstance(data["private_key"], str):
        raise KeyParseError("Service account JSON private_key must be a string")
    for field in ("client_email", "private_key_id"):
        if data.get(field) is not None and not isinstance(data[field], str):
            raise KeyParseError(f"Service account JSON {field} must be a string")

    return KeyMaterial(
        private_key=_unescape_newlines(data["private_key"]),
        client_email=data.get("client_email") or None,
        private_key_id=data.get("private_key_id") or None,
    )


def build_assertion(
    private_key: str,
    issuer_email: str | None = None,
    audience: str = TOKEN_URL,
    now: float | None = None,
) -> str:
    """Build a signed assertion for the jwt-bearer grant.

    Args:
        private_key: PEM-encoded RSA private key, or a service account JSON
            blob containing ``private_key`` and ``client_email``.
        issuer_email: Service account email. Takes precedence over the
            ``client_email`` embedded in a JSON blob.
        audience: Token endpoint the assertion is addressed to.
        now: Issue time as a Unix timestamp. Defaults to the current time.

    Returns:
        The encoded ``header.claims.signature`` string.

    Raises:
        KeyParseError: If the key material is not a parseable RSA key.
        ConfigError: If no issuer email is available.
    """
    material = parse_key_material(private_key)
    issuer = issuer_email or material.client_email
    if not issuer:
        raise ConfigError(
            "No service account email: pass client_email or use a JSON key "
            "that contains client_email"
        )

    signer = _load_signer(material)
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": issuer,
        "exp": issued_at + ASSERTION_LIFETIME,
        "aud": audience,
        "scope": STORAGE_SCOPE,
        "iat": issued_at,
    }
    return jwt.encode(signer, claims).decode("ascii")


def _load_signer(material: KeyMaterial) -> crypt.RSASigner:
    try:
        key = serialization.load_pem_private_key(
            material.private_key.encode("utf-8"), password=None
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyParseError(f"Unable to parse RSA private key: {e}") from e

    # EC and Ed25519 keys load fine but cannot sign RS256
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyParseError(f"Private key is not an RSA key: {type(key).__name__}")
    return crypt.RSASigner.from_string(material.private_key, key_id=material.private_key_id)


def _unescape_newlines(key_text: str) -> str:
    return key_text.replace("\\n", "\n")
