"""Unit tests for the signed assertion builder."""

import json
import time

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from google.auth import jwt

from extrabucket.assertion import (
    ASSERTION_LIFETIME,
    STORAGE_SCOPE,
    TOKEN_URL,
    build_assertion,
    parse_key_material,
)
from extrabucket.exceptions import ConfigError, KeyParseError
from tests.fakes import SERVICE_ACCOUNT_EMAIL, service_account_json


def _pkcs8_pem(key: ec.EllipticCurvePrivateKey | ed25519.Ed25519PrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


class TestBuildAssertion:
    """Tests for build_assertion."""

    def test_signature_verifies_with_public_key(
        self, private_key_pem: str, public_key_pem: str
    ) -> None:
        """Assertion is a valid RS256 JWT addressed to the token endpoint."""
        assertion = build_assertion(private_key_pem, issuer_email=SERVICE_ACCOUNT_EMAIL)

        claims = jwt.decode(assertion, certs=public_key_pem, audience=TOKEN_URL)
        assert claims["iss"] == SERVICE_ACCOUNT_EMAIL
        assert claims["scope"] == STORAGE_SCOPE

    def test_header_uses_rs256(self, private_key_pem: str) -> None:
        """Header declares RS256 and a JWT type."""
        assertion = build_assertion(private_key_pem, issuer_email=SERVICE_ACCOUNT_EMAIL)

        header = jwt.decode_header(assertion)
        assert header["alg"] == "RS256"
        assert header["typ"] == "JWT"
        assert assertion.count(".") == 2

    def test_claims_expire_one_hour_after_issue(self, private_key_pem: str) -> None:
        """exp is iat + 3600 and both derive from the given time."""
        assertion = build_assertion(
            private_key_pem, issuer_email=SERVICE_ACCOUNT_EMAIL, now=1_700_000_000
        )

        claims = jwt.decode(assertion, verify=False)
        assert claims["iat"] == 1_700_000_000
        assert claims["exp"] == 1_700_000_000 + ASSERTION_LIFETIME
        assert claims["aud"] == TOKEN_URL

    def test_each_call_mints_a_new_assertion(self, private_key_pem: str) -> None:
        """Assertions issued at different times differ."""
        first = build_assertion(private_key_pem, issuer_email=SERVICE_ACCOUNT_EMAIL, now=1000)
        second = build_assertion(private_key_pem, issuer_email=SERVICE_ACCOUNT_EMAIL, now=2000)
        assert first != second

    def test_escaped_newlines_are_normalized(
        self, private_key_pem: str, public_key_pem: str
    ) -> None:
        """Keys with literal backslash-n sequences still parse."""
        escaped = private_key_pem.replace("\n", "\\n")
        assert "\n" not in escaped

        assertion = build_assertion(escaped, issuer_email=SERVICE_ACCOUNT_EMAIL)
        assert jwt.decode(assertion, certs=public_key_pem, audience=TOKEN_URL)

    def test_json_blob_supplies_email_and_key_id(
        self, private_key_pem: str, public_key_pem: str
    ) -> None:
        """client_email and private_key_id are read from a JSON key."""
        blob = service_account_json(private_key_pem)

        assertion = build_assertion(blob)

        claims = jwt.decode(assertion, certs=public_key_pem, audience=TOKEN_URL)
        assert claims["iss"] == SERVICE_ACCOUNT_EMAIL
        assert jwt.decode_header(assertion)["kid"] == "key-id-1"

    def test_explicit_email_overrides_json_email(self, private_key_pem: str) -> None:
        """The JSON blob's client_email is only a fallback."""
        blob = service_account_json(private_key_pem)

        assertion = build_assertion(blob, issuer_email="other@example.com")

        assert jwt.decode(assertion, verify=False)["iss"] == "other@example.com"

    def test_json_blob_with_escaped_key(self, private_key_pem: str) -> None:
        """A JSON blob whose key was escaped twice is still usable."""
        blob = json.dumps(
            {
                "private_key": private_key_pem.replace("\n", "\\n"),
                "client_email": SERVICE_ACCOUNT_EMAIL,
            }
        )
        assertion = build_assertion(blob)
        assert jwt.decode(assertion, verify=False)["iss"] == SERVICE_ACCOUNT_EMAIL

    def test_missing_email_raises_config_error(self, private_key_pem: str) -> None:
        """No explicit email and no JSON email is a configuration error."""
        with pytest.raises(ConfigError, match="No service account email"):
            build_assertion(private_key_pem)

    def test_json_without_email_raises_config_error(self, private_key_pem: str) -> None:
        """A JSON blob lacking client_email needs an explicit issuer."""
        blob = service_account_json(private_key_pem, client_email=None)
        with pytest.raises(ConfigError):
            build_assertion(blob)

    def test_garbage_key_raises_key_parse_error(self) -> None:
        """Text that is not an RSA key is rejected."""
        with pytest.raises(KeyParseError):
            build_assertion("not a key", issuer_email=SERVICE_ACCOUNT_EMAIL)

    def test_truncated_pem_raises_key_parse_error(self, private_key_pem: str) -> None:
        """A damaged PEM body is rejected."""
        damaged = private_key_pem[:120] + private_key_pem[-60:]
        with pytest.raises(KeyParseError):
            build_assertion(damaged, issuer_email=SERVICE_ACCOUNT_EMAIL)

    def test_issued_at_defaults_to_now(self, private_key_pem: str) -> None:
        """Without ``now`` the current time is used."""
        before = int(time.time())
        assertion = build_assertion(private_key_pem, issuer_email=SERVICE_ACCOUNT_EMAIL)
        after = int(time.time())

        iat = jwt.decode(assertion, verify=False)["iat"]
        assert before <= iat <= after


class TestParseKeyMaterial:
    """Tests for parse_key_material."""

    def test_plain_pem(self, private_key_pem: str) -> None:
        """PEM text passes through with no identity fields."""
        material = parse_key_material(private_key_pem)
        assert material.private_key == private_key_pem
        assert material.client_email is None
        assert material.private_key_id is None

    def test_leading_whitespace_json(self, private_key_pem: str) -> None:
        """JSON detection tolerates leading whitespace."""
        material = parse_key_material("\n  " + service_account_json(private_key_pem))
        assert material.client_email == SERVICE_ACCOUNT_EMAIL

    def test_malformed_json(self) -> None:
        """Broken JSON is a key parse error."""
        with pytest.raises(KeyParseError, match="Invalid service account JSON"):
            parse_key_material('{"private_key": ')

    def test_json_without_private_key(self) -> None:
        """JSON without a private_key field is a key parse error."""
        with pytest.raises(KeyParseError, match="no private_key"):
            parse_key_material('{"client_email": "a@b.c"}')

    @pytest.mark.parametrize("field", ["client_email", "private_key_id"])
    def test_non_string_identity_field(self, private_key_pem: str, field: str) -> None:
        """Identity fields of the wrong type are key parse errors."""
        data = json.loads(service_account_json(private_key_pem))
        data[field] = 42
        with pytest.raises(KeyParseError, match=f"{field} must be a string"):
            parse_key_material(json.dumps(data))

    def test_non_string_private_key(self) -> None:
        """A private_key that is not text is rejected before parsing."""
        blob = json.dumps({"private_key": 123, "client_email": "a@b.c"})
        with pytest.raises(KeyParseError, match="private_key must be a string"):
            build_assertion(blob)


class TestNonRsaKeys:
    """Keys that parse but cannot sign RS256."""

    def test_ec_key_rejected(self) -> None:
        """An EC P-256 key is reported as a key parse error."""
        pem = _pkcs8_pem(ec.generate_private_key(ec.SECP256R1()))
        with pytest.raises(KeyParseError, match="not an RSA key"):
            build_assertion(pem, issuer_email="a@b.c")

    def test_ed25519_key_rejected(self) -> None:
        pem = _pkcs8_pem(ed25519.Ed25519PrivateKey.generate())
        with pytest.raises(KeyParseError, match="not an RSA key"):
            build_assertion(pem, issuer_email="a@b.c")

    def test_ec_key_in_json_blob_rejected(self) -> None:
        """Service account JSON wrapping an EC key fails the same way."""
        pem = _pkcs8_pem(ec.generate_private_key(ec.SECP256R1()))
        with pytest.raises(KeyParseError):
            build_assertion(service_account_json(pem))
