"""Shared test fixtures for extrabucket."""

from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest

from extrabucket import Bucket
from tests.fakes import SERVICE_ACCOUNT_EMAIL, FakeClock, FakeGoogleAPI, rsa_key_pair

BUCKET_NAME = "test-bucket"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api() -> FakeGoogleAPI:
    return FakeGoogleAPI()


@pytest.fixture
def http_client(api: FakeGoogleAPI) -> Iterator[httpx.Client]:
    client = api.client()
    yield client
    client.close()


@pytest.fixture
def private_key_pem() -> str:
    return rsa_key_pair()[0]


@pytest.fixture
def public_key_pem() -> str:
    return rsa_key_pair()[1]


@pytest.fixture
def delegated_bucket(http_client: httpx.Client, clock: FakeClock) -> Bucket:
    """A bucket authenticated with a refresh token."""
    return Bucket(
        BUCKET_NAME,
        client_id="id",
        client_secret="s",
        refresh_token="r",
        http_client=http_client,
        clock=clock,
    )


@pytest.fixture
def service_account_bucket(
    http_client: httpx.Client, clock: FakeClock, private_key_pem: str
) -> Bucket:
    """A bucket authenticated with a service account key."""
    return Bucket(
        BUCKET_NAME,
        client_email=SERVICE_ACCOUNT_EMAIL,
        private_key=private_key_pem,
        http_client=http_client,
        clock=clock,
    )
