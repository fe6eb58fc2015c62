"""extrabucket - File operations on Google Cloud Storage buckets.

Lists, uploads, downloads and removes objects through the Cloud Storage JSON
API. Authenticates with either a service account key (signed JWT assertion)
or an OAuth2 refresh token, and refreshes the access token transparently
before it expires.

Example:
    from extrabucket import Bucket

    with Bucket(
        "my_bucket",
        client_id="...",
        client_secret="...",
        refresh_token="...",
    ) as bucket:
        listing = bucket.list_files()
        print(listing.names)

Logging is disabled by default; call ``configure_logging()`` to see it.
"""

from loguru import logger

from extrabucket.assertion import build_assertion
from extrabucket.bucket import Bucket, ObjectInfo, ObjectListing
from extrabucket.config import BucketSettings, get_settings
from extrabucket.credentials import (
    AuthMode,
    DelegatedCredentials,
    ServiceAccountCredentials,
    resolve_credentials,
)
from extrabucket.exceptions import (
    ApiError,
    AuthError,
    BucketError,
    ConfigError,
    KeyParseError,
    NotFoundError,
)
from extrabucket.logging import configure_logging
from extrabucket.token_exchange import TokenExchanger
from extrabucket.token_manager import AccessToken, TokenManager

__version__ = "0.1.0"

logger.disable("extrabucket")

__all__ = [
    "AccessToken",
    "ApiError",
    "AuthError",
    "AuthMode",
    "Bucket",
    "BucketError",
    "BucketSettings",
    "ConfigError",
    "DelegatedCredentials",
    "KeyParseError",
    "NotFoundError",
    "ObjectInfo",
    "ObjectListing",
    "ServiceAccountCredentials",
    "TokenExchanger",
    "TokenManager",
    "__version__",
    "build_assertion",
    "configure_logging",
    "get_settings",
    "resolve_credentials",
]
