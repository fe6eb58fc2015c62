"""Exceptions raised by extrabucket."""

from __future__ import annotations


class BucketError(Exception):
    """Base exception for all extrabucket errors."""


class ConfigError(BucketError):
    """Raised when construction parameters are missing or contradictory.

    Also used for empty required arguments, e.g. ``remove_file("")``.
    """


class KeyParseError(BucketError):
    """Raised when private key material cannot be parsed as an RSA key."""


class NotFoundError(BucketError):
    """Raised when a local file or directory does not exist."""

    def __init__(self, path: str, what: str = "File") -> None:
        self.path = path
        super().__init__(f"{what} not found: {path}")


class AuthError(BucketError):
    """Raised when the token endpoint rejects a request or cannot be reached.

    Timeouts and connection failures carry ``status_code=None``.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ApiError(BucketError):
    """Raised when a storage API call fails.

    Network failures carry ``status_code=None``.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
