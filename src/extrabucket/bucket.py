"""Bucket client: list, upload, download and remove objects.

Every operation asks the token manager for a valid token first, so a
long-lived ``Bucket`` keeps working after its initial token expires.

Example:
    bucket = Bucket(
        "my_bucket",
        client_email="uploader@my-project.iam.gserviceaccount.com",
        private_key_file="/etc/private/gcs.key",
    )
    bucket.upload_file("/var/log/starman.log", "text/plain", "logs")
    for name in bucket.list_files("logs/").names:
        print(name)
"""

from __future__ import annotations

import contextlib
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any

from loguru import logger

from extrabucket import endpoints
from extrabucket.credentials import AuthMode, resolve_credentials
from extrabucket.exceptions import ApiError, ConfigError, NotFoundError
from extrabucket.file_reader import iter_file_chunks, require_file
from extrabucket.token_exchange import TokenExchanger
from extrabucket.token_manager import TokenManager
from extrabucket.transport import TRANSFER_TIMEOUT, StorageTransport, create_http_client

if TYPE_CHECKING:
    import httpx

    from extrabucket.config import BucketSettings

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024
# Every chunk but the last must be a multiple of this
CHUNK_ALIGNMENT = 256 * 1024
RESUME_INCOMPLETE = 308

_ENCODED_SEPARATOR = re.compile("%2F", re.IGNORECASE)


@dataclass(frozen=True)
class ObjectInfo:
    """A single object from a bucket listing."""

    name: str
    size: int
    content_type: str
    updated: str
    raw: dict[str, Any]


@dataclass(frozen=True)
class ObjectListing:
    """One page of a bucket listing."""

    items: tuple[ObjectInfo, ...]
    prefixes: tuple[str, ...]
    next_page_token: str | None
    # Response body with item names and prefixes decoded; id, selfLink and
    # mediaLink keep their URL encoding
    raw: dict[str, Any]

    @property
    def names(self) -> list[str]:
        return [item.name for item in self.items]


class Bucket:
    """File operations on one Google Cloud Storage bucket.

    Authenticates during construction: an invalid configuration or a failed
    token exchange raises here, so a constructed bucket always holds a token.

    Args:
        bucket_name: Name of the bucket.
        client_email: Service account email.
        private_key: Service account private key (PEM or JSON key contents).
        private_key_file: Path to a file holding ``private_key``.
        client_id: OAuth2 client ID.
        client_secret: OAuth2 client secret.
        refresh_token: OAuth2 refresh token.
        http_client: Client for all HTTP calls. When omitted the bucket
            creates one and closes it in ``close()``.
        clock: Returns the current Unix time.

    Raises:
        ConfigError: If bucket_name is empty or no credential set is complete.
        NotFoundError: If private_key_file does not exist.
        KeyParseError: If the private key cannot be parsed.
        AuthError: If the initial token exchange fails.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        client_email: str | None = None,
        private_key: str | None = None,
        private_key_file: str | Path | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not bucket_name:
            raise ConfigError("Required parameter bucket_name missing")

        credentials = resolve_credentials(
            client_email=client_email,
            private_key=private_key,
            private_key_file=private_key_file,
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
        )

        self._bucket_name = bucket_name
        self._owns_client = http_client is None
        self._http = http_client if http_client is not None else create_http_client()
        try:
            self._tokens = TokenManager(
                credentials,
                TokenExchanger(self._http, clock=clock),
                clock=clock,
            )
        except BaseException:
            self.close()
            raise
        self._transport = StorageTransport(self._http)
        logger.info(
            "Authenticated to bucket {} using {} credentials",
            bucket_name,
            credentials.auth_mode.value,
        )

    @classmethod
    def from_settings(
        cls,
        settings: BucketSettings | None = None,
        http_client: httpx.Client | None = None,
    ) -> Bucket:
        """Create a bucket from ``GCS_*`` environment settings."""
        if settings is None:
            from extrabucket.config import get_settings

            settings = get_settings()
        return cls(
            settings.bucket_name,
            client_email=settings.client_email,
            private_key=settings.private_key,
            private_key_file=settings.private_key_file,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            refresh_token=settings.refresh_token,
            http_client=http_client,
        )

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    @property
    def auth_mode(self) -> AuthMode:
        return self._tokens.auth_mode

    @property
    def token_manager(self) -> TokenManager:
        return self._tokens

    def list_files(self, prefix: str | None = None, page_token: str | None = None) -> ObjectListing:
        """List objects in the bucket, optionally under a name prefix.

        The listing endpoint returns ``/`` in object names as ``%2F``; names
        and prefixes are decoded back before they are returned.

        Args:
            prefix: Only list objects whose names start with this.
            page_token: ``next_page_token`` of a previous listing page.

        Raises:
            ApiError: If the API call fails.
        """
        token = self._tokens.ensure_valid_token()
        response = self._transport.send(
            endpoints.list_objects(self._bucket_name, prefix, page_token),
            token,
            operation="list_files",
        )
        return _parse_listing(self._transport.json_body(response, operation="list_files"))

    def upload_file(
        self,
        local_path: str | Path,
        content_type: str | None = None,
        destination: str | None = None,
    ) -> dict[str, Any]:
        """Upload a file in a single request.

        The object is named ``destination/<basename of local_path>``, or just
        the basename when no destination is given. The whole file is sent in
        one request; there is no checksum validation and no resuming.

        Args:
            local_path: File to upload.
            content_type: MIME type; defaults to application/octet-stream.
            destination: Folder-like prefix for the object name.

        Returns:
            The uploaded object's metadata.

        Raises:
            NotFoundError: If local_path does not exist.
            ApiError: If the upload fails.
        """
        file_path = require_file(local_path)
        object_name = _join_destination(destination, file_path.name)
        content_type = content_type or DEFAULT_CONTENT_TYPE

        token = self._tokens.ensure_valid_token()
        response = self._transport.send(
            endpoints.simple_upload(
                self._bucket_name, object_name, file_path.read_bytes(), content_type
            ),
            token,
            operation="upload_file",
            timeout=TRANSFER_TIMEOUT,
        )
        logger.info("Uploaded {} to gs://{}/{}", file_path, self._bucket_name, object_name)
        return self._transport.json_body(response, operation="upload_file")

    def upload_file_resumable(
        self,
        object_name: str,
        local_path: str | Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        *,
        content_type: str | None = None,
        bucket: str | None = None,
    ) -> dict[str, Any]:
        """Upload a file in chunks through a resumable upload session.

        Args:
            object_name: Full name of the object to create.
            local_path: File to upload.
            chunk_size: Bytes per PUT. Must be a multiple of 256 KiB unless
                the whole file fits in one chunk.
            content_type: MIME type recorded on the object.
            bucket: Target bucket; defaults to this bucket.

        Returns:
            The finalized object's metadata.

        Raises:
            ConfigError: If object_name is empty or chunk_size is invalid.
            NotFoundError: If local_path does not exist.
            ApiError: If the session cannot be started or a chunk is rejected.
        """
        if not object_name:
            raise ConfigError("missing object_name for upload_file_resumable")
        file_path = require_file(local_path)
        total_size = file_path.stat().st_size
        _check_chunk_size(chunk_size, total_size)
        target = bucket or self._bucket_name

        token = self._tokens.ensure_valid_token()
        init = self._transport.send(
            endpoints.resumable_init(target, object_name, content_type),
            token,
            operation="upload_file_resumable",
            timeout=TRANSFER_TIMEOUT,
        )
        session_uri = init.headers.get("Location")
        if not session_uri:
            raise ApiError(
                "No session URI returned from initiation",
                status_code=init.status_code,
                body=init.text,
            )
        logger.debug("Resumable upload session created for {}", object_name)

        if total_size == 0:
            response = self._put_chunk(session_uri, b"", 0, 0)
            return self._transport.json_body(response, operation="upload_file_resumable")

        with contextlib.closing(iter_file_chunks(file_path, chunk_size)) as chunks:
            for offset, chunk in chunks:
                response = self._put_chunk(session_uri, chunk, offset, total_size)
                end = offset + len(chunk) - 1
                if response.status_code == RESUME_INCOMPLETE:
                    logger.info("Uploaded bytes {}-{} / {}", offset, end, total_size)
                    continue
                logger.info("Upload of gs://{}/{} completed", target, object_name)
                return self._transport.json_body(response, operation="upload_file_resumable")

        raise ApiError(
            f"Upload of {object_name} sent all {total_size} bytes "
            "but the server did not finalize the object",
            status_code=RESUME_INCOMPLETE,
        )

    def upload_file_multipart(
        self,
        local_path: str | Path,
        object_name: str,
        chunk_size_mb: int = 5,
        *,
        content_type: str | None = None,
        bucket: str | None = None,
    ) -> dict[str, Any]:
        """Resumable upload with the chunk size given in megabytes."""
        return self.upload_file_resumable(
            object_name,
            local_path,
            chunk_size_mb * 1024 * 1024,
            content_type=content_type,
            bucket=bucket,
        )

    def download_file(self, object_name: str, destination_dir: str | Path) -> Path:
        """Download an object into a local directory.

        The file is written to ``destination_dir/object_name``; folders for
        names containing ``/`` are created as needed.

        Returns:
            Path of the downloaded file.

        Raises:
            ConfigError: If object_name is empty or escapes destination_dir.
            NotFoundError: If destination_dir does not exist.
            ApiError: If the download fails.
        """
        if not object_name:
            raise ConfigError("missing object_name for download_file")
        save_dir = Path(destination_dir)
        if not save_dir.is_dir():
            raise NotFoundError(str(save_dir), "Save directory")

        destination = save_dir / object_name
        if save_dir.resolve() not in destination.resolve().parents:
            raise ConfigError(f"Object name {object_name!r} resolves outside {save_dir}")
        destination.parent.mkdir(parents=True, exist_ok=True)

        token = self._tokens.ensure_valid_token()
        written = self._transport.download(
            endpoints.download_object(self._bucket_name, object_name),
            token,
            destination,
        )
        logger.info("Downloaded gs://{}/{} ({} bytes)", self._bucket_name, object_name, written)
        return destination

    def remove_file(self, object_name: str) -> None:
        """Delete an object. Deleted objects cannot be restored.

        Raises:
            ConfigError: If object_name is empty.
            ApiError: If the API call fails.
        """
        if not object_name:
            raise ConfigError("missing parameter to remove_file")

        token = self._tokens.ensure_valid_token()
        self._transport.send(
            endpoints.delete_object(self._bucket_name, object_name),
            token,
            operation="remove_file",
        )
        logger.info("Removed gs://{}/{}", self._bucket_name, object_name)

    def close(self) -> None:
        """Close the HTTP client if this bucket created it."""
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> Bucket:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _put_chunk(self, session_uri: str, chunk: bytes, offset: int, total_size: int) -> httpx.Response:
        try:
            return self._transport.send(
                endpoints.resumable_chunk(session_uri, chunk, offset, total_size),
                None,
                operation="upload_file_resumable",
                timeout=TRANSFER_TIMEOUT,
                accept_status=(RESUME_INCOMPLETE,),
            )
        except ApiError as e:
            raise ApiError(
                f"Upload failed at byte {offset}: {e}",
                status_code=e.status_code,
                body=e.body,
            ) from e


def _join_destination(destination: str | None, filename: str) -> str:
    if not destination:
        return filename
    folder = destination.rstrip("/")
    return f"{folder}/{filename}" if folder else filename


def _check_chunk_size(chunk_size: int, total_size: int) -> None:
    if chunk_size <= 0:
        raise ConfigError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_size < total_size and chunk_size % CHUNK_ALIGNMENT:
        raise ConfigError(
            f"chunk_size must be a multiple of {CHUNK_ALIGNMENT} bytes, got {chunk_size}"
        )


def _decode_separators(value: str) -> str:
    return _ENCODED_SEPARATOR.sub("/", value)


def _parse_listing(payload: dict[str, Any]) -> ObjectListing:
    """Build a listing, decoding ``%2F`` in item names and prefixes only.

    Link fields are real URLs where ``%2F`` is the correct escape for ``/``,
    so they are left as the API sent them.
    """
    raw_items = []
    items: list[ObjectInfo] = []
    for item in payload.get("items", []):
        fixed = {**item, "name": _decode_separators(item.get("name", ""))}
        raw_items.append(fixed)
        items.append(
            ObjectInfo(
                name=fixed["name"],
                size=int(fixed.get("size", 0)),
                content_type=fixed.get("contentType", ""),
                updated=fixed.get("updated", ""),
                raw=fixed,
            )
        )
    prefixes = tuple(_decode_separators(p) for p in payload.get("prefixes", []))

    raw = dict(payload)
    if "items" in payload:
        raw["items"] = raw_items
    if "prefixes" in payload:
        raw["prefixes"] = list(prefixes)

    return ObjectListing(
        items=tuple(items),
        prefixes=prefixes,
        next_page_token=payload.get("nextPageToken"),
        raw=raw,
    )
