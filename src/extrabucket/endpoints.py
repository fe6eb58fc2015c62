"""Request builders for the Cloud Storage JSON API endpoints.

Each endpoint gets a small builder returning a ``StorageRequest``. Object
names are percent-encoded when they go into a URL path (``/`` included, as
the JSON API requires) and passed as query parameters otherwise, so names
containing ``&``, ``?``, ``#`` or spaces reach the API intact.
"""

from __future__ import annotations

import json
import urllib.parse
from dataclasses import dataclass, field

STORAGE_API_BASE = "https://storage.googleapis.com/storage/v1"
UPLOAD_API_BASE = "https://storage.googleapis.com/upload/storage/v1"


@dataclass(frozen=True)
class StorageRequest:
    """A single HTTP call against the storage API, minus authorization."""

    method: str
    url: str
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None


def quote_object_name(object_name: str) -> str:
    """Encode an object name for use as a single URL path segment."""
    return urllib.parse.quote(object_name, safe="")


def _objects_url(bucket: str) -> str:
    return f"{STORAGE_API_BASE}/b/{quote_object_name(bucket)}/o"


def list_objects(bucket: str, prefix: str | None = None, page_token: str | None = None) -> StorageRequest:
    params: dict[str, str] = {}
    if prefix:
        params["prefix"] = prefix
    if page_token:
        params["pageToken"] = page_token
    return StorageRequest("GET", _objects_url(bucket), params=params)


def simple_upload(bucket: str, object_name: str, content: bytes, content_type: str) -> StorageRequest:
    return StorageRequest(
        "POST",
        f"{UPLOAD_API_BASE}/b/{quote_object_name(bucket)}/o",
        params={"name": object_name, "uploadType": "media"},
        headers={"Content-Type": content_type},
        content=content,
    )


def resumable_init(
    bucket: str, object_name: str, content_type: str | None = None
) -> StorageRequest:
    headers = {"Content-Type": "application/json"}
    if content_type:
        # Content type of the object itself, applied when the session finalizes
        headers["X-Upload-Content-Type"] = content_type
    return StorageRequest(
        "POST",
        f"{UPLOAD_API_BASE}/b/{quote_object_name(bucket)}/o",
        params={"uploadType": "resumable"},
        headers=headers,
        content=json.dumps({"name": object_name}).encode("utf-8"),
    )


def resumable_chunk(session_uri: str, chunk: bytes, start: int, total_size: int) -> StorageRequest:
    """PUT one chunk of a resumable upload.

    A zero-length upload is finalized with ``bytes */0``.
    """
    if total_size == 0:
        content_range = "bytes */0"
    else:
        end = start + len(chunk) - 1
        content_range = f"bytes {start}-{end}/{total_size}"
    return StorageRequest(
        "PUT",
        session_uri,
        headers={
            "Content-Length": str(len(chunk)),
            "Content-Range": content_range,
        },
        content=chunk,
    )


def download_object(bucket: str, object_name: str) -> StorageRequest:
    return StorageRequest(
        "GET",
        f"{_objects_url(bucket)}/{quote_object_name(object_name)}",
        params={"alt": "media"},
    )


def delete_object(bucket: str, object_name: str) -> StorageRequest:
    return StorageRequest("DELETE", f"{_objects_url(bucket)}/{quote_object_name(object_name)}")
