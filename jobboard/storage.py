"""
Blob storage abstraction for Firebase Cloud Storage and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Protocol
from urllib.parse import quote, unquote, urlparse
import posixpath

import requests
from firebase_admin import storage as firebase_storage
from google.api_core import exceptions as gcloud_exceptions

from jobboard.errors import StorageFailed

# V4 signing caps expiry at seven days; anything longer has to be V2-signed.
V4_MAX_EXPIRY = timedelta(days=7)


class BlobNotFound(Exception):
    """Raised by BlobStore.delete when the object is already gone."""


class BlobStore(Protocol):
    """Defines the operations the services need from object storage."""

    def upload_bytes(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...

    def signed_url(self, key: str, expires_in: timedelta) -> str:
        ...


def key_from_signed_url(url: str, prefix: str, uid: str) -> Optional[str]:
    """
    Re-derive a storage key from a previously minted signed URL.

    Only used for records that predate the stored ``*_path`` fields. The URL
    path ends with the URL-encoded object name; its basename is the file name
    under ``{prefix}/{uid}/``.
    """
    path = unquote(urlparse(url).path or "")
    file_name = posixpath.basename(path)
    if not file_name:
        return None
    return f"{prefix}/{uid}/{file_name}"


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://storage.example.test/jobboard-test"
    stored_objects: dict = field(default_factory=dict)
    content_types: dict = field(default_factory=dict)

    def upload_bytes(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        self.stored_objects[key] = bytes(data)
        self.content_types[key] = content_type

    def exists(self, key: str) -> bool:
        return key in self.stored_objects

    def delete(self, key: str) -> None:
        if key not in self.stored_objects:
            raise BlobNotFound(key)
        del self.stored_objects[key]
        self.content_types.pop(key, None)

    def signed_url(self, key: str, expires_in: timedelta) -> str:
        seconds = int(expires_in.total_seconds())
        return f"{self.base_url}/{quote(key, safe='')}?Expires={seconds}"

    def get_bytes(self, key: str) -> bytes:
        stored = self.stored_objects.get(key)
        if stored is None:
            raise FileNotFoundError(key)
        return stored

    def reset(self) -> None:
        self.stored_objects.clear()
        self.content_types.clear()


@dataclass
class FirebaseStorageClient:
    """
    Cloud Storage client for the project's default Firebase bucket.
    """

    bucket_name: Optional[str] = None
    app: Optional[Any] = None

    def __post_init__(self):
        self._bucket = firebase_storage.bucket(self.bucket_name, app=self.app)

    def upload_bytes(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        blob = self._bucket.blob(key)
        try:
            blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
        except (gcloud_exceptions.GoogleAPICallError, requests.RequestException) as e:
            raise StorageFailed(f"Upload of {key} failed", detail=str(e)) from e

    def exists(self, key: str) -> bool:
        try:
            return self._bucket.blob(key).exists()
        except gcloud_exceptions.GoogleAPICallError as e:
            raise StorageFailed(f"Existence check of {key} failed", detail=str(e)) from e

    def delete(self, key: str) -> None:
        try:
            self._bucket.blob(key).delete()
        except gcloud_exceptions.NotFound as e:
            raise BlobNotFound(key) from e
        except gcloud_exceptions.GoogleAPICallError as e:
            raise StorageFailed(f"Delete of {key} failed", detail=str(e)) from e

    def signed_url(self, key: str, expires_in: timedelta) -> str:
        version = "v4" if expires_in <= V4_MAX_EXPIRY else "v2"
        return self._bucket.blob(key).generate_signed_url(
            expiration=expires_in, version=version, method="GET"
        )
