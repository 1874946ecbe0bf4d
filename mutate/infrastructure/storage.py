"""Blob storage for job inputs and output artifacts."""
from __future__ import annotations

import time
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import quote

from mutate.core.errors import StorageError


class BlobStore(Protocol):
    """Contract for object storage."""

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str: ...

    def download(self, key: str) -> bytes: ...

    def presign(self, key: str, expires_in: int) -> str: ...


def _clean_key(key: str) -> str:
    path = PurePosixPath(key)
    if path.is_absolute() or ".." in path.parts or not path.parts:
        raise StorageError("resolve", key, "keys must be relative and stay inside the store")
    return path.as_posix()


def _expiry_query(expires_in: int) -> str:
    return f"expires={int(time.time()) + int(expires_in)}"


class LocalBlobStore:
    """Stores blobs as files below ``root``."""

    def __init__(self, root: Path, *, public_url: str | None = None) -> None:
        self._root = Path(root)
        self._public_url = public_url.rstrip("/") if public_url else None

    def path_for(self, key: str) -> Path:
        return self._root / _clean_key(key)

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError("upload", key, str(exc)) from exc
        return key

    def download(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError("download", key, str(exc)) from exc

    def presign(self, key: str, expires_in: int) -> str:
        clean = _clean_key(key)
        if self._public_url:
            return f"{self._public_url}/{quote(clean)}?{_expiry_query(expires_in)}"
        return f"{self.path_for(clean).resolve().as_uri()}?{_expiry_query(expires_in)}"


class InMemoryBlobStore:
    """Dictionary-backed store used by tests and dry runs."""

    def __init__(self, *, base_url: str = "memory://blobs") -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str | None] = {}
        self._base_url = base_url.rstrip("/")

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        clean = _clean_key(key)
        self.objects[clean] = bytes(data)
        self.content_types[clean] = content_type
        return clean

    def download(self, key: str) -> bytes:
        try:
            return self.objects[_clean_key(key)]
        except KeyError as exc:
            raise StorageError("download", key, "no such object") from exc

    def presign(self, key: str, expires_in: int) -> str:
        clean = _clean_key(key)
        if clean not in self.objects:
            raise StorageError("presign", key, "no such object")
        return f"{self._base_url}/{quote(clean)}?{_expiry_query(expires_in)}"
