"""Artifact storage with expiring signed download links."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Protocol

from jose import JWTError, jwt

from config import Settings

logger = logging.getLogger(__name__)

DOWNLOAD_TOKEN_TYPE = "vc_download"


class StorageError(RuntimeError):
    """Raised when an object cannot be stored, located or signed."""


class ObjectStorage(Protocol):
    async def upload(self, data: bytes, key: str, content_type: str) -> str: ...

    async def get_signed_download_url(self, key: str, ttl_seconds: int) -> str: ...

    async def open(self, key: str) -> Path: ...

    async def delete(self, key: str) -> None: ...


class LocalObjectStorage:
    """Filesystem-backed object store.

    Keys are relative POSIX paths (``users/<id>/resumes/<ts>.pdf``). Download
    URLs embed a signed JWT naming the key and expiry; the files router
    resolves it back to a path.
    """

    def __init__(
        self,
        root_dir: str,
        *,
        signing_secret: str,
        public_base_url: str,
        algorithm: str = "HS256",
    ) -> None:
        self.root = Path(root_dir).resolve()
        self._secret = signing_secret
        self._algorithm = algorithm
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        candidate = (self.root / key).resolve()
        if candidate == self.root or self.root not in candidate.parents:
            raise StorageError(f"Invalid object key: {key}")
        return candidate

    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        destination = self.path_for(key)

        def _write() -> None:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(f"Upload failed for {key}: {exc}") from exc
        logger.info("Artifact stored: %s (%s, %s bytes)", key, content_type, len(data))
        return key

    async def get_signed_download_url(self, key: str, ttl_seconds: int) -> str:
        path = self.path_for(key)
        if not path.is_file():
            raise StorageError(f"Object not found: {key}")
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=max(int(ttl_seconds), 1))
        claims: Dict[str, Any] = {
            "key": key,
            "type": DOWNLOAD_TOKEN_TYPE,
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return f"{self.public_base_url}/files/download/{token}"

    def resolve_download_token(self, token: str) -> Path:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise StorageError("Invalid or expired download link.") from exc
        if payload.get("type") != DOWNLOAD_TOKEN_TYPE or not payload.get("key"):
            raise StorageError("Invalid download link.")
        path = self.path_for(str(payload["key"]))
        if not path.is_file():
            raise StorageError("File no longer exists.")
        return path

    async def open(self, key: str) -> Path:
        path = self.path_for(key)
        if not path.is_file():
            raise StorageError(f"Object not found: {key}")
        return path

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        await asyncio.to_thread(path.unlink, True)
        logger.info("Artifact deleted: %s", key)


def build_storage(settings: Settings) -> LocalObjectStorage:
    return LocalObjectStorage(
        settings.ARTIFACT_STORAGE_DIR,
        signing_secret=settings.JWT_SECRET,
        public_base_url=settings.PUBLIC_API_URL,
        algorithm=settings.JWT_ALGORITHM,
    )
