"""Object storage for proof-of-pickup/delivery and profile images.

Objects live under ``FILE_LOCAL_DIR`` (or in memory for tests). Access is by
signed URL: a JWT carrying the object key, valid for ``SIGNED_URL_TTL_SECONDS``
(one year), redeemed by ``GET /api/v1/files/{token}``.
"""

from __future__ import annotations

import base64
import binascii
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Protocol

from jose import jwt, JWTError

from app.core.config import settings
from app.core.errors import TransitionValidationError

ALGO = "HS256"
PROOF_BUCKET = "contracts"
PROFILE_BUCKET = "profiles"

_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


class StorageClient(Protocol):
    def put_bytes(self, key: str, content: bytes, content_type: str) -> None:
        ...

    def get_bytes(self, key: str) -> bytes:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    objects: dict[str, tuple[bytes, str]] = field(default_factory=dict)

    def put_bytes(self, key: str, content: bytes, content_type: str) -> None:
        self.objects[key] = (content, content_type)

    def get_bytes(self, key: str) -> bytes:
        stored = self.objects.get(key)
        if stored is None:
            raise FileNotFoundError(key)
        return stored[0]

    def exists(self, key: str) -> bool:
        return key in self.objects

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)


@dataclass
class LocalStorageClient:
    base_dir: str

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.base_dir, key))
        if not path.startswith(os.path.abspath(self.base_dir) + os.sep):
            raise ValueError("invalid object key")
        return path

    def put_bytes(self, key: str, content: bytes, content_type: str) -> None:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)

    def get_bytes(self, key: str) -> bytes:
        with open(self._path(key), "rb") as f:
            return f.read()

    def exists(self, key: str) -> bool:
        return os.path.isfile(self._path(key))

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.isfile(path):
            os.remove(path)


@lru_cache(maxsize=1)
def get_storage_client() -> StorageClient:
    return LocalStorageClient(base_dir=settings.FILE_LOCAL_DIR or "./data/files")


def decode_base64_image(data: str, field_name: str = "image") -> bytes:
    """Accepts raw base64 or a ``data:image/...;base64,`` URI."""
    if not data:
        raise TransitionValidationError(f"{field_name} is required", [field_name])
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise TransitionValidationError(f"{field_name} is not valid base64", [field_name])
    if not content:
        raise TransitionValidationError(f"{field_name} is empty", [field_name])
    return content


def upload_image(storage: StorageClient, *, bucket: str, owner_id: str, kind: str,
                 content: bytes, content_type: str = "image/jpeg") -> str:
    ext = _EXTENSIONS.get(content_type, "jpg")
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    key = f"{bucket}/{owner_id}/{kind}_{stamp}_{uuid.uuid4().hex[:8]}.{ext}"
    storage.put_bytes(key, content, content_type)
    return key


def create_signed_token(key: str, expires_in: int | None = None) -> str:
    if expires_in is None:
        expires_in = settings.SIGNED_URL_TTL_SECONDS
    exp = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    return jwt.encode({"key": key, "type": "file", "exp": exp}, settings.SECRET_KEY, algorithm=ALGO)


def create_signed_url(key: str | None, expires_in: int | None = None) -> str | None:
    if not key:
        return None
    token = create_signed_token(key, expires_in)
    base = (settings.API_PUBLIC_URL or "").rstrip("/")
    return f"{base}/api/v1/files/{token}"


def resolve_signed_token(token: str) -> str:
    """Object key for a signed token. Raises ValueError when invalid or expired."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])
    except JWTError as e:
        raise ValueError("invalid or expired file token") from e
    if payload.get("type") != "file" or not payload.get("key"):
        raise ValueError("invalid file token")
    return payload["key"]
