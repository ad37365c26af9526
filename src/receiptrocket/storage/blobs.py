"""Filesystem-backed object store for receipt images with signed URL support."""

from __future__ import annotations

import hashlib
import hmac
import logging
import mimetypes
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote, urlsplit
from uuid import uuid4

from receiptrocket.errors import StoreIOError, StorePermissionDenied, StoreUnavailable

logger = logging.getLogger(__name__)

KEY_PREFIX = "receipts"
DEFAULT_EXTENSION = ".jpg"
BLOB_ROUTE = "/blobs/"

_EXTENSION_OVERRIDES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/heic": ".heic",
    "image/webp": ".webp",
}


@dataclass(frozen=True)
class StoredBlob:
    """Location of a freshly written blob."""

    key: str
    url: str


def _extension_for(content_type: Optional[str]) -> str:
    if not content_type:
        return DEFAULT_EXTENSION
    normalized = content_type.split(";", 1)[0].strip().lower()
    if normalized in _EXTENSION_OVERRIDES:
        return _EXTENSION_OVERRIDES[normalized]
    return mimetypes.guess_extension(normalized) or DEFAULT_EXTENSION


class LocalBlobStore:
    """Store receipt images beneath a root directory addressed by generated keys."""

    def __init__(
        self,
        root: Path,
        *,
        signing_key: str,
        public_base_url: str,
        url_ttl_seconds: int,
    ) -> None:
        self._root = root
        self._signing_key = signing_key.encode("utf-8")
        self._public_base_url = public_base_url.rstrip("/")
        self._url_ttl_seconds = max(1, int(url_ttl_seconds))

    @property
    def root(self) -> Path:
        return self._root

    def put(self, content: bytes, content_type: Optional[str]) -> StoredBlob:
        """Write bytes under a new unique key and return the key plus a signed URL."""

        self._ensure_root()
        key = f"{KEY_PREFIX}/{uuid4().hex}{_extension_for(content_type)}"
        target = self._resolve(key)
        tmp_path = target.with_name(f".{target.name}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("wb") as handle:
                handle.write(content)
            os.replace(tmp_path, target)
        except PermissionError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StorePermissionDenied(
                f"Permission denied writing receipt image to {self._root}. "
                "Grant the service account write access to the blob root or set "
                "RECEIPTROCKET_BLOB_ROOT to a writable directory.",
                diagnostic=str(exc),
            ) from exc
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StoreIOError(f"Failed to write receipt image: {exc}") from exc

        logger.debug("Stored blob key=%s size=%s", key, len(content))
        return StoredBlob(key=key, url=self.signed_url(key))

    def delete(self, key: str) -> bool:
        """Remove a blob; returns False when it does not exist."""

        self._ensure_root()
        target = self._resolve(key)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.info("Blob %s already absent from store", key)
            return False
        except PermissionError as exc:
            raise StorePermissionDenied(
                f"Permission denied deleting receipt image {key}. "
                "Grant the service account delete access to the blob root.",
                diagnostic=str(exc),
            ) from exc
        except OSError as exc:
            raise StoreIOError(f"Failed to delete receipt image {key}: {exc}") from exc
        return True

    def read(self, key: str) -> bytes:
        """Return blob bytes; raises FileNotFoundError when missing."""

        self._ensure_root()
        target = self._resolve(key)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise
        except PermissionError as exc:
            raise StorePermissionDenied(
                f"Permission denied reading receipt image {key}.",
                diagnostic=str(exc),
            ) from exc
        except OSError as exc:
            raise StoreIOError(f"Failed to read receipt image {key}: {exc}") from exc

    def signed_url(self, key: str, expires_in: Optional[int] = None) -> str:
        lifetime = self._url_ttl_seconds if expires_in is None else int(expires_in)
        expires = int(time.time()) + lifetime
        signature = self._sign(key, expires)
        return (
            f"{self._public_base_url}{BLOB_ROUTE}{quote(key)}"
            f"?expires={expires}&signature={signature}"
        )

    def verify_signature(
        self,
        key: str,
        expires: int,
        signature: str,
        *,
        now: Optional[float] = None,
    ) -> bool:
        current = time.time() if now is None else now
        if expires < current:
            return False
        expected = self._sign(key, expires)
        return hmac.compare_digest(expected, signature)

    @staticmethod
    def key_from_url(url: str) -> Optional[str]:
        """Derive a blob key from a signed URL, or None when the URL is not ours."""

        if not url:
            return None
        parts = urlsplit(url)
        path = unquote(parts.path)
        marker = path.find(BLOB_ROUTE)
        if marker == -1:
            return None
        key = path[marker + len(BLOB_ROUTE):]
        return key or None

    @staticmethod
    def media_type_for(key: str) -> str:
        guessed, _ = mimetypes.guess_type(key)
        return guessed or "application/octet-stream"

    def _sign(self, key: str, expires: int) -> str:
        message = f"{key}\n{expires}".encode("utf-8")
        return hmac.new(self._signing_key, message, hashlib.sha256).hexdigest()

    def _ensure_root(self) -> None:
        if not self._root.is_dir():
            raise StoreUnavailable(
                f"Blob store root {self._root} does not exist. "
                "Create it or enable RECEIPTROCKET_BLOB_AUTO_CREATE."
            )

    def _resolve(self, key: str) -> Path:
        root = self._root.resolve()
        target = (root / key).resolve()
        if target == root or root not in target.parents:
            raise ValueError(f"Blob key {key!r} escapes the store root")
        return target


__all__ = ["LocalBlobStore", "StoredBlob"]
