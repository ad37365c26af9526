"""Object storage for receipt images."""

from .blobs import LocalBlobStore, StoredBlob

__all__ = ["LocalBlobStore", "StoredBlob"]
