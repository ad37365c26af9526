"""Dependency definitions for the ReceiptRocket API server."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from receiptrocket.ai.extractor import ReceiptFieldExtractor, build_receipt_extractor
from receiptrocket.auth.verifier import JwtIdentityVerifier, bearer_token
from receiptrocket.backend import Backend
from receiptrocket.config import Settings, get_settings
from receiptrocket.db.profiles import UserProfileStore
from receiptrocket.db.receipts import ReceiptMetadataStore
from receiptrocket.storage.blobs import StoredBlob
from receiptrocket.workflow import BlobStore, FieldExtractor, IdentityVerifier, ReceiptWorkflow


class BackendBlobStore:
    """Blob store view that defers backend initialization until first use."""

    def __init__(self, backend: Backend) -> None:
        self._backend = backend

    def put(self, content: bytes, content_type: Optional[str]) -> StoredBlob:
        return self._backend.blob_store.put(content, content_type)

    def delete(self, key: str) -> bool:
        return self._backend.blob_store.delete(key)


def get_backend(request: Request) -> Backend:
    """Return the backend handle created with the application."""

    return request.app.state.backend


def get_id_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """Read the caller's identity token from the ``Authorization`` header."""

    return bearer_token(authorization)


def get_verifier(backend: Backend = Depends(get_backend)) -> IdentityVerifier:
    return JwtIdentityVerifier(backend)


def get_extractor(settings: Settings = Depends(get_settings)) -> FieldExtractor:
    extractor: ReceiptFieldExtractor = build_receipt_extractor(settings)
    return extractor


def get_blob_store(backend: Backend = Depends(get_backend)) -> BlobStore:
    return BackendBlobStore(backend)


def get_metadata_store(backend: Backend = Depends(get_backend)) -> ReceiptMetadataStore:
    return ReceiptMetadataStore(backend)


def get_profile_store(backend: Backend = Depends(get_backend)) -> UserProfileStore:
    return UserProfileStore(backend)


def get_workflow(
    settings: Settings = Depends(get_settings),
    verifier: IdentityVerifier = Depends(get_verifier),
    extractor: FieldExtractor = Depends(get_extractor),
    blobs: BlobStore = Depends(get_blob_store),
    metadata: ReceiptMetadataStore = Depends(get_metadata_store),
    profiles: UserProfileStore = Depends(get_profile_store),
) -> ReceiptWorkflow:
    return ReceiptWorkflow(
        verifier=verifier,
        extractor=extractor,
        blobs=blobs,
        metadata=metadata,
        profiles=profiles,
        max_upload_bytes=settings.max_upload_bytes,
    )
