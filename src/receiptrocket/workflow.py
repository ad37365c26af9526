"""Receipt ingestion, listing, and deletion workflow.

Every operation authenticates the caller first and is scoped to the verified
owner. Ingestion runs strictly in order::

    validate -> authenticate -> extract -> store blob -> write metadata

and stops at the first failing step. Validation touches no backend, so
malformed uploads never reach paid inference or storage. Nothing is persisted
before the blob write, which makes extraction failures safe to retry. A
metadata write failure after a successful blob write leaves that blob orphaned;
it is logged but not cleaned up.

The workflow is at-most-once per call. A caller that retries after an
ambiguous failure can create a duplicate receipt and blob.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from receiptrocket import metrics
from receiptrocket.ai.extractor import build_data_uri
from receiptrocket.auth.verifier import VerifiedIdentity
from receiptrocket.errors import (
    Forbidden,
    InvalidInput,
    NotFound,
    ReceiptRocketError,
    UploadTooLarge,
)
from receiptrocket.models.receipt import (
    DeleteResult,
    NewReceiptRecord,
    Receipt,
    ReceiptFields,
    UserProfile,
)
from receiptrocket.storage.blobs import LocalBlobStore, StoredBlob

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class IdentityVerifier(Protocol):
    def verify(self, token: Optional[str]) -> VerifiedIdentity: ...


class FieldExtractor(Protocol):
    def extract(self, image_data_uri: str) -> ReceiptFields: ...


class BlobStore(Protocol):
    def put(self, content: bytes, content_type: Optional[str]) -> StoredBlob: ...

    def delete(self, key: str) -> bool: ...


class MetadataStore(Protocol):
    def append(self, record: NewReceiptRecord) -> str: ...

    def list_by_owner(self, user_id: str) -> List[Receipt]: ...

    def get(self, receipt_id: str) -> Optional[Receipt]: ...

    def delete_by_id(self, receipt_id: str) -> bool: ...


class ProfileStore(Protocol):
    def get_or_create(self, profile: UserProfile) -> UserProfile: ...


@dataclass(frozen=True)
class ReceiptUpload:
    """Raw upload as received from the presentation layer."""

    content: bytes
    content_type: Optional[str]
    filename: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def media_type(content_type: Optional[str]) -> str:
    """Return the bare lowercase MIME type, without parameters such as ``; name=x``."""

    return (content_type or "").split(";", 1)[0].strip().lower()


def validate_upload(upload: Optional[ReceiptUpload], max_bytes: Optional[int] = None) -> ReceiptUpload:
    """Reject missing, empty, oversized, or non-image uploads without side effects."""

    if upload is None:
        raise InvalidInput("Please select an image file.")
    if not upload.content:
        raise InvalidInput("Please select an image file.")
    if not media_type(upload.content_type).startswith("image/"):
        raise InvalidInput("Please select a valid image file.")
    if max_bytes is not None and len(upload.content) > max_bytes:
        raise UploadTooLarge(f"Receipt exceeds the {max_bytes} byte upload limit.")
    return upload


class ReceiptWorkflow:
    """Compose identity, extraction, blob, and metadata stores into receipt operations."""

    def __init__(
        self,
        *,
        verifier: IdentityVerifier,
        extractor: FieldExtractor,
        blobs: BlobStore,
        metadata: MetadataStore,
        profiles: Optional[ProfileStore] = None,
        max_upload_bytes: Optional[int] = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._verifier = verifier
        self._extractor = extractor
        self._blobs = blobs
        self._metadata = metadata
        self._profiles = profiles
        self._max_upload_bytes = max_upload_bytes
        self._clock = clock

    def process_receipt(self, id_token: Optional[str], upload: Optional[ReceiptUpload]) -> Receipt:
        """Validate, extract, and persist an uploaded receipt for the token's owner."""

        try:
            receipt = self._ingest(id_token, upload)
        except ReceiptRocketError as exc:
            metrics.INGESTIONS.labels(outcome=exc.kind).inc()
            raise
        metrics.INGESTIONS.labels(outcome="succeeded").inc()
        return receipt

    def _ingest(self, id_token: Optional[str], upload: Optional[ReceiptUpload]) -> Receipt:
        valid = validate_upload(upload, self._max_upload_bytes)
        identity = self._verifier.verify(id_token)
        content_type = media_type(valid.content_type)

        fields = self._extractor.extract(build_data_uri(content_type, valid.content))
        logger.debug(
            "Extracted receipt fields user=%s company=%s",
            identity.uid,
            fields.company_name,
        )

        stored = self._blobs.put(valid.content, content_type)

        record = NewReceiptRecord(
            **fields.model_dump(),
            user_id=identity.uid,
            date=self._clock(),
            image=stored.url,
            image_path=stored.key,
        )
        try:
            receipt_id = self._metadata.append(record)
        except ReceiptRocketError:
            logger.error(
                "Metadata write failed; blob %s is orphaned (user=%s)",
                stored.key,
                identity.uid,
                extra={"user_id": identity.uid},
            )
            raise

        logger.info(
            "Ingested receipt id=%s user=%s filename=%s",
            receipt_id,
            identity.uid,
            valid.filename,
            extra={"user_id": identity.uid},
        )
        return Receipt(id=receipt_id, **record.model_dump())

    def list_receipts(self, id_token: Optional[str]) -> List[Receipt]:
        identity = self._verifier.verify(id_token)
        return self._metadata.list_by_owner(identity.uid)

    def get_receipt(self, id_token: Optional[str], receipt_id: str) -> Receipt:
        identity = self._verifier.verify(id_token)
        return self._owned_receipt(identity.uid, receipt_id)

    def delete_receipt(self, id_token: Optional[str], receipt_id: str) -> DeleteResult:
        """Delete an owned receipt; the blob removal is best-effort."""

        identity = self._verifier.verify(id_token)
        receipt = self._owned_receipt(identity.uid, receipt_id)

        key = receipt.image_path or LocalBlobStore.key_from_url(receipt.image)
        if key:
            self._delete_blob_quietly(receipt.id, key)
        else:
            logger.warning("Receipt %s has no resolvable blob key; skipping blob delete", receipt.id)

        if not self._metadata.delete_by_id(receipt.id):
            raise NotFound(f"Receipt {receipt_id} not found.")
        logger.info(
            "Deleted receipt id=%s user=%s",
            receipt.id,
            identity.uid,
            extra={"user_id": identity.uid},
        )
        return DeleteResult(success=True, message="Receipt deleted successfully.")

    def get_profile(self, id_token: Optional[str]) -> UserProfile:
        identity = self._verifier.verify(id_token)
        profile = UserProfile(
            uid=identity.uid,
            email=identity.email,
            display_name=identity.name,
            photo_url=identity.picture,
        )
        if self._profiles is None:
            return profile
        return self._profiles.get_or_create(profile)

    def _owned_receipt(self, uid: str, receipt_id: str) -> Receipt:
        receipt = self._metadata.get(receipt_id)
        if receipt is None:
            raise NotFound(f"Receipt {receipt_id} not found.")
        if receipt.user_id != uid:
            logger.warning("User %s attempted to access receipt %s owned by another user", uid, receipt_id)
            raise Forbidden("You do not have access to this receipt.")
        return receipt

    def _delete_blob_quietly(self, receipt_id: str, key: str) -> None:
        try:
            deleted = self._blobs.delete(key)
        except (ReceiptRocketError, ValueError) as exc:
            metrics.BLOB_DELETES.labels(result="failed").inc()
            logger.warning(
                "Could not delete blob %s for receipt %s; continuing: %s",
                key,
                receipt_id,
                exc,
            )
            return
        if deleted:
            metrics.BLOB_DELETES.labels(result="deleted").inc()
        else:
            metrics.BLOB_DELETES.labels(result="missing").inc()
            logger.warning("Blob %s for receipt %s was already missing", key, receipt_id)


__all__ = ["ReceiptUpload", "ReceiptWorkflow", "validate_upload"]
