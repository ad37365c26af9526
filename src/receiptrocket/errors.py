"""Error taxonomy shared by every receipt workflow operation."""

from __future__ import annotations

from typing import Optional


class ReceiptRocketError(Exception):
    """Base class for failures surfaced to callers with a specific kind."""

    kind = "Internal"
    http_status = 500

    def __init__(self, message: str, *, diagnostic: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        # Operator-facing detail; never part of the caller-facing message.
        self.diagnostic = diagnostic

    def to_payload(self) -> dict[str, object]:
        return {"success": False, "kind": self.kind, "detail": self.message}


class InvalidInput(ReceiptRocketError):
    kind = "InvalidInput"
    http_status = 400


class UploadTooLarge(InvalidInput):
    http_status = 413


class Unauthenticated(ReceiptRocketError):
    kind = "Unauthenticated"
    http_status = 401


class Forbidden(ReceiptRocketError):
    kind = "Forbidden"
    http_status = 403


class NotFound(ReceiptRocketError):
    kind = "NotFound"
    http_status = 404


class ExtractionFailed(ReceiptRocketError):
    kind = "ExtractionFailed"
    http_status = 502


class StoreUnavailable(ReceiptRocketError):
    kind = "StoreUnavailable"
    http_status = 503


class StorePermissionDenied(ReceiptRocketError):
    kind = "StorePermissionDenied"
    http_status = 500


class StoreIOError(ReceiptRocketError):
    kind = "StoreIOError"
    http_status = 503


class MetadataStoreUnavailable(ReceiptRocketError):
    kind = "MetadataStoreUnavailable"
    http_status = 503


class MetadataPermissionDenied(ReceiptRocketError):
    kind = "MetadataPermissionDenied"
    http_status = 500


class QueryUnsupported(ReceiptRocketError):
    kind = "QueryUnsupported"
    http_status = 503


class BackendConfigurationError(ReceiptRocketError):
    """Raised when the backend handle cannot initialize from the current settings."""

    kind = "BackendMisconfigured"
    http_status = 500


__all__ = [
    "ReceiptRocketError",
    "InvalidInput",
    "UploadTooLarge",
    "Unauthenticated",
    "Forbidden",
    "NotFound",
    "ExtractionFailed",
    "StoreUnavailable",
    "StorePermissionDenied",
    "StoreIOError",
    "MetadataStoreUnavailable",
    "MetadataPermissionDenied",
    "QueryUnsupported",
    "BackendConfigurationError",
]
