"""Pydantic models defining shared data contracts."""

from receiptrocket.models.receipt import (
    DeleteResult,
    NewReceiptRecord,
    Receipt,
    ReceiptFields,
    UserProfile,
)

__all__ = [
    "DeleteResult",
    "NewReceiptRecord",
    "Receipt",
    "ReceiptFields",
    "UserProfile",
]
