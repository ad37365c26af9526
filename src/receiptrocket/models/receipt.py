"""Pydantic models for extracted receipt data and persisted receipts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ReceiptFields(BaseModel):
    """Structured fields returned by the extraction model."""

    company_name: str = Field(description="The name of the company on the receipt.")
    description: str = Field(
        description=(
            "A short, one or two word description of what the receipt is for, "
            'e.g. "Groceries", "Dinner", "Gas".'
        )
    )
    gst: Optional[str] = Field(description="The GST amount on the receipt, if available.")
    pst: Optional[str] = Field(description="The PST amount on the receipt, if available.")
    total_amount: str = Field(description="The total amount on the receipt.")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        from_attributes=True,
    )


class NewReceiptRecord(ReceiptFields):
    """Receipt content ready to be appended to the metadata store."""

    user_id: str
    date: datetime
    image: str
    image_path: Optional[str] = None

    @field_validator("image")
    @classmethod
    def _require_image_handle(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("A stored image handle is required before metadata is written.")
        return value


class Receipt(NewReceiptRecord):
    """A persisted receipt owned by a single user."""

    id: str


class UserProfile(BaseModel):
    """Profile details captured from a verified identity token."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoURL")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class DeleteResult(BaseModel):
    """Outcome of a receipt deletion request."""

    success: bool
    message: str
