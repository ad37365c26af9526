"""Receipt metadata persistence helpers."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, List, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from receiptrocket.backend import Backend
from receiptrocket.errors import (
    MetadataPermissionDenied,
    MetadataStoreUnavailable,
    QueryUnsupported,
    ReceiptRocketError,
)
from receiptrocket.models.receipt import NewReceiptRecord, Receipt

from .models import ReceiptORM

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_naive_utc(value: datetime) -> datetime:
    return _as_utc(value).replace(tzinfo=None)


def _to_receipt_model(row: ReceiptORM) -> Receipt:
    return Receipt.model_validate(
        {
            "id": row.id,
            "user_id": row.user_id,
            "date": _as_utc(row.date),
            "company_name": row.company_name,
            "description": row.description,
            "gst": row.gst,
            "pst": row.pst,
            "total_amount": row.total_amount,
            "image": row.image,
            "image_path": row.image_path,
        }
    )


def translate_database_error(exc: SQLAlchemyError) -> ReceiptRocketError:
    """Map a SQLAlchemy failure onto the metadata store error kinds."""

    detail = str(exc.orig if isinstance(exc, DBAPIError) and exc.orig is not None else exc)
    lowered = detail.lower()
    if "index" in lowered and ("no such" in lowered or "missing" in lowered):
        return QueryUnsupported(
            "The receipt listing query requires the (user_id, date) index. "
            "Recreate the schema or add index ix_receipts_user_id_date.",
            diagnostic=detail,
        )
    if "readonly" in lowered or "read-only" in lowered or "permission" in lowered:
        return MetadataPermissionDenied(
            "The metadata store rejected the write. "
            "Grant the service write access to the database file and its directory.",
            diagnostic=detail,
        )
    return MetadataStoreUnavailable(
        "The metadata store is unavailable or not provisioned.",
        diagnostic=detail,
    )


class ReceiptMetadataStore:
    """Per-user receipt records kept in the relational metadata store."""

    def __init__(self, backend: Backend) -> None:
        self._backend = backend

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        try:
            with self._backend.session_scope() as session:
                yield session
        except SQLAlchemyError as exc:
            error = translate_database_error(exc)
            logger.error("Metadata store failure kind=%s detail=%s", error.kind, error.diagnostic)
            raise error from exc

    def append(self, record: NewReceiptRecord) -> str:
        """Persist a new receipt and return its generated identifier."""

        if not record.image:
            raise ValueError("Receipt image handle is required before appending metadata.")
        receipt_id = uuid4().hex
        with self._session() as session:
            session.add(
                ReceiptORM(
                    id=receipt_id,
                    user_id=record.user_id,
                    date=_to_naive_utc(record.date),
                    company_name=record.company_name,
                    description=record.description,
                    gst=record.gst,
                    pst=record.pst,
                    total_amount=record.total_amount,
                    image=record.image,
                    image_path=record.image_path,
                )
            )
        logger.debug("Appended receipt id=%s user=%s", receipt_id, record.user_id)
        return receipt_id

    def list_by_owner(self, user_id: str) -> List[Receipt]:
        """Return the owner's receipts sorted by newest capture date first."""

        with self._session() as session:
            rows = (
                session.execute(
                    select(ReceiptORM)
                    .where(ReceiptORM.user_id == user_id)
                    .order_by(ReceiptORM.date.desc(), ReceiptORM.id.asc())
                )
                .scalars()
                .all()
            )
            return [_to_receipt_model(row) for row in rows]

    def get(self, receipt_id: str) -> Optional[Receipt]:
        with self._session() as session:
            record = session.get(ReceiptORM, receipt_id)
            if record is None:
                return None
            return _to_receipt_model(record)

    def delete_by_id(self, receipt_id: str) -> bool:
        """Delete a receipt record; returns False when it was already gone."""

        with self._session() as session:
            record = session.get(ReceiptORM, receipt_id)
            if record is None:
                return False
            session.delete(record)
        return True


__all__ = ["ReceiptMetadataStore", "translate_database_error"]
