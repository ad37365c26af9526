"""Tests for the receipt metadata store and profile store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from receiptrocket.db.profiles import UserProfileStore
from receiptrocket.db.receipts import ReceiptMetadataStore, translate_database_error
from receiptrocket.errors import (
    MetadataPermissionDenied,
    MetadataStoreUnavailable,
    QueryUnsupported,
)
from receiptrocket.models.receipt import NewReceiptRecord, UserProfile
from tests.samples import ACME_FIELDS

BASE_DATE = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def _record(user_id: str = "user-a", *, minutes: int = 0, **overrides) -> NewReceiptRecord:
    payload = {
        **ACME_FIELDS,
        "userId": user_id,
        "date": BASE_DATE + timedelta(minutes=minutes),
        "image": "http://testserver/blobs/receipts/abc.jpg?expires=1&signature=00",
        "imagePath": "receipts/abc.jpg",
    }
    payload.update(overrides)
    return NewReceiptRecord.model_validate(payload)


@pytest.fixture()
def store(backend) -> ReceiptMetadataStore:
    return ReceiptMetadataStore(backend)


def test_append_and_get_round_trip(store):
    receipt_id = store.append(_record())
    assert len(receipt_id) == 32

    fetched = store.get(receipt_id)
    assert fetched is not None
    assert fetched.id == receipt_id
    assert fetched.user_id == "user-a"
    assert fetched.company_name == "Acme Foods"
    assert fetched.gst == "1.05"
    assert fetched.image_path == "receipts/abc.jpg"
    assert fetched.date == BASE_DATE


def test_ids_are_unique(store):
    ids = {store.append(_record()) for _ in range(5)}
    assert len(ids) == 5


def test_list_by_owner_orders_newest_first_and_scopes_owner(store):
    older = store.append(_record(minutes=0))
    newest = store.append(_record(minutes=30))
    middle = store.append(_record(minutes=10))
    store.append(_record("user-b", minutes=60))

    receipts = store.list_by_owner("user-a")
    assert [r.id for r in receipts] == [newest, middle, older]
    assert all(r.user_id == "user-a" for r in receipts)


def test_list_by_owner_empty(store):
    assert store.list_by_owner("nobody") == []


def test_nullable_tax_fields_are_preserved(store):
    receipt_id = store.append(_record(gst=None, pst=None))
    fetched = store.get(receipt_id)
    assert fetched.gst is None
    assert fetched.pst is None


def test_delete_by_id_is_idempotent(store):
    receipt_id = store.append(_record())
    assert store.delete_by_id(receipt_id) is True
    assert store.get(receipt_id) is None
    assert store.delete_by_id(receipt_id) is False


def test_record_without_image_handle_is_rejected():
    with pytest.raises(ValueError):
        _record(image="")


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("no such table: receipts", MetadataStoreUnavailable),
        ("unable to open database file", MetadataStoreUnavailable),
        ("attempt to write a readonly database", MetadataPermissionDenied),
        ("no such index: ix_receipts_user_id_date", QueryUnsupported),
    ],
)
def test_translate_database_error(message, expected):
    error = translate_database_error(OperationalError("SELECT 1", {}, Exception(message)))
    assert isinstance(error, expected)
    assert message in error.diagnostic


def test_missing_table_surfaces_as_unavailable(store, backend):
    with backend.session_scope() as session:
        session.connection().exec_driver_sql("DROP TABLE receipts")

    with pytest.raises(MetadataStoreUnavailable):
        store.list_by_owner("user-a")


def test_profile_store_creates_once(backend):
    profiles = UserProfileStore(backend)
    first = profiles.get_or_create(UserProfile(uid="user-a", email="a@example.com"))
    second = profiles.get_or_create(UserProfile(uid="user-a", email="changed@example.com"))

    assert first.email == "a@example.com"
    assert second.email == "a@example.com"
    assert profiles.get("missing") is None
