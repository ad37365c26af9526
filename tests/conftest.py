"""Shared pytest fixtures for the ReceiptRocket test suite."""

from __future__ import annotations

import time
from typing import Callable, Generator

import jwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from receiptrocket.backend import Backend
from receiptrocket.config import get_settings
from receiptrocket.models.receipt import ReceiptFields
from receiptrocket.server import deps
from receiptrocket.server.app import create_app
from tests.samples import ACME_FIELDS

TEST_JWT_SECRET = "test-jwt-secret-value"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the database and blob store at a per-test directory."""

    monkeypatch.setenv("RECEIPTROCKET_DATABASE_PATH", str(tmp_path / "test_receipts.db"))
    monkeypatch.setenv("RECEIPTROCKET_BLOB_ROOT", str(tmp_path / "blobs"))
    monkeypatch.setenv("RECEIPTROCKET_AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("RECEIPTROCKET_PUBLIC_BASE_URL", "http://testserver")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def make_token() -> Callable[..., str]:
    """Return a helper that mints identity tokens signed with the test secret."""

    def _make(sub: str = "user-a", *, secret: str = TEST_JWT_SECRET, ttl: int = 3600, **claims) -> str:
        payload = {"sub": sub, "exp": int(time.time()) + ttl, **claims}
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


@pytest.fixture()
def backend() -> Generator[Backend, None, None]:
    handle = Backend(get_settings())
    yield handle
    handle.dispose()


class StubExtractor:
    """Extractor double that returns canned fields and counts calls."""

    def __init__(self, fields: dict[str, object] | None = None, error: Exception | None = None):
        self.fields = dict(fields or ACME_FIELDS)
        self.error = error
        self.calls: list[str] = []

    def extract(self, image_data_uri: str) -> ReceiptFields:
        self.calls.append(image_data_uri)
        if self.error is not None:
            raise self.error
        return ReceiptFields.model_validate(self.fields)


@pytest.fixture()
def stub_extractor() -> StubExtractor:
    return StubExtractor()


@pytest.fixture()
def app(backend, stub_extractor) -> Generator[FastAPI, None, None]:
    """Create a new FastAPI app instance for each test and reset overrides."""

    application = create_app(backend=backend)
    application.dependency_overrides[deps.get_extractor] = lambda: stub_extractor
    yield application
    application.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> TestClient:
    """Return a test client bound to the FastAPI app."""

    return TestClient(app)
