"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

from receiptrocket.config import get_settings


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RECEIPTROCKET_EXTRACTOR_PROVIDER", "ollama")
    monkeypatch.setenv("RECEIPTROCKET_EXTRACTOR_TIMEOUT", "12.5")
    monkeypatch.setenv("RECEIPTROCKET_AUTH_JWT_ALGORITHMS", "HS256, HS512")
    monkeypatch.setenv("RECEIPTROCKET_BLOB_AUTO_CREATE", "no")
    monkeypatch.setenv("RECEIPTROCKET_PUBLIC_BASE_URL", "https://receipts.example.com/")
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.extractor_provider == "ollama"
    assert settings.extractor_timeout == 12.5
    assert settings.auth_jwt_algorithms == ("HS256", "HS512")
    assert settings.blob_auto_create is False
    assert settings.public_base_url == "https://receipts.example.com"


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("RECEIPTROCKET_MAX_UPLOAD_BYTES", "lots")
    get_settings.cache_clear()
    assert get_settings().max_upload_bytes == 10 * 1024 * 1024


def test_signing_key_defaults_to_jwt_secret(monkeypatch):
    get_settings.cache_clear()
    settings = get_settings()
    assert settings.signing_key == settings.auth_jwt_secret
    assert isinstance(settings.database_path, Path)
