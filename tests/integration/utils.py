"""Shared helpers for integration tests."""

from __future__ import annotations


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def photo_upload(content: bytes, content_type: str = "image/jpeg", filename: str = "receipt.jpg"):
    return {"photo": (filename, content, content_type)}
