"""Integration tests for signed receipt image downloads."""

from __future__ import annotations

from urllib.parse import urlsplit

from fastapi import status

from tests.integration.utils import auth_headers, photo_upload
from tests.samples import JPEG_BYTES


def _relative(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.path}?{parts.query}"


def test_signed_image_url_serves_the_uploaded_bytes(client, make_token):
    created = client.post(
        "/receipts",
        files=photo_upload(JPEG_BYTES),
        headers=auth_headers(make_token()),
    ).json()

    response = client.get(_relative(created["image"]))
    assert response.status_code == status.HTTP_200_OK
    assert response.content == JPEG_BYTES
    assert response.headers["content-type"] == "image/jpeg"


def test_tampered_signature_is_rejected(client, make_token):
    created = client.post(
        "/receipts",
        files=photo_upload(JPEG_BYTES),
        headers=auth_headers(make_token()),
    ).json()
    url = _relative(created["image"])
    tampered = url[:-4] + ("0000" if not url.endswith("0000") else "1111")

    response = client.get(tampered)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["kind"] == "Forbidden"


def test_signed_url_for_deleted_image_is_not_found(client, make_token, backend):
    headers = auth_headers(make_token())
    created = client.post("/receipts", files=photo_upload(JPEG_BYTES), headers=headers).json()
    client.delete(f"/receipts/{created['id']}", headers=headers)

    response = client.get(_relative(created["image"]))
    assert response.status_code == status.HTTP_404_NOT_FOUND
