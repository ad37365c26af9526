"""Tests for the receipt field extractor."""

from __future__ import annotations

import json

import httpx
import pytest

from receiptrocket.ai.extractor import (
    ReceiptFieldExtractor,
    build_data_uri,
    build_receipt_extractor,
    receipt_fields_schema,
    split_data_uri,
)
from receiptrocket.config import Settings
from receiptrocket.errors import ExtractionFailed
from tests.samples import ACME_FIELDS, JPEG_BYTES

DATA_URI = build_data_uri("image/jpeg", JPEG_BYTES)


def _openai_reply(content) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _extractor(handler, **kwargs) -> ReceiptFieldExtractor:
    options = {
        "base_url": "http://llm.local/v1",
        "model": "vision-model",
        "transport": httpx.MockTransport(handler),
    }
    options.update(kwargs)
    return ReceiptFieldExtractor(**options)


def test_openai_request_shape_and_parsing():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=_openai_reply(json.dumps(ACME_FIELDS)))

    fields = _extractor(handler, api_key="sk-test").extract(DATA_URI)

    assert fields.company_name == "Acme Foods"
    assert fields.total_amount == "22.55"
    assert captured["url"] == "http://llm.local/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    content = captured["body"]["messages"][0]["content"]
    assert content[1] == {"type": "image_url", "image_url": {"url": DATA_URI}}
    schema = captured["body"]["response_format"]["json_schema"]["schema"]
    assert set(schema["required"]) == {"companyName", "description", "gst", "pst", "totalAmount"}


def test_no_authorization_header_without_api_key():
    seen: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json=_openai_reply(json.dumps(ACME_FIELDS)))

    _extractor(handler).extract(DATA_URI)
    assert seen == [None]


def test_fenced_json_and_numeric_amounts_are_accepted():
    reply = (
        "Here you go:\n```json\n"
        '{"companyName": "Gas Co", "description": "Gas", "gst": 2.1, "pst": null, "totalAmount": 44}'
        "\n```"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_openai_reply(reply))

    fields = _extractor(handler).extract(DATA_URI)
    assert fields.gst == "2.1"
    assert fields.pst is None
    assert fields.total_amount == "44"


def test_ollama_sends_raw_base64_images():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": {"content": json.dumps(ACME_FIELDS)}})

    fields = _extractor(handler, base_url="http://ollama:11434", provider="ollama").extract(DATA_URI)

    assert fields.description == "Groceries"
    assert captured["url"] == "http://ollama:11434/api/chat"
    message = captured["body"]["messages"][0]
    assert message["images"] == [split_data_uri(DATA_URI)[1]]
    assert captured["body"]["stream"] is False


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "model crashed"}),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=_openai_reply("")),
        httpx.Response(200, json=_openai_reply("not json at all")),
        httpx.Response(200, json=_openai_reply('{"companyName": "Only a name"}')),
        httpx.Response(200, json=["unexpected"]),
        httpx.Response(200, json={"choices": ["oops"]}),
        httpx.Response(200, json={"choices": {"message": "not a list"}}),
        httpx.Response(200, json={"choices": [{"message": "plain string"}]}),
        httpx.Response(200, json={"choices": [{"message": {"content": 42}}]}),
        httpx.Response(200, json=_openai_reply([{"type": "text", "text": "{}"}])),
    ],
)
def test_failures_become_extraction_failed(response):
    with pytest.raises(ExtractionFailed):
        _extractor(lambda request: response).extract(DATA_URI)


def test_transport_errors_become_extraction_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExtractionFailed, match="connection refused"):
        _extractor(handler).extract(DATA_URI)


def test_unconfigured_extractor_fails_cleanly():
    extractor = build_receipt_extractor(Settings())
    with pytest.raises(ExtractionFailed, match="not configured"):
        extractor.extract(DATA_URI)


def test_schema_forbids_extra_properties():
    schema = receipt_fields_schema()
    assert schema["additionalProperties"] is False
    assert "companyName" in schema["properties"]


def test_split_data_uri_rejects_plain_strings():
    with pytest.raises(ValueError):
        split_data_uri("https://example.com/receipt.jpg")


def test_content_parts_are_joined():
    parts = [
        {"type": "text", "text": '{"companyName": "Acme Foods", "description": "Groceries", '},
        {"type": "text", "text": '"gst": null, "pst": null, "totalAmount": "9.99"}'},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_openai_reply(parts))

    fields = _extractor(handler).extract(DATA_URI)
    assert fields.company_name == "Acme Foods"
    assert fields.total_amount == "9.99"


def test_malformed_ollama_message_becomes_extraction_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": ["not", "a", "message"]})

    with pytest.raises(ExtractionFailed):
        _extractor(handler, provider="ollama").extract(DATA_URI)
