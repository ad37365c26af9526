"""Vision LLM client that extracts structured fields from receipt images."""

from __future__ import annotations

import base64
import json
import logging
import re
from time import perf_counter
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from receiptrocket import metrics
from receiptrocket.config import Settings
from receiptrocket.errors import ExtractionFailed
from receiptrocket.models.receipt import ReceiptFields

_JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.+)$", re.DOTALL)

EXTRACTION_PROMPT = (
    "You are an AI assistant that extracts information from a receipt image.\n\n"
    "Analyze the receipt image provided and extract the following information:\n"
    "- Company Name\n"
    '- A short description of what the receipt is for (e.g. "Groceries", "Dinner", "Gas")\n'
    "- GST (if available)\n"
    "- PST (if available)\n"
    "- Total Amount\n\n"
    "Respond with a single JSON object with the keys companyName, description, gst, pst and "
    "totalAmount. Use null for gst or pst when the receipt does not show them. Return only JSON."
)

logger = logging.getLogger(__name__)


def build_data_uri(content_type: str, content: bytes) -> str:
    """Encode raw bytes as a ``data:<mime>;base64,<payload>`` string."""

    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def split_data_uri(data_uri: str) -> tuple[str, str]:
    match = _DATA_URI_RE.match(data_uri)
    if match is None:
        raise ValueError("Image must be a base64 data URI with a MIME type.")
    return match.group("mime"), match.group("payload")


def receipt_fields_schema() -> dict[str, Any]:
    """JSON schema describing the fields the model must return."""

    schema = ReceiptFields.model_json_schema(by_alias=True)
    schema["additionalProperties"] = False
    return schema


class ReceiptFieldExtractor:
    """Call an OpenAI/Ollama-compatible endpoint to read fields from a receipt image."""

    def __init__(
        self,
        *,
        base_url: Optional[str],
        model: str,
        provider: str = "openai",
        api_key: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 400,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._model = model
        self._provider = (provider or "openai").strip().lower()
        self._api_key = api_key
        self._temperature = max(0.0, float(temperature))
        self._max_tokens = max(1, int(max_tokens))
        self._timeout = timeout
        self._transport = transport

    def extract(self, image_data_uri: str) -> ReceiptFields:
        if not self._base_url:
            metrics.EXTRACTIONS.labels(status="unconfigured").inc()
            raise ExtractionFailed(
                "Receipt extraction is not configured; set RECEIPTROCKET_EXTRACTOR_BASE_URL."
            )

        start = perf_counter()
        try:
            content = self._execute_chat(image_data_uri)
            fields = _parse_fields(content)
        except ExtractionFailed:
            metrics.EXTRACTIONS.labels(status="failed").inc()
            raise
        except httpx.HTTPError as exc:
            metrics.EXTRACTIONS.labels(status="failed").inc()
            logger.warning("Receipt extraction request failed: %s", exc)
            raise ExtractionFailed(f"Receipt extraction request failed: {exc}") from exc
        except ValueError as exc:
            metrics.EXTRACTIONS.labels(status="failed").inc()
            logger.warning("Receipt extraction returned unusable output: %s", exc)
            raise ExtractionFailed(f"Receipt extraction failed: {exc}") from exc
        finally:
            metrics.EXTRACTION_LATENCY.observe(perf_counter() - start)

        metrics.EXTRACTIONS.labels(status="succeeded").inc()
        return fields

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            response = client.post(endpoint, json=payload, headers=self._headers())
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError("Extraction endpoint returned a non-object JSON body.")
        return body

    def _execute_chat(self, image_data_uri: str) -> str:
        schema = receipt_fields_schema()
        if self._provider == "ollama":
            _, encoded = split_data_uri(image_data_uri)
            endpoint = self._base_url
            if not endpoint.endswith("/api/chat"):
                endpoint = f"{endpoint}/api/chat"
            payload = {
                "model": self._model,
                "messages": [
                    {"role": "user", "content": EXTRACTION_PROMPT, "images": [encoded]},
                ],
                "format": schema,
                "stream": False,
                "options": {
                    "temperature": self._temperature,
                    "num_predict": self._max_tokens,
                },
            }
            body = self._post(endpoint, payload)
            content = _message_text(body.get("message"))
            if not content:
                raise ValueError("Ollama extraction response did not include content.")
            return content

        endpoint = self._base_url
        if not endpoint.endswith("/chat/completions"):
            endpoint = f"{endpoint}/chat/completions"
        payload = {
            "model": self._model,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_data_uri}},
                    ],
                }
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "receipt_fields", "schema": schema, "strict": True},
            },
        }
        body = self._post(endpoint, payload)
        choices = body.get("choices") or []
        if not choices:
            raise ValueError("Extraction model returned no choices.")
        choice = choices[0] if isinstance(choices, list) else None
        if not isinstance(choice, dict):
            raise ValueError("Extraction model returned a malformed choice.")
        content = _message_text(choice.get("message"))
        if not content:
            raise ValueError("Extraction model returned an empty response.")
        return content


def _message_text(message: Any) -> str:
    """Return the text of a chat message whose content is a string or a list of parts."""

    if message is None:
        return ""
    if not isinstance(message, dict):
        raise ValueError("Extraction model returned a malformed message.")
    content = message.get("content")
    if content is None:
        return ""
    if isinstance(content, list):
        parts = [
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        return "".join(parts).strip()
    if not isinstance(content, str):
        raise ValueError("Extraction model returned non-text content.")
    return content.strip()


def _parse_fields(content: str) -> ReceiptFields:
    json_blob = _extract_json_blob(content)
    try:
        parsed = json.loads(json_blob)
    except json.JSONDecodeError as exc:
        snippet = json_blob.strip().replace("\n", " ")[:200]
        raise ValueError(f"model returned invalid JSON: {exc}: payload={snippet}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("model output is not a JSON object")
    try:
        return ReceiptFields.model_validate(parsed)
    except ValidationError as exc:
        raise ExtractionFailed(
            f"Receipt extraction output did not match the expected schema: {exc}"
        ) from exc


def _extract_json_blob(text: str) -> str:
    match = _JSON_BLOCK_RE.search(text)
    if match:
        return match.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1].strip()
    return text.strip()


def build_receipt_extractor(settings: Settings) -> ReceiptFieldExtractor:
    """Create the extractor described by the current settings."""

    return ReceiptFieldExtractor(
        base_url=settings.extractor_base_url,
        model=settings.extractor_model,
        provider=settings.extractor_provider,
        api_key=settings.extractor_api_key,
        temperature=settings.extractor_temperature,
        max_tokens=settings.extractor_max_tokens,
        timeout=settings.extractor_timeout,
    )


__all__ = [
    "EXTRACTION_PROMPT",
    "ReceiptFieldExtractor",
    "build_data_uri",
    "build_receipt_extractor",
    "receipt_fields_schema",
    "split_data_uri",
]
