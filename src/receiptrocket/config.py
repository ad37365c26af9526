"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class Settings(BaseModel):
    """Global application settings loaded from environment variables or .env files."""

    database_path: Path = Field(
        default=Path("./data/receiptrocket.db"),
        description="SQLite database holding receipt metadata and user profiles.",
    )
    blob_root: Path = Field(
        default=Path("./data/blobs"),
        description="Directory acting as the object store for receipt images.",
    )
    blob_auto_create: bool = Field(
        default=True,
        description="Create the blob root on startup when it does not exist.",
    )
    blob_signing_key: Optional[str] = Field(
        default=None,
        description="HMAC key for signed blob URLs (falls back to the JWT secret).",
    )
    public_base_url: str = Field(
        default="http://127.0.0.1:8000",
        description="Externally reachable base URL used when building signed blob URLs.",
    )
    blob_url_ttl_days: int = Field(
        default=3650,
        description="Lifetime of signed blob URLs handed out with receipts.",
    )
    auth_jwt_secret: Optional[str] = Field(
        default=None,
        description="Shared secret used to verify identity tokens.",
    )
    auth_jwt_algorithms: tuple[str, ...] = Field(
        default=("HS256",),
        description="Accepted JWT signing algorithms.",
    )
    auth_jwt_audience: Optional[str] = Field(
        default=None,
        description="Expected `aud` claim; audience is not checked when unset.",
    )
    auth_jwt_issuer: Optional[str] = Field(
        default=None,
        description="Expected `iss` claim; issuer is not checked when unset.",
    )
    extractor_provider: str = Field(
        default="openai",
        description="Extraction LLM provider (openai or ollama).",
    )
    extractor_base_url: Optional[str] = Field(
        default=None,
        description="Extraction LLM base URL (OpenAI-compatible runtime or Ollama).",
    )
    extractor_model: str = Field(
        default="gpt-4o-mini",
        description="Vision-capable model identifier used for receipt extraction.",
    )
    extractor_api_key: Optional[str] = Field(
        default=None,
        description="API key sent as a bearer token to the extraction endpoint.",
    )
    extractor_temperature: float = Field(
        default=0.0,
        description="Sampling temperature for extraction calls.",
    )
    extractor_max_tokens: int = Field(
        default=400,
        description="Max tokens for extraction responses.",
    )
    extractor_timeout: float = Field(
        default=60.0,
        description="Seconds before an extraction request times out.",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest receipt image accepted for ingestion.",
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        default="plain",
        description="Logging format (plain/json).",
    )
    log_requests: bool = Field(
        default=True,
        description="Emit request access logs when true.",
    )

    model_config = ConfigDict(frozen=True)

    @property
    def signing_key(self) -> Optional[str]:
        return self.blob_signing_key or self.auth_jwt_secret


def _coerce_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_env_file(path: Path) -> dict[str, str]:
    payload: dict[str, str] = {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, raw_value = line.split("=", 1)
                payload[key.strip()] = raw_value.strip()
    except FileNotFoundError:
        return {}
    return payload


def _load_env_file_values() -> dict[str, str]:
    values: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        values.update(_parse_env_file(candidate))
    return values


def _load_from_env() -> dict[str, object]:
    """Load optional overrides from env vars (with .env fallbacks)."""

    file_values = _load_env_file_values()

    def _env(key: str) -> Optional[str]:
        return os.environ.get(key) or file_values.get(key)

    payload: dict[str, object] = {}
    if (db_path := _env("RECEIPTROCKET_DATABASE_PATH")):
        payload["database_path"] = Path(db_path)
    if (blob_root := _env("RECEIPTROCKET_BLOB_ROOT")):
        payload["blob_root"] = Path(blob_root)
    if (blob_auto_create := _env("RECEIPTROCKET_BLOB_AUTO_CREATE")):
        payload["blob_auto_create"] = _coerce_bool(blob_auto_create)
    if (signing_key := _env("RECEIPTROCKET_BLOB_SIGNING_KEY")):
        payload["blob_signing_key"] = signing_key
    if (public_base_url := _env("RECEIPTROCKET_PUBLIC_BASE_URL")):
        payload["public_base_url"] = public_base_url.rstrip("/")
    if (ttl_days := _env("RECEIPTROCKET_BLOB_URL_TTL_DAYS")):
        try:
            payload["blob_url_ttl_days"] = int(ttl_days)
        except ValueError:
            pass
    if (jwt_secret := _env("RECEIPTROCKET_AUTH_JWT_SECRET")):
        payload["auth_jwt_secret"] = jwt_secret
    if (jwt_algorithms := _env("RECEIPTROCKET_AUTH_JWT_ALGORITHMS")):
        algorithms = tuple(part.strip() for part in jwt_algorithms.split(",") if part.strip())
        if algorithms:
            payload["auth_jwt_algorithms"] = algorithms
    if (jwt_audience := _env("RECEIPTROCKET_AUTH_JWT_AUDIENCE")):
        payload["auth_jwt_audience"] = jwt_audience
    if (jwt_issuer := _env("RECEIPTROCKET_AUTH_JWT_ISSUER")):
        payload["auth_jwt_issuer"] = jwt_issuer
    if (provider := _env("RECEIPTROCKET_EXTRACTOR_PROVIDER")):
        payload["extractor_provider"] = provider
    if (extractor_base := _env("RECEIPTROCKET_EXTRACTOR_BASE_URL")):
        payload["extractor_base_url"] = extractor_base
    if (extractor_model := _env("RECEIPTROCKET_EXTRACTOR_MODEL")):
        payload["extractor_model"] = extractor_model
    if (extractor_key := _env("RECEIPTROCKET_EXTRACTOR_API_KEY")):
        payload["extractor_api_key"] = extractor_key
    if (extractor_temperature := _env("RECEIPTROCKET_EXTRACTOR_TEMPERATURE")):
        try:
            payload["extractor_temperature"] = float(extractor_temperature)
        except ValueError:
            pass
    if (extractor_max_tokens := _env("RECEIPTROCKET_EXTRACTOR_MAX_TOKENS")):
        try:
            payload["extractor_max_tokens"] = int(extractor_max_tokens)
        except ValueError:
            pass
    if (extractor_timeout := _env("RECEIPTROCKET_EXTRACTOR_TIMEOUT")):
        try:
            payload["extractor_timeout"] = float(extractor_timeout)
        except ValueError:
            pass
    if (max_upload := _env("RECEIPTROCKET_MAX_UPLOAD_BYTES")):
        try:
            payload["max_upload_bytes"] = int(max_upload)
        except ValueError:
            pass
    if (log_level := _env("RECEIPTROCKET_LOG_LEVEL")):
        payload["log_level"] = log_level
    if (log_format := _env("RECEIPTROCKET_LOG_FORMAT")):
        payload["log_format"] = log_format
    if (log_requests := _env("RECEIPTROCKET_LOG_REQUESTS")):
        payload["log_requests"] = _coerce_bool(log_requests)
    return payload


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings(**_load_from_env())
