"""ASGI application for ReceiptRocket."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from receiptrocket import __version__, metrics
from receiptrocket.backend import Backend
from receiptrocket.config import Settings, get_settings
from receiptrocket.errors import Forbidden, NotFound, ReceiptRocketError
from receiptrocket.logging_utils import configure_logging as configure_app_logging
from receiptrocket.models.receipt import DeleteResult, Receipt, UserProfile
from receiptrocket.server import deps
from receiptrocket.workflow import ReceiptUpload, ReceiptWorkflow

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    """Convert non-serializable values into JSON-safe representations."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    if isinstance(value, (list, tuple)):
        return [_json_safe(entry) for entry in value]
    if isinstance(value, dict):
        return {key: _json_safe(sub_value) for key, sub_value in value.items()}
    return repr(value)


def _normalize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Ensure validation error payloads can be serialized to JSON."""

    return [{key: _json_safe(value) for key, value in error.items()} for error in errors]


def _route_label(request: Request) -> str:
    """Metrics label for the matched route template, so ids and blob keys share one series."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def _configure_logging(settings: Settings) -> None:
    secrets = [
        settings.auth_jwt_secret or "",
        settings.blob_signing_key or "",
        settings.extractor_api_key or "",
    ]
    configure_app_logging(settings.log_level, settings.log_format, secrets)


def create_app(backend: Optional[Backend] = None) -> FastAPI:
    """Create and configure a FastAPI application instance."""

    settings = get_settings()
    _configure_logging(settings)

    application = FastAPI(title="ReceiptRocket", version=__version__)
    application.state.backend = backend or Backend(settings)

    @application.on_event("shutdown")
    async def dispose_backend() -> None:
        application.state.backend.dispose()

    logger.debug("Application created with log level %s", settings.log_level)

    if settings.log_requests:
        access_logger = logging.getLogger("receiptrocket.access")

        @application.middleware("http")
        async def log_request_response(request: Request, call_next):
            """Log request/response details without leaking sensitive data."""

            request_id = request.headers.get("X-Request-ID") or uuid4().hex
            request.state.request_id = request_id
            start = perf_counter()
            path = request.url.path
            method = request.method
            try:
                response: Response = await call_next(request)
            except Exception:
                duration_ms = (perf_counter() - start) * 1000
                route = _route_label(request)
                access_logger.exception(
                    "HTTP %s %s status=500 duration_ms=%.2f",
                    method,
                    path,
                    duration_ms,
                    extra={"request_id": request_id},
                )
                metrics.REQUEST_COUNT.labels(method=method, path=route, status="500").inc()
                metrics.REQUEST_LATENCY.labels(method=method, path=route).observe(
                    duration_ms / 1000.0
                )
                raise

            route = _route_label(request)
            duration_ms = (perf_counter() - start) * 1000
            response.headers.setdefault("X-Request-ID", request_id)
            access_logger.info(
                "HTTP %s %s status=%s duration_ms=%.2f",
                method,
                path,
                response.status_code,
                duration_ms,
                extra={"request_id": request_id},
            )
            metrics.REQUEST_COUNT.labels(
                method=method,
                path=route,
                status=str(response.status_code),
            ).inc()
            metrics.REQUEST_LATENCY.labels(method=method, path=route).observe(
                duration_ms / 1000.0
            )
            return response

    @application.exception_handler(ReceiptRocketError)
    async def receipt_error_handler(request: Request, exc: ReceiptRocketError):
        log_kwargs: dict[str, Any] = {}
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            log_kwargs["extra"] = {"request_id": request_id}
        level = logging.ERROR if exc.http_status >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s failed kind=%s detail=%s diagnostic=%s",
            request.method,
            request.url.path,
            exc.kind,
            exc.message,
            exc.diagnostic,
            **log_kwargs,
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_payload())

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log_kwargs: dict[str, Any] = {}
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            log_kwargs["extra"] = {"request_id": request_id}

        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            _normalize_validation_errors(exc.errors()),
            **log_kwargs,
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": _normalize_validation_errors(exc.errors())},
        )

    @application.get("/healthz", summary="Liveness probe")
    def healthz() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @application.get("/metrics", summary="Prometheus metrics")
    def metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @application.get(
        "/me",
        response_model=UserProfile,
        summary="Return the caller's profile, creating it on first sign-in",
    )
    def me(
        id_token: Optional[str] = Depends(deps.get_id_token),
        workflow: ReceiptWorkflow = Depends(deps.get_workflow),
    ) -> UserProfile:
        return workflow.get_profile(id_token)

    @application.get(
        "/receipts",
        response_model=list[Receipt],
        summary="List the caller's receipts, newest first",
    )
    def receipts_list(
        id_token: Optional[str] = Depends(deps.get_id_token),
        workflow: ReceiptWorkflow = Depends(deps.get_workflow),
    ) -> list[Receipt]:
        return workflow.list_receipts(id_token)

    @application.post(
        "/receipts",
        response_model=Receipt,
        status_code=status.HTTP_201_CREATED,
        summary="Upload a receipt image for extraction and storage",
    )
    async def receipts_upload(
        photo: Optional[UploadFile] = File(default=None),
        id_token: Optional[str] = Depends(deps.get_id_token),
        workflow: ReceiptWorkflow = Depends(deps.get_workflow),
        settings: Settings = Depends(get_settings),
    ) -> Receipt:
        upload: Optional[ReceiptUpload] = None
        if photo is not None:
            # One byte past the limit is enough for validation to reject the upload.
            content = await photo.read(settings.max_upload_bytes + 1)
            upload = ReceiptUpload(
                content=content,
                content_type=photo.content_type,
                filename=photo.filename,
            )
        receipt = await run_in_threadpool(workflow.process_receipt, id_token, upload)
        logger.debug("Stored receipt id=%s user=%s", receipt.id, receipt.user_id)
        return receipt

    @application.get(
        "/receipts/{receipt_id}",
        response_model=Receipt,
        summary="Retrieve one of the caller's receipts",
    )
    def receipts_get(
        receipt_id: str,
        id_token: Optional[str] = Depends(deps.get_id_token),
        workflow: ReceiptWorkflow = Depends(deps.get_workflow),
    ) -> Receipt:
        return workflow.get_receipt(id_token, receipt_id)

    @application.delete(
        "/receipts/{receipt_id}",
        response_model=DeleteResult,
        summary="Delete one of the caller's receipts and its image",
    )
    def receipts_delete(
        receipt_id: str,
        id_token: Optional[str] = Depends(deps.get_id_token),
        workflow: ReceiptWorkflow = Depends(deps.get_workflow),
    ) -> DeleteResult:
        return workflow.delete_receipt(id_token, receipt_id)

    @application.get("/blobs/{key:path}", summary="Download a receipt image via signed URL")
    def blobs_download(
        key: str,
        expires: int = Query(...),
        signature: str = Query(..., min_length=1),
        backend: Backend = Depends(deps.get_backend),
    ) -> Response:
        store = backend.blob_store
        if not store.verify_signature(key, expires, signature):
            raise Forbidden("The image link is invalid or has expired.")
        try:
            content = store.read(key)
        except (FileNotFoundError, ValueError) as exc:
            raise NotFound("Receipt image not found.") from exc
        return Response(content=content, media_type=store.media_type_for(key))

    return application


app = create_app()

__all__ = ["app", "create_app"]
