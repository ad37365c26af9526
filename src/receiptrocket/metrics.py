"""Prometheus metrics definitions for ReceiptRocket."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "receiptrocket_http_requests_total",
    "Total number of HTTP requests processed by the ReceiptRocket API",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "receiptrocket_http_request_duration_seconds",
    "Latency of HTTP requests processed by the ReceiptRocket API",
    ["method", "path"],
)

INGESTIONS = Counter(
    "receiptrocket_receipt_ingestions_total",
    "Receipt ingestion attempts by outcome",
    ["outcome"],
)

EXTRACTIONS = Counter(
    "receiptrocket_extractions_total",
    "Receipt field extraction calls by status",
    ["status"],
)

EXTRACTION_LATENCY = Histogram(
    "receiptrocket_extraction_duration_seconds",
    "Latency of receipt field extraction calls",
)

BLOB_DELETES = Counter(
    "receiptrocket_blob_deletes_total",
    "Receipt image deletions by result",
    ["result"],
)

__all__ = [
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INGESTIONS",
    "EXTRACTIONS",
    "EXTRACTION_LATENCY",
    "BLOB_DELETES",
]
