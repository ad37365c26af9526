"""
ReceiptRocket receipt-capture service.

The package exposes the receipt ingestion workflow (upload validation, AI field
extraction, blob storage, and per-user metadata persistence) behind a small
FastAPI application.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
