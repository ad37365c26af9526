"""AI-backed receipt field extraction."""

from .extractor import ReceiptFieldExtractor, build_data_uri, build_receipt_extractor

__all__ = ["ReceiptFieldExtractor", "build_data_uri", "build_receipt_extractor"]
