"""ASGI application factory and dependencies for the ReceiptRocket server."""

from receiptrocket.server.app import app, create_app

__all__ = ["app", "create_app"]
