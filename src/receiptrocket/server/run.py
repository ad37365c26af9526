"""Helper for running the ReceiptRocket ASGI application."""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Entry point used by the ``receiptrocket-server`` console script."""

    host = os.environ.get("RECEIPTROCKET_SERVER_HOST", "127.0.0.1")
    port = int(os.environ.get("RECEIPTROCKET_SERVER_PORT", "8000"))
    reload_enabled = os.environ.get("RELOAD") == "1"

    uvicorn.run(
        "receiptrocket.server.app:app",
        host=host,
        port=port,
        reload=reload_enabled,
    )


if __name__ == "__main__":
    main()
