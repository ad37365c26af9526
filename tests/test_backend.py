"""Tests for the backend client handle."""

from __future__ import annotations

import threading

from receiptrocket.backend import Backend
from receiptrocket.config import get_settings


def test_initialize_is_idempotent(backend):
    assert backend.initialized is False
    backend.initialize()
    backend.initialize()
    assert backend.initialized is True
    assert backend.initialize_count == 1
    assert backend.blob_store.root.is_dir()


def test_concurrent_first_use_initializes_once():
    handle = Backend(get_settings())
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        handle.initialize()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert handle.initialize_count == 1
    handle.dispose()


def test_dispose_allows_reinitialization(backend):
    backend.initialize()
    backend.dispose()
    assert backend.initialized is False
    with backend.session_scope():
        pass
    assert backend.initialize_count == 2
