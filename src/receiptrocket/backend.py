"""Backend client handle shared by the receipt workflow components."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from receiptrocket.config import Settings
from receiptrocket.db.repository import create_session_factory, create_sqlite_engine, session_scope
from receiptrocket.errors import BackendConfigurationError, MetadataStoreUnavailable
from receiptrocket.storage.blobs import LocalBlobStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class Backend:
    """Owns the database engine and blob store; initializes at most once.

    The handle is created cheaply and passed to every component that needs
    backend access. ``initialize`` performs the actual connection setup the
    first time any component needs it and is safe to call concurrently.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._lock = threading.Lock()
        self._initialized = False
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker[Session]] = None
        self._blob_store: Optional[LocalBlobStore] = None
        self.initialize_count = 0

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> "Backend":
        if self._initialized:
            return self
        with self._lock:
            if self._initialized:
                return self
            self._setup()
            self.initialize_count += 1
            self._initialized = True
        logger.info(
            "Backend initialized database=%s blob_root=%s",
            self._settings.database_path,
            self._settings.blob_root,
        )
        return self

    def _setup(self) -> None:
        settings = self._settings
        if not settings.auth_jwt_secret:
            raise BackendConfigurationError(
                "Identity verification is not configured; set RECEIPTROCKET_AUTH_JWT_SECRET."
            )
        signing_key = settings.signing_key
        assert signing_key is not None

        if settings.blob_auto_create:
            try:
                settings.blob_root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise BackendConfigurationError(
                    f"Unable to create blob root {settings.blob_root}: {exc}"
                ) from exc

        try:
            engine = create_sqlite_engine(settings.database_path)
        except (OSError, SQLAlchemyError) as exc:
            raise MetadataStoreUnavailable(
                f"Metadata store at {settings.database_path} could not be opened.",
                diagnostic=str(exc),
            ) from exc

        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._blob_store = LocalBlobStore(
            settings.blob_root,
            signing_key=signing_key,
            public_base_url=settings.public_base_url,
            url_ttl_seconds=settings.blob_url_ttl_days * SECONDS_PER_DAY,
        )

    @property
    def blob_store(self) -> LocalBlobStore:
        self.initialize()
        assert self._blob_store is not None
        return self._blob_store

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        self.initialize()
        assert self._session_factory is not None
        with session_scope(self._session_factory) as session:
            yield session

    def dispose(self) -> None:
        """Release the engine; the next use initializes again."""

        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._blob_store = None
            self._initialized = False


__all__ = ["Backend"]
