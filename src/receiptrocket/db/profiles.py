"""Data access helpers for user profiles."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from receiptrocket.backend import Backend
from receiptrocket.models.receipt import UserProfile

from .models import UserProfileORM
from .receipts import translate_database_error

logger = logging.getLogger(__name__)


def _to_profile_model(row: UserProfileORM) -> UserProfile:
    return UserProfile.model_validate(
        {
            "uid": row.uid,
            "email": row.email,
            "display_name": row.display_name,
            "photo_url": row.photo_url,
        }
    )


class UserProfileStore:
    """Stores the profile captured the first time a user is seen."""

    def __init__(self, backend: Backend) -> None:
        self._backend = backend

    def get(self, uid: str) -> Optional[UserProfile]:
        try:
            with self._backend.session_scope() as session:
                record = session.get(UserProfileORM, uid)
                return _to_profile_model(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise translate_database_error(exc) from exc

    def get_or_create(self, profile: UserProfile) -> UserProfile:
        """Return the stored profile, creating it from ``profile`` when absent."""

        existing = self.get(profile.uid)
        if existing is not None:
            return existing
        try:
            with self._backend.session_scope() as session:
                session.add(
                    UserProfileORM(
                        uid=profile.uid,
                        email=profile.email,
                        display_name=profile.display_name,
                        photo_url=profile.photo_url,
                    )
                )
        except IntegrityError:
            # A concurrent first sign-in created the row.
            logger.debug("Profile %s created concurrently", profile.uid)
        except SQLAlchemyError as exc:
            raise translate_database_error(exc) from exc
        else:
            logger.info("Created user profile uid=%s", profile.uid)
            return profile

        stored = self.get(profile.uid)
        return stored if stored is not None else profile


__all__ = ["UserProfileStore"]
