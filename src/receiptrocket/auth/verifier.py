"""Identity token verification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import jwt

from receiptrocket.backend import Backend
from receiptrocket.errors import Unauthenticated

logger = logging.getLogger(__name__)

UNAUTHENTICATED_MESSAGE = "A valid identity token is required."


@dataclass(frozen=True)
class VerifiedIdentity:
    """Claims taken from a successfully verified identity token."""

    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None


class JwtIdentityVerifier:
    """Verify bearer identity tokens signed with the configured JWT secret."""

    def __init__(self, backend: Backend) -> None:
        self._backend = backend

    def verify(self, token: Optional[str]) -> VerifiedIdentity:
        if not token or not token.strip():
            raise Unauthenticated(UNAUTHENTICATED_MESSAGE)

        backend = self._backend.initialize()
        settings = backend.settings
        options = {"require": ["exp", "sub"]}
        try:
            claims = jwt.decode(
                token.strip(),
                settings.auth_jwt_secret,
                algorithms=list(settings.auth_jwt_algorithms),
                audience=settings.auth_jwt_audience,
                issuer=settings.auth_jwt_issuer,
                options=options,
            )
        except jwt.PyJWTError as exc:
            logger.warning("Identity token rejected: %s", exc)
            raise Unauthenticated(UNAUTHENTICATED_MESSAGE, diagnostic=str(exc)) from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            logger.warning("Identity token rejected: missing subject claim")
            raise Unauthenticated(UNAUTHENTICATED_MESSAGE, diagnostic="missing subject claim")

        return VerifiedIdentity(
            uid=subject,
            email=claims.get("email"),
            name=claims.get("name"),
            picture=claims.get("picture"),
        )


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header value."""

    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


__all__ = ["JwtIdentityVerifier", "VerifiedIdentity", "bearer_token"]
