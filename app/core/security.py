"""Bearer token verification for hosted-auth access tokens."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from app.core.config import Settings, get_settings
from app.shared.exceptions import AuthenticationException

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Decode and validate access token issued by the auth provider."""
    settings = settings or get_settings()
    options = {"verify_aud": settings.auth_jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except JWTError as exc:
        raise AuthenticationException("Invalid token") from exc


def subject_from_claims(claims: dict[str, Any]) -> UUID:
    """Extract the profile id carried in the `sub` claim."""
    subject = claims.get("sub")
    if not subject:
        raise AuthenticationException("Token has no subject")
    try:
        return UUID(str(subject))
    except ValueError as exc:
        raise AuthenticationException("Token subject is not a valid id") from exc
