"""
Authentication and authorization dependencies.

Access tokens are HS256 JWTs issued by the hosted auth service:
`sub` is the user id, `email` is optional. Admin rights come from the
`user_roles` table, never from the token.
"""
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from tutorapi.core.config import get_settings
from tutorapi.core.exceptions import AuthenticationError, PermissionDeniedError
from tutorapi.core.i18n import resolve_language
from tutorapi.core.logging_config import get_logger
from tutorapi.database.connection import get_db_session
from tutorapi.database.models import UserRole

logger = get_logger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller."""
    user_id: str
    email: Optional[str] = None


def decode_access_token(token: str) -> dict:
    """
    Verify a bearer token and return its claims.

    Raises:
        AuthenticationError: If the token is expired, malformed or has no subject
    """
    settings = get_settings()
    options = {"verify_aud": bool(settings.jwt_audience)}

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected access token: {e}")
        raise AuthenticationError("Invalid token")

    if not payload.get("sub"):
        raise AuthenticationError("Malformed token")
    return payload


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> CurrentUser:
    """FastAPI dependency resolving the caller from the Authorization header."""
    if not authorization:
        raise AuthenticationError("No authorization header provided")

    token = authorization.replace("Bearer ", "", 1).strip()
    payload = decode_access_token(token)

    user = CurrentUser(user_id=payload["sub"], email=payload.get("email"))
    request.state.user_id = user.user_id
    return user


def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Optional[CurrentUser]:
    """Like get_current_user, but anonymous callers get None. A bad token is still a 401."""
    if not authorization:
        return None
    return get_current_user(request, authorization)


def is_admin(session: Session, user_id: str) -> bool:
    return session.query(UserRole).filter_by(user_id=user_id, role="admin").first() is not None


def require_admin(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
) -> CurrentUser:
    """FastAPI dependency allowing only users holding the admin role."""
    if not is_admin(session, user.user_id):
        logger.warning(f"Admin access denied for user {user.user_id[:8]}...")
        raise PermissionDeniedError()
    return user


def get_language(accept_language: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency picking the response language."""
    return resolve_language(accept_language, get_settings().default_language)
