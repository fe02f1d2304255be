"""Caller identity from bearer tokens.

Tokens are issued by the external auth service; this module only verifies
them. Request handling runs these dependencies in order:

    get_optional_identity -> require_identity -> access gate (services.access)

Public share downloads stop after the first step and never require identity.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from filevault.config import settings
from filevault.errors import Unauthenticated

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    owner_id: str


def decode_identity(token: str) -> Identity:
    """Verify a bearer token and pull the owner id out of it.

    Accepts the standard ``sub`` claim, falling back to the older
    ``{"user": {"id": ...}}`` payload shape.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.info("Token verification error: %s", e)
        raise Unauthenticated("Token is not valid")

    owner_id = payload.get("sub")
    if owner_id is None:
        user = payload.get("user")
        if isinstance(user, dict):
            owner_id = user.get("id")
    if not owner_id:
        raise Unauthenticated("Token carries no user")
    return Identity(owner_id=str(owner_id))


def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Identity]:
    """No header means anonymous; a bad token is still an error."""
    if credentials is None:
        return None
    return decode_identity(credentials.credentials)


def require_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise Unauthenticated()
    return identity


def create_access_token(owner_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Mint a token the way the auth service does. For tooling and tests."""
    now = datetime.now(timezone.utc)
    payload = {"sub": owner_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
