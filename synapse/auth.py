# synapse/auth.py
"""
Bearer-token authentication. Tokens are issued by the identity provider and
only verified here: HS256 JWTs signed with SECRET_KEY, 'sub' is the user id
and the optional 'name' claim is the display name used on chat messages.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from synapse.config import settings
from synapse.errors import CallableError

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    uid: str
    name: str


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> CurrentUser:
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        logger.info("Rejected bearer token: %s", e)
        raise CallableError("unauthenticated", "Invalid or expired token.") from e
    uid = claims.get("sub")
    if not uid:
        raise CallableError("unauthenticated", "Token has no subject.")
    return CurrentUser(uid=str(uid), name=str(claims.get("name") or uid))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[CurrentUser]:
    """None for anonymous callers; callables decide how to reject them."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials, settings.secret_key, settings.jwt_algorithm)


async def require_user(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    if user is None:
        raise CallableError("unauthenticated", "The function must be called while authenticated.")
    return user
