# backend/hustle/auth.py
"""
Bearer token handling.

Tokens are issued by the identity provider; this service only verifies them.
``sub`` carries the user id (which is also the ``profiles.id``) and ``email``
is optional.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
import jwt
from jwt import PyJWTError

from .core.config import settings

logger = logging.getLogger(__name__)

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode a JWT access token, enforcing the audience when one is configured."""
    secret = settings.jwt_secret.get_secret_value()
    if settings.jwt_audience:
        payload_raw = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    else:
        payload_raw = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    return cast(Dict[str, Any], payload_raw)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Production tokens come from the identity provider; this exists for local
    tooling and tests that need a token the service will accept.
    """
    to_encode = dict(data)
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    to_encode["exp"] = expire
    if settings.jwt_audience:
        to_encode.setdefault("aud", settings.jwt_audience)
    return jwt.encode(to_encode, settings.jwt_secret.get_secret_value(), algorithm=settings.jwt_algorithm)


async def get_token_payload(token: Optional[str] = Depends(oauth2_scheme_optional)) -> Dict[str, Any]:
    """
    Dependency returning the verified token claims.

    Raises:
        HTTPException: 401 when the token is missing, invalid, expired or has no ``sub``
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    invalid_credentials = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
    except PyJWTError as e:
        logger.error(f"JWT validation error: {str(e)}")
        raise invalid_credentials

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        logger.warning("Token payload missing 'sub' field")
        raise invalid_credentials
    return payload
