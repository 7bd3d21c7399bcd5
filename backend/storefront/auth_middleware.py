"""
JWT Authentication Middleware.

Validates signed JWTs carrying the user id (``sub``) and a ``role``
(customer, admin or partner). Token issuance lives with the login flow;
``create_access_token`` is here for that flow and for tests.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

# JWT Configuration
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days

ROLES = ("customer", "admin", "partner")


@dataclass
class Principal:
    user_id: str
    role: str


def _get_secret_key() -> str:
    """Lazy-load the secret key to support testing."""
    from storefront.config import get_settings
    return get_settings().SECRET_KEY


def create_access_token(
    subject: str,
    role: str = "customer",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    Args:
        subject: User id (or partner id for partner tokens).
        role: One of ``ROLES``.
        expires_delta: Optional custom expiration time.
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": subject, "role": role, "exp": expire}
    return jwt.encode(to_encode, _get_secret_key(), algorithm=ALGORITHM)


async def get_current_principal(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Principal:
    """
    Extract and validate the caller from a JWT.
    Supports both 'Authorization: Bearer' header and 'auth_token' cookie.
    """
    credentials_exception = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = None

    # 1. Try Authorization Header
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:]

    # 2. Try HttpOnly Cookie (Fallback)
    if not token:
        token = request.cookies.get("auth_token")

    if not token:
        raise credentials_exception

    try:
        payload = jwt.decode(token, _get_secret_key(), algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception

    subject = payload.get("sub")
    role = payload.get("role", "customer")
    if subject is None or role not in ROLES:
        raise credentials_exception

    logger.debug(f"Authenticated {role}: {subject}")
    return Principal(user_id=subject, role=role)


async def get_current_user_id(principal: Principal = Depends(get_current_principal)) -> str:
    return principal.user_id
