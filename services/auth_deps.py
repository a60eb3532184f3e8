"""
Auth dependencies for CrewTech
Staff session resolved from the Supabase access token on each request
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from pydantic import ValidationError

from config import get_settings
from models.user import SessionUser, UserRole

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/v1/token")

ROLE_VALUES = {role.value for role in UserRole}


def decode_access_token(
    token: str,
    secret: Optional[str] = None,
    allow_unverified: bool = False
) -> Optional[Dict[str, Any]]:
    """
    Verified claims when a secret is configured.
    Without a secret the token is rejected, unless allow_unverified is set
    (local development only).
    """
    if not secret and not allow_unverified:
        logger.error("No JWT secret configured, rejecting access token")
        return None
    try:
        if secret:
            return jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})
        logger.warning("Reading access token claims without signature verification")
        return jwt.get_unverified_claims(token)
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        return None


def _role_from_claims(claims: Dict[str, Any]) -> UserRole:
    for source in (claims.get("user_metadata") or {}, claims.get("app_metadata") or {}, claims):
        role = source.get("role")
        if role in ROLE_VALUES:
            return UserRole(role)
    return UserRole.INTERNAL


def session_from_claims(
    token: str,
    claims: Dict[str, Any],
    ttl_hours: int = 24,
    now: Optional[datetime] = None
) -> Optional[SessionUser]:
    """
    Session lasts ttl_hours from iat, cut short by an earlier exp.
    Returns None when the subject is missing or the session has expired.
    """
    now = now or datetime.utcnow()
    user_id = claims.get("sub")
    if not user_id:
        return None

    issued_at = datetime.utcfromtimestamp(claims["iat"]) if "iat" in claims else now
    expires_at = issued_at + timedelta(hours=ttl_hours)
    if "exp" in claims:
        expires_at = min(expires_at, datetime.utcfromtimestamp(claims["exp"]))
    if expires_at <= now:
        logger.info(f"Session expired for user {user_id}")
        return None

    try:
        return SessionUser(
            id=user_id,
            email=claims.get("email") or None,
            role=_role_from_claims(claims),
            access_token=token,
            issued_at=issued_at,
            expires_at=expires_at,
        )
    except ValidationError as e:
        logger.warning(f"Invalid session claims for user {user_id}: {e}")
        return None


async def get_current_user(token: str = Depends(oauth2_scheme)) -> SessionUser:
    """Get current authenticated staff member from token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    settings = get_settings()

    claims = decode_access_token(token, settings.supabase_jwt_secret, settings.allow_unverified_tokens)
    if claims is None:
        raise credentials_exception

    user = session_from_claims(token, claims, settings.session_ttl_hours)
    if user is None:
        raise credentials_exception

    return user
