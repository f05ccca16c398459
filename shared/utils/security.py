"""
shared/utils/security.py
Admin session tokens and password hashing.

Tokens are HS256 JWTs carrying the admin's id, role and username plus a
unique jti; logout deny-lists the jti in Redis until the token expires.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from config.settings import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_TYPE = "admin_access"


def _issuer() -> str:
    return settings.APP_NAME.lower().replace(" ", "-")


# ── Tokens ────────────────────────────────────────────────────

def create_access_token(user_id: str, role: str, username: str) -> tuple[str, str, datetime]:
    """Returns (token, jti, expires_at)."""
    jti = str(uuid.uuid4())
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    claims = {
        "iss": _issuer(),
        "sub": str(user_id),
        "role": role,
        "username": username,
        "jti": jti,
        "iat": issued_at,
        "exp": expires_at,
        "type": TOKEN_TYPE,
    }
    token = jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return token, jti, expires_at


def verify_access_token(token: str) -> dict:
    """Decoded claims. Raises JWTError for a bad signature, expiry, issuer or type."""
    claims = jwt.decode(
        token,
        settings.JWT_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
        issuer=_issuer(),
    )
    if claims.get("type") != TOKEN_TYPE:
        raise JWTError("Not an admin access token")
    return claims


def get_token_remaining_ttl(claims: dict) -> int:
    """Whole seconds left before the token expires, never negative."""
    remaining = claims.get("exp", 0) - datetime.now(timezone.utc).timestamp()
    return max(0, int(remaining))


# ── Passwords ─────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def password_needs_rehash(hashed_password: str) -> bool:
    """True when the stored hash uses outdated bcrypt settings."""
    return pwd_context.needs_update(hashed_password)
