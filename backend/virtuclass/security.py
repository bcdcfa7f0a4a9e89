"""
Credential primitives: password hashing, signed tokens and one-time tokens.

Access tokens are short-lived JWTs carrying the caller's id, role and
display claims. Refresh tokens are longer-lived JWTs signed with a separate
secret; they are only honoured while they are also present in the owner's
active list in the database (see services/auth.py).
"""

import secrets
import uuid
from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from virtuclass import config
from virtuclass.errors import AuthenticationError, InvalidTokenError
from virtuclass.timeutils import utcnow

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=config.BCRYPT_ROUNDS,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
GOOGLE_STATE_TYPE = "google_state"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # Malformed stored hash
        return False


def generate_one_time_token() -> str:
    """Random 256-bit token for email verification and password reset."""
    return secrets.token_hex(32)


def create_access_token(user_id: str, role: str, email: str = None, name: str = None) -> str:
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "name": name,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def create_refresh_token(user_id: str) -> str:
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "type": REFRESH_TOKEN_TYPE,
        # Unique per token so two refreshes in the same second never collide
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(payload, config.JWT_REFRESH_SECRET, algorithm=config.JWT_ALGORITHM)


def _decode(token: str, secret: str, expected_type: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, secret, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != expected_type or not payload.get("sub"):
        return None
    return payload


def decode_access_token(token: str) -> dict:
    """Verify an access token; raises AuthenticationError when absent, invalid or expired."""
    payload = _decode(token, config.JWT_SECRET, ACCESS_TOKEN_TYPE) if token else None
    if payload is None:
        raise AuthenticationError()
    return payload


def decode_refresh_token(token: str) -> dict:
    payload = _decode(token, config.JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE) if token else None
    if payload is None:
        raise AuthenticationError("Invalid refresh token", code="INVALID_TOKEN")
    return payload


def encode_google_state(user_id: str, redirect: str = "/sessions") -> str:
    """Signed state parameter for the Google OAuth round trip."""
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "redirect": redirect,
        "type": GOOGLE_STATE_TYPE,
        "exp": now + timedelta(minutes=config.GOOGLE_STATE_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_google_state(state: str) -> dict:
    payload = _decode(state, config.JWT_SECRET, GOOGLE_STATE_TYPE) if state else None
    if payload is None:
        raise InvalidTokenError("Invalid OAuth state")
    return payload
