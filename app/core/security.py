import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Response
from pwdlib import PasswordHash

from app.config import settings

# Initialize password hasher with Argon2
pwd_context = PasswordHash.recommended()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using Argon2."""
    return pwd_context.hash(password)


# Compared against when the login identity does not exist, so both failure
# paths cost one hash verification.
DUMMY_PASSWORD_HASH = get_password_hash(secrets.token_urlsafe(16))


def generate_session_token() -> str:
    """Create an opaque session identifier for the session cookie."""
    return secrets.token_urlsafe(32)


def session_token_digest(token: str) -> str:
    """Digest under which a session token is stored server-side."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_csrf_token() -> str:
    """Create a signed CSRF token for the double-submit cookie."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "nonce": secrets.token_urlsafe(16),
        "iat": now,
        "exp": now + timedelta(minutes=settings.CSRF_TOKEN_EXPIRY_MINUTES),
    }
    return jwt.encode(
        payload, settings.CSRF_SECRET_KEY, algorithm=settings.CSRF_ALGORITHM
    )


def decode_csrf_token(token: str) -> dict[str, Any]:
    """Decode and validate a CSRF token."""
    return jwt.decode(
        token, settings.CSRF_SECRET_KEY, algorithms=[settings.CSRF_ALGORITHM]
    )


def csrf_tokens_match(cookie_token: str | None, header_token: str | None) -> bool:
    """
    Check a double-submitted CSRF token.

    The header copy must equal the cookie copy (constant-time comparison) and
    the token must carry a valid, unexpired signature.
    """
    if not cookie_token or not header_token:
        return False
    if not hmac.compare_digest(cookie_token.encode("utf-8"), header_token.encode("utf-8")):
        return False
    try:
        decode_csrf_token(cookie_token)
    except jwt.PyJWTError:
        return False
    return True


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_MINUTES * 60,
        path="/",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )


def set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.CSRF_COOKIE_NAME,
        value=token,
        max_age=settings.CSRF_TOKEN_EXPIRY_MINUTES * 60,
        path="/",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )
