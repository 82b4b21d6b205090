"""
Password hashing, JWT issuing/verification and the current-user dependency.

Tokens are HS256 JWTs carrying the user id and email. They are accepted
from the auth cookie or an ``Authorization: Bearer`` header.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Request, Response

from panorama_api.errors import AuthError
from panorama_api.settings import settings

logger = logging.getLogger(__name__)

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z0-9]).{8,}$")
_DURATION = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d|w)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


@dataclass
class AuthenticatedUser:
    id: int
    email: str


def parse_duration(value: str) -> timedelta:
    """Parse "7d" / "12h" / "30m" / "45s" / "3600" into a timedelta."""
    match = _DURATION.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _UNIT_SECONDS[unit or "s"])


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def is_strong_password(password: str) -> bool:
    return bool(PASSWORD_PATTERN.match(password))


def token_lifetime() -> timedelta:
    return parse_duration(settings.JWT_EXPIRES_IN)


def create_token(user_id: int, email: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + token_lifetime(),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> AuthenticatedUser:
    """
    Verify a token and return its subject.

    Raises:
        AuthError: If the token is expired, tampered with or lacks an id
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Invalid or expired token")
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise AuthError("Invalid or expired token")

    try:
        user_id = int(payload["id"])
    except (KeyError, TypeError, ValueError):
        raise AuthError("Unauthorized")
    return AuthenticatedUser(id=user_id, email=payload.get("email", ""))


def extract_token(request: Request) -> Optional[str]:
    cookie_token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if cookie_token:
        return cookie_token
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1].strip() or None
    return None


async def get_current_user(request: Request) -> AuthenticatedUser:
    """Dependency for FastAPI guarding authenticated routes."""
    token = extract_token(request)
    if not token:
        raise AuthError("No token provided")
    user = decode_token(token)
    request.state.user_id = user.id
    return user


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        token,
        max_age=int(token_lifetime().total_seconds()),
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.AUTH_COOKIE_NAME,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
