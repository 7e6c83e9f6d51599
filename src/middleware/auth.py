"""Bearer-token authentication for traveller endpoints.

Tokens have the form ``<user_id>.<expiry>.<signature>`` where the
signature is an HMAC-SHA256 over ``<user_id>.<expiry>`` keyed with
``TRAVAULT_AUTH_SECRET``, base64url-encoded without padding. Signatures
are compared in constant time.

Passwords are stored as ``pbkdf2_sha256$<iterations>$<salt>$<hash>``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from typing import Final

import structlog
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import settings
from src.models.user import User
from src.services.errors import Forbidden, Unauthorized
from src.services.users import UserRepository

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)

_PBKDF2_ITERATIONS: Final[int] = 200_000
_HASH_SCHEME: Final[str] = "pbkdf2_sha256"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(password: str, *, iterations: int = _PBKDF2_ITERATIONS) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return f"{_HASH_SCHEME}${iterations}${_b64(salt)}${_b64(digest)}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$")
        if scheme != _HASH_SCHEME:
            return False
        digest = hashlib.pbkdf2_hmac("sha256", password.encode(), _unb64(salt), int(iterations))
    except ValueError:
        return False
    return hmac.compare_digest(_b64(digest), expected)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def _sign(message: str, secret: str) -> str:
    return _b64(hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest())


def issue_token(
    user_id: str,
    *,
    secret: str | None = None,
    ttl_seconds: int | None = None,
    now: float | None = None,
) -> str:
    expiry = int((now if now is not None else time.time()) + (ttl_seconds or settings.auth_token_ttl_seconds))
    message = f"{user_id}.{expiry}"
    return f"{message}.{_sign(message, secret or settings.auth_secret)}"


def read_token(token: str, *, secret: str | None = None, now: float | None = None) -> str:
    """Return the user id carried by a valid, unexpired *token*.

    Raises :class:`Unauthorized` otherwise.
    """
    parts = token.strip().split(".")
    if len(parts) != 3:
        raise Unauthorized("Invalid token")
    user_id, expiry, signature = parts

    expected = _sign(f"{user_id}.{expiry}", secret or settings.auth_secret)
    if not hmac.compare_digest(signature, expected):
        raise Unauthorized("Invalid token")
    try:
        expires_at = int(expiry)
    except ValueError as exc:
        raise Unauthorized("Invalid token") from exc
    if expires_at <= (now if now is not None else time.time()):
        raise Unauthorized("Token expired")
    return user_id


async def user_from_token(token: str | None, users: UserRepository) -> User:
    if not token:
        raise Unauthorized()
    user = await users.get(read_token(token))
    if user is None or not user.is_active:
        raise Unauthorized("Token is not valid")
    return user


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


async def current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> User:
    """Resolve the caller from the ``Authorization: Bearer`` header."""
    token = credentials.credentials if credentials is not None else None
    try:
        return await user_from_token(token, request.app.state.users)
    except Unauthorized:
        logger.warning(
            "auth.rejected",
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )
        raise


async def verified_user(user: User = Depends(current_user)) -> User:
    if not user.is_verified:
        raise Forbidden("Account verification required")
    return user
