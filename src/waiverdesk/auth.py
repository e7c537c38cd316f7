"""Admin credential and session-token helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from .config import Settings
from .errors import AuthError, ConflictError, ValidationError
from .store import WaiverStore

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Principal:
    """Authenticated admin identity carried by a session token."""

    username: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_token(username: str, settings: Settings, *, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "username": username,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.token_ttl_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=TOKEN_ALGORITHM)


def is_authenticated(token: str | None, settings: Settings) -> Principal | None:
    """Return the principal for a valid token, otherwise ``None``."""

    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[TOKEN_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.debug("token_rejected reason=%s", exc)
        return None
    username = payload.get("username")
    if not isinstance(username, str) or not username:
        return None
    return Principal(username=username)


def require_principal(token: str | None, settings: Settings) -> Principal:
    if not token:
        raise AuthError("Unauthorized")
    principal = is_authenticated(token, settings)
    if principal is None:
        raise AuthError("Invalid token")
    return principal


async def authenticate_admin(store: WaiverStore, username: str, password: str) -> bool:
    password_hash = await store.get_admin_password_hash(username)
    if password_hash is None:
        return False
    return verify_password(password, password_hash)


async def create_admin_user(
    store: WaiverStore,
    username: str,
    password: str,
    settings: Settings,
) -> int:
    username = (username or "").strip()
    if not username or not password:
        raise ValidationError("Username and password are required")
    if len(password) < settings.min_password_length:
        raise ValidationError(
            f"Password must be at least {settings.min_password_length} characters long"
        )
    try:
        user_id = await store.create_admin(username, hash_password(password))
    except ConflictError:
        logger.info("admin_create_conflict username=%s", username)
        raise
    logger.info("admin_created username=%s id=%s", username, user_id)
    return user_id
