import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from .config import settings
from .models import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    account_id: int
    role: UserRole


MAX_PASSWORD_BYTES = 72


def password_fits_bcrypt(password: str) -> bool:
    return len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(account_id: int, role: UserRole, expires_minutes: int | None = None) -> str:
    exp_minutes = expires_minutes or settings.jwt_exp_minutes
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(account_id),
        "role": role.value,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenClaims | None:
    """Return the claims of a valid token, or None for anything else.

    Expired, tampered and malformed tokens are all reported the same way so
    the caller only has one failure branch.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "role", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
        return None
    except jwt.InvalidTokenError as exc:
        logger.info(f"Rejected invalid access token: {exc}")
        return None

    try:
        return TokenClaims(account_id=int(payload["sub"]), role=UserRole(payload["role"]))
    except (TypeError, ValueError):
        logger.info("Rejected access token with malformed claims")
        return None
