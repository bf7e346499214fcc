from collections.abc import Callable

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .database import get_db_session
from .errors import Forbidden, Unauthenticated
from .models import Account, UserRole
from .security import decode_access_token


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise Unauthenticated("Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise Unauthenticated("Invalid auth scheme")
    return parts[1].strip()


def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> Account:
    token = _parse_token(authorization)
    claims = decode_access_token(token)
    if claims is None:
        raise Unauthenticated("Invalid or expired token")

    # Tokens are never revoked; re-reading the account makes deactivation immediate.
    user = db.query(Account).filter(Account.id == claims.account_id).first()
    if not user or not user.is_active:
        raise Unauthenticated("User not found or inactive")
    return user


def require_roles(*allowed_roles: UserRole) -> Callable:
    def dependency(current_user: Account = Depends(get_current_user)) -> Account:
        if current_user.role not in allowed_roles:
            raise Forbidden()
        return current_user

    return dependency
