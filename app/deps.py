from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from app.clock import utcnow
from app.db import get_session
from app.models import User
from app.schemas import Role
from app.security import decode_token
from app.error import _auth_401, _forbidden_403

# auto_error=False so a missing token gets our own error body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_clock():
    """Clock used by the transaction endpoints; overridden in tests."""
    return utcnow


def require_user(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    if not token:
        raise _auth_401("NOT_AUTHENTICATED", "Not logged in or session expired")

    try:
        email = decode_token(token)
    except Exception:
        raise _auth_401("INVALID_TOKEN", "Token is invalid or expired")

    # token is valid but the account may have been deleted since
    user = session.exec(select(User).where(User.email == email)).first()
    if not user:
        raise _auth_401("USER_NOT_FOUND", "User does not exist or was deleted")

    return user


def require_roles(*roles: Role):
    allowed = {r.value for r in roles}

    def checker(user: User = Depends(require_user)) -> User:
        if user.role not in allowed:
            raise _forbidden_403()
        return user

    return checker


require_admin = require_roles(Role.ADMIN)
require_manager = require_roles(Role.ADMIN, Role.MANAGER)
