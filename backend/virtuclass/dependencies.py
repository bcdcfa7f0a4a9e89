"""
Authorization gate - FastAPI dependencies that resolve the caller.

get_current_user verifies the bearer access token and loads the user row;
require_roles wraps it with a role allow-list. The role used for every
decision is the verified one, never a value from the request body.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.errors import AuthenticationError, AuthorizationError
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.user import User
from virtuclass.security import decode_access_token

logger = get_logger("auth")


def _bearer_token(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError()
    return token.strip()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    payload = decode_access_token(_bearer_token(request))
    user = db.get(User, payload["sub"])
    if user is None or user.role != payload.get("role"):
        # Deleted account, or a role change since the token was issued
        raise AuthenticationError()
    request.state.user = user
    return user


def require_roles(*roles: str):
    """Dependency factory: the caller must hold one of the given roles."""
    allowed = frozenset(roles)

    def checker(request: Request, user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            log_with_context(logger, "WARNING", "Role not allowed for route",
                             context={"user_id": user.id},
                             extra_data={"role": user.role, "path": request.url.path})
            raise AuthorizationError()
        return user

    return checker
