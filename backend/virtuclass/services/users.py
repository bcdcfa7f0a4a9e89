"""User directory and profile operations."""

import re
from typing import Optional

from sqlalchemy.orm import Session

from virtuclass.errors import ConflictError, ValidationError
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.user import User, ROLES
from virtuclass.security import hash_password
from virtuclass.services.auth import MIN_PASSWORD_LENGTH, validate_email, get_user_by_email

logger = get_logger("auth")

CLASS_CODE_PATTERN = re.compile(r"^[A-Za-z]{2}[0-9]$")

_UNSET = object()


def list_users(db: Session) -> list:
    return db.query(User).order_by(User.created_at.desc()).all()


def create_user(db: Session, email: str, password: str, name: str, role: str) -> User:
    """Admin-created accounts skip both email verification and approval."""
    email = validate_email(email)
    if role not in ROLES:
        raise ValidationError("Invalid role")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least {} characters".format(MIN_PASSWORD_LENGTH))
    if get_user_by_email(db, email):
        raise ConflictError("Email already in use")

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=(name or "").strip() or None,
        role=role,
        email_verified=True,
        is_approved=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log_with_context(logger, "INFO", "User created by admin",
                     context={"user_id": user.id}, extra_data={"role": role})
    return user


def list_students(db: Session, prefix: Optional[str] = None) -> list:
    query = db.query(User).filter(User.role == "student")
    if prefix:
        query = query.filter(User.class_code == prefix.strip().upper())
    return query.order_by(User.name).all()


def update_profile(db: Session, user: User, name=_UNSET, class_year=_UNSET, class_code=_UNSET) -> User:
    """
    Update the caller's own profile. Only the fields passed are touched;
    None clears class_year/class_code.
    """
    if name is not _UNSET and name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        user.name = name

    if class_year is not _UNSET:
        if class_year is not None and not 1 <= class_year <= 6:
            raise ValidationError("class_year must be between 1 and 6")
        user.class_year = class_year

    if class_code is not _UNSET:
        if class_code is not None and class_code.strip() != "":
            if not CLASS_CODE_PATTERN.match(class_code.strip()):
                raise ValidationError("class_code must be two letters followed by a digit")
            user.class_code = class_code.strip().upper()
        else:
            user.class_code = None

    db.commit()
    db.refresh(user)
    return user
