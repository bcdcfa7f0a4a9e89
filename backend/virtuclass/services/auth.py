"""
Identity service - registration, email verification, login, refresh-token
rotation, password reset and teacher approval.

Refresh tokens are JWTs that are only honoured while present in the
owner's active list (user_refresh_tokens). Rotation deletes the presented
token and inserts its replacement in one commit, and the delete is checked
by row count so a token can be consumed at most once even when two
refresh calls race.
"""

from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from virtuclass import config
from virtuclass.errors import (
    AuthenticationError, ConflictError, EmailNotVerifiedError, InvalidCredentialsError,
    InvalidTokenError, NotFoundError, PendingApprovalError, ValidationError,
)
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.user import User, RefreshToken, ROLES
from virtuclass.security import (
    create_access_token, create_refresh_token, decode_refresh_token,
    generate_one_time_token, hash_password, verify_password,
)
from virtuclass.timeutils import utcnow

logger = get_logger("auth")

MIN_PASSWORD_LENGTH = 6


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_email(email: str) -> str:
    email = normalize_email(email)
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValidationError("A valid email is required")
    return email


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def register_user(db: Session, email: str, password: str, name: str,
                  role: str = "student") -> Tuple[User, str]:
    """
    Create an unverified account and its email-verification token.

    Returns:
        (user, verification_token). The caller delivers the token by email.
    """
    email = validate_email(email)
    role = role or "student"
    if role not in ROLES:
        raise ValidationError("Invalid role")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least {} characters".format(MIN_PASSWORD_LENGTH))
    if get_user_by_email(db, email):
        raise ConflictError("Email already in use")

    token = generate_one_time_token()
    user = User(
        email=email,
        password_hash=hash_password(password),
        name=(name or "").strip() or None,
        role=role,
        email_verified=False,
        is_approved=role != "teacher",
        verification_token=token,
        verification_expires_at=utcnow() + timedelta(hours=config.VERIFICATION_TOKEN_TTL_HOURS),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    log_with_context(logger, "INFO", "User registered",
                     context={"user_id": user.id}, extra_data={"role": role})
    return user, token


def verify_email(db: Session, email: str, token: str) -> User:
    user = get_user_by_email(db, email)
    if not user or not token or user.verification_token != token:
        raise InvalidTokenError("Invalid token")
    if not user.verification_expires_at or user.verification_expires_at < utcnow():
        raise InvalidTokenError("Token expired")

    user.email_verified = True
    user.verification_token = None
    user.verification_expires_at = None
    db.commit()

    log_with_context(logger, "INFO", "Email verified", context={"user_id": user.id})
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    """
    Check credentials and login eligibility.

    Unknown email and wrong password raise the same error so the response
    does not reveal which accounts exist.
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password or "", user.password_hash):
        log_with_context(logger, "WARNING", "Failed login attempt")
        raise InvalidCredentialsError()
    if not user.email_verified:
        raise EmailNotVerifiedError()
    if user.role == "teacher" and not user.is_approved:
        raise PendingApprovalError()
    return user


def _issue_refresh_token(db: Session, user: User) -> str:
    token = create_refresh_token(user.id)
    db.add(RefreshToken(user_id=user.id, token=token, created_at=utcnow()))
    return token


def access_token_for(user: User) -> str:
    return create_access_token(user.id, user.role, email=user.email, name=user.name)


def login(db: Session, email: str, password: str) -> Tuple[User, dict]:
    user = authenticate(db, email, password)
    refresh = _issue_refresh_token(db, user)
    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)

    log_with_context(logger, "INFO", "User logged in",
                     context={"user_id": user.id}, extra_data={"role": user.role})
    return user, {"access": access_token_for(user), "refresh": refresh}


def rotate_refresh_token(db: Session, token: str) -> dict:
    """Consume a refresh token and return a fresh access/refresh pair."""
    payload = decode_refresh_token(token)
    user = db.get(User, payload["sub"])
    if not user:
        raise AuthenticationError("Invalid refresh token", code="INVALID_TOKEN")

    consumed = db.query(RefreshToken).filter(
        RefreshToken.user_id == user.id,
        RefreshToken.token == token,
    ).delete(synchronize_session="fetch")
    if consumed != 1:
        db.rollback()
        log_with_context(logger, "WARNING", "Refresh token reuse rejected",
                         context={"user_id": user.id})
        raise AuthenticationError("Invalid refresh token", code="INVALID_TOKEN")

    new_refresh = _issue_refresh_token(db, user)
    db.commit()
    return {"access": access_token_for(user), "refresh": new_refresh}


def request_password_reset(db: Session, email: str) -> Optional[Tuple[User, str]]:
    """
    Set a one-hour reset token when the account exists.

    Returns None for unknown emails; the route answers success either way.
    """
    user = get_user_by_email(db, email)
    if not user:
        return None
    token = generate_one_time_token()
    user.reset_token = token
    user.reset_expires_at = utcnow() + timedelta(hours=config.RESET_TOKEN_TTL_HOURS)
    db.commit()
    log_with_context(logger, "INFO", "Password reset requested", context={"user_id": user.id})
    return user, token


def reset_password(db: Session, email: str, token: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if not user or not token or user.reset_token != token:
        raise InvalidTokenError("Invalid token")
    if not user.reset_expires_at or user.reset_expires_at < utcnow():
        raise InvalidTokenError("Invalid token")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least {} characters".format(MIN_PASSWORD_LENGTH))

    user.password_hash = hash_password(password)
    user.reset_token = None
    user.reset_expires_at = None
    # A new password invalidates every session opened with the old one
    user.refresh_tokens.clear()
    db.commit()

    log_with_context(logger, "INFO", "Password reset completed", context={"user_id": user.id})
    return user


def logout(db: Session, token: str):
    """Drop one refresh token from whoever holds it. Unknown tokens are ignored."""
    db.query(RefreshToken).filter(RefreshToken.token == token).delete(synchronize_session="fetch")
    db.commit()


# ── Teacher approval (admin) ─────────────────────────────────

def list_pending_teachers(db: Session) -> list:
    return db.query(User).filter(
        User.role == "teacher",
        User.email_verified.is_(True),
        User.is_approved.is_(False),
    ).order_by(User.created_at.desc()).all()


def _get_teacher(db: Session, teacher_id: str) -> User:
    teacher = db.get(User, teacher_id)
    if not teacher:
        raise NotFoundError("Teacher not found")
    if teacher.role != "teacher":
        raise ValidationError("User is not a teacher")
    return teacher


def approve_teacher(db: Session, teacher_id: str) -> User:
    teacher = _get_teacher(db, teacher_id)
    teacher.is_approved = True
    db.commit()
    log_with_context(logger, "INFO", "Teacher approved", context={"user_id": teacher.id})
    return teacher


def reject_teacher(db: Session, teacher_id: str):
    """Rejection removes the account entirely."""
    teacher = _get_teacher(db, teacher_id)
    db.delete(teacher)
    db.commit()
    log_with_context(logger, "INFO", "Teacher rejected and removed", context={"user_id": teacher_id})
