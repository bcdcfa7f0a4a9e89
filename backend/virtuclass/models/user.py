"""
User model - students, teachers and admins.

A user row also owns its authentication state: the one-time tokens for
email verification and password reset, and the list of refresh tokens that
are currently valid (see RefreshToken).
"""

import uuid
from sqlalchemy import Column, Text, DateTime, Boolean, Integer, String, ForeignKey, Index
from sqlalchemy.orm import relationship

from virtuclass.database import Base
from virtuclass.timeutils import utcnow

ROLES = ("student", "teacher", "admin")


def _default_is_approved(context):
    # Teachers wait for an admin; students and admins are approved at once
    return context.get_current_parameters().get("role", "student") != "teacher"


class User(Base):
    """
    SQLAlchemy model for the users table.

    Emails are stored lowercased, so the unique index on email is a
    case-insensitive uniqueness guarantee.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique user identifier")
    email = Column(String(320), nullable=False, unique=True,
                   doc="Lowercased login email")
    password_hash = Column(Text, nullable=False,
                           doc="bcrypt hash of the password")
    role = Column(String(16), nullable=False, default="student",
                  doc="student | teacher | admin")
    name = Column(Text, nullable=True, doc="Display name")
    email_verified = Column(Boolean, nullable=False, default=False)
    is_approved = Column(Boolean, nullable=False, default=_default_is_approved,
                         doc="Teachers need an admin approval before they can log in")

    verification_token = Column(String(64), nullable=True)
    verification_expires_at = Column(DateTime, nullable=True)
    reset_token = Column(String(64), nullable=True)
    reset_expires_at = Column(DateTime, nullable=True)

    class_year = Column(Integer, nullable=True, doc="Student class year (1-6)")
    class_code = Column(String(3), nullable=True,
                        doc="Student class code, two letters and a digit (e.g. AB1)")
    google_refresh_token = Column(Text, nullable=True,
                                  doc="Long-lived Google credential used to create Meet events")
    last_login_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    refresh_tokens = relationship("RefreshToken", back_populates="user",
                                  cascade="all, delete-orphan")
    taught_courses = relationship("Course", back_populates="teacher")

    __table_args__ = (
        Index("ix_users_role", "role"),
    )

    def to_public_dict(self) -> dict:
        """Profile fields that are safe to return to clients."""
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "name": self.name,
            "email_verified": self.email_verified,
            "is_approved": self.is_approved,
            "class_year": self.class_year,
            "class_code": self.class_code,
            "google_connected": bool(self.google_refresh_token),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class RefreshToken(Base):
    """One entry of a user's active refresh-token list."""
    __tablename__ = "user_refresh_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("ix_user_refresh_tokens_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<RefreshToken(user={self.user_id}, created_at={self.created_at})>"
