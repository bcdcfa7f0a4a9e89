"""
Live session model - a scheduled Google Meet class.

Status (scheduled, live, ended, cancelled) only changes through explicit
teacher/admin calls; nothing moves it on a timer.
"""

import uuid
from datetime import timedelta
from sqlalchemy import Column, Text, Integer, DateTime, String, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from virtuclass.database import Base
from virtuclass.timeutils import utcnow

SESSION_STATUSES = ("scheduled", "live", "ended", "cancelled")
MIN_DURATION_MINUTES = 5
MAX_DURATION_MINUTES = 480


class LiveSession(Base):
    __tablename__ = "live_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    meeting_id = Column(String(255), nullable=False, unique=True, doc="Calendar event id")
    meeting_url = Column(Text, nullable=False, doc="Joinable video URL")
    start_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False, doc="Minutes, 5-480")
    status = Column(String(16), nullable=False, default="scheduled")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    course = relationship("Course")
    teacher = relationship("User")
    participants = relationship("SessionParticipant", back_populates="session",
                                order_by="SessionParticipant.joined_at",
                                cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_live_sessions_teacher_start", "teacher_id", "start_time"),
        Index("ix_live_sessions_course_start", "course_id", "start_time"),
        Index("ix_live_sessions_status_start", "status", "start_time"),
    )

    @property
    def end_time(self):
        return self.start_time + timedelta(minutes=self.duration)

    def is_live_at(self, moment) -> bool:
        """Display-only notion of 'live now'; does not touch status."""
        return self.start_time <= moment < self.end_time

    def __repr__(self):
        return f"<LiveSession(id={self.id}, title='{self.title}', status='{self.status}')>"


class SessionParticipant(Base):
    __tablename__ = "session_participants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(36), ForeignKey("live_sessions.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime, nullable=True, default=utcnow)
    left_at = Column(DateTime, nullable=True)

    session = relationship("LiveSession", back_populates="participants")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_session_participants_user"),
    )
