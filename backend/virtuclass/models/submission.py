"""
Submission model - one student's attempt at one assessment.

Status lifecycle:
- in_progress: created by "start", answers auto-saved periodically
- submitted: final answers received within the allowed duration
- late: final answers received after the allowed duration
- graded: a teacher has recorded a manual grade

The graded flag is set either by auto-grading (assessments without
subjective questions) or by the manual grade.
"""

import uuid
from sqlalchemy import Column, Integer, Float, DateTime, Boolean, String, Text, ForeignKey, Index, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from virtuclass.database import Base
from virtuclass.timeutils import utcnow

SUBMISSION_STATUSES = ("in_progress", "submitted", "graded", "late")


class Submission(Base):
    """
    SQLAlchemy model for the submissions table.

    The unique (assessment_id, student_id, attempt_number) constraint turns
    two concurrent "start" calls for the same attempt into one success and
    one rejected insert.
    """
    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique submission identifier")
    assessment_id = Column(String(36), ForeignKey("assessments.id"), nullable=False)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    answers = Column(JSON, nullable=False, default=list,
                     doc="Ordered answers: [{question_id, answer, time_spent}]")

    started_at = Column(DateTime, nullable=False, default=utcnow)
    submitted_at = Column(DateTime, nullable=True)
    time_elapsed = Column(Integer, nullable=False, default=0, doc="Seconds spent on the attempt")

    score = Column(Float, nullable=True, doc="Points earned")
    percentage = Column(Float, nullable=True, doc="score / total points * 100")
    question_scores = Column(JSON, nullable=True,
                             doc="Points awarded per question id by the last manual grade")
    graded = Column(Boolean, nullable=False, default=False)
    graded_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    graded_at = Column(DateTime, nullable=True)
    feedback = Column(Text, nullable=True)

    attempt_number = Column(Integer, nullable=False, doc="1-based attempt counter per student")
    status = Column(String(16), nullable=False, default="in_progress")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    assessment = relationship("Assessment", back_populates="submissions")
    student = relationship("User", foreign_keys=[student_id])
    graded_by = relationship("User", foreign_keys=[graded_by_id])

    __table_args__ = (
        UniqueConstraint("assessment_id", "student_id", "attempt_number",
                         name="uq_submissions_attempt"),
        Index("ix_submissions_assessment_status", "assessment_id", "status"),
        Index("ix_submissions_student_submitted", "student_id", "submitted_at"),
    )

    def answer_map(self) -> dict:
        """Map question id -> recorded answer."""
        return {
            a.get("question_id"): a.get("answer")
            for a in (self.answers or [])
            if isinstance(a, dict)
        }

    def __repr__(self):
        return (f"<Submission(id={self.id}, assessment={self.assessment_id}, "
                f"student={self.student_id}, attempt={self.attempt_number}, status='{self.status}')>")
