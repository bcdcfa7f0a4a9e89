"""
Assessment and Question models.

An assessment is a quiz, assignment or exam owned by one teacher inside one
course. Its questions are stored in their canonical order (position); any
shuffling happens only when questions are presented to a student.
total_points is kept equal to the sum of the question points by a
before_flush hook, so it can never drift from the question list.
"""

import uuid
from sqlalchemy import Column, Text, Integer, Float, DateTime, Boolean, String, ForeignKey, Index, JSON, event
from sqlalchemy.orm import relationship, Session

from virtuclass.database import Base
from virtuclass.timeutils import utcnow

ASSESSMENT_TYPES = ("quiz", "assignment", "exam")
ASSESSMENT_STATUSES = ("draft", "published", "closed")

QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer", "essay")
OBJECTIVE_TYPES = ("multiple_choice", "true_false")
SUBJECTIVE_TYPES = ("short_answer", "essay")


class Assessment(Base):
    """
    SQLAlchemy model for the assessments table.

    Status lifecycle: draft -> published -> closed. A published assessment
    can return to draft only while nobody has started it.
    """
    __tablename__ = "assessments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique assessment identifier")
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(16), nullable=False, doc="quiz | assignment | exam")
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    start_date = Column(DateTime, nullable=False, doc="Opening of the availability window")
    end_date = Column(DateTime, nullable=False, doc="Closing of the availability window")
    duration = Column(Integer, nullable=False, doc="Time allowed per attempt, in minutes")

    attempts = Column(Integer, nullable=False, default=1, doc="Maximum attempts per student")
    show_results = Column(Boolean, nullable=False, default=True)
    show_correct_answers = Column(Boolean, nullable=False, default=False)
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    shuffle_options = Column(Boolean, nullable=False, default=False)
    passing_score = Column(Float, nullable=True, doc="Percentage required to pass")

    total_points = Column(Float, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="draft")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    course = relationship("Course", back_populates="assessments")
    teacher = relationship("User")
    questions = relationship("Question", back_populates="assessment",
                             order_by="Question.position",
                             cascade="all, delete-orphan")
    submissions = relationship("Submission", back_populates="assessment")

    __table_args__ = (
        Index("ix_assessments_course_teacher", "course_id", "teacher_id"),
        Index("ix_assessments_window", "start_date", "end_date"),
        Index("ix_assessments_status_active", "status", "is_active"),
    )

    def recompute_total_points(self):
        self.total_points = float(sum(q.points or 0 for q in self.questions))
        return self.total_points

    @property
    def has_subjective_questions(self) -> bool:
        return any(q.type in SUBJECTIVE_TYPES for q in self.questions)

    def is_open_at(self, moment) -> bool:
        return self.start_date <= moment <= self.end_date

    def __repr__(self):
        return f"<Assessment(id={self.id}, title='{self.title}', status='{self.status}')>"


class Question(Base):
    """One question of an assessment; grading is keyed by its id."""
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Stable question identifier")
    assessment_id = Column(String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0, doc="Canonical order within the assessment")
    question = Column(Text, nullable=False, doc="Question text")
    type = Column(String(32), nullable=False)
    options = Column(JSON, nullable=True, doc="Answer options for choice questions")
    correct_answer = Column(Text, nullable=True, doc="Expected answer for choice questions")
    points = Column(Float, nullable=False, default=0)
    explanation = Column(Text, nullable=True)

    assessment = relationship("Assessment", back_populates="questions")

    __table_args__ = (
        Index("ix_questions_assessment_id", "assessment_id"),
    )

    @property
    def is_objective(self) -> bool:
        return self.type in OBJECTIVE_TYPES

    def __repr__(self):
        return f"<Question(id={self.id}, type='{self.type}', points={self.points})>"


@event.listens_for(Session, "before_flush")
def _keep_total_points_consistent(session, flush_context, instances):
    touched = set()
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, Assessment):
            touched.add(obj)
        elif isinstance(obj, Question) and obj.assessment is not None:
            touched.add(obj.assessment)
    for assessment in touched:
        if assessment in session.deleted:
            continue
        assessment.recompute_total_points()
