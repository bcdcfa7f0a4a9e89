"""
Course model and the course_enrollments association table.

Courses are created by admins, optionally assigned to one teacher and hold
a roster of enrolled students. Deleting a course only clears is_active.
"""

import uuid
from sqlalchemy import Column, Text, Integer, DateTime, Boolean, String, ForeignKey, Index, Table, text
from sqlalchemy.orm import relationship

from virtuclass.database import Base
from virtuclass.timeutils import utcnow

course_enrollments = Table(
    "course_enrollments",
    Base.metadata,
    Column("course_id", String(36), ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("enrolled_at", DateTime, nullable=False, default=utcnow),
)


class Course(Base):
    """
    SQLAlchemy model for the courses table.

    (code, year_group) is unique among active courses only, so a code can be
    reused after the previous course carrying it was soft-deleted.
    """
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique course identifier")
    name = Column(Text, nullable=False)
    code = Column(String(32), nullable=False, doc="Uppercased course code")
    year_group = Column(Integer, nullable=False, doc="Year group 1-6")
    description = Column(Text, nullable=False, default="")
    teacher_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
                        doc="Assigned teacher, if any")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    teacher = relationship("User", back_populates="taught_courses")
    students = relationship("User", secondary=course_enrollments, order_by="User.name")
    assessments = relationship("Assessment", back_populates="course")

    __table_args__ = (
        Index("uq_courses_code_year_active", "code", "year_group", unique=True,
              sqlite_where=text("is_active = 1"), postgresql_where=text("is_active")),
        Index("ix_courses_teacher_id", "teacher_id"),
    )

    def has_student(self, user_id: str) -> bool:
        return any(s.id == user_id for s in self.students)

    @property
    def class_prefix(self) -> str:
        """First three characters of the code, matched against student class codes."""
        return (self.code or "")[:3].upper()

    def __repr__(self):
        return f"<Course(id={self.id}, code='{self.code}', year_group={self.year_group})>"
