"""
Course service - course CRUD, teacher assignment and enrollment.

Courses are soft-deleted. (code, year_group) must be unique among active
courses; the check here gives a clean Conflict, and the partial unique
index catches the concurrent case.
"""

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from virtuclass.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.course import Course
from virtuclass.models.user import User

logger = get_logger("db")

_UNSET = object()


def get_active_course(db: Session, course_id: str) -> Course:
    course = db.get(Course, course_id)
    if not course or not course.is_active:
        raise NotFoundError("Course not found")
    return course


def _validate_year_group(year_group: int):
    if year_group is None or not 1 <= year_group <= 6:
        raise ValidationError("year_group must be between 1 and 6")


def _resolve_teacher(db: Session, teacher_id: Optional[str]) -> Optional[User]:
    if not teacher_id:
        return None
    teacher = db.get(User, teacher_id)
    if not teacher or teacher.role != "teacher":
        raise ValidationError("Assigned teacher must be an existing teacher")
    if not teacher.is_approved:
        raise ValidationError("Assigned teacher is not approved")
    return teacher


def _resolve_students(db: Session, student_ids: Iterable[str]) -> list:
    ids = list(dict.fromkeys(student_ids or []))
    if not ids:
        return []
    students = db.query(User).filter(User.id.in_(ids), User.role == "student").all()
    if len(students) != len(ids):
        raise ValidationError("All enrolled users must be existing students")
    return students


def _ensure_code_free(db: Session, code: str, year_group: int, exclude_id: str = None):
    query = db.query(Course).filter(
        Course.code == code,
        Course.year_group == year_group,
        Course.is_active.is_(True),
    )
    if exclude_id:
        query = query.filter(Course.id != exclude_id)
    if query.first():
        raise ConflictError("Course code already exists for this year group")


def create_course(db: Session, name: str, code: str, year_group: int, description: str = "",
                  teacher_id: str = None, student_ids: Iterable[str] = None) -> Course:
    name = (name or "").strip()
    code = (code or "").strip().upper()
    if not name or not code:
        raise ValidationError("name and code are required")
    _validate_year_group(year_group)
    _ensure_code_free(db, code, year_group)
    teacher = _resolve_teacher(db, teacher_id)

    course = Course(
        name=name,
        code=code,
        year_group=year_group,
        description=description or "",
        teacher=teacher,
    )
    course.students = _resolve_students(db, student_ids)
    db.add(course)
    db.commit()
    db.refresh(course)

    log_with_context(logger, "INFO", "Course created",
                     context={"course_id": course.id},
                     extra_data={"code": code, "year_group": year_group})
    return course


def update_course(db: Session, course_id: str, name=_UNSET, code=_UNSET, year_group=_UNSET,
                  description=_UNSET, teacher_id=_UNSET, student_ids=_UNSET) -> Course:
    course = get_active_course(db, course_id)

    new_code = course.code if code is _UNSET or code is None else code.strip().upper()
    new_year = course.year_group if year_group is _UNSET or year_group is None else year_group
    if not new_code:
        raise ValidationError("code cannot be empty")
    _validate_year_group(new_year)
    if (new_code, new_year) != (course.code, course.year_group):
        _ensure_code_free(db, new_code, new_year, exclude_id=course.id)

    if name is not _UNSET and name is not None:
        if not name.strip():
            raise ValidationError("name cannot be empty")
        course.name = name.strip()
    if description is not _UNSET:
        course.description = description or ""
    if teacher_id is not _UNSET:
        course.teacher = _resolve_teacher(db, teacher_id)
    if student_ids is not _UNSET and student_ids is not None:
        course.students = _resolve_students(db, student_ids)
    course.code = new_code
    course.year_group = new_year

    db.commit()
    db.refresh(course)
    log_with_context(logger, "INFO", "Course updated", context={"course_id": course.id})
    return course


def delete_course(db: Session, course_id: str):
    course = get_active_course(db, course_id)
    course.is_active = False
    db.commit()
    log_with_context(logger, "INFO", "Course deactivated", context={"course_id": course.id})


def list_courses(db: Session, user: User) -> list:
    query = db.query(Course).filter(Course.is_active.is_(True))
    if user.role == "teacher":
        query = query.filter(Course.teacher_id == user.id)
    return query.order_by(Course.year_group, Course.code).all()


def self_enroll(db: Session, course_id: str, student: User) -> Course:
    """
    Enroll a student whose class code matches the first three characters of
    the course code. Enrolling twice leaves the roster unchanged.
    """
    course = get_active_course(db, course_id)
    if not student.class_code:
        raise ValidationError("Set your class code before enrolling")
    if student.class_code.upper() != course.class_prefix:
        raise AuthorizationError("Your class code does not match this course")

    if not course.has_student(student.id):
        course.students.append(student)
        db.commit()
        db.refresh(course)
        log_with_context(logger, "INFO", "Student self-enrolled",
                         context={"course_id": course.id, "user_id": student.id})
    return course


def update_enrollments(db: Session, course_id: str, student_ids: Iterable[str], caller: User) -> Course:
    """Replace the roster. Allowed for admins and the assigned teacher."""
    course = get_active_course(db, course_id)
    if caller.role != "admin" and course.teacher_id != caller.id:
        raise AuthorizationError("Only an admin or the assigned teacher can change enrollments")

    course.students = _resolve_students(db, student_ids)
    db.commit()
    db.refresh(course)
    log_with_context(logger, "INFO", "Enrollments replaced",
                     context={"course_id": course.id, "user_id": caller.id},
                     extra_data={"students": len(course.students)})
    return course


def list_available_teachers(db: Session) -> list:
    return db.query(User).filter(
        User.role == "teacher",
        User.is_approved.is_(True),
    ).order_by(User.name).all()


def enrolled_course_ids(db: Session, student_id: str) -> list:
    return [
        c.id for c in db.query(Course).filter(
            Course.is_active.is_(True),
            Course.students.any(User.id == student_id),
        ).all()
    ]
