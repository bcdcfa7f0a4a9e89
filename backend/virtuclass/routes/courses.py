"""
Courses API routes - course management and enrollment.

Provides endpoints for:
- Admin course CRUD (soft delete)
- Role-scoped course listing
- Roster replacement by an admin or the assigned teacher
- Student self-enrollment by class code
"""

from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.course import Course
from virtuclass.models.user import User
from virtuclass.services import courses as course_service
from virtuclass.timeutils import isoformat

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class CourseCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    code: str
    year_group: int
    description: Optional[str] = ""
    teacher_id: Optional[str] = None
    student_ids: List[str] = []


class CourseUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    code: Optional[str] = None
    year_group: Optional[int] = None
    description: Optional[str] = None
    teacher_id: Optional[str] = None
    student_ids: Optional[List[str]] = None


class EnrollmentsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    student_ids: List[str]


def _person(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


def serialize_course(course: Course) -> dict:
    """Full course view for admins and teachers, including the roster."""
    return {
        "id": course.id,
        "name": course.name,
        "code": course.code,
        "year_group": course.year_group,
        "description": course.description,
        "teacher": _person(course.teacher),
        "students": [
            {**_person(s), "class_code": s.class_code}
            for s in course.students
        ],
        "is_active": course.is_active,
        "created_at": isoformat(course.created_at),
        "updated_at": isoformat(course.updated_at),
    }


def serialize_course_for_student(course: Course, student_id: str) -> dict:
    return {
        "id": course.id,
        "name": course.name,
        "code": course.code,
        "year_group": course.year_group,
        "description": course.description,
        "teacher_name": course.teacher.name if course.teacher else None,
        "enrolled": course.has_student(student_id),
    }


@router.get("/api/courses")
def list_courses(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    courses = course_service.list_courses(db, user)
    if user.role == "student":
        return [serialize_course_for_student(c, user.id) for c in courses]
    return [serialize_course(c) for c in courses]


@router.post("/api/courses", status_code=201)
def create_course(payload: CourseCreateRequest, db: Session = Depends(get_db),
                  _admin: User = Depends(require_roles("admin"))):
    course = course_service.create_course(
        db,
        name=payload.name,
        code=payload.code,
        year_group=payload.year_group,
        description=payload.description,
        teacher_id=payload.teacher_id,
        student_ids=payload.student_ids,
    )
    return serialize_course(course)


@router.get("/api/courses/teachers/available")
def available_teachers(db: Session = Depends(get_db), _admin: User = Depends(require_roles("admin"))):
    return [_person(t) for t in course_service.list_available_teachers(db)]


@router.put("/api/courses/{course_id}")
def update_course(course_id: str, payload: CourseUpdateRequest, db: Session = Depends(get_db),
                  _admin: User = Depends(require_roles("admin"))):
    course = course_service.update_course(db, course_id, **payload.model_dump(exclude_unset=True))
    return serialize_course(course)


@router.delete("/api/courses/{course_id}")
def delete_course(course_id: str, db: Session = Depends(get_db),
                  _admin: User = Depends(require_roles("admin"))):
    course_service.delete_course(db, course_id)
    return {"success": True}


@router.put("/api/courses/{course_id}/enrollments")
def update_enrollments(course_id: str, payload: EnrollmentsRequest, db: Session = Depends(get_db),
                       user: User = Depends(require_roles("admin", "teacher"))):
    course = course_service.update_enrollments(db, course_id, payload.student_ids, user)
    return serialize_course(course)


@router.post("/api/courses/{course_id}/self-enroll")
def self_enroll(course_id: str, db: Session = Depends(get_db),
                student: User = Depends(require_roles("student"))):
    course = course_service.self_enroll(db, course_id, student)
    return {"success": True, "course": serialize_course_for_student(course, student.id)}
