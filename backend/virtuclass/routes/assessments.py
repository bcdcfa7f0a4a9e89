"""
Assessments API routes - question bank, scheduling and publication.

Provides endpoints for:
- Creating, updating and soft-deleting assessments (owner teacher)
- Publishing, unpublishing and closing
- Teacher and student listings
- Per-assessment statistics
"""

from datetime import datetime
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.assessment import Assessment
from virtuclass.models.submission import Submission
from virtuclass.models.user import User
from virtuclass.services import assessments as assessment_service
from virtuclass.timeutils import isoformat

router = APIRouter()

AnswerValue = Union[str, bool, int, float]


# ── Pydantic schemas ─────────────────────────────────────────

class QuestionPayload(BaseModel):
    """A question as sent by the teacher; id is only set when editing an existing one."""
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = None
    question: str
    type: str
    options: Optional[List[AnswerValue]] = None
    correct_answer: Optional[AnswerValue] = None
    points: float = 0
    explanation: Optional[str] = None


class AssessmentCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    description: Optional[str] = None
    type: str
    course_id: str
    start_date: datetime
    end_date: datetime
    duration: int
    attempts: int = 1
    show_results: bool = True
    show_correct_answers: bool = False
    shuffle_questions: bool = False
    shuffle_options: bool = False
    passing_score: Optional[float] = None
    questions: List[QuestionPayload] = []


class AssessmentUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    course_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: Optional[int] = None
    attempts: Optional[int] = None
    show_results: Optional[bool] = None
    show_correct_answers: Optional[bool] = None
    shuffle_questions: Optional[bool] = None
    shuffle_options: Optional[bool] = None
    passing_score: Optional[float] = None
    questions: Optional[List[QuestionPayload]] = None


def serialize_question(question, include_answers: bool) -> dict:
    data = {
        "id": question.id,
        "question": question.question,
        "type": question.type,
        "options": question.options,
        "points": question.points,
    }
    if include_answers:
        data["correct_answer"] = question.correct_answer
        data["explanation"] = question.explanation
    return data


def serialize_assessment(assessment: Assessment, include_questions: bool = True,
                         include_answers: bool = False) -> dict:
    """Serialize an Assessment; correct answers only when include_answers is set."""
    data = {
        "id": assessment.id,
        "title": assessment.title,
        "description": assessment.description,
        "type": assessment.type,
        "course": {
            "id": assessment.course.id,
            "name": assessment.course.name,
            "code": assessment.course.code,
        } if assessment.course else None,
        "teacher": {
            "id": assessment.teacher.id,
            "name": assessment.teacher.name,
        } if assessment.teacher else None,
        "start_date": isoformat(assessment.start_date),
        "end_date": isoformat(assessment.end_date),
        "duration": assessment.duration,
        "attempts": assessment.attempts,
        "show_results": assessment.show_results,
        "show_correct_answers": assessment.show_correct_answers,
        "shuffle_questions": assessment.shuffle_questions,
        "shuffle_options": assessment.shuffle_options,
        "passing_score": assessment.passing_score,
        "total_points": assessment.total_points,
        "question_count": len(assessment.questions),
        "status": assessment.status,
        "is_active": assessment.is_active,
        "created_at": isoformat(assessment.created_at),
        "updated_at": isoformat(assessment.updated_at),
    }
    if include_questions:
        data["questions"] = [serialize_question(q, include_answers) for q in assessment.questions]
    return data


def serialize_submission_summary(submission: Optional[Submission]) -> Optional[dict]:
    if submission is None:
        return None
    return {
        "id": submission.id,
        "attempt_number": submission.attempt_number,
        "status": submission.status,
        "score": submission.score,
        "percentage": submission.percentage,
        "graded": submission.graded,
        "started_at": isoformat(submission.started_at),
        "submitted_at": isoformat(submission.submitted_at),
    }


def _split_payload(payload) -> tuple:
    fields = payload.model_dump(exclude_unset=True, exclude={"questions"})
    questions = None
    if "questions" in payload.model_fields_set and payload.questions is not None:
        questions = [q.model_dump() for q in payload.questions]
    return fields, questions


# ── Teacher endpoints ────────────────────────────────────────

@router.post("/api/assessments", status_code=201)
def create_assessment(payload: AssessmentCreateRequest, db: Session = Depends(get_db),
                      teacher: User = Depends(require_roles("teacher"))):
    fields = payload.model_dump(exclude={"questions", "course_id"})
    questions = [q.model_dump() for q in payload.questions]
    assessment = assessment_service.create_assessment(db, teacher, payload.course_id, fields, questions)
    return serialize_assessment(assessment, include_answers=True)


@router.get("/api/assessments/teacher")
def list_teacher_assessments(
    status: Optional[str] = Query(None, description="draft | published | closed"),
    type: Optional[str] = Query(None, description="quiz | assignment | exam"),
    course_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    teacher: User = Depends(require_roles("teacher")),
):
    assessments = assessment_service.list_teacher_assessments(db, teacher, status, type, course_id)
    results = []
    for assessment in assessments:
        data = serialize_assessment(assessment, include_questions=False)
        data["submission_count"] = assessment_service.submission_count(db, assessment.id)
        results.append(data)
    return results


@router.get("/api/assessments/student")
def list_student_assessments(
    type: Optional[str] = Query(None, description="quiz | assignment | exam"),
    db: Session = Depends(get_db),
    student: User = Depends(require_roles("student")),
):
    results = []
    for assessment, summary in assessment_service.list_student_assessments(db, student, type):
        data = serialize_assessment(assessment, include_questions=False)
        data.update({
            "attempt_count": summary["attempt_count"],
            "can_take_again": summary["can_take_again"],
            "is_available": summary["is_available"],
            "latest_submission": serialize_submission_summary(summary["latest_submission"]),
        })
        results.append(data)
    return results


@router.get("/api/assessments/{assessment_id}")
def get_assessment(assessment_id: str, db: Session = Depends(get_db),
                   user: User = Depends(get_current_user)):
    assessment = assessment_service.get_assessment_for_viewer(db, assessment_id, user)
    return serialize_assessment(assessment, include_answers=user.role != "student")


@router.put("/api/assessments/{assessment_id}")
def update_assessment(assessment_id: str, payload: AssessmentUpdateRequest,
                      db: Session = Depends(get_db),
                      teacher: User = Depends(require_roles("teacher"))):
    fields, questions = _split_payload(payload)
    assessment = assessment_service.update_assessment(db, assessment_id, teacher, fields, questions)
    return serialize_assessment(assessment, include_answers=True)


@router.delete("/api/assessments/{assessment_id}")
def delete_assessment(assessment_id: str, db: Session = Depends(get_db),
                      teacher: User = Depends(require_roles("teacher"))):
    assessment_service.delete_assessment(db, assessment_id, teacher)
    return {"success": True}


@router.patch("/api/assessments/{assessment_id}/publish")
def publish_assessment(assessment_id: str, db: Session = Depends(get_db),
                       teacher: User = Depends(require_roles("teacher"))):
    assessment = assessment_service.publish_assessment(db, assessment_id, teacher)
    return serialize_assessment(assessment, include_answers=True)


@router.patch("/api/assessments/{assessment_id}/unpublish")
def unpublish_assessment(assessment_id: str, db: Session = Depends(get_db),
                         teacher: User = Depends(require_roles("teacher"))):
    assessment = assessment_service.unpublish_assessment(db, assessment_id, teacher)
    return serialize_assessment(assessment, include_answers=True)


@router.patch("/api/assessments/{assessment_id}/close")
def close_assessment(assessment_id: str, db: Session = Depends(get_db),
                     teacher: User = Depends(require_roles("teacher"))):
    assessment = assessment_service.close_assessment(db, assessment_id, teacher)
    return serialize_assessment(assessment, include_answers=True)


@router.get("/api/assessments/{assessment_id}/stats")
def assessment_stats(assessment_id: str, db: Session = Depends(get_db),
                     teacher: User = Depends(require_roles("teacher"))):
    stats = assessment_service.assessment_stats(db, assessment_id, teacher)
    assessment = stats.pop("assessment")
    stats["submissions"] = [
        {
            **serialize_submission_summary(s),
            "student": {"id": s.student.id, "name": s.student.name, "email": s.student.email},
        }
        for s in stats["submissions"]
    ]
    return {"assessment": serialize_assessment(assessment, include_questions=False), **stats}
