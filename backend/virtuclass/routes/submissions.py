"""
Submission API routes - attempt lifecycle, grading and results.

Provides endpoints for:
- Starting or resuming an attempt
- Auto-saving progress and submitting
- Manual grading by the owner teacher
- Results, single submissions and per-assessment submission lists
"""

from typing import Dict, List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, confloat
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.submission import Submission
from virtuclass.models.user import User
from virtuclass.routes.assessments import AnswerValue
from virtuclass.services import assessments as assessment_service
from virtuclass.services import grading
from virtuclass.timeutils import isoformat

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class AnswerPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question_id: str
    answer: Optional[AnswerValue] = None
    time_spent: Optional[int] = None


class ProgressRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    answers: List[AnswerPayload] = []
    time_elapsed: Optional[int] = None


class SubmitRequest(BaseModel):
    """answers may be omitted to submit the last saved progress."""
    model_config = ConfigDict(extra="forbid")

    answers: Optional[List[AnswerPayload]] = None


class GradeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    grades: Dict[str, confloat(allow_inf_nan=False)]
    feedback: Optional[str] = None


def serialize_submission(submission: Submission) -> dict:
    return {
        "id": submission.id,
        "assessment_id": submission.assessment_id,
        "student": {
            "id": submission.student.id,
            "name": submission.student.name,
            "email": submission.student.email,
        } if submission.student else None,
        "answers": submission.answers or [],
        "started_at": isoformat(submission.started_at),
        "submitted_at": isoformat(submission.submitted_at),
        "time_elapsed": submission.time_elapsed,
        "score": submission.score,
        "percentage": submission.percentage,
        "graded": submission.graded,
        "graded_by": {
            "id": submission.graded_by.id,
            "name": submission.graded_by.name,
        } if submission.graded_by else None,
        "graded_at": isoformat(submission.graded_at),
        "feedback": submission.feedback,
        "attempt_number": submission.attempt_number,
        "status": submission.status,
    }


def _answers(payload_answers) -> Optional[list]:
    if payload_answers is None:
        return None
    return [a.model_dump() for a in payload_answers]


@router.post("/api/assessments/{assessment_id}/start")
def start_assessment(assessment_id: str, db: Session = Depends(get_db),
                     student: User = Depends(require_roles("student"))):
    """Start a new attempt, or resume the open one."""
    submission, questions, resumed = grading.start_attempt(db, assessment_id, student)
    assessment = submission.assessment
    return {
        "submission": serialize_submission(submission),
        "resumed": resumed,
        "assessment": {
            "id": assessment.id,
            "title": assessment.title,
            "description": assessment.description,
            "type": assessment.type,
            "duration": assessment.duration,
            "end_date": isoformat(assessment.end_date),
            "total_points": assessment.total_points,
            "questions": questions,
        },
    }


@router.patch("/api/assessments/submissions/{submission_id}/progress")
def save_progress(submission_id: str, payload: ProgressRequest, db: Session = Depends(get_db),
                  student: User = Depends(require_roles("student"))):
    grading.save_progress(db, submission_id, student, _answers(payload.answers), payload.time_elapsed)
    return {"success": True, "message": "Progress saved"}


@router.post("/api/assessments/submissions/{submission_id}/submit")
def submit_assessment(submission_id: str, payload: Optional[SubmitRequest] = None,
                      db: Session = Depends(get_db),
                      student: User = Depends(require_roles("student"))):
    answers = _answers(payload.answers) if payload else None
    submission = grading.submit_attempt(db, submission_id, student, answers)
    return {"message": "Assessment submitted successfully", "submission": serialize_submission(submission)}


@router.post("/api/assessments/submissions/{submission_id}/grade")
def grade_submission(submission_id: str, payload: GradeRequest, db: Session = Depends(get_db),
                     teacher: User = Depends(require_roles("teacher"))):
    submission = grading.grade_submission(db, submission_id, teacher, payload.grades, payload.feedback)
    return {"message": "Submission graded successfully", "submission": serialize_submission(submission)}


@router.get("/api/assessments/submissions/{submission_id}/results")
def submission_results(submission_id: str, db: Session = Depends(get_db),
                       user: User = Depends(get_current_user)):
    results = grading.get_results(db, submission_id, user)
    submission = results["submission"]
    assessment = results["assessment"]
    return {
        "submission": serialize_submission(submission),
        "assessment": {
            "id": assessment.id,
            "title": assessment.title,
            "total_points": assessment.total_points,
            "passing_score": assessment.passing_score,
            "show_correct_answers": assessment.show_correct_answers,
        },
        "questions": results["questions"],
        "passed": results["passed"],
    }


@router.get("/api/assessments/submissions/{submission_id}")
def get_submission(submission_id: str, db: Session = Depends(get_db),
                   user: User = Depends(get_current_user)):
    return serialize_submission(grading.get_submission_for_viewer(db, submission_id, user))


@router.get("/api/assessments/{assessment_id}/submissions")
def list_submissions(assessment_id: str, db: Session = Depends(get_db),
                     teacher: User = Depends(require_roles("teacher"))):
    assessment = assessment_service.get_owned_assessment(db, assessment_id, teacher)
    return [serialize_submission(s) for s in grading.list_assessment_submissions(db, assessment)]


@router.get("/api/assessments/{assessment_id}/submissions/student")
def list_my_submissions(assessment_id: str, db: Session = Depends(get_db),
                        student: User = Depends(require_roles("student"))):
    return [serialize_submission(s) for s in grading.list_student_submissions(db, assessment_id, student)]
