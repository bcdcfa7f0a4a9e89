"""
Assessment service - question bank, scheduling window and publication state.

Lifecycle rules:
- create always yields a draft owned by the teacher of the course
- publish needs at least one question
- unpublish is only possible from published with zero submissions
- edits are blocked once status != draft and a submission exists
- delete is soft (is_active = False)
"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from virtuclass.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.assessment import (
    Assessment, Question, ASSESSMENT_TYPES, ASSESSMENT_STATUSES, QUESTION_TYPES, OBJECTIVE_TYPES,
)
from virtuclass.models.course import Course
from virtuclass.models.submission import Submission
from virtuclass.models.user import User
from virtuclass.services.courses import enrolled_course_ids, get_active_course
from virtuclass.timeutils import to_naive_utc, utcnow

logger = get_logger("db")

MAX_ATTEMPTS = 10

# Fields a teacher may set on create/update, besides questions
EDITABLE_FIELDS = (
    "title", "description", "type", "start_date", "end_date", "duration", "attempts",
    "show_results", "show_correct_answers", "shuffle_questions", "shuffle_options",
    "passing_score",
)
NULLABLE_FIELDS = ("description", "passing_score")


def normalize_answer(value) -> Optional[str]:
    """Answers and correct answers are compared as strings."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _build_question(data: dict, position: int, existing: Question = None) -> Question:
    qtype = data.get("type")
    if qtype not in QUESTION_TYPES:
        raise ValidationError("Invalid question type: {}".format(qtype))
    text = (data.get("question") or "").strip()
    if not text:
        raise ValidationError("Question text is required")
    points = data.get("points", 0)
    if points is None or points < 0:
        raise ValidationError("Question points must be zero or more")

    options = None
    correct_answer = None
    if qtype in OBJECTIVE_TYPES:
        options = [normalize_answer(o) for o in (data.get("options") or [])]
        if qtype == "true_false" and not options:
            options = ["true", "false"]
        if qtype == "multiple_choice" and len(options) < 2:
            raise ValidationError("Multiple choice questions need at least two options")
        correct_answer = normalize_answer(data.get("correct_answer"))
        if correct_answer is not None and correct_answer not in options:
            raise ValidationError("Correct answer must be one of the options")

    question = existing if existing is not None else Question()
    question.position = position
    question.question = text
    question.type = qtype
    question.options = options
    question.correct_answer = correct_answer
    question.points = float(points)
    question.explanation = data.get("explanation")
    return question


def _apply_fields(assessment: Assessment, fields: dict):
    for name in EDITABLE_FIELDS:
        if name in fields:
            value = fields[name]
            if value is None and name not in NULLABLE_FIELDS:
                continue
            if name in ("start_date", "end_date"):
                value = to_naive_utc(value)
            setattr(assessment, name, value)

    if not assessment.title or not assessment.title.strip():
        raise ValidationError("Title is required")
    if assessment.type not in ASSESSMENT_TYPES:
        raise ValidationError("Invalid assessment type")
    if assessment.start_date is None or assessment.end_date is None:
        raise ValidationError("start_date and end_date are required")
    if assessment.start_date >= assessment.end_date:
        raise ValidationError("start_date must be before end_date")
    if assessment.duration is None or assessment.duration < 1:
        raise ValidationError("duration must be at least one minute")
    if assessment.attempts is None or not 1 <= assessment.attempts <= MAX_ATTEMPTS:
        raise ValidationError("attempts must be between 1 and {}".format(MAX_ATTEMPTS))
    if assessment.passing_score is not None and not 0 <= assessment.passing_score <= 100:
        raise ValidationError("passing_score must be between 0 and 100")


def _replace_questions(assessment: Assessment, items: list):
    # Items carrying the id of a current question update it in place, so
    # recorded answers stay keyed to the same question
    existing = {q.id: q for q in assessment.questions if q.id}
    used = set()
    questions = []
    for position, item in enumerate(items or []):
        current = existing.get(item.get("id"))
        if current is not None and current.id in used:
            raise ValidationError("Duplicate question id")
        if current is not None:
            used.add(current.id)
        questions.append(_build_question(item, position, current))
    assessment.questions = questions
    assessment.recompute_total_points()


def submission_count(db: Session, assessment_id: str) -> int:
    return db.query(func.count(Submission.id)).filter(
        Submission.assessment_id == assessment_id,
    ).scalar() or 0


def get_active_assessment(db: Session, assessment_id: str) -> Assessment:
    assessment = db.get(Assessment, assessment_id)
    if not assessment or not assessment.is_active:
        raise NotFoundError("Assessment not found")
    return assessment


def get_owned_assessment(db: Session, assessment_id: str, teacher: User) -> Assessment:
    assessment = get_active_assessment(db, assessment_id)
    if assessment.teacher_id != teacher.id:
        raise AuthorizationError("You do not own this assessment")
    return assessment


def create_assessment(db: Session, teacher: User, course_id: str, fields: dict,
                      questions: list = None) -> Assessment:
    course = get_active_course(db, course_id)
    if course.teacher_id != teacher.id:
        raise AuthorizationError("You are not the teacher of this course")

    assessment = Assessment(
        course_id=course.id,
        teacher_id=teacher.id,
        status="draft",
        attempts=1,
        show_results=True,
        show_correct_answers=False,
        shuffle_questions=False,
        shuffle_options=False,
    )
    _apply_fields(assessment, fields)
    _replace_questions(assessment, questions)
    db.add(assessment)
    db.commit()
    db.refresh(assessment)

    log_with_context(logger, "INFO", "Assessment created",
                     context={"assessment_id": assessment.id, "user_id": teacher.id},
                     extra_data={"questions": len(assessment.questions),
                                 "total_points": assessment.total_points})
    return assessment


def update_assessment(db: Session, assessment_id: str, teacher: User, fields: dict,
                      questions: list = None) -> Assessment:
    """
    Apply a partial update. Passing questions replaces the whole list.
    The date pair is validated against the merged values.
    """
    assessment = get_owned_assessment(db, assessment_id, teacher)
    if assessment.status != "draft" and submission_count(db, assessment.id) > 0:
        raise InvalidStateError("Assessment cannot be edited after students have started it")
    if questions is not None and not questions and assessment.status != "draft":
        raise InvalidStateError("A {} assessment must keep at least one question".format(assessment.status))

    if "course_id" in fields and fields["course_id"] and fields["course_id"] != assessment.course_id:
        course = get_active_course(db, fields["course_id"])
        if course.teacher_id != teacher.id:
            raise AuthorizationError("You are not the teacher of this course")
        assessment.course_id = course.id

    _apply_fields(assessment, fields)
    if questions is not None:
        _replace_questions(assessment, questions)
    assessment.recompute_total_points()
    db.commit()
    db.refresh(assessment)

    log_with_context(logger, "INFO", "Assessment updated",
                     context={"assessment_id": assessment.id, "user_id": teacher.id},
                     extra_data={"total_points": assessment.total_points})
    return assessment


def delete_assessment(db: Session, assessment_id: str, teacher: User):
    assessment = get_owned_assessment(db, assessment_id, teacher)
    assessment.is_active = False
    db.commit()
    log_with_context(logger, "INFO", "Assessment deactivated",
                     context={"assessment_id": assessment.id, "user_id": teacher.id})


def publish_assessment(db: Session, assessment_id: str, teacher: User) -> Assessment:
    assessment = get_owned_assessment(db, assessment_id, teacher)
    if assessment.status == "published":
        return assessment
    if assessment.status != "draft":
        raise InvalidStateError("Only draft assessments can be published")
    if not assessment.questions:
        raise InvalidStateError("Cannot publish an assessment without questions")
    assessment.status = "published"
    db.commit()
    db.refresh(assessment)
    log_with_context(logger, "INFO", "Assessment published",
                     context={"assessment_id": assessment.id, "user_id": teacher.id})
    return assessment


def unpublish_assessment(db: Session, assessment_id: str, teacher: User) -> Assessment:
    assessment = get_owned_assessment(db, assessment_id, teacher)
    if assessment.status != "published":
        raise InvalidStateError("Only published assessments can be unpublished")
    if submission_count(db, assessment.id) > 0:
        raise InvalidStateError("Cannot unpublish an assessment that has submissions")
    assessment.status = "draft"
    db.commit()
    db.refresh(assessment)
    log_with_context(logger, "INFO", "Assessment unpublished",
                     context={"assessment_id": assessment.id, "user_id": teacher.id})
    return assessment


def close_assessment(db: Session, assessment_id: str, teacher: User) -> Assessment:
    assessment = get_owned_assessment(db, assessment_id, teacher)
    if assessment.status != "published":
        raise InvalidStateError("Only published assessments can be closed")
    assessment.status = "closed"
    db.commit()
    db.refresh(assessment)
    log_with_context(logger, "INFO", "Assessment closed",
                     context={"assessment_id": assessment.id, "user_id": teacher.id})
    return assessment


# ── Visibility ───────────────────────────────────────────────

def list_teacher_assessments(db: Session, teacher: User, status: str = None,
                             assessment_type: str = None, course_id: str = None) -> list:
    query = db.query(Assessment).filter(
        Assessment.teacher_id == teacher.id,
        Assessment.is_active.is_(True),
    )
    if status:
        if status not in ASSESSMENT_STATUSES:
            raise ValidationError("Invalid status filter")
        query = query.filter(Assessment.status == status)
    if assessment_type:
        query = query.filter(Assessment.type == assessment_type)
    if course_id:
        query = query.filter(Assessment.course_id == course_id)
    return query.order_by(Assessment.created_at.desc()).all()


def list_student_assessments(db: Session, student: User, assessment_type: str = None) -> list:
    """
    Published, active assessments in the student's courses, each paired with
    the student's attempt summary.

    Returns:
        List of (assessment, summary) where summary has attempt_count,
        can_take_again, is_available and latest_submission.
    """
    course_ids = enrolled_course_ids(db, student.id)
    if not course_ids:
        return []

    query = db.query(Assessment).filter(
        Assessment.course_id.in_(course_ids),
        Assessment.status == "published",
        Assessment.is_active.is_(True),
    )
    if assessment_type:
        query = query.filter(Assessment.type == assessment_type)
    assessments = query.order_by(Assessment.start_date).all()

    now = utcnow()
    results = []
    for assessment in assessments:
        submissions = db.query(Submission).filter(
            Submission.assessment_id == assessment.id,
            Submission.student_id == student.id,
        ).order_by(Submission.attempt_number.desc()).all()
        results.append((assessment, {
            "attempt_count": len(submissions),
            "can_take_again": len(submissions) < assessment.attempts,
            "is_available": assessment.is_open_at(now),
            "latest_submission": submissions[0] if submissions else None,
        }))
    return results


def get_assessment_for_viewer(db: Session, assessment_id: str, user: User) -> Assessment:
    assessment = get_active_assessment(db, assessment_id)
    if user.role == "admin":
        return assessment
    if user.role == "teacher":
        if assessment.teacher_id != user.id:
            raise AuthorizationError("You do not own this assessment")
        return assessment

    # Students only ever see published assessments of their own courses
    if assessment.status != "published":
        raise NotFoundError("Assessment not found")
    course = db.get(Course, assessment.course_id)
    if not course or not course.is_active or not course.has_student(user.id):
        raise AuthorizationError("You are not enrolled in this course")
    return assessment


def assessment_stats(db: Session, assessment_id: str, teacher: User) -> dict:
    assessment = get_owned_assessment(db, assessment_id, teacher)
    submissions = db.query(Submission).filter(
        Submission.assessment_id == assessment.id,
    ).order_by(Submission.submitted_at.desc()).all()

    finished = [s for s in submissions if s.status != "in_progress"]
    graded = [s for s in finished if s.graded]
    percentages = [s.percentage for s in graded if s.percentage is not None]
    threshold = assessment.passing_score or 0

    return {
        "assessment": assessment,
        "total_submissions": len(finished),
        "in_progress": len(submissions) - len(finished),
        "graded": len(graded),
        "pending": len(finished) - len(graded),
        "late": len([s for s in finished if s.status == "late"]),
        "average_percentage": round(sum(percentages) / len(percentages), 2) if percentages else 0,
        "passed": len([p for p in percentages if p >= threshold]),
        "submissions": finished,
    }
