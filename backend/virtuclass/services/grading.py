"""
Submission & grading service - the attempt state machine.

States:
    in_progress -> submitted | late -> graded

- start creates (or resumes) the caller's in_progress attempt
- save_progress overwrites answers while in_progress and is a silent no-op
  afterwards, so late auto-save calls from a client do no harm
- submit closes the attempt, marks it late when the elapsed time exceeds
  the duration, and auto-grades the objective questions
- grade records a teacher's per-question award and moves it to graded

Grading is keyed by question id. Shuffled question and option order is a
presentation concern only and is never stored.
"""

import math
import random
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from virtuclass.errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.assessment import Assessment
from virtuclass.models.course import Course
from virtuclass.models.submission import Submission
from virtuclass.models.user import User
from virtuclass.services.assessments import normalize_answer
from virtuclass.timeutils import utcnow

logger = get_logger("grading")

FINISHED_STATUSES = ("submitted", "late", "graded")

_rng = random.SystemRandom()


# ── Pure helpers ─────────────────────────────────────────────

def normalize_answers(answers) -> list:
    """Coerce client answers into [{question_id, answer, time_spent}] with string answers."""
    normalized = []
    for item in answers or []:
        if not isinstance(item, dict) or not item.get("question_id"):
            continue
        normalized.append({
            "question_id": str(item["question_id"]),
            "answer": normalize_answer(item.get("answer")),
            "time_spent": item.get("time_spent"),
        })
    return normalized


def present_questions(assessment: Assessment, rng=None) -> list:
    """
    Student-facing copy of the questions: correct answers and explanations
    are removed, and question/option order is reshuffled when the
    assessment asks for it.
    """
    rng = rng or _rng
    questions = [
        {
            "id": q.id,
            "question": q.question,
            "type": q.type,
            "options": list(q.options) if q.options else None,
            "points": q.points,
        }
        for q in assessment.questions
    ]
    if assessment.shuffle_questions:
        rng.shuffle(questions)
    if assessment.shuffle_options:
        for q in questions:
            if q["options"]:
                rng.shuffle(q["options"])
    return questions


def auto_grade(assessment: Assessment, answers: list) -> dict:
    """
    Score the objective questions by exact match.

    Returns:
        Dict with score, percentage, graded and awarded (question id ->
        points for objective questions).
    """
    answer_map = {a["question_id"]: a.get("answer") for a in answers}
    total_points = sum(q.points or 0 for q in assessment.questions)
    score = 0.0
    awarded = {}
    for question in assessment.questions:
        if not question.is_objective or question.correct_answer is None:
            continue
        earned = question.points if answer_map.get(question.id) == question.correct_answer else 0.0
        awarded[question.id] = earned
        score += earned

    return {
        "score": score,
        "percentage": (score / total_points * 100) if total_points > 0 else 0.0,
        "graded": not assessment.has_subjective_questions,
        "awarded": awarded,
    }


def clamp_grades(assessment: Assessment, grades: dict) -> dict:
    """Clamp each award into [0, question points]; ids not in the assessment are dropped."""
    clamped = {}
    for question in assessment.questions:
        if question.id not in grades or grades[question.id] is None:
            continue
        award = float(grades[question.id])
        if not math.isfinite(award):
            raise ValidationError("Grade for question {} must be a finite number".format(question.id))
        clamped[question.id] = min(max(award, 0.0), question.points or 0.0)
    return clamped


# ── Lookups ──────────────────────────────────────────────────

def get_submission(db: Session, submission_id: str) -> Submission:
    submission = db.get(Submission, submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    return submission


def _get_own_submission(db: Session, submission_id: str, student: User) -> Submission:
    submission = get_submission(db, submission_id)
    if submission.student_id != student.id:
        raise AuthorizationError("This submission belongs to another student")
    return submission


def _is_enrolled(db: Session, assessment: Assessment, student_id: str) -> bool:
    course = db.get(Course, assessment.course_id)
    return bool(course and course.is_active and course.has_student(student_id))


# ── State machine ────────────────────────────────────────────

def start_attempt(db: Session, assessment_id: str, student: User):
    """
    Start or resume an attempt.

    Returns:
        (submission, questions, resumed) where questions is the presentation
        copy for this response.
    """
    assessment = db.get(Assessment, assessment_id)
    if not assessment or not assessment.is_active:
        raise NotFoundError("Assessment not found")
    if not _is_enrolled(db, assessment, student.id):
        raise AuthorizationError("You are not enrolled in this course")
    if assessment.status != "published":
        raise InvalidStateError("Assessment is not published")
    if not assessment.is_open_at(utcnow()):
        raise InvalidStateError("Assessment is not available at this time")

    existing = db.query(Submission).filter(
        Submission.assessment_id == assessment.id,
        Submission.student_id == student.id,
        Submission.status == "in_progress",
    ).first()
    if existing:
        return existing, present_questions(assessment), True

    prior = db.query(func.count(Submission.id)).filter(
        Submission.assessment_id == assessment.id,
        Submission.student_id == student.id,
    ).scalar() or 0
    if prior >= assessment.attempts:
        raise InvalidStateError("Maximum attempts reached")

    submission = Submission(
        assessment_id=assessment.id,
        student_id=student.id,
        answers=[],
        started_at=utcnow(),
        time_elapsed=0,
        attempt_number=prior + 1,
        status="in_progress",
    )
    db.add(submission)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent start already took this attempt number
        db.rollback()
        log_with_context(logger, "WARNING", "Duplicate attempt rejected",
                         context={"assessment_id": assessment_id, "user_id": student.id},
                         extra_data={"attempt_number": prior + 1})
        raise ConflictError("An attempt is already being started")
    db.refresh(submission)

    log_with_context(logger, "INFO", "Attempt started",
                     context={"assessment_id": assessment.id, "user_id": student.id,
                              "submission_id": submission.id},
                     extra_data={"attempt_number": submission.attempt_number})
    return submission, present_questions(assessment), False


def save_progress(db: Session, submission_id: str, student: User, answers: list,
                  time_elapsed: Optional[int] = None) -> Submission:
    submission = _get_own_submission(db, submission_id, student)
    if submission.status != "in_progress":
        return submission
    submission.answers = normalize_answers(answers)
    if time_elapsed is not None:
        submission.time_elapsed = max(int(time_elapsed), 0)
    db.commit()
    db.refresh(submission)
    return submission


def submit_attempt(db: Session, submission_id: str, student: User,
                   answers: Optional[list] = None) -> Submission:
    """
    Finalize an attempt. Without answers the last saved progress is graded.
    """
    submission = _get_own_submission(db, submission_id, student)
    if submission.status != "in_progress":
        raise InvalidStateError("Submission already submitted")
    assessment = submission.assessment

    now = utcnow()
    elapsed = int((now - submission.started_at).total_seconds())
    if answers is not None:
        submission.answers = normalize_answers(answers)

    result = auto_grade(assessment, submission.answers or [])
    submission.submitted_at = now
    submission.time_elapsed = max(elapsed, 0)
    submission.status = "late" if elapsed > assessment.duration * 60 else "submitted"
    submission.score = result["score"]
    submission.percentage = result["percentage"]
    submission.graded = result["graded"]
    submission.graded_at = now if result["graded"] else None
    db.commit()
    db.refresh(submission)

    log_with_context(logger, "INFO", "Attempt submitted",
                     context={"assessment_id": assessment.id, "user_id": student.id,
                              "submission_id": submission.id},
                     extra_data={"status": submission.status, "score": submission.score,
                                 "auto_graded": submission.graded, "elapsed_seconds": elapsed})
    return submission


def grade_submission(db: Session, submission_id: str, teacher: User, grades: dict,
                     feedback: Optional[str] = None) -> Submission:
    """
    Record a manual grade. The grades map covers every question: questions
    missing from it earn nothing.
    """
    submission = get_submission(db, submission_id)
    assessment = submission.assessment
    if assessment.teacher_id != teacher.id:
        raise AuthorizationError("You do not own this assessment")
    if submission.status not in FINISHED_STATUSES:
        raise InvalidStateError("Submission has not been submitted yet")

    awarded = clamp_grades(assessment, grades or {})
    total_points = sum(q.points or 0 for q in assessment.questions)
    score = sum(awarded.values())

    submission.question_scores = awarded
    submission.score = score
    submission.percentage = (score / total_points * 100) if total_points > 0 else 0.0
    submission.graded = True
    submission.status = "graded"
    submission.graded_by_id = teacher.id
    submission.graded_at = utcnow()
    if feedback is not None:
        submission.feedback = feedback
    db.commit()
    db.refresh(submission)

    log_with_context(logger, "INFO", "Submission graded",
                     context={"assessment_id": assessment.id, "user_id": teacher.id,
                              "submission_id": submission.id},
                     extra_data={"score": score, "percentage": submission.percentage})
    return submission


# ── Reads ────────────────────────────────────────────────────

def get_submission_for_viewer(db: Session, submission_id: str, user: User) -> Submission:
    submission = get_submission(db, submission_id)
    if user.role == "admin":
        return submission
    if user.role == "teacher" and submission.assessment.teacher_id == user.id:
        return submission
    if user.role == "student" and submission.student_id == user.id:
        return submission
    raise AuthorizationError("You cannot view this submission")


def get_results(db: Session, submission_id: str, user: User) -> dict:
    """
    Per-question breakdown of a submission.

    Students see their own graded submissions when the assessment shows
    results or correct answers. The owner teacher and admins always see
    everything, including the correct answers.
    """
    submission = get_submission(db, submission_id)
    assessment = submission.assessment

    privileged = user.role == "admin" or (user.role == "teacher" and assessment.teacher_id == user.id)
    if not privileged:
        if user.role != "student" or submission.student_id != user.id:
            raise AuthorizationError("You cannot view these results")
        if not submission.graded:
            raise AuthorizationError("Results are not available until grading is complete")
        if not (assessment.show_results or assessment.show_correct_answers):
            raise AuthorizationError("Results are not available for this assessment")

    reveal_answers = privileged or assessment.show_correct_answers
    answer_map = submission.answer_map()
    manual = submission.question_scores or {}

    rows = []
    for question in assessment.questions:
        student_answer = answer_map.get(question.id)
        row = {
            "question_id": question.id,
            "question": question.question,
            "type": question.type,
            "points": question.points,
            "options": question.options,
            "student_answer": student_answer,
            "explanation": question.explanation if reveal_answers else None,
        }
        if question.is_objective and question.correct_answer is not None:
            is_correct = student_answer == question.correct_answer
            row["is_correct"] = is_correct
            row["points_earned"] = manual.get(question.id, question.points if is_correct else 0.0)
        else:
            row["is_correct"] = None
            row["points_earned"] = manual.get(question.id)
        if reveal_answers:
            row["correct_answer"] = question.correct_answer
        rows.append(row)

    percentage = submission.percentage or 0.0
    return {
        "submission": submission,
        "assessment": assessment,
        "questions": rows,
        "passed": percentage >= (assessment.passing_score or 0),
    }


def list_assessment_submissions(db: Session, assessment: Assessment) -> list:
    return db.query(Submission).filter(
        Submission.assessment_id == assessment.id,
    ).order_by(Submission.created_at.desc()).all()


def list_student_submissions(db: Session, assessment_id: str, student: User) -> list:
    return db.query(Submission).filter(
        Submission.assessment_id == assessment_id,
        Submission.student_id == student.id,
    ).order_by(Submission.attempt_number).all()
