"""
Dashboard and analytics aggregates.

Read-only queries. "Live now" is computed from the clock for display only
(start_time <= now < start_time + duration); it never changes a session's
stored status.
"""

from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from virtuclass.models.assessment import Assessment
from virtuclass.models.course import Course, course_enrollments
from virtuclass.models.live_session import LiveSession
from virtuclass.models.submission import Submission
from virtuclass.models.user import User
from virtuclass.services.courses import enrolled_course_ids
from virtuclass.timeutils import utcnow


def _count(db: Session, model, *criteria) -> int:
    return db.query(func.count(model.id)).filter(*criteria).scalar() or 0


def _live_now(sessions, now: datetime) -> int:
    return len([s for s in sessions if s.is_live_at(now)])


def _average(values) -> int:
    values = [v for v in values if v is not None]
    return round(sum(values) / len(values)) if values else 0


def _growth(current: int, previous: int) -> int:
    if previous > 0:
        return round((current - previous) / previous * 100)
    return 100 if current > 0 else 0


def _month_start(now: datetime, months_back: int) -> datetime:
    year, month = now.year, now.month - months_back
    while month < 1:
        month += 12
        year -= 1
    while month > 12:
        month -= 12
        year += 1
    return datetime(year, month, 1)


# ── Dashboard ────────────────────────────────────────────────

def admin_stats(db: Session, now: datetime) -> dict:
    last_month = now - timedelta(days=30)
    last_week = now - timedelta(days=7)

    total_courses = _count(db, Course, Course.is_active.is_(True))
    total_students = _count(db, User, User.role == "student")
    total_teachers = _count(db, User, User.role == "teacher")
    graded = db.query(Submission.percentage).filter(Submission.graded.is_(True)).all()

    return {
        "total_courses": total_courses,
        "total_students": total_students,
        "total_teachers": total_teachers,
        "active_sessions": _live_now(db.query(LiveSession).all(), now),
        "published_assessments": _count(db, Assessment, Assessment.status == "published",
                                        Assessment.is_active.is_(True)),
        "average_grade": _average(p for (p,) in graded),
        "trends": {
            "courses": _growth(total_courses, _count(db, Course, Course.is_active.is_(True),
                                                     Course.created_at < last_month)),
            "students": _growth(total_students, _count(db, User, User.role == "student",
                                                       User.created_at < last_month)),
            "teachers": _growth(total_teachers, _count(db, User, User.role == "teacher",
                                                       User.created_at < last_month)),
            "sessions_this_week": _count(db, LiveSession, LiveSession.created_at >= last_week),
            "assessments_this_week": _count(db, Assessment, Assessment.status == "published",
                                            Assessment.is_active.is_(True),
                                            Assessment.created_at >= last_week),
        },
    }


def teacher_stats(db: Session, teacher: User, now: datetime) -> dict:
    courses = db.query(Course).filter(Course.teacher_id == teacher.id, Course.is_active.is_(True)).all()
    students = {s.id for c in courses for s in c.students}
    graded = db.query(Submission.percentage).join(Assessment).filter(
        Assessment.teacher_id == teacher.id,
        Submission.graded.is_(True),
    ).all()

    return {
        "total_courses": len(courses),
        "total_students": len(students),
        "active_sessions": _live_now(
            db.query(LiveSession).filter(LiveSession.teacher_id == teacher.id).all(), now),
        "total_assessments": _count(db, Assessment, Assessment.teacher_id == teacher.id,
                                    Assessment.is_active.is_(True)),
        "average_grade": _average(p for (p,) in graded),
    }


def student_stats(db: Session, student: User, now: datetime) -> dict:
    course_ids = enrolled_course_ids(db, student.id)
    sessions = []
    assessments = []
    if course_ids:
        sessions = db.query(LiveSession).filter(LiveSession.course_id.in_(course_ids)).all()
        assessments = db.query(Assessment).filter(
            Assessment.course_id.in_(course_ids),
            Assessment.status == "published",
            Assessment.is_active.is_(True),
        ).all()

    submissions = db.query(Submission).filter(Submission.student_id == student.id).all()
    finished = {s.assessment_id for s in submissions if s.status != "in_progress"}
    pending = [a for a in assessments if a.id not in finished and a.end_date > now]

    return {
        "total_courses": len(course_ids),
        "active_sessions": _live_now(sessions, now),
        "pending_assessments": len(pending),
        "average_grade": _average(s.percentage for s in submissions if s.graded),
    }


def dashboard_stats(db: Session, user: User) -> dict:
    now = utcnow()
    if user.role == "admin":
        return admin_stats(db, now)
    if user.role == "teacher":
        return teacher_stats(db, user, now)
    return student_stats(db, user, now)


# ── Analytics (admin) ────────────────────────────────────────

def analytics_data(db: Session) -> dict:
    now = utcnow()
    one_day_ago = now - timedelta(days=1)
    one_week_ago = now - timedelta(days=7)
    sessions = db.query(LiveSession).all()

    monthly = []
    for months_back in range(5, -1, -1):
        start = _month_start(now, months_back)
        end = _month_start(now, months_back - 1)
        monthly.append({
            "month": start.strftime("%b"),
            "students": _count(db, User, User.role == "student", User.created_at < end),
            "teachers": _count(db, User, User.role == "teacher", User.created_at < end),
            "courses": _count(db, Course, Course.created_at < end),
            "sessions": _count(db, LiveSession, LiveSession.created_at >= start,
                               LiveSession.created_at < end),
            "registrations": _count(db, User, User.created_at >= start, User.created_at < end),
        })

    enrollment_counts = dict(
        db.query(course_enrollments.c.course_id, func.count(course_enrollments.c.student_id))
        .group_by(course_enrollments.c.course_id).all()
    )
    submission_counts = dict(
        db.query(Assessment.course_id, func.count(Submission.id))
        .join(Submission, Submission.assessment_id == Assessment.id)
        .filter(Submission.status != "in_progress")
        .group_by(Assessment.course_id).all()
    )
    courses = db.query(Course).order_by(Course.name).all()

    return {
        "overview": {
            "total_students": _count(db, User, User.role == "student"),
            "total_teachers": _count(db, User, User.role == "teacher"),
            "total_courses": len(courses),
            "active_sessions": _live_now(sessions, now),
        },
        "roles": {
            "students": _count(db, User, User.role == "student"),
            "teachers": _count(db, User, User.role == "teacher"),
            "admins": _count(db, User, User.role == "admin"),
        },
        "monthly_growth": monthly,
        "platform_usage": {
            "daily_active_users": _count(db, User, User.last_login_at >= one_day_ago),
            "weekly_active_users": _count(db, User, User.last_login_at >= one_week_ago),
            "weekly_sessions": len([s for s in sessions if s.created_at >= one_week_ago]),
            "average_session_duration": _average(s.duration for s in sessions),
        },
        "course_analytics": {
            "total_courses": len(courses),
            "average_enrollment": _average(enrollment_counts.get(c.id, 0) for c in courses),
            "courses": [
                {
                    "course_id": c.id,
                    "course_name": c.name,
                    "enrollments": enrollment_counts.get(c.id, 0),
                    "submissions": submission_counts.get(c.id, 0),
                }
                for c in courses
            ],
        },
    }


# ── Teacher: student performance ─────────────────────────────

def student_performance(db: Session, teacher: User) -> list:
    """
    Per-student average over the teacher's courses: total score divided by
    total possible points of the finished submissions, overall and per
    assessment type.
    """
    courses = db.query(Course).filter(Course.teacher_id == teacher.id).all()
    students = {s.id: s for c in courses for s in c.students}
    if not students:
        return []

    rows = db.query(Submission.student_id, Submission.score, Assessment.total_points, Assessment.type) \
        .join(Assessment, Submission.assessment_id == Assessment.id) \
        .filter(
            Assessment.course_id.in_([c.id for c in courses]),
            Submission.student_id.in_(list(students)),
            Submission.status != "in_progress",
        ).all()

    totals = {}
    for student_id, score, possible, assessment_type in rows:
        entry = totals.setdefault(student_id, {"score": 0.0, "possible": 0.0, "count": 0, "types": {}})
        entry["score"] += score or 0
        entry["possible"] += possible or 0
        entry["count"] += 1
        by_type = entry["types"].setdefault(assessment_type, [0.0, 0.0])
        by_type[0] += score or 0
        by_type[1] += possible or 0

    result = []
    for student in students.values():
        entry = totals.get(student.id, {"score": 0.0, "possible": 0.0, "count": 0, "types": {}})
        result.append({
            "id": student.id,
            "name": student.name or "Unnamed",
            "email": student.email,
            "average_percent": (entry["score"] / entry["possible"] * 100) if entry["possible"] else 0,
            "total_assessments": entry["count"],
            "type_averages": {
                t: (s / p * 100) if p else 0
                for t, (s, p) in entry["types"].items()
            },
        })
    return sorted(result, key=lambda r: r["name"].lower())
