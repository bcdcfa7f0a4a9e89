"""
Live session service - scheduling Google Meet classes and tracking joins.

Creating a session calls the calendar collaborator first; if it fails
nothing is stored. Status only moves through explicit update calls.
"""

from typing import Optional

from sqlalchemy.orm import Session

from virtuclass.errors import AuthorizationError, NotFoundError, ValidationError
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.course import Course
from virtuclass.models.live_session import (
    LiveSession, SessionParticipant, SESSION_STATUSES, MIN_DURATION_MINUTES, MAX_DURATION_MINUTES,
)
from virtuclass.models.user import User
from virtuclass.services.courses import enrolled_course_ids, get_active_course
from virtuclass.timeutils import to_naive_utc, utcnow

logger = get_logger("db")


def get_live_session(db: Session, session_id: str) -> LiveSession:
    live = db.get(LiveSession, session_id)
    if not live:
        raise NotFoundError("Session not found")
    return live


def _can_manage(user: User, live: LiveSession) -> bool:
    return user.role == "admin" or (user.role == "teacher" and live.teacher_id == user.id)


def create_session(db: Session, user: User, calendar, title: str, course_id: str, start_time,
                   duration: int, description: Optional[str] = None) -> LiveSession:
    """
    Schedule a session for a course.

    A teacher schedules for their own course; an admin schedules on behalf
    of the course's assigned teacher, whose Google credential is used.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")

    course = get_active_course(db, course_id)
    if user.role == "teacher":
        if course.teacher_id != user.id:
            raise AuthorizationError("You are not the teacher of this course")
        teacher = user
    else:
        teacher = course.teacher
        if teacher is None:
            raise ValidationError("Course has no assigned teacher")

    start_time = to_naive_utc(start_time)
    if start_time is None or start_time <= utcnow():
        raise ValidationError("Start time must be in the future")
    if duration is None or not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
        raise ValidationError("Duration must be between {} and {} minutes".format(
            MIN_DURATION_MINUTES, MAX_DURATION_MINUTES))

    if not teacher.google_refresh_token:
        raise ValidationError("Connect a Google account before scheduling sessions")

    event = calendar.create_meet_event(
        teacher.google_refresh_token, title, start_time, duration, description=description,
    )

    live = LiveSession(
        title=title,
        description=description,
        course_id=course.id,
        teacher_id=teacher.id,
        meeting_id=event["event_id"],
        meeting_url=event["meet_url"],
        start_time=start_time,
        duration=duration,
        status="scheduled",
    )
    db.add(live)
    db.commit()
    db.refresh(live)

    log_with_context(logger, "INFO", "Live session scheduled",
                     context={"session_id": live.id, "course_id": course.id, "user_id": user.id},
                     extra_data={"start_time": start_time.isoformat(), "duration": duration})
    return live


def list_sessions(db: Session, user: User) -> list:
    query = db.query(LiveSession)
    if user.role == "teacher":
        query = query.filter(LiveSession.teacher_id == user.id)
    elif user.role == "student":
        course_ids = enrolled_course_ids(db, user.id)
        if not course_ids:
            return []
        query = query.filter(LiveSession.course_id.in_(course_ids))
    return query.order_by(LiveSession.start_time).all()


def _is_enrolled(db: Session, live: LiveSession, student_id: str) -> bool:
    course = db.get(Course, live.course_id)
    return bool(course and course.is_active and course.has_student(student_id))


def get_session_for_viewer(db: Session, session_id: str, user: User) -> LiveSession:
    live = get_live_session(db, session_id)
    if _can_manage(user, live):
        return live
    if user.role == "student" and _is_enrolled(db, live, user.id):
        return live
    raise AuthorizationError("You cannot view this session")


def join_session(db: Session, session_id: str, user: User) -> LiveSession:
    """Record the caller as a participant once; repeated joins change nothing."""
    live = get_live_session(db, session_id)
    if user.role == "student" and not _is_enrolled(db, live, user.id):
        raise AuthorizationError("You are not enrolled in this course")

    if not any(p.user_id == user.id for p in live.participants):
        live.participants.append(SessionParticipant(user_id=user.id, joined_at=utcnow()))
        db.commit()
        db.refresh(live)
        log_with_context(logger, "INFO", "Participant joined",
                         context={"session_id": live.id, "user_id": user.id})
    return live


def update_status(db: Session, session_id: str, user: User, status: str) -> LiveSession:
    if status not in SESSION_STATUSES:
        raise ValidationError("Invalid status")
    live = get_live_session(db, session_id)
    if not _can_manage(user, live):
        raise AuthorizationError("You cannot manage this session")
    live.status = status
    db.commit()
    db.refresh(live)
    log_with_context(logger, "INFO", "Session status changed",
                     context={"session_id": live.id, "user_id": user.id},
                     extra_data={"status": status})
    return live


def delete_session(db: Session, session_id: str, user: User):
    live = get_live_session(db, session_id)
    if not _can_manage(user, live):
        raise AuthorizationError("You cannot manage this session")
    db.delete(live)
    db.commit()
    log_with_context(logger, "INFO", "Session deleted",
                     context={"session_id": session_id, "user_id": user.id})


def store_google_credential(db: Session, user_id: str, refresh_token: Optional[str]) -> User:
    """Save the refresh credential from an OAuth callback on the user."""
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if refresh_token:
        user.google_refresh_token = refresh_token
        db.commit()
        log_with_context(logger, "INFO", "Google account connected", context={"user_id": user.id})
    elif not user.google_refresh_token:
        # Google omits refresh_token when consent was granted before
        raise ValidationError("Google did not return a refresh token")
    return user
