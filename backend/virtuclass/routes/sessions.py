"""
Sessions API routes - live class scheduling and joining.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.live_session import LiveSession
from virtuclass.models.user import User
from virtuclass.services import live_sessions
from virtuclass.services.google_calendar import GoogleCalendarClient, get_calendar
from virtuclass.timeutils import isoformat, utcnow

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class SessionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    description: Optional[str] = None
    course_id: str
    start_time: datetime
    duration: int


class SessionStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str


def serialize_session(live: LiveSession, now: datetime = None) -> dict:
    now = now or utcnow()
    return {
        "id": live.id,
        "title": live.title,
        "description": live.description,
        "course": {
            "id": live.course.id,
            "name": live.course.name,
            "code": live.course.code,
        } if live.course else None,
        "teacher": {"id": live.teacher.id, "name": live.teacher.name} if live.teacher else None,
        "meeting_id": live.meeting_id,
        "meeting_url": live.meeting_url,
        "start_time": isoformat(live.start_time),
        "end_time": isoformat(live.end_time),
        "duration": live.duration,
        "status": live.status,
        "is_live_now": live.is_live_at(now),
        "participants": [
            {
                "user_id": p.user_id,
                "name": p.user.name if p.user else None,
                "joined_at": isoformat(p.joined_at),
                "left_at": isoformat(p.left_at),
            }
            for p in live.participants
        ],
        "created_at": isoformat(live.created_at),
    }


@router.get("/api/sessions")
def list_sessions(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    now = utcnow()
    return [serialize_session(s, now) for s in live_sessions.list_sessions(db, user)]


@router.post("/api/sessions", status_code=201)
def create_session(payload: SessionCreateRequest, db: Session = Depends(get_db),
                   user: User = Depends(require_roles("teacher", "admin")),
                   calendar: GoogleCalendarClient = Depends(get_calendar)):
    live = live_sessions.create_session(
        db, user, calendar,
        title=payload.title,
        course_id=payload.course_id,
        start_time=payload.start_time,
        duration=payload.duration,
        description=payload.description,
    )
    return {"success": True, "message": "Session created successfully", "session": serialize_session(live)}


@router.get("/api/sessions/{session_id}")
def get_session(session_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return serialize_session(live_sessions.get_session_for_viewer(db, session_id, user))


@router.post("/api/sessions/{session_id}/join")
def join_session(session_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    live = live_sessions.join_session(db, session_id, user)
    return {"success": True, "message": "Joined session successfully", "meeting_url": live.meeting_url}


@router.patch("/api/sessions/{session_id}/status")
def update_session_status(session_id: str, payload: SessionStatusRequest, db: Session = Depends(get_db),
                          user: User = Depends(require_roles("teacher", "admin"))):
    live = live_sessions.update_status(db, session_id, user, payload.status)
    return {"success": True, "session": serialize_session(live)}


@router.delete("/api/sessions/{session_id}")
def delete_session(session_id: str, db: Session = Depends(get_db),
                   user: User = Depends(require_roles("teacher", "admin"))):
    live_sessions.delete_session(db, session_id, user)
    return {"success": True, "message": "Session deleted successfully"}
