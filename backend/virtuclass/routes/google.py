"""
Google API routes - connecting a teacher's Google account for Meet links.

The callback is public because Google cannot send our bearer token; the
caller is identified by the signed state parameter instead.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from virtuclass import config
from virtuclass.database import get_db
from virtuclass.dependencies import require_roles
from virtuclass.errors import ValidationError
from virtuclass.models.user import User
from virtuclass.security import decode_google_state, encode_google_state
from virtuclass.services import live_sessions
from virtuclass.services.google_calendar import GoogleCalendarClient, get_calendar

router = APIRouter()


@router.get("/api/google/auth-url")
def auth_url(user: User = Depends(require_roles("teacher", "admin")),
             calendar: GoogleCalendarClient = Depends(get_calendar)):
    state = encode_google_state(user.id, redirect="/sessions")
    return {"url": calendar.build_auth_url(state)}


@router.get("/api/google/status")
def connection_status(user: User = Depends(require_roles("teacher", "admin"))):
    return {"connected": bool(user.google_refresh_token)}


@router.get("/api/google/oauth/callback")
def oauth_callback(code: Optional[str] = Query(None), state: Optional[str] = Query(None),
                   db: Session = Depends(get_db),
                   calendar: GoogleCalendarClient = Depends(get_calendar)):
    if not code or not state:
        raise ValidationError("Missing code/state")
    decoded = decode_google_state(state)
    tokens = calendar.exchange_code(code)
    live_sessions.store_google_credential(db, decoded["sub"], tokens.get("refresh_token"))

    target = "{}{}?google=connected".format(config.FRONTEND_URL, decoded.get("redirect") or "/sessions")
    return RedirectResponse(target, status_code=302)
