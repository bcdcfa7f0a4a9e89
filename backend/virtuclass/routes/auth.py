"""
Auth API routes - registration, verification, tokens and teacher approval.

Provides endpoints for:
- Registering and verifying accounts
- Logging in, rotating refresh tokens and logging out
- Password reset by emailed one-time token
- Admin approval or rejection of teacher accounts
"""

from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.user import User
from virtuclass.services import auth as auth_service
from virtuclass.services.mailer import Mailer, get_mailer

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    password: str
    name: str
    role: Optional[str] = "student"


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    password: str


class RefreshRequest(BaseModel):
    """Body for /refresh and /logout."""
    model_config = ConfigDict(extra="forbid")

    refresh: str


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    token: str
    password: str


# ── Public endpoints ─────────────────────────────────────────

@router.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, background_tasks: BackgroundTasks,
             db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    """Create an account and email its verification link."""
    user, token = auth_service.register_user(
        db, payload.email, payload.password, payload.name, payload.role,
    )
    background_tasks.add_task(mailer.send_verification_email, user.email, token)

    requires_approval = user.role == "teacher"
    message = "Registered. Please verify your email."
    if requires_approval:
        message = "Registered. Please verify your email and wait for admin approval."
    return {
        "success": True,
        "message": message,
        "requires_approval": requires_approval,
        "user": user.to_public_dict(),
    }


@router.get("/api/auth/verify-email")
def verify_email(email: str = Query(...), token: str = Query(...), db: Session = Depends(get_db)):
    auth_service.verify_email(db, email, token)
    return {"success": True, "message": "Email verified"}


@router.post("/api/auth/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user, tokens = auth_service.login(db, payload.email, payload.password)
    return {**tokens, "user": user.to_public_dict()}


@router.post("/api/auth/refresh")
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)):
    return auth_service.rotate_refresh_token(db, payload.refresh)


@router.post("/api/auth/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, background_tasks: BackgroundTasks,
                    db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    """Always answers success so the response does not reveal registered emails."""
    issued = auth_service.request_password_reset(db, payload.email)
    if issued:
        user, token = issued
        background_tasks.add_task(mailer.send_reset_email, user.email, token)
    return {"success": True}


@router.post("/api/auth/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    auth_service.reset_password(db, payload.email, payload.token, payload.password)
    return {"success": True, "message": "Password updated"}


@router.post("/api/auth/logout")
def logout(payload: RefreshRequest, db: Session = Depends(get_db)):
    auth_service.logout(db, payload.refresh)
    return {"success": True}


@router.get("/api/auth/me")
def me(user: User = Depends(get_current_user)):
    return user.to_public_dict()


# ── Teacher approval (admin) ─────────────────────────────────

@router.get("/api/auth/pending-teachers")
def pending_teachers(db: Session = Depends(get_db), _admin: User = Depends(require_roles("admin"))):
    return [t.to_public_dict() for t in auth_service.list_pending_teachers(db)]


@router.put("/api/auth/approve-teacher/{teacher_id}")
def approve_teacher(teacher_id: str, db: Session = Depends(get_db),
                    _admin: User = Depends(require_roles("admin"))):
    teacher = auth_service.approve_teacher(db, teacher_id)
    return {"success": True, "user": teacher.to_public_dict()}


@router.delete("/api/auth/reject-teacher/{teacher_id}")
def reject_teacher(teacher_id: str, db: Session = Depends(get_db),
                   _admin: User = Depends(require_roles("admin"))):
    auth_service.reject_teacher(db, teacher_id)
    return {"success": True}
