"""
Users API routes - admin directory, student lookup and profile updates.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.user import User
from virtuclass.services import users as users_service

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class CreateUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    password: str
    name: str
    role: str = "student"


class UpdateProfileRequest(BaseModel):
    """Every field is optional; only the fields sent are changed."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    class_year: Optional[int] = None
    class_code: Optional[str] = None


@router.get("/api/users")
def list_users(db: Session = Depends(get_db), _admin: User = Depends(require_roles("admin"))):
    return [u.to_public_dict() for u in users_service.list_users(db)]


@router.post("/api/users", status_code=201)
def create_user(payload: CreateUserRequest, db: Session = Depends(get_db),
                _admin: User = Depends(require_roles("admin"))):
    user = users_service.create_user(db, payload.email, payload.password, payload.name, payload.role)
    return user.to_public_dict()


@router.get("/api/users/students")
def list_students(
    prefix: Optional[str] = Query(None, description="Filter by class code, e.g. AB1"),
    db: Session = Depends(get_db),
    _user: User = Depends(require_roles("admin", "teacher")),
):
    return [
        {
            "id": s.id,
            "name": s.name,
            "email": s.email,
            "class_year": s.class_year,
            "class_code": s.class_code,
        }
        for s in users_service.list_students(db, prefix)
    ]


@router.put("/api/users/me")
def update_me(payload: UpdateProfileRequest, db: Session = Depends(get_db),
              user: User = Depends(get_current_user)):
    changes = payload.model_dump(exclude_unset=True)
    user = users_service.update_profile(db, user, **changes)
    return user.to_public_dict()
