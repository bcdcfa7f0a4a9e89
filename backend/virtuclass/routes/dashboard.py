"""
Dashboard API routes - role-scoped statistics, admin analytics and the
teacher's student performance view.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.user import User
from virtuclass.services import dashboard

router = APIRouter()


@router.get("/api/dashboard/stats")
def dashboard_stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "role": user.role, "stats": dashboard.dashboard_stats(db, user)}


@router.get("/api/analytics/data")
def analytics_data(db: Session = Depends(get_db), _admin: User = Depends(require_roles("admin"))):
    return {"success": True, "data": dashboard.analytics_data(db)}


@router.get("/api/teacher/students/performance")
def student_performance(db: Session = Depends(get_db),
                        user: User = Depends(require_roles("teacher", "admin"))):
    return {"students": dashboard.student_performance(db, user)}
