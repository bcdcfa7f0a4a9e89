"""
Resources API routes - shared files and links.

Provides endpoints for:
- Listing, creating and soft-deleting resources (teachers, admins)
- Uploading a file to remote storage
- Class-scoped listing for students and a download redirect
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from virtuclass import config
from virtuclass.database import get_db
from virtuclass.dependencies import get_current_user, require_roles
from virtuclass.models.resource import Resource
from virtuclass.models.user import User
from virtuclass.services import resources as resource_service
from virtuclass.services.storage import CloudinaryStorage, get_storage
from virtuclass.timeutils import isoformat

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class ResourceCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    type: str
    url: str
    file_size: int = 0
    mime_type: Optional[str] = None
    storage_public_id: Optional[str] = None
    class_code: Optional[str] = None


def serialize_resource(resource: Resource) -> dict:
    return {
        "id": resource.id,
        "name": resource.name,
        "type": resource.type,
        "url": resource.url,
        "file_size": resource.file_size,
        "mime_type": resource.mime_type,
        "storage_public_id": resource.storage_public_id,
        "class_code": resource.class_code,
        "uploaded_by": {
            "id": resource.uploaded_by.id,
            "name": resource.uploaded_by.name,
            "email": resource.uploaded_by.email,
        } if resource.uploaded_by else None,
        "created_at": isoformat(resource.created_at),
    }


@router.get("/api/resources")
def list_resources(
    class_code: Optional[str] = Query(None, description="Only resources scoped to this class code"),
    db: Session = Depends(get_db),
    _user: User = Depends(require_roles("teacher", "admin")),
):
    return [serialize_resource(r) for r in resource_service.list_resources(db, class_code)]


@router.get("/api/resources/student")
def list_student_resources(db: Session = Depends(get_db),
                           student: User = Depends(require_roles("student"))):
    return [serialize_resource(r) for r in resource_service.list_student_resources(db, student)]


@router.post("/api/resources", status_code=201)
def create_resource(payload: ResourceCreateRequest, db: Session = Depends(get_db),
                    user: User = Depends(require_roles("teacher", "admin"))):
    resource = resource_service.create_resource(
        db, user,
        name=payload.name,
        resource_type=payload.type,
        url=payload.url,
        file_size=payload.file_size,
        mime_type=payload.mime_type,
        storage_public_id=payload.storage_public_id,
        class_code=payload.class_code,
    )
    return {"success": True, "message": "Resource created successfully", "resource": serialize_resource(resource)}


@router.post("/api/resources/upload")
def upload_file(file: UploadFile = File(...), type: Optional[str] = Form(None),
                _user: User = Depends(require_roles("teacher", "admin")),
                storage: CloudinaryStorage = Depends(get_storage)):
    # One byte past the limit is enough to reject an oversized file
    content = file.file.read(config.MAX_UPLOAD_BYTES + 1)
    result = resource_service.upload_file(storage, content, file.filename, file.content_type, type)
    return {"success": True, **result}


@router.get("/api/resources/{resource_id}/download")
def download_resource(resource_id: str, db: Session = Depends(get_db),
                      user: User = Depends(get_current_user)):
    resource = resource_service.get_resource_for_viewer(db, resource_id, user)
    return RedirectResponse(resource.url, status_code=302)


@router.delete("/api/resources/{resource_id}")
def delete_resource(resource_id: str, db: Session = Depends(get_db),
                    user: User = Depends(require_roles("teacher", "admin")),
                    storage: CloudinaryStorage = Depends(get_storage)):
    resource_service.delete_resource(db, resource_id, user, storage)
    return {"success": True, "message": "Resource deleted successfully"}
