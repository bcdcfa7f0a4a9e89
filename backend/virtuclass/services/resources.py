"""
Resource service - file and link metadata with class-scoped visibility.

Binary uploads go to the storage collaborator; this module only keeps the
metadata. Deletion is soft and the remote copy is removed best effort.
"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from virtuclass import config
from virtuclass.errors import AppError, AuthorizationError, NotFoundError, ValidationError
from virtuclass.logging_config import get_logger, log_with_context
from virtuclass.models.resource import Resource, RESOURCE_TYPES
from virtuclass.models.user import User
from virtuclass.services.users import CLASS_CODE_PATTERN

logger = get_logger("db")

ALLOWED_MIME_TYPES = {
    "image": ("image/jpeg", "image/png", "image/gif", "image/webp"),
    "video": ("video/mp4", "video/mpeg", "video/quicktime", "video/webm", "video/x-msvideo"),
    "document": (
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/plain",
    ),
}


def allowed_mime_types(resource_type: Optional[str]) -> tuple:
    """Mime types accepted for an upload; every supported type when none is given."""
    if resource_type in ALLOWED_MIME_TYPES:
        return ALLOWED_MIME_TYPES[resource_type]
    return tuple(m for group in ALLOWED_MIME_TYPES.values() for m in group)


def _normalize_class_code(class_code: Optional[str]) -> Optional[str]:
    if class_code is None or class_code.strip() == "":
        return None
    if not CLASS_CODE_PATTERN.match(class_code.strip()):
        raise ValidationError("class_code must be two letters followed by a digit")
    return class_code.strip().upper()


def list_resources(db: Session, class_code: Optional[str] = None) -> list:
    query = db.query(Resource).filter(Resource.is_active.is_(True))
    if class_code:
        query = query.filter(Resource.class_code == class_code.strip().upper())
    return query.order_by(Resource.created_at.desc()).all()


def list_student_resources(db: Session, student: User) -> list:
    """Unscoped resources plus those scoped to the student's class code."""
    scope = Resource.class_code.is_(None)
    if student.class_code:
        scope = or_(scope, Resource.class_code == student.class_code.upper())
    return db.query(Resource).filter(
        Resource.is_active.is_(True),
        scope,
    ).order_by(Resource.created_at.desc()).all()


def create_resource(db: Session, user: User, name: str, resource_type: str, url: str,
                    file_size: int = 0, mime_type: str = None, storage_public_id: str = None,
                    class_code: str = None) -> Resource:
    name = (name or "").strip()
    url = (url or "").strip()
    if not name or not resource_type or not url:
        raise ValidationError("Name, type, and URL are required")
    if resource_type not in RESOURCE_TYPES:
        raise ValidationError("Invalid resource type")
    if file_size is not None and file_size < 0:
        raise ValidationError("file_size cannot be negative")

    resource = Resource(
        name=name,
        type=resource_type,
        url=url,
        file_size=file_size or 0,
        mime_type=mime_type,
        storage_public_id=storage_public_id,
        uploaded_by_id=user.id,
        class_code=_normalize_class_code(class_code),
    )
    db.add(resource)
    db.commit()
    db.refresh(resource)

    log_with_context(logger, "INFO", "Resource created",
                     context={"resource_id": resource.id, "user_id": user.id},
                     extra_data={"type": resource_type})
    return resource


def upload_file(storage, content: bytes, filename: str, mime_type: str,
                resource_type: Optional[str] = None) -> dict:
    """Validate an upload and hand it to storage; the caller creates the metadata."""
    if not content:
        raise ValidationError("No file uploaded")
    if resource_type and resource_type not in RESOURCE_TYPES:
        raise ValidationError("Invalid resource type")
    allowed = allowed_mime_types(resource_type)
    if mime_type not in allowed:
        raise ValidationError("Invalid file type. File type: {}. Allowed types for {}: {}".format(
            mime_type, resource_type or "any", ", ".join(allowed)))
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise ValidationError("File exceeds the {} byte limit".format(config.MAX_UPLOAD_BYTES))

    bucket_type = resource_type or mime_type.split("/", 1)[0]
    result = storage.upload(content, filename, mime_type, bucket_type)
    return {
        "url": result["url"],
        "public_id": result["public_id"],
        "file_size": result.get("bytes", len(content)),
        "mime_type": mime_type,
        "original_name": filename,
    }


def get_active_resource(db: Session, resource_id: str) -> Resource:
    resource = db.get(Resource, resource_id)
    if not resource or not resource.is_active:
        raise NotFoundError("Resource not found")
    return resource


def get_resource_for_viewer(db: Session, resource_id: str, user: User) -> Resource:
    resource = get_active_resource(db, resource_id)
    if user.role == "student" and resource.class_code is not None:
        if not user.class_code or user.class_code.upper() != resource.class_code:
            raise AuthorizationError("This resource is not shared with your class")
    return resource


def delete_resource(db: Session, resource_id: str, user: User, storage):
    resource = get_active_resource(db, resource_id)
    if user.role != "admin" and resource.uploaded_by_id != user.id:
        raise AuthorizationError("Not authorized to delete this resource")

    if resource.storage_public_id:
        try:
            storage.destroy(resource.storage_public_id, resource.type)
        except AppError as e:
            # Metadata deletion does not depend on the remote copy
            log_with_context(logger, "WARNING", "Remote file deletion failed: {}".format(e.message),
                             context={"resource_id": resource.id})

    resource.is_active = False
    db.commit()
    log_with_context(logger, "INFO", "Resource deleted",
                     context={"resource_id": resource.id, "user_id": user.id})
