"""
Resource model - metadata for uploaded files and shared links.

The binary itself lives in remote object storage; storage_public_id is the
handle needed to delete it there.
"""

import uuid
from sqlalchemy import Column, Text, Integer, DateTime, Boolean, String, ForeignKey, Index
from sqlalchemy.orm import relationship

from virtuclass.database import Base
from virtuclass.timeutils import utcnow

RESOURCE_TYPES = ("document", "video", "link", "image")


class Resource(Base):
    __tablename__ = "resources"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False)
    type = Column(String(16), nullable=False, doc="document | video | link | image")
    url = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False, default=0, doc="Bytes")
    mime_type = Column(String(255), nullable=True)
    storage_public_id = Column(Text, nullable=True, doc="Identifier in remote storage")
    uploaded_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    class_code = Column(String(3), nullable=True,
                        doc="Optional visibility scope: first three characters of a course code")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    uploaded_by = relationship("User")

    __table_args__ = (
        Index("ix_resources_type_active", "type", "is_active"),
        Index("ix_resources_uploaded_by", "uploaded_by_id"),
    )

    def __repr__(self):
        return f"<Resource(id={self.id}, name='{self.name}', type='{self.type}')>"
