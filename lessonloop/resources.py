"""
Class materials for LessonLoop.

Any class member (the owning teacher or an enrolled student) may add a
material to a class and list the class's materials. File bytes are handed
to a ``FileStorage`` backend; this module stores the metadata record.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from lessonloop.classroom import require_class, require_member
from lessonloop.database import Resource, User
from lessonloop.errors import ValidationFailure
from lessonloop.file_storage import FileStorage

logger = logging.getLogger(__name__)

DEFAULT_FILE_TYPE = "application/octet-stream"


def add_resource(
    session: Session,
    user: User,
    class_id: int,
    title: str,
    file_url: str,
    file_type: Optional[str],
    file_size: int,
) -> Resource:
    """Record a material that already lives at ``file_url``.

    Raises:
        NotFound: unknown class
        Forbidden: user is not a member of the class
        ValidationFailure: missing title or URL, bad size
    """
    class_obj = require_class(session, class_id)
    require_member(class_obj, user, "Not authorized to upload to this class")
    title = (title or "").strip()
    if not title:
        raise ValidationFailure("Resource title is required")
    if not file_url:
        raise ValidationFailure("Resource file URL is required")
    if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0:
        raise ValidationFailure("File size must be a non-negative integer")

    resource = Resource(
        class_id=class_obj.id,
        title=title,
        file_url=file_url,
        file_type=file_type or DEFAULT_FILE_TYPE,
        file_size=file_size,
        uploaded_by=user.id,
    )
    session.add(resource)
    session.commit()
    logger.info("User %s added resource %s to class %s", user.id, resource.id, class_obj.id)
    return resource


def upload_resource(
    session: Session,
    storage: FileStorage,
    user: User,
    class_id: int,
    title: str,
    file_obj,
    filename: Optional[str],
    content_type: Optional[str] = None,
) -> Resource:
    """Store an uploaded file and record it as a class material.

    Membership and the title are checked before anything is written to
    storage.
    """
    if file_obj is None or not filename:
        raise ValidationFailure("No file uploaded")
    class_obj = require_class(session, class_id)
    require_member(class_obj, user, "Not authorized to upload to this class")
    if not (title or "").strip():
        raise ValidationFailure("Resource title is required")

    stored = storage.save(file_obj, filename, content_type)
    return add_resource(session, user, class_obj.id, title, stored.url, content_type, stored.size)


def list_resources(session: Session, user: User, class_id: int) -> List[Resource]:
    """A class's materials, oldest first (members only)."""
    class_obj = require_class(session, class_id)
    require_member(class_obj, user, "Not authorized to view resources for this class")
    return (
        session.query(Resource)
        .filter_by(class_id=class_obj.id)
        .order_by(Resource.upload_date, Resource.id)
        .all()
    )


def resource_to_dict(resource: Resource) -> dict:
    return {
        "id": resource.id,
        "title": resource.title,
        "fileUrl": resource.file_url,
        "fileType": resource.file_type,
        "fileSize": resource.file_size,
        "class": resource.class_id,
        "uploadedBy": resource.uploaded_by,
        "uploadDate": resource.upload_date.isoformat() if resource.upload_date else None,
    }
