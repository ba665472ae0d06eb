"""
Class store for LessonLoop.

Provides class creation with unique invite codes, enrollment by invite
code, roster lookups and the membership checks every class-scoped
operation relies on.
"""

import logging
import secrets
import string
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lessonloop.database import ROLE_STUDENT, ROLE_TEACHER, Class, Enrollment, User
from lessonloop.errors import Forbidden, NotFound, ValidationFailure

logger = logging.getLogger(__name__)

INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = string.ascii_letters + string.digits + "_-"
MAX_INVITE_CODE_ATTEMPTS = 5


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    """Return a random url-safe invite code."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def create_class(session: Session, teacher: User, name: str) -> Class:
    """
    Create a new class owned by ``teacher``.

    The invite code is unique across all classes; a collision on insert
    is retried with a fresh code.

    Args:
        session: SQLAlchemy session
        teacher: The owning teacher
        name: Class name (required)

    Returns:
        The created Class object with its assigned ID and invite code

    Raises:
        Forbidden: the user is not a teacher
        ValidationFailure: the name is blank
    """
    if teacher.role != ROLE_TEACHER:
        raise Forbidden("Only teachers can create classes")
    name = (name or "").strip()
    if not name:
        raise ValidationFailure("Class name is required")

    for _ in range(MAX_INVITE_CODE_ATTEMPTS):
        new_class = Class(name=name, teacher_id=teacher.id, invite_code=generate_invite_code())
        session.add(new_class)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning("Invite code collision, retrying")
            continue
        logger.info("Teacher %s created class %s", teacher.id, new_class.id)
        return new_class
    raise RuntimeError("Could not allocate a unique invite code")


def get_class(session: Session, class_id: int) -> Optional[Class]:
    """Fetch a single class by ID, or None."""
    return session.query(Class).filter_by(id=class_id).first()


def require_class(session: Session, class_id: int) -> Class:
    """Fetch a class by ID or raise NotFound."""
    class_obj = get_class(session, class_id)
    if class_obj is None:
        raise NotFound("Class not found")
    return class_obj


def find_class_by_invite_code(session: Session, invite_code: str) -> Optional[Class]:
    if not invite_code:
        return None
    return session.query(Class).filter_by(invite_code=invite_code.strip()).first()


def get_roster(session: Session, class_id: int) -> List[User]:
    """Enrolled students of a class in enrollment order."""
    return (
        session.query(User)
        .join(Enrollment, Enrollment.student_id == User.id)
        .filter(Enrollment.class_id == class_id)
        .order_by(Enrollment.id)
        .all()
    )


def list_classes_for_user(session: Session, user: User) -> List[Class]:
    """Classes taught by a teacher, or classes a student is enrolled in."""
    if user.role == ROLE_TEACHER:
        return session.query(Class).filter_by(teacher_id=user.id).order_by(Class.id).all()
    return (
        session.query(Class)
        .join(Enrollment, Enrollment.class_id == Class.id)
        .filter(Enrollment.student_id == user.id)
        .order_by(Class.id)
        .all()
    )


def join_class(session: Session, student: User, invite_code: str) -> Class:
    """
    Enroll a student using an invite code.

    Joining a class the student is already in is a no-op.

    Raises:
        Forbidden: the user is not a student
        NotFound: no class has this invite code
    """
    if student.role != ROLE_STUDENT:
        raise Forbidden("Only students can join classes")
    class_obj = find_class_by_invite_code(session, invite_code)
    if class_obj is None:
        raise NotFound("Class not found")

    if student.id not in class_obj.student_ids:
        session.add(Enrollment(class_id=class_obj.id, student_id=student.id))
        try:
            session.commit()
        except IntegrityError:
            # concurrent join by the same student already enrolled them
            session.rollback()
        else:
            logger.info("Student %s joined class %s", student.id, class_obj.id)
        session.refresh(class_obj)
    return class_obj


def update_class(session: Session, user: User, class_id: int, name: Optional[str] = None) -> Class:
    """Rename a class. Only the owning teacher may do this."""
    class_obj = require_class(session, class_id)
    require_owner(class_obj, user, "Not authorized to edit this class")
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationFailure("Class name is required")
        class_obj.name = name
    session.commit()
    return class_obj


def is_owner(class_obj: Class, user: User) -> bool:
    return class_obj.teacher_id == user.id


def is_member(class_obj: Class, user: User) -> bool:
    """True for the owning teacher or an enrolled student."""
    return is_owner(class_obj, user) or user.id in class_obj.student_ids


def require_owner(class_obj: Class, user: User, message: str = "Not authorized to manage this class") -> None:
    if not is_owner(class_obj, user):
        raise Forbidden(message)


def require_member(class_obj: Class, user: User, message: str = "Not authorized to access this class") -> None:
    if not is_member(class_obj, user):
        raise Forbidden(message)


def class_to_dict(class_obj: Class) -> dict:
    return {
        "id": class_obj.id,
        "name": class_obj.name,
        "teacher": class_obj.teacher_id,
        "teacherName": class_obj.teacher.name if class_obj.teacher else None,
        "students": class_obj.student_ids,
        "inviteCode": class_obj.invite_code,
        "createdAt": class_obj.created_at.isoformat() if class_obj.created_at else None,
    }
