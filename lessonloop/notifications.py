"""
Notification fan-out and inbox management for LessonLoop.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from lessonloop.database import Class, Notification, User
from lessonloop.errors import Forbidden, NotFound

logger = logging.getLogger(__name__)

NEW_QUIZ = "newQuiz"
NEW_POLL = "newPoll"


def notify_class_students(session: Session, class_obj: Class, type_: str, message: str, link: str = None) -> int:
    """Queue one notification per enrolled student.

    The rows are added to the session but not committed, so they land in
    the same transaction as the quiz or poll that triggered them.

    Returns:
        Number of notifications created.
    """
    student_ids = class_obj.student_ids
    for student_id in student_ids:
        session.add(
            Notification(
                recipient_id=student_id,
                type=type_,
                message=message,
                link=link,
                read=False,
            )
        )
    if student_ids:
        logger.info("Queued %d %s notification(s) for class %s", len(student_ids), type_, class_obj.id)
    return len(student_ids)


def list_notifications(session: Session, user: User) -> List[Notification]:
    """A user's notifications, newest first."""
    return (
        session.query(Notification)
        .filter_by(recipient_id=user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .all()
    )


def _require_own(session: Session, user: User, notification_id: int) -> Notification:
    notification = session.query(Notification).filter_by(id=notification_id).first()
    if notification is None:
        raise NotFound("Notification not found")
    if notification.recipient_id != user.id:
        raise Forbidden("User not authorized")
    return notification


def mark_read(session: Session, user: User, notification_id: int) -> Notification:
    notification = _require_own(session, user, notification_id)
    notification.read = True
    session.commit()
    return notification


def mark_all_read(session: Session, user: User) -> int:
    count = (
        session.query(Notification)
        .filter_by(recipient_id=user.id, read=False)
        .update({"read": True}, synchronize_session="fetch")
    )
    session.commit()
    return count


def delete_notification(session: Session, user: User, notification_id: int) -> None:
    notification = _require_own(session, user, notification_id)
    session.delete(notification)
    session.commit()


def delete_read(session: Session, user: User) -> int:
    count = (
        session.query(Notification)
        .filter_by(recipient_id=user.id, read=True)
        .delete(synchronize_session="fetch")
    )
    session.commit()
    return count


def notification_to_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "recipient": notification.recipient_id,
        "type": notification.type,
        "message": notification.message,
        "link": notification.link,
        "read": bool(notification.read),
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }
