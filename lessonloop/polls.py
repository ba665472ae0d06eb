"""
Live poll lifecycle and vote tally for LessonLoop.

A poll starts active with every option at zero votes. Each vote inserts a
(poll, user) voter row and bumps one option counter inside a single
transaction; the unique voter row means a second vote from the same user
can never reach the counter. Ending a poll is terminal.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lessonloop.classroom import require_class, require_member, require_owner
from lessonloop.database import ROLE_STUDENT, ROLE_TEACHER, Poll, PollOption, PollVote, User
from lessonloop.errors import Conflict, Forbidden, NotFound, ValidationFailure
from lessonloop.notifications import NEW_POLL, notify_class_students

logger = logging.getLogger(__name__)


def get_active_poll(session: Session, class_id: int) -> Optional[Poll]:
    return session.query(Poll).filter_by(class_id=class_id, is_active=True).first()


def require_poll(session: Session, poll_id: int) -> Poll:
    poll = session.query(Poll).filter_by(id=poll_id).first()
    if poll is None:
        raise NotFound("Poll not found")
    return poll


def create_poll(
    session: Session,
    teacher: User,
    class_id: int,
    question: str,
    options: List[Any],
    correct_index: Optional[int] = None,
) -> Poll:
    """
    Start a live poll in a class the teacher owns.

    Raises:
        Forbidden: not the owning teacher
        ValidationFailure: blank question, fewer than two options, bad correct index
        Conflict: the class already has an active poll
    """
    if teacher.role != ROLE_TEACHER:
        raise Forbidden("Only teachers can create polls")
    class_obj = require_class(session, class_id)
    require_owner(class_obj, teacher, "Not authorized to create polls for this class")

    question = (question or "").strip()
    if not question:
        raise ValidationFailure("Poll question is required")
    if not isinstance(options, list) or len(options) < 2:
        raise ValidationFailure("A poll needs at least two options")
    texts = [o.get("text") if isinstance(o, dict) else o for o in options]
    if any(not isinstance(t, str) or not t.strip() for t in texts):
        raise ValidationFailure("Every poll option needs text")
    if correct_index is not None and (
        isinstance(correct_index, bool) or not isinstance(correct_index, int) or not 0 <= correct_index < len(texts)
    ):
        raise ValidationFailure("Correct answer must be an option index")

    if get_active_poll(session, class_obj.id) is not None:
        raise Conflict("An active poll already exists for this class. Please end it first.")

    poll = Poll(
        class_id=class_obj.id,
        question=question,
        correct_index=correct_index,
        created_by=teacher.id,
        is_active=True,
        options=[PollOption(position=i, text=t.strip(), votes=0) for i, t in enumerate(texts)],
    )
    session.add(poll)
    notify_class_students(
        session,
        class_obj,
        NEW_POLL,
        f"A new live poll has started in {class_obj.name}.",
        link=f"/class/{class_obj.id}",
    )
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("An active poll already exists for this class. Please end it first.")
    logger.info("Poll %s started in class %s", poll.id, class_obj.id)
    return poll


def has_voted(session: Session, poll_id: int, user_id: int) -> bool:
    return session.query(PollVote.id).filter_by(poll_id=poll_id, user_id=user_id).first() is not None


def vote(session: Session, user: User, poll_id: int, option_index: Any) -> Poll:
    """
    Cast a single vote.

    Raises:
        NotFound: unknown poll
        Forbidden: not a student enrolled in the poll's class
        ValidationFailure: poll inactive or option out of range
        Conflict: the user already voted; counts are left unchanged
    """
    if user.role != ROLE_STUDENT:
        raise Forbidden("Only students can vote")
    poll = require_poll(session, poll_id)
    require_member(poll.class_, user, "Not authorized to vote on this poll")
    if not poll.is_active:
        raise ValidationFailure("Poll is not active")
    if isinstance(option_index, bool) or not isinstance(option_index, int) or not 0 <= option_index < len(poll.options):
        raise ValidationFailure("Option index is out of range")
    if has_voted(session, poll.id, user.id):
        raise Conflict("You have already voted on this poll")

    session.add(PollVote(poll_id=poll.id, user_id=user.id, option_index=option_index))
    try:
        session.flush()
        session.execute(
            update(PollOption)
            .where(PollOption.poll_id == poll.id, PollOption.position == option_index)
            .values(votes=PollOption.votes + 1)
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning("Duplicate vote on poll %s by user %s", poll.id, user.id)
        raise Conflict("You have already voted on this poll")

    # commit expired the poll, so options reload with the new counts
    return poll


def end_poll(session: Session, user: User, poll_id: int) -> Poll:
    """Deactivate a poll. Only its creator may end it; ending twice is a no-op."""
    poll = require_poll(session, poll_id)
    if poll.created_by != user.id:
        raise Forbidden("Not authorized to end this poll")
    if poll.is_active:
        poll.is_active = False
        session.commit()
        logger.info("Poll %s ended", poll.id)
    return poll


def get_active_poll_for_user(session: Session, user: User, class_id: int) -> Optional[Poll]:
    class_obj = require_class(session, class_id)
    require_member(class_obj, user)
    return get_active_poll(session, class_obj.id)


def poll_to_dict(poll: Poll) -> dict:
    return {
        "id": poll.id,
        "class": poll.class_id,
        "question": poll.question,
        "options": [{"text": o.text, "votes": o.votes} for o in poll.options],
        "correctAnswer": poll.correct_index,
        "createdBy": poll.created_by,
        "isActive": bool(poll.is_active),
        "votedUsers": [v.user_id for v in poll.votes],
        "createdAt": poll.created_at.isoformat() if poll.created_at else None,
    }
