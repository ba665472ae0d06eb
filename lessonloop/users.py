"""
User store and account helpers for LessonLoop.
"""

import logging
import uuid

from werkzeug.security import check_password_hash, generate_password_hash

from lessonloop.database import ROLE_TEACHER, ROLES, User
from lessonloop.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationFailure

logger = logging.getLogger(__name__)


def create_user(session, name, email, password=None, role="Student", uid=None):
    """Create a new user profile.

    Args:
        session: SQLAlchemy session.
        name: Display name.
        email: Unique email address.
        password: Optional plain-text password (hashed before storing).
        role: "Teacher" or "Student".
        uid: Identity-provider id; generated when omitted.

    Returns:
        The created User.

    Raises:
        ValidationFailure: missing name/email or unknown role.
        Conflict: email or uid already registered.
    """
    if not name or not email:
        raise ValidationFailure("Name and email are required")
    if role not in ROLES:
        raise ValidationFailure(f"Role must be one of: {', '.join(ROLES)}")

    email = email.strip().lower()
    if session.query(User).filter_by(email=email).first():
        raise Conflict("A user with this email already exists")
    uid = uid or uuid.uuid4().hex
    if session.query(User).filter_by(uid=uid).first():
        raise Conflict("User profile already exists for this identity")

    user = User(
        uid=uid,
        name=name.strip(),
        email=email,
        role=role,
        password_hash=generate_password_hash(password) if password else None,
    )
    session.add(user)
    session.commit()
    logger.info("Registered %s user %s", role, user.id)
    return user


def register_profile(session, config, name, email, password, role, teacher_code=None):
    """Register a user, enforcing the teacher registration code.

    Teachers must present the code configured under
    ``auth.teacher_registration_code``. When no code is configured,
    teacher registration is closed.
    """
    if role == ROLE_TEACHER:
        expected = config.get("auth", {}).get("teacher_registration_code")
        if not expected or teacher_code != expected:
            logger.warning("Rejected teacher registration for %s: invalid code", email)
            raise Forbidden("Invalid teacher registration code")
    if not password or len(password) < 8:
        raise ValidationFailure("Password must be at least 8 characters")
    return create_user(session, name, email, password=password, role=role)


def authenticate_user(session, email, password):
    """Return the user for valid credentials.

    Raises:
        Unauthorized: unknown email or wrong password.
    """
    user = session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if user and user.password_hash and check_password_hash(user.password_hash, password or ""):
        return user
    raise Unauthorized("Invalid email or password")


def change_password(session, user, old_password, new_password):
    """Change a user's password after verifying the current one."""
    if not user.password_hash or not check_password_hash(user.password_hash, old_password or ""):
        raise Unauthorized("Current password is incorrect")
    if not new_password or len(new_password) < 8:
        raise ValidationFailure("New password must be at least 8 characters")
    user.password_hash = generate_password_hash(new_password)
    session.commit()


def get_user_by_id(session, user_id):
    """Get a user by database id, or None."""
    return session.query(User).filter_by(id=user_id).first()


def get_user_by_uid(session, uid):
    """Get a user by identity-provider id, or None."""
    return session.query(User).filter_by(uid=uid).first()


def require_user(session, user_id):
    user = get_user_by_id(session, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def user_to_dict(user):
    return {
        "id": user.id,
        "uid": user.uid,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "avatar": user.avatar,
    }
