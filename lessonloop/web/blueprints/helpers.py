"""Shared utilities for LessonLoop blueprint modules."""

import functools
import logging

from flask import current_app, g, request

from lessonloop.database import get_session
from lessonloop.errors import Forbidden, NotFound, ValidationFailure
from lessonloop.users import get_user_by_uid

logger = logging.getLogger(__name__)


def _get_session():
    """Get a database session from the shared app engine."""
    if "db_session" not in g:
        engine = current_app.config["DB_ENGINE"]
        g.db_session = get_session(engine)
    return g.db_session


def _app_config():
    return current_app.config["APP_CONFIG"]


def _bearer_token():
    """Token from ``x-auth-token`` or ``Authorization: Bearer <token>``."""
    token = request.headers.get("x-auth-token")
    if token:
        return token.strip()
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


def json_body():
    """Request JSON as a dict (empty when absent)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailure("Request body must be a JSON object")
    return data


def auth_required(f):
    """Decorator to require a valid bearer token and a registered profile.

    Sets ``g.identity`` and ``g.current_user``.
    """

    @functools.wraps(f)
    def decorated_function(*args, **kwargs):
        provider = current_app.config["IDENTITY_PROVIDER"]
        identity = provider.verify_token(_bearer_token())
        user = get_user_by_uid(_get_session(), identity.uid)
        if user is None:
            logger.warning("Valid token for unknown identity %s", identity.uid)
            raise NotFound("User profile not found. Please complete registration.")
        g.identity = identity
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def roles_required(*roles):
    """Decorator (used after ``auth_required``) restricting a route to roles."""

    def decorator(f):
        @functools.wraps(f)
        def decorated_function(*args, **kwargs):
            if g.current_user.role not in roles:
                raise Forbidden(f"Only {' or '.join(r.lower() + 's' for r in roles)} can perform this action")
            return f(*args, **kwargs)

        return decorated_function

    return decorator
