"""
Error taxonomy for LessonLoop.

Domain modules raise these; the web layer renders each one as a JSON body
``{"msg": ...}`` with the matching HTTP status.
"""


class LessonLoopError(Exception):
    """Base class for expected, user-visible failures."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationFailure(LessonLoopError):
    """Request payload (or generated content) does not match the expected shape."""

    status_code = 400


class Unauthorized(LessonLoopError):
    status_code = 401


class Forbidden(LessonLoopError):
    """Role or ownership check failed."""

    status_code = 403


class NotFound(LessonLoopError):
    status_code = 404


class Conflict(LessonLoopError):
    """Uniqueness rule violated; existing state is left unchanged."""

    status_code = 409


class UpstreamFailure(LessonLoopError):
    """An external provider was unreachable or returned malformed data."""

    status_code = 500
