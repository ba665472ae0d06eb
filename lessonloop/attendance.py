"""
Attendance sheets for LessonLoop.

One sheet per (class, date). Taking attendance again for the same date
replaces the records instead of creating a second sheet.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lessonloop.classroom import require_class, require_owner
from lessonloop.database import ATTENDANCE_STATUSES, ROLE_TEACHER, Attendance, AttendanceRecord, User
from lessonloop.errors import Forbidden, NotFound, ValidationFailure

logger = logging.getLogger(__name__)


def parse_date(value: Any) -> date:
    """Parse a ``YYYY-MM-DD`` string (or pass a date through)."""
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime((value or "").strip()[:10], "%Y-%m-%d").date()
    except (AttributeError, ValueError):
        raise ValidationFailure(f"Invalid date '{value}' (use YYYY-MM-DD)")


def validate_records(records: Any, roster_ids: List[int]) -> List[Dict[str, Any]]:
    """Validate ``[{"student": id, "status": "Present"|"Absent"}]`` records.

    Every student must be on the roster and appear at most once.
    """
    if not isinstance(records, list):
        raise ValidationFailure("Attendance records must be a list")
    seen = set()
    cleaned = []
    for i, record in enumerate(records, start=1):
        if not isinstance(record, dict):
            raise ValidationFailure(f"Record {i}: must be an object")
        student_id = record.get("student")
        status = record.get("status")
        if student_id not in roster_ids:
            raise ValidationFailure(f"Record {i}: student {student_id} is not enrolled in this class")
        if student_id in seen:
            raise ValidationFailure(f"Record {i}: duplicate entry for student {student_id}")
        if status not in ATTENDANCE_STATUSES:
            raise ValidationFailure(f"Record {i}: status must be one of: {', '.join(ATTENDANCE_STATUSES)}")
        seen.add(student_id)
        cleaned.append({"student": student_id, "status": status})
    return cleaned


def _require_teacher_owner(session: Session, user: User, class_id: int, action: str):
    if user.role != ROLE_TEACHER:
        raise Forbidden(f"Only teachers can {action} attendance")
    class_obj = require_class(session, class_id)
    require_owner(class_obj, user, f"Not authorized to {action} attendance for this class")
    return class_obj


def _replace_records(attendance: Attendance, records: List[Dict[str, Any]]) -> None:
    attendance.records = [AttendanceRecord(student_id=r["student"], status=r["status"]) for r in records]


def take_attendance(session: Session, teacher: User, class_id: int, day: Any, records: Any) -> Attendance:
    """Create or overwrite the attendance sheet for a class and date."""
    class_obj = _require_teacher_owner(session, teacher, class_id, "take")
    day = parse_date(day)
    cleaned = validate_records(records, class_obj.student_ids)

    attendance = session.query(Attendance).filter_by(class_id=class_obj.id, date=day).first()
    if attendance is None:
        attendance = Attendance(class_id=class_obj.id, date=day)
        _replace_records(attendance, cleaned)
        session.add(attendance)
        try:
            session.commit()
            logger.info("Attendance taken for class %s on %s", class_obj.id, day)
            return attendance
        except IntegrityError:
            # another request created the sheet first; overwrite it instead
            session.rollback()
            attendance = session.query(Attendance).filter_by(class_id=class_obj.id, date=day).one()

    _replace_records(attendance, cleaned)
    session.commit()
    logger.info("Attendance updated for class %s on %s", class_obj.id, day)
    return attendance


def get_attendance(session: Session, teacher: User, class_id: int, day: Any) -> Attendance:
    _require_teacher_owner(session, teacher, class_id, "view")
    day = parse_date(day)
    attendance = session.query(Attendance).filter_by(class_id=class_id, date=day).first()
    if attendance is None:
        raise NotFound("Attendance not found for this date")
    return attendance


def attendance_to_dict(attendance: Attendance) -> dict:
    return {
        "id": attendance.id,
        "class": attendance.class_id,
        "date": attendance.date.isoformat(),
        "records": [
            {
                "student": {
                    "id": r.student_id,
                    "name": r.student.name if r.student else None,
                    "email": r.student.email if r.student else None,
                },
                "status": r.status,
            }
            for r in attendance.records
        ],
    }
