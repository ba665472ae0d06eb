"""Attendance routes."""

from flask import Blueprint, g, jsonify

from lessonloop.attendance import attendance_to_dict, get_attendance, take_attendance
from lessonloop.web.blueprints.helpers import _get_session, auth_required, json_body

attendance_bp = Blueprint("attendance", __name__)


@attendance_bp.route("/attendance/<int:class_id>", methods=["POST"])
@auth_required
def attendance_take(class_id):
    """Create or overwrite the sheet for ``date``."""
    data = json_body()
    attendance = take_attendance(_get_session(), g.current_user, class_id, data.get("date"), data.get("records"))
    return jsonify(attendance_to_dict(attendance))


@attendance_bp.route("/attendance/<int:class_id>/<day>")
@auth_required
def attendance_detail(class_id, day):
    attendance = get_attendance(_get_session(), g.current_user, class_id, day)
    return jsonify(attendance_to_dict(attendance))
