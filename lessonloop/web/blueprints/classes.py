"""Class routes: create, list, join, rename, gradebook, grades and CSV export."""

from io import BytesIO

from flask import Blueprint, g, jsonify, send_file

from lessonloop.analytics import get_gradebook, get_my_grades
from lessonloop.classroom import (
    class_to_dict,
    create_class,
    join_class,
    list_classes_for_user,
    require_class,
    require_member,
    update_class,
)
from lessonloop.database import ROLE_STUDENT, ROLE_TEACHER
from lessonloop.report_export import export_class_data
from lessonloop.web.blueprints.helpers import _get_session, auth_required, json_body, roles_required

classes_bp = Blueprint("classes", __name__)


@classes_bp.route("/classes", methods=["POST"])
@auth_required
@roles_required(ROLE_TEACHER)
def class_create():
    data = json_body()
    class_obj = create_class(_get_session(), g.current_user, data.get("name", ""))
    return jsonify(class_to_dict(class_obj)), 201


@classes_bp.route("/classes")
@auth_required
def classes_list():
    """Classes taught (teachers) or joined (students)."""
    classes = list_classes_for_user(_get_session(), g.current_user)
    return jsonify([class_to_dict(c) for c in classes])


@classes_bp.route("/classes/join", methods=["POST"])
@auth_required
@roles_required(ROLE_STUDENT)
def class_join():
    data = json_body()
    class_obj = join_class(_get_session(), g.current_user, data.get("inviteCode", ""))
    return jsonify(class_to_dict(class_obj))


@classes_bp.route("/classes/<int:class_id>")
@auth_required
def class_detail(class_id):
    class_obj = require_class(_get_session(), class_id)
    require_member(class_obj, g.current_user)
    return jsonify(class_to_dict(class_obj))


@classes_bp.route("/classes/<int:class_id>", methods=["PUT"])
@auth_required
def class_update(class_id):
    data = json_body()
    class_obj = update_class(_get_session(), g.current_user, class_id, name=data.get("name"))
    return jsonify(class_to_dict(class_obj))


@classes_bp.route("/classes/<int:class_id>/gradebook")
@auth_required
def gradebook(class_id):
    return jsonify(get_gradebook(_get_session(), g.current_user, class_id))


@classes_bp.route("/classes/<int:class_id>/my-grades")
@auth_required
def my_grades(class_id):
    return jsonify(get_my_grades(_get_session(), g.current_user, class_id))


@classes_bp.route("/classes/<int:class_id>/export-data")
@auth_required
def export_data(class_id):
    """Download the class report as a CSV attachment."""
    filename, csv_str = export_class_data(_get_session(), g.current_user, class_id)
    buf = BytesIO(csv_str.encode("utf-8"))
    return send_file(
        buf,
        as_attachment=True,
        download_name=filename,
        mimetype="text/csv",
    )
