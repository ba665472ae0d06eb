"""Analytics routes: mastery tiers per class and a student's overall average."""

from flask import Blueprint, g, jsonify

from lessonloop.analytics import get_average_grade, get_class_analytics
from lessonloop.database import ROLE_STUDENT
from lessonloop.web.blueprints.helpers import _get_session, auth_required, roles_required

analytics_bp = Blueprint("analytics", __name__)


@analytics_bp.route("/analytics/<int:class_id>")
@auth_required
def class_analytics(class_id):
    """Strongest, weakest and almost-mastered topics, scoped to the requester."""
    return jsonify(get_class_analytics(_get_session(), g.current_user, class_id))


@analytics_bp.route("/student/average-grade")
@auth_required
@roles_required(ROLE_STUDENT)
def student_average_grade():
    return jsonify({"averageGrade": get_average_grade(_get_session(), g.current_user)})
