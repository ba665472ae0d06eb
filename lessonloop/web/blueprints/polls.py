"""Live poll routes."""

from flask import Blueprint, g, jsonify

from lessonloop.database import ROLE_STUDENT, ROLE_TEACHER
from lessonloop.polls import create_poll, end_poll, get_active_poll_for_user, poll_to_dict, vote
from lessonloop.web.blueprints.helpers import _get_session, auth_required, json_body, roles_required

polls_bp = Blueprint("polls", __name__)


@polls_bp.route("/polls", methods=["POST"])
@auth_required
@roles_required(ROLE_TEACHER)
def poll_create():
    data = json_body()
    poll = create_poll(
        _get_session(),
        g.current_user,
        data.get("classId", data.get("class")),
        question=data.get("question", ""),
        options=data.get("options"),
        correct_index=data.get("correctAnswer"),
    )
    return jsonify(poll_to_dict(poll)), 201


@polls_bp.route("/polls/vote", methods=["POST"])
@auth_required
@roles_required(ROLE_STUDENT)
def poll_vote():
    data = json_body()
    poll = vote(_get_session(), g.current_user, data.get("pollId"), data.get("optionIndex"))
    return jsonify(poll_to_dict(poll))


@polls_bp.route("/polls/end/<int:poll_id>", methods=["PUT"])
@auth_required
def poll_end(poll_id):
    poll = end_poll(_get_session(), g.current_user, poll_id)
    return jsonify(poll_to_dict(poll))


@polls_bp.route("/polls/active/<int:class_id>")
@auth_required
def poll_active(class_id):
    """The class's active poll, or null when none is running."""
    poll = get_active_poll_for_user(_get_session(), g.current_user, class_id)
    return jsonify(poll_to_dict(poll) if poll else None)
