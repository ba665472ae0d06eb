"""Authentication routes: register, login, profile, password change, health check."""

from flask import Blueprint, current_app, g, jsonify

from lessonloop.users import authenticate_user, change_password, register_profile, user_to_dict
from lessonloop.web.blueprints.helpers import _app_config, _get_session, auth_required, json_body

auth_bp = Blueprint("auth", __name__)


def _token_response(user, status=200):
    provider = current_app.config["IDENTITY_PROVIDER"]
    token = provider.issue_token(user.uid, user.email)
    return jsonify({"token": token, "user": user_to_dict(user)}), status


@auth_bp.route("/auth/register", methods=["POST"])
def register():
    """Create a user profile and return a bearer token."""
    data = json_body()
    user = register_profile(
        _get_session(),
        _app_config(),
        name=data.get("name", ""),
        email=data.get("email", ""),
        password=data.get("password", ""),
        role=data.get("role", "Student"),
        teacher_code=data.get("teacherCode"),
    )
    return _token_response(user, 201)


@auth_bp.route("/auth/login", methods=["POST"])
def login():
    data = json_body()
    user = authenticate_user(_get_session(), data.get("email", ""), data.get("password", ""))
    return _token_response(user)


@auth_bp.route("/auth/profile")
@auth_required
def profile():
    return jsonify(user_to_dict(g.current_user))


@auth_bp.route("/auth/change-password", methods=["POST"])
@auth_required
def password_change():
    data = json_body()
    change_password(_get_session(), g.current_user, data.get("currentPassword"), data.get("newPassword"))
    return jsonify({"msg": "Password changed"})


@auth_bp.route("/health")
def health():
    """Health check endpoint for monitoring."""
    return jsonify({"status": "ok", "service": "lessonloop"})
