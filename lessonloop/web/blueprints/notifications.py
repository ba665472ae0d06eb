"""Notification inbox routes."""

from flask import Blueprint, g, jsonify

from lessonloop.notifications import (
    delete_notification,
    delete_read,
    list_notifications,
    mark_all_read,
    mark_read,
    notification_to_dict,
)
from lessonloop.web.blueprints.helpers import _get_session, auth_required

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("/notifications")
@auth_required
def notifications_list():
    notifications = list_notifications(_get_session(), g.current_user)
    return jsonify([notification_to_dict(n) for n in notifications])


@notifications_bp.route("/notifications/mark-read/<int:notification_id>", methods=["PUT"])
@auth_required
def notification_mark_read(notification_id):
    notification = mark_read(_get_session(), g.current_user, notification_id)
    return jsonify(notification_to_dict(notification))


@notifications_bp.route("/notifications/mark-all-read", methods=["PUT"])
@auth_required
def notifications_mark_all_read():
    count = mark_all_read(_get_session(), g.current_user)
    return jsonify({"msg": "All notifications marked as read", "updated": count})


@notifications_bp.route("/notifications/read", methods=["DELETE"])
@auth_required
def notifications_delete_read():
    count = delete_read(_get_session(), g.current_user)
    return jsonify({"msg": "Read notifications deleted", "deleted": count})


@notifications_bp.route("/notifications/<int:notification_id>", methods=["DELETE"])
@auth_required
def notification_delete(notification_id):
    delete_notification(_get_session(), g.current_user, notification_id)
    return jsonify({"msg": "Notification removed"})
