"""Class material routes: upload, list, and download of locally stored files."""

from flask import Blueprint, abort, current_app, g, jsonify, request, send_from_directory

from lessonloop.file_storage import LocalFileStorage
from lessonloop.resources import list_resources, resource_to_dict, upload_resource
from lessonloop.web.blueprints.helpers import _get_session, auth_required

resources_bp = Blueprint("resources", __name__)


@resources_bp.route("/resources/<int:class_id>", methods=["POST"])
@auth_required
def resource_upload(class_id):
    """Upload a material (multipart ``file`` plus a ``title`` form field)."""
    file = request.files.get("file")
    resource = upload_resource(
        _get_session(),
        current_app.config["FILE_STORAGE"],
        g.current_user,
        class_id,
        title=request.form.get("title", ""),
        file_obj=file,
        filename=file.filename if file else None,
        content_type=file.mimetype if file else None,
    )
    return jsonify(resource_to_dict(resource)), 201


@resources_bp.route("/resources/<int:class_id>")
@auth_required
def resources_for_class(class_id):
    resources = list_resources(_get_session(), g.current_user, class_id)
    return jsonify([resource_to_dict(r) for r in resources])


@resources_bp.route("/uploads/resources/<filename>")
def uploaded_resource(filename):
    """Serve a file written by the local storage backend."""
    storage = current_app.config["FILE_STORAGE"]
    if not isinstance(storage, LocalFileStorage):
        abort(404)
    return send_from_directory(storage.upload_dir, filename)
