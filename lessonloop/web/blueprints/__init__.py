"""Flask blueprints for the LessonLoop API."""

from lessonloop.web.blueprints.analytics import analytics_bp
from lessonloop.web.blueprints.attendance import attendance_bp
from lessonloop.web.blueprints.auth import auth_bp
from lessonloop.web.blueprints.classes import classes_bp
from lessonloop.web.blueprints.notifications import notifications_bp
from lessonloop.web.blueprints.polls import polls_bp
from lessonloop.web.blueprints.quizzes import quizzes_bp
from lessonloop.web.blueprints.resources import resources_bp


def register_blueprints(app):
    """Register all blueprint modules on the Flask app."""
    app.register_blueprint(auth_bp)
    app.register_blueprint(classes_bp)
    app.register_blueprint(quizzes_bp)
    app.register_blueprint(polls_bp)
    app.register_blueprint(attendance_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(resources_bp)
