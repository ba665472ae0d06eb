"""Gunicorn configuration for the LessonLoop API.

Run with: gunicorn -c gunicorn.conf.py "lessonloop.web.app:create_app()"
"""

bind = "0.0.0.0:8000"
workers = 2  # SQLite serializes writers; raise when DATABASE_URL points at PostgreSQL
timeout = 60
accesslog = "-"
errorlog = "-"
loglevel = "info"
