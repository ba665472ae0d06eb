"""Flask JSON API for LessonLoop."""
