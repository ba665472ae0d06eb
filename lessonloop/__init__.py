"""LessonLoop: classroom quizzes, polls, attendance and grade analytics."""

__version__ = "1.0.0"
