"""
Analytics and gradebook aggregation engine for LessonLoop.

Turns raw quiz submissions into per-topic mastery tiers, per-student
grade averages and per-student grade lists. The aggregation helpers are
pure functions over already-fetched records; the ``get_*`` functions
fetch records through the class/quiz/result stores and apply role scoping.

Joins between a result and its quiz are best-effort: a result whose quiz
is not in the supplied quiz list is dropped rather than treated as an
error, and downstream totals exclude it.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from lessonloop.classroom import get_roster, require_class, require_member, require_owner
from lessonloop.database import ROLE_STUDENT, ROLE_TEACHER, User
from lessonloop.errors import Forbidden
from lessonloop.quizzes import (
    list_quizzes_for_class,
    list_results_for_quizzes,
    list_results_for_student,
    list_results_for_student_in_quizzes,
)

logger = logging.getLogger(__name__)

# Mastery tier thresholds (percent)
STRONGEST_THRESHOLD = 80.0
ALMOST_MASTERED_THRESHOLD = 50.0

TWO_PLACES = Decimal("0.01")


def normalize_score(correct: float, total: float) -> float:
    """Convert a (correct, total) pair into a percentage.

    Args:
        correct: Points scored (non-negative).
        total: Points possible.

    Returns:
        ``correct / total * 100``, or 0.0 when ``total`` is 0.
    """
    if not total:
        return 0.0
    return (correct / total) * 100


def round_percentage(value: float) -> float:
    """Round to 2 decimals with ties away from zero (3.125 -> 3.13).

    Works on the float's exact binary value, so 1.005 (stored just below)
    rounds to 1.0.
    """
    return float(Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def result_percentage(result) -> float:
    return normalize_score(result.score, result.total_questions)


def _index_quizzes(quizzes: Iterable) -> Dict[int, Any]:
    return {quiz.id: quiz for quiz in quizzes}


def aggregate_topics(results: Iterable, quizzes: Iterable) -> List[Dict[str, Any]]:
    """Group submissions by their quiz's topic.

    Args:
        results: QuizResult-like objects (``quiz_id``, ``score``,
            ``total_questions``).
        quizzes: Quiz-like objects (``id``, ``topic``) used for the join.

    Returns:
        List of ``{"topic", "average", "count"}`` dicts in order of first
        appearance. Topics are matched exactly (case-sensitive).
    """
    quiz_map = _index_quizzes(quizzes)
    topic_scores: Dict[Any, List[float]] = {}
    dropped = 0
    for result in results:
        quiz = quiz_map.get(result.quiz_id)
        if quiz is None:
            dropped += 1
            continue
        topic_scores.setdefault(quiz.topic, []).append(result_percentage(result))

    if dropped:
        logger.debug("Dropped %d result(s) with no matching quiz", dropped)

    return [
        {"topic": topic, "average": sum(scores) / len(scores), "count": len(scores)}
        for topic, scores in topic_scores.items()
    ]


def classify_mastery(topics: Iterable[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Partition aggregated topics into mastery tiers.

    - strongest: average >= 80, highest first
    - almostMastered: 50 <= average < 80, highest first
    - weakest: average < 50, lowest first

    Args:
        topics: Output of ``aggregate_topics``.

    Returns:
        ``{"strongest", "weakest", "almostMastered"}``, each a list of
        ``{"topic", "average", "quizzes"}`` dicts.
    """
    strongest, almost, weakest = [], [], []
    for item in topics:
        entry = {"topic": item["topic"], "average": item["average"], "quizzes": item["count"]}
        if entry["average"] >= STRONGEST_THRESHOLD:
            strongest.append(entry)
        elif entry["average"] >= ALMOST_MASTERED_THRESHOLD:
            almost.append(entry)
        else:
            weakest.append(entry)

    strongest.sort(key=lambda x: x["average"], reverse=True)
    almost.sort(key=lambda x: x["average"], reverse=True)
    weakest.sort(key=lambda x: x["average"])
    return {"strongest": strongest, "weakest": weakest, "almostMastered": almost}


def _totals_by_student(results: Iterable) -> Dict[int, List[int]]:
    totals: Dict[int, List[int]] = {}
    for result in results:
        entry = totals.setdefault(result.student_id, [0, 0])
        entry[0] += result.score
        entry[1] += result.total_questions
    return totals


def overall_average(results: Iterable) -> Optional[float]:
    """Points-weighted average percentage over a set of results.

    Returns None when there are no results.
    """
    scored = possible = 0
    seen = False
    for result in results:
        seen = True
        scored += result.score
        possible += result.total_questions
    if not seen:
        return None
    return normalize_score(scored, possible)


def build_gradebook(roster: Iterable, results: Iterable) -> List[Dict[str, Any]]:
    """One gradebook row per roster member, in roster order.

    ``averageScore`` is total points scored over total points possible,
    as a percentage rounded to 2 decimals; students with no submissions
    get 0.
    """
    totals = _totals_by_student(results)
    rows = []
    for student in roster:
        scored, possible = totals.get(student.id, (0, 0))
        rows.append(
            {
                "id": student.id,
                "name": student.name,
                "email": student.email,
                "averageScore": round_percentage(normalize_score(scored, possible)),
            }
        )
    return rows


def build_student_grades(results: Iterable, quizzes: Iterable) -> List[Dict[str, Any]]:
    """Per-quiz grades for one student's results (best-effort join)."""
    quiz_map = _index_quizzes(quizzes)
    grades = []
    for result in results:
        quiz = quiz_map.get(result.quiz_id)
        if quiz is None:
            continue
        grades.append(
            {
                "quizId": quiz.id,
                "quizTitle": quiz.title,
                "score": result_percentage(result),
                "isLate": bool(result.is_late),
            }
        )
    return grades


def mean_percentage(results: Iterable) -> float:
    """Unweighted mean of per-result percentages; 0 when empty."""
    percentages = [result_percentage(r) for r in results]
    if not percentages:
        return 0.0
    return sum(percentages) / len(percentages)


# ---------------------------------------------------------------------------
# Store-backed, role-scoped views
# ---------------------------------------------------------------------------


def get_class_analytics(session: Session, user: User, class_id: int) -> Dict[str, List[Dict[str, Any]]]:
    """Mastery tiers for a class.

    Teachers get the whole class aggregated; students only their own
    submissions.
    """
    class_obj = require_class(session, class_id)
    require_member(class_obj, user)
    quizzes = list_quizzes_for_class(session, class_obj.id)
    quiz_ids = [q.id for q in quizzes]

    if user.role == ROLE_TEACHER:
        results = list_results_for_quizzes(session, quiz_ids)
    else:
        results = list_results_for_student_in_quizzes(session, user.id, quiz_ids)

    return classify_mastery(aggregate_topics(results, quizzes))


def get_gradebook(session: Session, user: User, class_id: int) -> List[Dict[str, Any]]:
    """Gradebook rows for every enrolled student (owning teacher only)."""
    if user.role != ROLE_TEACHER:
        raise Forbidden("Only teachers can view the gradebook")
    class_obj = require_class(session, class_id)
    require_owner(class_obj, user, "Not authorized to access this gradebook")
    quiz_ids = [q.id for q in list_quizzes_for_class(session, class_obj.id)]
    results = list_results_for_quizzes(session, quiz_ids)
    return build_gradebook(get_roster(session, class_obj.id), results)


def get_my_grades(session: Session, user: User, class_id: int) -> List[Dict[str, Any]]:
    """A student's own per-quiz grades in a class."""
    if user.role != ROLE_STUDENT:
        raise Forbidden("Only students can view their own grades")
    class_obj = require_class(session, class_id)
    if user.id not in class_obj.student_ids:
        raise Forbidden("Not authorized to view grades for this class")
    quizzes = list_quizzes_for_class(session, class_obj.id)
    results = list_results_for_student_in_quizzes(session, user.id, [q.id for q in quizzes])
    return build_student_grades(results, quizzes)


def get_average_grade(session: Session, user: User) -> float:
    """Mean percentage over all of a student's submissions, across classes."""
    return mean_percentage(list_results_for_student(session, user.id))
