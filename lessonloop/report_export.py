"""
CSV class report export for LessonLoop.

Produces a four-part report: class overview, performance summary by
mastery tier, and a per-student score matrix with one column per quiz.
The export is read-only and deterministic for a given set of records;
only the ``Export Date`` line depends on the clock.
"""

import csv
import io
import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from lessonloop.analytics import aggregate_topics, classify_mastery, normalize_score, round_percentage
from lessonloop.classroom import get_roster, require_class, require_owner
from lessonloop.database import ROLE_TEACHER, Class, User, utcnow
from lessonloop.errors import Forbidden
from lessonloop.quizzes import list_quizzes_for_class, list_results_for_quizzes

logger = logging.getLogger(__name__)

MISSING = "N/A"

TIER_LABELS = [
    ("strongest", "Strongest"),
    ("weakest", "Weakest"),
    ("almostMastered", "Almost Mastered"),
]


def sanitize_csv_cell(value):
    """Prevent CSV formula injection by escaping dangerous prefixes.

    Cells starting with =, +, -, @, tab or carriage return are prefixed
    with a single quote so spreadsheet applications treat them as text.
    Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        return value
    if value and value[0] in ("=", "+", "-", "@", "\t", "\r"):
        return "'" + value
    return value


def format_percentage(value: Optional[float]) -> str:
    """Two-decimal percentage, or ``N/A`` for missing values."""
    if value is None:
        return MISSING
    return "%.2f" % round_percentage(value)


def _quoted(value) -> str:
    text = sanitize_csv_cell("" if value is None else str(value))
    return '"' + text.replace('"', '""') + '"'


def report_filename(class_name: str) -> str:
    """Attachment filename: whitespace becomes underscores."""
    return re.sub(r"\s", "_", class_name or "") + "_Class_Report.csv"


def build_class_report(
    class_obj: Class,
    teacher: Optional[User],
    roster: Iterable[User],
    quizzes: List,
    results: Iterable,
    now: Optional[datetime] = None,
) -> str:
    """Render the class report CSV.

    Args:
        class_obj: The class being exported.
        teacher: Owning teacher (name shown in the overview).
        roster: Enrolled students, in roster order.
        quizzes: Every quiz in the class, in class order. Defines the
            matrix columns.
        results: Every result for those quizzes.
        now: Export timestamp; defaults to the current UTC time.

    Returns:
        The CSV document as a string.
    """
    results = list(results)
    now = now or utcnow()

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")

    # Class overview
    writer.writerow(["Class Name:", sanitize_csv_cell(class_obj.name)])
    writer.writerow(["Teacher:", sanitize_csv_cell(teacher.name if teacher else "")])
    writer.writerow(["Invite Code:", sanitize_csv_cell(class_obj.invite_code)])
    writer.writerow(["Export Date:", now.strftime("%Y-%m-%d %H:%M:%S")])
    output.write("\n")

    # Performance summary
    output.write("Class Performance Summary\n")
    writer.writerow(["Category", "Topic", "Average Score (%)"])
    tiers = classify_mastery(aggregate_topics(results, quizzes))
    for key, label in TIER_LABELS:
        for entry in tiers[key]:
            writer.writerow([label, sanitize_csv_cell(entry["topic"]), format_percentage(entry["average"])])
    output.write("\n")

    # Individual student performance
    output.write("Individual Student Performance\n")
    quiz_headers = [sanitize_csv_cell(f"{q.title} ({q.topic})") for q in quizzes]
    writer.writerow(["Student Name", "Student Email"] + quiz_headers + ["Overall Average (%)"])

    per_student = {}
    totals = {}
    for result in results:
        per_student.setdefault(result.student_id, {})[result.quiz_id] = normalize_score(
            result.score, result.total_questions
        )
        entry = totals.setdefault(result.student_id, [0, 0])
        entry[0] += result.score
        entry[1] += result.total_questions

    for student in roster:
        scores = per_student.get(student.id, {})
        cells = [_quoted(student.name), _quoted(student.email)]
        cells.extend(format_percentage(scores.get(q.id)) for q in quizzes)
        scored, possible = totals.get(student.id, (0, 0))
        cells.append(format_percentage(normalize_score(scored, possible) if possible > 0 else None))
        output.write(",".join(cells) + "\n")

    return output.getvalue()


def export_class_data(session: Session, user: User, class_id: int, now: Optional[datetime] = None):
    """Export a class report for its owning teacher.

    Returns:
        Tuple of (filename, csv_text).
    """
    if user.role != ROLE_TEACHER:
        raise Forbidden("Only teachers can export class data")
    class_obj = require_class(session, class_id)
    require_owner(class_obj, user, "Not authorized to export data for this class")

    quizzes = list_quizzes_for_class(session, class_obj.id)
    results = list_results_for_quizzes(session, [q.id for q in quizzes])
    roster = get_roster(session, class_obj.id)
    csv_text = build_class_report(class_obj, class_obj.teacher, roster, quizzes, results, now=now)
    logger.info("Exported report for class %s (%d students, %d quizzes)", class_obj.id, len(roster), len(quizzes))
    return report_filename(class_obj.name), csv_text
