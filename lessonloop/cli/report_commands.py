"""
Analytics, gradebook and CSV export CLI commands.

Reports run with the owning teacher's permissions.
"""

import json

from lessonloop.analytics import get_class_analytics, get_gradebook
from lessonloop.classroom import require_class
from lessonloop.cli import get_db_session
from lessonloop.report_export import export_class_data

TIER_TITLES = [
    ("strongest", "Strongest topics"),
    ("almostMastered", "Almost mastered"),
    ("weakest", "Weakest topics"),
]


def register_report_commands(subparsers):
    """Register reporting subcommands."""

    # analytics
    p = subparsers.add_parser("analytics", help="Show topic mastery for a class.")
    p.add_argument("--class", dest="class_id", type=int, required=True, help="Class ID.")
    p.add_argument("--format", dest="fmt", default="text", choices=["text", "json"], help="Output format.")

    # gradebook
    p = subparsers.add_parser("gradebook", help="Show the gradebook for a class.")
    p.add_argument("--class", dest="class_id", type=int, required=True, help="Class ID.")
    p.add_argument("--format", dest="fmt", default="text", choices=["text", "json"], help="Output format.")

    # export
    p = subparsers.add_parser("export", help="Export the class report as CSV.")
    p.add_argument("--class", dest="class_id", type=int, required=True, help="Class ID.")
    p.add_argument("--output", help="Output file (defaults to <Class_Name>_Class_Report.csv).")


def handle_analytics(config, args):
    """Show mastery tiers for a class."""
    engine, session = get_db_session(config)
    try:
        class_obj = require_class(session, args.class_id)
        tiers = get_class_analytics(session, class_obj.teacher, class_obj.id)

        if args.fmt == "json":
            print(json.dumps(tiers, indent=2))
            return

        print(f"\nAnalytics for: {class_obj.name}")
        print("-" * 50)
        for key, title in TIER_TITLES:
            print(f"{title}:")
            if not tiers[key]:
                print("  (none)")
            for t in tiers[key]:
                print(f"  {t['topic'] or '(no topic)':<30} {t['average']:>6.2f}%  ({t['quizzes']} submissions)")
    finally:
        session.close()


def handle_gradebook(config, args):
    """Show each enrolled student's average score."""
    engine, session = get_db_session(config)
    try:
        class_obj = require_class(session, args.class_id)
        rows = get_gradebook(session, class_obj.teacher, class_obj.id)

        if args.fmt == "json":
            print(json.dumps(rows, indent=2))
            return

        print(f"\nGradebook for: {class_obj.name}")
        print(f"  {'Student':<25} {'Email':<30} {'Average':>8}")
        print(f"  {'---':<25} {'---':<30} {'---':>8}")
        for row in rows:
            print(f"  {row['name'][:24]:<25} {row['email'][:29]:<30} {row['averageScore']:>7.2f}%")
    finally:
        session.close()


def handle_export(config, args):
    """Write the class report CSV to disk."""
    engine, session = get_db_session(config)
    try:
        class_obj = require_class(session, args.class_id)
        filename, csv_text = export_class_data(session, class_obj.teacher, class_obj.id)
        output = args.output or filename
        with open(output, "w", encoding="utf-8", newline="") as f:
            f.write(csv_text)
        print(f"[OK] Exported report for {class_obj.name} to {output}")
    finally:
        session.close()
