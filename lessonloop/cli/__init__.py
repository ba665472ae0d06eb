"""
Command-line interface for LessonLoop.

Provides shared helpers and the top-level ``lessonloop`` entry point.
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from lessonloop.config import load_config
from lessonloop.database import get_engine, get_session, init_db
from lessonloop.errors import LessonLoopError

logger = logging.getLogger(__name__)


def get_db_session(config):
    """Helper to get a database engine and session.

    Uses DATABASE_URL environment variable if set, otherwise falls back to
    the SQLite path in config.
    """
    database_url = os.environ.get("DATABASE_URL")
    engine = get_engine(url=database_url) if database_url else get_engine(config["paths"]["database_file"])
    init_db(engine)
    session = get_session(engine)
    return engine, session


def build_parser():
    from lessonloop.cli.admin_commands import register_admin_commands
    from lessonloop.cli.report_commands import register_report_commands

    parser = argparse.ArgumentParser(prog="lessonloop", description="LessonLoop classroom analytics CLI.")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_admin_commands(subparsers)
    register_report_commands(subparsers)
    return parser


def main(argv=None):
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from lessonloop.cli.admin_commands import handle_create_user, handle_init, handle_serve
    from lessonloop.cli.report_commands import handle_analytics, handle_export, handle_gradebook

    handlers = {
        "init": handle_init,
        "create-user": handle_create_user,
        "serve": handle_serve,
        "analytics": handle_analytics,
        "gradebook": handle_gradebook,
        "export": handle_export,
    }

    config = load_config(args.config)
    try:
        handlers[args.command](config, args)
    except LessonLoopError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0
