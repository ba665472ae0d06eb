"""
Setup and administration CLI commands.
"""

import os

from lessonloop.cli import get_db_session
from lessonloop.config import save_config
from lessonloop.errors import ValidationFailure
from lessonloop.users import create_user


def register_admin_commands(subparsers):
    """Register setup-related subcommands."""

    # init
    p = subparsers.add_parser("init", help="Write config.yaml and create the database tables.")
    p.add_argument("--force", action="store_true", help="Overwrite an existing config.yaml.")

    # create-user
    p = subparsers.add_parser("create-user", help="Create a teacher or student account.")
    p.add_argument("--name", required=True, help="Display name.")
    p.add_argument("--email", required=True, help="Email address.")
    p.add_argument("--password", required=True, help="Password (at least 8 characters).")
    p.add_argument("--role", default="Teacher", choices=["Teacher", "Student"], help="Account role.")

    # serve
    p = subparsers.add_parser("serve", help="Run the development API server.")
    p.add_argument("--host", default="127.0.0.1", help="Bind address.")
    p.add_argument("--port", type=int, default=5000, help="Port.")
    p.add_argument("--debug", action="store_true", help="Enable Flask debug mode.")


def handle_init(config, args):
    """Write the effective config to disk and create tables."""
    if os.path.exists(args.config) and not args.force:
        print(f"{args.config} already exists (use --force to overwrite).")
    else:
        save_config(config, args.config)
        print(f"[OK] Wrote {args.config}")

    engine, session = get_db_session(config)
    session.close()
    print(f"[OK] Database ready: {config['paths']['database_file']}")


def handle_create_user(config, args):
    """Create an account directly, bypassing the teacher registration code."""
    if len(args.password) < 8:
        raise ValidationFailure("Password must be at least 8 characters")
    engine, session = get_db_session(config)
    try:
        user = create_user(session, args.name, args.email, password=args.password, role=args.role)
        print(f"[OK] Created {user.role} {user.email} (id {user.id})")
    finally:
        session.close()


def handle_serve(config, args):
    from lessonloop.web.app import create_app

    app = create_app(config)
    app.run(host=args.host, port=args.port, debug=args.debug)
