"""
Command-line interface for Folio.

Provides the `folio` command with the following subcommands:
- init-db: Create the database tables
- create-user: Register an admin account
- serve: Run the web application
- cv: Write the HTML CV of a portfolio owner to a file
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import ConfigError, load_config
from .errors import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_SUCCESS,
    FolioError,
)
from .logging_config import configure_logging, resolve_log_level

logger = logging.getLogger(__name__)


def init_db_command(args: argparse.Namespace) -> int:
    """
    Execute the init-db command.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code.
    """
    from .web import create_app

    app = create_app(args._config)
    try:
        print(f"Database ready: {app.config['SQLALCHEMY_DATABASE_URI']}")
    finally:
        app.extensions["folio"].shutdown()
    return EXIT_SUCCESS


def create_user_command(args: argparse.Namespace) -> int:
    """
    Execute the create-user command.

    Prompts for the password when --password is not given.
    """
    from .web import create_app

    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Confirm password: "):
            print("Error: passwords do not match")
            return EXIT_ERROR

    app = create_app(args._config)
    try:
        with app.app_context():
            user = app.extensions["folio"].auth.create_user(args.email, password)
            print(f"Created user {user.email} ({user.id})")
    finally:
        app.extensions["folio"].shutdown()
    return EXIT_SUCCESS


def serve_command(args: argparse.Namespace) -> int:
    """Execute the serve command (start web server)."""
    from .web import run_server

    run_server(
        args._config,
        host=args.host,
        port=args.port,
        debug=True if args.server_debug else None,
        allow_unsafe_bind=args.allow_unsafe_bind,
    )
    return EXIT_SUCCESS


def cv_command(args: argparse.Namespace) -> int:
    """
    Execute the cv command.

    Writes to --output, or prints to stdout when no output file is given.
    """
    from .cv_document import collect_cv_data, render_cv, write_cv
    from .web import create_app

    config = args._config
    app = create_app(config)
    services = app.extensions["folio"]
    try:
        with app.app_context():
            user_id = args.user_id or services.aggregator.resolve_owner()
            if not user_id:
                print("Error: no portfolio owner found (create a profile or pass --user-id)")
                return EXIT_ERROR
            html = render_cv(collect_cv_data(services.aggregator, user_id), config.public.locale)
    finally:
        services.shutdown()

    if args.output:
        path = write_cv(html, Path(args.output))
        print(f"CV written: {path}")
    else:
        sys.stdout.write(html)
    return EXIT_SUCCESS


def create_parser() -> argparse.ArgumentParser:
    """
    Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="folio",
        description="Manage and publish a personal portfolio.",
        epilog="Example: folio create-user me@example.com && folio serve",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"folio {__version__}"
    )

    # Global options
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output (INFO level logging)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output (DEBUG level logging)"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output except errors"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        dest="config_file",
        help="Path to config file (default: folio.toml)"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands"
    )

    init_parser = subparsers.add_parser(
        "init-db",
        help="Create the database tables",
        description="Create all tables in the configured database (safe to re-run)."
    )
    init_parser.set_defaults(func=init_db_command)

    user_parser = subparsers.add_parser(
        "create-user",
        help="Register an admin account",
        description="Create a login for the admin area."
    )
    user_parser.add_argument("email", type=str, help="Email address used to log in")
    user_parser.add_argument(
        "--password", "-p",
        type=str,
        help="Password (prompted for when omitted)"
    )
    user_parser.set_defaults(func=create_user_command)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the web application",
        description="Start the development web server."
    )
    serve_parser.add_argument("--host", type=str, help="Host to bind to (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, help="Port to listen on (default: 5000)")
    serve_parser.add_argument(
        "--server-debug",
        action="store_true",
        help="Run Flask in debug mode (auto-reload, debugger)"
    )
    serve_parser.add_argument(
        "--i-know-what-im-doing",
        action="store_true",
        dest="allow_unsafe_bind",
        help="Allow binding to a non-localhost address"
    )
    serve_parser.set_defaults(func=serve_command)

    cv_parser = subparsers.add_parser(
        "cv",
        help="Render the HTML CV",
        description="Render the HTML CV of the portfolio owner."
    )
    cv_parser.add_argument("--user-id", "-u", type=str, help="User whose CV to render (default: portfolio owner)")
    cv_parser.add_argument("--output", "-o", type=str, help="Output file (default: stdout)")
    cv_parser.set_defaults(func=cv_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv).

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(resolve_log_level(quiet=args.quiet, verbose=args.verbose, debug=args.debug))

    config_path = Path(args.config_file) if args.config_file else None
    try:
        args._config = load_config(config_path)
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        print(f"Config error: {e}")
        return EXIT_CONFIG_ERROR

    logging_config = args._config.logging
    configure_logging(
        resolve_log_level(
            quiet=args.quiet,
            verbose=args.verbose,
            debug=args.debug,
            configured=logging_config.level,
        ),
        log_file=Path(logging_config.log_file) if logging_config.log_file else None,
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_SUCCESS

    try:
        return args.func(args)
    except FolioError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        return e.exit_code


def main_cli() -> None:
    """
    CLI entry point for setuptools console_scripts.

    Calls main() and exits with the returned code.
    """
    sys.exit(main())


if __name__ == "__main__":
    main_cli()
