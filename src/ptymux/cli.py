"""Command-line interface for ptymux.

Provides the main entry point for running the relay server and for
checking what the server would launch and offer to remote consumers.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="ptymux",
        description="Pseudo-terminal session multiplexer and WebSocket relay",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/ptymux.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the WebSocket relay server")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address (overrides config)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (overrides config)")

    subparsers.add_parser("locate", help="Print the path of the binary sessions would launch")
    subparsers.add_parser("projects", help="List the project directories offered to remote clients")

    return parser.parse_args(argv)


def _serve(settings, args) -> None:
    import uvicorn

    from ptymux.server.app import create_app

    server = settings.server
    if args.host:
        server.host = args.host
    if args.port:
        server.port = args.port

    app = create_app(settings)
    logger.info("Local:    http://localhost:%d", server.port)
    logger.info("Network:  http://%s:%d", server.host, server.port)
    logger.info("Projects: %s", server.projects_dir)
    uvicorn.run(app, host=server.host, port=server.port)


async def _locate(settings) -> int:
    from ptymux.session.locator import BinaryLocator

    locator = BinaryLocator.from_config(settings.locator)
    path = await locator.find()
    if path is None:
        print(f"{locator.binary_name}: NOT FOUND", file=sys.stderr)
        return 1
    print(path)
    return 0


def _projects(settings) -> int:
    from ptymux.server.projects import list_projects

    entries = list_projects(settings.server.projects_dir)
    if not entries:
        print(f"No projects in {settings.server.projects_dir}", file=sys.stderr)
        return 1
    for entry in entries:
        print(f"{entry.name}\t{entry.path}")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the ptymux CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from ptymux.config.settings import load_settings
    from ptymux.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting relay server")
        _serve(settings, args)

    elif args.command == "locate":
        sys.exit(asyncio.run(_locate(settings)))

    elif args.command == "projects":
        sys.exit(_projects(settings))


if __name__ == "__main__":
    main()
