"""CLI entrypoint: schema setup, serving, and workflow inspection."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from deliverable_approval import __version__
from deliverable_approval.config import ApprovalSettings
from deliverable_approval.db.session import build_engine, build_session_factory, init_db
from deliverable_approval.engine.controller import WorkflowController
from deliverable_approval.engine.errors import ApprovalError
from deliverable_approval.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="approval",
        description="Deliverable approval workflow engine",
    )
    parser.add_argument(
        "--version", action="version", version=f"deliverable-approval {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables that do not exist yet")

    serve = subparsers.add_parser("serve", help="Run the REST API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")
    serve.add_argument(
        "--reload", action="store_true", help="Reload on code changes (development only)"
    )

    show = subparsers.add_parser(
        "show", help="Print the hydrated approval workflow of a deliverable as JSON"
    )
    show.add_argument("--deliverable-id", required=True, help="Deliverable identifier")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ApprovalSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "init-db":
        engine = build_engine(settings)
        try:
            init_db(engine)
        finally:
            engine.dispose()
        print("Database schema ready")
        return 0

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "deliverable_approval.server.app:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_config=None,
        )
        return 0

    if args.command == "show":
        engine = build_engine(settings)
        try:
            controller = WorkflowController(build_session_factory(engine), settings)
            view = controller.get_workflow(args.deliverable_id)
        except ApprovalError as e:
            logger.error("Lookup failed", extra={"error_code": e.code})
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        finally:
            engine.dispose()

        if view is None:
            print(f"No approval workflow for deliverable {args.deliverable_id}")
            return 0
        print(json.dumps(view.model_dump(mode="json"), indent=2, ensure_ascii=False))
        return 0

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
