"""Admin CLI: create, inspect, edit, void and manually grade wagers."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table
from sqlalchemy import Engine

from .config import Settings, load_settings
from .exceptions import (
    ConfigError,
    JournalError,
    RepositoryError,
    WagerError,
    WagerValidationError,
)
from .journal import JournalWriter
from .log_setup import setup_logger
from .wagers.db import create_db_engine, create_session_factory, init_schema
from .wagers.models import WAGER_STATUSES, Wager, WagerPage
from .wagers.repository import WagerRepository
from .wagers.service import WagerAdminService
from .weather.nws import NWSClient


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse admin CLI arguments."""
    parser = argparse.ArgumentParser(description="Administer weather wagers.")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a wager from a JSON payload.")
    create.add_argument(
        "--input-json",
        required=True,
        help="Path to a JSON file with the wager payload, or '-' for stdin.",
    )

    get = sub.add_parser("get", help="Show one wager.")
    get.add_argument("wager_id")

    list_cmd = sub.add_parser("list", help="List wagers newest first.")
    list_cmd.add_argument("--status", choices=WAGER_STATUSES, default=None)
    list_cmd.add_argument("--limit", type=int, default=None)
    list_cmd.add_argument("--cursor", type=int, default=0)

    update = sub.add_parser("update", help="Edit an open wager from a JSON patch.")
    update.add_argument("wager_id")
    update.add_argument(
        "--input-json",
        required=True,
        help="Path to a JSON file with the patch, or '-' for stdin.",
    )

    delete = sub.add_parser("delete", help="Delete an open wager.")
    delete.add_argument("wager_id")

    void = sub.add_parser("void", help="Void an open or locked wager.")
    void.add_argument("wager_id")
    void.add_argument("--reason", required=True)

    grade = sub.add_parser("grade", help="Manually grade a wager.")
    grade.add_argument("wager_id")
    grade.add_argument("--outcome", required=True, help="Winning outcome label.")
    grade.add_argument("--observed", type=float, required=True, help="Observed value.")
    grade.add_argument(
        "--observed-b",
        type=float,
        default=None,
        help="Observed value at location B (pointspread only).",
    )

    sub.add_parser("reconcile", help="Rebuild secondary indices from wager records.")

    parser.add_argument("--json", action="store_true", help="Print results as JSON.")
    return parser.parse_args(argv)


def _read_payload(source: str) -> Any:
    try:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        raise WagerValidationError([f"Cannot read {source}: {exc}"]) from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise WagerValidationError([f"Invalid JSON: {exc}"]) from exc


def _print_wager(console: Console, wager: Wager, as_json: bool) -> None:
    if as_json:
        console.print_json(wager.model_dump_json())
        return

    table = Table(title=f"Wager {wager.id}", show_header=False)
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    for key, value in wager.model_dump(mode="json").items():
        if value is None:
            continue
        rendered = value if isinstance(value, str) else json.dumps(value)
        table.add_row(key, rendered)
    console.print(table)


def _print_page(console: Console, page: WagerPage, as_json: bool) -> None:
    if as_json:
        console.print_json(page.model_dump_json())
        return

    console.print(f"total={page.total} cursor={page.cursor} next_cursor={page.next_cursor}")
    if not page.wagers:
        console.print("No wagers found.")
        return

    table = Table(title="Wagers")
    table.add_column("ID", overflow="fold")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Metric")
    table.add_column("Target Date")
    table.add_column("Lock Time (UTC)")
    table.add_column("Title", overflow="fold")
    for wager in page.wagers:
        table.add_row(
            wager.id,
            wager.kind,
            wager.status,
            wager.metric,
            wager.target_date.isoformat(),
            wager.lock_time.isoformat(),
            wager.title,
        )
    console.print(table)


def _run_command(
    args: argparse.Namespace,
    service: WagerAdminService,
    console: Console,
) -> dict[str, Any]:
    """Dispatch one subcommand and return the payload to journal."""
    command = args.command
    if command == "create":
        wager = service.create(_read_payload(args.input_json))
        _print_wager(console, wager, args.json)
        return {"wager_id": wager.id, "kind": wager.kind}
    if command == "get":
        wager = service.get(args.wager_id)
        _print_wager(console, wager, args.json)
        return {"wager_id": wager.id}
    if command == "list":
        page = service.list(status=args.status, limit=args.limit, cursor=args.cursor)
        _print_page(console, page, args.json)
        return {"status": args.status, "count": len(page.wagers), "total": page.total}
    if command == "update":
        wager = service.update(args.wager_id, _read_payload(args.input_json))
        _print_wager(console, wager, args.json)
        return {"wager_id": wager.id}
    if command == "delete":
        service.delete(args.wager_id)
        console.print(f"Deleted {args.wager_id}")
        return {"wager_id": args.wager_id}
    if command == "void":
        wager = service.void(args.wager_id, args.reason)
        _print_wager(console, wager, args.json)
        return {"wager_id": wager.id, "void_reason": wager.void_reason}
    if command == "grade":
        wager = service.grade(
            args.wager_id,
            winning_outcome=args.outcome,
            observed_value=args.observed,
            observed_value_b=args.observed_b,
        )
        _print_wager(console, wager, args.json)
        return {"wager_id": wager.id, "winning_outcome": wager.winning_outcome}
    if command == "reconcile":
        report = service.reconcile()
        if args.json:
            console.print_json(report.model_dump_json())
        else:
            console.print(
                f"Reconciled indices scanned={report.scanned} added={report.added} "
                f"removed={report.removed} fixed={report.fixed}"
            )
        return report.model_dump()
    raise ValueError(f"Unknown command: {command}")


def _build_service(
    settings: Settings,
    engine: Engine,
    resolver: NWSClient,
    logger: logging.Logger,
) -> WagerAdminService:
    init_schema(engine)
    repository = WagerRepository(
        create_session_factory(engine),
        resolver=resolver,
        logger=logger,
        default_limit=settings.wager_list_default_limit,
        max_limit=settings.wager_list_max_limit,
    )
    return WagerAdminService(repository, logger)


def main(argv: list[str] | None = None) -> int:
    """Run one admin command."""
    args = parse_args(argv)
    logger = setup_logger()
    console = Console()
    session_id = uuid.uuid4().hex[:12]
    event_type = f"admin_{args.command}"

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.error("Configuration failure: %s", exc)
        return 2

    try:
        journal = JournalWriter(journal_dir=settings.journal_dir, session_id=session_id)
    except JournalError as exc:
        logger.error("Failed to initialize admin journal: %s", exc)
        return 3

    exit_code = 0
    outcome: dict[str, Any] = {}
    engine: Engine | None = None
    try:
        engine = create_db_engine(settings)
        with NWSClient(settings=settings, logger=logger) as nws:
            service = _build_service(settings, engine, nws, logger)
            outcome = _run_command(args, service, console)
    except ConfigError as exc:
        exit_code = 2
        outcome = {"error": str(exc)}
        logger.error("Configuration failure: %s", exc)
    except WagerValidationError as exc:
        exit_code = 4
        outcome = {"error": str(exc), "errors": exc.errors}
        logger.error("Validation failed: %s", "; ".join(exc.errors))
    except WagerError as exc:
        exit_code = 4
        outcome = {"error": str(exc), "type": type(exc).__name__}
        logger.error("Admin %s failed: %s", args.command, exc)
    except RepositoryError as exc:
        exit_code = 5
        outcome = {"error": str(exc), "type": type(exc).__name__}
        logger.error("Wager store failure: %s", exc)
    except Exception as exc:  # pragma: no cover - defensive catch for CLI runtime
        exit_code = 99
        outcome = {"error": str(exc), "type": type(exc).__name__}
        logger.exception("Unexpected admin CLI failure: %s", exc)
    finally:
        if engine is not None:
            engine.dispose()
        try:
            journal.write_event(
                event_type,
                payload={"exit_code": exit_code, **outcome},
                metadata={"session_id": session_id},
            )
        except JournalError:
            logger.error("Failed to write %s event.", event_type)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
