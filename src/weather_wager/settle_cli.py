"""Settlement CLI: run one lock/grade/void pass over stored wagers."""

from __future__ import annotations

import argparse
import sys
import uuid

from diskcache import Cache
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .exceptions import ConfigError, JournalError, RepositoryError, RepositoryUnavailableError
from .journal import JournalWriter
from .log_setup import setup_logger
from .settlement import SettlementOrchestrator, SettlementRunSummary
from .wagers.db import create_db_engine, create_session_factory, init_schema
from .wagers.repository import WagerRepository
from .weather.nws import NWSClient
from .weather.observations import ObservationFetcher


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse settlement CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Lock due wagers, grade settled ones and void stale ones."
    )
    parser.add_argument(
        "--max-print",
        type=int,
        default=None,
        help="Number of ids/errors to print per section.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the run summary as JSON instead of tables.",
    )
    return parser.parse_args(argv)


def _print_summary(console: Console, summary: SettlementRunSummary, max_print: int) -> None:
    counts = summary.counts()
    console.print(
        f"Settlement run locked={counts['locked']} graded={counts['graded']} "
        f"voided={counts['voided']} errors={counts['errors']}"
    )

    table = Table(title="Settled Wagers")
    table.add_column("Action")
    table.add_column("Wager ID", overflow="fold")
    rows = [
        *(("locked", wager_id) for wager_id in summary.locked),
        *(("graded", wager_id) for wager_id in summary.graded),
        *(("voided", wager_id) for wager_id in summary.voided),
    ]
    if rows:
        for action, wager_id in rows[:max_print]:
            table.add_row(action, wager_id)
        console.print(table)

    if summary.errors:
        errors = Table(title="Errors")
        errors.add_column("Message", overflow="fold")
        for message in summary.errors[:max_print]:
            errors.add_row(message)
        console.print(errors)


def main(argv: list[str] | None = None) -> int:
    """Run one settlement pass."""
    args = parse_args(argv)
    logger = setup_logger()
    console = Console()
    session_id = uuid.uuid4().hex[:12]
    journal: JournalWriter | None = None

    if args.max_print is not None and args.max_print <= 0:
        logger.error("--max-print must be > 0 when provided.")
        return 2

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.error("Configuration failure: %s", exc)
        return 2

    try:
        journal = JournalWriter(journal_dir=settings.journal_dir, session_id=session_id)
        journal.write_event(
            event_type="settlement_startup",
            payload={"config": settings.safe_summary()},
            metadata={"session_id": session_id},
        )
    except JournalError as exc:
        logger.error("Failed to initialize settlement journal: %s", exc)
        return 3

    exit_code = 0
    engine = None
    try:
        engine = create_db_engine(settings)
        init_schema(engine)
        session_factory = create_session_factory(engine)

        with NWSClient(settings=settings, logger=logger) as nws, Cache(
            str(settings.observation_cache_dir)
        ) as cache:
            repository = WagerRepository(
                session_factory,
                resolver=nws,
                logger=logger,
                default_limit=settings.wager_list_default_limit,
                max_limit=settings.wager_list_max_limit,
            )
            fetcher = ObservationFetcher(nws, cache, settings=settings, logger=logger)
            orchestrator = SettlementOrchestrator(repository, fetcher, settings, logger)
            summary = orchestrator.run()

        journal.write_event(
            "settlement_run_summary",
            payload=summary.model_dump(mode="json"),
            metadata={"session_id": session_id},
        )

        if args.json:
            console.print_json(summary.model_dump_json())
        else:
            max_print = args.max_print or settings.settle_max_print
            _print_summary(console, summary, max_print=max_print)
    except ConfigError as exc:
        exit_code = 2
        logger.error("Configuration failure: %s", exc)
    except (RepositoryUnavailableError, RepositoryError, JournalError) as exc:
        exit_code = 5
        logger.error("Settlement run failure: %s", exc)
        try:
            journal.write_event(
                "settlement_run_failure",
                payload={"error": str(exc), "type": type(exc).__name__},
                metadata={"session_id": session_id},
            )
        except JournalError:
            logger.error("Failed to write settlement_run_failure event.")
    except Exception as exc:  # pragma: no cover - defensive catch for CLI runtime
        exit_code = 99
        logger.exception("Unexpected settlement CLI failure: %s", exc)
        try:
            journal.write_event(
                "settlement_run_failure_unhandled",
                payload={"error": str(exc), "type": type(exc).__name__},
                metadata={"session_id": session_id},
            )
        except JournalError:
            logger.error("Failed to write settlement_run_failure_unhandled event.")
    finally:
        if engine is not None:
            engine.dispose()
        if journal is not None:
            try:
                journal.write_event(
                    "settlement_shutdown",
                    payload={"exit_code": exit_code},
                    metadata={"session_id": session_id},
                )
            except JournalError:
                logger.error("Failed to write settlement_shutdown event.")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
