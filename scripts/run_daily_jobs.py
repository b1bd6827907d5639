#!/usr/bin/env python3
"""
Run the scheduled jobs of the lease payment engine and print a JSON report.

Jobs:
  invoices   -- monthly rent invoices for every billable lease
  reminders  -- courtesy / deadline / overdue reminders and escalation
  all        -- invoices, then reminders

Both jobs are safe to re-run: invoices are unique per (lease, month) and
reminders per (lease, type, day).

Usage:
    python3 scripts/run_daily_jobs.py [--job all] [--as-of YYYY-MM-DD] [options]

Examples:
    # Today's run against the configured database
    python3 scripts/run_daily_jobs.py

    # Replay the 11th of March against a local SQLite file
    python3 scripts/run_daily_jobs.py --job reminders --as-of 2024-03-11 \\
        --database-url sqlite:///rental.db --create-tables

Exit status: 0 when every job completed (items succeeded or were
skipped), 2 when a job failed or some items failed, 1 on a configuration
or database error.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime, time, timezone
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the rent invoice and payment reminder jobs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--job",
        choices=("invoices", "reminders", "all"),
        default="all",
        help="Which job to run (default: all).",
    )
    parser.add_argument(
        "--as-of",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Business date to run for (YYYY-MM-DD). Default: today (UTC).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL. Default: DATABASE_URL env or the settings file.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML file. Default: RENTAL_ENGINE_CONFIG env or packaged defaults.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for the structured JSON logs on stderr (default: from settings).",
    )
    return parser.parse_args(argv)


def _run_at(as_of: date | None) -> datetime | None:
    if as_of is None:
        return None
    return datetime.combine(as_of, time(6, 0), tzinfo=timezone.utc)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from rental_batch.domain.types import BatchJobStatus
    from rental_batch.orchestrator import DailyJobOrchestrator
    from rental_config import get_active_settings
    from rental_kernel.db.engine import init_engine_from_url, session_scope
    from rental_kernel.logging_config import configure_logging
    from rental_modules._orm_registry import create_all_tables, import_all_orm_models

    try:
        settings = get_active_settings(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1
    if args.database_url:
        settings = settings.with_database_url(args.database_url)

    level_name = (args.log_level or settings.log_level).upper()
    configure_logging(level=getattr(logging, level_name, logging.INFO))

    try:
        import_all_orm_models()
        init_engine_from_url(settings.database_url)
        if args.create_tables:
            create_all_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    now = _run_at(args.as_of)
    report: dict[str, object] = {
        "as_of": (args.as_of or datetime.now(timezone.utc).date()).isoformat(),
    }
    incomplete = False

    with session_scope() as session:
        orchestrator = DailyJobOrchestrator.from_session(session, settings=settings)
        if args.job in ("invoices", "all"):
            invoices = orchestrator.run_monthly_invoice_generation(now)
            report["invoices"] = invoices.to_dict()
            incomplete |= invoices.status is not BatchJobStatus.COMPLETED
        if args.job in ("reminders", "all"):
            reminders = orchestrator.run_payment_reminders(now)
            report["reminders"] = reminders.to_dict()
            incomplete |= reminders.status is not BatchJobStatus.COMPLETED

    print(json.dumps(report, indent=2))
    return 2 if incomplete else 0


if __name__ == "__main__":
    sys.exit(main())
