"""CLI entry point for the periodic overdue sweep.

Marks every pending payment whose due date has passed as overdue, accruing
interest and penalty. Meant to run once a day from cron. Missing tables are
created on first run.

Usage:
    python -m condo_finance.cli.overdue_sweep
    python -m condo_finance.cli.overdue_sweep --as-of 2024-01-20 --condominium 3

Exit Codes:
    0 - Success: sweep finished (payments that changed meanwhile are skipped)
    1 - Failure: invalid arguments or store error

Logging:
    LOG_LEVEL level logs to both stdout and the configured log file
"""

import argparse
import logging
import sys
from datetime import date
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from condo_finance.config import get_settings
from condo_finance.services.logging import setup_server_logging

logger = logging.getLogger(__name__)


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mark past-due pending payments as overdue")
    parser.add_argument(
        "--as-of",
        type=_parse_day,
        default=None,
        help="Reference day (YYYY-MM-DD, default: today)",
    )
    parser.add_argument(
        "--condominium",
        type=int,
        default=None,
        help="Only sweep this condominium ID",
    )
    parser.add_argument("--log-file", default=None, help="Log file path (default: from settings)")
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> int:
    """
    Main entry point for the overdue sweep CLI.

    Args:
        argv: Command line arguments (default: sys.argv[1:])
        session_factory: Session factory (default: condo_finance.services.SessionLocal)

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as e:
        return 0 if e.code == 0 else 1

    settings = get_settings()
    setup_server_logging(settings, log_file=args.log_file)

    try:
        from condo_finance.services import SessionLocal, init_db
        from condo_finance.services.payment_service import PaymentService

        if session_factory is None:
            session_factory = SessionLocal

        db = session_factory()
        try:
            init_db(db.get_bind())
            service = PaymentService(db, settings=settings)
            result = service.run_overdue_sweep(as_of=args.as_of, condominium_id=args.condominium)
        finally:
            db.close()

        logger.info(
            f"Sweep complete as of {result.as_of}: marked={len(result.marked)} "
            f"skipped={len(result.skipped)}"
        )
        return 0

    except KeyboardInterrupt:
        logger.warning("Sweep interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Sweep failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
