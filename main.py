import argparse
import json
import logging
import os
import signal
import sys

# Ensure project root is on sys.path when run directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from database.db_manager import DatabaseManager
from database.recurring_dao import RecurringExpenseDAO, RecurringIncomeDAO
from database.transaction_dao import ExpenseDAO, IncomeDAO

from services.processing_service import ProcessingService
from services.recurring_service import RecurringService
from services.scheduler_service import RecurringScheduler

from utils.app_config import get_db_folder, get_log_level, get_run_at, load_config
from utils.constants import APP_NAME
from utils.date_helpers import parse_date

logger = logging.getLogger(__name__)


class App:
    """Wires DAOs and services over one database."""

    def __init__(self, db: DatabaseManager):
        self.db = db

        # ── DAOs ─────────────────────────────────────────────────────────────
        self.recurring_expense_dao = RecurringExpenseDAO(db)
        self.recurring_income_dao = RecurringIncomeDAO(db)
        self.expense_dao = ExpenseDAO(db)
        self.income_dao = IncomeDAO(db)

        # ── Services ─────────────────────────────────────────────────────────
        self.recurring_service = RecurringService(
            self.recurring_expense_dao, self.recurring_income_dao,
        )
        self.processing_service = ProcessingService(
            db,
            self.recurring_expense_dao,
            self.recurring_income_dao,
            self.expense_dao,
            self.income_dao,
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="budget-recurring",
        description=f"{APP_NAME}: generate expenses and incomes from recurring templates.",
    )
    parser.add_argument("--db", help="Path to the SQLite database file (overrides config).")
    parser.add_argument("--log-level", help="Logging level (overrides config).")
    sub = parser.add_subparsers(dest="command", required=True)

    process = sub.add_parser("process", help="Process due recurring transactions once.")
    process.add_argument(
        "--as-of", metavar="YYYY-MM-DD",
        help="Treat this date as today (default: the current date).",
    )

    run = sub.add_parser("run", help="Catch up once, then process daily until stopped.")
    run.add_argument("--at", metavar="HH:MM", help="Daily run time (overrides config).")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # ── Bootstrap: read config before the DB is opened ────────────────────────
    config = load_config()
    logging.basicConfig(
        level=(args.log_level or get_log_level(config)).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # ── Database ─────────────────────────────────────────────────────────────
    db = DatabaseManager.open(db_folder=get_db_folder(config), db_path=args.db)
    app = App(db)
    try:
        if args.command == "process":
            return _process(app, args)
        return _run(app, args, config)
    finally:
        db.close()


def _process(app: App, args) -> int:
    as_of = None
    if args.as_of:
        as_of = parse_date(args.as_of)
        if as_of is None:
            logger.error("Invalid --as-of date: %s", args.as_of)
            return 2
    result = app.processing_service.process_all(as_of)
    print(json.dumps(result.to_dict()))
    return 0


def _run(app: App, args, config: dict) -> int:
    try:
        scheduler = RecurringScheduler(
            app.processing_service, run_at=args.at or get_run_at(config),
        )
    except ValueError as e:
        logger.error("%s", e)
        return 2

    def _shutdown(signum, frame):
        logger.info("Received signal %s; shutting down", signum)
        scheduler.stop()

    signal.signal(signal.SIGTERM, _shutdown)

    # ── Catch up on anything missed while not running ────────────────────────
    scheduler.run_once()
    if not scheduler.wait(0):
        scheduler.start()
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
