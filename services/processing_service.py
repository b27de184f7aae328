import logging
import threading
from datetime import date
from typing import Callable

from database.db_manager import DatabaseManager
from database.recurring_dao import RecurringExpenseDAO, RecurringIncomeDAO
from database.transaction_dao import ExpenseDAO, IncomeDAO
from models.process_result import ProcessResult
from utils.date_helpers import format_date, parse_date, today
from utils.recurrence import next_date

logger = logging.getLogger(__name__)

# Created, nothing to do, or failed for one template
CREATED, SKIPPED, FAILED = "created", "skipped", "failed"


class ProcessingService:
    """System-wide sweep that turns due templates into expense/income records.

    Each template is handled in its own store transaction: the record insert
    and the template advance commit together or not at all, and the advance
    is conditional on next_occurrence still holding the value that was read.
    Re-running for the same date therefore never duplicates a record, and a
    failed template simply stays due for the next run.
    """

    def __init__(
        self,
        db: DatabaseManager,
        recurring_expense_dao: RecurringExpenseDAO,
        recurring_income_dao: RecurringIncomeDAO,
        expense_dao: ExpenseDAO,
        income_dao: IncomeDAO,
        clock: Callable[[], date] = today,
    ):
        self._db = db
        self._expense_templates = recurring_expense_dao
        self._income_templates = recurring_income_dao
        self._expenses = expense_dao
        self._incomes = income_dao
        self._clock = clock

    def process_all(
        self,
        as_of: date | None = None,
        stop_event: threading.Event | None = None,
    ) -> ProcessResult:
        """
        Generate every occurrence due on or before as_of (default: today).
        Raises only when the due templates cannot be read at all.
        """
        ref = as_of or self._clock()
        ref_str = format_date(ref)
        logger.info("Processing recurring transactions as of %s", ref_str)

        result = ProcessResult()
        due_expenses = self._expense_templates.get_due(ref_str)
        due_incomes = self._income_templates.get_due(ref_str)
        result.total_processed = len(due_expenses) + len(due_incomes)

        result.expenses_created = self._process_collection(
            due_expenses, self._expense_templates, self._expenses, ref, stop_event,
        )
        result.incomes_created = self._process_collection(
            due_incomes, self._income_templates, self._incomes, ref, stop_event,
        )

        if stop_event is not None and stop_event.is_set():
            logger.info("Recurring sweep as of %s interrupted; not recorded as complete", ref_str)
        else:
            self._db.set_setting("last_processed_at", ref_str)
        logger.info(
            "Recurring sweep done: %d expense(s), %d income(s) created from %d due template(s)",
            result.expenses_created, result.incomes_created, result.total_processed,
        )
        return result

    def _process_collection(self, templates, template_dao, record_dao, ref, stop_event) -> int:
        created = 0
        for template in templates:
            if stop_event is not None and stop_event.is_set():
                logger.info(
                    "Stop requested; leaving remaining recurring %s templates due",
                    template.kind,
                )
                break
            if self._process_one(template, template_dao, record_dao, ref) == CREATED:
                created += 1
        return created

    def _process_one(self, template, template_dao, record_dao, ref: date) -> str:
        expiry = parse_date(template.expiry_date) if template.expiry_date else None
        try:
            with self._db.transaction() as conn:
                if expiry is not None and expiry < ref:
                    if template_dao.deactivate_if_unchanged(conn, template.id, template.next_occurrence):
                        logger.info(
                            "Recurring %s %s expired on %s; deactivated",
                            template.kind, template.id, template.expiry_date,
                        )
                    return SKIPPED

                occurrence = parse_date(template.next_occurrence)
                candidate = next_date(occurrence, template.frequency)
                keep_active = expiry is None or candidate <= expiry

                if not template_dao.claim_occurrence(
                    conn, template.id, template.next_occurrence,
                    format_date(candidate), keep_active,
                ):
                    logger.debug(
                        "Recurring %s %s already advanced; skipping", template.kind, template.id,
                    )
                    return SKIPPED

                record_dao.insert_generated(conn, template, template.next_occurrence)
        except Exception:
            logger.exception(
                "Failed to process recurring %s %s; it stays due", template.kind, template.id,
            )
            return FAILED

        if not keep_active:
            logger.info(
                "Recurring %s %s generated its last occurrence (%s)",
                template.kind, template.id, template.next_occurrence,
            )
        return CREATED

    def last_processed_at(self) -> str:
        """The as_of date of the last completed sweep, '' if none."""
        return self._db.get_setting("last_processed_at", "")
