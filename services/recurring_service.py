import logging
from datetime import date
from database.recurring_dao import RecurringExpenseDAO, RecurringIncomeDAO
from models.recurring_template import RecurringExpense, RecurringIncome
from utils.constants import (
    EXPENSE_UPDATABLE_FIELDS,
    FREQUENCIES,
    IMMUTABLE_FIELDS,
    INCOME_UPDATABLE_FIELDS,
)
from utils.date_helpers import coerce_date, format_date, parse_date
from utils.errors import InvalidInput, NotFound
from utils.recurrence import iter_occurrences

logger = logging.getLogger(__name__)


class RecurringService:
    """Owner-scoped management of recurring expense and income templates."""

    def __init__(self, expense_dao: RecurringExpenseDAO, income_dao: RecurringIncomeDAO):
        self._expense_dao = expense_dao
        self._income_dao = income_dao

    # ── Expenses ─────────────────────────────────────────────────────────────

    def create_expense(
        self,
        owner_id: str,
        amount: float,
        description: str,
        category: str,
        frequency: str,
        anchor_date,
        expiry_date=None,
    ) -> RecurringExpense:
        amount = self._validate_amount(amount)
        description = self._validate_text("Description", description)
        category = self._validate_text("Category", category)
        self._validate_frequency(frequency)
        anchor = self._validate_date("Start date", anchor_date)
        expiry = self._validate_expiry(expiry_date, anchor)
        template = self._expense_dao.create(
            owner_id=owner_id, amount=amount, description=description,
            category=category, frequency=frequency,
            anchor_date=format_date(anchor),
            expiry_date=format_date(expiry) if expiry else None,
        )
        logger.info("Created recurring expense %s for owner %s", template.id, owner_id)
        return template

    def list_expenses(self, owner_id: str) -> list[RecurringExpense]:
        return self._expense_dao.get_by_owner(owner_id)

    def get_expense(self, owner_id: str, template_id: int) -> RecurringExpense:
        return self._get_owned(self._expense_dao, "expense", owner_id, template_id)

    def update_expense(self, owner_id: str, template_id: int, /, **changes) -> RecurringExpense:
        return self._update(
            self._expense_dao, "expense", EXPENSE_UPDATABLE_FIELDS,
            owner_id, template_id, changes,
        )

    def set_expense_active(self, owner_id: str, template_id: int, is_active: bool) -> RecurringExpense:
        return self.update_expense(owner_id, template_id, is_active=is_active)

    def delete_expense(self, owner_id: str, template_id: int):
        self._delete(self._expense_dao, "expense", owner_id, template_id)

    # ── Incomes ──────────────────────────────────────────────────────────────

    def create_income(
        self,
        owner_id: str,
        amount: float,
        source: str,
        frequency: str,
        anchor_date,
        expiry_date=None,
    ) -> RecurringIncome:
        amount = self._validate_amount(amount)
        source = self._validate_text("Source", source)
        self._validate_frequency(frequency)
        anchor = self._validate_date("Start date", anchor_date)
        expiry = self._validate_expiry(expiry_date, anchor)
        template = self._income_dao.create(
            owner_id=owner_id, amount=amount, source=source,
            frequency=frequency, anchor_date=format_date(anchor),
            expiry_date=format_date(expiry) if expiry else None,
        )
        logger.info("Created recurring income %s for owner %s", template.id, owner_id)
        return template

    def list_incomes(self, owner_id: str) -> list[RecurringIncome]:
        return self._income_dao.get_by_owner(owner_id)

    def get_income(self, owner_id: str, template_id: int) -> RecurringIncome:
        return self._get_owned(self._income_dao, "income", owner_id, template_id)

    def update_income(self, owner_id: str, template_id: int, /, **changes) -> RecurringIncome:
        return self._update(
            self._income_dao, "income", INCOME_UPDATABLE_FIELDS,
            owner_id, template_id, changes,
        )

    def set_income_active(self, owner_id: str, template_id: int, is_active: bool) -> RecurringIncome:
        return self.update_income(owner_id, template_id, is_active=is_active)

    def delete_income(self, owner_id: str, template_id: int):
        self._delete(self._income_dao, "income", owner_id, template_id)

    # ── Projection ───────────────────────────────────────────────────────────

    def project(self, owner_id: str, start_date: date, end_date: date) -> list[dict]:
        """
        Return [{date, amount, type, template_id, label}] for every occurrence
        of the owner's active templates falling within [start_date, end_date].
        Occurrences are walked from each template's stored next_occurrence,
        exactly as the batch processor would generate them.
        """
        result = []
        for dao in (self._expense_dao, self._income_dao):
            for template in dao.get_active_by_owner(owner_id):
                expiry = parse_date(template.expiry_date) if template.expiry_date else None
                for d in iter_occurrences(
                    parse_date(template.next_occurrence), template.frequency,
                    end_date, expiry,
                ):
                    if d < start_date:
                        continue
                    result.append({
                        "date": d,
                        "amount": template.amount,
                        "type": template.kind,
                        "template_id": template.id,
                        "label": template.label,
                    })
        result.sort(key=lambda p: (p["date"], p["type"], p["template_id"]))
        return result

    # ── Helpers ──────────────────────────────────────────────────────────────

    @staticmethod
    def _get_owned(dao, kind: str, owner_id: str, template_id: int):
        template = dao.get_for_owner(owner_id, template_id)
        if template is None:
            raise NotFound(kind, template_id)
        return template

    def _update(self, dao, kind, updatable, owner_id, template_id, changes: dict):
        current = self._get_owned(dao, kind, owner_id, template_id)

        immutable = IMMUTABLE_FIELDS & set(changes)
        if immutable:
            raise InvalidInput(f"Cannot change {', '.join(sorted(immutable))}.")
        unknown = set(changes) - updatable
        if unknown:
            raise InvalidInput(f"Unknown field(s): {', '.join(sorted(unknown))}.")

        clean = {}
        for field, value in changes.items():
            if field == "amount":
                clean[field] = self._validate_amount(value)
            elif field == "frequency":
                self._validate_frequency(value)
                clean[field] = value
            elif field == "expiry_date":
                expiry = self._validate_expiry(value, parse_date(current.anchor_date))
                clean[field] = format_date(expiry) if expiry else None
            elif field == "is_active":
                clean[field] = bool(value)
            else:
                clean[field] = self._validate_text(field.capitalize(), value)

        if not dao.update(owner_id, template_id, clean):
            raise NotFound(kind, template_id)
        if "is_active" in clean and clean["is_active"] != current.is_active:
            logger.info(
                "%s recurring %s %s",
                "Resumed" if clean["is_active"] else "Paused", kind, template_id,
            )
        return dao.get_for_owner(owner_id, template_id)

    @staticmethod
    def _delete(dao, kind: str, owner_id: str, template_id: int):
        if not dao.delete(owner_id, template_id):
            raise NotFound(kind, template_id)
        logger.info("Deleted recurring %s %s", kind, template_id)

    @staticmethod
    def _validate_amount(amount) -> float:
        if isinstance(amount, bool):
            raise InvalidInput("Amount must be a number.")
        try:
            value = float(amount)
        except (TypeError, ValueError):
            raise InvalidInput("Amount must be a number.") from None
        if not value > 0:
            raise InvalidInput("Amount must be greater than 0.")
        return value

    @staticmethod
    def _validate_text(label: str, value) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidInput(f"{label} cannot be empty.")
        return value.strip()

    @staticmethod
    def _validate_frequency(frequency):
        if frequency not in FREQUENCIES:
            raise InvalidInput(
                f"Invalid frequency. Must be one of: {', '.join(FREQUENCIES)}."
            )

    @staticmethod
    def _validate_date(label: str, value) -> date:
        d = coerce_date(value)
        if d is None:
            raise InvalidInput(f"Invalid {label.lower()}.")
        return d

    def _validate_expiry(self, value, anchor: date) -> date | None:
        if value is None or value == "":
            return None
        expiry = self._validate_date("End date", value)
        if expiry <= anchor:
            raise InvalidInput("End date must be after start date.")
        return expiry
