from datetime import date
from pathlib import Path

import pytest

from database.db_manager import DatabaseManager
from database.recurring_dao import RecurringExpenseDAO, RecurringIncomeDAO
from database.transaction_dao import ExpenseDAO, IncomeDAO
from services.processing_service import ProcessingService
from services.recurring_service import RecurringService


@pytest.fixture()
def db(tmp_path: Path):
    db = DatabaseManager.open(db_path=str(tmp_path / "test.db"))
    yield db
    db.close()


@pytest.fixture()
def recurring_expense_dao(db):
    return RecurringExpenseDAO(db)


@pytest.fixture()
def recurring_income_dao(db):
    return RecurringIncomeDAO(db)


@pytest.fixture()
def expense_dao(db):
    return ExpenseDAO(db)


@pytest.fixture()
def income_dao(db):
    return IncomeDAO(db)


@pytest.fixture()
def service(recurring_expense_dao, recurring_income_dao):
    return RecurringService(recurring_expense_dao, recurring_income_dao)


@pytest.fixture()
def processor(db, recurring_expense_dao, recurring_income_dao, expense_dao, income_dao):
    return ProcessingService(
        db,
        recurring_expense_dao,
        recurring_income_dao,
        expense_dao,
        income_dao,
        clock=lambda: date(2025, 6, 15),
    )


def make_expense(service, owner="user1", **overrides):
    fields = {
        "amount": 15.99,
        "description": "Streaming",
        "category": "Subscriptions",
        "frequency": "monthly",
        "anchor_date": "2025-01-31",
    }
    fields.update(overrides)
    return service.create_expense(owner, **fields)


def make_income(service, owner="user1", **overrides):
    fields = {
        "amount": 2500.0,
        "source": "Salary",
        "frequency": "monthly",
        "anchor_date": "2025-01-01",
    }
    fields.update(overrides)
    return service.create_income(owner, **fields)
