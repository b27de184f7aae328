import dataclasses
import sqlite3
import threading
from datetime import date

import pytest

from conftest import make_expense, make_income
from services.processing_service import ProcessingService


def test_month_end_scenario_clamps_and_never_reverts(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2025-01-31")

    first = processor.process_all(date(2025, 2, 1))
    assert first.to_dict() == {"expensesCreated": 1, "incomesCreated": 0, "totalProcessed": 1}
    assert service.get_expense("user1", template.id).next_occurrence == "2025-02-28"

    processor.process_all(date(2025, 3, 1))
    assert service.get_expense("user1", template.id).next_occurrence == "2025-03-28"

    records = expense_dao.get_by_recurring_id(template.id)
    assert [r.date for r in records] == ["2025-01-31", "2025-02-28"]
    assert all(r.is_recurring for r in records)
    assert records[0].amount == 15.99
    assert records[0].description == "Streaming"
    assert records[0].category == "Subscriptions"
    assert records[0].owner_id == "user1"


def test_rerun_for_same_date_creates_nothing(service, processor, expense_dao):
    make_expense(service, anchor_date="2025-02-01")

    assert processor.process_all(date(2025, 2, 1)).expenses_created == 1
    second = processor.process_all(date(2025, 2, 1))

    assert second.expenses_created == 0
    assert second.total_processed == 0
    assert expense_dao.count() == 1


def test_stale_template_catches_up_one_occurrence_per_sweep(service, processor, expense_dao):
    template = make_expense(service, frequency="daily", anchor_date="2025-03-01")

    for _ in range(3):
        processor.process_all(date(2025, 3, 10))

    records = expense_dao.get_by_recurring_id(template.id)
    assert [r.date for r in records] == ["2025-03-01", "2025-03-02", "2025-03-03"]
    assert service.get_expense("user1", template.id).next_occurrence == "2025-03-04"


def test_future_templates_are_not_due(service, processor, expense_dao):
    make_expense(service, anchor_date="2025-07-01")

    result = processor.process_all(date(2025, 6, 30))

    assert result.total_processed == 0
    assert expense_dao.count() == 0


def test_expenses_and_incomes_are_counted_separately(service, processor, income_dao):
    make_expense(service, anchor_date="2025-01-31")
    income = make_income(service, anchor_date="2025-01-15", frequency="weekly")

    result = processor.process_all(date(2025, 2, 1))

    assert result.expenses_created == 1
    assert result.incomes_created == 1
    assert result.total_processed == 2
    records = income_dao.get_by_recurring_id(income.id)
    assert [(r.date, r.source) for r in records] == [("2025-01-15", "Salary")]
    assert service.get_income("user1", income.id).next_occurrence == "2025-01-22"


def test_sweep_covers_every_owner(service, processor, expense_dao):
    make_expense(service, owner="alice", anchor_date="2025-01-31")
    make_expense(service, owner="bob", anchor_date="2025-01-31")

    assert processor.process_all(date(2025, 2, 1)).expenses_created == 2
    assert len(expense_dao.get_by_owner("alice")) == 1
    assert len(expense_dao.get_by_owner("bob")) == 1


def test_as_of_defaults_to_clock(service, processor, expense_dao, db):
    make_expense(service, anchor_date="2025-06-15")

    assert processor.process_all().expenses_created == 1
    assert processor.last_processed_at() == "2025-06-15"


# ── Expiry ───────────────────────────────────────────────────────────────────


def test_occurrence_on_expiry_date_fires_then_deactivates(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2025-01-10", expiry_date="2025-02-10")

    processor.process_all(date(2025, 1, 10))
    mid = service.get_expense("user1", template.id)
    assert (mid.next_occurrence, mid.is_active) == ("2025-02-10", True)

    result = processor.process_all(date(2025, 2, 10))
    assert result.expenses_created == 1
    done = service.get_expense("user1", template.id)
    assert (done.next_occurrence, done.is_active) == ("2025-03-10", False)

    assert processor.process_all(date(2025, 3, 10)).total_processed == 0
    assert [r.date for r in expense_dao.get_by_recurring_id(template.id)] == [
        "2025-01-10", "2025-02-10",
    ]


def test_expired_template_is_deactivated_without_generating(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2025-01-10", expiry_date="2025-02-10")

    result = processor.process_all(date(2025, 3, 1))

    assert result.to_dict() == {"expensesCreated": 0, "incomesCreated": 0, "totalProcessed": 1}
    after = service.get_expense("user1", template.id)
    assert after.is_active is False
    assert after.next_occurrence == "2025-01-10"
    assert expense_dao.count() == 0


def test_expiry_day_missed_by_one_day_does_not_generate(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2025-01-10", expiry_date="2025-02-10")
    processor.process_all(date(2025, 1, 10))

    processor.process_all(date(2025, 2, 11))

    assert service.get_expense("user1", template.id).is_active is False
    assert [r.date for r in expense_dao.get_by_recurring_id(template.id)] == ["2025-01-10"]


# ── Pause / resume / delete ──────────────────────────────────────────────────


def test_paused_template_is_never_selected(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2024-01-31")
    service.set_expense_active("user1", template.id, False)

    result = processor.process_all(date(2030, 1, 1))

    assert result.total_processed == 0
    assert expense_dao.count() == 0


def test_resumed_template_continues_from_stored_occurrence(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2025-01-31")
    processor.process_all(date(2025, 2, 1))
    service.set_expense_active("user1", template.id, False)
    processor.process_all(date(2025, 5, 1))

    service.set_expense_active("user1", template.id, True)
    processor.process_all(date(2025, 5, 1))

    assert [r.date for r in expense_dao.get_by_recurring_id(template.id)] == [
        "2025-01-31", "2025-02-28",
    ]
    assert service.get_expense("user1", template.id).next_occurrence == "2025-03-28"


def test_deleting_template_keeps_generated_records(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2025-01-31")
    processor.process_all(date(2025, 2, 1))
    record = expense_dao.get_by_recurring_id(template.id)[0]

    service.delete_expense("user1", template.id)

    kept = expense_dao.get_by_id(record.id)
    assert kept is not None
    assert kept.recurring_id is None
    assert kept.is_recurring is True
    assert kept.date == "2025-01-31"


def test_editing_or_deleting_records_leaves_template_alone(service, processor, income_dao):
    template = make_income(service, anchor_date="2025-01-01")
    processor.process_all(date(2025, 1, 1))
    processor.process_all(date(2025, 2, 1))
    first, second = income_dao.get_by_recurring_id(template.id)

    income_dao.update(first.id, amount=1.0, source="Bonus")
    income_dao.delete(second.id)

    after = service.get_income("user1", template.id)
    assert after.amount == 2500.0
    assert after.source == "Salary"
    assert after.next_occurrence == "2025-03-01"
    assert after.generated_count == 1


# ── Failures and concurrency ─────────────────────────────────────────────────


def test_write_failure_rolls_back_and_template_stays_due(
    service, processor, expense_dao, monkeypatch,
):
    template = make_expense(service, anchor_date="2025-01-31")
    original = expense_dao.insert_generated

    def failing_insert(conn, tmpl, date_str):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(expense_dao, "insert_generated", failing_insert)
    result = processor.process_all(date(2025, 2, 1))

    assert result.expenses_created == 0
    assert result.total_processed == 1
    assert service.get_expense("user1", template.id).next_occurrence == "2025-01-31"
    assert expense_dao.count() == 0

    monkeypatch.setattr(expense_dao, "insert_generated", original)
    retry = processor.process_all(date(2025, 2, 1))

    assert retry.expenses_created == 1
    assert [r.date for r in expense_dao.get_by_recurring_id(template.id)] == ["2025-01-31"]
    assert service.get_expense("user1", template.id).next_occurrence == "2025-02-28"


def test_one_failing_template_does_not_abort_the_sweep(
    service, processor, expense_dao, income_dao, monkeypatch,
):
    bad = make_expense(service, description="Gym", anchor_date="2025-01-31")
    good = make_expense(service, description="Rent", anchor_date="2025-01-31")
    make_income(service, anchor_date="2025-01-31")
    original = expense_dao.insert_generated

    def insert(conn, tmpl, date_str):
        if tmpl.id == bad.id:
            raise sqlite3.IntegrityError("constraint failed")
        return original(conn, tmpl, date_str)

    monkeypatch.setattr(expense_dao, "insert_generated", insert)
    result = processor.process_all(date(2025, 2, 1))

    assert result.to_dict() == {"expensesCreated": 1, "incomesCreated": 1, "totalProcessed": 3}
    assert expense_dao.get_by_recurring_id(bad.id) == []
    assert len(expense_dao.get_by_recurring_id(good.id)) == 1


def test_date_overflow_on_one_template_does_not_abort_the_sweep(
    service, processor, expense_dao, income_dao,
):
    rent = make_expense(service, description="Rent", anchor_date="2025-01-31")
    edge = make_expense(service, description="Edge", frequency="daily", anchor_date="9999-12-31")
    salary = make_income(service, anchor_date="2025-01-01")

    result = processor.process_all(date(9999, 12, 31))

    assert result.to_dict() == {"expensesCreated": 1, "incomesCreated": 1, "totalProcessed": 3}
    assert [r.date for r in expense_dao.get_by_recurring_id(rent.id)] == ["2025-01-31"]
    assert [r.date for r in income_dao.get_by_recurring_id(salary.id)] == ["2025-01-01"]
    assert expense_dao.get_by_recurring_id(edge.id) == []
    assert service.get_expense("user1", edge.id).next_occurrence == "9999-12-31"
    assert processor.last_processed_at() == "9999-12-31"


def test_corrupt_frequency_is_isolated(
    service, processor, recurring_expense_dao, expense_dao, monkeypatch, caplog,
):
    template = make_expense(service, anchor_date="2025-01-31")
    corrupt = dataclasses.replace(template, frequency="fortnightly")
    monkeypatch.setattr(recurring_expense_dao, "get_due", lambda as_of: [corrupt])

    result = processor.process_all(date(2025, 2, 1))

    assert result.expenses_created == 0
    assert expense_dao.count() == 0
    assert service.get_expense("user1", template.id).next_occurrence == "2025-01-31"
    assert "Failed to process recurring expense" in caplog.text


def test_unreadable_store_propagates(processor, recurring_income_dao, monkeypatch):
    def broken(as_of):
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr(recurring_income_dao, "get_due", broken)

    with pytest.raises(sqlite3.OperationalError):
        processor.process_all(date(2025, 2, 1))


def test_stale_snapshot_cannot_generate_twice(
    service, processor, recurring_expense_dao, expense_dao, monkeypatch,
):
    make_expense(service, anchor_date="2025-01-31")
    stale = recurring_expense_dao.get_due("2025-02-01")
    processor.process_all(date(2025, 2, 1))

    # A second pass that read the due list before the first one committed
    monkeypatch.setattr(recurring_expense_dao, "get_due", lambda as_of: stale)
    result = processor.process_all(date(2025, 2, 1))

    assert result.expenses_created == 0
    assert expense_dao.count() == 1


def test_second_connection_sees_claimed_occurrence(service, processor, db, expense_dao):
    from database.db_manager import DatabaseManager
    from database.recurring_dao import RecurringExpenseDAO, RecurringIncomeDAO
    from database.transaction_dao import ExpenseDAO, IncomeDAO

    make_expense(service, anchor_date="2025-01-31")
    other_db = DatabaseManager(db.db_path)
    other = ProcessingService(
        other_db, RecurringExpenseDAO(other_db), RecurringIncomeDAO(other_db),
        ExpenseDAO(other_db), IncomeDAO(other_db),
    )
    try:
        assert processor.process_all(date(2025, 2, 1)).expenses_created == 1
        assert other.process_all(date(2025, 2, 1)).expenses_created == 0
    finally:
        other_db.close()

    assert expense_dao.count() == 1


def test_stop_event_leaves_remaining_templates_due(service, processor, expense_dao):
    template = make_expense(service, anchor_date="2025-01-31")
    stop = threading.Event()
    stop.set()

    result = processor.process_all(date(2025, 2, 1), stop_event=stop)

    assert result.expenses_created == 0
    assert result.total_processed == 1
    assert service.get_expense("user1", template.id).next_occurrence == "2025-01-31"
    assert expense_dao.count() == 0
    assert processor.last_processed_at() == ""


def test_sweep_stopped_midway_is_not_recorded_as_complete(
    service, processor, recurring_expense_dao, expense_dao, monkeypatch,
):
    first = make_expense(service, description="Rent", anchor_date="2025-01-30")
    second = make_expense(service, description="Gym", anchor_date="2025-01-31")
    stop = threading.Event()
    original = recurring_expense_dao.claim_occurrence

    def claim_then_stop(*args, **kwargs):
        stop.set()
        return original(*args, **kwargs)

    monkeypatch.setattr(recurring_expense_dao, "claim_occurrence", claim_then_stop)
    result = processor.process_all(date(2025, 2, 1), stop_event=stop)

    assert result.expenses_created == 1
    assert len(expense_dao.get_by_recurring_id(first.id)) == 1
    assert service.get_expense("user1", second.id).next_occurrence == "2025-01-31"
    assert processor.last_processed_at() == ""
