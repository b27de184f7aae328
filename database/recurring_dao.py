import sqlite3
from typing import Optional
from database.db_manager import DatabaseManager
from models.recurring_template import RecurringExpense, RecurringIncome


class _RecurringTemplateDAO:
    """SQL over one template table. Subclasses name the table, the generated
    record table and the descriptor columns."""

    TABLE = ""
    RECORD_TABLE = ""
    DESCRIPTOR_COLUMNS: tuple[str, ...] = ()
    MODEL = None

    UPDATABLE_COLUMNS = ("amount", "frequency", "expiry_date", "is_active")

    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row):
        return self.MODEL(
            id=row["id"],
            owner_id=row["owner_id"],
            amount=row["amount"],
            frequency=row["frequency"],
            anchor_date=row["anchor_date"],
            next_occurrence=row["next_occurrence"],
            is_active=bool(row["is_active"]),
            expiry_date=row["expiry_date"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            generated_count=row["generated_count"] if "generated_count" in row.keys() else 0,
            **{col: row[col] for col in self.DESCRIPTOR_COLUMNS},
        )

    def _select(self) -> str:
        return f"""
            SELECT r.*,
                   (SELECT COUNT(*) FROM {self.RECORD_TABLE} t
                     WHERE t.recurring_id = r.id) AS generated_count
            FROM {self.TABLE} r
        """

    def get_by_owner(self, owner_id: str) -> list:
        rows = self._db.fetchall(
            self._select() + " WHERE r.owner_id = ? ORDER BY r.next_occurrence, r.id",
            (owner_id,),
        )
        return [self._row_to_model(r) for r in rows]

    def get_active_by_owner(self, owner_id: str) -> list:
        rows = self._db.fetchall(
            self._select()
            + " WHERE r.owner_id = ? AND r.is_active = 1 ORDER BY r.next_occurrence, r.id",
            (owner_id,),
        )
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, template_id: int):
        row = self._db.fetchone(
            self._select() + " WHERE r.id = ?", (template_id,)
        )
        return self._row_to_model(row) if row else None

    def get_for_owner(self, owner_id: str, template_id: int):
        """The template, or None if missing or owned by someone else."""
        row = self._db.fetchone(
            self._select() + " WHERE r.id = ? AND r.owner_id = ?",
            (template_id, owner_id),
        )
        return self._row_to_model(row) if row else None

    def get_due(self, as_of: str) -> list:
        """Active templates across every owner with next_occurrence <= as_of."""
        rows = self._db.fetchall(
            f"""SELECT * FROM {self.TABLE}
                WHERE is_active = 1 AND next_occurrence <= ?
                ORDER BY next_occurrence, id""",
            (as_of,),
        )
        return [self._row_to_model(r) for r in rows]

    def _insert(
        self,
        owner_id: str,
        amount: float,
        frequency: str,
        anchor_date: str,
        expiry_date: str | None,
        descriptor: dict,
    ):
        columns = ("owner_id", "amount", *self.DESCRIPTOR_COLUMNS, "frequency",
                   "anchor_date", "next_occurrence", "expiry_date", "is_active")
        values = (owner_id, amount, *(descriptor[c] for c in self.DESCRIPTOR_COLUMNS),
                  frequency, anchor_date, anchor_date, expiry_date, 1)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO {self.TABLE} ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' * len(columns))})",
                values,
            )
        return self.get_by_id(cursor.lastrowid)

    def update(self, owner_id: str, template_id: int, changes: dict) -> bool:
        """Apply a partial update. Returns False when no owned row matched."""
        allowed = set(self.UPDATABLE_COLUMNS) | set(self.DESCRIPTOR_COLUMNS)
        unknown = set(changes) - allowed
        if unknown:
            raise KeyError(f"Not updatable: {', '.join(sorted(unknown))}")
        if not changes:
            return self.get_for_owner(owner_id, template_id) is not None

        columns = sorted(changes)
        params = [
            (1 if changes[c] else 0) if c == "is_active" else changes[c]
            for c in columns
        ]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                f"""UPDATE {self.TABLE}
                    SET {assignments}, updated_at = datetime('now')
                    WHERE id = ? AND owner_id = ?""",
                (*params, template_id, owner_id),
            )
        return cursor.rowcount > 0

    def set_active(self, owner_id: str, template_id: int, is_active: bool) -> bool:
        return self.update(owner_id, template_id, {"is_active": is_active})

    def delete(self, owner_id: str, template_id: int) -> bool:
        """Delete the template. Generated records keep their rows; their
        recurring_id is set to NULL by the foreign key."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self.TABLE} WHERE id = ? AND owner_id = ?",
                (template_id, owner_id),
            )
        return cursor.rowcount > 0

    # ── Batch claims (caller holds the transaction) ──────────────────────────

    def claim_occurrence(
        self,
        conn: sqlite3.Connection,
        template_id: int,
        expected_next: str,
        new_next: str,
        keep_active: bool,
    ) -> bool:
        """Advance next_occurrence only if it still equals what the caller read.

        A False return means another pass already consumed this occurrence
        (or the owner paused the template) and nothing may be generated.
        """
        cursor = conn.execute(
            f"""UPDATE {self.TABLE}
                SET next_occurrence = ?, is_active = ?, updated_at = datetime('now')
                WHERE id = ? AND is_active = 1 AND next_occurrence = ?""",
            (new_next, 1 if keep_active else 0, template_id, expected_next),
        )
        return cursor.rowcount == 1

    def deactivate_if_unchanged(
        self, conn: sqlite3.Connection, template_id: int, expected_next: str
    ) -> bool:
        cursor = conn.execute(
            f"""UPDATE {self.TABLE}
                SET is_active = 0, updated_at = datetime('now')
                WHERE id = ? AND is_active = 1 AND next_occurrence = ?""",
            (template_id, expected_next),
        )
        return cursor.rowcount == 1


class RecurringExpenseDAO(_RecurringTemplateDAO):
    TABLE = "recurring_expenses"
    RECORD_TABLE = "expenses"
    DESCRIPTOR_COLUMNS = ("description", "category")
    MODEL = RecurringExpense

    def create(
        self,
        owner_id: str,
        amount: float,
        description: str,
        category: str,
        frequency: str,
        anchor_date: str,
        expiry_date: str | None = None,
    ) -> Optional[RecurringExpense]:
        return self._insert(
            owner_id, amount, frequency, anchor_date, expiry_date,
            {"description": description, "category": category},
        )


class RecurringIncomeDAO(_RecurringTemplateDAO):
    TABLE = "recurring_incomes"
    RECORD_TABLE = "incomes"
    DESCRIPTOR_COLUMNS = ("source",)
    MODEL = RecurringIncome

    def create(
        self,
        owner_id: str,
        amount: float,
        source: str,
        frequency: str,
        anchor_date: str,
        expiry_date: str | None = None,
    ) -> Optional[RecurringIncome]:
        return self._insert(
            owner_id, amount, frequency, anchor_date, expiry_date,
            {"source": source},
        )
