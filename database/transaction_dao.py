import sqlite3
from database.db_manager import DatabaseManager
from models.transaction import Expense, Income


class _RecordDAO:
    """Expense/income rows. Generated rows point back at their template via
    recurring_id; nothing here ever touches the template tables."""

    TABLE = ""
    DESCRIPTOR_COLUMNS: tuple[str, ...] = ()
    MODEL = None

    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row):
        return self.MODEL(
            id=row["id"],
            owner_id=row["owner_id"],
            amount=row["amount"],
            date=row["date"],
            is_recurring=bool(row["is_recurring"]),
            recurring_id=row["recurring_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            **{col: row[col] for col in self.DESCRIPTOR_COLUMNS},
        )

    def get_by_id(self, record_id: int):
        row = self._db.fetchone(
            f"SELECT * FROM {self.TABLE} WHERE id = ?", (record_id,)
        )
        return self._row_to_model(row) if row else None

    def get_by_owner(self, owner_id: str) -> list:
        rows = self._db.fetchall(
            f"SELECT * FROM {self.TABLE} WHERE owner_id = ? ORDER BY date ASC, id ASC",
            (owner_id,),
        )
        return [self._row_to_model(r) for r in rows]

    def get_by_recurring_id(self, recurring_id: int) -> list:
        rows = self._db.fetchall(
            f"SELECT * FROM {self.TABLE} WHERE recurring_id = ? ORDER BY date ASC, id ASC",
            (recurring_id,),
        )
        return [self._row_to_model(r) for r in rows]

    def count(self) -> int:
        return self._db.fetchone(f"SELECT COUNT(*) FROM {self.TABLE}")[0]

    def insert_generated(self, conn: sqlite3.Connection, template, date: str) -> int:
        """Insert the record for one occurrence of `template`.

        Runs on the caller's connection without committing; the caller's
        transaction also holds the template advance.
        """
        columns = ("owner_id", "amount", *self.DESCRIPTOR_COLUMNS, "date",
                   "is_recurring", "recurring_id")
        values = (template.owner_id, template.amount,
                  *(getattr(template, c) for c in self.DESCRIPTOR_COLUMNS),
                  date, 1, template.id)
        cursor = conn.execute(
            f"INSERT INTO {self.TABLE} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' * len(columns))})",
            values,
        )
        return cursor.lastrowid

    def update(self, record_id: int, **changes):
        allowed = {"amount", "date", *self.DESCRIPTOR_COLUMNS}
        unknown = set(changes) - allowed
        if unknown:
            raise KeyError(f"Not updatable: {', '.join(sorted(unknown))}")
        if changes:
            columns = sorted(changes)
            assignments = ", ".join(f"{c} = ?" for c in columns)
            with self._db.transaction() as conn:
                conn.execute(
                    f"UPDATE {self.TABLE} SET {assignments}, updated_at = datetime('now') "
                    f"WHERE id = ?",
                    (*(changes[c] for c in columns), record_id),
                )
        return self.get_by_id(record_id)

    def delete(self, record_id: int):
        with self._db.transaction() as conn:
            conn.execute(f"DELETE FROM {self.TABLE} WHERE id = ?", (record_id,))


class ExpenseDAO(_RecordDAO):
    TABLE = "expenses"
    DESCRIPTOR_COLUMNS = ("description", "category")
    MODEL = Expense


class IncomeDAO(_RecordDAO):
    TABLE = "incomes"
    DESCRIPTOR_COLUMNS = ("source",)
    MODEL = Income
