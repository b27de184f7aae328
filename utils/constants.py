APP_NAME = "Budget Recurring"
DB_FILE = "budget_recurring.db"

DATE_FORMAT = "%Y-%m-%d"

DEFAULT_RUN_AT = "00:00"  # daily sweep, local time
DEFAULT_LOG_LEVEL = "INFO"

FREQUENCIES = ["daily", "weekly", "monthly", "yearly"]

# Fields an owner may change on an existing template, per kind
EXPENSE_UPDATABLE_FIELDS = {
    "amount", "description", "category", "frequency", "expiry_date", "is_active",
}
INCOME_UPDATABLE_FIELDS = {
    "amount", "source", "frequency", "expiry_date", "is_active",
}
IMMUTABLE_FIELDS = {"id", "owner_id", "anchor_date", "next_occurrence", "created_at"}
