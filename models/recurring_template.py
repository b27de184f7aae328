from dataclasses import dataclass
from typing import Optional


@dataclass
class RecurringExpense:
    id: int
    owner_id: str
    amount: float
    description: str
    category: str
    frequency: str          # 'daily' | 'weekly' | 'monthly' | 'yearly'
    anchor_date: str        # 'YYYY-MM-DD', immutable
    next_occurrence: str    # 'YYYY-MM-DD'
    is_active: bool
    expiry_date: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    generated_count: int = 0

    kind = "expense"

    @property
    def label(self) -> str:
        return self.description


@dataclass
class RecurringIncome:
    id: int
    owner_id: str
    amount: float
    source: str
    frequency: str
    anchor_date: str
    next_occurrence: str
    is_active: bool
    expiry_date: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    generated_count: int = 0

    kind = "income"

    @property
    def label(self) -> str:
        return self.source
