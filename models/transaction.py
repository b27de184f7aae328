from dataclasses import dataclass
from typing import Optional


@dataclass
class Expense:
    id: int
    owner_id: str
    amount: float
    description: str
    category: str
    date: str               # 'YYYY-MM-DD'
    is_recurring: bool = False
    recurring_id: Optional[int] = None   # NULL once the template is deleted
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Income:
    id: int
    owner_id: str
    amount: float
    source: str
    date: str
    is_recurring: bool = False
    recurring_id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
