"""GroupCalc - Split shared expenses and settle up with the fewest payments."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .currency import convert_currency
from .db import Database
from .models import Expense, Member, MemberBalance, Settlement
from .service import GroupService
from .split import compute_balances, suggest_settlements

__all__ = [
    "Settings",
    "load_settings",
    "convert_currency",
    "Database",
    "Expense",
    "Member",
    "MemberBalance",
    "Settlement",
    "GroupService",
    "compute_balances",
    "suggest_settlements",
]
