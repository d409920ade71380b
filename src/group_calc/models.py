"""Pydantic domain models for GroupCalc.

All monetary amounts are integer minor units ("cents").
"""

import datetime as dt
import re
import uuid
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field, StringConstraints, field_validator

AMOUNT_PATTERN = re.compile(r"\d+(\.\d{1,2})?")


def new_id() -> str:
    """Generate an opaque identifier for a stored record."""
    return str(uuid.uuid4())


# ============================================================================
# Stored Models
# ============================================================================


class Group(BaseModel):
    """A group of people sharing expenses."""

    id: str = Field(default_factory=new_id)
    name: str
    created_at: dt.datetime = Field(default_factory=dt.datetime.now)


class Member(BaseModel):
    """A member of a group."""

    id: str = Field(default_factory=new_id)
    name: str
    group_id: str | None = None
    created_at: dt.datetime = Field(default_factory=dt.datetime.now)


class Expense(BaseModel):
    """A shared expense, split equally among its participants.

    The balance engine trusts these invariants, they are checked by the
    input layer before an expense is stored:

    - amount_cents >= 0
    - at least one participant
    - payer and participants are members of the group
    """

    id: str = Field(default_factory=new_id)
    group_id: str | None = None
    title: str = ""
    amount_cents: int
    currency: str = "AZN"
    paid_by_member_id: str
    participant_ids: list[str]
    date: dt.date = Field(default_factory=dt.date.today)
    created_at: dt.datetime = Field(default_factory=dt.datetime.now)

    @field_validator("participant_ids")
    @classmethod
    def collapse_duplicates(cls, value: list[str]) -> list[str]:
        """Participants form a set; keep first-occurrence order."""
        return list(dict.fromkeys(value))


# ============================================================================
# Derived Models
# ============================================================================


class MemberBalance(BaseModel):
    """Balance info for a single member, in the base currency."""

    member_id: str
    member_name: str
    total_paid_cents: int
    total_owed_cents: int
    net_cents: int  # positive = creditor, negative = debtor


class Settlement(BaseModel):
    """A suggested payment from a debtor to a creditor."""

    from_member_id: str
    from_member_name: str
    to_member_id: str
    to_member_name: str
    amount_cents: int = Field(gt=0)


# ============================================================================
# Currency Models
# ============================================================================


class CurrencyConfig(BaseModel):
    """Display configuration for a currency."""

    code: str
    symbol: str
    name: str
    decimals: int = 2
    position: Literal["prefix", "suffix"] = "prefix"


# ============================================================================
# Input Models
# ============================================================================

Name = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)
]


class GroupInput(BaseModel):
    """Validated input for creating or renaming a group."""

    name: Name


class MemberInput(BaseModel):
    """Validated input for adding or renaming a member."""

    name: Name


class ExpenseInput(BaseModel):
    """Validated input for adding or editing an expense.

    The amount is the decimal string a user typed ("12.50"); it is converted
    to cents only after validation.
    """

    title: str = Field(default="", max_length=200)
    amount: str
    paid_by_member_id: str = Field(min_length=1)
    participant_ids: list[str] = Field(min_length=1)
    currency: str
    date: dt.date = Field(default_factory=dt.date.today)

    @field_validator("amount")
    @classmethod
    def amount_format(cls, value: str) -> str:
        value = value.strip()
        if not AMOUNT_PATTERN.fullmatch(value):
            raise ValueError("Amount must be a number with at most 2 decimal places")
        if Decimal(value) <= 0:
            raise ValueError("Amount must be a positive number")
        return value

    @field_validator("currency")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.strip().upper()
