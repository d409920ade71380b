"""Service layer that composes storage, settings and the split engine.

Input is validated here before it reaches storage; the balance and settlement
computations themselves trust their input and are re-run on every query.
"""

import json
import logging
import math
from datetime import date

from pydantic import ValidationError as PydanticValidationError

from .config import Settings
from .currency import (
    PIVOT_CURRENCY,
    amount_to_cents,
    is_known_currency,
    merge_rates,
)
from .db import Database
from .exceptions import (
    ExpenseNotFoundError,
    GroupNotFoundError,
    MemberInUseError,
    MemberNotFoundError,
    ValidationError,
)
from .models import (
    Expense,
    ExpenseInput,
    Group,
    GroupInput,
    Member,
    MemberBalance,
    MemberInput,
    Settlement,
)
from .split import compute_balances, suggest_settlements

logger = logging.getLogger(__name__)

BASE_CURRENCY_KEY = "base_currency"
EXCHANGE_RATES_KEY = "exchange_rates"


def _validate(model, **data):
    """Build an input model, turning pydantic errors into a ValidationError."""
    try:
        return model(**data)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(errors) from e


class GroupService:
    """Service for managing groups and computing who owes whom."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the group service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Groups
    # ========================================================================

    def create_group(self, name: str) -> Group:
        data = _validate(GroupInput, name=name)
        group = self.db.create_group(data.name)
        logger.info(f"Created group {group.id} ({group.name})")
        return group

    def list_groups(self) -> list[Group]:
        return self.db.get_groups()

    def get_group(self, group_id: str) -> Group:
        group = self.db.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    def rename_group(self, group_id: str, name: str) -> Group:
        self.get_group(group_id)
        data = _validate(GroupInput, name=name)
        group = self.db.update_group(group_id, data.name)
        if group is None:
            raise GroupNotFoundError(group_id)
        logger.info(f"Renamed group {group_id} to {group.name}")
        return group

    def delete_group(self, group_id: str):
        """Delete a group with all of its members and expenses."""
        self.get_group(group_id)
        self.db.delete_group(group_id)
        logger.info(f"Deleted group {group_id}")

    # ========================================================================
    # Members
    # ========================================================================

    def add_member(self, group_id: str, name: str) -> Member:
        self.get_group(group_id)
        data = _validate(MemberInput, name=name)
        member = self.db.add_member(group_id, data.name)
        logger.info(f"Added member {member.id} ({member.name}) to group {group_id}")
        return member

    def list_members(self, group_id: str) -> list[Member]:
        self.get_group(group_id)
        return self.db.get_members(group_id)

    def get_member(self, member_id: str) -> Member:
        member = self.db.get_member(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    def rename_member(self, member_id: str, name: str) -> Member:
        self.get_member(member_id)
        data = _validate(MemberInput, name=name)
        member = self.db.update_member(member_id, data.name)
        if member is None:
            raise MemberNotFoundError(member_id)
        logger.info(f"Renamed member {member_id} to {member.name}")
        return member

    def remove_member(self, member_id: str):
        """
        Remove a member from their group.

        Raises:
            MemberInUseError: If the member paid for or shares any expense
        """
        member = self.get_member(member_id)
        if not self.db.delete_member(member_id):
            logger.warning(f"Refused to delete member {member_id}: has expenses")
            raise MemberInUseError(
                member_id,
                f"{member.name} has expenses and cannot be deleted. "
                f"Delete or edit those expenses first.",
            )
        logger.info(f"Removed member {member_id} ({member.name})")

    # ========================================================================
    # Expenses
    # ========================================================================

    def _build_expense(
        self,
        group_id: str,
        title: str,
        amount: str,
        paid_by_member_id: str,
        participant_ids: list[str],
        currency: str | None,
        expense_date: date | None,
    ) -> tuple[ExpenseInput, int]:
        """Validate expense input against the group's members."""
        fields = {
            "title": title,
            "amount": amount,
            "paid_by_member_id": paid_by_member_id,
            "participant_ids": participant_ids,
            "currency": currency or self.get_base_currency(),
        }
        if expense_date is not None:
            fields["date"] = expense_date
        data = _validate(ExpenseInput, **fields)

        member_ids = {m.id for m in self.db.get_members(group_id)}
        errors = []
        if data.paid_by_member_id not in member_ids:
            errors.append(f"Payer {data.paid_by_member_id} is not a group member")
        unknown = [pid for pid in data.participant_ids if pid not in member_ids]
        if unknown:
            errors.append(f"Participants not in group: {', '.join(unknown)}")
        if not is_known_currency(data.currency):
            errors.append(f"Unsupported currency: {data.currency}")
        if errors:
            raise ValidationError(errors)

        return data, amount_to_cents(data.amount)

    def add_expense(
        self,
        group_id: str,
        title: str,
        amount: str,
        paid_by_member_id: str,
        participant_ids: list[str],
        currency: str | None = None,
        expense_date: date | None = None,
    ) -> Expense:
        """
        Add an expense split equally among participants.

        Args:
            group_id: Group the expense belongs to
            title: Short description
            amount: Decimal amount as typed, e.g. "12.50"
            paid_by_member_id: Member who paid
            participant_ids: Members sharing the cost
            currency: Currency code (defaults to the base currency)
            expense_date: Day of the expense (defaults to today)

        Returns:
            The stored expense
        """
        self.get_group(group_id)
        data, amount_cents = self._build_expense(
            group_id,
            title,
            amount,
            paid_by_member_id,
            participant_ids,
            currency,
            expense_date,
        )

        expense = self.db.add_expense(
            Expense(
                group_id=group_id,
                title=data.title,
                amount_cents=amount_cents,
                currency=data.currency,
                paid_by_member_id=data.paid_by_member_id,
                participant_ids=data.participant_ids,
                date=data.date,
            )
        )
        logger.info(
            f"Added expense {expense.id} to group {group_id}: "
            f"{amount_cents} {expense.currency} cents, "
            f"{len(expense.participant_ids)} participants"
        )
        return expense

    def update_expense(
        self,
        expense_id: str,
        title: str,
        amount: str,
        paid_by_member_id: str,
        participant_ids: list[str],
        currency: str | None = None,
        expense_date: date | None = None,
    ) -> Expense:
        """Replace the details of an existing expense."""
        existing = self.get_expense(expense_id)
        if existing.group_id is None:
            raise ExpenseNotFoundError(expense_id)
        data, amount_cents = self._build_expense(
            existing.group_id,
            title,
            amount,
            paid_by_member_id,
            participant_ids,
            currency or existing.currency,
            expense_date or existing.date,
        )

        updated = self.db.update_expense(
            existing.model_copy(
                update={
                    "title": data.title,
                    "amount_cents": amount_cents,
                    "currency": data.currency,
                    "paid_by_member_id": data.paid_by_member_id,
                    "participant_ids": list(dict.fromkeys(data.participant_ids)),
                    "date": data.date,
                }
            )
        )
        if updated is None:
            raise ExpenseNotFoundError(expense_id)
        logger.info(f"Updated expense {expense_id}")
        return updated

    def get_expense(self, expense_id: str) -> Expense:
        expense = self.db.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        return expense

    def list_expenses(self, group_id: str) -> list[Expense]:
        self.get_group(group_id)
        return self.db.get_expenses(group_id)

    def delete_expense(self, expense_id: str):
        self.get_expense(expense_id)
        self.db.delete_expense(expense_id)
        logger.info(f"Deleted expense {expense_id}")

    # ========================================================================
    # Settings
    # ========================================================================

    def get_base_currency(self) -> str:
        """Stored base currency, or the configured default."""
        return self.db.get_config(BASE_CURRENCY_KEY) or self.settings.base_currency

    def set_base_currency(self, code: str) -> str:
        code = code.strip().upper()
        if not is_known_currency(code):
            raise ValidationError([f"Unsupported currency: {code}"])
        self.db.set_config(BASE_CURRENCY_KEY, code)
        logger.info(f"Base currency set to {code}")
        return code

    def _stored_rates(self) -> dict[str, float]:
        value = self.db.get_config(EXCHANGE_RATES_KEY)
        return json.loads(value) if value else {}

    def get_exchange_rates(self) -> dict[str, float]:
        """Default rates, overridden by settings, then by stored user rates."""
        return merge_rates(self.settings.exchange_rates, self._stored_rates())

    def set_exchange_rate(self, code: str, rate: float) -> dict[str, float]:
        """
        Set how many AZN one unit of ``code`` is worth.

        Returns:
            The full rate table after the change
        """
        code = code.strip().upper()
        errors = []
        if code == PIVOT_CURRENCY:
            errors.append(f"{PIVOT_CURRENCY} is the pivot currency, its rate is 1")
        elif not is_known_currency(code):
            errors.append(f"Unsupported currency: {code}")
        if not math.isfinite(rate) or rate <= 0:
            errors.append("Exchange rate must be a positive number")
        if errors:
            raise ValidationError(errors)

        stored = self._stored_rates()
        stored[code] = rate
        self.db.set_config(EXCHANGE_RATES_KEY, json.dumps(stored))
        logger.info(f"Exchange rate for {code} set to {rate}")
        return self.get_exchange_rates()

    def reset_exchange_rates(self) -> dict[str, float]:
        """Forget stored rate overrides."""
        self.db.delete_config(EXCHANGE_RATES_KEY)
        logger.info("Exchange rates reset to defaults")
        return self.get_exchange_rates()

    # ========================================================================
    # Balances and settlements
    # ========================================================================

    def get_balances(self, group_id: str) -> list[MemberBalance]:
        """Compute member balances in the current base currency."""
        members = self.list_members(group_id)
        expenses = self.db.get_expenses(group_id)
        return compute_balances(
            members,
            expenses,
            base_currency=self.get_base_currency(),
            rates=self.get_exchange_rates(),
        )

    def get_settlement_plan(self, group_id: str) -> list[Settlement]:
        """Suggest the fewest payments that settle every balance in the group."""
        balances = self.get_balances(group_id)
        settlements = suggest_settlements(balances)
        logger.info(
            f"Suggested {len(settlements)} settlements for group {group_id} "
            f"({sum(1 for b in balances if b.net_cents != 0)} unsettled members)"
        )
        return settlements
