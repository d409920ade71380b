"""Tests for GroupService and its SQLite storage."""

from datetime import date

import pytest

from group_calc.config import Settings
from group_calc.db import Database
from group_calc.exceptions import (
    ExpenseNotFoundError,
    GroupNotFoundError,
    MemberInUseError,
    MemberNotFoundError,
    ValidationError,
)
from group_calc.service import GroupService


@pytest.fixture
def mock_settings(tmp_path):
    """Create settings pointing at a temporary database."""
    return Settings(database_path=tmp_path / "test.db")


@pytest.fixture
def mock_db(mock_settings):
    """Create a temporary database."""
    db = Database(mock_settings.database_path)
    yield db
    db.close()


@pytest.fixture
def service(mock_settings, mock_db):
    """Create a GroupService instance."""
    return GroupService(mock_settings, mock_db)


@pytest.fixture
def trip(service):
    """A group with Alice, Bob and Carol."""
    group = service.create_group("Trip")
    alice = service.add_member(group.id, "Alice")
    bob = service.add_member(group.id, "Bob")
    carol = service.add_member(group.id, "Carol")
    return group, alice, bob, carol


class TestGroups:
    def test_create_and_list(self, service):
        first = service.create_group("Trip")
        second = service.create_group("  Flat  ")

        groups = service.list_groups()

        assert [g.id for g in groups] == [second.id, first.id]
        assert groups[0].name == "Flat"

    def test_rename(self, service):
        group = service.create_group("Trip")
        assert service.rename_group(group.id, "Road trip").name == "Road trip"
        assert service.get_group(group.id).name == "Road trip"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_invalid_name(self, service, name):
        with pytest.raises(ValidationError):
            service.create_group(name)

    def test_missing_group(self, service):
        with pytest.raises(GroupNotFoundError):
            service.get_group("nope")
        with pytest.raises(GroupNotFoundError):
            service.add_member("nope", "Alice")

    def test_delete_cascades(self, service, mock_db, trip):
        group, alice, bob, _ = trip
        service.add_expense(group.id, "Dinner", "10.00", alice.id, [alice.id, bob.id])

        service.delete_group(group.id)

        assert service.list_groups() == []
        assert mock_db.get_members(group.id) == []
        assert mock_db.get_expenses(group.id) == []
        assert mock_db.get_member(alice.id) is None


class TestMembers:
    def test_members_in_creation_order(self, service, trip):
        group, alice, bob, carol = trip
        assert [m.id for m in service.list_members(group.id)] == [
            alice.id,
            bob.id,
            carol.id,
        ]

    def test_rename_member(self, service, trip):
        _, alice, _, _ = trip
        assert service.rename_member(alice.id, "Alicia").name == "Alicia"

    def test_remove_unused_member(self, service, trip):
        group, _, _, carol = trip
        service.remove_member(carol.id)
        assert carol.id not in {m.id for m in service.list_members(group.id)}

    def test_remove_payer_blocked(self, service, trip):
        group, alice, bob, _ = trip
        service.add_expense(group.id, "Taxi", "12.00", alice.id, [bob.id])

        with pytest.raises(MemberInUseError, match="cannot be deleted"):
            service.remove_member(alice.id)

        assert alice.id in {m.id for m in service.list_members(group.id)}

    def test_remove_participant_blocked(self, service, trip):
        group, alice, bob, _ = trip
        service.add_expense(group.id, "Taxi", "12.00", alice.id, [bob.id])

        with pytest.raises(MemberInUseError):
            service.remove_member(bob.id)

    def test_remove_allowed_after_expense_deleted(self, service, trip):
        group, alice, bob, _ = trip
        expense = service.add_expense(group.id, "Taxi", "12.00", alice.id, [bob.id])

        service.delete_expense(expense.id)
        service.remove_member(bob.id)

        assert bob.id not in {m.id for m in service.list_members(group.id)}

    def test_remove_missing_member(self, service):
        with pytest.raises(MemberNotFoundError):
            service.remove_member("nope")


class TestExpenses:
    def test_add_expense(self, service, trip):
        group, alice, bob, carol = trip

        expense = service.add_expense(
            group.id,
            title="Dinner",
            amount="30.00",
            paid_by_member_id=alice.id,
            participant_ids=[alice.id, bob.id, carol.id],
            expense_date=date(2025, 6, 1),
        )

        stored = service.get_expense(expense.id)
        assert stored.amount_cents == 3000
        assert stored.currency == "AZN"
        assert stored.date == date(2025, 6, 1)
        assert stored.participant_ids == [alice.id, bob.id, carol.id]
        assert stored.group_id == group.id

    def test_default_currency_follows_base(self, service, trip):
        group, alice, _, _ = trip
        service.set_base_currency("USD")

        expense = service.add_expense(group.id, "", "5", alice.id, [alice.id])

        assert expense.currency == "USD"
        assert expense.amount_cents == 500

    def test_newest_first(self, service, trip):
        group, alice, _, _ = trip
        first = service.add_expense(group.id, "One", "1.00", alice.id, [alice.id])
        second = service.add_expense(group.id, "Two", "2.00", alice.id, [alice.id])

        assert [e.id for e in service.list_expenses(group.id)] == [second.id, first.id]

    @pytest.mark.parametrize("amount", ["", "0", "0.00", "-5", "abc", "12.345", "1e3"])
    def test_invalid_amount(self, service, trip, amount):
        group, alice, _, _ = trip
        with pytest.raises(ValidationError):
            service.add_expense(group.id, "Bad", amount, alice.id, [alice.id])

    def test_title_too_long(self, service, trip):
        group, alice, _, _ = trip
        with pytest.raises(ValidationError):
            service.add_expense(group.id, "x" * 201, "1.00", alice.id, [alice.id])

    def test_no_participants(self, service, trip):
        group, alice, _, _ = trip
        with pytest.raises(ValidationError):
            service.add_expense(group.id, "Solo", "1.00", alice.id, [])

    def test_outsider_rejected(self, service, trip):
        group, alice, _, _ = trip
        other = service.create_group("Other")
        stranger = service.add_member(other.id, "Stranger")

        with pytest.raises(ValidationError, match="not in group"):
            service.add_expense(group.id, "X", "1.00", alice.id, [stranger.id])
        with pytest.raises(ValidationError, match="not a group member"):
            service.add_expense(group.id, "X", "1.00", stranger.id, [alice.id])

    def test_unsupported_currency(self, service, trip):
        group, alice, _, _ = trip
        with pytest.raises(ValidationError, match="Unsupported currency"):
            service.add_expense(
                group.id, "X", "1.00", alice.id, [alice.id], currency="XYZ"
            )

    def test_duplicate_participants_stored_once(self, service, trip):
        group, alice, bob, _ = trip
        expense = service.add_expense(
            group.id, "X", "1.00", alice.id, [bob.id, bob.id, alice.id]
        )
        assert service.get_expense(expense.id).participant_ids == [bob.id, alice.id]

    def test_update_expense(self, service, trip):
        group, alice, bob, carol = trip
        expense = service.add_expense(group.id, "Taxi", "12.00", alice.id, [bob.id])

        updated = service.update_expense(
            expense.id,
            title="Taxi home",
            amount="9.99",
            paid_by_member_id=carol.id,
            participant_ids=[alice.id, bob.id],
            currency="EUR",
        )

        assert updated.title == "Taxi home"
        assert updated.amount_cents == 999
        assert updated.currency == "EUR"
        assert updated.paid_by_member_id == carol.id
        assert updated.participant_ids == [alice.id, bob.id]
        assert updated.date == expense.date

    def test_missing_expense(self, service):
        with pytest.raises(ExpenseNotFoundError):
            service.get_expense("nope")
        with pytest.raises(ExpenseNotFoundError):
            service.delete_expense("nope")


class TestSettings:
    def test_defaults(self, service):
        assert service.get_base_currency() == "AZN"
        assert service.get_exchange_rates()["USD"] == 1.70

    def test_env_overrides(self, tmp_path, mock_db):
        settings = Settings(
            database_path=tmp_path / "test.db",
            base_currency="eur",
            exchange_rates={"usd": 1.8},
        )
        service = GroupService(settings, mock_db)

        assert service.get_base_currency() == "EUR"
        assert service.get_exchange_rates()["USD"] == 1.8

    @pytest.mark.parametrize("rate", [0, -1.0, float("nan"), float("inf")])
    def test_invalid_env_rate(self, tmp_path, rate):
        with pytest.raises(ValueError):
            Settings(database_path=tmp_path / "test.db", exchange_rates={"USD": rate})

    def test_set_base_currency(self, service):
        assert service.set_base_currency("gbp") == "GBP"
        assert service.get_base_currency() == "GBP"

    def test_set_unknown_base_currency(self, service):
        with pytest.raises(ValidationError):
            service.set_base_currency("XYZ")

    def test_stored_rate_persists(self, mock_settings, service):
        service.set_exchange_rate("usd", 2.0)

        reopened = Database(mock_settings.database_path)
        try:
            rates = GroupService(mock_settings, reopened).get_exchange_rates()
        finally:
            reopened.close()

        assert rates["USD"] == 2.0
        assert rates["EUR"] == 1.85

    def test_stored_rate_beats_env(self, tmp_path, mock_db):
        settings = Settings(
            database_path=tmp_path / "test.db", exchange_rates={"USD": 1.8}
        )
        service = GroupService(settings, mock_db)

        service.set_exchange_rate("USD", 2.5)
        assert service.get_exchange_rates()["USD"] == 2.5

        service.reset_exchange_rates()
        assert service.get_exchange_rates()["USD"] == 1.8

    @pytest.mark.parametrize(
        "code,rate",
        [
            ("AZN", 2.0),
            ("XYZ", 1.0),
            ("USD", 0),
            ("USD", -1.5),
            ("USD", float("nan")),
            ("USD", float("inf")),
        ],
    )
    def test_invalid_rate(self, service, code, rate):
        with pytest.raises(ValidationError):
            service.set_exchange_rate(code, rate)

    @pytest.mark.parametrize("rate", [float("nan"), float("inf")])
    def test_non_finite_rate_not_stored(self, service, trip, rate):
        group, alice, bob, _ = trip
        service.add_expense(
            group.id, "Hotel", "100.00", alice.id, [alice.id, bob.id], currency="USD"
        )

        with pytest.raises(ValidationError, match="positive number"):
            service.set_exchange_rate("USD", rate)

        assert service.get_exchange_rates()["USD"] == 1.70
        assert service.get_balances(group.id)[0].net_cents == 8500


class TestVanishedRows:
    """Rows deleted between the lookup and the update raise not-found errors."""

    def test_rename_group(self, service, mock_db, monkeypatch):
        group = service.create_group("Trip")
        monkeypatch.setattr(mock_db, "update_group", lambda *args: None)

        with pytest.raises(GroupNotFoundError):
            service.rename_group(group.id, "Road trip")

    def test_rename_member(self, service, mock_db, trip, monkeypatch):
        _, alice, _, _ = trip
        monkeypatch.setattr(mock_db, "update_member", lambda *args: None)

        with pytest.raises(MemberNotFoundError):
            service.rename_member(alice.id, "Alicia")

    def test_update_expense_without_group(self, service, mock_db, trip, monkeypatch):
        group, alice, _, _ = trip
        expense = service.add_expense(group.id, "Taxi", "12.00", alice.id, [alice.id])
        orphan = expense.model_copy(update={"group_id": None})
        monkeypatch.setattr(mock_db, "get_expense", lambda expense_id: orphan)

        with pytest.raises(ExpenseNotFoundError):
            service.update_expense(expense.id, "Taxi", "12.00", alice.id, [alice.id])


class TestBalancesAndSettlements:
    def test_end_to_end(self, service, trip):
        group, alice, bob, carol = trip
        service.add_expense(
            group.id, "Dinner", "30.00", alice.id, [alice.id, bob.id, carol.id]
        )
        service.add_expense(group.id, "Taxi", "15.00", bob.id, [bob.id, carol.id])

        balances = service.get_balances(group.id)
        plan = service.get_settlement_plan(group.id)

        assert [b.member_name for b in balances] == ["Alice", "Bob", "Carol"]
        assert [b.net_cents for b in balances] == [2000, -250, -1750]
        assert [
            (s.from_member_name, s.to_member_name, s.amount_cents) for s in plan
        ] == [("Carol", "Alice", 1750), ("Bob", "Alice", 250)]

    def test_balances_in_base_currency(self, service, trip):
        group, alice, bob, _ = trip
        service.add_expense(
            group.id, "Museum", "17.00", alice.id, [alice.id, bob.id], currency="AZN"
        )

        service.set_base_currency("USD")
        balances = service.get_balances(group.id)

        # 1700 AZN cents / 1.70 = 1000 USD cents
        assert [b.net_cents for b in balances] == [500, -500, 0]

    def test_recomputed_after_rate_change(self, service, trip):
        group, alice, bob, _ = trip
        service.add_expense(
            group.id, "Hotel", "100.00", alice.id, [alice.id, bob.id], currency="USD"
        )

        before = service.get_balances(group.id)
        service.set_exchange_rate("USD", 2.0)
        after = service.get_balances(group.id)

        assert before[0].net_cents == 8500
        assert after[0].net_cents == 10000

    def test_settled_group(self, service, trip):
        group, alice, bob, _ = trip
        service.add_expense(group.id, "Own lunch", "8.00", alice.id, [alice.id])

        assert service.get_settlement_plan(group.id) == []
