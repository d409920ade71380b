"""Smoke tests for the group-calc CLI."""

import pytest
from typer.testing import CliRunner

from group_calc.cli import app
from group_calc.db import Database

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Point the CLI at a temporary database."""
    monkeypatch.setenv("GROUP_CALC_DATABASE_PATH", str(tmp_path / "cli.db"))
    monkeypatch.delenv("GROUP_CALC_BASE_CURRENCY", raising=False)
    monkeypatch.delenv("GROUP_CALC_EXCHANGE_RATES", raising=False)


def invoke(*args: str):
    return runner.invoke(app, list(args))


@pytest.fixture
def trip():
    """A group with three members created through the CLI."""
    assert invoke("group", "create", "Trip").exit_code == 0
    for name in ("Alice", "Bob", "Carol"):
        assert invoke("member", "add", "Trip", name).exit_code == 0


def test_create_and_list_group():
    result = invoke("group", "create", "Trip")
    assert result.exit_code == 0
    assert "Created group" in result.output

    result = invoke("group", "list")
    assert result.exit_code == 0
    assert "Trip" in result.output


def test_settle_up(trip):
    result = invoke("expense", "add", "Trip", "30.00", "--paid-by", "Alice")
    assert result.exit_code == 0, result.output
    assert "split 3 ways" in result.output

    result = invoke(
        "expense", "add", "Trip", "15.00", "-p", "bob", "--for", "Bob", "--for", "Carol"
    )
    assert result.exit_code == 0, result.output

    result = invoke("settle", "Trip")
    assert result.exit_code == 0, result.output
    assert "Payments: 2" in result.output
    assert "Plan settles every balance exactly" in result.output


def test_everyone_settled(trip):
    invoke("expense", "add", "Trip", "8.00", "-p", "Alice", "-f", "Alice")

    result = invoke("settle", "Trip")

    assert result.exit_code == 0
    assert "Everyone is settled up" in result.output


def test_remove_member_with_expenses_fails(trip):
    invoke("expense", "add", "Trip", "12.00", "-p", "Alice", "-f", "Bob")

    result = invoke("member", "remove", "Trip", "Alice")

    assert result.exit_code == 1
    assert "cannot be deleted" in result.output


def test_invalid_amount_fails(trip):
    result = invoke("expense", "add", "Trip", "12.345", "-p", "Alice")
    assert result.exit_code == 1
    assert "Error" in result.output


def test_unknown_group_fails():
    result = invoke("balances", "Nowhere")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_currency_and_rates():
    result = invoke("currency", "usd")
    assert result.exit_code == 0
    assert "USD" in result.output

    result = invoke("currency")
    assert "Base currency: USD" in result.output

    result = invoke("rates", "set", "USD", "1.75")
    assert result.exit_code == 0
    assert "1.75" in result.output

    result = invoke("rates", "reset")
    assert result.exit_code == 0
    assert "1.7" in result.output


def test_edit_expense(trip, tmp_path):
    invoke("expense", "add", "Trip", "30.00", "-p", "Alice", "-t", "Dinner")
    db = Database(tmp_path / "cli.db")
    try:
        (expense,) = db.get_expenses(db.get_groups()[0].id)
    finally:
        db.close()

    result = invoke("expense", "edit", expense.id, "--amount", "15.00", "-f", "Bob")
    assert result.exit_code == 0, result.output
    assert "split 1 ways" in result.output

    result = invoke("settle", "Trip")
    assert "Payments: 1" in result.output


def test_non_finite_rate_rejected():
    result = invoke("rates", "set", "USD", "nan")
    assert result.exit_code == 1
    assert "positive number" in result.output

    result = invoke("rates", "show")
    assert "nan" not in result.output
