"""CLI for GroupCalc using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .currency import CURRENCIES, cents_to_plain, format_money, get_currency_config
from .db import Database
from .exceptions import GroupCalcError, MemberNotFoundError
from .models import Member, MemberBalance, Settlement
from .service import GroupService
from .split import apply_settlements

app = typer.Typer(
    name="group-calc",
    help="Split shared expenses and settle up with the fewest payments",
)
group_app = typer.Typer(help="Create and manage groups")
member_app = typer.Typer(help="Manage group members")
expense_app = typer.Typer(help="Record shared expenses")
rates_app = typer.Typer(help="Show or change exchange rates (value in AZN)")

app.add_typer(group_app, name="group")
app.add_typer(member_app, name="member")
app.add_typer(expense_app, name="expense")
app.add_typer(rates_app, name="rates")

console = Console()

_state = {"verbose": False}


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Split shared expenses and settle up with the fewest payments."""
    _state["verbose"] = verbose
    setup_logging(verbose)


@contextmanager
def _service() -> Iterator[GroupService]:
    """Open the database, yield a service, and report errors uniformly."""
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield GroupService(settings, db)
    except GroupCalcError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if _state["verbose"]:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def _resolve_group_id(service: GroupService, ref: str) -> str:
    """Accept a group id or its exact name."""
    for group in service.list_groups():
        if ref in (group.id, group.name):
            return group.id
    return service.get_group(ref).id


def _resolve_member(members: list[Member], ref: str) -> Member:
    """Accept a member id or a case-insensitive name."""
    for member in members:
        if member.id == ref:
            return member
    matches = [m for m in members if m.name.lower() == ref.lower()]
    if len(matches) == 1:
        return matches[0]
    raise MemberNotFoundError(ref)


def _colored(cents: int, currency: str) -> str:
    formatted = format_money(cents, get_currency_config(currency))
    if cents > 0:
        return f"[green]{formatted}[/green]"
    if cents < 0:
        return f"[red]{formatted}[/red]"
    return formatted


# ============================================================================
# Groups
# ============================================================================


@group_app.command("create")
def group_create(name: str = typer.Argument(..., help="Group name")):
    """Create a new group."""
    with _service() as service:
        group = service.create_group(name)
        console.print(
            f"[green]✓ Created group[/green] {group.name} [dim]({group.id})[/dim]"
        )


@group_app.command("list")
def group_list():
    """List all groups, newest first."""
    with _service() as service:
        groups = service.list_groups()
        if not groups:
            console.print("[yellow]No groups yet.[/yellow]")
            return

        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Created", justify="right")
        for group in groups:
            table.add_row(group.id, group.name, group.created_at.strftime("%Y-%m-%d"))
        console.print(table)


@group_app.command("rename")
def group_rename(
    group: str = typer.Argument(..., help="Group id or name"),
    name: str = typer.Argument(..., help="New name"),
):
    """Rename a group."""
    with _service() as service:
        renamed = service.rename_group(_resolve_group_id(service, group), name)
        console.print(f"[green]✓ Renamed group to[/green] {renamed.name}")


@group_app.command("delete")
def group_delete(
    group: str = typer.Argument(..., help="Group id or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """Delete a group with all of its members and expenses."""
    with _service() as service:
        group_id = _resolve_group_id(service, group)
        if not yes and not typer.confirm(
            "Delete this group and all of its expenses?", default=False
        ):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_group(group_id)
        console.print("[green]✓ Group deleted[/green]")


# ============================================================================
# Members
# ============================================================================


@member_app.command("add")
def member_add(
    group: str = typer.Argument(..., help="Group id or name"),
    name: str = typer.Argument(..., help="Member name"),
):
    """Add a member to a group."""
    with _service() as service:
        member = service.add_member(_resolve_group_id(service, group), name)
        console.print(
            f"[green]✓ Added[/green] {member.name} [dim]({member.id})[/dim]"
        )


@member_app.command("list")
def member_list(group: str = typer.Argument(..., help="Group id or name")):
    """List the members of a group."""
    with _service() as service:
        members = service.list_members(_resolve_group_id(service, group))
        if not members:
            console.print("[yellow]No members yet.[/yellow]")
            return

        table = Table(title="Members", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        for member in members:
            table.add_row(member.id, member.name)
        console.print(table)


@member_app.command("rename")
def member_rename(
    group: str = typer.Argument(..., help="Group id or name"),
    member: str = typer.Argument(..., help="Member id or name"),
    name: str = typer.Argument(..., help="New name"),
):
    """Rename a member."""
    with _service() as service:
        members = service.list_members(_resolve_group_id(service, group))
        renamed = service.rename_member(_resolve_member(members, member).id, name)
        console.print(f"[green]✓ Renamed member to[/green] {renamed.name}")


@member_app.command("remove")
def member_remove(
    group: str = typer.Argument(..., help="Group id or name"),
    member: str = typer.Argument(..., help="Member id or name"),
):
    """Remove a member who has no expenses."""
    with _service() as service:
        members = service.list_members(_resolve_group_id(service, group))
        service.remove_member(_resolve_member(members, member).id)
        console.print("[green]✓ Member removed[/green]")


# ============================================================================
# Expenses
# ============================================================================


def _parse_date(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise typer.BadParameter("Date must be in YYYY-MM-DD format") from e


@expense_app.command("add")
def expense_add(
    group: str = typer.Argument(..., help="Group id or name"),
    amount: str = typer.Argument(..., help='Amount, e.g. "12.50"'),
    paid_by: str = typer.Option(..., "--paid-by", "-p", help="Member who paid"),
    participants: list[str] = typer.Option(
        None,
        "--for",
        "-f",
        help="Member sharing the cost (repeat; defaults to everyone)",
    ),
    title: str = typer.Option("", "--title", "-t", help="Short description"),
    currency: str | None = typer.Option(
        None, "--currency", "-c", help="Currency code (defaults to base currency)"
    ),
    on: str | None = typer.Option(None, "--date", help="Expense date (YYYY-MM-DD)"),
):
    """Record an expense split equally among participants."""
    expense_date = _parse_date(on)
    with _service() as service:
        group_id = _resolve_group_id(service, group)
        members = service.list_members(group_id)
        payer = _resolve_member(members, paid_by)
        if participants:
            participant_ids = [_resolve_member(members, p).id for p in participants]
        else:
            participant_ids = [m.id for m in members]

        expense = service.add_expense(
            group_id,
            title=title,
            amount=amount,
            paid_by_member_id=payer.id,
            participant_ids=participant_ids,
            currency=currency,
            expense_date=expense_date,
        )
        amount_str = format_money(
            expense.amount_cents, get_currency_config(expense.currency)
        )
        console.print(
            f"[green]✓ Added expense[/green] {amount_str}"
            f" paid by {payer.name}, split {len(expense.participant_ids)} ways"
        )


@expense_app.command("list")
def expense_list(group: str = typer.Argument(..., help="Group id or name")):
    """List the expenses of a group, newest first."""
    with _service() as service:
        group_id = _resolve_group_id(service, group)
        names = {m.id: m.name for m in service.list_members(group_id)}
        expenses = service.list_expenses(group_id)
        if not expenses:
            console.print("[yellow]No expenses yet.[/yellow]")
            return

        table = Table(title="Expenses", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Date")
        table.add_column("Title", style="cyan", width=30)
        table.add_column("Amount", justify="right")
        table.add_column("Paid by")
        table.add_column("Split between", no_wrap=False)

        for expense in expenses:
            title = expense.title or "[dim]—[/dim]"
            table.add_row(
                expense.id,
                expense.date.isoformat(),
                title[:30] + "..." if len(title) > 30 else title,
                format_money(
                    expense.amount_cents, get_currency_config(expense.currency)
                ),
                names.get(expense.paid_by_member_id, expense.paid_by_member_id),
                ", ".join(names.get(pid, pid) for pid in expense.participant_ids),
            )
        console.print(table)


@expense_app.command("edit")
def expense_edit(
    expense_id: str = typer.Argument(..., help="Expense id"),
    amount: str | None = typer.Option(None, "--amount", "-a", help="New amount"),
    paid_by: str | None = typer.Option(None, "--paid-by", "-p", help="New payer"),
    participants: list[str] = typer.Option(
        None, "--for", "-f", help="Member sharing the cost (repeat to replace all)"
    ),
    title: str | None = typer.Option(None, "--title", "-t", help="New description"),
    currency: str | None = typer.Option(None, "--currency", "-c", help="New currency"),
    on: str | None = typer.Option(None, "--date", help="New date (YYYY-MM-DD)"),
):
    """Change an expense. Options left out keep their current value."""
    expense_date = _parse_date(on)
    with _service() as service:
        existing = service.get_expense(expense_id)
        members = service.list_members(existing.group_id)
        if paid_by is not None:
            payer_id = _resolve_member(members, paid_by).id
        else:
            payer_id = existing.paid_by_member_id
        if participants:
            participant_ids = [_resolve_member(members, p).id for p in participants]
        else:
            participant_ids = existing.participant_ids
        if amount is None:
            amount = cents_to_plain(
                existing.amount_cents, get_currency_config(existing.currency)
            )

        expense = service.update_expense(
            expense_id,
            title=existing.title if title is None else title,
            amount=amount,
            paid_by_member_id=payer_id,
            participant_ids=participant_ids,
            currency=currency,
            expense_date=expense_date,
        )
        amount_str = format_money(
            expense.amount_cents, get_currency_config(expense.currency)
        )
        console.print(
            f"[green]✓ Updated expense[/green] {amount_str},"
            f" split {len(expense.participant_ids)} ways"
        )


@expense_app.command("delete")
def expense_delete(expense_id: str = typer.Argument(..., help="Expense id")):
    """Delete an expense."""
    with _service() as service:
        service.delete_expense(expense_id)
        console.print("[green]✓ Expense deleted[/green]")


# ============================================================================
# Balances and settlements
# ============================================================================


def display_balances(balances: list[MemberBalance], currency: str):
    """Display member balances in a table."""
    config = get_currency_config(currency)
    table = Table(
        title=f"Balances ({config.code})", show_header=True, header_style="bold magenta"
    )
    table.add_column("Member", style="cyan")
    table.add_column("Paid", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Net", justify="right")

    for balance in balances:
        table.add_row(
            balance.member_name,
            format_money(balance.total_paid_cents, config),
            format_money(balance.total_owed_cents, config),
            _colored(balance.net_cents, currency),
        )
    console.print(table)


def display_settlements(
    balances: list[MemberBalance], settlements: list[Settlement], currency: str
):
    """Display a settlement plan and verify it zeroes every balance."""
    if not settlements:
        console.print("[green]✓ Everyone is settled up.[/green]")
        return

    config = get_currency_config(currency)
    table = Table(
        title="Suggested Settlements", show_header=True, header_style="bold magenta"
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("From", style="red")
    table.add_column("To", style="green")
    table.add_column("Amount", justify="right")

    for i, settlement in enumerate(settlements, 1):
        table.add_row(
            str(i),
            settlement.from_member_name,
            settlement.to_member_name,
            format_money(settlement.amount_cents, config),
        )
    console.print(table)

    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Payments: {len(settlements)}")
    console.print(
        f"  Total moved: "
        f"{format_money(sum(s.amount_cents for s in settlements), config)}"
    )

    residual = apply_settlements(balances, settlements)
    if all(amount == 0 for amount in residual.values()):
        console.print("  [green]✓ Plan settles every balance exactly[/green]")
    else:
        console.print(f"  [red]✗ Balances left over after plan: {residual}[/red]")


@app.command()
def balances(group: str = typer.Argument(..., help="Group id or name")):
    """Show what each member paid, owes, and their net balance."""
    with _service() as service:
        group_id = _resolve_group_id(service, group)
        display_balances(service.get_balances(group_id), service.get_base_currency())


@app.command()
def settle(group: str = typer.Argument(..., help="Group id or name")):
    """Suggest the fewest payments that settle everyone up."""
    with _service() as service:
        group_id = _resolve_group_id(service, group)
        currency = service.get_base_currency()
        member_balances = service.get_balances(group_id)
        display_balances(member_balances, currency)
        console.print()
        display_settlements(
            member_balances, service.get_settlement_plan(group_id), currency
        )


# ============================================================================
# Currency settings
# ============================================================================


@app.command()
def currency(
    code: str | None = typer.Argument(None, help="New base currency code"),
):
    """Show or set the base currency balances are reported in."""
    with _service() as service:
        if code is None:
            current = get_currency_config(service.get_base_currency())
            console.print(
                f"Base currency: [bold]{current.code}[/bold] ({current.name})"
            )
            console.print(
                "[dim]Available: " + ", ".join(c.code for c in CURRENCIES) + "[/dim]"
            )
            return
        new_code = service.set_base_currency(code)
        console.print(f"[green]✓ Base currency set to[/green] {new_code}")


def display_rates(rates: dict[str, float]):
    table = Table(
        title="Exchange Rates (1 unit = N AZN)",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Code", style="cyan")
    table.add_column("Currency")
    table.add_column("Rate", justify="right")
    for config in CURRENCIES:
        table.add_row(config.code, config.name, f"{rates.get(config.code, 1):g}")
    console.print(table)


@rates_app.command("show")
def rates_show():
    """Show the exchange rates in use."""
    with _service() as service:
        display_rates(service.get_exchange_rates())


@rates_app.command("set")
def rates_set(
    code: str = typer.Argument(..., help="Currency code"),
    rate: float = typer.Argument(..., help="Value of one unit in AZN"),
):
    """Override the exchange rate for a currency."""
    with _service() as service:
        display_rates(service.set_exchange_rate(code, rate))


@rates_app.command("reset")
def rates_reset():
    """Reset exchange rates to the defaults."""
    with _service() as service:
        display_rates(service.reset_exchange_rates())
        console.print("[green]✓ Exchange rates reset[/green]")


if __name__ == "__main__":
    app()
