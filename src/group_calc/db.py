"""SQLite database operations for GroupCalc."""

import sqlite3
from datetime import date, datetime
from pathlib import Path

from .models import Expense, Group, Member


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expense_groups (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL REFERENCES expense_groups(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL REFERENCES expense_groups(id) ON DELETE CASCADE,
                title TEXT NOT NULL DEFAULT '',
                amount_cents INTEGER NOT NULL,
                currency TEXT NOT NULL,
                paid_by_member_id TEXT NOT NULL,
                date DATE NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        # Participant order is kept so expenses round-trip unchanged
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expense_participants (
                expense_id TEXT NOT NULL REFERENCES expenses(id) ON DELETE CASCADE,
                member_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (expense_id, member_id)
            )
        """
        )

        # Config table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Config operations
    # ========================================================================

    def get_config(self, key: str) -> str | None:
        """Get a config value by key."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return str(row["value"]) if row else None

    def set_config(self, key: str, value: str):
        """Set a config value."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO config (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now().isoformat()),
        )
        self.conn.commit()

    def delete_config(self, key: str):
        """Remove a config value, falling back to defaults."""
        self.conn.execute("DELETE FROM config WHERE key = ?", (key,))
        self.conn.commit()

    # ========================================================================
    # Group operations
    # ========================================================================

    def create_group(self, name: str) -> Group:
        """Create and store a new group."""
        group = Group(name=name)
        self.conn.execute(
            "INSERT INTO expense_groups (id, name, created_at) VALUES (?, ?, ?)",
            (group.id, group.name, group.created_at.isoformat()),
        )
        self.conn.commit()
        return group

    def get_group(self, group_id: str) -> Group | None:
        """Get a group by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT id, name, created_at FROM expense_groups WHERE id = ?", (group_id,)
        )
        row = cursor.fetchone()
        if not row:
            return None

        return Group(
            id=row["id"],
            name=row["name"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def get_groups(self) -> list[Group]:
        """Get all groups, newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, created_at
            FROM expense_groups
            ORDER BY created_at DESC, rowid DESC
            """
        )
        return [
            Group(
                id=row["id"],
                name=row["name"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in cursor.fetchall()
        ]

    def update_group(self, group_id: str, name: str) -> Group | None:
        """Rename a group."""
        self.conn.execute(
            "UPDATE expense_groups SET name = ? WHERE id = ?", (name, group_id)
        )
        self.conn.commit()
        return self.get_group(group_id)

    def delete_group(self, group_id: str):
        """Delete a group together with its members and expenses."""
        self.conn.execute("DELETE FROM expense_groups WHERE id = ?", (group_id,))
        self.conn.commit()

    # ========================================================================
    # Member operations
    # ========================================================================

    def add_member(self, group_id: str, name: str) -> Member:
        """Add a member to a group."""
        member = Member(group_id=group_id, name=name)
        self.conn.execute(
            "INSERT INTO members (id, group_id, name, created_at) VALUES (?, ?, ?, ?)",
            (member.id, group_id, member.name, member.created_at.isoformat()),
        )
        self.conn.commit()
        return member

    def _row_to_member(self, row: sqlite3.Row) -> Member:
        return Member(
            id=row["id"],
            group_id=row["group_id"],
            name=row["name"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def get_member(self, member_id: str) -> Member | None:
        """Get a member by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT id, group_id, name, created_at FROM members WHERE id = ?",
            (member_id,),
        )
        row = cursor.fetchone()
        return self._row_to_member(row) if row else None

    def get_members(self, group_id: str) -> list[Member]:
        """Get the members of a group, in the order they were added."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, group_id, name, created_at
            FROM members
            WHERE group_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (group_id,),
        )
        return [self._row_to_member(row) for row in cursor.fetchall()]

    def update_member(self, member_id: str, name: str) -> Member | None:
        """Rename a member."""
        self.conn.execute(
            "UPDATE members SET name = ? WHERE id = ?", (name, member_id)
        )
        self.conn.commit()
        return self.get_member(member_id)

    def member_has_expenses(self, member_id: str) -> bool:
        """Check if a member pays for or participates in any expense."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT 1 FROM expenses WHERE paid_by_member_id = ?
            UNION
            SELECT 1 FROM expense_participants WHERE member_id = ?
            LIMIT 1
            """,
            (member_id, member_id),
        )
        return cursor.fetchone() is not None

    def delete_member(self, member_id: str) -> bool:
        """
        Delete a member.

        Returns:
            False (and deletes nothing) if the member is referenced by an expense
        """
        if self.member_has_expenses(member_id):
            return False

        self.conn.execute("DELETE FROM members WHERE id = ?", (member_id,))
        self.conn.commit()
        return True

    # ========================================================================
    # Expense operations
    # ========================================================================

    def _save_participants(self, expense: Expense):
        self.conn.execute(
            "DELETE FROM expense_participants WHERE expense_id = ?", (expense.id,)
        )
        self.conn.executemany(
            """
            INSERT INTO expense_participants (expense_id, member_id, position)
            VALUES (?, ?, ?)
            """,
            [
                (expense.id, member_id, position)
                for position, member_id in enumerate(expense.participant_ids)
            ],
        )

    def add_expense(self, expense: Expense) -> Expense:
        """Store a new expense with its participants."""
        self.conn.execute(
            """
            INSERT INTO expenses (
                id, group_id, title, amount_cents, currency,
                paid_by_member_id, date, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                expense.id,
                expense.group_id,
                expense.title,
                expense.amount_cents,
                expense.currency,
                expense.paid_by_member_id,
                expense.date.isoformat(),
                expense.created_at.isoformat(),
            ),
        )
        self._save_participants(expense)
        self.conn.commit()
        return expense

    def update_expense(self, expense: Expense) -> Expense | None:
        """Replace the stored fields and participants of an existing expense."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE expenses SET
                title = ?, amount_cents = ?, currency = ?,
                paid_by_member_id = ?, date = ?
            WHERE id = ?
            """,
            (
                expense.title,
                expense.amount_cents,
                expense.currency,
                expense.paid_by_member_id,
                expense.date.isoformat(),
                expense.id,
            ),
        )
        if cursor.rowcount == 0:
            return None

        self._save_participants(expense)
        self.conn.commit()
        return self.get_expense(expense.id)

    def _participants_for(self, expense_id: str) -> list[str]:
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT member_id FROM expense_participants
            WHERE expense_id = ?
            ORDER BY position ASC
            """,
            (expense_id,),
        )
        return [row["member_id"] for row in cursor.fetchall()]

    def _row_to_expense(self, row: sqlite3.Row) -> Expense:
        return Expense(
            id=row["id"],
            group_id=row["group_id"],
            title=row["title"],
            amount_cents=row["amount_cents"],
            currency=row["currency"],
            paid_by_member_id=row["paid_by_member_id"],
            participant_ids=self._participants_for(row["id"]),
            date=date.fromisoformat(row["date"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def get_expense(self, expense_id: str) -> Expense | None:
        """Get an expense by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, group_id, title, amount_cents, currency,
                   paid_by_member_id, date, created_at
            FROM expenses
            WHERE id = ?
            """,
            (expense_id,),
        )
        row = cursor.fetchone()
        return self._row_to_expense(row) if row else None

    def get_expenses(self, group_id: str) -> list[Expense]:
        """Get the expenses of a group, newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, group_id, title, amount_cents, currency,
                   paid_by_member_id, date, created_at
            FROM expenses
            WHERE group_id = ?
            ORDER BY created_at DESC, rowid DESC
            """,
            (group_id,),
        )
        return [self._row_to_expense(row) for row in cursor.fetchall()]

    def delete_expense(self, expense_id: str):
        """Delete an expense and its participant rows."""
        self.conn.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
        self.conn.commit()
