"""Custom exceptions for GroupCalc."""


class GroupCalcError(Exception):
    """Base exception for all GroupCalc errors."""

    pass


class ConfigurationError(GroupCalcError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(GroupCalcError):
    """Raised when user input fails validation before reaching storage."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class NotFoundError(GroupCalcError):
    """Base class for lookups of records that do not exist."""

    pass


class GroupNotFoundError(NotFoundError):
    """Raised when a group id does not exist."""

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Group {group_id} not found")


class MemberNotFoundError(NotFoundError):
    """Raised when a member id does not exist."""

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


class ExpenseNotFoundError(NotFoundError):
    """Raised when an expense id does not exist."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found")


class MemberInUseError(GroupCalcError):
    """Raised when deleting a member that still pays for or shares an expense."""

    def __init__(self, member_id: str, message: str | None = None):
        self.member_id = member_id
        super().__init__(
            message
            or f"Member {member_id} has expenses and cannot be deleted"
        )
