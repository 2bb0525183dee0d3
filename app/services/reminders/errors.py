from __future__ import annotations


class ReminderError(Exception):
    """Base class for reminder engine errors."""


class RuleParseError(ReminderError):
    """A stored rule row cannot be turned into a Rule at all."""

    def __init__(self, message: str, row_id: object | None = None) -> None:
        super().__init__(message)
        self.row_id = row_id


class ReminderStoreError(ReminderError):
    """The rule store could not answer a query."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause
