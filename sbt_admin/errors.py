"""
Error taxonomy for the admin backend.

Every fault coming out of the data layer is one of these. The API layer
turns them into HTTP responses.
"""

from typing import Sequence


class AdminError(Exception):
    """Base class for all application errors."""


class ConfigurationError(AdminError):
    """No access key is available."""

    def __init__(self, message: str = "Supabase key is missing. Save an API key first."):
        super().__init__(message)


class AuthenticationError(AdminError):
    """The backend rejected the access key."""

    def __init__(self, message: str = "Authentication failed. Please reset your API key."):
        super().__init__(message)


class NotFoundError(AdminError):
    pass


class ValidationError(AdminError):
    """An import document is malformed."""

    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__("Invalid import document: " + "; ".join(self.problems))


class OperationError(AdminError):
    """A backend call failed; carries the attempted operation name."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class TableNotProvisioned(OperationError):
    def __init__(self, operation: str, table: str):
        self.table = table
        super().__init__(operation, f"table '{table}' does not exist")
