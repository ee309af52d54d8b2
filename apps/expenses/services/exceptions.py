"""
Domain-specific exceptions for expenses app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class ExpensesServiceError(Exception):
    """Base exception for all expenses service errors."""
    pass


class ExpenseValidationError(ExpensesServiceError):
    """Raised when amount, category or outcome input is invalid."""
    pass


class ExpenseNotFoundError(ExpensesServiceError):
    """Raised when an expense does not exist or belongs to another user."""
    pass


class ExpensePersistenceError(ExpensesServiceError):
    """Raised when the database write for an expense fails."""
    pass
