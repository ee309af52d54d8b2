"""
Expenses app services layer.

Services contain business logic and orchestrate operations across models.
State transitions of pending expenses are applied with conditional updates
so concurrent requests cannot both resolve the same record.
"""

from .exceptions import (
    ExpensesServiceError,
    ExpenseValidationError,
    ExpenseNotFoundError,
    ExpensePersistenceError,
)

from .pending_expenses import (
    RESOLVABLE_OUTCOMES,
    parse_amount,
    find_category,
    create_pending_expense,
    resolve_pending_expense,
    expirable_expenses,
    expire_pending_expenses,
    get_expense,
)

from .ledger import (
    get_ledger,
    get_ledger_summary,
)


__all__ = [
    # Exceptions
    'ExpensesServiceError',
    'ExpenseValidationError',
    'ExpenseNotFoundError',
    'ExpensePersistenceError',

    # Pending expense lifecycle
    'RESOLVABLE_OUTCOMES',
    'parse_amount',
    'find_category',
    'create_pending_expense',
    'resolve_pending_expense',
    'expirable_expenses',
    'expire_pending_expenses',
    'get_expense',

    # Ledger reads
    'get_ledger',
    'get_ledger_summary',
]
