"""
Ledger read service.

Only CONFIRMED expenses are part of the ledger. PENDING, CANCELLED and
EXPIRED records never count towards listings or totals.
"""

from decimal import Decimal
from typing import Any, Dict

from django.db.models import Count, DecimalField, QuerySet, Sum, Value
from django.db.models.functions import Coalesce

from apps.accounts.models import User
from apps.expenses.models import Expense, ExpenseStatus


def get_ledger(*, owner: User) -> QuerySet:
    """Return the owner's confirmed expenses, newest first."""
    return (
        Expense.objects
        .filter(owner=owner, status=ExpenseStatus.CONFIRMED)
        .select_related('category')
        .order_by('-created_at')
    )


def get_ledger_summary(*, owner: User) -> Dict[str, Any]:
    """
    Totals over the owner's confirmed expenses.

    Returns:
        dict with ``total_amount`` (Decimal), ``count`` (int) and
        ``by_category``, a list of ``{category, total_amount, count}``
        ordered by total descending.
    """
    ledger = Expense.objects.filter(owner=owner, status=ExpenseStatus.CONFIRMED)
    money = DecimalField(max_digits=12, decimal_places=2)

    totals = ledger.aggregate(
        total_amount=Coalesce(Sum('amount'), Value(Decimal('0.00')), output_field=money),
        count=Count('id'),
    )

    by_category = (
        ledger
        .values('category__name')
        .annotate(total_amount=Sum('amount', output_field=money), count=Count('id'))
        .order_by('-total_amount', 'category__name')
    )

    return {
        'total_amount': totals['total_amount'],
        'count': totals['count'],
        'by_category': [
            {
                'category': row['category__name'],
                'total_amount': row['total_amount'],
                'count': row['count'],
            }
            for row in by_category
        ],
    }
