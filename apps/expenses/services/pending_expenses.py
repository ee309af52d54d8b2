"""
Pending expense lifecycle service.

A UPI payment is recorded in two phases. The expense is created PENDING
before the user is sent to the payment app, and is resolved afterwards from
the user's own answer (CONFIRMED or CANCELLED). Records that are never
resolved are moved to EXPIRED by a scheduled job.

Resolution is idempotent: only the first write can move a record out of
PENDING, every later attempt returns the record as it already is.
"""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from django.conf import settings
from django.db import DatabaseError
from django.db.models import QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.expenses.models import Category, Expense, ExpenseStatus, PaymentMethod

from .exceptions import (
    ExpenseValidationError,
    ExpenseNotFoundError,
    ExpensePersistenceError,
)

logger = logging.getLogger(__name__)

RESOLVABLE_OUTCOMES = frozenset({ExpenseStatus.CONFIRMED, ExpenseStatus.CANCELLED})

# DecimalField(max_digits=10, decimal_places=2)
MAX_AMOUNT = Decimal('99999999.99')
CENT = Decimal('0.01')


def parse_amount(value: Union[str, int, float, Decimal]) -> Decimal:
    """
    Parse a user-supplied amount into a positive 2-place Decimal.

    Raises:
        ExpenseValidationError: If the value is not numeric, not finite,
            not positive after rounding, or too large to store.
    """
    if isinstance(value, bool) or value is None:
        raise ExpenseValidationError("Amount must be a number")

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ExpenseValidationError("Amount must be a number")

    if not amount.is_finite():
        raise ExpenseValidationError("Amount must be a finite number")

    # Bound before quantizing; huge exponents overflow the decimal context
    if amount > MAX_AMOUNT:
        raise ExpenseValidationError(f"Amount cannot exceed {MAX_AMOUNT}")
    if amount <= 0:
        raise ExpenseValidationError("Amount must be greater than zero")

    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ExpenseValidationError("Amount must be greater than zero")

    return amount


def find_category(*, owner: User, name: str) -> Category:
    """
    Look up a category by exact name.

    The owner's own category wins over a shared default of the same name.

    Raises:
        ExpenseValidationError: If no such category exists for the owner.
    """
    name = (name or '').strip()
    if not name:
        raise ExpenseValidationError("Category is required")

    category = (
        Category.objects.filter(owner=owner, name=name).first()
        or Category.objects.filter(owner__isnull=True, name=name).first()
    )
    if category is None:
        raise ExpenseValidationError(f"Unknown category '{name}'")
    return category


def _coerce_expense_id(expense_id) -> uuid.UUID:
    if isinstance(expense_id, uuid.UUID):
        return expense_id
    try:
        return uuid.UUID(str(expense_id))
    except ValueError:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")


def create_pending_expense(
    *,
    owner: User,
    amount: Union[str, int, float, Decimal],
    category: Union[str, Category],
    description: str = ''
) -> Expense:
    """
    Create a PENDING expense ahead of a UPI payment.

    The caller must not redirect to the payment app until this returns;
    the returned id is what the payment is later resolved against.

    Args:
        owner: User initiating the payment
        amount: Positive amount, rounded to 2 decimal places
        category: Category instance or category name
        description: Free text, at most 255 characters

    Returns:
        Created Expense with status PENDING

    Raises:
        ExpenseValidationError: If amount, category or description is invalid
        ExpensePersistenceError: If the database write fails
    """
    value = parse_amount(amount)

    if isinstance(category, Category):
        if category.owner_id not in (None, owner.pk):
            raise ExpenseValidationError(f"Unknown category '{category.name}'")
        category_obj = category
    else:
        category_obj = find_category(owner=owner, name=category)

    description = (description or '').strip()
    if len(description) > 255:
        raise ExpenseValidationError("Description cannot exceed 255 characters")

    try:
        expense = Expense.objects.create(
            owner=owner,
            amount=value,
            currency=settings.UPI_CURRENCY,
            category=category_obj,
            description=description,
            payment_method=PaymentMethod.UPI,
            status=ExpenseStatus.PENDING,
        )
    except DatabaseError as e:
        logger.exception("Failed to persist pending expense for user %s", owner.pk)
        raise ExpensePersistenceError("Could not save the pending expense") from e

    logger.info(
        "Created pending expense %s for user %s (%s %s)",
        expense.id, owner.pk, expense.amount, category_obj.name,
    )
    return expense


def resolve_pending_expense(
    *,
    expense_id,
    owner: User,
    outcome: str
) -> Expense:
    """
    Resolve a PENDING expense to CONFIRMED or CANCELLED.

    The transition is a single ``UPDATE ... WHERE status = 'PENDING'``, so
    of two concurrent calls for the same id exactly one changes the row.
    A call on an already resolved (or expired) record changes nothing and
    returns the record in its current state.

    Args:
        expense_id: UUID of the expense
        owner: User who initiated the payment
        outcome: ExpenseStatus.CONFIRMED or ExpenseStatus.CANCELLED

    Returns:
        The expense as stored after the call

    Raises:
        ExpenseValidationError: If outcome is not CONFIRMED/CANCELLED
        ExpenseNotFoundError: If no such expense exists for the owner
        ExpensePersistenceError: If the database write fails
    """
    if outcome not in RESOLVABLE_OUTCOMES:
        raise ExpenseValidationError(
            f"Outcome must be one of {', '.join(sorted(RESOLVABLE_OUTCOMES))}"
        )

    pk = _coerce_expense_id(expense_id)
    owned = Expense.objects.filter(id=pk, owner=owner)

    try:
        updated = owned.filter(status=ExpenseStatus.PENDING).update(
            status=outcome,
            resolved_at=timezone.now(),
        )
    except DatabaseError as e:
        logger.exception("Failed to resolve expense %s", pk)
        raise ExpensePersistenceError("Could not update the expense") from e

    try:
        expense = owned.select_related('category').get()
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {pk} not found")

    if updated:
        logger.info("Resolved expense %s as %s", pk, outcome)
    else:
        logger.info(
            "Expense %s already %s; ignoring %s", pk, expense.status, outcome
        )
    return expense


def expirable_expenses(
    *,
    older_than: timedelta,
    now: Optional[datetime] = None
) -> QuerySet:
    """Return PENDING expenses created more than ``older_than`` ago."""
    if older_than < timedelta(0):
        raise ExpenseValidationError("Expiry threshold cannot be negative")
    now = now or timezone.now()
    return Expense.objects.filter(
        status=ExpenseStatus.PENDING,
        created_at__lt=now - older_than,
    )


def expire_pending_expenses(
    *,
    older_than: timedelta,
    now: Optional[datetime] = None
) -> int:
    """
    Move stale PENDING expenses to EXPIRED.

    Intended for a scheduled job. Uses the same PENDING-only conditional
    update as resolution, so a record confirmed concurrently is never
    overwritten.

    Returns:
        Number of expenses expired
    """
    now = now or timezone.now()
    try:
        count = expirable_expenses(older_than=older_than, now=now).update(
            status=ExpenseStatus.EXPIRED,
            resolved_at=now,
        )
    except DatabaseError as e:
        logger.exception("Failed to expire pending expenses")
        raise ExpensePersistenceError("Could not expire pending expenses") from e

    if count:
        logger.info("Expired %d pending expense(s) older than %s", count, older_than)
    return count


def get_expense(*, expense_id, owner: User) -> Expense:
    """
    Get a single expense of any status.

    Raises:
        ExpenseNotFoundError: If no such expense exists for the owner
    """
    pk = _coerce_expense_id(expense_id)
    try:
        return Expense.objects.select_related('category').get(id=pk, owner=owner)
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {pk} not found")
