from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid


class ExpenseStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    CANCELLED = 'CANCELLED', 'Cancelled'
    EXPIRED = 'EXPIRED', 'Expired'


class PaymentMethod(models.TextChoices):
    UPI = 'upi', 'UPI'
    CASH = 'cash', 'Cash'
    CARD = 'card', 'Card'


class Category(models.Model):
    """Expense category. Categories without an owner are shared defaults."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=50)
    owner = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='categories'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        constraints = [
            models.UniqueConstraint(fields=['owner', 'name'], name='unique_category_per_owner'),
            # NULL owners never collide above
            models.UniqueConstraint(
                fields=['name'],
                condition=models.Q(owner__isnull=True),
                name='unique_shared_category'
            ),
        ]
        ordering = ['name']

    def __str__(self):
        return self.name if self.owner_id is None else f"{self.name} ({self.owner})"


class Expense(models.Model):
    """
    Ledger entry. UPI payments start out PENDING and are resolved once.

    Only status and resolved_at change after creation; the status never
    returns to PENDING.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    owner = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='expenses'
    )
    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name='expenses'
    )

    # Financial details
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, default='INR')
    description = models.CharField(max_length=255, blank=True)
    payment_method = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        default=PaymentMethod.UPI
    )

    # Lifecycle
    status = models.CharField(
        max_length=10,
        choices=ExpenseStatus.choices,
        default=ExpenseStatus.PENDING
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'expenses'
        indexes = [
            models.Index(fields=['owner', 'status'], name='expenses_owner_status_idx'),
            models.Index(fields=['status', 'created_at'], name='expenses_status_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.amount} {self.currency} - {self.category.name} ({self.status})"

    @property
    def is_pending(self):
        return self.status == ExpenseStatus.PENDING
