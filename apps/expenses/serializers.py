from rest_framework import serializers
from .models import Category, Expense, ExpenseStatus


# =============================================================================
# Input Serializers
# =============================================================================

class InitiateUpiExpenseSerializer(serializers.Serializer):
    """
    Validate the body of POST /api/expenses/upi/initiate.

    Fields:
        amount (str|number): Positive amount; normalized by the service
        category (str): Category name
        description (str): Optional free text
    """

    # Kept as a string so the service owns parsing and rounding.
    amount = serializers.CharField(max_length=32)
    category = serializers.CharField(max_length=50)
    description = serializers.CharField(
        max_length=255,
        required=False,
        allow_blank=True,
        default=''
    )


class ConfirmUpiExpenseSerializer(serializers.Serializer):
    """
    Validate the body of PATCH /api/expenses/upi/confirm/{id}.

    Fields:
        status (str): CONFIRMED or CANCELLED
    """

    status = serializers.ChoiceField(
        choices=[
            (ExpenseStatus.CONFIRMED.value, ExpenseStatus.CONFIRMED.label),
            (ExpenseStatus.CANCELLED.value, ExpenseStatus.CANCELLED.label),
        ]
    )


# =============================================================================
# Output Serializers
# =============================================================================

class CategoryMinimalSerializer(serializers.ModelSerializer):
    """Minimal category info for nested serialization."""

    class Meta:
        model = Category
        fields = ['id', 'name']
        read_only_fields = fields


class ExpenseSerializer(serializers.ModelSerializer):
    """Serializer for expense records of any status."""

    category = CategoryMinimalSerializer(read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id',
            'amount',
            'currency',
            'category',
            'description',
            'payment_method',
            'status',
            'created_at',
            'resolved_at',
        ]
        read_only_fields = fields


class InitiateResponseDataSerializer(serializers.Serializer):
    expenseId = serializers.UUIDField()


class InitiateResponseSerializer(serializers.Serializer):
    data = InitiateResponseDataSerializer()


class ExpenseEnvelopeSerializer(serializers.Serializer):
    data = ExpenseSerializer()


class CategoryTotalSerializer(serializers.Serializer):
    category = serializers.CharField()
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    count = serializers.IntegerField()


class LedgerSummarySerializer(serializers.Serializer):
    """Totals over confirmed expenses."""

    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    count = serializers.IntegerField()
    by_category = CategoryTotalSerializer(many=True)


class ErrorSerializer(serializers.Serializer):
    error = serializers.CharField()
