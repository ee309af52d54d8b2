from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema

from .serializers import (
    InitiateUpiExpenseSerializer,
    ConfirmUpiExpenseSerializer,
    ExpenseSerializer,
    InitiateResponseSerializer,
    ExpenseEnvelopeSerializer,
    LedgerSummarySerializer,
    ErrorSerializer,
)
from .services import (
    create_pending_expense,
    resolve_pending_expense,
    get_expense,
    get_ledger,
    get_ledger_summary,
    # Exceptions
    ExpenseValidationError,
    ExpenseNotFoundError,
    ExpensePersistenceError,
)


class ExpensePagination(PageNumberPagination):
    """Custom pagination for the ledger."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


@extend_schema(
    responses={200: ExpenseSerializer(many=True)},
    description="List the current user's confirmed expenses (the ledger).",
    tags=['expenses'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def ledger(request):
    """List confirmed expenses - thin HTTP handler."""
    paginator = ExpensePagination()
    page = paginator.paginate_queryset(get_ledger(owner=request.user), request)
    serializer = ExpenseSerializer(page, many=True)
    return paginator.get_paginated_response(serializer.data)


@extend_schema(
    responses={200: LedgerSummarySerializer},
    description="Totals over the current user's confirmed expenses.",
    tags=['expenses'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def ledger_summary(request):
    """Ledger totals - thin HTTP handler."""
    summary = get_ledger_summary(owner=request.user)
    return Response(LedgerSummarySerializer(summary).data)


@extend_schema(
    request=InitiateUpiExpenseSerializer,
    responses={
        201: InitiateResponseSerializer,
        400: ErrorSerializer,
        500: ErrorSerializer,
    },
    description=(
        "Create a PENDING expense before redirecting to a UPI app. "
        "The client must wait for this response before redirecting."
    ),
    tags=['expenses'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def initiate_upi_expense(request):
    """Create a pending UPI expense."""
    serializer = InitiateUpiExpenseSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        expense = create_pending_expense(
            owner=request.user,
            amount=serializer.validated_data['amount'],
            category=serializer.validated_data['category'],
            description=serializer.validated_data.get('description', ''),
        )
    except ExpenseValidationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except ExpensePersistenceError as e:
        return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(
        {'data': {'expenseId': str(expense.id)}},
        status=status.HTTP_201_CREATED
    )


@extend_schema(
    request=ConfirmUpiExpenseSerializer,
    responses={
        200: ExpenseEnvelopeSerializer,
        400: ErrorSerializer,
        404: ErrorSerializer,
        500: ErrorSerializer,
    },
    description=(
        "Resolve a pending UPI expense as CONFIRMED or CANCELLED. "
        "Repeating the call returns the already resolved record unchanged."
    ),
    tags=['expenses'],
)
@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def confirm_upi_expense(request, expense_id):
    """Resolve a pending UPI expense with the user's answer."""
    serializer = ConfirmUpiExpenseSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        expense = resolve_pending_expense(
            expense_id=expense_id,
            owner=request.user,
            outcome=serializer.validated_data['status'],
        )
    except ExpenseNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except ExpenseValidationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except ExpensePersistenceError as e:
        return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({'data': ExpenseSerializer(expense).data})


@extend_schema(
    responses={200: ExpenseEnvelopeSerializer, 404: ErrorSerializer},
    description="Fetch one UPI expense of any status (e.g. to reconcile after a reload).",
    tags=['expenses'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def upi_expense_detail(request, expense_id):
    """Get a single expense."""
    try:
        expense = get_expense(expense_id=expense_id, owner=request.user)
    except ExpenseNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response({'data': ExpenseSerializer(expense).data})
