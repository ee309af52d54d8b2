import pytest
from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.expenses.models import Category, Expense, ExpenseStatus


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def expense_owner(db):
    """Create and return the user paying via UPI."""
    return User.objects.create_user(
        email='payer@example.com',
        password='TestPass123!',
        display_name='Upi Payer',
    )


@pytest.fixture
def other_user(db):
    """Create and return an unrelated user."""
    return User.objects.create_user(
        email='other@example.com',
        password='TestPass123!',
        display_name='Other User',
    )


@pytest.fixture
def food_category(db):
    """Shared default 'Food' category."""
    category, _ = Category.objects.get_or_create(name='Food', owner=None)
    return category


@pytest.fixture
def transport_category(db):
    """Shared default 'Transport' category."""
    category, _ = Category.objects.get_or_create(name='Transport', owner=None)
    return category


@pytest.fixture
def private_category(other_user):
    """Category visible only to other_user."""
    return Category.objects.create(name='Hobbies', owner=other_user)


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def owner_client(expense_owner):
    """Return API client authenticated as the expense owner."""
    return _client_for(expense_owner)


@pytest.fixture
def other_client(other_user):
    """Return API client authenticated as an unrelated user."""
    return _client_for(other_user)


@pytest.fixture
def pending_expense(expense_owner, food_category):
    """A fresh PENDING UPI expense."""
    return Expense.objects.create(
        owner=expense_owner,
        amount=Decimal('250.50'),
        category=food_category,
        description='UPI to chaiwala@okaxis',
        status=ExpenseStatus.PENDING,
    )


@pytest.fixture
def confirmed_expense(expense_owner, transport_category):
    """An already CONFIRMED UPI expense."""
    from django.utils import timezone
    return Expense.objects.create(
        owner=expense_owner,
        amount=Decimal('120.00'),
        category=transport_category,
        description='Auto fare',
        status=ExpenseStatus.CONFIRMED,
        resolved_at=timezone.now(),
    )
