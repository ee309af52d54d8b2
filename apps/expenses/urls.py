from django.urls import path, re_path
from . import views

app_name = 'expenses'

urlpatterns = [
    # GET    /api/expenses/                    - Ledger (confirmed only)
    # GET    /api/expenses/summary/            - Ledger totals
    # POST   /api/expenses/upi/initiate        - Create pending expense
    # PATCH  /api/expenses/upi/confirm/{id}    - Confirm or cancel
    # GET    /api/expenses/upi/{id}            - Fetch one (any status)
    path('', views.ledger, name='ledger'),
    path('summary/', views.ledger_summary, name='ledger-summary'),

    # UPI handoff (trailing slash optional)
    re_path(r'^upi/initiate/?$', views.initiate_upi_expense, name='upi-initiate'),
    re_path(
        r'^upi/confirm/(?P<expense_id>[0-9a-fA-F-]{36})/?$',
        views.confirm_upi_expense,
        name='upi-confirm'
    ),
    re_path(
        r'^upi/(?P<expense_id>[0-9a-fA-F-]{36})/?$',
        views.upi_expense_detail,
        name='upi-detail'
    ),
]
