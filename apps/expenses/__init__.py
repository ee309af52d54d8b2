"""
Expenses App - Ledger and UPI Pending Expenses

This app owns the expense ledger and the server half of the UPI
pay-and-auto-log handoff.

Key Features:
- Two-phase expense records for UPI payments (initiate -> confirm/cancel/expire)
- Idempotent, race-safe resolution via a conditional status update
- Scheduled expiry of abandoned pending expenses (management command)
- Ledger listing and totals over confirmed expenses only

Architecture:
- Models: Category, Expense
- Services: pending_expenses (create/resolve/expire), ledger (reads)
- Views: thin DRF function views
- Exceptions: domain exception hierarchy in services/exceptions.py
"""
