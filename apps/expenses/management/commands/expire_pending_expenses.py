"""
Management command to expire abandoned UPI pending expenses.

Pending expenses whose payment was never confirmed or cancelled by the
user are moved to EXPIRED so they stop accumulating. Run from a scheduler
(cron, Render cron job).

Usage:
    python manage.py expire_pending_expenses
    python manage.py expire_pending_expenses --hours 48 --dry-run
"""

from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.expenses.services import (
    expirable_expenses,
    expire_pending_expenses,
    ExpensesServiceError,
)


class Command(BaseCommand):
    help = 'Expire pending UPI expenses older than a threshold'

    def add_arguments(self, parser):
        parser.add_argument(
            '--hours',
            type=int,
            default=None,
            help='Age threshold in hours (default: UPI_PENDING_EXPIRY_HOURS)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be expired without making changes',
        )

    def handle(self, *args, **options):
        hours = options['hours']
        if hours is None:
            hours = settings.UPI_PENDING_EXPIRY_HOURS
        if hours < 0:
            raise CommandError('--hours cannot be negative')

        older_than = timedelta(hours=hours)

        if options['dry_run']:
            count = expirable_expenses(older_than=older_than).count()
            self.stdout.write(
                self.style.WARNING(
                    f'--dry-run mode: {count} pending expense(s) older than {hours}h would be expired.'
                )
            )
            return

        try:
            count = expire_pending_expenses(older_than=older_than)
        except ExpensesServiceError as e:
            raise CommandError(str(e)) from e

        self.stdout.write(
            self.style.SUCCESS(f'Expired {count} pending expense(s) older than {hours}h.')
        )
