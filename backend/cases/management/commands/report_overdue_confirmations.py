"""
Management command: report_overdue_confirmations
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Lists cases whose reporter has not confirmed or disputed the submitted
notes before ``auto_close_at``.  Read-only: the deadline is advisory and
no case is closed automatically.

Usage::

    python manage.py report_overdue_confirmations
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from cases.services import CaseQueryService


class Command(BaseCommand):
    help = "Lists cases past their 14-day confirmation deadline."

    def handle(self, *args, **options):
        now = timezone.now()
        overdue = list(CaseQueryService.overdue_confirmations(now))

        if not overdue:
            self.stdout.write(self.style.SUCCESS("No overdue confirmations."))
            return

        self.stdout.write(self.style.WARNING(f"{len(overdue)} case(s) overdue:"))
        for case in overdue:
            days = (now - case.auto_close_at).days
            self.stdout.write(
                f"  {case.code:<16s} deadline {case.auto_close_at:%Y-%m-%d %H:%M} "
                f"({days} day(s) ago, {case.dispute_count} dispute(s))"
            )
