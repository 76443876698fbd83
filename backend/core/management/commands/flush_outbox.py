"""
Management command: flush_outbox
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Re-attempts delivery of outbox messages that are still pending (the
process died before dispatch) or failed earlier.  Messages that already
used up ``SIDE_EFFECTS["MAX_ATTEMPTS"]`` are left alone.

Usage::

    python manage.py flush_outbox
    python manage.py flush_outbox --kind ledger --limit 50
"""

from django.conf import settings
from django.core.management.base import BaseCommand

from core.domain.dispatch import SideEffectDispatcher
from core.models import OutboxKind, OutboxMessage, OutboxStatus


class Command(BaseCommand):
    help = "Re-delivers pending and failed side effects (e-mail, ledger)."

    def add_arguments(self, parser):
        parser.add_argument("--kind", choices=OutboxKind.values)
        parser.add_argument("--limit", type=int, default=500)

    def handle(self, *args, **options):
        max_attempts = settings.SIDE_EFFECTS.get("MAX_ATTEMPTS", 5)
        qs = OutboxMessage.objects.filter(
            status__in=[OutboxStatus.PENDING, OutboxStatus.FAILED],
            attempts__lt=max_attempts,
        ).order_by("created_at", "id")
        if options["kind"]:
            qs = qs.filter(kind=options["kind"])

        ids = list(qs.values_list("id", flat=True)[: options["limit"]])
        if not ids:
            self.stdout.write("Outbox is empty.")
            return

        dispatcher = SideEffectDispatcher(run_sync=True)
        sent = dispatcher.deliver_all(ids)
        failed = len(ids) - sent

        style = self.style.SUCCESS if failed == 0 else self.style.WARNING
        self.stdout.write(style(f"Delivered {sent} of {len(ids)} message(s); {failed} still failing."))
