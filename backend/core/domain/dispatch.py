"""
core.domain.dispatch — Outbox writer and post-commit side-effect dispatcher.

Side effects (reporter e-mail, ledger notarization) are never performed
inside a case transition.  Instead the service layer:

1. calls ``queue_email`` / ``queue_ledger_record`` while its transaction is
   open — this only inserts ``OutboxMessage`` rows, so a rollback discards
   them together with the transition;
2. calls ``SideEffectDispatcher.dispatch_on_commit(ids)``, which registers a
   ``transaction.on_commit`` hook.

After commit the dispatcher delivers every message independently, on a
small thread pool (or inline when ``SIDE_EFFECTS["RUN_SYNC"]`` is true).
A failing delivery is logged and recorded on the row; it is never raised
back to the caller of the transition.  ``manage.py flush_outbox`` re-tries
pending and failed rows.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Iterable

from django.conf import settings
from django.db import close_old_connections, connection, transaction
from django.utils import timezone

from core.domain.ledger import (
    LedgerClient,
    canonical_payload,
    content_hash,
    get_ledger_client,
)
from core.domain.notifications import (
    NotificationSender,
    get_notification_sender,
    render_notification,
)
from core.models import OutboxKind, OutboxMessage, OutboxStatus

if TYPE_CHECKING:
    from cases.models import AuditEntry

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  Outbox writers (call inside the transaction)
# ═══════════════════════════════════════════════════════════════════


def queue_email(
    recipient: str | None,
    event_type: str,
    *,
    audit_entry: AuditEntry | None = None,
    **context: Any,
) -> OutboxMessage | None:
    """
    Render a reporter notification and store it in the outbox.

    Returns ``None`` (nothing queued) when there is no recipient or e-mail
    is disabled.
    """
    if not recipient or not settings.SIDE_EFFECTS.get("EMAIL_ENABLED", True):
        return None
    subject, body = render_notification(event_type, **context)
    return OutboxMessage.objects.create(
        kind=OutboxKind.EMAIL,
        audit_entry=audit_entry,
        payload={
            "recipient": recipient,
            "event_type": event_type,
            "subject": subject,
            "body": body,
        },
    )


def queue_ledger_record(
    case_code: str,
    action_type: str,
    data: dict[str, Any],
    actor_role: str,
    *,
    audit_entry: AuditEntry | None = None,
) -> OutboxMessage | None:
    """
    Store a ledger notarization request in the outbox.

    The content hash is computed now, over the canonical JSON of ``data``,
    so the notarized fingerprint matches the committed state.
    """
    if not getattr(settings, "LEDGER", {}).get("ENABLED"):
        return None
    payload = canonical_payload(data)
    return OutboxMessage.objects.create(
        kind=OutboxKind.LEDGER,
        audit_entry=audit_entry,
        payload={
            "case_code": case_code,
            "action_type": action_type,
            "content_hash": content_hash(payload),
            "payload": payload,
            "actor_role": str(actor_role).upper(),
        },
    )


# ═══════════════════════════════════════════════════════════════════
#  Dispatcher (runs after commit)
# ═══════════════════════════════════════════════════════════════════


class SideEffectDispatcher:
    """
    Delivers outbox messages.  Fire-and-forget from the caller's view.
    """

    def __init__(
        self,
        *,
        sender: NotificationSender | None = None,
        ledger: LedgerClient | None = None,
        executor: Executor | None = None,
        run_sync: bool | None = None,
    ) -> None:
        self._sender = sender
        self._ledger = ledger
        self._executor = executor
        if run_sync is None:
            run_sync = settings.SIDE_EFFECTS.get("RUN_SYNC", False)
        self.run_sync = run_sync

    # ── Collaborators (resolved lazily so settings overrides apply) ──

    @property
    def sender(self) -> NotificationSender:
        if self._sender is None:
            self._sender = get_notification_sender()
        return self._sender

    @property
    def ledger(self) -> LedgerClient:
        if self._ledger is None:
            self._ledger = get_ledger_client()
        return self._ledger

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=settings.SIDE_EFFECTS.get("MAX_WORKERS", 2),
                thread_name_prefix="side-effects",
            )
        return self._executor

    # ── Public API ──────────────────────────────────────────────────

    def dispatch_on_commit(self, message_ids: Iterable[int]) -> None:
        """Schedule delivery once the surrounding transaction commits."""
        ids = [pk for pk in message_ids if pk is not None]
        if not ids:
            return
        transaction.on_commit(lambda: self.dispatch(ids))

    def dispatch(self, message_ids: list[int]) -> None:
        if self.run_sync:
            self.deliver_all(message_ids)
            return
        try:
            self.executor.submit(self._deliver_in_thread, list(message_ids))
        except RuntimeError:
            logger.exception("Side-effect executor unavailable; %d message(s) left pending", len(message_ids))

    def deliver_all(self, message_ids: Iterable[int]) -> int:
        """Deliver each message independently.  Returns the number sent."""
        return sum(1 for pk in message_ids if self.deliver(pk))

    def deliver(self, message_id: int) -> bool:
        """
        Attempt one delivery and record the outcome on the outbox row.

        Never raises for collaborator failures.
        """
        try:
            message = OutboxMessage.objects.get(pk=message_id)
        except OutboxMessage.DoesNotExist:
            logger.warning("Outbox message %s vanished before delivery", message_id)
            return False

        if message.status == OutboxStatus.SENT:
            return True

        message.attempts += 1
        try:
            delivered, error = self._deliver(message)
        except Exception as exc:  # collaborator failures are logged, never re-raised
            logger.exception(
                "Side effect %s #%s failed on attempt %d",
                message.kind, message.pk, message.attempts,
            )
            delivered, error = False, f"{type(exc).__name__}: {exc}"

        if delivered:
            message.status = OutboxStatus.SENT
            message.sent_at = timezone.now()
            message.last_error = ""
        else:
            message.status = OutboxStatus.FAILED
            message.last_error = error
            logger.warning(
                "Side effect %s #%s not delivered: %s",
                message.kind, message.pk, error,
            )
        message.save(update_fields=["status", "attempts", "last_error", "sent_at", "updated_at"])
        return delivered

    # ── Internals ───────────────────────────────────────────────────

    def _deliver(self, message: OutboxMessage) -> tuple[bool, str]:
        payload = message.payload
        if message.kind == OutboxKind.EMAIL:
            ok = self.sender.send(payload["recipient"], payload["subject"], payload["body"])
            return ok, "" if ok else "notification sender reported failure"

        if message.kind == OutboxKind.LEDGER:
            tx_ref = self.ledger.record(
                payload["case_code"],
                payload["action_type"],
                payload["content_hash"],
                payload["payload"],
                payload["actor_role"],
            )
            if tx_ref:
                message.payload = {**payload, "transaction_ref": tx_ref}
                message.save(update_fields=["payload"])
                return True, ""
            return False, "ledger returned no transaction reference"

        return False, f"unknown outbox kind '{message.kind}'"

    def _deliver_in_thread(self, message_ids: list[int]) -> None:
        close_old_connections()
        try:
            self.deliver_all(message_ids)
        except Exception:
            logger.exception("Background side-effect delivery crashed")
        finally:
            connection.close()


_dispatcher: SideEffectDispatcher | None = None


def get_dispatcher() -> SideEffectDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = SideEffectDispatcher()
    return _dispatcher


def reset_dispatcher() -> None:
    """Drop the cached dispatcher (used after settings change in tests)."""
    global _dispatcher
    _dispatcher = None
