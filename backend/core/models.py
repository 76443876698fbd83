"""
Core app models.

Provides abstract base models and the transactional outbox shared across
the project.
"""

from django.db import models


class TimeStampedModel(models.Model):
    """
    Abstract base model that provides self-updating ``created_at`` and
    ``updated_at`` timestamp fields for every concrete child model.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        verbose_name="Created At",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        verbose_name="Updated At",
    )

    class Meta:
        abstract = True


class OutboxKind(models.TextChoices):
    """Delivery channel of a queued side effect."""

    EMAIL = "email", "Email Notification"
    LEDGER = "ledger", "Ledger Notarization"


class OutboxStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"


class OutboxMessage(TimeStampedModel):
    """
    A side effect queued by a committed case transition.

    Rows are written inside the same transaction as the ``AuditEntry``
    that caused them, so a rolled-back transition leaves no message
    behind.  Delivery happens after commit through
    ``core.domain.dispatch.SideEffectDispatcher``; the outcome is
    recorded here and never fed back into the transition.
    """

    kind = models.CharField(
        max_length=10,
        choices=OutboxKind.choices,
        verbose_name="Kind",
        db_index=True,
    )
    payload = models.JSONField(
        default=dict,
        verbose_name="Payload",
    )
    audit_entry = models.ForeignKey(
        "cases.AuditEntry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="outbox_messages",
        verbose_name="Audit Entry",
    )
    status = models.CharField(
        max_length=10,
        choices=OutboxStatus.choices,
        default=OutboxStatus.PENDING,
        verbose_name="Delivery Status",
        db_index=True,
    )
    attempts = models.PositiveSmallIntegerField(
        default=0,
        verbose_name="Delivery Attempts",
    )
    last_error = models.TextField(
        blank=True,
        default="",
        verbose_name="Last Error",
    )
    sent_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name="Sent At",
    )

    class Meta:
        verbose_name = "Outbox Message"
        verbose_name_plural = "Outbox Messages"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["status", "kind"]),
        ]

    def __str__(self):
        return f"[{self.kind}] #{self.pk} ({self.status})"
