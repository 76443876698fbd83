"""
Cases app models.

Covers the complete lifecycle of a reported incident — from intake,
through admin triage and scheduling, psychologist consultation, reporter
confirmation or dispute, up to closure or escalation.

A ``Case`` is only ever mutated through
``cases.services.CaseLifecycleEngine``; every accepted transition appends
exactly one ``AuditEntry``.
"""

from django.db import models

from core.domain.actors import ActorRole
from core.models import TimeStampedModel


# ────────────────────────────────────────────────────────────────────
# Choice enumerations
# ────────────────────────────────────────────────────────────────────

class CaseStatus(models.TextChoices):
    """
    Closed set of lifecycle statuses.

    ``REJECTED`` and ``CLOSED`` are terminal.  ``ESCALATED_TO_ADMIN`` is
    long-lived and awaits manual mediation.
    """

    # ── Triage ───────────────────────────────────────────────────────
    RECEIVED = "received", "Received"
    UNDER_REVIEW = "under_review", "Under Review"
    REJECTED = "rejected", "Rejected"
    APPROVED = "approved", "Approved"

    # ── Consultation ─────────────────────────────────────────────────
    SCHEDULED = "scheduled", "Scheduled"
    IN_SESSION = "in_session", "In Session"

    # ── Reporter confirmation loop ───────────────────────────────────
    AWAITING_CONFIRMATION = "awaiting_confirmation", "Awaiting Confirmation"
    DISPUTE = "dispute", "Dispute"
    ESCALATED_TO_ADMIN = "escalated_to_admin", "Escalated to Admin"
    CLOSED = "closed", "Closed"


TERMINAL_STATUSES = frozenset({CaseStatus.REJECTED, CaseStatus.CLOSED})

#: Statuses in which ``Case.auto_close_at`` may be set.
DEADLINE_STATUSES = frozenset({CaseStatus.AWAITING_CONFIRMATION, CaseStatus.DISPUTE})


class RiskLevel(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    CRITICAL = "critical", "Critical"


class NoteStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    SUBMITTED = "submitted", "Submitted"
    CONFIRMED = "confirmed", "Confirmed"
    DISPUTED = "disputed", "Disputed"


class FeedbackKind(models.TextChoices):
    CONFIRM = "confirm", "Confirm"
    DISPUTE = "dispute", "Dispute"


class ScheduleStatus(models.TextChoices):
    SCHEDULED = "scheduled", "Scheduled"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class MeetingType(models.TextChoices):
    ONLINE = "online", "Online"
    OFFLINE = "offline", "Offline"


# ────────────────────────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────────────────────────

class Case(TimeStampedModel):
    """
    Aggregate root — one reported incident.

    * ``code`` is assigned at intake and never changes; reporters use it
      (together with their e-mail) to follow and answer their case.
    * ``dispute_count`` only ever grows, by one per dispute.
    * ``auto_close_at`` is set only while the case waits on the reporter
      (awaiting confirmation / dispute).
    """

    code = models.CharField(
        max_length=20,
        unique=True,
        editable=False,
        verbose_name="Case Code",
    )
    status = models.CharField(
        max_length=30,
        choices=CaseStatus.choices,
        default=CaseStatus.RECEIVED,
        verbose_name="Current Status",
        db_index=True,
    )
    dispute_count = models.PositiveSmallIntegerField(
        default=0,
        verbose_name="Dispute Count",
        help_text="Reporter disputes so far. A response at 3 or more escalates to an admin.",
    )
    auto_close_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name="Confirmation Deadline",
    )
    assigned_reviewer_id = models.PositiveIntegerField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name="Assigned Psychologist",
    )
    rejection_reason = models.TextField(
        blank=True,
        default="",
        verbose_name="Rejection Reason",
    )

    # ── Intake details ──────────────────────────────────────────────
    reporter_email = models.EmailField(
        blank=True,
        default="",
        verbose_name="Reporter E-mail",
    )
    is_emergency = models.BooleanField(
        default=False,
        verbose_name="Emergency",
    )
    incident_location = models.CharField(
        max_length=500,
        blank=True,
        default="",
        verbose_name="Incident Location",
    )
    incident_detail = models.TextField(
        blank=True,
        default="",
        verbose_name="Incident Detail",
    )
    perpetrator = models.CharField(
        max_length=255,
        blank=True,
        default="",
        verbose_name="Perpetrator",
    )

    class Meta:
        verbose_name = "Case"
        verbose_name_plural = "Cases"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "auto_close_at"]),
        ]

    def __str__(self):
        return f"Case {self.code} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def delete(self, *args, **kwargs):
        raise TypeError("Cases are never deleted; close or reject them instead.")


class ScheduleEntry(TimeStampedModel):
    """
    One meeting proposal made by an admin.

    A case may accumulate several entries over time, but at most one is
    active (not cancelled and not completed) — scheduling again cancels
    the previous active entry.
    """

    case = models.ForeignKey(
        Case,
        on_delete=models.PROTECT,
        related_name="schedule_entries",
        verbose_name="Case",
    )
    reviewer_id = models.PositiveIntegerField(
        verbose_name="Psychologist",
    )
    scheduled_by_id = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name="Scheduled By (Admin)",
    )
    starts_at = models.DateTimeField(verbose_name="Starts At")
    ends_at = models.DateTimeField(verbose_name="Ends At")
    meeting_type = models.CharField(
        max_length=10,
        choices=MeetingType.choices,
        default=MeetingType.OFFLINE,
        verbose_name="Meeting Type",
    )
    location = models.CharField(
        max_length=500,
        verbose_name="Place or Meeting Link",
    )
    admin_note = models.TextField(
        blank=True,
        default="",
        verbose_name="Admin Note",
    )
    status = models.CharField(
        max_length=10,
        choices=ScheduleStatus.choices,
        default=ScheduleStatus.SCHEDULED,
        verbose_name="Schedule Status",
        db_index=True,
    )

    class Meta:
        verbose_name = "Schedule Entry"
        verbose_name_plural = "Schedule Entries"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Meeting for {self.case_id} at {self.starts_at:%Y-%m-%d %H:%M} ({self.status})"


class ConsultationNote(TimeStampedModel):
    """
    Psychologist's consultation notes for a case.

    A case has a single live note: drafts, submissions and revisions after
    a dispute all update the same row.
    """

    #: Fields compared when a note is revised, in audit order.
    TRACKED_FIELDS = ("summary", "detail", "recommendation", "risk_level")

    case = models.ForeignKey(
        Case,
        on_delete=models.PROTECT,
        related_name="notes",
        verbose_name="Case",
    )
    reviewer_id = models.PositiveIntegerField(
        verbose_name="Author (Psychologist)",
    )
    schedule_entry = models.ForeignKey(
        ScheduleEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notes",
        verbose_name="Meeting",
    )
    summary = models.TextField(verbose_name="Case Summary")
    detail = models.TextField(verbose_name="Consultation Detail")
    recommendation = models.TextField(
        blank=True,
        default="",
        verbose_name="Recommendation",
    )
    risk_level = models.CharField(
        max_length=10,
        choices=RiskLevel.choices,
        default=RiskLevel.MEDIUM,
        verbose_name="Risk Level",
    )
    note_status = models.CharField(
        max_length=10,
        choices=NoteStatus.choices,
        default=NoteStatus.DRAFT,
        verbose_name="Note Status",
    )

    class Meta:
        verbose_name = "Consultation Note"
        verbose_name_plural = "Consultation Notes"
        ordering = ["-updated_at", "-id"]

    def __str__(self):
        return f"Note #{self.pk} on {self.case_id} ({self.note_status})"

    def snapshot(self) -> dict[str, str]:
        return {field: getattr(self, field) for field in self.TRACKED_FIELDS}


class Feedback(TimeStampedModel):
    """
    Reporter's answer to a submitted note.

    Reporter-authored fields are written once at creation.  The
    psychologist's response may be filled in exactly once afterwards.
    """

    case = models.ForeignKey(
        Case,
        on_delete=models.PROTECT,
        related_name="feedback",
        verbose_name="Case",
    )
    note = models.ForeignKey(
        ConsultationNote,
        on_delete=models.PROTECT,
        related_name="feedback",
        verbose_name="Consultation Note",
    )
    kind = models.CharField(
        max_length=10,
        choices=FeedbackKind.choices,
        verbose_name="Feedback Type",
    )
    comment = models.TextField(
        blank=True,
        default="",
        verbose_name="Reporter Comment",
    )
    dispute_detail = models.TextField(
        blank=True,
        default="",
        verbose_name="Dispute Detail",
    )
    reviewer_response = models.TextField(
        blank=True,
        default="",
        verbose_name="Psychologist Response",
    )
    responded_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name="Responded At",
    )

    REPORTER_FIELDS = ("kind", "comment", "dispute_detail")

    class Meta:
        verbose_name = "Feedback"
        verbose_name_plural = "Feedback"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.kind} on {self.case_id}"

    @property
    def is_answered(self) -> bool:
        return self.responded_at is not None

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            self._check_append_only()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Feedback is append-only.")

    def _check_append_only(self) -> None:
        stored = (
            Feedback.objects
            .filter(pk=self.pk)
            .values(*self.REPORTER_FIELDS, "reviewer_response", "responded_at")
            .first()
        )
        if stored is None:
            return
        for field in self.REPORTER_FIELDS:
            if getattr(self, field) != stored[field]:
                raise TypeError(f"Feedback field '{field}' cannot be changed.")
        if stored["responded_at"] is not None and (
            self.responded_at != stored["responded_at"]
            or self.reviewer_response != stored["reviewer_response"]
        ):
            raise TypeError("Feedback has already been answered.")


class AuditEntry(models.Model):
    """
    Immutable record of one case transition.

    ``sequence`` numbers the entries of a case from 1 with no gaps; the
    ordered sequence is the canonical history of the case.  ``diff`` is
    ``None`` when no field comparison applies and a (possibly empty) list
    of ``{"field", "old_value", "new_value"}`` dicts when one was made.
    """

    case = models.ForeignKey(
        Case,
        on_delete=models.PROTECT,
        related_name="audit_entries",
        verbose_name="Case",
    )
    sequence = models.PositiveIntegerField(verbose_name="Sequence")
    intent = models.CharField(
        max_length=30,
        verbose_name="Intent",
    )
    from_status = models.CharField(
        max_length=30,
        choices=CaseStatus.choices,
        verbose_name="Previous Status",
    )
    to_status = models.CharField(
        max_length=30,
        choices=CaseStatus.choices,
        verbose_name="New Status",
    )
    actor_role = models.CharField(
        max_length=20,
        choices=ActorRole.choices,
        verbose_name="Actor Role",
    )
    actor_id = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name="Actor ID",
    )
    note = models.TextField(
        blank=True,
        default="",
        verbose_name="Note",
    )
    diff = models.JSONField(
        null=True,
        blank=True,
        verbose_name="Field Changes",
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        verbose_name="Created At",
    )

    class Meta:
        verbose_name = "Audit Entry"
        verbose_name_plural = "Audit Entries"
        ordering = ["case", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["case", "sequence"],
                name="uniq_audit_sequence_per_case",
            ),
        ]

    def __str__(self):
        return (
            f"{self.case_id} #{self.sequence}: "
            f"{self.from_status} → {self.to_status}"
        )

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise TypeError("Audit entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Audit entries are append-only.")
