"""
Cases app Service Layer.

This module is the **single source of truth** for all business logic
in the ``cases`` app.  Views must remain thin: validate input via
serializers, resolve the ``Actor``, call a service method, and return
the result wrapped in a DRF ``Response``.

Architecture
------------
- ``CaseIntakeService``    — Report intake and case-code assignment.
- ``CaseLifecycleEngine``  — Every status transition, atomically with
                             its audit entry and outbox rows.
- ``CaseQueryService``     — Read side: snapshots, audit trail, listings.

Transition pipeline (``CaseLifecycleEngine.apply_transition``)
---------------------------------------------------------------
  1. payload shape check              → ValidationError
  2. open atomic unit, lock case row  → Busy / NotFound
  3. ``expected_status`` check        → Conflict
  4. validate under the lock          → InvalidTransition
  5. domain writes (case, schedule, note, feedback)
  6. append exactly one AuditEntry
  7. queue outbox rows (e-mail, ledger)
  8. commit                           → PersistenceFailure on DB error
  9. on commit: hand outbox ids to the side-effect dispatcher
"""

from __future__ import annotations

import datetime
import logging
import random
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

from django.contrib.auth import get_user_model
from django.db.models import Count, Max, Q, QuerySet
from django.utils import timezone

from core.domain.actors import Actor, ActorRole, apply_role_scope
from core.domain.dispatch import get_dispatcher, queue_email, queue_ledger_record
from core.domain.exceptions import Conflict, NotFound, PermissionDenied, ValidationError
from core.domain.transactions import atomic_unit, lock_for_update

from .diff import compute_field_diff
from .models import (
    AuditEntry,
    Case,
    CaseStatus,
    ConsultationNote,
    Feedback,
    FeedbackKind,
    MeetingType,
    NoteStatus,
    RiskLevel,
    ScheduleEntry,
    ScheduleStatus,
)
from .policy import auto_close_deadline, escalation_note, next_dispute_count, resolve_dispute_response
from .transitions import Intent, NoteAction, allowed_intents, validate_transition

logger = logging.getLogger(__name__)

#: Prefix of every public case code.
CASE_CODE_PREFIX: str = "PPKPT"

#: Attempts at a timestamp-based code before falling back to random hex.
CASE_CODE_ATTEMPTS: int = 10

#: Characters of a dispute detail quoted in the audit note.
DISPUTE_EXCERPT_LENGTH: int = 50


# ═══════════════════════════════════════════════════════════════════
#  Case Intake Service
# ═══════════════════════════════════════════════════════════════════


class CaseIntakeService:
    """
    Creates new cases from the public report form.

    Intake is not a transition: the case is born in ``received`` and no
    ``AuditEntry`` is written.  The reporter receives a receipt e-mail
    and the report is notarized on the ledger (both after commit).
    """

    @staticmethod
    def generate_code() -> str:
        """
        Return an unused case code.

        Format: ``PPKPT`` + last 6 digits of the Unix time + 3 random
        digits, e.g. ``PPKPT482913057``.
        """
        for _ in range(CASE_CODE_ATTEMPTS):
            code = (
                f"{CASE_CODE_PREFIX}"
                f"{int(time.time()) % 1_000_000:06d}"
                f"{random.randint(0, 999):03d}"
            )
            if not Case.objects.filter(code=code).exists():
                return code
        code = f"{CASE_CODE_PREFIX}{secrets.token_hex(4).upper()}"
        logger.warning("Case code space busy; using random fallback %s", code)
        return code

    @staticmethod
    def create_case(validated_data: dict[str, Any]) -> Case:
        """
        Register a new report.

        Parameters
        ----------
        validated_data : dict
            Cleaned data from ``CaseIntakeSerializer``.  Accepted keys:
            ``reporter_email``, ``is_emergency``, ``incident_location``,
            ``incident_detail``, ``perpetrator``.

        Returns
        -------
        Case
            The new case, status ``received``.

        Raises
        ------
        PersistenceFailure
            If the case could not be stored.
        """
        with atomic_unit():
            case = Case.objects.create(
                code=CaseIntakeService.generate_code(),
                status=CaseStatus.RECEIVED,
                **validated_data,
            )
            queued = [
                queue_ledger_record(
                    case.code,
                    "CREATE",
                    {
                        "code": case.code,
                        "is_emergency": case.is_emergency,
                        "incident_location": case.incident_location,
                        "incident_detail": case.incident_detail,
                        "perpetrator": case.perpetrator,
                        "created_at": case.created_at,
                    },
                    ActorRole.REPORTER,
                ),
                queue_email(case.reporter_email, "case_received", case_code=case.code),
            ]
            get_dispatcher().dispatch_on_commit(m.pk for m in queued if m is not None)

        logger.info(
            "Case %s received%s",
            case.code, " (emergency)" if case.is_emergency else "",
        )
        return case


# ═══════════════════════════════════════════════════════════════════
#  Case Lifecycle Engine
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TransitionResult:
    case: Case
    new_status: CaseStatus
    audit_entry_id: int


@dataclass
class _Outcome:
    """What an intent handler produced besides the field writes."""

    note: str = ""
    diff: list[dict[str, Any]] | None = None
    #: ``(event_type, context)`` pairs sent to the reporter.
    emails: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    #: ``(action_type, data)`` pairs notarized on the ledger.
    ledger: list[tuple[str, dict[str, Any]]] = field(default_factory=list)


def _text(payload: dict[str, Any], key: str, *, required: bool = False, label: str | None = None) -> str:
    value = payload.get(key)
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"'{key}' must be a string.", field=key)
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{label or key} is required.", field=key)
    return value


def _choice(payload: dict[str, Any], key: str, choices, default):
    value = payload.get(key) or default
    if value not in choices.values:
        raise ValidationError(
            f"'{key}' must be one of: {', '.join(choices.values)}.",
            field=key,
        )
    return value


def _datetime(payload: dict[str, Any], key: str) -> datetime.datetime:
    value = payload.get(key)
    if not isinstance(value, datetime.datetime):
        raise ValidationError(f"'{key}' must be a date-time.", field=key)
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


class CaseLifecycleEngine:
    """
    Applies intents to cases.

    ``apply_transition`` is the only code path that changes
    ``Case.status``.  One accepted intent produces exactly one
    ``AuditEntry``; a rejected intent leaves no trace at all.

    Intent payloads
    ---------------
    ``begin_review``     ``note?``
    ``reject``           ``reason``
    ``approve``          ``note?``
    ``schedule``         ``reviewer_id``, ``starts_at``, ``ends_at``,
                         ``meeting_type?``, ``location``, ``admin_note?``
    ``submit_notes``     ``action`` (draft/submit), ``summary``, ``detail``,
                         ``recommendation?``, ``risk_level?``
    ``confirm``          ``comment?``
    ``dispute``          ``detail``, ``comment?``
    ``respond_dispute``  ``response`` and optionally revised note fields

    Every payload may also carry ``expected_status``: the status the
    caller last saw.  A mismatch under the lock raises ``Conflict``.
    """

    @classmethod
    def apply_transition(
        cls,
        case_id: int,
        intent: str,
        actor: Actor,
        payload: dict[str, Any] | None = None,
        *,
        now: datetime.datetime | None = None,
    ) -> TransitionResult:
        """
        Validate and apply ``intent`` to the case.

        Parameters
        ----------
        case_id : int
            Primary key of the case.
        intent : str
            An ``Intent`` value.
        actor : Actor
            Who performs the intent.
        payload : dict, optional
            Intent-specific data (see class docstring).
        now : datetime, optional
            Clock override, used for deadlines and timestamps.

        Returns
        -------
        TransitionResult
            The updated case, its new status and the id of the audit
            entry written.

        Raises
        ------
        ValidationError
            Payload missing or malformed.
        NotFound
            Unknown case, or a psychologist acting on a case not
            assigned to them.
        Busy
            The case row could not be locked in time.
        Conflict
            ``expected_status`` no longer matches.
        InvalidTransition
            The intent is illegal for the current status or role.
        PersistenceFailure
            The unit could not be committed; nothing was written.
        """
        payload = dict(payload or {})
        try:
            intent = Intent(intent)
        except ValueError:
            raise ValidationError(f"Unknown intent '{intent}'.", field="intent")
        now = now or timezone.now()

        handler = getattr(cls, f"_handle_{intent.value}")
        check = getattr(cls, f"_check_{intent.value}", None)
        if check is not None:
            check(payload)

        with atomic_unit():
            case = lock_for_update(Case, case_id)
            from_status = case.status

            expected = payload.get("expected_status")
            if expected and expected != from_status:
                raise Conflict(
                    f"Case {case.code} is now '{from_status}', not '{expected}'. "
                    f"Reload and try again."
                )

            target = validate_transition(
                from_status,
                intent,
                actor.role,
                dispute_count=case.dispute_count,
                note_action=payload.get("action") or NoteAction.SUBMIT,
            )

            outcome = handler(case, target, actor, payload, now)
            case.status = target
            case.save()

            entry = cls._append_audit(case, intent, from_status, target, actor, outcome)

            queued = []
            for event_type, context in outcome.emails:
                queued.append(queue_email(
                    case.reporter_email,
                    event_type,
                    audit_entry=entry,
                    case_code=case.code,
                    **context,
                ))
            for action_type, data in outcome.ledger:
                queued.append(queue_ledger_record(
                    case.code,
                    action_type,
                    data,
                    actor.role,
                    audit_entry=entry,
                ))
            get_dispatcher().dispatch_on_commit(m.pk for m in queued if m is not None)

        logger.info(
            "Case %s: %s %s → %s by %s (audit #%d)",
            case.code, intent.value, from_status, target, actor, entry.sequence,
        )
        return TransitionResult(case=case, new_status=CaseStatus(target), audit_entry_id=entry.pk)

    # ── Audit ────────────────────────────────────────────────────────

    @staticmethod
    def _append_audit(
        case: Case,
        intent: Intent,
        from_status: str,
        to_status: str,
        actor: Actor,
        outcome: _Outcome,
    ) -> AuditEntry:
        last = case.audit_entries.aggregate(last=Max("sequence"))["last"] or 0
        return AuditEntry.objects.create(
            case=case,
            sequence=last + 1,
            intent=intent.value,
            from_status=from_status,
            to_status=to_status,
            actor_role=actor.role,
            actor_id=actor.id,
            note=outcome.note,
            diff=outcome.diff,
        )

    # ── Shared helpers ───────────────────────────────────────────────

    @staticmethod
    def _ensure_assigned(case: Case, actor: Actor) -> None:
        # A foreign case is reported as missing, not as forbidden.
        if case.assigned_reviewer_id is None or case.assigned_reviewer_id != actor.id:
            raise NotFound(f"Case with pk={case.pk} does not exist.")

    @staticmethod
    def _live_note(case: Case) -> ConsultationNote:
        note = ConsultationNote.objects.filter(case=case).first()
        if note is None:
            raise Conflict(f"Case {case.code} has no consultation note yet.")
        return note

    @staticmethod
    def _status_email(target: str, message: str) -> tuple[str, dict[str, Any]]:
        return "case_status_changed", {"status": CaseStatus(target).label, "message": message}

    # ── Admin triage ─────────────────────────────────────────────────

    @classmethod
    def _handle_begin_review(cls, case, target, actor, payload, now) -> _Outcome:
        note = _text(payload, "note") or "Report is being reviewed by an administrator."
        return _Outcome(
            note=note,
            emails=[cls._status_email(target, note)],
            ledger=[("UPDATE_ADMIN", {"status": target, "note": note})],
        )

    @staticmethod
    def _check_reject(payload) -> None:
        _text(payload, "reason", required=True, label="A rejection reason")

    @classmethod
    def _handle_reject(cls, case, target, actor, payload, now) -> _Outcome:
        reason = _text(payload, "reason", required=True, label="A rejection reason")
        case.rejection_reason = reason
        return _Outcome(
            note=f"Rejected: {reason}",
            emails=[cls._status_email(target, reason)],
            ledger=[("UPDATE_ADMIN", {"status": target, "reason": reason})],
        )

    @classmethod
    def _handle_approve(cls, case, target, actor, payload, now) -> _Outcome:
        note = _text(payload, "note") or "Report approved for consultation."
        return _Outcome(
            note=note,
            emails=[cls._status_email(target, note)],
            ledger=[("UPDATE_ADMIN", {"status": target, "note": note})],
        )

    @staticmethod
    def _check_schedule(payload) -> None:
        reviewer_id = payload.get("reviewer_id")
        if not isinstance(reviewer_id, int) or isinstance(reviewer_id, bool) or reviewer_id <= 0:
            raise ValidationError("A psychologist must be chosen.", field="reviewer_id")
        starts_at = _datetime(payload, "starts_at")
        ends_at = _datetime(payload, "ends_at")
        if ends_at <= starts_at:
            raise ValidationError("The meeting must end after it starts.", field="ends_at")
        _choice(payload, "meeting_type", MeetingType, MeetingType.OFFLINE)
        _text(payload, "location", required=True, label="A place or meeting link")
        _text(payload, "admin_note")

    @staticmethod
    def _handle_schedule(case, target, actor, payload, now) -> _Outcome:
        reviewer_id = payload["reviewer_id"]
        is_psychologist = (
            get_user_model().objects
            .filter(pk=reviewer_id, is_active=True, groups__name=ActorRole.PSYCHOLOGIST)
            .exists()
        )
        if not is_psychologist:
            raise ValidationError(
                f"User {reviewer_id} is not an active psychologist.",
                field="reviewer_id",
            )

        cancelled = (
            ScheduleEntry.objects
            .filter(case=case, status=ScheduleStatus.SCHEDULED)
            .update(status=ScheduleStatus.CANCELLED, updated_at=now)
        )
        entry = ScheduleEntry.objects.create(
            case=case,
            reviewer_id=reviewer_id,
            scheduled_by_id=actor.id,
            starts_at=_datetime(payload, "starts_at"),
            ends_at=_datetime(payload, "ends_at"),
            meeting_type=_choice(payload, "meeting_type", MeetingType, MeetingType.OFFLINE),
            location=_text(payload, "location"),
            admin_note=_text(payload, "admin_note"),
        )
        case.assigned_reviewer_id = reviewer_id

        verb = "rescheduled" if cancelled else "scheduled"
        starts = timezone.localtime(entry.starts_at).strftime("%d %b %Y, %H:%M")
        ends = timezone.localtime(entry.ends_at).strftime("%d %b %Y, %H:%M")
        return _Outcome(
            note=f"Meeting {verb} for {starts} ({entry.meeting_type}) with psychologist #{reviewer_id}.",
            emails=[("meeting_scheduled", {
                "starts_at": starts,
                "ends_at": ends,
                "meeting_type": entry.get_meeting_type_display(),
                "location": entry.location,
            })],
            ledger=[("SCHEDULE", {
                "schedule_entry": entry.pk,
                "reviewer_id": reviewer_id,
                "starts_at": entry.starts_at,
                "ends_at": entry.ends_at,
                "meeting_type": entry.meeting_type,
            })],
        )

    # ── Consultation ─────────────────────────────────────────────────

    @staticmethod
    def _note_values(payload, *, required: bool, fallback: dict[str, str] | None = None) -> dict[str, str]:
        fallback = fallback or {}
        values = {}
        for key, label in (("summary", "A case summary"), ("detail", "The consultation detail")):
            if key in payload or required:
                values[key] = _text(payload, key, required=required, label=label)
            elif key in fallback:
                values[key] = fallback[key]
        if "recommendation" in payload:
            values["recommendation"] = _text(payload, "recommendation")
        elif "recommendation" in fallback:
            values["recommendation"] = fallback["recommendation"]
        if payload.get("risk_level"):
            values["risk_level"] = _choice(payload, "risk_level", RiskLevel, RiskLevel.MEDIUM)
        elif "risk_level" in fallback:
            values["risk_level"] = fallback["risk_level"]
        return values

    @classmethod
    def _check_submit_notes(cls, payload) -> None:
        action = _choice(payload, "action", NoteAction, NoteAction.SUBMIT)
        cls._note_values(payload, required=action == NoteAction.SUBMIT)

    @classmethod
    def _handle_submit_notes(cls, case, target, actor, payload, now) -> _Outcome:
        cls._ensure_assigned(case, actor)
        action = payload.get("action") or NoteAction.SUBMIT
        submitting = action == NoteAction.SUBMIT

        note = ConsultationNote.objects.filter(case=case).first()
        active_entry = (
            ScheduleEntry.objects
            .filter(case=case, status=ScheduleStatus.SCHEDULED)
            .first()
        )

        if note is None:
            values = cls._note_values(payload, required=submitting)
            note = ConsultationNote(
                case=case,
                reviewer_id=actor.id,
                schedule_entry=active_entry,
                summary=values.get("summary", ""),
                detail=values.get("detail", ""),
                recommendation=values.get("recommendation", ""),
                risk_level=values.get("risk_level", RiskLevel.MEDIUM),
            )
            diff = None
        else:
            before = note.snapshot()
            values = cls._note_values(payload, required=submitting, fallback=before)
            for key, value in values.items():
                setattr(note, key, value)
            diff = compute_field_diff(before, note.snapshot(), ConsultationNote.TRACKED_FIELDS)
            if active_entry is not None:
                note.schedule_entry = active_entry

        note.note_status = NoteStatus.SUBMITTED if submitting else NoteStatus.DRAFT
        note.save()

        if not submitting:
            opened = " Session opened." if case.status == CaseStatus.SCHEDULED else ""
            return _Outcome(note=f"Draft notes saved.{opened}", diff=diff)

        if active_entry is not None:
            active_entry.status = ScheduleStatus.COMPLETED
            active_entry.save(update_fields=["status", "updated_at"])
        case.auto_close_at = auto_close_deadline(now)

        opened = "Session opened and notes" if case.status == CaseStatus.SCHEDULED else "Notes"
        return _Outcome(
            note=f"{opened} submitted to the reporter for confirmation.",
            diff=diff,
            emails=[("notes_submitted", {"summary": note.summary})],
            ledger=[("NOTE_SUBMITTED", {"note": note.pk, **note.snapshot()})],
        )

    # ── Reporter confirmation loop ───────────────────────────────────

    @staticmethod
    def _handle_confirm(case, target, actor, payload, now) -> _Outcome:
        note = CaseLifecycleEngine._live_note(case)
        note.note_status = NoteStatus.CONFIRMED
        note.save(update_fields=["note_status", "updated_at"])
        feedback = Feedback.objects.create(
            case=case,
            note=note,
            kind=FeedbackKind.CONFIRM,
            comment=_text(payload, "comment"),
        )
        case.auto_close_at = None
        return _Outcome(
            note="Reporter confirmed the consultation notes. Case closed.",
            emails=[("feedback_received", {
                "kind": feedback.get_kind_display(),
                "status": CaseStatus(target).label,
            })],
            ledger=[("FEEDBACK", {"kind": feedback.kind, "comment": feedback.comment})],
        )

    @staticmethod
    def _check_dispute(payload) -> None:
        _text(payload, "detail", required=True, label="The reason for the dispute")

    @staticmethod
    def _handle_dispute(case, target, actor, payload, now) -> _Outcome:
        detail = _text(payload, "detail", required=True, label="The reason for the dispute")
        note = CaseLifecycleEngine._live_note(case)
        note.note_status = NoteStatus.DISPUTED
        note.save(update_fields=["note_status", "updated_at"])
        feedback = Feedback.objects.create(
            case=case,
            note=note,
            kind=FeedbackKind.DISPUTE,
            comment=_text(payload, "comment"),
            dispute_detail=detail,
        )
        case.dispute_count = next_dispute_count(case.dispute_count)
        return _Outcome(
            note=f"Reporter disputed the notes: {detail[:DISPUTE_EXCERPT_LENGTH]}",
            emails=[("feedback_received", {
                "kind": feedback.get_kind_display(),
                "status": CaseStatus(target).label,
            })],
            ledger=[("FEEDBACK", {
                "kind": feedback.kind,
                "dispute_detail": detail,
                "dispute_count": case.dispute_count,
            })],
        )

    @classmethod
    def _check_respond_dispute(cls, payload) -> None:
        _text(payload, "response", required=True, label="A response to the dispute")
        # Revisions are optional, but a revised summary or detail may not be blank.
        for key, label in (("summary", "A case summary"), ("detail", "The consultation detail")):
            if key in payload:
                _text(payload, key, required=True, label=label)
        cls._note_values(payload, required=False)

    @classmethod
    def _handle_respond_dispute(cls, case, target, actor, payload, now) -> _Outcome:
        cls._ensure_assigned(case, actor)
        response = _text(payload, "response", required=True, label="A response to the dispute")

        feedback = (
            Feedback.objects
            .filter(case=case, kind=FeedbackKind.DISPUTE, responded_at__isnull=True)
            .order_by("-created_at", "-id")
            .first()
        )
        if feedback is None:
            raise Conflict(f"Case {case.code} has no unanswered dispute.")
        feedback.reviewer_response = response
        feedback.responded_at = now
        feedback.save(update_fields=["reviewer_response", "responded_at", "updated_at"])

        note = feedback.note
        before = note.snapshot()
        for key, value in cls._note_values(payload, required=False).items():
            setattr(note, key, value)
        diff = compute_field_diff(before, note.snapshot(), ConsultationNote.TRACKED_FIELDS)

        decision = resolve_dispute_response(case.dispute_count, case.status)
        if decision.escalated:
            case.auto_close_at = None
            note.save()
            return _Outcome(
                note=escalation_note(case.dispute_count),
                diff=diff,
                emails=[("case_escalated", {})],
                ledger=[("ESCALATE", {
                    "dispute_count": case.dispute_count,
                    "response": response,
                })],
            )

        note.note_status = NoteStatus.SUBMITTED
        note.save()
        if decision.should_set_deadline:
            case.auto_close_at = auto_close_deadline(now)
        return _Outcome(
            note=f"Psychologist answered dispute #{case.dispute_count}: {response}",
            diff=diff,
            emails=[("dispute_answered", {})],
            ledger=[("DISPUTE_RESPONSE", {
                "response": response,
                "changes": diff,
            })],
        )


# ═══════════════════════════════════════════════════════════════════
#  Case Query Service
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CaseSnapshot:
    case: Case
    note: ConsultationNote | None
    feedback: Feedback | None
    schedule_entry: ScheduleEntry | None


#: Which cases each staff role may list.
_LIST_SCOPE = {
    ActorRole.ADMIN: lambda qs, actor: qs,
    ActorRole.PSYCHOLOGIST: lambda qs, actor: qs.filter(assigned_reviewer_id=actor.id),
}

#: Accepted values of the ``period`` statistics filter.
STATISTICS_PERIODS = ("all", "today", "week", "month", "year")

STATISTICS_TREND_DAYS = 7

_OPEN_CONSULTATION_STATUSES = (
    CaseStatus.SCHEDULED,
    CaseStatus.IN_SESSION,
    CaseStatus.AWAITING_CONFIRMATION,
    CaseStatus.DISPUTE,
)


class CaseQueryService:
    """
    Read-only access to cases.

    Nothing here locks or writes; listings are scoped by role.
    """

    @staticmethod
    def get_case(case_id: int) -> Case:
        try:
            return Case.objects.get(pk=case_id)
        except Case.DoesNotExist:
            raise NotFound(f"Case with pk={case_id} does not exist.")

    @staticmethod
    def get_audit_trail(case_id: int) -> list[AuditEntry]:
        """Audit entries of a case ordered by ``sequence``."""
        case = CaseQueryService.get_case(case_id)
        return list(case.audit_entries.order_by("sequence"))

    @staticmethod
    def get_case_snapshot(case_id: int) -> CaseSnapshot:
        """
        Current case state with its live note, latest feedback and
        active meeting.
        """
        case = CaseQueryService.get_case(case_id)
        return CaseSnapshot(
            case=case,
            note=ConsultationNote.objects.filter(case=case).first(),
            feedback=Feedback.objects.filter(case=case).first(),
            schedule_entry=(
                ScheduleEntry.objects
                .filter(case=case)
                .exclude(status=ScheduleStatus.CANCELLED)
                .first()
            ),
        )

    @staticmethod
    def find_for_reporter(code: str, email: str) -> Case:
        """
        Locate a case by its public code and the reporter's e-mail.

        Any mismatch is reported as ``NotFound`` so codes cannot be
        guessed.
        """
        code = (code or "").strip().upper()
        email = (email or "").strip()
        if not code or not email:
            raise NotFound("No report matches this code and e-mail.")
        case = (
            Case.objects
            .filter(code=code, reporter_email__iexact=email)
            .first()
        )
        if case is None:
            raise NotFound("No report matches this code and e-mail.")
        return case

    @staticmethod
    def list_cases(actor: Actor, filters: dict[str, Any] | None = None) -> QuerySet:
        """
        Cases visible to ``actor``, newest first.

        Supported ``filters`` keys: ``status``, ``is_emergency``,
        ``search`` (code or location substring), ``overdue`` (bool).
        """
        filters = filters or {}
        qs = apply_role_scope(Case.objects.all(), actor, scope_rules=_LIST_SCOPE)

        if filters.get("status"):
            qs = qs.filter(status=filters["status"])
        if filters.get("is_emergency") is not None:
            qs = qs.filter(is_emergency=filters["is_emergency"])
        if filters.get("search"):
            term = filters["search"]
            qs = qs.filter(Q(code__icontains=term) | Q(incident_location__icontains=term))
        if filters.get("overdue"):
            qs = qs.filter(
                status=CaseStatus.AWAITING_CONFIRMATION,
                auto_close_at__lt=timezone.now(),
            )
        return qs.order_by("-created_at", "-id")

    @staticmethod
    def overdue_confirmations(now: datetime.datetime | None = None) -> QuerySet:
        """Cases still awaiting the reporter after their deadline."""
        now = now or timezone.now()
        return (
            Case.objects
            .filter(status=CaseStatus.AWAITING_CONFIRMATION, auto_close_at__lt=now)
            .order_by("auto_close_at")
        )

    @staticmethod
    def available_intents(case: Case, actor: Actor) -> list[str]:
        if actor.role == ActorRole.PSYCHOLOGIST and case.assigned_reviewer_id != actor.id:
            return []
        return [intent.value for intent in allowed_intents(case.status, actor.role)]

    # ── Admin dashboard ──────────────────────────────────────────────

    @staticmethod
    def statistics(
        actor: Actor,
        period: str = "all",
        now: datetime.datetime | None = None,
    ) -> dict[str, Any]:
        """
        Case counts for the admin dashboard.

        ``period`` limits the counts to cases received ``today``, in the
        last ``week`` (7 days), ``month`` (30 days), this ``year``, or
        ``all`` of them.  ``trend_7_days`` always covers the seven local
        days ending today, regardless of ``period``.
        """
        _require_admin(actor)
        now = now or timezone.now()
        qs = Case.objects.all()
        since = _period_start(period, now)
        if since is not None:
            qs = qs.filter(created_at__gte=since)

        by_status = {value: 0 for value in CaseStatus.values}
        for row in qs.values("status").annotate(count=Count("id")):
            by_status[row["status"]] = row["count"]

        today = timezone.localdate(now)
        trend = []
        for offset in range(STATISTICS_TREND_DAYS - 1, -1, -1):
            day = today - datetime.timedelta(days=offset)
            trend.append({
                "date": day,
                "count": Case.objects.filter(created_at__date=day).count(),
            })

        return {
            "period": period,
            "total": sum(by_status.values()),
            "by_status": by_status,
            "emergency": qs.filter(is_emergency=True).count(),
            "overdue_confirmations": qs.filter(
                status=CaseStatus.AWAITING_CONFIRMATION, auto_close_at__lt=now,
            ).count(),
            "trend_7_days": trend,
        }

    @staticmethod
    def active_psychologists(actor: Actor) -> list[dict[str, Any]]:
        """
        Active users in the psychologist group, for the scheduling form.

        ``open_cases`` counts the cases currently assigned to each one
        that have not reached a terminal or escalated status.
        """
        _require_admin(actor)
        users = (
            get_user_model().objects
            .filter(is_active=True, groups__name=ActorRole.PSYCHOLOGIST)
            .distinct()
            .order_by("first_name", "last_name", "username")
        )
        workload = dict(
            Case.objects
            .filter(status__in=_OPEN_CONSULTATION_STATUSES, assigned_reviewer_id__isnull=False)
            .values_list("assigned_reviewer_id")
            .annotate(count=Count("id"))
        )
        return [
            {
                "id": user.pk,
                "username": user.get_username(),
                "full_name": user.get_full_name() or user.get_username(),
                "open_cases": workload.get(user.pk, 0),
            }
            for user in users
        ]


def _require_admin(actor: Actor) -> None:
    if actor.role != ActorRole.ADMIN:
        raise PermissionDenied("Only admins can view this.")


def _period_start(period: str, now: datetime.datetime) -> datetime.datetime | None:
    local_now = timezone.localtime(now)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "all":
        return None
    if period == "today":
        return midnight
    if period == "week":
        return now - datetime.timedelta(days=7)
    if period == "month":
        return now - datetime.timedelta(days=30)
    if period == "year":
        return midnight.replace(month=1, day=1)
    raise ValidationError(
        f"'period' must be one of: {', '.join(STATISTICS_PERIODS)}.",
        field="period",
    )
