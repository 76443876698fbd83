"""
Case transition validator.

Maps ``(current status, intent, actor role)`` to the resulting status, or
raises ``InvalidTransition``.  Nothing here touches the database; the
lifecycle engine calls ``validate_transition`` again after it has locked
the case row.

Transition table
----------------

  begin_review     received                 → under_review          (admin)
  reject           received | under_review  → rejected              (admin)
  approve          received | under_review  → approved              (admin)
  schedule         approved | scheduled     → scheduled             (admin)
  submit_notes     scheduled | in_session   → in_session            (psychologist, draft)
                                            → awaiting_confirmation (psychologist, submit)
  confirm          awaiting_confirmation    → closed                (reporter)
  dispute          awaiting_confirmation    → dispute               (reporter)
  respond_dispute  dispute                  → awaiting_confirmation (psychologist)
                                            → escalated_to_admin    (dispute limit reached)

Submitting notes straight from ``scheduled`` opens the session implicitly:
the case passes through ``in_session`` within the same transition.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.db import models

from core.domain.actors import ActorRole
from core.domain.exceptions import InvalidTransition

from .models import CaseStatus
from .policy import resolve_dispute_response


class Intent(models.TextChoices):
    BEGIN_REVIEW = "begin_review", "Begin Review"
    REJECT = "reject", "Reject"
    APPROVE = "approve", "Approve"
    SCHEDULE = "schedule", "Schedule Meeting"
    SUBMIT_NOTES = "submit_notes", "Submit Notes"
    CONFIRM = "confirm", "Confirm Notes"
    DISPUTE = "dispute", "Dispute Notes"
    RESPOND_DISPUTE = "respond_dispute", "Respond to Dispute"


class NoteAction(models.TextChoices):
    DRAFT = "draft", "Save Draft"
    SUBMIT = "submit", "Submit to Reporter"


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset[CaseStatus]
    role: ActorRole
    #: ``None`` when the target depends on the payload or the policy.
    target: CaseStatus | None


#: Intent → rule.  Intents not present here do not exist.
TRANSITION_RULES: dict[Intent, TransitionRule] = {
    # ── Admin triage ────────────────────────────────────────────────
    Intent.BEGIN_REVIEW: TransitionRule(
        frozenset({CaseStatus.RECEIVED}),
        ActorRole.ADMIN,
        CaseStatus.UNDER_REVIEW,
    ),
    Intent.REJECT: TransitionRule(
        frozenset({CaseStatus.RECEIVED, CaseStatus.UNDER_REVIEW}),
        ActorRole.ADMIN,
        CaseStatus.REJECTED,
    ),
    Intent.APPROVE: TransitionRule(
        frozenset({CaseStatus.RECEIVED, CaseStatus.UNDER_REVIEW}),
        ActorRole.ADMIN,
        CaseStatus.APPROVED,
    ),
    Intent.SCHEDULE: TransitionRule(
        frozenset({CaseStatus.APPROVED, CaseStatus.SCHEDULED}),
        ActorRole.ADMIN,
        CaseStatus.SCHEDULED,
    ),
    # ── Consultation ────────────────────────────────────────────────
    Intent.SUBMIT_NOTES: TransitionRule(
        frozenset({CaseStatus.SCHEDULED, CaseStatus.IN_SESSION}),
        ActorRole.PSYCHOLOGIST,
        None,
    ),
    # ── Reporter confirmation loop ──────────────────────────────────
    Intent.CONFIRM: TransitionRule(
        frozenset({CaseStatus.AWAITING_CONFIRMATION}),
        ActorRole.REPORTER,
        CaseStatus.CLOSED,
    ),
    Intent.DISPUTE: TransitionRule(
        frozenset({CaseStatus.AWAITING_CONFIRMATION}),
        ActorRole.REPORTER,
        CaseStatus.DISPUTE,
    ),
    Intent.RESPOND_DISPUTE: TransitionRule(
        frozenset({CaseStatus.DISPUTE}),
        ActorRole.PSYCHOLOGIST,
        None,
    ),
}


def _coerce(enum_cls, value, *, current, target):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidTransition(
            current=str(current),
            target=str(target),
            reason=f"unknown {enum_cls.__name__} '{value}'",
        )


def validate_transition(
    current: str,
    intent: str,
    role: str,
    *,
    dispute_count: int = 0,
    note_action: str = NoteAction.SUBMIT,
) -> CaseStatus:
    """
    Return the status a case in ``current`` reaches through ``intent``
    performed by ``role``.

    Raises:
        InvalidTransition: If the status, intent or role is unknown, the
            role may not perform the intent, or ``current`` is not a valid
            source for it.
    """
    current = _coerce(CaseStatus, current, current=current, target=intent)
    intent = _coerce(Intent, intent, current=current, target=intent)
    role = _coerce(ActorRole, role, current=current, target=intent)

    rule = TRANSITION_RULES[intent]

    if role != rule.role:
        raise InvalidTransition(
            current=current,
            target=intent,
            reason=f"only the {rule.role.label.lower()} may do this, not the {role.label.lower()}",
        )

    if current not in rule.sources:
        raise InvalidTransition(
            current=current,
            target=intent,
            reason="allowed source states: " + ", ".join(sorted(rule.sources)),
        )

    if intent == Intent.SUBMIT_NOTES:
        action = _coerce(NoteAction, note_action, current=current, target=intent)
        if action == NoteAction.DRAFT:
            return CaseStatus.IN_SESSION
        return CaseStatus.AWAITING_CONFIRMATION

    if intent == Intent.RESPOND_DISPUTE:
        return resolve_dispute_response(dispute_count, current).new_status

    return rule.target


def allowed_intents(current: str, role: str) -> list[Intent]:
    """Intents ``role`` may perform on a case in ``current`` (for UIs)."""
    return [
        intent
        for intent, rule in TRANSITION_RULES.items()
        if rule.role == role and current in rule.sources
    ]
