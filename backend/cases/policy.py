"""
Dispute / escalation policy.

Pure functions with no ORM access, so the rules can be tested in isolation
and reused by the transition validator and the lifecycle engine alike.

Rules
-----
* Every reporter dispute increments ``dispute_count`` by exactly one; no
  rule ever decrements it.
* When a psychologist answers a dispute and the case has already been
  disputed ``MAX_DISPUTES`` times or more, the case is escalated to an
  admin instead of going back to the reporter.
* Whenever a case (re-)enters ``awaiting_confirmation`` its confirmation
  deadline is refreshed to *now + AUTO_CLOSE_DAYS*.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from .models import CaseStatus

#: Dispute count at which a psychologist response escalates to an admin.
MAX_DISPUTES: int = 3

#: Days the reporter has to confirm or dispute submitted notes.
AUTO_CLOSE_DAYS: int = 14


@dataclass(frozen=True)
class PolicyDecision:
    new_status: CaseStatus
    should_set_deadline: bool
    escalated: bool = False


def resolve_dispute_response(dispute_count: int, prior_status: str) -> PolicyDecision:
    """
    Decide where a case goes after the psychologist answers.

    ``dispute_count`` is the case's counter at the moment the response is
    processed (the current cycle's dispute already included).
    """
    if dispute_count < 0:
        raise ValueError("dispute_count cannot be negative")

    if prior_status == CaseStatus.DISPUTE and dispute_count >= MAX_DISPUTES:
        return PolicyDecision(
            new_status=CaseStatus.ESCALATED_TO_ADMIN,
            should_set_deadline=False,
            escalated=True,
        )
    return PolicyDecision(
        new_status=CaseStatus.AWAITING_CONFIRMATION,
        should_set_deadline=True,
    )


def next_dispute_count(dispute_count: int) -> int:
    return dispute_count + 1


def auto_close_deadline(now: datetime.datetime) -> datetime.datetime:
    return now + datetime.timedelta(days=AUTO_CLOSE_DAYS)


def escalation_note(dispute_count: int) -> str:
    return (
        f"Dispute limit reached ({dispute_count} disputes, limit {MAX_DISPUTES}). "
        f"Escalated to an admin for mediation."
    )
