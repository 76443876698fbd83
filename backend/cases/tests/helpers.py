"""
Arrangement helpers shared by the cases test modules.

Cases are moved forward through ``CaseLifecycleEngine`` only, so every
arranged case carries a genuine audit trail.
"""

from __future__ import annotations

import datetime

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.utils import timezone

from cases.models import Case, CaseStatus
from cases.services import CaseIntakeService, CaseLifecycleEngine
from cases.transitions import Intent, NoteAction
from core.domain.actors import Actor, resolve_actor

User = get_user_model()

REPORTER_EMAIL = "reporter@example.com"


def make_staff(role: str, username: str, password: str = "Lifecycle!Pass1"):
    user = User.objects.create_user(
        username=username,
        password=password,
        email=f"{username}@example.com",
    )
    group, _ = Group.objects.get_or_create(name=role)
    user.groups.add(group)
    return user


def make_case(**overrides) -> Case:
    data = {
        "reporter_email": REPORTER_EMAIL,
        "is_emergency": False,
        "incident_location": "Library, 2nd floor",
        "incident_detail": "Repeated unwanted messages from a senior student.",
        "perpetrator": "",
    }
    data.update(overrides)
    return CaseIntakeService.create_case(data)


def schedule_payload(psychologist, *, days_ahead: int = 1) -> dict:
    starts_at = timezone.now() + datetime.timedelta(days=days_ahead)
    return {
        "reviewer_id": psychologist.pk,
        "starts_at": starts_at,
        "ends_at": starts_at + datetime.timedelta(hours=1),
        "meeting_type": "online",
        "location": "https://meet.example.com/room-1",
    }


NOTES_PAYLOAD = {
    "action": NoteAction.SUBMIT,
    "summary": "Reporter describes ongoing harassment.",
    "detail": "Session covered the timeline of events and coping strategies.",
    "recommendation": "Weekly follow-up sessions.",
    "risk_level": "high",
}


def advance(case: Case, target: str, admin, psychologist) -> Case:
    """
    Drive ``case`` from ``received`` to ``target`` along the happy path.

    Supported targets: approved, scheduled, awaiting_confirmation,
    dispute.
    """
    admin_actor = resolve_actor(admin)
    psych_actor = resolve_actor(psychologist)
    path = [
        (CaseStatus.APPROVED, Intent.APPROVE, admin_actor, {}),
        (CaseStatus.SCHEDULED, Intent.SCHEDULE, admin_actor, schedule_payload(psychologist)),
        (CaseStatus.AWAITING_CONFIRMATION, Intent.SUBMIT_NOTES, psych_actor, NOTES_PAYLOAD),
        (CaseStatus.DISPUTE, Intent.DISPUTE, Actor.reporter(), {"detail": "The summary leaves out the second incident."}),
    ]
    for status, intent, actor, payload in path:
        case = CaseLifecycleEngine.apply_transition(case.pk, intent, actor, payload).case
        if status == target:
            return case
    raise ValueError(f"Cannot advance to {target}")


def dispute_cycles(case: Case, psychologist, cycles: int) -> Case:
    """Run ``cycles`` dispute → response rounds from ``awaiting_confirmation``."""
    psych_actor = resolve_actor(psychologist)
    for n in range(cycles):
        CaseLifecycleEngine.apply_transition(
            case.pk, Intent.DISPUTE, Actor.reporter(), {"detail": f"Objection number {n + 1}."},
        )
        case = CaseLifecycleEngine.apply_transition(
            case.pk, Intent.RESPOND_DISPUTE, psych_actor, {"response": f"Answer number {n + 1}."},
        ).case
    return case
