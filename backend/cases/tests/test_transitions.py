"""
Unit tests for the transition validator (no database).
"""

from __future__ import annotations

from django.test import SimpleTestCase

from cases.models import CaseStatus
from cases.transitions import Intent, NoteAction, TRANSITION_RULES, allowed_intents, validate_transition
from core.domain.actors import ActorRole
from core.domain.exceptions import Conflict, InvalidTransition


class TestValidateTransition(SimpleTestCase):

    def test_admin_triage_targets(self):
        cases = [
            (CaseStatus.RECEIVED, Intent.BEGIN_REVIEW, CaseStatus.UNDER_REVIEW),
            (CaseStatus.RECEIVED, Intent.APPROVE, CaseStatus.APPROVED),
            (CaseStatus.UNDER_REVIEW, Intent.APPROVE, CaseStatus.APPROVED),
            (CaseStatus.RECEIVED, Intent.REJECT, CaseStatus.REJECTED),
            (CaseStatus.UNDER_REVIEW, Intent.REJECT, CaseStatus.REJECTED),
            (CaseStatus.APPROVED, Intent.SCHEDULE, CaseStatus.SCHEDULED),
            (CaseStatus.SCHEDULED, Intent.SCHEDULE, CaseStatus.SCHEDULED),
        ]
        for current, intent, expected in cases:
            with self.subTest(current=current, intent=intent):
                self.assertEqual(validate_transition(current, intent, ActorRole.ADMIN), expected)

    def test_submit_notes_depends_on_action(self):
        for current in (CaseStatus.SCHEDULED, CaseStatus.IN_SESSION):
            self.assertEqual(
                validate_transition(current, Intent.SUBMIT_NOTES, ActorRole.PSYCHOLOGIST, note_action=NoteAction.DRAFT),
                CaseStatus.IN_SESSION,
            )
            self.assertEqual(
                validate_transition(current, Intent.SUBMIT_NOTES, ActorRole.PSYCHOLOGIST, note_action=NoteAction.SUBMIT),
                CaseStatus.AWAITING_CONFIRMATION,
            )

    def test_reporter_confirm_and_dispute(self):
        self.assertEqual(
            validate_transition(CaseStatus.AWAITING_CONFIRMATION, Intent.CONFIRM, ActorRole.REPORTER),
            CaseStatus.CLOSED,
        )
        self.assertEqual(
            validate_transition(CaseStatus.AWAITING_CONFIRMATION, Intent.DISPUTE, ActorRole.REPORTER),
            CaseStatus.DISPUTE,
        )

    def test_respond_dispute_uses_policy(self):
        self.assertEqual(
            validate_transition(CaseStatus.DISPUTE, Intent.RESPOND_DISPUTE, ActorRole.PSYCHOLOGIST, dispute_count=2),
            CaseStatus.AWAITING_CONFIRMATION,
        )
        self.assertEqual(
            validate_transition(CaseStatus.DISPUTE, Intent.RESPOND_DISPUTE, ActorRole.PSYCHOLOGIST, dispute_count=3),
            CaseStatus.ESCALATED_TO_ADMIN,
        )

    def test_schedule_from_rejected_is_invalid(self):
        with self.assertRaises(InvalidTransition) as ctx:
            validate_transition(CaseStatus.REJECTED, Intent.SCHEDULE, ActorRole.ADMIN)
        self.assertEqual(ctx.exception.current, CaseStatus.REJECTED)
        self.assertIn("approved", str(ctx.exception))

    def test_wrong_role_is_invalid(self):
        with self.assertRaises(InvalidTransition):
            validate_transition(CaseStatus.RECEIVED, Intent.APPROVE, ActorRole.PSYCHOLOGIST)
        with self.assertRaises(InvalidTransition):
            validate_transition(CaseStatus.AWAITING_CONFIRMATION, Intent.CONFIRM, ActorRole.ADMIN)
        with self.assertRaises(InvalidTransition):
            validate_transition(CaseStatus.RECEIVED, Intent.BEGIN_REVIEW, ActorRole.SYSTEM)

    def test_terminal_and_escalated_states_accept_nothing(self):
        for status in (CaseStatus.CLOSED, CaseStatus.REJECTED, CaseStatus.ESCALATED_TO_ADMIN):
            for role in ActorRole:
                with self.subTest(status=status, role=role):
                    self.assertEqual(allowed_intents(status, role), [])

    def test_unknown_values_are_rejected(self):
        with self.assertRaises(InvalidTransition):
            validate_transition("archived", Intent.APPROVE, ActorRole.ADMIN)
        with self.assertRaises(InvalidTransition):
            validate_transition(CaseStatus.RECEIVED, "teleport", ActorRole.ADMIN)
        with self.assertRaises(InvalidTransition):
            validate_transition(CaseStatus.RECEIVED, Intent.APPROVE, "janitor")
        with self.assertRaises(InvalidTransition):
            validate_transition(
                CaseStatus.SCHEDULED, Intent.SUBMIT_NOTES, ActorRole.PSYCHOLOGIST, note_action="publish",
            )

    def test_invalid_transition_is_a_non_retryable_conflict(self):
        with self.assertRaises(Conflict) as ctx:
            validate_transition(CaseStatus.CLOSED, Intent.DISPUTE, ActorRole.REPORTER)
        self.assertFalse(ctx.exception.retryable)

    def test_every_intent_has_a_rule(self):
        self.assertEqual(set(TRANSITION_RULES), set(Intent))

    def test_allowed_intents_for_admin_on_new_case(self):
        self.assertEqual(
            allowed_intents(CaseStatus.RECEIVED, ActorRole.ADMIN),
            [Intent.BEGIN_REVIEW, Intent.REJECT, Intent.APPROVE],
        )
