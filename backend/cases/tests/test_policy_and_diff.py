"""
Unit tests for the dispute policy and the field diff (no database).
"""

from __future__ import annotations

import datetime

from django.test import SimpleTestCase

from cases.diff import apply_field_diff, compute_field_diff
from cases.models import CaseStatus, ConsultationNote
from cases.policy import (
    AUTO_CLOSE_DAYS,
    MAX_DISPUTES,
    auto_close_deadline,
    next_dispute_count,
    resolve_dispute_response,
)


class TestDisputePolicy(SimpleTestCase):

    def test_below_limit_returns_to_reporter_with_deadline(self):
        for count in range(MAX_DISPUTES):
            with self.subTest(dispute_count=count):
                decision = resolve_dispute_response(count, CaseStatus.DISPUTE)
                self.assertEqual(decision.new_status, CaseStatus.AWAITING_CONFIRMATION)
                self.assertTrue(decision.should_set_deadline)
                self.assertFalse(decision.escalated)

    def test_at_or_above_limit_escalates_without_deadline(self):
        for count in (MAX_DISPUTES, MAX_DISPUTES + 1, 10):
            with self.subTest(dispute_count=count):
                decision = resolve_dispute_response(count, CaseStatus.DISPUTE)
                self.assertEqual(decision.new_status, CaseStatus.ESCALATED_TO_ADMIN)
                self.assertFalse(decision.should_set_deadline)
                self.assertTrue(decision.escalated)

    def test_escalation_only_from_dispute(self):
        decision = resolve_dispute_response(5, CaseStatus.AWAITING_CONFIRMATION)
        self.assertEqual(decision.new_status, CaseStatus.AWAITING_CONFIRMATION)

    def test_negative_count_is_rejected(self):
        with self.assertRaises(ValueError):
            resolve_dispute_response(-1, CaseStatus.DISPUTE)

    def test_dispute_count_only_grows_by_one(self):
        self.assertEqual(next_dispute_count(0), 1)
        self.assertEqual(next_dispute_count(2), 3)

    def test_deadline_is_fourteen_days_out(self):
        now = datetime.datetime(2026, 3, 1, 9, 30, tzinfo=datetime.timezone.utc)
        self.assertEqual(AUTO_CLOSE_DAYS, 14)
        self.assertEqual(auto_close_deadline(now), datetime.datetime(2026, 3, 15, 9, 30, tzinfo=datetime.timezone.utc))


class TestFieldDiff(SimpleTestCase):
    fields = ConsultationNote.TRACKED_FIELDS

    def setUp(self):
        self.old = {
            "summary": "Initial summary",
            "detail": "Initial detail",
            "recommendation": "",
            "risk_level": "medium",
        }

    def test_unchanged_snapshot_gives_empty_list(self):
        self.assertEqual(compute_field_diff(self.old, dict(self.old), self.fields), [])

    def test_only_changed_fields_in_tracked_order(self):
        new = {**self.old, "risk_level": "high", "summary": "Revised summary"}
        diff = compute_field_diff(self.old, new, self.fields)
        self.assertEqual(
            diff,
            [
                {"field": "summary", "old_value": "Initial summary", "new_value": "Revised summary"},
                {"field": "risk_level", "old_value": "medium", "new_value": "high"},
            ],
        )

    def test_applying_diff_reproduces_new_values(self):
        new = {**self.old, "detail": "More detail", "recommendation": "Refer to counsellor"}
        diff = compute_field_diff(self.old, new, self.fields)
        self.assertEqual(apply_field_diff(self.old, diff), new)

    def test_untracked_fields_are_ignored(self):
        new = {**self.old, "note_status": "submitted"}
        self.assertEqual(compute_field_diff(self.old, new, self.fields), [])

    def test_stale_diff_does_not_apply(self):
        diff = [{"field": "summary", "old_value": "Something else", "new_value": "x"}]
        with self.assertRaises(ValueError):
            apply_field_diff(self.old, diff)
