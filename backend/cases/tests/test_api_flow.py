"""
Integration tests for the cases HTTP API.

Walks a report through the real endpoints: public intake, admin triage
and scheduling, psychologist notes, reporter feedback by code + e-mail,
and the psychologist's answer to a dispute.  Also checks role scoping
and the domain-error → HTTP mapping.
"""

from __future__ import annotations

import datetime
from unittest import mock

from django.core import mail
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from cases.models import AuditEntry, Case, CaseStatus
from core.models import OutboxMessage, OutboxStatus

from .helpers import REPORTER_EMAIL, make_staff


class TestCaseApiFlow(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.password = "Lifecycle!Pass1"
        cls.admin = make_staff("admin", "api_admin", cls.password)
        cls.psychologist = make_staff("psychologist", "api_psych", cls.password)
        cls.other_psychologist = make_staff("psychologist", "api_psych_other", cls.password)
        cls.no_role_user = make_staff("visitor", "api_visitor", cls.password)

    def setUp(self):
        self.client = APIClient()

    # ── helpers ──────────────────────────────────────────────────────

    def login_as(self, user) -> None:
        resp = self.client.post(
            reverse("token_obtain_pair"),
            {"username": user.username, "password": self.password},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK, msg=f"Login failed: {resp.data}")
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {resp.data['access']}")

    def logout(self) -> None:
        self.client.credentials()

    def submit_report(self) -> Case:
        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.post(
                reverse("case-list"),
                {
                    "reporter_email": REPORTER_EMAIL,
                    "is_emergency": True,
                    "incident_location": "Dormitory B",
                    "incident_detail": "Threatening messages after a group project dispute.",
                },
                format="json",
            )
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, msg=resp.data)
        self.assertEqual(resp.data["status"], CaseStatus.RECEIVED)
        return Case.objects.get(code=resp.data["code"])

    def post(self, name: str, case: Case, data: dict | None = None, expected: int = status.HTTP_200_OK):
        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.post(
                reverse(name, kwargs={"pk": case.pk}), data or {}, format="json",
            )
        self.assertEqual(resp.status_code, expected, msg=f"{name}: {resp.data}")
        return resp

    def schedule_body(self, psychologist) -> dict:
        starts_at = timezone.now() + datetime.timedelta(days=1)
        return {
            "reviewer_id": psychologist.pk,
            "starts_at": starts_at.isoformat(),
            "ends_at": (starts_at + datetime.timedelta(hours=1)).isoformat(),
            "meeting_type": "offline",
            "location": "Counselling room 3",
        }

    def feedback(self, case: Case, kind: str, expected: int = status.HTTP_200_OK, **extra):
        self.logout()
        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.post(
                reverse("case-feedback"),
                {"code": case.code, "email": REPORTER_EMAIL, "kind": kind, **extra},
                format="json",
            )
        self.assertEqual(resp.status_code, expected, msg=resp.data)
        return resp

    def arrange_awaiting_confirmation(self) -> Case:
        case = self.submit_report()
        self.login_as(self.admin)
        self.post("case-approve", case)
        self.post("case-schedule", case, self.schedule_body(self.psychologist))
        self.login_as(self.psychologist)
        self.post("case-notes", case, {
            "action": "submit",
            "summary": "Reporter is safe but anxious.",
            "detail": "Discussed safety plan and next steps.",
            "risk_level": "medium",
        })
        return case

    # ── tests ────────────────────────────────────────────────────────

    def test_intake_sends_receipt_and_needs_no_account(self):
        case = self.submit_report()
        self.assertTrue(case.is_emergency)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(case.code, mail.outbox[0].subject)
        self.assertEqual(mail.outbox[0].to, [REPORTER_EMAIL])
        message = OutboxMessage.objects.get(payload__event_type="case_received")
        self.assertEqual(message.status, OutboxStatus.SENT)

    def test_intake_requires_incident_detail(self):
        resp = self.client.post(reverse("case-list"), {"incident_detail": "  "}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Case.objects.exists())

    def test_full_flow_to_closure(self):
        case = self.arrange_awaiting_confirmation()

        self.logout()
        track = self.client.post(
            reverse("case-track"), {"code": case.code, "email": REPORTER_EMAIL}, format="json",
        )
        self.assertEqual(track.status_code, status.HTTP_200_OK)
        self.assertEqual(track.data["status"], CaseStatus.AWAITING_CONFIRMATION)
        self.assertEqual(track.data["note"]["summary"], "Reporter is safe but anxious.")
        self.assertEqual(track.data["meeting"]["location"], "Counselling room 3")

        resp = self.feedback(case, "confirm", comment="Accurate, thank you.")
        self.assertEqual(resp.data["status"], CaseStatus.CLOSED)

        self.login_as(self.admin)
        trail = self.client.get(reverse("case-audit-trail", kwargs={"pk": case.pk}))
        self.assertEqual(trail.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [entry["to_status"] for entry in trail.data],
            [
                CaseStatus.APPROVED,
                CaseStatus.SCHEDULED,
                CaseStatus.AWAITING_CONFIRMATION,
                CaseStatus.CLOSED,
            ],
        )
        self.assertEqual([entry["sequence"] for entry in trail.data], [1, 2, 3, 4])

    def test_dispute_and_response(self):
        case = self.arrange_awaiting_confirmation()
        self.feedback(case, "dispute", status.HTTP_400_BAD_REQUEST, detail="")

        resp = self.feedback(case, "dispute", detail="The risk level is understated.")
        self.assertEqual(resp.data["status"], CaseStatus.DISPUTE)
        self.assertEqual(resp.data["dispute_count"], 1)

        self.login_as(self.psychologist)
        resp = self.post("case-respond-dispute", case, {
            "response": "Raised the risk level after review.",
            "risk_level": "high",
        })
        self.assertEqual(resp.data["status"], CaseStatus.AWAITING_CONFIRMATION)
        entry = AuditEntry.objects.filter(case=case).order_by("-sequence").first()
        self.assertEqual(
            entry.diff,
            [{"field": "risk_level", "old_value": "medium", "new_value": "high"}],
        )

    def test_wrong_email_is_not_found(self):
        case = self.submit_report()
        resp = self.client.post(
            reverse("case-track"), {"code": case.code, "email": "someone@else.org"}, format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["code"], "not_found")

    def test_invalid_transition_maps_to_409(self):
        case = self.submit_report()
        self.login_as(self.admin)
        self.post("case-reject", case, {"reason": "Not within scope."})
        resp = self.post("case-schedule", case, self.schedule_body(self.psychologist), status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["code"], "invalid_transition")
        self.assertNotIn("retryable", resp.data)
        self.assertEqual(AuditEntry.objects.filter(case=case).count(), 1)

    def test_stale_status_maps_to_retryable_409(self):
        case = self.submit_report()
        self.login_as(self.admin)
        self.post("case-begin-review", case)
        resp = self.post("case-approve", case, {"expected_status": "received"}, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["code"], "conflict")
        self.assertTrue(resp.data["retryable"])

    def test_reject_without_reason_is_400(self):
        case = self.submit_report()
        self.login_as(self.admin)
        self.post("case-reject", case, {"reason": ""}, status.HTTP_400_BAD_REQUEST)
        case.refresh_from_db()
        self.assertEqual(case.status, CaseStatus.RECEIVED)

    def test_psychologist_cannot_approve(self):
        case = self.submit_report()
        self.login_as(self.psychologist)
        self.post("case-approve", case, expected=status.HTTP_409_CONFLICT)

    def test_user_without_role_is_forbidden(self):
        self.submit_report()
        self.login_as(self.no_role_user)
        resp = self.client.get(reverse("case-list"))
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(resp.data["code"], "permission_denied")

    def test_anonymous_staff_endpoint_is_401(self):
        case = self.submit_report()
        resp = self.client.post(reverse("case-approve", kwargs={"pk": case.pk}), {}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_psychologist_sees_only_assigned_cases(self):
        assigned = self.arrange_awaiting_confirmation()
        self.logout()
        unassigned = self.submit_report()

        self.login_as(self.psychologist)
        resp = self.client.get(reverse("case-list"))
        self.assertEqual([row["code"] for row in resp.data], [assigned.code])

        resp = self.client.get(reverse("case-detail", kwargs={"pk": unassigned.pk}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

        self.login_as(self.other_psychologist)
        resp = self.client.get(reverse("case-list"))
        self.assertEqual(resp.data, [])

    def test_snapshot_lists_available_intents(self):
        case = self.submit_report()
        self.login_as(self.admin)
        resp = self.client.get(reverse("case-detail", kwargs={"pk": case.pk}))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["case"]["code"], case.code)
        self.assertEqual(resp.data["available_intents"], ["begin_review", "reject", "approve"])
        self.assertIsNone(resp.data["note"])

    def test_list_filters(self):
        self.submit_report()
        self.login_as(self.admin)
        resp = self.client.get(reverse("case-list"), {"status": "received", "is_emergency": "true"})
        self.assertEqual(len(resp.data), 1)
        resp = self.client.get(reverse("case-list"), {"status": "closed"})
        self.assertEqual(resp.data, [])

    def test_snapshot_not_built_for_out_of_scope_case(self):
        case = self.submit_report()
        self.login_as(self.psychologist)
        with mock.patch("cases.views.CaseQueryService.get_case_snapshot") as build:
            resp = self.client.get(reverse("case-detail", kwargs={"pk": case.pk}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        build.assert_not_called()

    def test_statistics_for_admin(self):
        self.arrange_awaiting_confirmation()
        self.logout()
        self.submit_report()

        self.login_as(self.admin)
        resp = self.client.get(reverse("case-statistics"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["period"], "all")
        self.assertEqual(resp.data["total"], 2)
        self.assertEqual(resp.data["emergency"], 2)
        self.assertEqual(resp.data["by_status"][CaseStatus.RECEIVED], 1)
        self.assertEqual(resp.data["by_status"][CaseStatus.AWAITING_CONFIRMATION], 1)
        self.assertEqual(resp.data["by_status"][CaseStatus.CLOSED], 0)
        self.assertEqual(resp.data["overdue_confirmations"], 0)
        self.assertEqual(len(resp.data["trend_7_days"]), 7)
        self.assertEqual(resp.data["trend_7_days"][-1]["count"], 2)

        resp = self.client.get(reverse("case-statistics"), {"period": "today"})
        self.assertEqual(resp.data["total"], 2)
        resp = self.client.get(reverse("case-statistics"), {"period": "decade"})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_statistics_is_admin_only(self):
        self.login_as(self.psychologist)
        resp = self.client.get(reverse("case-statistics"))
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        resp = self.client.get(reverse("case-psychologists"))
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_psychologists_list_feeds_scheduling(self):
        self.arrange_awaiting_confirmation()
        inactive = make_staff("psychologist", "api_psych_retired", self.password)
        inactive.is_active = False
        inactive.save()

        self.login_as(self.admin)
        resp = self.client.get(reverse("case-psychologists"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        rows = {row["username"]: row for row in resp.data}
        self.assertEqual(set(rows), {"api_psych", "api_psych_other"})
        self.assertEqual(rows["api_psych"]["open_cases"], 1)
        self.assertEqual(rows["api_psych_other"]["open_cases"], 0)

        case = self.submit_report()
        self.login_as(self.admin)
        self.post("case-approve", case)
        body = self.schedule_body(self.psychologist)
        body["reviewer_id"] = rows["api_psych_other"]["id"]
        resp = self.post("case-schedule", case, body)
        self.assertEqual(resp.data["status"], CaseStatus.SCHEDULED)
