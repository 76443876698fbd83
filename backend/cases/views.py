"""
Cases app ViewSets.

Architecture: Views are intentionally thin.
Every view follows the strict three-step pattern:

    1. Parse / validate input via a serializer.
    2. Resolve the ``Actor`` and delegate to the appropriate service.
    3. Serialize the result and return a DRF ``Response``.

Domain exceptions raised by the services are turned into HTTP responses
by ``core.domain.exception_handler``; no view catches them.

ViewSets
--------
- ``CaseViewSet`` — The single ViewSet for all case-related endpoints.
  Staff intents are detail ``@action`` routes; the reporter endpoints
  (``track``, ``feedback``) are list-level and identify the case by its
  code plus the reporter's e-mail.  ``statistics`` and ``psychologists``
  are admin-only list-level reads for the dashboard and scheduling form.
"""

from __future__ import annotations

import logging
import builtins

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from core.domain.actors import Actor, resolve_actor

from .models import FeedbackKind
from .serializers import (
    AuditEntrySerializer,
    CaseDetailSerializer,
    CaseFilterSerializer,
    CaseIntakeSerializer,
    CaseListSerializer,
    CaseSnapshotSerializer,
    CaseStatisticsSerializer,
    NoteCommentSerializer,
    PsychologistSerializer,
    RejectSerializer,
    ReporterCaseSerializer,
    ReporterFeedbackSerializer,
    ReporterLookupSerializer,
    RespondDisputeSerializer,
    ScheduleSerializer,
    StatisticsFilterSerializer,
    SubmitNotesSerializer,
)
from .services import STATISTICS_PERIODS, CaseIntakeService, CaseLifecycleEngine, CaseQueryService
from .transitions import Intent

logger = logging.getLogger(__name__)

_TRANSITION_RESPONSES = {
    200: OpenApiResponse(response=CaseDetailSerializer, description="Transition applied."),
    400: OpenApiResponse(description="Validation error."),
    403: OpenApiResponse(description="No staff role."),
    404: OpenApiResponse(description="Case not found or not assigned to you."),
    409: OpenApiResponse(description="Invalid transition, stale status or case busy."),
}


class CaseViewSet(viewsets.ViewSet):
    """
    Central ViewSet for the cases app.

    Uses ``viewsets.ViewSet`` (not ``ModelViewSet``) so every action is
    explicitly defined; cases can never be updated or deleted directly.

    Permission Strategy
    -------------------
    Staff endpoints require authentication; the role is resolved with
    ``resolve_actor`` and enforced by the transition validator.  Intake
    and the reporter endpoints are public.
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"
    _PUBLIC_ACTIONS = {"create", "track", "feedback"}

    def get_permissions(self):
        if self.action in self._PUBLIC_ACTIONS:
            return [AllowAny()]
        return super().get_permissions()

    # ── Helpers ──────────────────────────────────────────────────────

    def _transition(
        self,
        request: Request,
        pk,
        intent: Intent,
        serializer_class=None,
    ) -> Response:
        payload = {}
        if serializer_class is not None:
            serializer = serializer_class(data=request.data)
            serializer.is_valid(raise_exception=True)
            payload = dict(serializer.validated_data)
        actor = resolve_actor(request.user)
        result = CaseLifecycleEngine.apply_transition(int(pk), intent, actor, payload)
        out = CaseDetailSerializer(result.case, context={"request": request})
        return Response(out.data, status=status.HTTP_200_OK)

    # ── Standard endpoints ───────────────────────────────────────────

    @extend_schema(
        summary="List cases",
        description=(
            "Admins see every case; psychologists see the cases assigned to them."
        ),
        parameters=[
            OpenApiParameter(name="status", type=str, location=OpenApiParameter.QUERY, description="Filter by case status."),
            OpenApiParameter(name="is_emergency", type=bool, location=OpenApiParameter.QUERY, description="Only emergency (or non-emergency) reports."),
            OpenApiParameter(name="search", type=str, location=OpenApiParameter.QUERY, description="Substring of the case code or incident location."),
            OpenApiParameter(name="overdue", type=bool, location=OpenApiParameter.QUERY, description="Only cases past their confirmation deadline."),
        ],
        responses={200: OpenApiResponse(response=CaseListSerializer(many=True), description="Cases.")},
        tags=["Cases"],
    )
    def list(self, request: Request) -> Response:
        """GET /api/cases/"""
        filter_serializer = CaseFilterSerializer(data=request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        actor = resolve_actor(request.user)
        qs = CaseQueryService.list_cases(actor, filter_serializer.validated_data)
        return Response(CaseListSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Submit a report",
        description="Public intake form. Returns the case code the reporter uses to follow the case.",
        request=CaseIntakeSerializer,
        responses={
            201: OpenApiResponse(description="Report received; body holds the case code."),
            400: OpenApiResponse(description="Validation error."),
        },
        tags=["Cases – Reporter"],
    )
    def create(self, request: Request) -> Response:
        """
        POST /api/cases/

        Only the code and status are echoed back; the reporter has no
        account and must keep the code.
        """
        serializer = CaseIntakeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        case = CaseIntakeService.create_case(serializer.validated_data)
        return Response(
            {"code": case.code, "status": case.status},
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        summary="Case snapshot",
        description="Case with its live note, latest feedback, active meeting and the intents you may perform.",
        responses={200: CaseSnapshotSerializer, 404: OpenApiResponse(description="Not found.")},
        tags=["Cases"],
    )
    def retrieve(self, request: Request, pk=None) -> Response:
        """GET /api/cases/{id}/"""
        actor = resolve_actor(request.user)
        if not CaseQueryService.list_cases(actor).filter(pk=int(pk)).exists():
            return Response({"detail": "Not found.", "code": "not_found"}, status=status.HTTP_404_NOT_FOUND)
        snapshot = CaseQueryService.get_case_snapshot(int(pk))
        out = CaseSnapshotSerializer(
            snapshot,
            context={
                "request": request,
                "available_intents": CaseQueryService.available_intents(snapshot.case, actor),
            },
        )
        return Response(out.data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"], url_path="audit-trail")
    @extend_schema(
        summary="Audit trail",
        description="Every transition of the case in order.",
        responses={200: AuditEntrySerializer(many=True)},
        tags=["Cases"],
    )
    def audit_trail(self, request: Request, pk=None) -> Response:
        """GET /api/cases/{id}/audit-trail/"""
        actor = resolve_actor(request.user)
        if not CaseQueryService.list_cases(actor).filter(pk=pk).exists():
            return Response({"detail": "Not found.", "code": "not_found"}, status=status.HTTP_404_NOT_FOUND)
        entries = CaseQueryService.get_audit_trail(int(pk))
        return Response(AuditEntrySerializer(entries, many=True).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"], url_path="statistics")
    @extend_schema(
        summary="Case statistics",
        description="Admin dashboard: totals, status breakdown and a seven-day intake trend.",
        parameters=[
            OpenApiParameter(
                name="period", type=str, location=OpenApiParameter.QUERY,
                enum=builtins.list(STATISTICS_PERIODS),
                description="Only count cases received in this period.",
            ),
        ],
        responses={
            200: CaseStatisticsSerializer,
            403: OpenApiResponse(description="Admins only."),
        },
        tags=["Cases – Admin"],
    )
    def statistics(self, request: Request) -> Response:
        """GET /api/cases/statistics/"""
        filter_serializer = StatisticsFilterSerializer(data=request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        actor = resolve_actor(request.user)
        stats = CaseQueryService.statistics(actor, filter_serializer.validated_data["period"])
        return Response(CaseStatisticsSerializer(stats).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"], url_path="psychologists")
    @extend_schema(
        summary="Active psychologists",
        description="Candidates for the ``reviewer_id`` of the schedule intent, with their open case load.",
        responses={
            200: PsychologistSerializer(many=True),
            403: OpenApiResponse(description="Admins only."),
        },
        tags=["Cases – Admin"],
    )
    def psychologists(self, request: Request) -> Response:
        """GET /api/cases/psychologists/"""
        actor = resolve_actor(request.user)
        rows = CaseQueryService.active_psychologists(actor)
        return Response(PsychologistSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    # ── Admin @actions ───────────────────────────────────────────────

    @action(detail=True, methods=["post"], url_path="begin-review")
    @extend_schema(
        summary="Begin review",
        request=NoteCommentSerializer,
        responses=_TRANSITION_RESPONSES,
        tags=["Cases – Workflow"],
    )
    def begin_review(self, request: Request, pk=None) -> Response:
        """POST /api/cases/{id}/begin-review/"""
        return self._transition(request, pk, Intent.BEGIN_REVIEW, NoteCommentSerializer)

    @action(detail=True, methods=["post"], url_path="approve")
    @extend_schema(
        summary="Approve report",
        request=NoteCommentSerializer,
        responses=_TRANSITION_RESPONSES,
        tags=["Cases – Workflow"],
    )
    def approve(self, request: Request, pk=None) -> Response:
        """POST /api/cases/{id}/approve/"""
        return self._transition(request, pk, Intent.APPROVE, NoteCommentSerializer)

    @action(detail=True, methods=["post"], url_path="reject")
    @extend_schema(
        summary="Reject report",
        description="A rejection reason is required and is sent to the reporter.",
        request=RejectSerializer,
        responses=_TRANSITION_RESPONSES,
        tags=["Cases – Workflow"],
    )
    def reject(self, request: Request, pk=None) -> Response:
        """POST /api/cases/{id}/reject/"""
        return self._transition(request, pk, Intent.REJECT, RejectSerializer)

    @action(detail=True, methods=["post"], url_path="schedule")
    @extend_schema(
        summary="Schedule or reschedule a consultation",
        description="Assigns the psychologist. Rescheduling cancels the previous meeting.",
        request=ScheduleSerializer,
        responses=_TRANSITION_RESPONSES,
        tags=["Cases – Workflow"],
    )
    def schedule(self, request: Request, pk=None) -> Response:
        """POST /api/cases/{id}/schedule/"""
        return self._transition(request, pk, Intent.SCHEDULE, ScheduleSerializer)

    # ── Psychologist @actions ────────────────────────────────────────

    @action(detail=True, methods=["post"], url_path="notes")
    @extend_schema(
        summary="Save or submit consultation notes",
        description=(
            "action=draft keeps the session open; action=submit sends the "
            "notes to the reporter and starts the 14-day confirmation window."
        ),
        request=SubmitNotesSerializer,
        responses=_TRANSITION_RESPONSES,
        tags=["Cases – Workflow"],
    )
    def notes(self, request: Request, pk=None) -> Response:
        """POST /api/cases/{id}/notes/"""
        return self._transition(request, pk, Intent.SUBMIT_NOTES, SubmitNotesSerializer)

    @action(detail=True, methods=["post"], url_path="respond-dispute")
    @extend_schema(
        summary="Respond to a dispute",
        description=(
            "Answers the reporter's latest dispute and optionally revises the "
            "notes. From the third dispute on, the case is escalated to an admin."
        ),
        request=RespondDisputeSerializer,
        responses=_TRANSITION_RESPONSES,
        tags=["Cases – Workflow"],
    )
    def respond_dispute(self, request: Request, pk=None) -> Response:
        """POST /api/cases/{id}/respond-dispute/"""
        return self._transition(request, pk, Intent.RESPOND_DISPUTE, RespondDisputeSerializer)

    # ── Reporter @actions ────────────────────────────────────────────

    @action(detail=False, methods=["post"], url_path="track", authentication_classes=[])
    @extend_schema(
        summary="Track a report",
        request=ReporterLookupSerializer,
        responses={
            200: ReporterCaseSerializer,
            404: OpenApiResponse(description="No report matches this code and e-mail."),
        },
        tags=["Cases – Reporter"],
    )
    def track(self, request: Request) -> Response:
        """POST /api/cases/track/"""
        serializer = ReporterLookupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        case = CaseQueryService.find_for_reporter(
            serializer.validated_data["code"],
            serializer.validated_data["email"],
        )
        snapshot = CaseQueryService.get_case_snapshot(case.pk)
        return Response(ReporterCaseSerializer(snapshot).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="feedback", authentication_classes=[])
    @extend_schema(
        summary="Confirm or dispute consultation notes",
        request=ReporterFeedbackSerializer,
        responses={
            200: ReporterCaseSerializer,
            400: OpenApiResponse(description="Validation error."),
            404: OpenApiResponse(description="No report matches this code and e-mail."),
            409: OpenApiResponse(description="The case is not waiting for your feedback."),
        },
        tags=["Cases – Reporter"],
    )
    def feedback(self, request: Request) -> Response:
        """POST /api/cases/feedback/"""
        serializer = ReporterFeedbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        case = CaseQueryService.find_for_reporter(data["code"], data["email"])

        intent = Intent.CONFIRM if data["kind"] == FeedbackKind.CONFIRM else Intent.DISPUTE
        payload = {"comment": data.get("comment", ""), "detail": data.get("detail", "")}
        if data.get("expected_status"):
            payload["expected_status"] = data["expected_status"]
        CaseLifecycleEngine.apply_transition(case.pk, intent, Actor.reporter(), payload)

        snapshot = CaseQueryService.get_case_snapshot(case.pk)
        return Response(ReporterCaseSerializer(snapshot).data, status=status.HTTP_200_OK)
