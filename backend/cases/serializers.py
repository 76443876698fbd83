"""
Cases app serializers.

Contains all Request and Response serializers for the Cases API.
Serializers handle field definitions, read/write constraints, and field-level
validation only.  **No business logic or workflow transitions live here**;
those belong in ``services.py``.

Structure
---------
1. Filter / query-param serializers
2. Case read serializers (list, snapshot, audit trail, statistics)
3. Intake serializer
4. Workflow action serializers (one per intent)
5. Reporter serializers (track, feedback)
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from .models import (
    AuditEntry,
    Case,
    CaseStatus,
    ConsultationNote,
    Feedback,
    FeedbackKind,
    MeetingType,
    RiskLevel,
    ScheduleEntry,
)
from .services import STATISTICS_PERIODS
from .transitions import NoteAction


# ═══════════════════════════════════════════════════════════════════
#  1. Filter / Query-Parameter Serializers
# ═══════════════════════════════════════════════════════════════════


class CaseFilterSerializer(serializers.Serializer):
    """
    Validates query-parameter filters for ``GET /api/cases/``.

    All fields are optional.  The view passes the validated dict directly
    to ``CaseQueryService.list_cases``.
    """

    status = serializers.ChoiceField(choices=CaseStatus.choices, required=False)
    is_emergency = serializers.BooleanField(required=False, allow_null=True, default=None)
    search = serializers.CharField(required=False, max_length=100, allow_blank=False)
    overdue = serializers.BooleanField(required=False, default=False)


class StatisticsFilterSerializer(serializers.Serializer):
    """Query parameters for ``GET /api/cases/statistics/``."""

    period = serializers.ChoiceField(choices=STATISTICS_PERIODS, required=False, default="all")


# ═══════════════════════════════════════════════════════════════════
#  2. Case Read Serializers
# ═══════════════════════════════════════════════════════════════════


class CaseListSerializer(serializers.ModelSerializer):
    """Compact representation for the list endpoint."""

    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Case
        fields = [
            "id",
            "code",
            "status",
            "status_display",
            "is_emergency",
            "dispute_count",
            "auto_close_at",
            "assigned_reviewer_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CaseDetailSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Case
        fields = [
            "id",
            "code",
            "status",
            "status_display",
            "dispute_count",
            "auto_close_at",
            "assigned_reviewer_id",
            "rejection_reason",
            "reporter_email",
            "is_emergency",
            "incident_location",
            "incident_detail",
            "perpetrator",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ScheduleEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = ScheduleEntry
        fields = [
            "id",
            "reviewer_id",
            "starts_at",
            "ends_at",
            "meeting_type",
            "location",
            "admin_note",
            "status",
        ]
        read_only_fields = fields


class ConsultationNoteSerializer(serializers.ModelSerializer):
    class Meta:
        model = ConsultationNote
        fields = [
            "id",
            "reviewer_id",
            "summary",
            "detail",
            "recommendation",
            "risk_level",
            "note_status",
            "updated_at",
        ]
        read_only_fields = fields


class FeedbackSerializer(serializers.ModelSerializer):
    class Meta:
        model = Feedback
        fields = [
            "id",
            "kind",
            "comment",
            "dispute_detail",
            "reviewer_response",
            "responded_at",
            "created_at",
        ]
        read_only_fields = fields


class AuditEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditEntry
        fields = [
            "sequence",
            "intent",
            "from_status",
            "to_status",
            "actor_role",
            "actor_id",
            "note",
            "diff",
            "created_at",
        ]
        read_only_fields = fields


class CaseSnapshotSerializer(serializers.Serializer):
    """
    Serializes a ``CaseSnapshot`` together with the intents the requesting
    actor may perform next (passed in ``context["available_intents"]``).
    """

    case = CaseDetailSerializer(read_only=True)
    note = ConsultationNoteSerializer(read_only=True, allow_null=True)
    feedback = FeedbackSerializer(read_only=True, allow_null=True)
    schedule_entry = ScheduleEntrySerializer(read_only=True, allow_null=True)
    available_intents = serializers.SerializerMethodField()

    def get_available_intents(self, obj) -> list[str]:
        return self.context.get("available_intents", [])


class ReporterCaseSerializer(serializers.Serializer):
    """
    Reporter's view of their case.

    Internal fields (reviewer ids, admin notes) are left out.
    """

    code = serializers.CharField(source="case.code", read_only=True)
    status = serializers.CharField(source="case.status", read_only=True)
    status_display = serializers.CharField(source="case.get_status_display", read_only=True)
    auto_close_at = serializers.DateTimeField(source="case.auto_close_at", read_only=True)
    dispute_count = serializers.IntegerField(source="case.dispute_count", read_only=True)
    rejection_reason = serializers.CharField(source="case.rejection_reason", read_only=True)
    meeting = serializers.SerializerMethodField()
    note = serializers.SerializerMethodField()

    def get_meeting(self, obj) -> dict[str, Any] | None:
        entry = obj.schedule_entry
        if entry is None:
            return None
        return {
            "starts_at": serializers.DateTimeField().to_representation(entry.starts_at),
            "ends_at": serializers.DateTimeField().to_representation(entry.ends_at),
            "meeting_type": entry.meeting_type,
            "location": entry.location,
        }

    def get_note(self, obj) -> dict[str, Any] | None:
        # Drafts stay private to the psychologist.
        note = obj.note
        if note is None or note.note_status == "draft":
            return None
        return {
            "summary": note.summary,
            "detail": note.detail,
            "recommendation": note.recommendation,
            "risk_level": note.risk_level,
            "note_status": note.note_status,
        }


class TrendPointSerializer(serializers.Serializer):
    date = serializers.DateField()
    count = serializers.IntegerField()


class CaseStatisticsSerializer(serializers.Serializer):
    """Admin dashboard counts; ``by_status`` lists every status, zeros included."""

    period = serializers.CharField()
    total = serializers.IntegerField()
    by_status = serializers.DictField(child=serializers.IntegerField())
    emergency = serializers.IntegerField()
    overdue_confirmations = serializers.IntegerField()
    trend_7_days = TrendPointSerializer(many=True)


class PsychologistSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    username = serializers.CharField()
    full_name = serializers.CharField()
    open_cases = serializers.IntegerField()


# ═══════════════════════════════════════════════════════════════════
#  3. Intake Serializer
# ═══════════════════════════════════════════════════════════════════


class CaseIntakeSerializer(serializers.Serializer):
    """Public report form."""

    reporter_email = serializers.EmailField(required=False, allow_blank=True, default="")
    is_emergency = serializers.BooleanField(required=False, default=False)
    incident_location = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
    incident_detail = serializers.CharField()
    perpetrator = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")

    def validate_incident_detail(self, value: str) -> str:
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Describe what happened.")
        return value


# ═══════════════════════════════════════════════════════════════════
#  4. Workflow Action Serializers
# ═══════════════════════════════════════════════════════════════════


class TransitionSerializer(serializers.Serializer):
    """Base for every intent body: optional optimistic status check."""

    expected_status = serializers.ChoiceField(
        choices=CaseStatus.choices,
        required=False,
        help_text="Status the client last saw. A mismatch returns 409.",
    )


class NoteCommentSerializer(TransitionSerializer):
    note = serializers.CharField(required=False, allow_blank=True, default="")


class RejectSerializer(TransitionSerializer):
    reason = serializers.CharField(allow_blank=False)


class ScheduleSerializer(TransitionSerializer):
    reviewer_id = serializers.IntegerField(min_value=1)
    starts_at = serializers.DateTimeField()
    ends_at = serializers.DateTimeField()
    meeting_type = serializers.ChoiceField(choices=MeetingType.choices, default=MeetingType.OFFLINE)
    location = serializers.CharField(max_length=500)
    admin_note = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs["ends_at"] <= attrs["starts_at"]:
            raise serializers.ValidationError({"ends_at": "The meeting must end after it starts."})
        return attrs


class SubmitNotesSerializer(TransitionSerializer):
    action = serializers.ChoiceField(choices=NoteAction.choices, default=NoteAction.SUBMIT)
    summary = serializers.CharField(required=False, allow_blank=True)
    detail = serializers.CharField(required=False, allow_blank=True)
    recommendation = serializers.CharField(required=False, allow_blank=True)
    risk_level = serializers.ChoiceField(choices=RiskLevel.choices, required=False)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs.get("action") == NoteAction.SUBMIT:
            missing = {
                key: "This field is required when submitting."
                for key in ("summary", "detail")
                if not (attrs.get(key) or "").strip()
            }
            if missing:
                raise serializers.ValidationError(missing)
        return attrs


class RespondDisputeSerializer(TransitionSerializer):
    response = serializers.CharField(allow_blank=False)
    summary = serializers.CharField(required=False, allow_blank=False)
    detail = serializers.CharField(required=False, allow_blank=False)
    recommendation = serializers.CharField(required=False, allow_blank=True)
    risk_level = serializers.ChoiceField(choices=RiskLevel.choices, required=False)


# ═══════════════════════════════════════════════════════════════════
#  5. Reporter Serializers
# ═══════════════════════════════════════════════════════════════════


class ReporterLookupSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=20)
    email = serializers.EmailField()


class ReporterFeedbackSerializer(ReporterLookupSerializer):
    kind = serializers.ChoiceField(choices=FeedbackKind.choices)
    comment = serializers.CharField(required=False, allow_blank=True, default="")
    detail = serializers.CharField(required=False, allow_blank=True, default="")
    expected_status = serializers.ChoiceField(choices=CaseStatus.choices, required=False)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs["kind"] == FeedbackKind.DISPUTE and not attrs.get("detail", "").strip():
            raise serializers.ValidationError({"detail": "Explain what you disagree with."})
        return attrs
