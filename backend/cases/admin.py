from django.contrib import admin

from .models import AuditEntry, Case, ConsultationNote, Feedback, ScheduleEntry


class ScheduleEntryInline(admin.TabularInline):
    model = ScheduleEntry
    extra = 0
    can_delete = False
    readonly_fields = ("reviewer_id", "starts_at", "ends_at", "meeting_type",
                       "location", "status")


class AuditEntryInline(admin.TabularInline):
    model = AuditEntry
    extra = 0
    can_delete = False
    readonly_fields = ("sequence", "intent", "from_status", "to_status",
                       "actor_role", "actor_id", "note", "diff", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Case)
class CaseAdmin(admin.ModelAdmin):
    list_display = ("code", "status", "is_emergency", "dispute_count",
                    "auto_close_at", "created_at")
    list_filter = ("status", "is_emergency")
    search_fields = ("code", "incident_location")
    # Status changes go through the lifecycle engine only.
    readonly_fields = ("code", "status", "dispute_count", "auto_close_at",
                       "assigned_reviewer_id", "rejection_reason")
    inlines = [ScheduleEntryInline, AuditEntryInline]

    def has_delete_permission(self, request, obj=None):
        return False


class ReadOnlyAdmin(admin.ModelAdmin):
    """Browse only; these rows are written by the lifecycle engine."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ConsultationNote)
class ConsultationNoteAdmin(ReadOnlyAdmin):
    list_display = ("case", "reviewer_id", "risk_level", "note_status", "updated_at")
    list_filter = ("note_status", "risk_level")


@admin.register(Feedback)
class FeedbackAdmin(ReadOnlyAdmin):
    list_display = ("case", "kind", "created_at", "responded_at")
    list_filter = ("kind",)


@admin.register(AuditEntry)
class AuditEntryAdmin(ReadOnlyAdmin):
    list_display = ("case", "sequence", "intent", "from_status", "to_status",
                    "actor_role", "created_at")
    list_filter = ("intent", "to_status", "actor_role")
