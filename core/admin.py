from django.contrib import admin

from core.models import (
    AuditEvent,
    Church,
    Department,
    DepartmentSlot,
    Member,
    MemberAvailability,
    MemberDateAvailability,
    MemberPreferences,
    Schedule,
    Sector,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ("name", "church", "leader", "invite_code")
    search_fields = ("name", "invite_code")


@admin.register(Schedule)
class ScheduleAdmin(admin.ModelAdmin):
    list_display = ("date", "time_start", "time_end", "user", "department", "sector", "assignment_role")
    list_filter = ("department", "assignment_role", "confirmation_status")
    date_hierarchy = "date"


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "department", "actor_user", "entity_type", "entity_id", "action_type")
    list_filter = ("entity_type", "action_type")


admin.site.register(Church)
admin.site.register(Member)
admin.site.register(DepartmentSlot)
admin.site.register(Sector)
admin.site.register(MemberAvailability)
admin.site.register(MemberDateAvailability)
admin.site.register(MemberPreferences)
