from django.conf import settings
from django.db import models
from django.db.models import F, Q


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# Sunday-based, matching the day indexes stored by the apps.
WEEKDAY_CHOICES = [
    (0, "Domingo"),
    (1, "Segunda"),
    (2, "Terca"),
    (3, "Quarta"),
    (4, "Quinta"),
    (5, "Sexta"),
    (6, "Sabado"),
]


class Church(TimeStampedModel):
    name = models.CharField(max_length=200)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=50, blank=True)
    timezone = models.CharField(max_length=64, default="America/Sao_Paulo")

    def __str__(self):
        return self.name


class Department(TimeStampedModel):
    church = models.ForeignKey(Church, on_delete=models.SET_NULL, null=True, blank=True, related_name="departments")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    leader = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="led_departments")
    invite_code = models.CharField(max_length=20, unique=True)

    def __str__(self):
        return self.name


class Member(TimeStampedModel):
    ROLE_CHOICES = [
        ("leader", "Lider"),
        ("member", "Membro"),
    ]
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="memberships")
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default="member")

    class Meta:
        unique_together = ("department", "user")

    def __str__(self):
        return f"{self.user} @ {self.department}"

    @property
    def is_leader(self):
        return self.role == "leader"


class DepartmentSlot(TimeStampedModel):
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="slots")
    day_of_week = models.PositiveSmallIntegerField(choices=WEEKDAY_CHOICES)
    time_start = models.TimeField()
    time_end = models.TimeField()
    label = models.CharField(max_length=100)
    default_member_count = models.PositiveSmallIntegerField(default=3)

    class Meta:
        ordering = ["day_of_week", "time_start"]
        unique_together = ("department", "day_of_week", "time_start")

    def __str__(self):
        return self.label


class Sector(TimeStampedModel):
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="sectors")
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    color = models.CharField(max_length=20, default="#6366f1")

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Schedule(TimeStampedModel):
    ROLE_CHOICES = [
        ("on_duty", "Plantao"),
        ("participant", "Culto"),
    ]
    CONFIRMATION_CHOICES = [
        ("pending", "Pendente"),
        ("confirmed", "Confirmada"),
        ("declined", "Recusada"),
    ]
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="schedules")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="schedules")
    date = models.DateField()
    time_start = models.TimeField()
    time_end = models.TimeField()
    notes = models.TextField(blank=True, null=True)
    sector = models.ForeignKey(Sector, on_delete=models.SET_NULL, null=True, blank=True, related_name="schedules")
    assignment_role = models.CharField(max_length=20, choices=ROLE_CHOICES, null=True, blank=True)
    confirmation_status = models.CharField(max_length=20, choices=CONFIRMATION_CHOICES, default="pending")
    confirmed_at = models.DateTimeField(null=True, blank=True)
    decline_reason = models.TextField(blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="schedules_created"
    )

    class Meta:
        ordering = ["date", "time_start"]
        constraints = [
            models.CheckConstraint(
                condition=Q(time_end__gt=F("time_start")),
                name="schedule_end_after_start",
            )
        ]
        indexes = [
            models.Index(fields=["user", "date"], name="schedule_user_date_idx"),
            models.Index(fields=["department", "date"], name="schedule_department_date_idx"),
        ]

    def __str__(self):
        return f"{self.user} - {self.date} {self.time_start}"


class MemberAvailability(TimeStampedModel):
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="slot_availability")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="slot_availability")
    day_of_week = models.PositiveSmallIntegerField(choices=WEEKDAY_CHOICES)
    time_start = models.TimeField()
    time_end = models.TimeField()
    is_available = models.BooleanField(default=True)
    period_start = models.DateField()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "department", "day_of_week", "time_start", "time_end", "period_start"],
                name="unique_slot_availability_per_period",
            )
        ]


class MemberDateAvailability(TimeStampedModel):
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="date_availability")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="date_availability")
    date = models.DateField()
    is_available = models.BooleanField(default=True)

    class Meta:
        unique_together = ("user", "department", "date")


class MemberPreferences(TimeStampedModel):
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="member_preferences")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="member_preferences")
    max_schedules_per_month = models.PositiveSmallIntegerField(default=4)
    min_days_between_schedules = models.PositiveSmallIntegerField(default=3)
    blackout_dates = models.JSONField(default=list, blank=True)
    preferred_sector_ids = models.JSONField(default=list, blank=True)

    class Meta:
        unique_together = ("user", "department")


class AuditEvent(models.Model):
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True)
    actor_user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    entity_type = models.CharField(max_length=100)
    entity_id = models.CharField(max_length=100)
    action_type = models.CharField(max_length=50)
    diff_json = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
            models.Index(fields=["department", "timestamp"], name="audit_department_ts_idx"),
        ]
