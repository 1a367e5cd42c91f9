import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

WEEKDAY_CHOICES = [
    (0, "Domingo"),
    (1, "Segunda"),
    (2, "Terca"),
    (3, "Quarta"),
    (4, "Quinta"),
    (5, "Sexta"),
    (6, "Sabado"),
]


def _timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def _pk():
    return ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID"))


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Church",
            fields=[
                _pk(),
                *_timestamps(),
                ("name", models.CharField(max_length=200)),
                ("city", models.CharField(blank=True, max_length=100)),
                ("state", models.CharField(blank=True, max_length=50)),
                ("timezone", models.CharField(default="America/Sao_Paulo", max_length=64)),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="Department",
            fields=[
                _pk(),
                *_timestamps(),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("invite_code", models.CharField(max_length=20, unique=True)),
                (
                    "church",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="departments",
                        to="core.church",
                    ),
                ),
                (
                    "leader",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="led_departments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="Member",
            fields=[
                _pk(),
                *_timestamps(),
                (
                    "role",
                    models.CharField(choices=[("leader", "Lider"), ("member", "Membro")], default="member", max_length=10),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="members", to="core.department"
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"unique_together": {("department", "user")}},
        ),
        migrations.CreateModel(
            name="DepartmentSlot",
            fields=[
                _pk(),
                *_timestamps(),
                ("day_of_week", models.PositiveSmallIntegerField(choices=WEEKDAY_CHOICES)),
                ("time_start", models.TimeField()),
                ("time_end", models.TimeField()),
                ("label", models.CharField(max_length=100)),
                ("default_member_count", models.PositiveSmallIntegerField(default=3)),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="slots", to="core.department"
                    ),
                ),
            ],
            options={
                "ordering": ["day_of_week", "time_start"],
                "unique_together": {("department", "day_of_week", "time_start")},
            },
        ),
        migrations.CreateModel(
            name="Sector",
            fields=[
                _pk(),
                *_timestamps(),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                ("color", models.CharField(default="#6366f1", max_length=20)),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="sectors", to="core.department"
                    ),
                ),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Schedule",
            fields=[
                _pk(),
                *_timestamps(),
                ("date", models.DateField()),
                ("time_start", models.TimeField()),
                ("time_end", models.TimeField()),
                ("notes", models.TextField(blank=True, null=True)),
                (
                    "assignment_role",
                    models.CharField(
                        blank=True,
                        choices=[("on_duty", "Plantao"), ("participant", "Culto")],
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "confirmation_status",
                    models.CharField(
                        choices=[("pending", "Pendente"), ("confirmed", "Confirmada"), ("declined", "Recusada")],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="schedules_created",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="schedules", to="core.department"
                    ),
                ),
                (
                    "sector",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="schedules",
                        to="core.sector",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="schedules",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["date", "time_start"],
                "indexes": [
                    models.Index(fields=["user", "date"], name="schedule_user_date_idx"),
                    models.Index(fields=["department", "date"], name="schedule_department_date_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("time_end__gt", models.F("time_start"))),
                        name="schedule_end_after_start",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="MemberAvailability",
            fields=[
                _pk(),
                *_timestamps(),
                ("day_of_week", models.PositiveSmallIntegerField(choices=WEEKDAY_CHOICES)),
                ("time_start", models.TimeField()),
                ("time_end", models.TimeField()),
                ("is_available", models.BooleanField(default=True)),
                ("period_start", models.DateField()),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="slot_availability",
                        to="core.department",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="slot_availability",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "department", "day_of_week", "time_start", "time_end", "period_start"),
                        name="unique_slot_availability_per_period",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="MemberDateAvailability",
            fields=[
                _pk(),
                *_timestamps(),
                ("date", models.DateField()),
                ("is_available", models.BooleanField(default=True)),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="date_availability",
                        to="core.department",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="date_availability",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"unique_together": {("user", "department", "date")}},
        ),
        migrations.CreateModel(
            name="MemberPreferences",
            fields=[
                _pk(),
                *_timestamps(),
                ("max_schedules_per_month", models.PositiveSmallIntegerField(default=4)),
                ("min_days_between_schedules", models.PositiveSmallIntegerField(default=3)),
                ("blackout_dates", models.JSONField(blank=True, default=list)),
                ("preferred_sector_ids", models.JSONField(blank=True, default=list)),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="member_preferences",
                        to="core.department",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="member_preferences",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"unique_together": {("user", "department")}},
        ),
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                _pk(),
                ("entity_type", models.CharField(max_length=100)),
                ("entity_id", models.CharField(max_length=100)),
                ("action_type", models.CharField(max_length=50)),
                ("diff_json", models.JSONField(blank=True, default=dict)),
                ("timestamp", models.DateTimeField(auto_now_add=True)),
                (
                    "actor_user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="core.department",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
                    models.Index(fields=["department", "timestamp"], name="audit_department_ts_idx"),
                ],
            },
        ),
    ]
