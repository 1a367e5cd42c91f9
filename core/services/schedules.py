import logging
from datetime import datetime

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied
from django.db import DatabaseError, IntegrityError, connection, transaction
from django.utils import timezone

from core.models import Schedule, Sector
from core.services.audit import log_audit
from core.services.conflicts import find_schedule_conflicts
from core.services.errors import ScheduleAlreadyAnsweredError, ScheduleExpiredError, ScheduleValidationError
from core.services.slots import as_date, normalize_time, parse_time

logger = logging.getLogger(__name__)

# Substring carried by every insert rejected for overlapping schedules.
CONFLICT_SIGNATURE = "schedule_time_conflict"

CONFIRMATION_ACTIONS = {"confirm": "confirmed", "decline": "declined"}


class ScheduleStoreError(RuntimeError):
    pass


class InvalidSectorError(ScheduleStoreError):
    pass


def list_sectors(department):
    try:
        return list(Sector.objects.filter(department=department).order_by("name"))
    except DatabaseError:
        logger.exception("Could not load sectors for department %s", department.pk)
        return []


def list_schedules(department, start=None, end=None):
    qs = Schedule.objects.filter(department=department).select_related("user", "sector")
    if start:
        qs = qs.filter(date__gte=as_date(start))
    if end:
        qs = qs.filter(date__lte=as_date(end))
    return list(qs.order_by("date", "time_start", "user__full_name"))


def _build_schedule(department, row):
    return Schedule(
        department=department,
        user_id=row["user_id"],
        date=as_date(row["date"]),
        time_start=parse_time(row["time_start"]),
        time_end=parse_time(row["time_end"]),
        notes=row.get("notes") or None,
        sector_id=row.get("sector_id"),
        assignment_role=row.get("assignment_role"),
        created_by_id=row.get("created_by_id"),
    )


def _lock_users(user_ids):
    # Serializes batches touching the same users, in any department.
    qs = get_user_model().objects
    if connection.features.has_select_for_update:
        qs = qs.select_for_update()
    return list(qs.filter(id__in=sorted(set(user_ids))).order_by("id").values_list("id", flat=True))


def _notify_created(schedule_ids):
    # Best effort: the schedules are already committed.
    from notifications.services import enqueue_schedule_notifications

    try:
        schedules = Schedule.objects.filter(id__in=schedule_ids).select_related("department", "user", "sector")
        enqueue_schedule_notifications(list(schedules))
    except Exception:
        logger.exception("Could not create notifications for schedules %s", schedule_ids)


def insert_schedules(department, rows, actor=None):
    rows = list(rows)
    if not rows:
        return []
    sector_ids = {row.get("sector_id") for row in rows if row.get("sector_id")}
    if sector_ids:
        valid = set(Sector.objects.filter(department=department, id__in=sector_ids).values_list("id", flat=True))
        if sector_ids - valid:
            raise InvalidSectorError(f"Setor invalido para o departamento: {sorted(sector_ids - valid)}")
    try:
        with transaction.atomic():
            _lock_users(row["user_id"] for row in rows)
            conflicts = find_schedule_conflicts(rows)
            if conflicts:
                row, reason = conflicts[0]
                raise ScheduleStoreError(
                    f"{CONFLICT_SIGNATURE}: usuario {row['user_id']} ja possui escala em "
                    f"{as_date(row['date']).isoformat()} {normalize_time(row['time_start'])}-"
                    f"{normalize_time(row['time_end'])} ({reason})"
                )
            created = Schedule.objects.bulk_create([_build_schedule(department, row) for row in rows])
            if any(schedule.pk is None for schedule in created):
                created = list(
                    Schedule.objects.filter(
                        department=department,
                        user_id__in=[row["user_id"] for row in rows],
                        date__in={as_date(row["date"]) for row in rows},
                    )
                )
            ids = [schedule.pk for schedule in created]
            log_audit(
                department,
                actor,
                "Schedule",
                ids[0],
                "bulk_create",
                {"count": len(ids), "ids": ids, "user_ids": [row["user_id"] for row in rows]},
            )
            transaction.on_commit(lambda: _notify_created(ids))
    except IntegrityError as exc:
        logger.warning("Schedule batch rejected by the database: %s", exc)
        raise ScheduleStoreError(str(exc)) from exc
    except DatabaseError as exc:
        logger.error("Schedule batch failed: %s", exc)
        raise ScheduleStoreError(str(exc)) from exc
    logger.info("Created %s schedules in department %s", len(created), department.pk)
    return created


def delete_schedule(department, schedule_id, actor=None):
    schedule = Schedule.objects.get(department=department, id=schedule_id)
    snapshot = {
        "user_id": schedule.user_id,
        "date": schedule.date.isoformat(),
        "time_start": normalize_time(schedule.time_start),
        "time_end": normalize_time(schedule.time_end),
    }
    schedule.delete()
    log_audit(department, actor, "Schedule", schedule_id, "delete", snapshot)


def update_schedule_notes(department, schedule_id, notes, actor=None):
    schedule = Schedule.objects.get(department=department, id=schedule_id)
    before = schedule.notes
    schedule.notes = notes or None
    schedule.save(update_fields=["notes", "updated_at"])
    log_audit(department, actor, "Schedule", schedule.id, "update_notes", {"from": before, "to": schedule.notes})
    return schedule


def _notify_answered(schedule_id, action, reason):
    from notifications.services import enqueue_confirmation_notification

    try:
        schedule = Schedule.objects.select_related("department__leader", "user").get(id=schedule_id)
        enqueue_confirmation_notification(schedule, action, reason)
    except Exception:
        logger.exception("Could not notify the leader about schedule %s", schedule_id)


def confirm_schedule(schedule, user, action, reason=None, now=None):
    if action not in CONFIRMATION_ACTIONS:
        raise ScheduleValidationError("Use 'confirm' ou 'decline'.", title="Acao invalida")
    if schedule.user_id != user.pk:
        raise PermissionDenied("Apenas o membro escalado pode responder a esta escala.")
    now = now or timezone.now()
    with transaction.atomic():
        qs = Schedule.objects
        if connection.features.has_select_for_update:
            qs = qs.select_for_update()
        schedule = qs.get(id=schedule.id)
        if schedule.confirmation_status != "pending":
            raise ScheduleAlreadyAnsweredError()
        starts_at = timezone.make_aware(datetime.combine(schedule.date, schedule.time_start))
        if starts_at < now:
            raise ScheduleExpiredError()
        reason = (reason or "").strip()[:500] if action == "decline" else ""
        schedule.confirmation_status = CONFIRMATION_ACTIONS[action]
        schedule.confirmed_at = now
        schedule.decline_reason = reason or None
        schedule.save(update_fields=["confirmation_status", "confirmed_at", "decline_reason", "updated_at"])
        log_audit(
            schedule.department,
            user,
            "Schedule",
            schedule.id,
            action,
            {"status": schedule.confirmation_status, "reason": schedule.decline_reason},
        )
        transaction.on_commit(lambda: _notify_answered(schedule.id, action, schedule.decline_reason))
    logger.info("Schedule %s %s by user %s", schedule.id, schedule.confirmation_status, user.pk)
    return schedule
