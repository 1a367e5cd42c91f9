import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from notifications.models import Notification, NotificationPreference

logger = logging.getLogger(__name__)


class NotificationService:
    def deliver(self, notification):
        if notification.channel == "email":
            send_mail(notification.title, notification.message, settings.DEFAULT_FROM_EMAIL, [notification.user.email])
            return True
        return False

    def send_pending(self):
        pending = Notification.objects.filter(status="pending").select_related("user")
        sent = 0
        for notification in pending:
            try:
                delivered = self.deliver(notification)
                notification.status = "sent" if delivered else "failed"
                if delivered:
                    notification.sent_at = timezone.now()
            except Exception as exc:
                logger.warning("Notification %s failed: %s", notification.pk, exc)
                notification.status = "failed"
                notification.error_message = str(exc)
            if notification.status == "sent":
                sent += 1
            notification.save(update_fields=["status", "sent_at", "error_message"])
        return sent


def _format_schedule(schedule):
    return f"{schedule.date.strftime('%d/%m/%Y')} das {schedule.time_start.strftime('%H:%M')} as {schedule.time_end.strftime('%H:%M')}"


def _skip_reason(department, user, channel):
    if channel != "email":
        return ""
    if not user.is_active:
        return "user_inactive"
    if not user.email:
        return "missing_email"
    pref = NotificationPreference.objects.filter(department=department, user=user).first()
    if pref and not pref.email_enabled:
        return "email_disabled"
    return ""


def enqueue_notification(department, user, notification_type, title, message, idempotency_key, schedule=None, channel="email"):
    if not idempotency_key.startswith(f"department:{department.id}:"):
        idempotency_key = f"department:{department.id}:{idempotency_key}"
    reason = _skip_reason(department, user, channel)
    notification, _ = Notification.objects.get_or_create(
        channel=channel,
        idempotency_key=idempotency_key,
        defaults={
            "department": department,
            "user": user,
            "schedule": schedule,
            "type": notification_type,
            "title": title,
            "message": message,
            "status": "skipped" if reason else "pending",
            "error_message": reason,
        },
    )
    return notification


def enqueue_schedule_notifications(schedules):
    notifications = []
    for schedule in schedules:
        department = schedule.department
        message = f"Voce foi escalado em {department.name} para {_format_schedule(schedule)}."
        if schedule.sector_id:
            message = f"{message} Setor: {schedule.sector.name}."
        notifications.append(
            enqueue_notification(
                department,
                schedule.user,
                "new_schedule",
                "Nova escala",
                message,
                f"schedule:{schedule.id}:new_schedule",
                schedule=schedule,
            )
        )
    return notifications


def enqueue_confirmation_notification(schedule, action, reason=None):
    department = schedule.department
    leader = department.leader
    name = schedule.user.display_name
    day = schedule.date.strftime("%d/%m/%Y")
    if action == "confirm":
        notification_type = "schedule_confirmed"
        title = "Escala confirmada"
        message = f"{name} confirmou presenca em {department.name} para {day}."
    else:
        notification_type = "schedule_declined"
        title = "Escala recusada"
        message = f"{name} nao podera comparecer em {department.name} em {day}."
        if reason:
            message = f"{message} Motivo: {reason}"
    return enqueue_notification(
        department,
        leader,
        notification_type,
        title,
        message,
        f"schedule:{schedule.id}:{notification_type}",
        schedule=schedule,
    )
