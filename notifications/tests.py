from datetime import date, time
from io import StringIO

from django.core import mail
from django.core.management import call_command
from django.test import TestCase

from core.models import Schedule, Sector
from core.tests.factories import add_member, make_department, make_user
from notifications.models import Notification, NotificationPreference
from notifications.services import (
    NotificationService,
    enqueue_confirmation_notification,
    enqueue_notification,
    enqueue_schedule_notifications,
)


class ScheduleNotificationTests(TestCase):
    def setUp(self):
        self.department = make_department("Louvor")
        self.user = add_member(self.department, make_user("Ana")).user
        self.sector = Sector.objects.create(department=self.department, name="Som")

    def _schedule(self, user=None):
        return Schedule.objects.create(
            department=self.department,
            user=user or self.user,
            date=date(2026, 10, 18),
            time_start=time(9, 0),
            time_end=time(12, 0),
            sector=self.sector,
        )

    def test_one_pending_record_per_schedule(self):
        schedule = self._schedule()
        notifications = enqueue_schedule_notifications([schedule])
        self.assertEqual(len(notifications), 1)
        notification = notifications[0]
        self.assertEqual(notification.status, "pending")
        self.assertEqual(notification.type, "new_schedule")
        self.assertIn("18/10/2026", notification.message)
        self.assertIn("Som", notification.message)

    def test_enqueue_is_idempotent(self):
        schedule = self._schedule()
        enqueue_schedule_notifications([schedule])
        enqueue_schedule_notifications([schedule])
        self.assertEqual(Notification.objects.count(), 1)

    def test_idempotency_is_scoped_by_department(self):
        other = make_department("Recepcao")
        enqueue_notification(self.department, self.user, "new_schedule", "Nova escala", "a", "custom:1")
        enqueue_notification(other, self.user, "new_schedule", "Nova escala", "b", "custom:1")
        keys = set(Notification.objects.values_list("idempotency_key", flat=True))
        self.assertEqual(keys, {f"department:{self.department.id}:custom:1", f"department:{other.id}:custom:1"})

    def test_answers_notify_the_leader(self):
        schedule = self._schedule()
        confirmed = enqueue_confirmation_notification(schedule, "confirm")
        declined = enqueue_confirmation_notification(schedule, "decline", reason="Viagem")
        self.assertEqual((confirmed.user, declined.user), (self.department.leader, self.department.leader))
        self.assertEqual(confirmed.type, "schedule_confirmed")
        self.assertIn("confirmou presenca", confirmed.message)
        self.assertEqual(declined.type, "schedule_declined")
        self.assertTrue(declined.message.endswith("Motivo: Viagem"))
        self.assertEqual(
            declined.idempotency_key, f"department:{self.department.id}:schedule:{schedule.id}:schedule_declined"
        )
        enqueue_confirmation_notification(schedule, "confirm")
        self.assertEqual(Notification.objects.filter(user=self.department.leader).count(), 2)

    def test_inactive_user_is_skipped(self):
        self.user.is_active = False
        self.user.save()
        notification = enqueue_schedule_notifications([self._schedule()])[0]
        self.assertEqual(notification.status, "skipped")
        self.assertEqual(notification.error_message, "user_inactive")

    def test_disabled_email_is_skipped(self):
        NotificationPreference.objects.create(department=self.department, user=self.user, email_enabled=False)
        notification = enqueue_schedule_notifications([self._schedule()])[0]
        self.assertEqual(notification.error_message, "email_disabled")

    def test_missing_email_is_skipped(self):
        type(self.user).objects.filter(pk=self.user.pk).update(email="")
        self.user.refresh_from_db()
        notification = enqueue_schedule_notifications([self._schedule(self.user)])[0]
        self.assertEqual(notification.error_message, "missing_email")


class NotificationDeliveryTests(TestCase):
    def setUp(self):
        self.department = make_department()
        self.user = make_user("Ana")

    def _pending(self, key):
        return Notification.objects.create(
            department=self.department,
            user=self.user,
            type="new_schedule",
            title="Nova escala",
            message="Voce foi escalado.",
            idempotency_key=key,
        )

    def test_send_pending_delivers_email(self):
        notification = self._pending("department:1:a")
        sent = NotificationService().send_pending()
        self.assertEqual(sent, 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, "Nova escala")
        notification.refresh_from_db()
        self.assertEqual(notification.status, "sent")
        self.assertIsNotNone(notification.sent_at)

    def test_failed_delivery_does_not_set_sent_at(self):
        class FailingService(NotificationService):
            def deliver(self, notification):
                raise RuntimeError("fail")

        notification = self._pending("department:1:b")
        with self.assertLogs("notifications.services", level="WARNING"):
            FailingService().send_pending()
        notification.refresh_from_db()
        self.assertEqual(notification.status, "failed")
        self.assertIsNone(notification.sent_at)
        self.assertEqual(notification.error_message, "fail")

    def test_command(self):
        self._pending("department:1:c")
        out = StringIO()
        call_command("send_notifications", stdout=out)
        self.assertIn("1 sent", out.getvalue())
