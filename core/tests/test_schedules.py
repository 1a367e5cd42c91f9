from datetime import date, datetime, time
from unittest import mock

from django.core.exceptions import PermissionDenied
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from core.models import AuditEvent, Schedule, Sector
from core.services.errors import ScheduleAlreadyAnsweredError, ScheduleExpiredError, ScheduleValidationError
from core.services.schedules import (
    CONFLICT_SIGNATURE,
    InvalidSectorError,
    ScheduleStoreError,
    _lock_users,
    confirm_schedule,
    delete_schedule,
    insert_schedules,
    list_sectors,
    update_schedule_notes,
)
from core.tests.factories import add_member, make_department, make_user
from notifications.models import Notification

DAY = date(2026, 10, 18)


class ScheduleStoreTests(TestCase):
    def setUp(self):
        self.department = make_department("Louvor")
        self.other = make_department("Recepcao")
        self.leader = self.department.leader
        self.ana = add_member(self.department, make_user("Ana")).user
        self.bia = add_member(self.department, make_user("Bia")).user

    def _row(self, user, start="09:00", end="12:00", **extra):
        row = {"user_id": user.pk, "date": DAY, "time_start": start, "time_end": end}
        row.update(extra)
        return row

    def test_list_sectors_is_ordered(self):
        Sector.objects.create(department=self.department, name="Som")
        Sector.objects.create(department=self.department, name="Iluminacao")
        Sector.objects.create(department=self.other, name="Portaria")
        self.assertEqual([s.name for s in list_sectors(self.department)], ["Iluminacao", "Som"])

    def test_list_sectors_read_failure_answers_empty(self):
        Sector.objects.create(department=self.department, name="Som")
        with mock.patch.object(Sector.objects, "filter", side_effect=DatabaseError("boom")):
            with self.assertLogs("core.services.schedules", level="ERROR"):
                self.assertEqual(list_sectors(self.department), [])

    def test_insert_batch_writes_rows_and_audit(self):
        created = insert_schedules(self.department, [self._row(self.ana), self._row(self.bia)], actor=self.leader)
        self.assertEqual(len(created), 2)
        self.assertEqual(Schedule.objects.filter(department=self.department).count(), 2)
        audit = AuditEvent.objects.get(action_type="bulk_create")
        self.assertEqual(audit.diff_json["count"], 2)
        self.assertEqual(audit.actor_user, self.leader)

    def test_conflict_rejects_whole_batch(self):
        Schedule.objects.create(
            department=self.other, user=self.ana, date=DAY, time_start=time(11, 0), time_end=time(13, 0)
        )
        with self.assertRaises(ScheduleStoreError) as ctx:
            insert_schedules(self.department, [self._row(self.bia), self._row(self.ana)], actor=self.leader)
        self.assertIn(CONFLICT_SIGNATURE, str(ctx.exception))
        self.assertFalse(Schedule.objects.filter(department=self.department).exists())

    def test_batch_locks_its_users_before_checking_conflicts(self):
        db_connection = mock.Mock()
        db_connection.features.has_select_for_update = True
        user_model = mock.MagicMock()
        calls = []

        def no_conflicts(rows):
            calls.append(user_model.objects.select_for_update.called)
            return []

        with mock.patch("core.services.schedules.connection", db_connection):
            with mock.patch("core.services.schedules.get_user_model", return_value=user_model):
                with mock.patch("core.services.schedules.find_schedule_conflicts", side_effect=no_conflicts):
                    insert_schedules(self.department, [self._row(self.bia), self._row(self.ana)])
        self.assertEqual(calls, [True])
        user_model.objects.select_for_update.assert_called_once_with()
        user_model.objects.select_for_update.return_value.filter.assert_called_once_with(
            id__in=sorted([self.ana.pk, self.bia.pk])
        )
        self.assertEqual(Schedule.objects.filter(department=self.department).count(), 2)

    def test_lock_users_answers_sorted_unique_ids(self):
        self.assertEqual(_lock_users([self.bia.pk, self.ana.pk, self.bia.pk]), sorted([self.ana.pk, self.bia.pk]))

    def test_sector_from_other_department_is_rejected(self):
        foreign = Sector.objects.create(department=self.other, name="Portaria")
        with self.assertRaises(InvalidSectorError) as ctx:
            insert_schedules(self.department, [self._row(self.ana, sector_id=foreign.id)])
        self.assertIsInstance(ctx.exception, ScheduleStoreError)
        self.assertIn(str(foreign.id), str(ctx.exception))
        self.assertFalse(Schedule.objects.exists())

    def test_notifications_created_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            created = insert_schedules(self.department, [self._row(self.ana)], actor=self.leader)
        notification = Notification.objects.get(user=self.ana)
        self.assertEqual(notification.type, "new_schedule")
        self.assertEqual(notification.schedule_id, created[0].pk)
        self.assertEqual(
            notification.idempotency_key,
            f"department:{self.department.id}:schedule:{created[0].pk}:new_schedule",
        )

    def test_notification_failure_keeps_schedules(self):
        with mock.patch(
            "notifications.services.enqueue_schedule_notifications", side_effect=RuntimeError("smtp down")
        ):
            with self.assertLogs("core.services.schedules", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    insert_schedules(self.department, [self._row(self.ana)], actor=self.leader)
        self.assertEqual(Schedule.objects.filter(user=self.ana).count(), 1)
        self.assertFalse(Notification.objects.exists())

    def test_delete_and_update_notes(self):
        created = insert_schedules(self.department, [self._row(self.ana)])
        schedule = update_schedule_notes(self.department, created[0].pk, "Chegar cedo", actor=self.leader)
        self.assertEqual(schedule.notes, "Chegar cedo")
        delete_schedule(self.department, created[0].pk, actor=self.leader)
        self.assertFalse(Schedule.objects.exists())
        self.assertTrue(AuditEvent.objects.filter(action_type="delete").exists())

    def test_delete_is_scoped_to_department(self):
        created = insert_schedules(self.department, [self._row(self.ana)])
        with self.assertRaises(Schedule.DoesNotExist):
            delete_schedule(self.other, created[0].pk)


class ScheduleConfirmationTests(TestCase):
    def setUp(self):
        self.department = make_department("Louvor")
        self.leader = self.department.leader
        self.ana = add_member(self.department, make_user("Ana")).user
        self.schedule = Schedule.objects.create(
            department=self.department, user=self.ana, date=DAY, time_start=time(9, 0), time_end=time(12, 0)
        )
        self.now = timezone.make_aware(datetime(2026, 10, 17, 12, 0))

    def test_confirm_stamps_status_and_notifies_leader(self):
        with self.captureOnCommitCallbacks(execute=True):
            schedule = confirm_schedule(self.schedule, self.ana, "confirm", reason="ignorado", now=self.now)
        self.assertEqual(schedule.confirmation_status, "confirmed")
        self.assertEqual(schedule.confirmed_at, self.now)
        self.assertIsNone(schedule.decline_reason)
        self.assertTrue(AuditEvent.objects.filter(action_type="confirm", entity_id=str(schedule.id)).exists())
        notification = Notification.objects.get(user=self.leader)
        self.assertEqual(notification.type, "schedule_confirmed")
        self.assertIn("18/10/2026", notification.message)

    def test_decline_keeps_reason(self):
        with self.captureOnCommitCallbacks(execute=True):
            schedule = confirm_schedule(self.schedule, self.ana, "decline", reason="  Viagem  ", now=self.now)
        schedule.refresh_from_db()
        self.assertEqual(schedule.confirmation_status, "declined")
        self.assertEqual(schedule.decline_reason, "Viagem")
        notification = Notification.objects.get(user=self.leader)
        self.assertEqual(notification.type, "schedule_declined")
        self.assertIn("Motivo: Viagem", notification.message)

    def test_only_the_scheduled_member_answers(self):
        with self.assertRaises(PermissionDenied):
            confirm_schedule(self.schedule, self.leader, "confirm", now=self.now)
        self.schedule.refresh_from_db()
        self.assertEqual(self.schedule.confirmation_status, "pending")

    def test_unknown_action_is_rejected(self):
        with self.assertRaises(ScheduleValidationError) as ctx:
            confirm_schedule(self.schedule, self.ana, "maybe", now=self.now)
        self.assertEqual(ctx.exception.title, "Acao invalida")

    def test_answered_schedule_cannot_change(self):
        confirm_schedule(self.schedule, self.ana, "confirm", now=self.now)
        with self.assertRaises(ScheduleAlreadyAnsweredError):
            confirm_schedule(self.schedule, self.ana, "decline", now=self.now)
        self.schedule.refresh_from_db()
        self.assertEqual(self.schedule.confirmation_status, "confirmed")

    def test_started_schedule_is_expired(self):
        later = timezone.make_aware(datetime(2026, 10, 18, 9, 30))
        with self.assertRaises(ScheduleExpiredError):
            confirm_schedule(self.schedule, self.ana, "confirm", now=later)
        self.schedule.refresh_from_db()
        self.assertEqual(self.schedule.confirmation_status, "pending")

    def test_notification_failure_keeps_answer(self):
        with mock.patch(
            "notifications.services.enqueue_confirmation_notification", side_effect=RuntimeError("smtp down")
        ):
            with self.assertLogs("core.services.schedules", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    confirm_schedule(self.schedule, self.ana, "confirm", now=self.now)
        self.schedule.refresh_from_db()
        self.assertEqual(self.schedule.confirmation_status, "confirmed")
        self.assertFalse(Notification.objects.exists())
