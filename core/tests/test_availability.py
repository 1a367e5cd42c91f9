from datetime import date, time
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase

from core.models import MemberAvailability, MemberDateAvailability
from core.services.availability import (
    DateAvailabilityCalendar,
    SlotAvailabilityBoard,
    date_availability_overview,
    is_date_available,
    is_slot_available,
    slot_availability_overview,
)
from core.services.errors import AvailabilityConflictError, PastDateError
from core.services.periods import current_period
from core.services.slots import FixedSlot
from core.tests.factories import make_department, make_user

TODAY = date(2026, 10, 17)
SUNDAY_MORNING = FixedSlot(0, "08:00", "12:00", "Domingo de Manha")


class AbsenceConventionTests(TestCase):
    def test_missing_record_is_unavailable(self):
        self.assertFalse(is_slot_available([], SUNDAY_MORNING))
        self.assertFalse(is_date_available([], date(2026, 10, 20)))

    def test_false_record_is_unavailable(self):
        records = [{"day_of_week": 0, "time_start": "08:00:00", "time_end": "12:00:00", "is_available": False}]
        self.assertFalse(is_slot_available(records, SUNDAY_MORNING))
        records[0]["is_available"] = True
        self.assertTrue(is_slot_available(records, SUNDAY_MORNING))


class SlotAvailabilityBoardTests(TestCase):
    def setUp(self):
        self.department = make_department()
        self.user = make_user()

    def _board(self):
        return SlotAvailabilityBoard(self.department, self.user, today=TODAY)

    def test_periods_are_split_by_start(self):
        MemberAvailability.objects.create(
            department=self.department,
            user=self.user,
            day_of_week=0,
            time_start=time(8, 0),
            time_end=time(12, 0),
            period_start=date(2026, 10, 16),
        )
        MemberAvailability.objects.create(
            department=self.department,
            user=self.user,
            day_of_week=1,
            time_start=time(19, 0),
            time_end=time(22, 0),
            period_start=date(2026, 11, 1),
        )
        MemberAvailability.objects.create(
            department=self.department,
            user=self.user,
            day_of_week=2,
            time_start=time(19, 0),
            time_end=time(22, 0),
            period_start=date(2026, 10, 1),
        )
        board = self._board()
        self.assertEqual(len(board.records["current"]), 1)
        self.assertEqual(len(board.records["next"]), 1)
        self.assertTrue(board.is_available(SUNDAY_MORNING))
        board.select_period("next")
        self.assertFalse(board.is_available(SUNDAY_MORNING))

    def test_insert_is_stamped_with_selected_period(self):
        board = self._board()
        board.select_period("next")
        self.assertTrue(board.toggle(SUNDAY_MORNING))
        record = MemberAvailability.objects.get(user=self.user)
        self.assertEqual(record.period_start, date(2026, 11, 1))
        self.assertTrue(board.is_available(SUNDAY_MORNING))
        board.select_period("current")
        self.assertFalse(board.is_available(SUNDAY_MORNING))

    def test_unmark_deletes_record(self):
        board = self._board()
        board.toggle(SUNDAY_MORNING)
        self.assertFalse(board.toggle(SUNDAY_MORNING))
        self.assertFalse(MemberAvailability.objects.filter(user=self.user).exists())
        self.assertFalse(board.is_available(SUNDAY_MORNING))

    def test_false_record_is_updated_in_place(self):
        legacy = MemberAvailability.objects.create(
            department=self.department,
            user=self.user,
            day_of_week=0,
            time_start=time(8, 0),
            time_end=time(12, 0),
            is_available=False,
            period_start=date(2026, 10, 16),
        )
        board = self._board()
        self.assertTrue(board.toggle(SUNDAY_MORNING))
        legacy.refresh_from_db()
        self.assertTrue(legacy.is_available)
        self.assertEqual(MemberAvailability.objects.filter(user=self.user).count(), 1)

    def test_duplicate_insert_refetches_and_asks_to_retry(self):
        board = self._board()
        MemberAvailability.objects.create(
            department=self.department,
            user=self.user,
            day_of_week=0,
            time_start=time(8, 0),
            time_end=time(12, 0),
            period_start=date(2026, 10, 16),
        )
        with self.assertLogs("core.services.availability", level="WARNING"):
            with self.assertRaises(AvailabilityConflictError):
                board.toggle(SUNDAY_MORNING)
        self.assertTrue(board.is_available(SUNDAY_MORNING))
        self.assertEqual(MemberAvailability.objects.filter(user=self.user).count(), 1)

    def test_overview_lists_members_per_slot(self):
        other = make_user("Outro")
        for user in (self.user, other):
            SlotAvailabilityBoard(self.department, user, today=TODAY).toggle(SUNDAY_MORNING)
        evening = FixedSlot(0, "18:00", "22:00", "Domingo de Noite")
        overview = slot_availability_overview(self.department, current_period(TODAY), [SUNDAY_MORNING, evening])
        self.assertEqual({user.pk for user in overview[0][1]}, {self.user.pk, other.pk})
        self.assertEqual(overview[1][1], [])

    def test_vanished_row_after_update_triggers_refetch(self):
        MemberAvailability.objects.create(
            department=self.department,
            user=self.user,
            day_of_week=0,
            time_start=time(8, 0),
            time_end=time(12, 0),
            is_available=False,
            period_start=date(2026, 10, 16),
        )
        board = self._board()
        with mock.patch.object(board, "refresh", wraps=board.refresh) as refresh:
            with mock.patch("django.db.models.query.QuerySet.first", return_value=None):
                self.assertTrue(board.toggle(SUNDAY_MORNING))
        refresh.assert_called_once_with()
        self.assertTrue(board.is_available(SUNDAY_MORNING))
        self.assertTrue(MemberAvailability.objects.get(user=self.user).is_available)

    def test_failed_refresh_keeps_last_records(self):
        board = self._board()
        board.toggle(SUNDAY_MORNING)
        with mock.patch.object(MemberAvailability.objects, "filter", side_effect=DatabaseError("boom")):
            with self.assertLogs("core.services.availability", level="ERROR"):
                board.refresh()
        self.assertTrue(board.is_available(SUNDAY_MORNING))

    def test_failed_load_starts_empty(self):
        with mock.patch.object(MemberAvailability.objects, "filter", side_effect=DatabaseError("boom")):
            with self.assertLogs("core.services.availability", level="ERROR"):
                board = self._board()
        self.assertEqual(board.records, {"current": [], "next": []})

    def test_overview_read_failure_lists_nobody(self):
        with mock.patch.object(MemberAvailability.objects, "filter", side_effect=DatabaseError("boom")):
            with self.assertLogs("core.services.availability", level="ERROR"):
                overview = slot_availability_overview(self.department, current_period(TODAY), [SUNDAY_MORNING])
        self.assertEqual(overview, [(SUNDAY_MORNING, [])])


class DateAvailabilityCalendarTests(TestCase):
    def setUp(self):
        self.department = make_department()
        self.user = make_user()

    def _calendar(self):
        return DateAvailabilityCalendar(self.department, self.user, year=2026, month=10, today=TODAY)

    def test_month_has_every_day(self):
        calendar = self._calendar()
        self.assertEqual(len(calendar.month_dates()), 31)
        days = calendar.days()
        self.assertTrue(days[0]["locked"])
        self.assertFalse(days[16]["locked"])

    def test_mark_then_unmark_leaves_no_record(self):
        calendar = self._calendar()
        target = date(2026, 10, 20)
        self.assertTrue(calendar.toggle(target))
        self.assertTrue(calendar.is_available(target))
        self.assertFalse(calendar.toggle(target))
        self.assertFalse(
            MemberDateAvailability.objects.filter(department=self.department, user=self.user, date=target).exists()
        )

    def test_today_is_not_locked(self):
        calendar = self._calendar()
        self.assertTrue(calendar.toggle(TODAY))

    def test_past_date_is_rejected_without_queries(self):
        calendar = self._calendar()
        with self.assertNumQueries(0):
            with self.assertRaises(PastDateError):
                calendar.toggle(date(2026, 10, 16))
        self.assertEqual(calendar.records, [])
        self.assertFalse(MemberDateAvailability.objects.exists())

    def test_false_row_is_reused(self):
        legacy = MemberDateAvailability.objects.create(
            department=self.department, user=self.user, date=date(2026, 10, 25), is_available=False
        )
        calendar = self._calendar()
        self.assertFalse(calendar.is_available(date(2026, 10, 25)))
        self.assertTrue(calendar.toggle(date(2026, 10, 25)))
        legacy.refresh_from_db()
        self.assertTrue(legacy.is_available)
        self.assertEqual(MemberDateAvailability.objects.count(), 1)

    def test_duplicate_insert_raises_conflict(self):
        calendar = self._calendar()
        MemberDateAvailability.objects.create(department=self.department, user=self.user, date=date(2026, 10, 28))
        with self.assertLogs("core.services.availability", level="WARNING"):
            with self.assertRaises(AvailabilityConflictError):
                calendar.toggle(date(2026, 10, 28))
        self.assertTrue(calendar.is_available(date(2026, 10, 28)))

    def test_vanished_row_after_update_triggers_refetch(self):
        MemberDateAvailability.objects.create(
            department=self.department, user=self.user, date=date(2026, 10, 26), is_available=False
        )
        calendar = self._calendar()
        with mock.patch.object(calendar, "refresh", wraps=calendar.refresh) as refresh:
            with mock.patch("django.db.models.query.QuerySet.first", return_value=None):
                self.assertTrue(calendar.toggle(date(2026, 10, 26)))
        refresh.assert_called_once_with()
        self.assertTrue(calendar.is_available(date(2026, 10, 26)))
        self.assertTrue(MemberDateAvailability.objects.get(user=self.user).is_available)

    def test_failed_refresh_keeps_last_records(self):
        calendar = self._calendar()
        calendar.toggle(date(2026, 10, 22))
        with mock.patch.object(MemberDateAvailability.objects, "filter", side_effect=DatabaseError("boom")):
            with self.assertLogs("core.services.availability", level="ERROR"):
                records = calendar.refresh()
        self.assertEqual(len(records), 1)
        self.assertTrue(calendar.is_available(date(2026, 10, 22)))


class DateAvailabilityOverviewTests(TestCase):
    def setUp(self):
        self.department = make_department()
        self.ana = make_user("Ana")
        self.bia = make_user("Bia")

    def test_lists_available_members_per_day(self):
        for user in (self.bia, self.ana):
            MemberDateAvailability.objects.create(department=self.department, user=user, date=date(2026, 11, 8))
        MemberDateAvailability.objects.create(
            department=self.department, user=self.ana, date=date(2026, 11, 15), is_available=False
        )
        other = make_department("Outro")
        MemberDateAvailability.objects.create(department=other, user=self.ana, date=date(2026, 11, 1))
        overview = date_availability_overview(self.department, 2026, 11)
        self.assertEqual(len(overview), 30)
        by_day = dict(overview)
        self.assertEqual([user.pk for user in by_day[date(2026, 11, 8)]], [self.ana.pk, self.bia.pk])
        self.assertEqual(by_day[date(2026, 11, 15)], [])
        self.assertEqual(by_day[date(2026, 11, 1)], [])

    def test_read_failure_answers_empty_days(self):
        MemberDateAvailability.objects.create(department=self.department, user=self.ana, date=date(2026, 11, 8))
        with mock.patch.object(MemberDateAvailability.objects, "filter", side_effect=DatabaseError("boom")):
            with self.assertLogs("core.services.availability", level="ERROR"):
                overview = date_availability_overview(self.department, 2026, 11)
        self.assertEqual(len(overview), 30)
        self.assertTrue(all(users == [] for _, users in overview))
