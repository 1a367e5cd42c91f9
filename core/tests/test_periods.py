from datetime import date, time
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase

from core.models import MemberAvailability
from core.services.periods import current_period, next_period, period_for_date, reset_stale_availability
from core.tests.factories import make_department, make_user


class PeriodWindowTests(SimpleTestCase):
    def test_first_half_ends_on_fifteenth(self):
        period = period_for_date(date(2026, 10, 15))
        self.assertEqual(period.period_start, date(2026, 10, 1))
        self.assertEqual(period.period_end, date(2026, 10, 15))
        self.assertEqual(period.label, "Outubro 1-15")

    def test_second_half_starts_on_sixteenth(self):
        period = period_for_date(date(2026, 10, 16))
        self.assertEqual(period.period_start, date(2026, 10, 16))
        self.assertEqual(period.period_end, date(2026, 10, 31))
        self.assertEqual(period.period_start_str, "2026-10-16")

    def test_february_second_half(self):
        period = period_for_date(date(2026, 2, 20))
        self.assertEqual(period.period_end, date(2026, 2, 28))

    def test_next_period_within_month(self):
        nxt = next_period(date(2026, 10, 3))
        self.assertEqual(nxt.period_start, date(2026, 10, 16))

    def test_next_period_rolls_over_december(self):
        nxt = next_period(date(2026, 12, 20))
        self.assertEqual(nxt.period_start, date(2027, 1, 1))
        self.assertEqual(nxt.label, "Janeiro 1-15")

    def test_contains(self):
        period = current_period(date(2026, 10, 17))
        self.assertTrue(period.contains(date(2026, 10, 31)))
        self.assertFalse(period.contains(date(2026, 11, 1)))


class ResetAvailabilityTests(TestCase):
    def setUp(self):
        self.department = make_department()
        self.user = make_user()

    def _record(self, period_start):
        return MemberAvailability.objects.create(
            department=self.department,
            user=self.user,
            day_of_week=0,
            time_start=time(8, 0),
            time_end=time(12, 0),
            period_start=period_start,
        )

    def test_only_older_periods_are_removed(self):
        self._record(date(2026, 10, 1))
        kept = self._record(date(2026, 10, 16))
        upcoming = self._record(date(2026, 11, 1))
        start, deleted = reset_stale_availability(date(2026, 10, 17))
        self.assertEqual(start, date(2026, 10, 16))
        self.assertEqual(deleted, 1)
        self.assertEqual(
            set(MemberAvailability.objects.values_list("id", flat=True)),
            {kept.id, upcoming.id},
        )

    def test_command_reports_removed_records(self):
        self._record(date(2026, 9, 16))
        out = StringIO()
        call_command("reset_availability", "--today", "2026-10-17", stdout=out)
        self.assertIn("Removed 1", out.getvalue())
        self.assertFalse(MemberAvailability.objects.exists())
