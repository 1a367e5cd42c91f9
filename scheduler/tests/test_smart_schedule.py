from collections import Counter
from datetime import date, time

from django.test import SimpleTestCase, TestCase, override_settings

from core.models import DepartmentSlot, MemberAvailability, MemberPreferences, Schedule
from core.services.errors import ScheduleConflictError, ScheduleValidationError, SuggestionError
from core.services.slots import seed_default_slots
from core.tests.factories import add_member, make_department, make_user
from scheduler.services.smart_schedule import (
    InvalidSuggestionRow,
    Suggestion,
    confirm_suggestions,
    generate_suggestions,
    suggestion_window,
)

START = date(2026, 10, 18)
END = date(2026, 10, 24)


class SuggestionRowTests(SimpleTestCase):
    def test_valid_row_is_normalized(self):
        suggestion = Suggestion.from_row(
            {"date": "2026-10-18", "user_id": 4, "name": "Ana", "time_start": "08:00:00", "time_end": "12:00"}
        )
        self.assertEqual(suggestion.date, START)
        self.assertEqual(suggestion.time_start, "08:00")
        self.assertIsNone(suggestion.sector_id)

    def test_shape_mismatch_fails_fast(self):
        bad_rows = [
            {"user_id": 4, "time_start": "08:00", "time_end": "12:00"},
            {"date": "2026-10-18", "user_id": "4", "time_start": "08:00", "time_end": "12:00"},
            {"date": "2026-10-18", "user_id": 4, "time_start": "12:00", "time_end": "08:00"},
            {"date": "2026-10-18", "user_id": 4, "time_start": "08:00", "time_end": "12:00", "sector_id": "x"},
            "2026-10-18",
        ]
        for row in bad_rows:
            with self.assertRaises(InvalidSuggestionRow):
                Suggestion.from_row(row)

    def test_windows(self):
        self.assertEqual(suggestion_window("week", START), (START, date(2026, 10, 25)))
        self.assertEqual(suggestion_window("two_weeks", START), (START, date(2026, 11, 1)))
        self.assertEqual(suggestion_window("month", START), (START, date(2026, 11, 18)))
        with self.assertRaises(SuggestionError):
            suggestion_window("year", START)


@override_settings(LEVI_SMART_SCHEDULE={"max_solve_seconds": 5, "history_months": 3})
class GenerateSuggestionsTests(TestCase):
    def setUp(self):
        self.department = make_department("Louvor")
        seed_default_slots(self.department)
        self.members = [add_member(self.department, make_user(name)) for name in ("Ana", "Bia", "Caio", "Davi")]

    def _users(self, result):
        return Counter(s.user_id for s in result.suggestions)

    def test_every_suggestion_matches_a_slot(self):
        result = generate_suggestions(self.department, START, END)
        self.assertTrue(result.suggestions)
        slots = {(s.day_of_week, s.time_start.strftime("%H:%M")) for s in DepartmentSlot.objects.all()}
        for suggestion in result.suggestions:
            weekday = (suggestion.date.weekday() + 1) % 7
            self.assertIn((weekday, suggestion.time_start), slots)
        self.assertTrue(result.reasoning)

    def test_one_slot_per_member_per_day(self):
        result = generate_suggestions(self.department, START, START)
        per_day = Counter((s.user_id, s.date) for s in result.suggestions)
        self.assertTrue(all(count == 1 for count in per_day.values()))

    def test_members_per_slot_is_respected(self):
        result = generate_suggestions(self.department, START, END, members_per_slot=1)
        per_slot = Counter((s.date, s.time_start) for s in result.suggestions)
        self.assertTrue(all(count <= 1 for count in per_slot.values()))

    def test_blackout_members_are_never_assigned(self):
        blocked = self.members[0].user
        MemberPreferences.objects.create(
            department=self.department, user=blocked, blackout_dates=[d.isoformat() for d in (START, date(2026, 10, 19))]
        )
        result = generate_suggestions(self.department, START, date(2026, 10, 19))
        self.assertNotIn(blocked.pk, self._users(result))

    def test_declared_availability_limits_slots(self):
        picky = self.members[1].user
        MemberAvailability.objects.create(
            department=self.department,
            user=picky,
            day_of_week=1,
            time_start=time(19, 0),
            time_end=time(22, 0),
            period_start=date(2026, 10, 16),
        )
        result = generate_suggestions(self.department, START, END)
        mine = [s for s in result.suggestions if s.user_id == picky.pk]
        self.assertTrue(all(s.date == date(2026, 10, 19) for s in mine))

    def test_other_department_conflict_is_excluded(self):
        busy = self.members[2].user
        other = make_department("Recepcao")
        Schedule.objects.create(department=other, user=busy, date=START, time_start=time(7, 0), time_end=time(23, 0))
        result = generate_suggestions(self.department, START, START)
        self.assertNotIn(busy.pk, self._users(result))

    def test_min_days_between_schedules(self):
        result = generate_suggestions(self.department, START, END)
        by_user = {}
        for suggestion in result.suggestions:
            by_user.setdefault(suggestion.user_id, []).append(suggestion.date)
        for dates in by_user.values():
            dates.sort()
            for first, second in zip(dates, dates[1:]):
                self.assertGreaterEqual((second - first).days, 3)

    def test_monthly_cap_counts_existing_schedules(self):
        capped = self.members[3].user
        MemberPreferences.objects.create(department=self.department, user=capped, max_schedules_per_month=1)
        Schedule.objects.create(
            department=self.department, user=capped, date=date(2026, 10, 2), time_start=time(19, 0), time_end=time(22, 0)
        )
        result = generate_suggestions(self.department, START, END)
        self.assertNotIn(capped.pk, self._users(result))

    def test_unfilled_slots_are_reported(self):
        result = generate_suggestions(self.department, START, START, members_per_slot=10)
        self.assertTrue(result.unfilled)
        self.assertTrue(all(item["missing"] > 0 for item in result.unfilled))

    def test_empty_department_raises(self):
        empty = make_department("Vazio")
        empty.members.all().delete()
        with self.assertRaises(SuggestionError):
            generate_suggestions(empty, START, END)

    def test_window_without_slots_raises(self):
        DepartmentSlot.objects.filter(department=self.department).exclude(day_of_week=0).delete()
        with self.assertRaises(SuggestionError):
            generate_suggestions(self.department, date(2026, 10, 19), date(2026, 10, 20))


class ConfirmSuggestionsTests(TestCase):
    def setUp(self):
        self.department = make_department("Louvor")
        self.leader = self.department.leader
        self.ana = add_member(self.department, make_user("Ana")).user

    def _row(self, **extra):
        row = {"date": "2026-10-18", "user_id": self.ana.pk, "name": "Ana", "time_start": "08:00", "time_end": "12:00"}
        row.update(extra)
        return row

    def test_confirm_inserts_selected(self):
        created = confirm_suggestions(self.department, self.leader, [self._row()])
        self.assertEqual(len(created), 1)
        self.assertEqual(Schedule.objects.get().created_by, self.leader)

    def test_zero_selected_is_rejected(self):
        with self.assertRaises(ScheduleValidationError):
            confirm_suggestions(self.department, self.leader, [])

    def test_outsider_is_rejected(self):
        with self.assertRaises(SuggestionError):
            confirm_suggestions(self.department, self.leader, [self._row(user_id=make_user().pk)])

    def test_conflict_is_relabelled(self):
        Schedule.objects.create(
            department=self.department, user=self.ana, date=START, time_start=time(9, 0), time_end=time(10, 0)
        )
        with self.assertRaises(ScheduleConflictError):
            confirm_suggestions(self.department, self.leader, [self._row()])
