import calendar as cal
import logging
from collections import defaultdict
from datetime import date

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from core.models import MemberAvailability, MemberDateAvailability
from core.services.errors import AvailabilityConflictError, PastDateError
from core.services.periods import current_period, next_period
from core.services.slots import as_date, parse_time, record_field, record_matches_slot

logger = logging.getLogger(__name__)


# A missing record means "not available"; these are the only readers of that rule.


def find_slot_record(records, slot):
    for record in records:
        if record_matches_slot(record, slot):
            return record
    return None


def is_slot_available(records, slot):
    record = find_slot_record(records, slot)
    return bool(record is not None and record_field(record, "is_available"))


def find_date_record(records, day):
    day = as_date(day)
    for record in records:
        if as_date(record_field(record, "date")) == day:
            return record
    return None


def is_date_available(records, day):
    record = find_date_record(records, day)
    return bool(record is not None and record_field(record, "is_available"))


class SlotAvailabilityBoard:
    def __init__(self, department, user, today=None):
        self.department = department
        self.user = user
        self.periods = {
            "current": current_period(today),
            "next": next_period(today),
        }
        self.selected = "current"
        self.records = {"current": [], "next": []}
        self.refresh()

    @property
    def period(self):
        return self.periods[self.selected]

    def select_period(self, key):
        if key not in self.periods:
            raise ValueError(f"Periodo invalido: {key!r}")
        self.selected = key

    def refresh(self):
        try:
            rows = list(
                MemberAvailability.objects.filter(
                    department=self.department,
                    user=self.user,
                    period_start__gte=self.periods["current"].period_start,
                ).order_by("day_of_week", "time_start")
            )
        except DatabaseError:
            logger.exception("Could not load slot availability for user %s", self.user.pk)
            return self.records
        for key, period in self.periods.items():
            self.records[key] = [row for row in rows if row.period_start.isoformat() == period.period_start_str]
        return self.records

    def is_available(self, slot):
        return is_slot_available(self.records[self.selected], slot)

    def toggle(self, slot):
        key = self.selected
        existing = find_slot_record(self.records[key], slot)
        new_value = not (existing is not None and existing.is_available)
        try:
            if existing is not None and new_value:
                MemberAvailability.objects.filter(id=existing.id).update(is_available=True, updated_at=timezone.now())
                row = MemberAvailability.objects.filter(id=existing.id).first()
                if row is None:
                    self.refresh()
                else:
                    self.records[key] = [row if record.id == existing.id else record for record in self.records[key]]
            elif existing is not None:
                MemberAvailability.objects.filter(id=existing.id).delete()
                self.records[key] = [record for record in self.records[key] if record.id != existing.id]
            else:
                with transaction.atomic():
                    row = MemberAvailability.objects.create(
                        department=self.department,
                        user=self.user,
                        day_of_week=slot.day_of_week,
                        time_start=parse_time(slot.time_start),
                        time_end=parse_time(slot.time_end),
                        is_available=True,
                        period_start=self.period.period_start,
                    )
                self.records[key] = self.records[key] + [row]
        except IntegrityError:
            logger.warning(
                "Duplicate slot availability for user %s in department %s (%s)",
                self.user.pk,
                self.department.pk,
                slot.key,
            )
            self.refresh()
            raise AvailabilityConflictError()
        return new_value


class DateAvailabilityCalendar:
    def __init__(self, department, user, year=None, month=None, today=None):
        self.department = department
        self.user = user
        self.today = today or timezone.localdate()
        self.year = year or self.today.year
        self.month = month or self.today.month
        self.records = []
        self.refresh()

    def month_dates(self):
        last_day = cal.monthrange(self.year, self.month)[1]
        return [date(self.year, self.month, day) for day in range(1, last_day + 1)]

    def refresh(self):
        dates = self.month_dates()
        try:
            self.records = list(
                MemberDateAvailability.objects.filter(
                    department=self.department,
                    user=self.user,
                    date__range=(dates[0], dates[-1]),
                )
            )
        except DatabaseError:
            logger.exception("Could not load date availability for user %s", self.user.pk)
        return self.records

    def is_locked(self, day):
        return as_date(day) < self.today

    def is_available(self, day):
        return is_date_available(self.records, day)

    def days(self):
        return [
            {"date": day, "available": self.is_available(day), "locked": self.is_locked(day)}
            for day in self.month_dates()
        ]

    def toggle(self, day):
        day = as_date(day)
        if self.is_locked(day):
            raise PastDateError()
        if (day.year, day.month) != (self.year, self.month):
            raise ValueError("Data fora do mes exibido.")
        existing = find_date_record(self.records, day)
        new_value = not (existing is not None and existing.is_available)
        try:
            if existing is not None and new_value:
                MemberDateAvailability.objects.filter(id=existing.id).update(
                    is_available=True, updated_at=timezone.now()
                )
                row = MemberDateAvailability.objects.filter(id=existing.id).first()
                if row is None:
                    self.refresh()
                else:
                    self.records = [row if record.id == existing.id else record for record in self.records]
            elif existing is not None:
                MemberDateAvailability.objects.filter(id=existing.id).delete()
                self.records = [record for record in self.records if record.id != existing.id]
            else:
                with transaction.atomic():
                    row = MemberDateAvailability.objects.create(
                        department=self.department,
                        user=self.user,
                        date=day,
                        is_available=True,
                    )
                self.records = self.records + [row]
        except IntegrityError:
            logger.warning(
                "Duplicate date availability for user %s in department %s on %s",
                self.user.pk,
                self.department.pk,
                day,
            )
            self.refresh()
            raise AvailabilityConflictError()
        return new_value


def slot_availability_overview(department, period, slots):
    try:
        rows = list(
            MemberAvailability.objects.filter(
                department=department,
                period_start=period.period_start,
                is_available=True,
            ).select_related("user")
        )
    except DatabaseError:
        logger.exception("Could not load slot availability overview for department %s", department.pk)
        rows = []
    users_by_slot = defaultdict(list)
    for row in rows:
        for slot in slots:
            if record_matches_slot(row, slot):
                users_by_slot[slot.key].append(row.user)
                break
    return [(slot, users_by_slot.get(slot.key, [])) for slot in slots]


def date_availability_overview(department, year, month):
    last_day = cal.monthrange(year, month)[1]
    dates = [date(year, month, day) for day in range(1, last_day + 1)]
    try:
        rows = list(
            MemberDateAvailability.objects.filter(
                department=department,
                date__range=(dates[0], dates[-1]),
                is_available=True,
            )
            .select_related("user")
            .order_by("user__full_name")
        )
    except DatabaseError:
        logger.exception("Could not load date availability overview for department %s", department.pk)
        rows = []
    users_by_date = defaultdict(list)
    for row in rows:
        users_by_date[row.date].append(row.user)
    return [(day, users_by_date.get(day, [])) for day in dates]
