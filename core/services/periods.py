import calendar as cal
from dataclasses import dataclass
from datetime import date

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from core.models import MemberAvailability

MONTH_NAMES = [
    "Janeiro",
    "Fevereiro",
    "Marco",
    "Abril",
    "Maio",
    "Junho",
    "Julho",
    "Agosto",
    "Setembro",
    "Outubro",
    "Novembro",
    "Dezembro",
]

SECOND_HALF_START_DAY = 16


@dataclass(frozen=True)
class Period:
    period_start: date
    period_end: date
    label: str

    @property
    def period_start_str(self):
        return self.period_start.isoformat()

    def contains(self, day):
        return self.period_start <= day <= self.period_end


def _period_starting_at(start):
    if start.day == 1:
        end = start.replace(day=SECOND_HALF_START_DAY - 1)
    else:
        end = start.replace(day=cal.monthrange(start.year, start.month)[1])
    label = f"{MONTH_NAMES[start.month - 1]} {start.day}-{end.day}"
    return Period(period_start=start, period_end=end, label=label)


def period_for_date(day):
    start_day = SECOND_HALF_START_DAY if day.day >= SECOND_HALF_START_DAY else 1
    return _period_starting_at(day.replace(day=start_day))


def current_period(today=None):
    return period_for_date(today or timezone.localdate())


def next_period(today=None):
    current = current_period(today)
    if current.period_start.day == 1:
        return _period_starting_at(current.period_start.replace(day=SECOND_HALF_START_DAY))
    return _period_starting_at(current.period_start.replace(day=1) + relativedelta(months=1))


def reset_stale_availability(today=None):
    start = current_period(today).period_start
    deleted, _ = MemberAvailability.objects.filter(period_start__lt=start).delete()
    return start, deleted
