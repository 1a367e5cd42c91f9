import re
from dataclasses import dataclass
from datetime import date as dt_date, time as dt_time
from typing import Optional

from django.conf import settings

from core.models import DepartmentSlot

DEFAULT_CUSTOM_TIME = ("19:00", "22:00")

WEEKDAY_SHORT = ["Dom", "Seg", "Ter", "Qua", "Qui", "Sex", "Sab"]

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")


# Storage answers HH:MM:SS, forms send HH:MM.
def normalize_time(value):
    if value is None or value == "":
        return None
    if isinstance(value, dt_time):
        return value.strftime("%H:%M")
    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Horario invalido: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Horario invalido: {value!r}")
    return f"{hour:02d}:{minute:02d}"


def parse_time(value):
    normalized = normalize_time(value)
    if normalized is None:
        return None
    hour, minute = normalized.split(":")
    return dt_time(int(hour), int(minute))


def as_date(value):
    if isinstance(value, str):
        return dt_date.fromisoformat(value)
    return value


# Sunday = 0 ... Saturday = 6
def day_of_week(value):
    return (as_date(value).weekday() + 1) % 7


@dataclass(frozen=True)
class FixedSlot:
    day_of_week: int
    time_start: str
    time_end: str
    label: str
    default_member_count: int = 3
    generic: bool = False

    def __post_init__(self):
        if not 0 <= int(self.day_of_week) <= 6:
            raise ValueError(f"Dia da semana invalido: {self.day_of_week!r}")
        object.__setattr__(self, "day_of_week", int(self.day_of_week))
        object.__setattr__(self, "time_start", normalize_time(self.time_start))
        object.__setattr__(self, "time_end", normalize_time(self.time_end))

    @property
    def key(self):
        return f"{self.day_of_week}-{self.time_start}-{self.time_end}"

    @classmethod
    def from_model(cls, slot):
        return cls(
            day_of_week=slot.day_of_week,
            time_start=slot.time_start,
            time_end=slot.time_end,
            label=slot.label,
            default_member_count=slot.default_member_count,
        )


DEFAULT_FIXED_SLOTS = (
    FixedSlot(0, "08:00", "12:00", "Domingo de Manha", 3),
    FixedSlot(0, "18:00", "22:00", "Domingo de Noite", 5),
    FixedSlot(1, "19:00", "22:00", "Segunda", 3),
    FixedSlot(2, "19:00", "22:00", "Terca", 3),
    FixedSlot(3, "19:00", "22:00", "Quarta", 3),
    FixedSlot(4, "19:00", "22:00", "Quinta", 3),
    FixedSlot(5, "19:00", "22:00", "Sexta", 3),
    FixedSlot(6, "19:00", "22:00", "Sabado", 3),
)


@dataclass(frozen=True)
class TimeSelection:
    mode: str
    time_start: str
    time_end: str
    slot: Optional[FixedSlot]
    available_slots: tuple

    @property
    def is_custom(self):
        return self.mode == "custom"


def slots_for_department(department):
    return [FixedSlot.from_model(slot) for slot in DepartmentSlot.objects.filter(department=department)]


def seed_default_slots(department, slots=DEFAULT_FIXED_SLOTS):
    created = []
    for slot in slots:
        obj, was_created = DepartmentSlot.objects.get_or_create(
            department=department,
            day_of_week=slot.day_of_week,
            time_start=parse_time(slot.time_start),
            defaults={
                "time_end": parse_time(slot.time_end),
                "label": slot.label,
                "default_member_count": slot.default_member_count,
            },
        )
        if was_created:
            created.append(obj)
    return created


def available_slots_for_day(slots, day):
    weekday = day_of_week(day)
    return [slot for slot in slots if slot.day_of_week == weekday]


def default_time_selection(slots, day, custom_time=None):
    available = available_slots_for_day(slots, day)
    if available:
        first = available[0]
        return TimeSelection("slot", first.time_start, first.time_end, first, tuple(available))
    start, end = custom_time or getattr(settings, "LEVI_DEFAULT_CUSTOM_TIME", DEFAULT_CUSTOM_TIME)
    return TimeSelection("custom", normalize_time(start), normalize_time(end), None, ())


def record_field(record, name):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name)


def record_matches_slot(record, slot):
    return (
        int(record_field(record, "day_of_week")) == slot.day_of_week
        and normalize_time(record_field(record, "time_start")) == slot.time_start
        and normalize_time(record_field(record, "time_end")) == slot.time_end
    )


def match_slot(slots, weekday, time_start):
    normalized = normalize_time(time_start)
    for slot in slots:
        if slot.day_of_week == weekday and slot.time_start == normalized:
            return slot
    return None


def generic_slot_for(schedule):
    weekday = day_of_week(record_field(schedule, "date"))
    start = normalize_time(record_field(schedule, "time_start"))
    end = normalize_time(record_field(schedule, "time_end"))
    return FixedSlot(weekday, start, end, f"{WEEKDAY_SHORT[weekday]} {start}-{end}", 0, generic=True)


def group_schedules_by_slot(schedules, slots):
    groups = {}
    for schedule in schedules:
        schedule_date = as_date(record_field(schedule, "date"))
        slot = match_slot(slots, day_of_week(schedule_date), record_field(schedule, "time_start"))
        if slot is None:
            slot = generic_slot_for(schedule)
        groups.setdefault((schedule_date, slot), []).append(schedule)
    ordered = sorted(groups.items(), key=lambda item: (item[0][0], item[0][1].time_start))
    return dict(ordered)
