from dataclasses import dataclass

from django.conf import settings
from django.db import transaction

from core.models import MemberPreferences
from core.services.errors import DuplicateBlackoutDateError
from core.services.slots import as_date


@dataclass(frozen=True)
class PreferenceDefaults:
    max_schedules_per_month: int = 4
    min_days_between_schedules: int = 3

    @classmethod
    def from_settings(cls):
        return cls(**getattr(settings, "LEVI_PREFERENCE_DEFAULTS", {}))


def get_preferences(department, user, defaults=None):
    defaults = defaults or PreferenceDefaults.from_settings()
    prefs = MemberPreferences.objects.filter(department=department, user=user).first()
    if prefs is None:
        prefs = MemberPreferences(
            department=department,
            user=user,
            max_schedules_per_month=defaults.max_schedules_per_month,
            min_days_between_schedules=defaults.min_days_between_schedules,
            blackout_dates=[],
            preferred_sector_ids=[],
        )
    return prefs


def _locked_preferences(department, user, defaults):
    prefs, _ = MemberPreferences.objects.select_for_update().get_or_create(
        department=department,
        user=user,
        defaults={
            "max_schedules_per_month": defaults.max_schedules_per_month,
            "min_days_between_schedules": defaults.min_days_between_schedules,
            "blackout_dates": [],
            "preferred_sector_ids": [],
        },
    )
    return prefs


def add_blackout_date(department, user, day, defaults=None):
    defaults = defaults or PreferenceDefaults.from_settings()
    value = as_date(day).isoformat()
    with transaction.atomic():
        prefs = _locked_preferences(department, user, defaults)
        dates = list(prefs.blackout_dates or [])
        if value in dates:
            raise DuplicateBlackoutDateError()
        prefs.blackout_dates = sorted(dates + [value])
        prefs.save(update_fields=["blackout_dates", "updated_at"])
    return prefs


def remove_blackout_date(department, user, day):
    value = as_date(day).isoformat()
    with transaction.atomic():
        prefs = MemberPreferences.objects.select_for_update().filter(department=department, user=user).first()
        if prefs is None:
            return None
        prefs.blackout_dates = [item for item in (prefs.blackout_dates or []) if item != value]
        prefs.save(update_fields=["blackout_dates", "updated_at"])
    return prefs


def save_preferences(
    department,
    user,
    max_schedules_per_month=None,
    min_days_between_schedules=None,
    preferred_sector_ids=None,
    defaults=None,
):
    defaults = defaults or PreferenceDefaults.from_settings()
    with transaction.atomic():
        prefs = _locked_preferences(department, user, defaults)
        if max_schedules_per_month is not None:
            prefs.max_schedules_per_month = max_schedules_per_month
        if min_days_between_schedules is not None:
            prefs.min_days_between_schedules = min_days_between_schedules
        if preferred_sector_ids is not None:
            prefs.preferred_sector_ids = sorted({int(sector_id) for sector_id in preferred_sector_ids})
        prefs.save()
    return prefs


def department_blackouts(department, start=None):
    start_value = as_date(start).isoformat() if start else None
    rows = (
        MemberPreferences.objects.filter(department=department)
        .select_related("user")
        .order_by("user__full_name")
    )
    result = []
    for prefs in rows:
        dates = sorted(prefs.blackout_dates or [])
        if start_value:
            dates = [value for value in dates if value >= start_value]
        if dates:
            result.append((prefs.user, dates))
    return result
