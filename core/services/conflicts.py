from dataclasses import dataclass

from core.models import Schedule
from core.services.slots import as_date, normalize_time, parse_time


class InvalidConflictRow(ValueError):
    pass


@dataclass(frozen=True)
class ConflictRow:
    user_id: int
    department_name: str

    @classmethod
    def from_row(cls, row):
        if not isinstance(row, dict):
            raise InvalidConflictRow(f"Linha de conflito invalida: {row!r}")
        missing = [name for name in ("user_id", "department_name") if row.get(name) is None]
        if missing:
            raise InvalidConflictRow(f"Campos ausentes na linha de conflito: {', '.join(missing)}")
        user_id = row["user_id"]
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise InvalidConflictRow(f"user_id invalido: {user_id!r}")
        if not isinstance(row["department_name"], str):
            raise InvalidConflictRow(f"department_name invalido: {row['department_name']!r}")
        return cls(user_id=user_id, department_name=row["department_name"])


def _overlapping(queryset, time_start, time_end):
    return queryset.filter(time_start__lt=parse_time(time_end), time_end__gt=parse_time(time_start))


def check_cross_department_conflicts(user_ids, date, time_start, time_end, exclude_department_id):
    if not user_ids:
        return []
    rows = (
        _overlapping(Schedule.objects.filter(user_id__in=list(user_ids), date=as_date(date)), time_start, time_end)
        .exclude(department_id=exclude_department_id)
        .order_by("date", "time_start")
        .values("user_id", "department__name")
    )
    return [
        ConflictRow.from_row({"user_id": row["user_id"], "department_name": row["department__name"]}) for row in rows
    ]


def _windows_overlap(a_start, a_end, b_start, b_end):
    return a_start < b_end and a_end > b_start


def find_schedule_conflicts(rows):
    conflicts = []
    seen = []
    for row in rows:
        day = as_date(row["date"])
        start = normalize_time(row["time_start"])
        end = normalize_time(row["time_end"])
        existing = (
            _overlapping(Schedule.objects.filter(user_id=row["user_id"], date=day), start, end)
            .select_related("department")
            .first()
        )
        if existing is not None:
            conflicts.append((row, f"existing schedule in {existing.department.name}"))
        else:
            for other_user, other_day, other_start, other_end in seen:
                if other_user == row["user_id"] and other_day == day and _windows_overlap(
                    start, end, other_start, other_end
                ):
                    conflicts.append((row, "overlapping row in the same batch"))
                    break
        seen.append((row["user_id"], day, start, end))
    return conflicts
