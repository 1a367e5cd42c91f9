import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date as dt_date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.utils import timezone
from ortools.sat.python import cp_model

from core.models import Member, MemberAvailability, MemberPreferences, Schedule
from core.services.errors import ScheduleValidationError, SuggestionError
from core.services.periods import period_for_date
from core.services.preferences import PreferenceDefaults
from core.services.schedule_drafts import relabel_store_error
from core.services.schedules import ScheduleStoreError, insert_schedules
from core.services.slots import (
    as_date,
    available_slots_for_day,
    normalize_time,
    record_matches_slot,
    slots_for_department,
)

logger = logging.getLogger(__name__)

WINDOWS = {
    "week": relativedelta(weeks=1),
    "two_weeks": relativedelta(weeks=2),
    "month": relativedelta(months=1),
}

DEFAULT_CONFIG = {
    "max_solve_seconds": 10,
    "history_months": 3,
}


def _config():
    config = dict(DEFAULT_CONFIG)
    config.update(getattr(settings, "LEVI_SMART_SCHEDULE", {}))
    return config


class InvalidSuggestionRow(ValueError):
    pass


@dataclass(frozen=True)
class Suggestion:
    date: dt_date
    user_id: int
    name: str
    time_start: str
    time_end: str
    sector_id: Optional[int] = None
    slot_label: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        if not isinstance(row, dict):
            raise InvalidSuggestionRow(f"Sugestao invalida: {row!r}")
        missing = [name for name in ("date", "user_id", "time_start", "time_end") if row.get(name) in (None, "")]
        if missing:
            raise InvalidSuggestionRow(f"Campos ausentes na sugestao: {', '.join(missing)}")
        user_id = row["user_id"]
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise InvalidSuggestionRow(f"user_id invalido: {user_id!r}")
        sector_id = row.get("sector_id")
        if sector_id is not None and (isinstance(sector_id, bool) or not isinstance(sector_id, int)):
            raise InvalidSuggestionRow(f"sector_id invalido: {sector_id!r}")
        try:
            day = as_date(row["date"])
            time_start = normalize_time(row["time_start"])
            time_end = normalize_time(row["time_end"])
        except ValueError as exc:
            raise InvalidSuggestionRow(str(exc)) from exc
        if not isinstance(day, dt_date):
            raise InvalidSuggestionRow(f"Data invalida: {row['date']!r}")
        if time_end <= time_start:
            raise InvalidSuggestionRow(f"Horario invalido: {time_start}-{time_end}")
        return cls(
            date=day,
            user_id=user_id,
            name=str(row.get("name") or ""),
            time_start=time_start,
            time_end=time_end,
            sector_id=sector_id,
            slot_label=row.get("slot_label") or None,
        )

    def to_row(self, created_by_id=None):
        return {
            "user_id": self.user_id,
            "date": self.date,
            "time_start": self.time_start,
            "time_end": self.time_end,
            "notes": None,
            "sector_id": self.sector_id,
            "assignment_role": None,
            "created_by_id": created_by_id,
        }


@dataclass
class SmartScheduleResult:
    suggestions: list = field(default_factory=list)
    reasoning: str = ""
    unfilled: list = field(default_factory=list)

    @property
    def total(self):
        return len(self.suggestions)


def suggestion_window(kind, today=None):
    """Inclusive ``(start, end)`` date range for a suggestion run."""
    if kind not in WINDOWS:
        raise SuggestionError(f"Periodo invalido: {kind}")
    start = today or timezone.localdate()
    return start, start + WINDOWS[kind]


def _days(start, end):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def _overlaps(schedule, slot):
    return normalize_time(schedule.time_start) < slot.time_end and normalize_time(schedule.time_end) > slot.time_start


class _Context:

    def __init__(self, department, members, start, end, defaults, history_months):
        self.members = members
        user_ids = [member.user_id for member in members]

        self.availability = defaultdict(lambda: defaultdict(list))
        declared = set()
        rows = MemberAvailability.objects.filter(department=department, user_id__in=user_ids)
        for row in rows:
            declared.add(row.user_id)
            if row.is_available:
                self.availability[row.user_id][row.period_start].append(row)
        self.declared = declared

        self.preferences = {}
        for prefs in MemberPreferences.objects.filter(department=department, user_id__in=user_ids):
            self.preferences[prefs.user_id] = prefs
        self.defaults = defaults

        # Schedules in any department touching the months of the window.
        month_start = start.replace(day=1)
        month_end = end.replace(day=1) + relativedelta(months=1) - timedelta(days=1)
        self.existing = defaultdict(list)
        for schedule in Schedule.objects.filter(user_id__in=user_ids, date__range=(month_start, month_end)):
            self.existing[schedule.user_id].append(schedule)
        self.department_id = department.pk

        history_start = start - relativedelta(months=history_months)
        self.history = defaultdict(int)
        for schedule in Schedule.objects.filter(
            department=department, user_id__in=user_ids, date__gte=history_start, date__lt=start
        ):
            self.history[schedule.user_id] += 1

    def max_per_month(self, user_id):
        prefs = self.preferences.get(user_id)
        return prefs.max_schedules_per_month if prefs else self.defaults.max_schedules_per_month

    def min_days_between(self, user_id):
        prefs = self.preferences.get(user_id)
        return prefs.min_days_between_schedules if prefs else self.defaults.min_days_between_schedules

    def is_blacked_out(self, user_id, day):
        prefs = self.preferences.get(user_id)
        return bool(prefs and day.isoformat() in (prefs.blackout_dates or []))

    def is_available(self, user_id, day, slot):
        if user_id not in self.declared:
            return True
        records = self.availability[user_id].get(period_for_date(day).period_start, [])
        return any(record_matches_slot(record, slot) for record in records)

    def department_schedules(self, user_id):
        return [s for s in self.existing[user_id] if s.department_id == self.department_id]

    def can_take(self, user_id, day, slot):
        if self.is_blacked_out(user_id, day) or not self.is_available(user_id, day, slot):
            return False
        gap = self.min_days_between(user_id)
        for schedule in self.existing[user_id]:
            if schedule.date == day and _overlaps(schedule, slot):
                return False
            if schedule.department_id == self.department_id and abs((schedule.date - day).days) < max(gap, 1):
                return False
        return True


def generate_suggestions(department, start, end, members_per_slot=None, sector_id=None, slots=None, defaults=None):
    start, end = as_date(start), as_date(end)
    if end < start:
        raise SuggestionError("A data final deve ser depois da data inicial.")
    config = _config()
    defaults = defaults or PreferenceDefaults.from_settings()
    members = list(Member.objects.filter(department=department).select_related("user").order_by("user__full_name"))
    if not members:
        raise SuggestionError("Nenhum membro encontrado.")
    slots = list(slots) if slots is not None else slots_for_department(department)
    targets = [(day, slot) for day in _days(start, end) for slot in available_slots_for_day(slots, day)]
    if not targets:
        raise SuggestionError("Nenhum dia valido encontrado no periodo selecionado.")

    ctx = _Context(department, members, start, end, defaults, int(config["history_months"]))
    model = cp_model.CpModel()
    x = {}
    for idx, (day, slot) in enumerate(targets):
        for member in members:
            if ctx.can_take(member.user_id, day, slot):
                x[(idx, member.user_id)] = model.NewBoolVar(f"x_{idx}_{member.user_id}")

    needed = {}
    for idx, (day, slot) in enumerate(targets):
        needed[idx] = int(members_per_slot or slot.default_member_count)
        vars_for_slot = [x[(idx, m.user_id)] for m in members if (idx, m.user_id) in x]
        if vars_for_slot:
            model.Add(sum(vars_for_slot) <= needed[idx])

    days = sorted({day for day, _ in targets})
    day_vars = defaultdict(dict)
    for member in members:
        for day in days:
            vars_for_day = [
                x[(idx, member.user_id)]
                for idx, (slot_day, _) in enumerate(targets)
                if slot_day == day and (idx, member.user_id) in x
            ]
            if vars_for_day:
                model.Add(sum(vars_for_day) <= 1)
                day_vars[member.user_id][day] = sum(vars_for_day)

    for member in members:
        user_days = day_vars[member.user_id]
        gap = ctx.min_days_between(member.user_id)
        ordered = sorted(user_days)
        for pos, day_a in enumerate(ordered):
            for day_b in ordered[pos + 1 :]:
                if (day_b - day_a).days >= gap:
                    break
                model.Add(user_days[day_a] + user_days[day_b] <= 1)

        by_month = defaultdict(list)
        for day, expr in user_days.items():
            by_month[(day.year, day.month)].append(expr)
        for (year, month), exprs in by_month.items():
            already = sum(
                1 for s in ctx.department_schedules(member.user_id) if (s.date.year, s.date.month) == (year, month)
            )
            model.Add(sum(exprs) <= max(0, ctx.max_per_month(member.user_id) - already))

    loads = {}
    for member in members:
        assigned = [var for (idx, user_id), var in x.items() if user_id == member.user_id]
        loads[member.user_id] = sum(assigned) if assigned else 0

    max_history = max(ctx.history.values(), default=0)
    max_load = model.NewIntVar(0, max_history + len(targets), "max_load")
    for member in members:
        if isinstance(loads[member.user_id], int):
            continue
        model.Add(max_load >= loads[member.user_id] + ctx.history[member.user_id])

    coverage_weight = 10 * (max_history + len(members) + 2)
    coverage = sum(x.values()) if x else 0
    history_terms = [ctx.history[user_id] * var for (idx, user_id), var in x.items() if ctx.history[user_id]]
    objective = coverage_weight * coverage - 10 * max_load
    if history_terms:
        objective = objective - sum(history_terms)
    model.Maximize(objective)

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(config["max_solve_seconds"])
    status = solver.Solve(model)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.error("Smart schedule solver returned status %s for department %s", status, department.pk)
        raise SuggestionError()

    names = {member.user_id: member.user.display_name for member in members}
    suggestions = []
    unfilled = []
    for idx, (day, slot) in enumerate(targets):
        chosen = [m.user_id for m in members if (idx, m.user_id) in x and solver.Value(x[(idx, m.user_id)]) == 1]
        for user_id in chosen:
            suggestions.append(
                Suggestion.from_row(
                    {
                        "date": day,
                        "user_id": user_id,
                        "name": names[user_id],
                        "time_start": slot.time_start,
                        "time_end": slot.time_end,
                        "sector_id": sector_id,
                        "slot_label": slot.label,
                    }
                )
            )
        if len(chosen) < needed[idx]:
            unfilled.append(
                {
                    "date": day,
                    "slot_label": slot.label,
                    "time_start": slot.time_start,
                    "time_end": slot.time_end,
                    "missing": needed[idx] - len(chosen),
                }
            )

    reasoning = (
        f"{len(suggestions)} escalas sugeridas para {len(targets)} horarios entre "
        f"{start.strftime('%d/%m')} e {end.strftime('%d/%m')}, considerando disponibilidade, "
        f"datas bloqueadas, limites por membro e o historico dos ultimos {config['history_months']} meses."
    )
    if unfilled:
        reasoning = f"{reasoning} {len(unfilled)} horarios ficaram incompletos por falta de membros disponiveis."
    logger.info("Generated %s suggestions for department %s", len(suggestions), department.pk)
    return SmartScheduleResult(suggestions=suggestions, reasoning=reasoning, unfilled=unfilled)


def confirm_suggestions(department, actor, suggestions):
    if not suggestions:
        raise ScheduleValidationError("Selecione ao menos uma escala.", title="Nenhuma escala selecionada")
    try:
        parsed = [item if isinstance(item, Suggestion) else Suggestion.from_row(item) for item in suggestions]
    except InvalidSuggestionRow as exc:
        raise SuggestionError(str(exc)) from exc
    member_ids = set(Member.objects.filter(department=department).values_list("user_id", flat=True))
    outsiders = sorted({item.user_id for item in parsed} - member_ids)
    if outsiders:
        raise SuggestionError(f"Usuarios fora do departamento: {outsiders}")
    rows = [item.to_row(created_by_id=actor.pk if actor is not None else None) for item in parsed]
    try:
        return insert_schedules(department, rows, actor=actor)
    except ScheduleStoreError as exc:
        raise relabel_store_error(exc) from exc
