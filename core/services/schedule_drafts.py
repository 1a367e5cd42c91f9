import logging

from core.models import Schedule
from core.services.eligibility import EligibilityReport, compute_eligibility
from core.services.errors import (
    MemberBlockedError,
    ScheduleConflictError,
    ScheduleCreationError,
    ScheduleValidationError,
)
from core.services.schedules import CONFLICT_SIGNATURE, InvalidSectorError, ScheduleStoreError, insert_schedules
from core.services.slots import as_date, default_time_selection, normalize_time, slots_for_department

logger = logging.getLogger(__name__)

NONE = "none"

STEP_SELECT = "select"
STEP_CONFIGURE = "configure"

CONFIG_FIELDS = ("sector_id", "assignment_role")
ROLE_VALUES = {value for value, _ in Schedule.ROLE_CHOICES}


def _or_none(value):
    if value is None or value == NONE or value == "":
        return None
    return value


class ScheduleDraft:
    def __init__(self, department, actor, members, slots=None, date=None):
        self.department = department
        self.actor = actor
        self.members = list(members)
        self.slots = list(slots) if slots is not None else slots_for_department(department)
        self._token = 0
        self.reset()
        if date is not None:
            self.set_date(date)

    def reset(self):
        self.step = STEP_SELECT
        self.date = None
        self.time_mode = "custom"
        self.time_start = None
        self.time_end = None
        self.available_slots = ()
        self.notes = ""
        self.selected = []
        self.configs = {}
        self.eligibility = EligibilityReport()
        self._token += 1

    # eligibility

    def begin_eligibility_check(self):
        self._token += 1
        return self._token

    def apply_eligibility(self, token, report):
        if token != self._token:
            logger.debug("Discarding stale eligibility result %s (latest %s)", token, self._token)
            return False
        self.eligibility = report
        allowed = report.eligible_user_ids
        self.selected = [user_id for user_id in self.selected if user_id in allowed]
        self.configs = {user_id: config for user_id, config in self.configs.items() if user_id in allowed}
        return True

    def refresh_eligibility(self):
        token = self.begin_eligibility_check()
        report = compute_eligibility(self.department, self.members, self.date, self.time_start, self.time_end)
        return self.apply_eligibility(token, report)

    def is_blocked(self, user_id):
        entry = self.eligibility.status_for(user_id)
        return entry is not None and not entry.is_eligible

    # select step

    def set_date(self, value):
        self.date = as_date(value)
        selection = default_time_selection(self.slots, self.date)
        self.time_mode = selection.mode
        self.time_start = selection.time_start
        self.time_end = selection.time_end
        self.available_slots = selection.available_slots
        self.refresh_eligibility()

    def select_slot(self, slot):
        self.time_mode = "slot"
        self.set_times(slot.time_start, slot.time_end)

    def use_custom_time(self):
        self.time_mode = "custom"

    def set_times(self, time_start, time_end):
        self.time_start = normalize_time(time_start)
        self.time_end = normalize_time(time_end)
        self.refresh_eligibility()

    def choose_times(self, time_start, time_end):
        time_start, time_end = normalize_time(time_start), normalize_time(time_end)
        for slot in self.available_slots:
            if (slot.time_start, slot.time_end) == (time_start, time_end):
                self.select_slot(slot)
                return
        self.use_custom_time()
        self.set_times(time_start, time_end)

    def toggle_member(self, user_id):
        if user_id in self.selected:
            self.selected.remove(user_id)
            self.configs.pop(user_id, None)
            return False
        if self.is_blocked(user_id):
            entry = self.eligibility.status_for(user_id)
            raise MemberBlockedError(detail=entry.reason or None)
        if not any(member.user_id == user_id for member in self.members):
            raise ValueError(f"Usuario {user_id} nao e membro do departamento.")
        self.selected.append(user_id)
        return True

    def select_all_eligible(self):
        for member in self.members:
            if member.user_id not in self.selected and not self.is_blocked(member.user_id):
                self.selected.append(member.user_id)
        return list(self.selected)

    def go_to_configure(self):
        if not self.selected:
            raise ScheduleValidationError("Selecione ao menos um membro.", title="Nenhum membro selecionado")
        for user_id in self.selected:
            self.configs.setdefault(user_id, {"sector_id": NONE, "assignment_role": NONE})
        self.step = STEP_CONFIGURE

    def back_to_select(self):
        self.step = STEP_SELECT

    # configure step

    def _check_field(self, field, value):
        if field not in CONFIG_FIELDS:
            raise ValueError(f"Campo invalido: {field!r}")
        if field == "assignment_role" and value not in ROLE_VALUES and value != NONE:
            raise ValueError(f"Funcao invalida: {value!r}")

    def config_for(self, user_id):
        return self.configs.setdefault(user_id, {"sector_id": NONE, "assignment_role": NONE})

    def configure_member(self, user_id, **values):
        if user_id not in self.selected:
            raise ValueError(f"Usuario {user_id} nao esta selecionado.")
        for field, value in values.items():
            self._check_field(field, value)
        self.config_for(user_id).update(values)

    def apply_to_all(self, field, value):
        self._check_field(field, value)
        for user_id in self.selected:
            self.config_for(user_id)[field] = value

    # submit

    def validate(self):
        if not self.date or not self.time_start or not self.time_end:
            raise ScheduleValidationError()
        if not self.selected:
            raise ScheduleValidationError("Selecione ao menos um membro.", title="Nenhum membro selecionado")
        if self.time_end <= self.time_start:
            raise ScheduleValidationError(
                "O horario de termino deve ser depois do horario de inicio.", title="Horario invalido"
            )

    def build_rows(self):
        rows = []
        for user_id in self.selected:
            config = self.config_for(user_id)
            rows.append(
                {
                    "user_id": user_id,
                    "date": self.date,
                    "time_start": self.time_start,
                    "time_end": self.time_end,
                    "notes": self.notes or None,
                    "sector_id": _or_none(config.get("sector_id")),
                    "assignment_role": _or_none(config.get("assignment_role")),
                    "created_by_id": self.actor.pk if self.actor is not None else None,
                }
            )
        return rows

    def submit(self):
        self.validate()
        rows = self.build_rows()
        try:
            created = insert_schedules(self.department, rows, actor=self.actor)
        except ScheduleStoreError as exc:
            raise relabel_store_error(exc) from exc
        self.reset()
        return created


def relabel_store_error(exc):
    message = str(exc)
    if isinstance(exc, InvalidSectorError):
        return ScheduleValidationError(detail=message, title="Setor invalido")
    if CONFLICT_SIGNATURE in message:
        return ScheduleConflictError(detail=message)
    logger.error("Schedule creation failed: %s", message)
    return ScheduleCreationError()
