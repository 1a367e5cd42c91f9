import logging
from dataclasses import dataclass, field
from typing import Optional

from django.db import DatabaseError

from core.models import MemberPreferences
from core.services.conflicts import InvalidConflictRow, check_cross_department_conflicts
from core.services.slots import as_date

logger = logging.getLogger(__name__)

AVAILABLE = "available"
BLOCKED_BLACKOUT = "blocked_blackout"
BLOCKED_CONFLICT = "blocked_conflict"


@dataclass(frozen=True)
class MemberEligibility:
    member: object
    status: str
    conflict_department: Optional[str] = None

    @property
    def user_id(self):
        return self.member.user_id

    @property
    def is_eligible(self):
        return self.status == AVAILABLE

    @property
    def reason(self):
        if self.status == BLOCKED_BLACKOUT:
            return "Data bloqueada"
        if self.status == BLOCKED_CONFLICT:
            return f"Escalado em {self.conflict_department}"
        return ""


@dataclass
class EligibilityReport:
    entries: list = field(default_factory=list)

    @property
    def eligible(self):
        return [entry for entry in self.entries if entry.is_eligible]

    @property
    def blocked(self):
        return [entry for entry in self.entries if not entry.is_eligible]

    @property
    def eligible_user_ids(self):
        return {entry.user_id for entry in self.eligible}

    def status_for(self, user_id):
        for entry in self.entries:
            if entry.user_id == user_id:
                return entry
        return None


def blackout_user_ids(department, target_date):
    target = as_date(target_date).isoformat()
    try:
        rows = list(MemberPreferences.objects.filter(department=department).values("user_id", "blackout_dates"))
    except DatabaseError:
        logger.exception("Could not load blackout dates for department %s", department.pk)
        return set()
    return {row["user_id"] for row in rows if target in (row["blackout_dates"] or [])}


def conflicting_departments(department, user_ids, target_date, time_start, time_end):
    try:
        rows = check_cross_department_conflicts(user_ids, target_date, time_start, time_end, department.pk)
    except (DatabaseError, InvalidConflictRow):
        logger.exception("Cross-department conflict check failed for department %s", department.pk)
        return {}
    conflicts = {}
    for row in rows:
        conflicts.setdefault(row.user_id, row.department_name)
    return conflicts


def compute_eligibility(department, members, target_date, time_start, time_end):
    members = list(members)
    if target_date is None:
        return EligibilityReport([MemberEligibility(member, AVAILABLE) for member in members])
    blackouts = blackout_user_ids(department, target_date)
    conflicts = {}
    if time_start and time_end:
        conflicts = conflicting_departments(
            department, [member.user_id for member in members], target_date, time_start, time_end
        )
    entries = []
    for member in members:
        if member.user_id in blackouts:
            entries.append(MemberEligibility(member, BLOCKED_BLACKOUT))
        elif member.user_id in conflicts:
            entries.append(MemberEligibility(member, BLOCKED_CONFLICT, conflicts[member.user_id]))
        else:
            entries.append(MemberEligibility(member, AVAILABLE))
    return EligibilityReport(entries)
