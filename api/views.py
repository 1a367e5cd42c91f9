import logging

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from api.serializers import (
    BlackoutSerializer,
    BulkScheduleSerializer,
    ConfirmSuggestionsSerializer,
    DateToggleSerializer,
    EligibilityQuerySerializer,
    EligibilitySerializer,
    FixedSlotSerializer,
    MemberSerializer,
    NotesSerializer,
    PreferencesSerializer,
    ScheduleAnswerSerializer,
    ScheduleSerializer,
    SectorSerializer,
    SlotToggleSerializer,
    SmartScheduleSerializer,
    SuggestionSerializer,
)
from core.models import Department, Schedule, Sector
from core.services.availability import (
    DateAvailabilityCalendar,
    SlotAvailabilityBoard,
    date_availability_overview,
    slot_availability_overview,
)
from core.services.eligibility import compute_eligibility
from core.services.periods import current_period, next_period
from core.services.permissions import department_members, is_department_leader, is_department_member
from core.services.preferences import (
    add_blackout_date,
    department_blackouts,
    get_preferences,
    remove_blackout_date,
    save_preferences,
)
from core.services.schedule_drafts import NONE, ScheduleDraft
from core.services.schedules import (
    confirm_schedule,
    delete_schedule,
    list_schedules,
    list_sectors,
    update_schedule_notes,
)
from core.services.slots import (
    available_slots_for_day,
    default_time_selection,
    group_schedules_by_slot,
    slots_for_department,
)
from scheduler.services.smart_schedule import confirm_suggestions, generate_suggestions, suggestion_window

logger = logging.getLogger(__name__)


class IsDepartmentMember(permissions.BasePermission):
    message = "Voce nao participa deste departamento."

    def has_permission(self, request, view):
        return is_department_member(request.user, view.get_department())


class IsDepartmentLeader(permissions.BasePermission):
    message = "Apenas lideres podem realizar esta acao."

    def has_permission(self, request, view):
        return is_department_leader(request.user, view.get_department())


class DepartmentScopedMixin:
    """Resolves ``department_id`` from the URL; leader-only for ``leader_methods``."""

    leader_methods = ()

    def get_department(self):
        if not hasattr(self, "_department"):
            self._department = get_object_or_404(Department, pk=self.kwargs["department_id"])
        return self._department

    def requires_leader(self):
        return self.request.method in self.leader_methods

    def get_permissions(self):
        classes = [permissions.IsAuthenticated, IsDepartmentMember]
        if self.requires_leader():
            classes.append(IsDepartmentLeader)
        return [permission() for permission in classes]


def _period_data(period):
    return {
        "period_start": period.period_start_str,
        "period_end": period.period_end.isoformat(),
        "label": period.label,
    }


def _slot_data(slot, **extra):
    data = dict(FixedSlotSerializer(slot).data)
    data.update(extra)
    return data


class SectorViewSet(DepartmentScopedMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = SectorSerializer

    def get_queryset(self):
        return Sector.objects.filter(department=self.get_department()).order_by("name")

    def list(self, request, *args, **kwargs):
        return Response(SectorSerializer(list_sectors(self.get_department()), many=True).data)


class ScheduleViewSet(
    DepartmentScopedMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = ScheduleSerializer

    def requires_leader(self):
        return self.action in ("bulk", "destroy", "notes")

    def get_queryset(self):
        return Schedule.objects.filter(department=self.get_department()).select_related("user", "sector")

    def list(self, request, *args, **kwargs):
        department = self.get_department()
        schedules = list_schedules(department, request.query_params.get("start"), request.query_params.get("end"))
        if request.query_params.get("grouped") not in ("1", "true"):
            return Response(ScheduleSerializer(schedules, many=True).data)
        groups = group_schedules_by_slot(schedules, slots_for_department(department))
        return Response(
            [
                {
                    "date": day.isoformat(),
                    "slot": _slot_data(slot, generic=slot.generic),
                    "schedules": ScheduleSerializer(entries, many=True).data,
                }
                for (day, slot), entries in groups.items()
            ]
        )

    def destroy(self, request, *args, **kwargs):
        delete_schedule(self.get_department(), int(kwargs["pk"]), actor=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["patch"])
    def notes(self, request, *args, **kwargs):
        serializer = NotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        schedule = update_schedule_notes(
            self.get_department(), int(kwargs["pk"]), serializer.validated_data["notes"], actor=request.user
        )
        return Response(ScheduleSerializer(schedule).data)

    @action(detail=True, methods=["post"])
    def confirm(self, request, *args, **kwargs):
        serializer = ScheduleAnswerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        schedule = get_object_or_404(Schedule, department=self.get_department(), id=int(kwargs["pk"]))
        schedule = confirm_schedule(
            schedule, request.user, serializer.validated_data["action"], serializer.validated_data.get("reason")
        )
        return Response(ScheduleSerializer(schedule).data)

    @action(detail=False, methods=["post"])
    def bulk(self, request, *args, **kwargs):
        serializer = BulkScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        department = self.get_department()
        draft = ScheduleDraft(department, request.user, department_members(department))
        if data.get("date"):
            draft.set_date(data["date"])
        if data.get("time_start") and data.get("time_end"):
            draft.choose_times(data["time_start"], data["time_end"])
        draft.notes = data.get("notes") or ""
        for item in data["members"]:
            draft.toggle_member(item["user_id"])
        draft.go_to_configure()
        for item in data["members"]:
            sector_id = item.get("sector_id") or NONE
            draft.configure_member(
                item["user_id"],
                sector_id=NONE if sector_id == NONE else int(sector_id),
                assignment_role=item.get("assignment_role") or NONE,
            )
        created = draft.submit()
        return Response(ScheduleSerializer(created, many=True).data, status=status.HTTP_201_CREATED)


class SlotsView(DepartmentScopedMixin, APIView):
    def get(self, request, department_id):
        slots = slots_for_department(self.get_department())
        day = request.query_params.get("date")
        if not day:
            return Response({"slots": [_slot_data(slot) for slot in slots]})
        selection = default_time_selection(slots, day)
        return Response(
            {
                "slots": [_slot_data(slot) for slot in available_slots_for_day(slots, day)],
                "default": {
                    "mode": selection.mode,
                    "time_start": selection.time_start,
                    "time_end": selection.time_end,
                },
            }
        )


class EligibilityView(DepartmentScopedMixin, APIView):
    def get(self, request, department_id):
        query = EligibilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        department = self.get_department()
        day = query.validated_data["date"]
        time_start = query.validated_data.get("time_start")
        time_end = query.validated_data.get("time_end")
        if not (time_start and time_end):
            selection = default_time_selection(slots_for_department(department), day)
            time_start, time_end = selection.time_start, selection.time_end
        report = compute_eligibility(department, department_members(department), day, time_start, time_end)
        return Response(
            {
                "date": day.isoformat(),
                "time_start": time_start,
                "time_end": time_end,
                "eligible": EligibilitySerializer(report.eligible, many=True).data,
                "blocked": EligibilitySerializer(report.blocked, many=True).data,
            }
        )


class SlotAvailabilityView(DepartmentScopedMixin, APIView):
    def _board(self, request, period):
        board = SlotAvailabilityBoard(self.get_department(), request.user)
        board.select_period(period)
        return board

    def _render(self, board):
        slots = slots_for_department(self.get_department())
        return {
            "selected": board.selected,
            "periods": {key: _period_data(period) for key, period in board.periods.items()},
            "slots": [_slot_data(slot, available=board.is_available(slot)) for slot in slots],
        }

    def get(self, request, department_id):
        board = self._board(request, request.query_params.get("period", "current"))
        return Response(self._render(board))

    def post(self, request, department_id):
        serializer = SlotToggleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        board = self._board(request, data["period"])
        key = f"{data['day_of_week']}-{data['time_start']}-{data['time_end']}"
        slot = next((slot for slot in slots_for_department(self.get_department()) if slot.key == key), None)
        if slot is None:
            raise ValueError("Horario nao configurado para este departamento.")
        available = board.toggle(slot)
        payload = self._render(board)
        payload["available"] = available
        return Response(payload)


class SlotAvailabilityOverviewView(DepartmentScopedMixin, APIView):
    leader_methods = ("GET",)

    def get(self, request, department_id):
        department = self.get_department()
        period = next_period() if request.query_params.get("period") == "next" else current_period()
        overview = slot_availability_overview(department, period, slots_for_department(department))
        return Response(
            {
                "period": _period_data(period),
                "slots": [
                    _slot_data(slot, members=[{"user_id": user.pk, "name": user.display_name} for user in users])
                    for slot, users in overview
                ],
            }
        )


class DateAvailabilityView(DepartmentScopedMixin, APIView):
    def _render(self, calendar):
        return {
            "year": calendar.year,
            "month": calendar.month,
            "days": [
                {"date": day["date"].isoformat(), "available": day["available"], "locked": day["locked"]}
                for day in calendar.days()
            ],
        }

    def get(self, request, department_id):
        year = request.query_params.get("year")
        month = request.query_params.get("month")
        calendar = DateAvailabilityCalendar(
            self.get_department(),
            request.user,
            year=int(year) if year else None,
            month=int(month) if month else None,
        )
        return Response(self._render(calendar))

    def post(self, request, department_id):
        serializer = DateToggleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        day = serializer.validated_data["date"]
        calendar = DateAvailabilityCalendar(self.get_department(), request.user, year=day.year, month=day.month)
        available = calendar.toggle(day)
        payload = self._render(calendar)
        payload["available"] = available
        return Response(payload)


class DateAvailabilityOverviewView(DepartmentScopedMixin, APIView):
    leader_methods = ("GET",)

    def get(self, request, department_id):
        today = timezone.localdate()
        year = int(request.query_params.get("year") or today.year)
        month = int(request.query_params.get("month") or today.month)
        if not 1 <= month <= 12:
            raise ValueError("Mes invalido.")
        overview = date_availability_overview(self.get_department(), year, month)
        return Response(
            {
                "year": year,
                "month": month,
                "days": [
                    {
                        "date": day.isoformat(),
                        "members": [{"user_id": user.pk, "name": user.display_name} for user in users],
                    }
                    for day, users in overview
                ],
            }
        )


class PreferencesView(DepartmentScopedMixin, APIView):
    def _render(self, prefs):
        return {
            "max_schedules_per_month": prefs.max_schedules_per_month,
            "min_days_between_schedules": prefs.min_days_between_schedules,
            "preferred_sector_ids": prefs.preferred_sector_ids or [],
            "blackout_dates": prefs.blackout_dates or [],
        }

    def get(self, request, department_id):
        return Response(self._render(get_preferences(self.get_department(), request.user)))

    def put(self, request, department_id):
        serializer = PreferencesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        prefs = save_preferences(self.get_department(), request.user, **serializer.validated_data)
        return Response(self._render(prefs))


class BlackoutsView(DepartmentScopedMixin, APIView):
    leader_methods = ("GET",)

    def get(self, request, department_id):
        rows = department_blackouts(self.get_department(), start=request.query_params.get("start"))
        return Response(
            [{"user_id": user.pk, "name": user.display_name, "dates": dates} for user, dates in rows]
        )

    def post(self, request, department_id):
        serializer = BlackoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        prefs = add_blackout_date(self.get_department(), request.user, serializer.validated_data["date"])
        return Response({"blackout_dates": prefs.blackout_dates}, status=status.HTTP_201_CREATED)

    def delete(self, request, department_id):
        serializer = BlackoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        prefs = remove_blackout_date(self.get_department(), request.user, serializer.validated_data["date"])
        return Response({"blackout_dates": prefs.blackout_dates if prefs else []})


class SmartScheduleView(DepartmentScopedMixin, APIView):
    leader_methods = ("POST",)

    def post(self, request, department_id):
        serializer = SmartScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if data.get("period"):
            start, end = suggestion_window(data["period"])
        else:
            start, end = data["start_date"], data["end_date"]
        result = generate_suggestions(
            self.get_department(),
            start,
            end,
            members_per_slot=data.get("members_per_slot"),
            sector_id=data.get("sector_id"),
        )
        return Response(
            {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "schedules": SuggestionSerializer(result.suggestions, many=True).data,
                "reasoning": result.reasoning,
                "unfilled": [dict(item, date=item["date"].isoformat()) for item in result.unfilled],
                "total": result.total,
            }
        )


class ConfirmSuggestionsView(DepartmentScopedMixin, APIView):
    leader_methods = ("POST",)

    def post(self, request, department_id):
        serializer = ConfirmSuggestionsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        created = confirm_suggestions(self.get_department(), request.user, serializer.validated_data["suggestions"])
        return Response(ScheduleSerializer(created, many=True).data, status=status.HTTP_201_CREATED)


class MembersView(DepartmentScopedMixin, APIView):
    def get(self, request, department_id):
        return Response(MemberSerializer(department_members(self.get_department()), many=True).data)
