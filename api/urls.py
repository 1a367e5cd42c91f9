from django.urls import include, path
from rest_framework.routers import DefaultRouter

from api.views import (
    BlackoutsView,
    ConfirmSuggestionsView,
    DateAvailabilityOverviewView,
    DateAvailabilityView,
    EligibilityView,
    MembersView,
    PreferencesView,
    ScheduleViewSet,
    SectorViewSet,
    SlotAvailabilityOverviewView,
    SlotAvailabilityView,
    SlotsView,
    SmartScheduleView,
)

router = DefaultRouter()
router.register(r"departments/(?P<department_id>\d+)/sectors", SectorViewSet, basename="sector")
router.register(r"departments/(?P<department_id>\d+)/schedules", ScheduleViewSet, basename="schedule")

department_urls = [
    path("members/", MembersView.as_view(), name="department-members"),
    path("slots/", SlotsView.as_view(), name="department-slots"),
    path("eligibility/", EligibilityView.as_view(), name="department-eligibility"),
    path("slot-availability/", SlotAvailabilityView.as_view(), name="slot-availability"),
    path("slot-availability/overview/", SlotAvailabilityOverviewView.as_view(), name="slot-availability-overview"),
    path("date-availability/", DateAvailabilityView.as_view(), name="date-availability"),
    path(
        "date-availability/overview/", DateAvailabilityOverviewView.as_view(), name="date-availability-overview"
    ),
    path("preferences/", PreferencesView.as_view(), name="department-preferences"),
    path("blackouts/", BlackoutsView.as_view(), name="department-blackouts"),
    path("smart-schedule/", SmartScheduleView.as_view(), name="smart-schedule"),
    path("smart-schedule/confirm/", ConfirmSuggestionsView.as_view(), name="smart-schedule-confirm"),
]

urlpatterns = [
    path("departments/<int:department_id>/", include(department_urls)),
    path("", include(router.urls)),
]
