from rest_framework import serializers

from core.models import Member, Schedule, Sector
from core.services.slots import normalize_time


class HHMMField(serializers.Field):
    """Accepts ``HH:MM`` or ``HH:MM:SS`` and always answers ``HH:MM``."""

    default_error_messages = {"invalid": "Horario invalido."}

    def to_internal_value(self, data):
        try:
            value = normalize_time(data)
        except (TypeError, ValueError):
            self.fail("invalid")
        if value is None:
            self.fail("invalid")
        return value

    def to_representation(self, value):
        return normalize_time(value)


class SectorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Sector
        fields = ["id", "name", "description", "color"]


class FixedSlotSerializer(serializers.Serializer):
    key = serializers.CharField()
    day_of_week = serializers.IntegerField()
    time_start = serializers.CharField()
    time_end = serializers.CharField()
    label = serializers.CharField()
    default_member_count = serializers.IntegerField()


class MemberSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField()
    name = serializers.CharField(source="user.display_name")
    email = serializers.EmailField(source="user.email")
    avatar_url = serializers.CharField(source="user.avatar_url")

    class Meta:
        model = Member
        fields = ["id", "user_id", "name", "email", "avatar_url", "role"]


class EligibilitySerializer(serializers.Serializer):
    member = MemberSerializer()
    status = serializers.CharField()
    conflict_department = serializers.CharField(allow_null=True)
    reason = serializers.CharField()


class ScheduleSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source="user.display_name", read_only=True)
    time_start = HHMMField()
    time_end = HHMMField()
    sector_name = serializers.CharField(source="sector.name", read_only=True, default=None)

    class Meta:
        model = Schedule
        fields = [
            "id",
            "user",
            "user_name",
            "date",
            "time_start",
            "time_end",
            "notes",
            "sector",
            "sector_name",
            "assignment_role",
            "confirmation_status",
            "confirmed_at",
            "decline_reason",
            "created_by",
        ]


class EligibilityQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
    time_start = HHMMField(required=False)
    time_end = HHMMField(required=False)

    def validate(self, attrs):
        if bool(attrs.get("time_start")) != bool(attrs.get("time_end")):
            raise serializers.ValidationError("Informe o horario inicial e o final.")
        return attrs


class MemberConfigSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    sector_id = serializers.CharField(required=False, default="none")
    assignment_role = serializers.CharField(required=False, default="none")


class BulkScheduleSerializer(serializers.Serializer):
    date = serializers.DateField(required=False, allow_null=True)
    time_start = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    time_end = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    members = MemberConfigSerializer(many=True)

    def validate_members(self, value):
        user_ids = [item["user_id"] for item in value]
        if len(user_ids) != len(set(user_ids)):
            raise serializers.ValidationError("Membro repetido na lista.")
        return value

    def validate(self, attrs):
        if bool(attrs.get("time_start")) != bool(attrs.get("time_end")):
            raise serializers.ValidationError("Informe o horario inicial e o final.")
        return attrs


class NotesSerializer(serializers.Serializer):
    notes = serializers.CharField(allow_blank=True, allow_null=True)


class ScheduleAnswerSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["confirm", "decline"])
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)


class SlotToggleSerializer(serializers.Serializer):
    period = serializers.ChoiceField(choices=["current", "next"], default="current")
    day_of_week = serializers.IntegerField(min_value=0, max_value=6)
    time_start = HHMMField()
    time_end = HHMMField()


class DateToggleSerializer(serializers.Serializer):
    date = serializers.DateField()


class PreferencesSerializer(serializers.Serializer):
    max_schedules_per_month = serializers.IntegerField(min_value=1, max_value=31, required=False)
    min_days_between_schedules = serializers.IntegerField(min_value=0, max_value=30, required=False)
    preferred_sector_ids = serializers.ListField(child=serializers.IntegerField(), required=False)
    blackout_dates = serializers.ListField(child=serializers.CharField(), read_only=True)


class BlackoutSerializer(serializers.Serializer):
    date = serializers.DateField()


class SmartScheduleSerializer(serializers.Serializer):
    period = serializers.ChoiceField(choices=["week", "two_weeks", "month"], required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    members_per_slot = serializers.IntegerField(min_value=1, max_value=50, required=False)
    sector_id = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):
        if not attrs.get("period") and not (attrs.get("start_date") and attrs.get("end_date")):
            raise serializers.ValidationError("Informe o periodo ou as datas inicial e final.")
        return attrs


class SuggestionSerializer(serializers.Serializer):
    date = serializers.DateField()
    user_id = serializers.IntegerField()
    name = serializers.CharField(allow_blank=True)
    time_start = serializers.CharField()
    time_end = serializers.CharField()
    sector_id = serializers.IntegerField(allow_null=True)
    slot_label = serializers.CharField(allow_null=True)


class ConfirmSuggestionsSerializer(serializers.Serializer):
    suggestions = serializers.ListField(child=serializers.DictField(), allow_empty=True)
