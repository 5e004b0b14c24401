from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from rest_framework import serializers

from academics.serializers import StudentLiteSerializer, SubjectMiniSerializer, TeacherMiniSerializer

from .models import Attendance

MAX_PERIODS_PER_DAY = settings.SCHOOL_MANAGEMENT['MAX_PERIODS_PER_DAY']
MAX_RANGE_DAYS = 365


class AttendanceSerializer(serializers.ModelSerializer):
    student = StudentLiteSerializer(read_only=True)
    teacher = TeacherMiniSerializer(read_only=True)
    subject = SubjectMiniSerializer(read_only=True)
    can_modify = serializers.SerializerMethodField()
    time_since_marked = serializers.IntegerField(read_only=True)

    class Meta:
        model = Attendance
        fields = (
            'id', 'school', 'student', 'teacher', 'subject', 'school_class', 'date', 'period', 'status',
            'marked_at', 'modified_at', 'modified_by', 'modification_reason', 'is_locked',
            'can_modify', 'time_since_marked', 'created_at', 'updated_at',
        )
        read_only_fields = fields

    def get_can_modify(self, obj):
        return obj.can_be_modified()


class AttendanceEntrySerializer(serializers.Serializer):
    student = serializers.IntegerField()
    status = serializers.ChoiceField(choices=Attendance.STATUS)


class MarkAttendanceSerializer(serializers.Serializer):
    school_class = serializers.IntegerField()
    subject = serializers.IntegerField()
    date = serializers.DateField()
    period = serializers.IntegerField(min_value=1, max_value=MAX_PERIODS_PER_DAY)
    entries = AttendanceEntrySerializer(many=True, allow_empty=False)

    def validate_date(self, value):
        if value > timezone.localdate() + timedelta(days=1):
            raise serializers.ValidationError('Attendance date cannot be in the future')
        return value

    def validate_entries(self, value):
        ids = [e['student'] for e in value]
        if len(ids) != len(set(ids)):
            raise serializers.ValidationError('Each student may appear only once')
        return value


class UpdateAttendanceSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Attendance.STATUS, required=False)
    modification_reason = serializers.CharField(max_length=200, required=False, allow_blank=True)


class DateRangeSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()

    def validate(self, attrs):
        if attrs['end_date'] < attrs['start_date']:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date'})
        if (attrs['end_date'] - attrs['start_date']).days > MAX_RANGE_DAYS:
            raise serializers.ValidationError({'end_date': f'Date range cannot exceed {MAX_RANGE_DAYS} days'})
        return attrs


class StatsFilterSerializer(serializers.Serializer):
    grade = serializers.IntegerField(min_value=1, max_value=12, required=False)
    section = serializers.RegexField(r'^[A-Za-z]$', required=False)

    def validate_section(self, value):
        return value.upper()
