from rest_framework import serializers

from academics.serializers import SubjectMiniSerializer, TeacherMiniSerializer
from core.dates import DAYS_OF_WEEK

from .models import MAX_PERIODS_PER_DAY, Period, Schedule


class PeriodSerializer(serializers.ModelSerializer):
    subject = SubjectMiniSerializer(read_only=True)
    teacher = TeacherMiniSerializer(read_only=True)

    class Meta:
        model = Period
        fields = ('id', 'period_number', 'subject', 'teacher', 'start_time', 'end_time', 'is_break', 'room')


class ScheduleSerializer(serializers.ModelSerializer):
    periods = PeriodSerializer(many=True, read_only=True)
    class_name = serializers.CharField(source='school_class.name', read_only=True)

    class Meta:
        model = Schedule
        fields = ('id', 'school', 'school_class', 'class_name', 'grade', 'section', 'academic_year',
                  'day_of_week', 'is_active', 'periods', 'created_at', 'updated_at')
        read_only_fields = fields


class PeriodWriteSerializer(serializers.Serializer):
    period_number = serializers.IntegerField(min_value=1, max_value=MAX_PERIODS_PER_DAY)
    subject = serializers.IntegerField(required=False, allow_null=True)
    teacher = serializers.IntegerField(required=False, allow_null=True)
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    is_break = serializers.BooleanField(default=False)
    room = serializers.CharField(max_length=20, required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['end_time'] <= attrs['start_time']:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        if attrs['is_break']:
            attrs['subject'] = None
            attrs['teacher'] = None
        elif not attrs.get('subject') or not attrs.get('teacher'):
            raise serializers.ValidationError('Subject and teacher are required for non-break periods')
        return attrs


class ScheduleWriteSerializer(serializers.Serializer):
    grade = serializers.IntegerField(min_value=1, max_value=12)
    section = serializers.RegexField(r'^[A-Za-z]$')
    academic_year = serializers.RegexField(r'^\d{4}-\d{4}$')
    day_of_week = serializers.ChoiceField(choices=DAYS_OF_WEEK)
    periods = PeriodWriteSerializer(many=True)

    def validate_section(self, value):
        return value.upper()

    def validate_periods(self, value):
        if not value:
            raise serializers.ValidationError('At least one period is required')
        numbers = [p['period_number'] for p in value]
        if len(numbers) != len(set(numbers)):
            raise serializers.ValidationError('Period numbers must be unique within a day')
        return sorted(value, key=lambda p: p['period_number'])


class ScheduleUpdateSerializer(ScheduleWriteSerializer):
    """Class identity is fixed once created; day and periods may change."""
    grade = None
    section = None
    academic_year = None
    day_of_week = serializers.ChoiceField(choices=DAYS_OF_WEEK, required=False)
    periods = PeriodWriteSerializer(many=True, required=False)
    is_active = serializers.BooleanField(required=False)


class SubstituteSerializer(serializers.Serializer):
    period_number = serializers.IntegerField(min_value=1, max_value=MAX_PERIODS_PER_DAY)
    substitute_teacher = serializers.IntegerField()
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    reason = serializers.CharField(max_length=200, required=False, allow_blank=True)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date'})
        return attrs
