from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.dates import DAYS_OF_WEEK

MAX_PERIODS_PER_DAY = settings.SCHOOL_MANAGEMENT['MAX_PERIODS_PER_DAY']


class Schedule(models.Model):
    """One day of a class timetable."""
    DAYS = [(d, d.capitalize()) for d in DAYS_OF_WEEK]

    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='schedules')
    school_class = models.ForeignKey('academics.SchoolClass', on_delete=models.CASCADE, related_name='schedules')
    grade = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    section = models.CharField(max_length=1)
    academic_year = models.CharField(max_length=9)
    day_of_week = models.CharField(max_length=10, choices=DAYS)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'grade', 'section', 'day_of_week', 'academic_year'],
                condition=models.Q(is_active=True),
                name='unique_active_schedule_per_day',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'grade', 'section', 'day_of_week']),
            models.Index(fields=['school', 'academic_year', 'is_active']),
        ]

    def __str__(self):
        return f"Grade {self.grade}{self.section} {self.day_of_week} ({self.academic_year})"

    @property
    def day_index(self):
        return DAYS_OF_WEEK.index(self.day_of_week)


class Period(models.Model):
    schedule = models.ForeignKey(Schedule, on_delete=models.CASCADE, related_name='periods')
    period_number = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(MAX_PERIODS_PER_DAY)]
    )
    subject = models.ForeignKey(
        'academics.Subject', on_delete=models.PROTECT, null=True, blank=True, related_name='periods'
    )
    teacher = models.ForeignKey(
        'academics.Teacher', on_delete=models.PROTECT, null=True, blank=True, related_name='periods'
    )
    start_time = models.TimeField()
    end_time = models.TimeField()
    is_break = models.BooleanField(default=False)
    room = models.CharField(max_length=20, blank=True)

    class Meta:
        ordering = ['period_number']
        constraints = [
            models.UniqueConstraint(fields=['schedule', 'period_number'], name='unique_period_per_schedule'),
        ]

    def __str__(self):
        return f"{self.schedule} P{self.period_number}"

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({'end_time': 'End time must be after start time'})
        if not self.is_break and (self.subject_id is None or self.teacher_id is None):
            raise ValidationError('Subject and teacher are required for non-break periods')
