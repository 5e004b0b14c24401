from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

CONF = settings.SCHOOL_MANAGEMENT


class Attendance(models.Model):
    STATUS = (
        ('present', 'Present'),
        ('absent', 'Absent'),
        ('late', 'Late'),
        ('excused', 'Excused'),
    )
    ATTENDED = ('present', 'late')

    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='attendance')
    student = models.ForeignKey('academics.Student', on_delete=models.CASCADE, related_name='attendance')
    teacher = models.ForeignKey('academics.Teacher', on_delete=models.PROTECT, related_name='attendance_marked')
    subject = models.ForeignKey('academics.Subject', on_delete=models.PROTECT, related_name='attendance')
    school_class = models.ForeignKey(
        'academics.SchoolClass', on_delete=models.SET_NULL, null=True, blank=True, related_name='attendance'
    )
    date = models.DateField()
    period = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(CONF['MAX_PERIODS_PER_DAY'])]
    )
    status = models.CharField(max_length=10, choices=STATUS)
    marked_at = models.DateTimeField(default=timezone.now)
    modified_at = models.DateTimeField(null=True, blank=True)
    modified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    modification_reason = models.CharField(max_length=200, blank=True)
    is_locked = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'date', 'period', 'subject'], name='unique_attendance_per_period'
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'date']),
            models.Index(fields=['school_class', 'date', 'period']),
            models.Index(fields=['student', 'date']),
        ]

    def __str__(self):
        return f"{self.student_id} {self.date} P{self.period}: {self.status}"

    def clean(self):
        if self.date and self.date > timezone.localdate() + timedelta(days=1):
            raise ValidationError({'date': 'Attendance date cannot be in the future'})

    @property
    def last_touched(self):
        return self.modified_at or self.marked_at

    def can_be_modified(self, now=None) -> bool:
        if self.is_locked:
            return False
        now = now or timezone.now()
        return now - self.last_touched <= timedelta(hours=CONF['MAX_ATTENDANCE_EDIT_HOURS'])

    @property
    def time_since_marked(self) -> int:
        """Whole minutes since the record was marked or last changed."""
        return int((timezone.now() - self.last_touched).total_seconds() // 60)
