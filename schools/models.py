import re

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.db.models.functions import Lower

CONF = settings.SCHOOL_MANAGEMENT

phone_validator = RegexValidator(r'^\+?[\d\s\-\(\)]+$', 'Invalid phone number format')


def default_grades():
    return list(CONF['DEFAULT_GRADES'])


def default_sections():
    return list(CONF['DEFAULT_SECTIONS'])


def validate_grades(value):
    if not isinstance(value, list) or not value:
        raise ValidationError('At least one grade must be specified')
    if not all(isinstance(g, int) and 1 <= g <= 12 for g in value):
        raise ValidationError('Grades must be between 1 and 12')


def validate_sections(value):
    if not isinstance(value, list) or not value:
        raise ValidationError('At least one section must be specified')
    if not all(isinstance(s, str) and re.fullmatch(r'[A-Z]', s) for s in value):
        raise ValidationError('Sections must be uppercase letters (A-Z)')


class Organization(models.Model):
    STATUS = (
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    )
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=30, blank=True, validators=[phone_validator])
    address = models.CharField(max_length=200, blank=True)
    status = models.CharField(max_length=20, choices=STATUS, default='active')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class School(models.Model):
    STATUS = (
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('suspended', 'Suspended'),
    )
    organization = models.ForeignKey(Organization, on_delete=models.PROTECT, related_name='schools')
    name = models.CharField(max_length=100)
    address = models.CharField(max_length=200, blank=True)
    phone = models.CharField(max_length=30, blank=True, validators=[phone_validator])
    email = models.EmailField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS, default='active', db_index=True)

    # settings
    max_students_per_section = models.PositiveIntegerField(
        default=CONF['DEFAULT_MAX_STUDENTS_PER_SECTION'],
        validators=[MinValueValidator(10), MaxValueValidator(60)],
    )
    grades = models.JSONField(default=default_grades, validators=[validate_grades])
    sections = models.JSONField(default=default_sections, validators=[validate_sections])
    academic_year_start = models.PositiveSmallIntegerField(
        default=CONF['ACADEMIC_YEAR_START_MONTH'], validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    academic_year_end = models.PositiveSmallIntegerField(
        default=CONF['ACADEMIC_YEAR_END_MONTH'], validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    attendance_grace_period = models.PositiveSmallIntegerField(
        default=CONF['ATTENDANCE_GRACE_PERIOD_MINUTES'], validators=[MaxValueValidator(60)]
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(Lower('name'), 'organization', name='unique_school_name_per_org'),
        ]
        indexes = [
            models.Index(fields=['organization', 'status']),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        # title-case the name, e.g. "green valley high" -> "Green Valley High"
        self.name = re.sub(r'\w\S*', lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), self.name.strip())
        super().save(*args, **kwargs)

    def is_active(self):
        return self.status == 'active'

    @property
    def admin_user(self):
        return self.users.filter(role='admin').order_by('id').first()
