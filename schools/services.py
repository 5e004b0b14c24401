import logging
import re
import secrets

from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from academics.models import Student, Teacher
from accounts.credentials import generate_password
from accounts.models import User
from core.exceptions import Conflict, ServerError

from .models import Organization, School

logger = logging.getLogger(__name__)

MAX_USERNAME_ATTEMPTS = 10


def generate_admin_username(school_name: str) -> str:
    """First three letters of the school name + 'admin' + three random digits."""
    prefix = re.sub(r'[^a-zA-Z]', '', school_name)[:3].lower()
    return f"{prefix}admin{secrets.randbelow(1000):03d}"


def _unique_admin_username(school_name: str) -> str:
    for _ in range(MAX_USERNAME_ATTEMPTS):
        username = generate_admin_username(school_name)
        if not User.objects.filter(username=username).exists():
            return username
    raise ServerError('Failed to generate unique admin username after multiple attempts')


def create_school(data: dict):
    """
    Create a school plus its admin account.

    Returns (school, credentials); the plain password is only ever returned here.
    """
    organization = data['organization']
    if not isinstance(organization, Organization):
        try:
            organization = Organization.objects.get(pk=organization)
        except Organization.DoesNotExist:
            raise NotFound('Organization not found')
    if organization.status != 'active':
        raise ValidationError({'organization': 'Cannot create school for inactive organization'})

    name = data['name'].strip()
    if School.objects.filter(organization=organization, name__iexact=name).exists():
        raise Conflict(f"School with name '{name}' already exists in this organization")

    with transaction.atomic():
        school = School(**{**data, 'organization': organization, 'name': name})
        school.full_clean()
        school.save()

        username = _unique_admin_username(school.name)
        password = generate_password()
        User.objects.create_user(
            username,
            password,
            role='admin',
            school=school,
            first_name=school.name,
            last_name='Admin',
            email=school.email,
        )

    logger.info('Created school %s (org %s) with admin %s', school.pk, organization.pk, username)
    credentials = {'username': username, 'password': password, 'temp_password': password}
    return school, credentials


def reset_admin_password(school: School, new_password: str) -> User:
    admin = school.admin_user
    if admin is None:
        raise NotFound('School admin account not found')
    admin.set_password(new_password)
    admin.save(update_fields=['password', 'password_changed_at'])
    logger.info('Admin password reset for school %s', school.pk)
    return admin


def school_dependents(school: School) -> dict:
    """Counts of the data that keeps a school from being deleted, non-zero only."""
    counts = {
        'students': school.students.count(),
        'teachers': school.teachers.count(),
        'parents': school.parents.count(),
        'schedules': school.schedules.count(),
        'attendance records': school.attendance.count(),
        'fee records': school.fee_records.count(),
    }
    return {name: n for name, n in counts.items() if n}


@transaction.atomic
def delete_school(school: School):
    dependents = school_dependents(school)
    if dependents:
        listed = ', '.join(f"{name} ({n})" for name, n in dependents.items())
        raise Conflict(f"Cannot delete school with existing {listed}")
    logger.info('Deleting school %s', school.pk)
    school.delete()


def organization_stats(organization: Organization) -> dict:
    schools = organization.schools.all()
    return {
        'organization_id': organization.pk,
        'name': organization.name,
        'total_schools': schools.count(),
        'active_schools': schools.filter(status='active').count(),
        'total_students': Student.objects.filter(school__organization=organization, is_active=True).count(),
        'total_teachers': Teacher.objects.filter(school__organization=organization, is_active=True).count(),
    }
