from datetime import date

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from academics import services as academics_services
from academics.models import Subject
from accounts.models import User
from schools.models import Organization, School


@pytest.fixture(autouse=True)
def _clear_cache():
    # login throttling keeps its counters in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def organization(db):
    return Organization.objects.create(name="Green Valley Trust", contact_email="trust@example.com")


@pytest.fixture
def school(organization):
    return School.objects.create(organization=organization, name="green valley high")


@pytest.fixture
def other_school(organization):
    return School.objects.create(organization=organization, name="Hill Side School")


@pytest.fixture
def superadmin(db):
    return User.objects.create_superuser("root", "rootpass123")


@pytest.fixture
def school_admin(school):
    return User.objects.create_user(
        "gvhadmin001", "adminpass123", role="admin", school=school, first_name="Green", last_name="Admin"
    )


@pytest.fixture
def accountant(school):
    return User.objects.create_user(
        "cashier", "cashpass123", role="accountant", school=school, first_name="Cal", last_name="Cash"
    )


@pytest.fixture
def teacher(school):
    teacher, _ = academics_services.create_teacher(
        school, {"first_name": "Tara", "last_name": "Singh", "join_date": date(2024, 6, 1)}
    )
    return teacher


@pytest.fixture
def other_teacher(school):
    teacher, _ = academics_services.create_teacher(
        school, {"first_name": "Omar", "last_name": "Khan", "join_date": date(2024, 6, 1)}
    )
    return teacher


@pytest.fixture
def subject(school, teacher):
    subject = Subject.objects.create(school=school, name="Mathematics", code="math", grade="7")
    subject.teachers.add(teacher)
    return subject


@pytest.fixture
def enrolled(school):
    """A grade 7A student admitted together with a parent."""
    student, credentials = academics_services.enroll_student(school, {
        "first_name": "Asha",
        "last_name": "Rao",
        "grade": 7,
        "section": "a",
        "blood_group": "O+",
        "dob": date(2012, 5, 1),
        "parent": {"first_name": "Ravi", "last_name": "Rao", "relationship": "Father"},
    })
    return student, credentials


@pytest.fixture
def student(enrolled):
    return enrolled[0]


@pytest.fixture
def parent_user(student):
    return student.parents.get().user


@pytest.fixture
def client_for():
    def make(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return make


@pytest.fixture
def api_client():
    return APIClient()
