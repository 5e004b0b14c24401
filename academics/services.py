import logging
import re

from django.db import transaction
from django.db.models import Q
from rest_framework.exceptions import ValidationError

from accounts.credentials import (
    generate_password,
    id_username,
    parent_username,
    student_username,
    unique_username,
)
from accounts.models import User
from core.dates import current_academic_year, today
from core.exceptions import Conflict

from .models import Parent, SchoolClass, Student, Teacher

logger = logging.getLogger(__name__)


def _max_sequence(ids, pattern):
    seqs = [int(m.group(1)) for m in (re.match(pattern, i or "") for i in ids) if m]
    return max(seqs, default=0)


def next_student_id(school, admission_year: int, grade: int):
    """
    (student_id, roll_number) for a new admission.

    The roll number is the lowest positive number not held by an active
    student of the same school, admission year and grade.
    """
    taken = set(
        Student.objects.filter(
            school=school, admission_year=admission_year, grade=grade, is_active=True
        ).exclude(roll_number=None).values_list("roll_number", flat=True)
    )
    roll = 1
    while roll in taken:
        roll += 1
    student_id = f"{admission_year}{grade:02d}{roll:04d}"
    # inactive students keep their ids; skip over those too
    while Student.objects.filter(school=school, student_id=student_id).exists():
        roll += 1
        while roll in taken:
            roll += 1
        student_id = f"{admission_year}{grade:02d}{roll:04d}"
    return student_id, roll


def next_teacher_id(school, joining_year: int) -> str:
    ids = Teacher.objects.filter(
        school=school, teacher_id__startswith=f"TCH-{joining_year}-"
    ).values_list("teacher_id", flat=True)
    seq = _max_sequence(ids, r"^TCH-\d{4}-(\d{3})$") + 1
    return f"TCH-{joining_year}-{seq:03d}"


def next_parent_id(school, year: int) -> str:
    ids = Parent.objects.filter(
        school=school, parent_id__startswith=f"PAR-{year}-"
    ).values_list("parent_id", flat=True)
    seq = _max_sequence(ids, r"^PAR-\d{4}-(\d{3})$") + 1
    return f"PAR-{year}-{seq:03d}"


def get_or_create_class(school, grade: int, section: str, academic_year: str | None = None) -> SchoolClass:
    academic_year = academic_year or current_academic_year()
    clazz, created = SchoolClass.objects.get_or_create(
        school=school,
        grade=grade,
        section=section.upper(),
        academic_year=academic_year,
        defaults={"max_students": school.max_students_per_section},
    )
    if created:
        logger.info("Created class %s for school %s (%s)", clazz.name, school.pk, academic_year)
    return clazz


def _ensure_school_active(school):
    if school.status != "active":
        raise ValidationError({"school": "School is not active"})


@transaction.atomic
def create_teacher(school, data: dict):
    """
    Create a teacher profile with its login.

    Returns (teacher, credentials); the password is not stored anywhere else.
    """
    _ensure_school_active(school)
    data = dict(data)
    subjects = data.pop("subjects", [])
    user_fields = {k: data.pop(k) for k in ("first_name", "last_name", "email", "phone") if k in data}
    join_date = data.get("join_date") or today()

    teacher_id = next_teacher_id(school, join_date.year)
    username = unique_username(id_username(teacher_id))
    password = generate_password()
    user = User.objects.create_user(username, password, role="teacher", school=school, **user_fields)

    teacher = Teacher.objects.create(
        user=user, school=school, teacher_id=teacher_id, **{**data, "join_date": join_date}
    )
    if subjects:
        teacher.subjects.set(subjects)

    logger.info("Created teacher %s in school %s", teacher_id, school.pk)
    return teacher, {"username": username, "password": password}


def _check_grade_and_section(school, grade: int, section: str):
    if grade not in (school.grades or []):
        raise ValidationError({"grade": f"Grade {grade} is not offered by this school"})
    if section not in (school.sections or []):
        raise ValidationError({"section": f"Section {section} is not offered by this school"})


def _check_capacity(school, grade: int, section: str, exclude_pk=None):
    qs = Student.objects.filter(school=school, grade=grade, section=section, is_active=True)
    if exclude_pk:
        qs = qs.exclude(pk=exclude_pk)
    if qs.count() >= school.max_students_per_section:
        raise Conflict(
            f"Grade {grade} Section {section} is full "
            f"({school.max_students_per_section} students maximum)"
        )


@transaction.atomic
def enroll_student(school, data: dict):
    """
    Admit a student and, when parent details are given, create the parent.

    Returns (student, credentials) where credentials holds the student login
    and, if created, the parent login.
    """
    _ensure_school_active(school)
    data = dict(data)
    parent_data = data.pop("parent", None)
    grade = data["grade"]
    section = data["section"].upper()
    first_name = data.pop("first_name")
    last_name = data.pop("last_name")
    email = data.pop("email", "")
    phone = data.pop("phone", "")

    _check_grade_and_section(school, grade, section)
    if Student.objects.filter(
        school=school, grade=grade, section=section, is_active=True,
        user__first_name__iexact=first_name, user__last_name__iexact=last_name,
    ).exists():
        raise Conflict(
            f"Student with name '{first_name} {last_name}' already exists in Grade {grade} Section {section}"
        )
    _check_capacity(school, grade, section)

    admission_date = data.get("admission_date") or today()
    student_id, roll = next_student_id(school, admission_date.year, grade)
    clazz = get_or_create_class(school, grade, section)

    username = unique_username(student_username(student_id))
    password = generate_password()
    user = User.objects.create_user(
        username, password, role="student", school=school,
        first_name=first_name, last_name=last_name, email=email, phone=phone,
    )
    student = Student.objects.create(
        user=user,
        school=school,
        student_id=student_id,
        roll_number=roll,
        school_class=clazz,
        admission_year=admission_date.year,
        **{**data, "section": section, "admission_date": admission_date},
    )
    credentials = {"student": {"username": username, "password": password}}

    if parent_data:
        parent, parent_credentials = _create_parent_for(student, parent_data)
        credentials["parent"] = parent_credentials

    logger.info("Enrolled student %s in school %s (grade %s%s)", student_id, school.pk, grade, section)
    return student, credentials


def _create_parent_for(student: Student, data: dict):
    data = dict(data)
    school = student.school
    username = unique_username(parent_username(student.student_id))
    password = generate_password()
    user = User.objects.create_user(
        username,
        password,
        role="parent",
        school=school,
        first_name=data.pop("first_name", ""),
        last_name=data.pop("last_name", ""),
        email=data.pop("email", ""),
        phone=data.pop("phone", ""),
    )
    parent = Parent.objects.create(
        user=user, school=school, parent_id=next_parent_id(school, today().year), **data
    )
    parent.children.add(student)
    return parent, {"username": username, "password": password}


@transaction.atomic
def create_parent(school, data: dict):
    """Parent account on its own, linked to existing students of the school."""
    _ensure_school_active(school)
    data = dict(data)
    child_ids = set(data.pop("child_ids"))
    children = list(Student.objects.filter(school=school, pk__in=child_ids, is_active=True))
    if len(children) != len(child_ids):
        raise ValidationError({"child_ids": "One or more students not found in this school"})

    parent_id = next_parent_id(school, today().year)
    username = unique_username(id_username(parent_id))
    password = generate_password()
    user = User.objects.create_user(
        username,
        password,
        role="parent",
        school=school,
        first_name=data.pop("first_name", ""),
        last_name=data.pop("last_name", ""),
        email=data.pop("email", ""),
        phone=data.pop("phone", ""),
    )
    parent = Parent.objects.create(user=user, school=school, parent_id=parent_id, **data)
    parent.children.set(children)
    logger.info("Created parent %s in school %s for %d student(s)", parent_id, school.pk, len(children))
    return parent, {"username": username, "password": password}


@transaction.atomic
def delete_parent(parent: Parent):
    # the profile and the children links go with the user
    parent_id, user = parent.parent_id, parent.user
    user.delete()
    logger.info("Deleted parent %s", parent_id)


@transaction.atomic
def move_student(student: Student, grade: int, section: str) -> Student:
    """Re-seat a student in another grade/section, checking room there."""
    school = student.school
    section = section.upper()
    _check_grade_and_section(school, grade, section)
    if (grade, section) != (student.grade, student.section):
        _check_capacity(school, grade, section, exclude_pk=student.pk)
        student.grade = grade
        student.section = section
        student.school_class = get_or_create_class(school, grade, section)
        student.save()
    return student


def set_user_password(user: User, password: str):
    user.set_password(password)
    user.save(update_fields=["password", "password_changed_at"])


def teacher_profile(user):
    try:
        return user.teacher_profile
    except Teacher.DoesNotExist:
        return None


def parent_profile(user):
    try:
        return user.parent_profile
    except Parent.DoesNotExist:
        return None


def classes_taught_by(teacher: Teacher):
    """Classes the teacher is class teacher of or teaches in an active schedule."""
    return (
        SchoolClass.objects.filter(
            Q(class_teacher=teacher)
            | Q(schedules__is_active=True, schedules__periods__teacher=teacher)
        )
        .distinct()
        .order_by("grade", "section")
    )


def visible_students(user, qs):
    """Narrow a Student queryset to what the user's role may see."""
    role = getattr(user, "role", None)
    if role == "teacher":
        teacher = teacher_profile(user)
        if teacher is None:
            return qs.none()
        return qs.filter(school_class__in=classes_taught_by(teacher))
    if role == "parent":
        parent = parent_profile(user)
        if parent is None:
            return qs.none()
        return qs.filter(parents=parent)
    if role == "student":
        return qs.filter(user=user)
    return qs
