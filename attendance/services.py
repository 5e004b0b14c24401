import logging
from collections import Counter, OrderedDict
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied

from academics.models import SchoolClass, Student, Subject
from academics.services import classes_taught_by, parent_profile, teacher_profile
from core.dates import percent, today

from .models import Attendance

logger = logging.getLogger(__name__)

LOCK_AFTER_DAYS = settings.SCHOOL_MANAGEMENT['ATTENDANCE_LOCK_AFTER_DAYS']


def _attended(records):
    return sum(1 for r in records if r.status in Attendance.ATTENDED)


@transaction.atomic
def mark_attendance(user, data: dict) -> list:
    """
    Record one period of attendance for a class.

    Existing records for the same student, date, period and subject are
    updated in place while still editable. A single locked record fails the
    whole batch.
    """
    teacher = teacher_profile(user)
    if teacher is None or not teacher.is_active:
        raise NotFound('Teacher not found or inactive')
    school = teacher.school

    subject = Subject.objects.filter(school=school, pk=data['subject']).first()
    if subject is None:
        raise NotFound('Subject not found')
    if not subject.teachers.filter(pk=teacher.pk).exists():
        raise PermissionDenied('Teacher is not assigned to this subject')

    clazz = SchoolClass.objects.filter(school=school, pk=data['school_class']).first()
    if clazz is None:
        raise NotFound('Class not found')

    entries = data['entries']
    students = Student.objects.in_bulk([e['student'] for e in entries])
    if len(students) != len(entries) or any(s.school_id != school.id for s in students.values()):
        raise NotFound('One or more students not found')

    now = timezone.now()
    day, period = data['date'], data['period']
    existing = {
        a.student_id: a
        for a in Attendance.objects.select_for_update().filter(
            student_id__in=students.keys(), date=day, period=period, subject=subject
        )
    }

    records = []
    for entry in entries:
        student = students[entry['student']]
        record = existing.get(student.pk)
        if record is not None:
            if not record.can_be_modified(now):
                raise PermissionDenied(
                    f"Attendance for student {student.student_id} is locked and cannot be modified"
                )
            record.status = entry['status']
            record.modified_at = now
            record.modified_by = user
            record.save(update_fields=['status', 'modified_at', 'modified_by', 'updated_at'])
        else:
            record = Attendance.objects.create(
                school=school,
                student=student,
                teacher=teacher,
                subject=subject,
                school_class=clazz,
                date=day,
                period=period,
                status=entry['status'],
                marked_at=now,
            )
        records.append(record)

    logger.info(
        'Teacher %s marked %d records for class %s on %s period %s',
        teacher.teacher_id, len(records), clazz.pk, day, period,
    )
    return records


def update_attendance(record: Attendance, user, data: dict) -> Attendance:
    if not record.can_be_modified():
        raise PermissionDenied('Attendance record is locked and cannot be modified')
    if data.get('status'):
        record.status = data['status']
    if data.get('modification_reason'):
        record.modification_reason = data['modification_reason']
    record.modified_at = timezone.now()
    record.modified_by = user
    record.save()
    return record


def class_attendance(school_class, on, period=None):
    qs = Attendance.objects.filter(school_class=school_class, date=on)
    if period:
        qs = qs.filter(period=period)
    return qs.select_related('student__user', 'teacher__user', 'subject').order_by('period', 'student__roll_number')


def student_attendance(student, start, end, subject=None):
    qs = Attendance.objects.filter(student=student, date__range=(start, end))
    if subject:
        qs = qs.filter(subject_id=subject)
    return qs.select_related('subject', 'teacher__user').order_by('-date', 'period')


def attendance_stats(school, start, end, grade=None, section=None) -> dict:
    qs = Attendance.objects.filter(school=school, date__range=(start, end))
    if grade:
        qs = qs.filter(school_class__grade=grade)
    if section:
        qs = qs.filter(school_class__section=section)
    counts = Counter(qs.values_list('status', flat=True))
    total = sum(counts.values())
    present, late = counts.get('present', 0), counts.get('late', 0)
    return {
        'start_date': start,
        'end_date': end,
        'grade': grade,
        'section': section,
        'total_records': total,
        'present': present,
        'absent': counts.get('absent', 0),
        'late': late,
        'excused': counts.get('excused', 0),
        'attendance_percentage': percent(present + late, total),
        'by_status': [
            {'status': status, 'count': counts.get(status, 0), 'percentage': percent(counts.get(status, 0), total)}
            for status, _ in Attendance.STATUS
        ],
    }


def student_report(student, start, end) -> dict:
    records = list(
        Attendance.objects.filter(student=student, date__range=(start, end)).select_related('subject')
    )
    total = len(records)
    attended = _attended(records)
    statuses = Counter(r.status for r in records)

    by_subject = OrderedDict()
    for r in sorted(records, key=lambda r: r.subject.name):
        by_subject.setdefault(r.subject_id, {'name': r.subject.name, 'records': []})['records'].append(r)
    subject_wise = [
        {
            'subject_id': sid,
            'subject_name': row['name'],
            'total_classes': len(row['records']),
            'present_classes': _attended(row['records']),
            'attendance_percentage': percent(_attended(row['records']), len(row['records'])),
        }
        for sid, row in by_subject.items()
    ]

    by_month = {}
    for r in records:
        by_month.setdefault((r.date.year, r.date.month), []).append(r)
    monthly = [
        {
            'year': year,
            'month': month,
            'month_name': r_list[0].date.strftime('%B'),
            'total_classes': len(r_list),
            'present_classes': _attended(r_list),
            'attendance_percentage': percent(_attended(r_list), len(r_list)),
        }
        for (year, month), r_list in sorted(by_month.items(), reverse=True)
    ]

    return {
        'student_id': student.student_id,
        'student_name': student.full_name,
        'roll_number': student.roll_number or 0,
        'grade': student.grade,
        'section': student.section,
        'start_date': start,
        'end_date': end,
        'total_classes': total,
        'present_classes': attended,
        'absent_classes': statuses.get('absent', 0),
        'late_classes': statuses.get('late', 0),
        'excused_classes': statuses.get('excused', 0),
        'attendance_percentage': percent(attended, total),
        'subject_wise': subject_wise,
        'monthly_trend': monthly,
    }


def lock_old_attendance(days: int = LOCK_AFTER_DAYS) -> int:
    """Lock every record dated before today minus `days`; returns how many changed."""
    cutoff = today() - timedelta(days=days)
    locked = Attendance.objects.filter(date__lt=cutoff, is_locked=False).update(is_locked=True)
    logger.info('Locked %d attendance records dated before %s', locked, cutoff)
    return locked


def visible_attendance(user, qs):
    """Narrow an Attendance queryset to what the user's role may see."""
    role = getattr(user, 'role', None)
    if role == 'teacher':
        teacher = teacher_profile(user)
        if teacher is None:
            return qs.none()
        return qs.filter(
            Q(teacher=teacher)
            | Q(school_class__in=classes_taught_by(teacher))
            | Q(subject__in=teacher.subjects.all())
        ).distinct()
    if role == 'parent':
        parent = parent_profile(user)
        if parent is None:
            return qs.none()
        return qs.filter(student__parents=parent)
    if role == 'student':
        return qs.filter(student__user=user)
    if role == 'accountant':
        return qs.none()
    return qs
