import logging
from collections import defaultdict

from django.conf import settings
from django.db import transaction
from django.db.models import Count
from rest_framework.exceptions import NotFound, ValidationError

from academics.models import Subject, Teacher
from academics.services import get_or_create_class
from core.dates import DAYS_OF_WEEK, current_academic_year
from core.exceptions import Conflict

from .models import Period, Schedule

logger = logging.getLogger(__name__)

WEEKLY_CAPACITY = settings.SCHOOL_MANAGEMENT['TEACHER_WEEKLY_PERIOD_CAPACITY']


def teacher_has_conflict(teacher_id, school, academic_year, day_of_week, period_number, exclude_schedule=None):
    """
    True when the teacher already takes `period_number` on `day_of_week` in
    another active schedule of the same school and academic year.
    """
    qs = Period.objects.filter(
        teacher_id=teacher_id,
        period_number=period_number,
        is_break=False,
        schedule__school=school,
        schedule__academic_year=academic_year,
        schedule__day_of_week=day_of_week,
        schedule__is_active=True,
    )
    if exclude_schedule is not None:
        qs = qs.exclude(schedule=exclude_schedule)
    return qs.exists()


def _resolve_periods(school, periods):
    """Swap subject/teacher ids for instances, all of which must belong to `school`."""
    subject_ids = {p['subject'] for p in periods if p.get('subject')}
    teacher_ids = {p['teacher'] for p in periods if p.get('teacher')}

    subjects = {s.id: s for s in Subject.objects.filter(school=school, id__in=subject_ids)}
    if len(subjects) != len(subject_ids):
        raise NotFound('One or more subjects not found')
    teachers = {t.id: t for t in Teacher.objects.filter(school=school, id__in=teacher_ids)}
    if len(teachers) != len(teacher_ids):
        raise NotFound('One or more teachers not found')

    return [
        {**p, 'subject': subjects.get(p.get('subject')), 'teacher': teachers.get(p.get('teacher'))}
        for p in periods
    ]


def _check_conflicts(school, academic_year, day_of_week, periods, exclude_schedule=None):
    for p in periods:
        teacher = p.get('teacher')
        if p.get('is_break') or teacher is None:
            continue
        if teacher_has_conflict(
            teacher.id, school, academic_year, day_of_week, p['period_number'], exclude_schedule
        ):
            raise Conflict(f"Teacher has a conflict on {day_of_week} period {p['period_number']}")


def _write_periods(schedule, periods):
    Period.objects.bulk_create([
        Period(
            schedule=schedule,
            period_number=p['period_number'],
            subject=p.get('subject'),
            teacher=p.get('teacher'),
            start_time=p['start_time'],
            end_time=p['end_time'],
            is_break=p.get('is_break', False),
            room=p.get('room', ''),
        )
        for p in periods
    ])


@transaction.atomic
def create_schedule(school, data: dict, user=None) -> Schedule:
    if school.status != 'active':
        raise ValidationError({'school': 'School is not active'})

    grade, section = data['grade'], data['section']
    academic_year, day = data['academic_year'], data['day_of_week']
    clazz = get_or_create_class(school, grade, section, academic_year)
    periods = _resolve_periods(school, data['periods'])

    if Schedule.objects.filter(
        school=school, grade=grade, section=section, day_of_week=day,
        academic_year=academic_year, is_active=True,
    ).exists():
        raise Conflict(f"Schedule already exists for Grade {grade} Section {section} on {day}")

    _check_conflicts(school, academic_year, day, periods)

    schedule = Schedule.objects.create(
        school=school, school_class=clazz, grade=grade, section=section,
        academic_year=academic_year, day_of_week=day, created_by=user,
    )
    _write_periods(schedule, periods)
    logger.info('Created schedule %s (grade %s%s %s)', schedule.pk, grade, section, day)
    return schedule


@transaction.atomic
def update_schedule(schedule: Schedule, data: dict) -> Schedule:
    school = schedule.school
    day = data.get('day_of_week', schedule.day_of_week)

    reactivating = data.get('is_active') and not schedule.is_active
    if (day != schedule.day_of_week or reactivating) and Schedule.objects.filter(
        school=school, grade=schedule.grade, section=schedule.section, day_of_week=day,
        academic_year=schedule.academic_year, is_active=True,
    ).exclude(pk=schedule.pk).exists():
        raise Conflict(f"Schedule already exists for Grade {schedule.grade} Section {schedule.section} on {day}")

    if 'periods' in data:
        periods = _resolve_periods(school, data['periods'])
    else:
        periods = [
            {'period_number': p.period_number, 'teacher': p.teacher, 'is_break': p.is_break}
            for p in schedule.periods.select_related('teacher')
        ]
    if data.get('is_active', schedule.is_active):
        _check_conflicts(school, schedule.academic_year, day, periods, exclude_schedule=schedule)

    schedule.day_of_week = day
    if 'is_active' in data:
        schedule.is_active = data['is_active']
    schedule.save()

    if 'periods' in data:
        schedule.periods.all().delete()
        _write_periods(schedule, periods)
    logger.info('Updated schedule %s', schedule.pk)
    return schedule


def delete_schedule(schedule: Schedule):
    schedule.is_active = False
    schedule.save(update_fields=['is_active', 'updated_at'])
    logger.info('Deactivated schedule %s', schedule.pk)


def _period_row(p: Period) -> dict:
    return {
        'period_number': p.period_number,
        'start_time': p.start_time.strftime('%H:%M'),
        'end_time': p.end_time.strftime('%H:%M'),
        'is_break': p.is_break,
        'room': p.room,
        'subject': {'id': p.subject.id, 'name': p.subject.name, 'code': p.subject.code} if p.subject else None,
        'teacher': (
            {'id': p.teacher.id, 'teacher_id': p.teacher.teacher_id, 'name': p.teacher.user.full_name}
            if p.teacher else None
        ),
    }


def weekly_schedule(school, grade, section, academic_year=None) -> dict:
    """Active timetable of a class: day -> periods ordered by number."""
    academic_year = academic_year or current_academic_year()
    week = {day: [] for day in DAYS_OF_WEEK}
    schedules = Schedule.objects.filter(
        school=school, grade=grade, section=str(section).upper(),
        academic_year=academic_year, is_active=True,
    ).prefetch_related('periods__subject', 'periods__teacher__user')
    for schedule in schedules:
        week[schedule.day_of_week] = [_period_row(p) for p in schedule.periods.all()]
    return {
        'grade': int(grade),
        'section': str(section).upper(),
        'academic_year': academic_year,
        'days': week,
    }


def teacher_workload(teacher: Teacher, academic_year=None) -> dict:
    academic_year = academic_year or current_academic_year()
    periods = (
        Period.objects.filter(
            teacher=teacher, is_break=False, schedule__is_active=True, schedule__academic_year=academic_year
        )
        .select_related('schedule', 'subject')
        .order_by('period_number')
    )
    by_day = defaultdict(list)
    classes, subjects = set(), set()
    for p in periods:
        s = p.schedule
        by_day[s.day_of_week].append({
            'period_number': p.period_number,
            'grade': s.grade,
            'section': s.section,
            'subject': p.subject.name if p.subject else None,
            'start_time': p.start_time.strftime('%H:%M'),
            'end_time': p.end_time.strftime('%H:%M'),
        })
        classes.add(f"{s.grade}{s.section}")
        if p.subject_id:
            subjects.add(p.subject.name)

    total = sum(len(v) for v in by_day.values())
    return {
        'teacher': {'id': teacher.id, 'teacher_id': teacher.teacher_id, 'name': teacher.user.full_name},
        'academic_year': academic_year,
        'total_periods': total,
        'periods_per_day': {day: len(by_day.get(day, [])) for day in DAYS_OF_WEEK},
        'schedule': {day: by_day.get(day, []) for day in DAYS_OF_WEEK},
        'classes': sorted(classes),
        'subjects': sorted(subjects),
        'utilization': round(total / WEEKLY_CAPACITY * 100, 2),
    }


@transaction.atomic
def assign_substitute(schedule: Schedule, period_number: int, substitute_id, reason: str = '') -> Schedule:
    period = schedule.periods.filter(period_number=period_number).first()
    if period is None:
        raise NotFound('Period not found')
    if period.is_break:
        raise ValidationError({'period_number': 'Cannot assign substitute teacher to break period'})
    substitute = Teacher.objects.filter(school=schedule.school, pk=substitute_id, is_active=True).first()
    if substitute is None:
        raise NotFound('Substitute teacher not found')
    if teacher_has_conflict(
        substitute.id, schedule.school, schedule.academic_year, schedule.day_of_week,
        period_number, exclude_schedule=schedule,
    ):
        raise Conflict(f"Substitute teacher has a conflict on {schedule.day_of_week} period {period_number}")

    previous = period.teacher_id
    period.teacher = substitute
    period.save(update_fields=['teacher'])
    logger.info(
        'Substitute %s replaces teacher %s on schedule %s period %s (%s)',
        substitute.teacher_id, previous, schedule.pk, period_number, reason or 'no reason given',
    )
    return schedule


def schedule_stats(school, academic_year=None) -> dict:
    academic_year = academic_year or current_academic_year()
    schedules = Schedule.objects.filter(school=school, academic_year=academic_year)

    by_grade = [
        {'grade': row['grade'], 'schedule_count': row['n'], 'sections_count': row['sections']}
        for row in schedules.values('grade')
        .annotate(n=Count('id'), sections=Count('section', distinct=True))
        .order_by('grade')
    ]
    by_day = {
        row['day_of_week']: row['n']
        for row in schedules.values('day_of_week').annotate(n=Count('id'))
    }

    teaching = Period.objects.filter(
        schedule__school=school, schedule__academic_year=academic_year, schedule__is_active=True, is_break=False
    )
    teacher_rows = (
        teaching.values('teacher_id', 'teacher__user__first_name', 'teacher__user__last_name')
        .annotate(total=Count('id'))
        .order_by('-total')
    )
    utilization = [
        {
            'teacher_id': row['teacher_id'],
            'teacher_name': f"{row['teacher__user__first_name']} {row['teacher__user__last_name']}".strip(),
            'total_periods': row['total'],
            'utilization_percentage': round(row['total'] / WEEKLY_CAPACITY * 100, 2),
        }
        for row in teacher_rows
    ]

    subject_rows = defaultdict(lambda: {'periods': 0, 'classes': set()})
    for p in teaching.values('subject_id', 'subject__name', 'schedule__grade', 'schedule__section'):
        row = subject_rows[(p['subject_id'], p['subject__name'])]
        row['periods'] += 1
        row['classes'].add((p['schedule__grade'], p['schedule__section']))
    distribution = sorted(
        (
            {'subject_id': sid, 'subject_name': name, 'total_periods': r['periods'], 'classes_count': len(r['classes'])}
            for (sid, name), r in subject_rows.items()
        ),
        key=lambda r: -r['total_periods'],
    )

    return {
        'academic_year': academic_year,
        'total_schedules': schedules.count(),
        'active_schedules': schedules.filter(is_active=True).count(),
        'by_grade': by_grade,
        'by_day_of_week': by_day,
        'teacher_utilization': utilization,
        'subject_distribution': distribution,
    }


@transaction.atomic
def bulk_create_schedules(school, items, user=None) -> list:
    """Create several schedules; any failure rolls back all of them."""
    created = [create_schedule(school, item, user=user) for item in items]
    logger.info('Bulk created %d schedules for school %s', len(created), school.pk)
    return created
