import logging
import secrets
import string
import time
from datetime import date, datetime, time as dtime, timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from academics.models import Student
from core.dates import academic_year_months, current_academic_year, today

from .models import FeeStructure, FeeTransaction, MonthlyPayment, StudentFeeRecord

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def generate_transaction_id() -> str:
    """TXN-<epoch ms>-<6 random chars>."""
    suffix = ''.join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"TXN-{int(time.time() * 1000)}-{suffix}"


def _student_row(student: Student) -> dict:
    return {
        'id': student.id,
        'student_id': student.student_id,
        'name': student.full_name,
        'grade': student.grade,
        'section': student.section,
        'roll_number': student.roll_number,
        'parent_contact': student.user.phone,
    }


def search_student(school, student_id: str) -> dict:
    student = Student.objects.select_related('user').filter(school=school, student_id=student_id).first()
    if student is None:
        raise NotFound('Student not found')
    return _student_row(student)


def _installment_due_date(academic_year: str, month: int, due_day: int, start_month: int) -> date:
    start_year = int(academic_year.split('-')[0])
    year = start_year if month >= start_month else start_year + 1
    return date(year, month, due_day)


@transaction.atomic
def create_fee_record(student: Student, academic_year: str) -> StudentFeeRecord:
    structure = FeeStructure.objects.filter(
        school=student.school, grade=student.grade, academic_year=academic_year, is_active=True
    ).first()
    if structure is None:
        raise NotFound(f"No fee structure found for grade {student.grade} in {academic_year}")

    record = StudentFeeRecord.objects.create(
        student=student,
        school=student.school,
        grade=student.grade,
        academic_year=academic_year,
        fee_structure=structure,
        total_fee_amount=structure.yearly_amount,
        total_due_amount=structure.yearly_amount,
    )
    start_month = student.school.academic_year_start
    MonthlyPayment.objects.bulk_create([
        MonthlyPayment(
            record=record,
            month=month,
            sequence=i,
            due_amount=structure.monthly_amount,
            due_date=_installment_due_date(academic_year, month, structure.due_day, start_month),
        )
        for i, month in enumerate(academic_year_months(start_month))
    ])
    logger.info('Created fee record for student %s (%s)', student.student_id, academic_year)
    return record


def mark_overdue(qs=None, on=None) -> int:
    """
    Flag unpaid installments whose due date has passed, adding the fee
    structure's late fee the first time. Returns the number flagged.
    """
    on = on or today()
    payments = (qs if qs is not None else MonthlyPayment.objects.all()).filter(
        status__in=('pending', 'partial'), waived=False, due_date__lt=on
    ).select_related('record__fee_structure')
    touched_records = {}
    count = 0
    for payment in payments:
        payment.status = 'overdue'
        if payment.late_fee == ZERO:
            payment.late_fee = payment.record.fee_structure.late_fee_amount
        payment.save(update_fields=['status', 'late_fee'])
        touched_records[payment.record_id] = payment.record
        count += 1
    for record in touched_records.values():
        record.refresh_totals()
        record.save(update_fields=['total_paid_amount', 'total_due_amount', 'status', 'updated_at'])
    if count:
        logger.info('Marked %d installments overdue', count)
    return count


def _student_for_school(school, student_pk) -> Student:
    student = Student.objects.select_related('user', 'school').filter(pk=student_pk).first()
    if student is None:
        raise NotFound('Student not found')
    if student.school_id != school.id:
        raise PermissionDenied('Access denied. Student belongs to a different school.')
    return student


def get_fee_record(student: Student, academic_year: str | None = None) -> StudentFeeRecord:
    academic_year = academic_year or current_academic_year()
    record = StudentFeeRecord.objects.filter(student=student, academic_year=academic_year).first()
    if record is None:
        record = create_fee_record(student, academic_year)
    if mark_overdue(MonthlyPayment.objects.filter(record=record)):
        record.refresh_from_db()
    return record


def fee_status(school, student_pk, academic_year=None) -> dict:
    student = _student_for_school(school, student_pk)
    record = get_fee_record(student, academic_year)
    payments = list(record.payments.all())
    upcoming = next((p for p in payments if p.status in ('pending', 'overdue') and not p.waived), None)
    recent = record.transactions.select_related('collected_by').order_by('-created_at')[:10]
    return {
        'student': student,
        'record': record,
        'payments': payments,
        'upcoming_due': upcoming,
        'recent_transactions': list(recent),
    }


def validate_collection(school, student_pk, month: int, amount: Decimal) -> dict:
    status = fee_status(school, student_pk)
    payments = status['payments']
    payment = next((p for p in payments if p.month == month), None)
    if payment is None:
        raise ValidationError({'month': 'Invalid month selected'})

    errors, warnings = [], []
    if payment.status == 'paid':
        errors.append("This month's fee is already fully paid")
    if payment.waived:
        errors.append("This month's fee has been waived")

    expected = payment.outstanding
    if amount > expected:
        warnings.append(f"Amount exceeds due amount. Due: {expected}, Received: {amount}")
    elif amount < expected:
        warnings.append(f"Partial payment. Due: {expected}, Received: {amount}, Remaining: {expected - amount}")

    on = today()
    if payment.due_date < on and payment.status != 'paid':
        warnings.append(f"Payment is overdue by {(on - payment.due_date).days} days")

    earlier = [
        p for p in payments
        if p.sequence < payment.sequence and p.status != 'paid' and not p.waived
    ]
    if earlier:
        warnings.append(f"{len(earlier)} previous month(s) are still pending")

    return {
        'valid': not errors,
        'errors': errors,
        'warnings': warnings,
        'expected_amount': expected,
        'monthly_payment': payment,
        'student': status['student'],
        'record': status['record'],
    }


@transaction.atomic
def collect_fee(school, student_pk, month: int, amount: Decimal, payment_method: str, collected_by,
                remarks: str = '', ip_address=None, device_info: str = '') -> dict:
    student = _student_for_school(school, student_pk)
    record = StudentFeeRecord.objects.select_for_update().get(pk=get_fee_record(student).pk)

    # record lock is held from here on; validation sees every earlier collection
    validation = validate_collection(school, student_pk, month, amount)
    if not validation['valid']:
        raise ValidationError({'detail': '; '.join(validation['errors'])})

    payment = MonthlyPayment.objects.select_for_update().get(pk=validation['monthly_payment'].pk)
    payment.paid_amount += amount
    if payment.paid_amount >= payment.due_amount + payment.late_fee:
        payment.status = 'paid'
        payment.paid_date = today()
    else:
        payment.status = 'overdue' if payment.due_date < today() else 'partial'
    payment.save(update_fields=['paid_amount', 'status', 'paid_date'])

    record.refresh_totals()
    record.save(update_fields=['total_paid_amount', 'total_due_amount', 'status', 'updated_at'])

    txn = FeeTransaction.objects.create(
        transaction_id=generate_transaction_id(),
        student=validation['student'],
        record=record,
        school=school,
        transaction_type='payment',
        amount=amount,
        payment_method=payment_method,
        month=month,
        collected_by=collected_by,
        remarks=remarks,
        ip_address=ip_address,
        device_info=device_info[:255],
    )
    logger.info(
        'Collected %s (%s) from student %s month %s as %s',
        amount, payment_method, validation['student'].student_id, month, txn.transaction_id,
    )
    return {'transaction': txn, 'record': record, 'warnings': validation['warnings']}


def _day_bounds(on: date):
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(on, dtime.min), tz)
    return start, start + timedelta(days=1)


def accountant_transactions(school, user, start: date, end: date):
    lower, _ = _day_bounds(start)
    _, upper = _day_bounds(end)
    return (
        FeeTransaction.objects.filter(school=school, collected_by=user, created_at__gte=lower, created_at__lt=upper)
        .select_related('student__user')
        .order_by('-created_at')
    )


def daily_summary(school, user, on: date) -> dict:
    lower, upper = _day_bounds(on)
    rows = (
        FeeTransaction.objects.filter(
            school=school, collected_by=user, transaction_type='payment', status='completed',
            created_at__gte=lower, created_at__lt=upper,
        )
        .values('payment_method')
        .annotate(total_amount=Sum('amount'), count=Count('id'))
        .order_by('payment_method')
    )
    by_method = [dict(r) for r in rows]
    return {
        'date': on,
        'total_collected': sum((r['total_amount'] for r in by_method), ZERO),
        'total_transactions': sum(r['count'] for r in by_method),
        'by_payment_method': by_method,
    }


def _collected(qs):
    agg = qs.aggregate(total=Sum('amount'), count=Count('id'))
    return agg['total'] or ZERO, agg['count']


def dashboard(school) -> dict:
    on = today()
    payments = FeeTransaction.objects.filter(school=school, transaction_type='payment', status='completed')
    day_lower, day_upper = _day_bounds(on)
    month_lower, _ = _day_bounds(on.replace(day=1))

    today_total, today_count = _collected(payments.filter(created_at__gte=day_lower, created_at__lt=day_upper))
    month_qs = payments.filter(created_at__gte=month_lower)
    month_total, month_count = _collected(month_qs)

    records = StudentFeeRecord.objects.filter(school=school, academic_year=current_academic_year())
    pending = records.aggregate(total=Sum('total_due_amount'))['total'] or ZERO
    defaulters = records.filter(payments__status='overdue', payments__waived=False).distinct().count()

    recent = [
        {
            'transaction_id': t.transaction_id,
            'student_name': t.student.full_name,
            'student_id': t.student.student_id,
            'grade': t.student.grade,
            'section': t.student.section,
            'amount': t.amount,
            'payment_method': t.payment_method,
            'month': t.month,
            'date': t.created_at,
        }
        for t in payments.select_related('student__user').order_by('-created_at')[:10]
    ]
    breakdown = [
        dict(r) for r in month_qs.values('payment_method')
        .annotate(total_amount=Sum('amount'), count=Count('id'))
        .order_by('payment_method')
    ]
    return {
        'today_collection': today_total,
        'today_transactions': today_count,
        'month_collection': month_total,
        'month_transactions': month_count,
        'pending_dues': pending,
        'total_defaulters': defaulters,
        'recent_transactions': recent,
        'monthly_breakdown': breakdown,
    }


def students_with_fee_status(school, grade=None, section=None) -> list:
    students = Student.objects.filter(school=school, is_active=True).select_related('user')
    if grade:
        students = students.filter(grade=grade)
    if section:
        students = students.filter(section=section.upper())
    academic_year = current_academic_year()
    records = {
        r.student_id: r
        for r in StudentFeeRecord.objects.filter(
            student__in=students, academic_year=academic_year
        ).annotate(
            pending_months=Count('payments', filter=Q(payments__status__in=('pending', 'overdue'), payments__waived=False))
        )
    }
    rows = []
    for s in students.order_by('grade', 'section', 'roll_number'):
        row = _student_row(s)
        r = records.get(s.id)
        row['fee_status'] = None if r is None else {
            'total_fee_amount': r.total_fee_amount,
            'total_paid_amount': r.total_paid_amount,
            'total_due_amount': r.total_due_amount,
            'status': r.status,
            'pending_months': r.pending_months,
        }
        rows.append(row)
    return rows


def receipt(school, transaction_id: str) -> dict:
    txn = (
        FeeTransaction.objects.select_related('student__user', 'record', 'collected_by', 'school')
        .filter(school=school, transaction_id=transaction_id)
        .first()
    )
    if txn is None:
        raise NotFound('Transaction not found')
    payment = txn.record.payments.filter(month=txn.month).first() if txn.month else None
    return {
        'transaction_id': txn.transaction_id,
        'date': txn.created_at,
        'school': {'name': txn.school.name, 'address': txn.school.address, 'phone': txn.school.phone},
        'student': _student_row(txn.student),
        'academic_year': txn.record.academic_year,
        'month': txn.month,
        'amount': txn.amount,
        'payment_method': txn.payment_method,
        'status': txn.status,
        'remarks': txn.remarks,
        'collected_by': txn.collected_by.full_name,
        'installment': None if payment is None else {
            'due_amount': payment.due_amount,
            'paid_amount': payment.paid_amount,
            'late_fee': payment.late_fee,
            'status': payment.status,
        },
        'balance': {
            'total_fee_amount': txn.record.total_fee_amount,
            'total_paid_amount': txn.record.total_paid_amount,
            'total_due_amount': txn.record.total_due_amount,
        },
    }
