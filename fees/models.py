from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

PAYMENT_STATUS = (
    ('pending', 'Pending'),
    ('partial', 'Partial'),
    ('paid', 'Paid'),
    ('overdue', 'Overdue'),
)


class FeeStructure(models.Model):
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='fee_structures')
    grade = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    academic_year = models.CharField(max_length=9)
    monthly_amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    due_day = models.PositiveSmallIntegerField(default=10, validators=[MinValueValidator(1), MaxValueValidator(28)])
    late_fee_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0'), validators=[MinValueValidator(0)]
    )
    description = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'grade', 'academic_year'],
                condition=models.Q(is_active=True),
                name='unique_active_fee_structure',
            ),
        ]

    def __str__(self):
        return f"Grade {self.grade} {self.academic_year}: {self.monthly_amount}/month"

    @property
    def yearly_amount(self):
        return self.monthly_amount * 12


class StudentFeeRecord(models.Model):
    student = models.ForeignKey('academics.Student', on_delete=models.CASCADE, related_name='fee_records')
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='fee_records')
    grade = models.PositiveSmallIntegerField()
    academic_year = models.CharField(max_length=9)
    fee_structure = models.ForeignKey(FeeStructure, on_delete=models.PROTECT, related_name='records')
    total_fee_amount = models.DecimalField(max_digits=12, decimal_places=2)
    total_paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_due_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=10, choices=PAYMENT_STATUS, default='pending')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['student', 'academic_year'], name='unique_fee_record_per_year'),
        ]
        indexes = [
            models.Index(fields=['school', 'academic_year', 'status']),
        ]

    def __str__(self):
        return f"{self.student_id} {self.academic_year} ({self.status})"

    def refresh_totals(self):
        """Recompute totals and status from the installments."""
        payments = list(self.payments.all())
        self.total_paid_amount = sum((p.paid_amount for p in payments), Decimal('0'))
        self.total_due_amount = sum((p.outstanding for p in payments if not p.waived), Decimal('0'))
        if all(p.status == 'paid' or p.waived for p in payments):
            self.status = 'paid'
        elif any(p.status == 'overdue' and not p.waived for p in payments):
            self.status = 'overdue'
        elif self.total_paid_amount > 0:
            self.status = 'partial'
        else:
            self.status = 'pending'


class MonthlyPayment(models.Model):
    record = models.ForeignKey(StudentFeeRecord, on_delete=models.CASCADE, related_name='payments')
    month = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    sequence = models.PositiveSmallIntegerField()  # 0 = first month of the academic year
    due_amount = models.DecimalField(max_digits=10, decimal_places=2)
    paid_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    late_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    due_date = models.DateField()
    paid_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=PAYMENT_STATUS, default='pending')
    waived = models.BooleanField(default=False)

    class Meta:
        ordering = ['sequence']
        constraints = [
            models.UniqueConstraint(fields=['record', 'month'], name='unique_installment_per_month'),
        ]

    def __str__(self):
        return f"{self.record_id} month {self.month}: {self.status}"

    @property
    def outstanding(self):
        return max(self.due_amount + self.late_fee - self.paid_amount, Decimal('0'))


class FeeTransaction(models.Model):
    TYPES = (
        ('payment', 'Payment'),
        ('refund', 'Refund'),
        ('waiver', 'Waiver'),
        ('late_fee', 'Late fee'),
    )
    METHODS = (
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('bank_transfer', 'Bank transfer'),
        ('upi', 'UPI'),
        ('cheque', 'Cheque'),
        ('online', 'Online'),
    )
    STATUS = (
        ('completed', 'Completed'),
        ('pending', 'Pending'),
        ('cancelled', 'Cancelled'),
    )

    transaction_id = models.CharField(max_length=40, unique=True)
    student = models.ForeignKey('academics.Student', on_delete=models.PROTECT, related_name='fee_transactions')
    record = models.ForeignKey(StudentFeeRecord, on_delete=models.PROTECT, related_name='transactions')
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='fee_transactions')
    transaction_type = models.CharField(max_length=10, choices=TYPES, default='payment')
    amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    payment_method = models.CharField(max_length=15, choices=METHODS)
    month = models.PositiveSmallIntegerField(null=True, blank=True)
    collected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='fee_collections'
    )
    remarks = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=10, choices=STATUS, default='completed')
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    device_info = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['school', 'created_at']),
            models.Index(fields=['collected_by', 'created_at']),
        ]

    def __str__(self):
        return self.transaction_id
