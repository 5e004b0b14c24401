import re
from decimal import Decimal

from rest_framework import serializers

from academics.serializers import StudentLiteSerializer, _request_school_id

from .models import FeeStructure, FeeTransaction, MonthlyPayment, StudentFeeRecord

ACADEMIC_YEAR_RE = re.compile(r'^\d{4}-\d{4}$')


class FeeStructureSerializer(serializers.ModelSerializer):
    yearly_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = FeeStructure
        fields = (
            'id', 'school', 'grade', 'academic_year', 'monthly_amount', 'yearly_amount', 'due_day',
            'late_fee_amount', 'description', 'is_active', 'created_by', 'created_at', 'updated_at',
        )
        read_only_fields = ('school', 'created_by', 'created_at', 'updated_at')
        validators = []

    def validate_academic_year(self, value):
        if not ACADEMIC_YEAR_RE.match(value):
            raise serializers.ValidationError('Academic year must be in format YYYY-YYYY')
        start, end = (int(x) for x in value.split('-'))
        if end != start + 1:
            raise serializers.ValidationError('Academic year must span consecutive years')
        return value

    def validate(self, attrs):
        instance = self.instance
        school_id = instance.school_id if instance else _request_school_id(self.context)
        grade = attrs.get('grade', getattr(instance, 'grade', None))
        year = attrs.get('academic_year', getattr(instance, 'academic_year', None))
        active = attrs.get('is_active', getattr(instance, 'is_active', True))
        if school_id and active:
            qs = FeeStructure.objects.filter(school_id=school_id, grade=grade, academic_year=year, is_active=True)
            if instance is not None:
                qs = qs.exclude(pk=instance.pk)
            if qs.exists():
                raise serializers.ValidationError(
                    {'grade': f"An active fee structure already exists for grade {grade} in {year}"}
                )
        return attrs


class MonthlyPaymentSerializer(serializers.ModelSerializer):
    outstanding = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = MonthlyPayment
        fields = (
            'id', 'month', 'sequence', 'due_amount', 'paid_amount', 'late_fee', 'outstanding',
            'due_date', 'paid_date', 'status', 'waived',
        )
        read_only_fields = fields


class StudentFeeRecordSerializer(serializers.ModelSerializer):
    payments = MonthlyPaymentSerializer(many=True, read_only=True)

    class Meta:
        model = StudentFeeRecord
        fields = (
            'id', 'student', 'school', 'grade', 'academic_year', 'fee_structure', 'total_fee_amount',
            'total_paid_amount', 'total_due_amount', 'status', 'payments', 'created_at', 'updated_at',
        )
        read_only_fields = fields


class FeeTransactionSerializer(serializers.ModelSerializer):
    student = StudentLiteSerializer(read_only=True)
    collected_by_name = serializers.CharField(source='collected_by.full_name', read_only=True)

    class Meta:
        model = FeeTransaction
        fields = (
            'id', 'transaction_id', 'student', 'record', 'school', 'transaction_type', 'amount',
            'payment_method', 'month', 'collected_by', 'collected_by_name', 'remarks', 'status',
            'created_at',
        )
        read_only_fields = fields


class CollectionCheckSerializer(serializers.Serializer):
    student = serializers.IntegerField()
    month = serializers.IntegerField(min_value=1, max_value=12)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))


class CollectFeeSerializer(CollectionCheckSerializer):
    payment_method = serializers.ChoiceField(choices=FeeTransaction.METHODS)
    remarks = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
