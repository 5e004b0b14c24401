from django.contrib import admin
from .models import FeeStructure, FeeTransaction, MonthlyPayment, StudentFeeRecord


@admin.register(FeeStructure)
class FeeStructureAdmin(admin.ModelAdmin):
    list_display = ('id', 'school', 'grade', 'academic_year', 'monthly_amount', 'due_day', 'is_active')
    list_filter = ('school', 'academic_year', 'is_active')


class MonthlyPaymentInline(admin.TabularInline):
    model = MonthlyPayment
    extra = 0


@admin.register(StudentFeeRecord)
class StudentFeeRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'student', 'academic_year', 'total_fee_amount', 'total_paid_amount', 'total_due_amount', 'status')
    list_filter = ('status', 'academic_year', 'school')
    search_fields = ('student__student_id',)
    inlines = [MonthlyPaymentInline]


@admin.register(FeeTransaction)
class FeeTransactionAdmin(admin.ModelAdmin):
    list_display = ('transaction_id', 'student', 'amount', 'payment_method', 'month', 'collected_by', 'status', 'created_at')
    list_filter = ('payment_method', 'status', 'transaction_type', 'school')
    search_fields = ('transaction_id', 'student__student_id')
    date_hierarchy = 'created_at'
