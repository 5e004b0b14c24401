from django.contrib import admin
from .models import Attendance


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = ('id', 'date', 'period', 'student', 'subject', 'teacher', 'status', 'is_locked')
    list_filter = ('status', 'is_locked', 'date', 'school')
    search_fields = ('student__student_id', 'student__user__first_name', 'student__user__last_name')
    date_hierarchy = 'date'
