from django.contrib import admin
from .models import Period, Schedule


class PeriodInline(admin.TabularInline):
    model = Period
    extra = 0


@admin.register(Schedule)
class ScheduleAdmin(admin.ModelAdmin):
    list_display = ('id', 'school', 'grade', 'section', 'day_of_week', 'academic_year', 'is_active')
    list_filter = ('day_of_week', 'academic_year', 'is_active', 'school')
    inlines = [PeriodInline]
