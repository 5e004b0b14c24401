from django.contrib import admin
from .models import Parent, SchoolClass, Student, Subject, Teacher

@admin.register(Subject)
class SubjectAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'code', 'grade', 'school', 'is_active')
    search_fields = ('name', 'code')
    list_filter = ('is_active', 'school')

@admin.register(Teacher)
class TeacherAdmin(admin.ModelAdmin):
    list_display = ('id', 'teacher_id', 'user', 'designation', 'is_class_teacher', 'is_active')
    search_fields = ('teacher_id', 'user__username', 'user__first_name', 'user__last_name')
    list_filter = ('is_class_teacher', 'designation', 'is_active', 'school')

@admin.register(SchoolClass)
class SchoolClassAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'academic_year', 'class_teacher', 'max_students', 'is_active')
    search_fields = ('name',)
    list_filter = ('grade', 'academic_year', 'school')

@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ('id', 'student_id', 'user', 'grade', 'section', 'roll_number', 'is_active')
    search_fields = ('student_id', 'user__first_name', 'user__last_name')
    list_filter = ('is_active', 'grade', 'section', 'school')

@admin.register(Parent)
class ParentAdmin(admin.ModelAdmin):
    list_display = ('id', 'parent_id', 'user', 'relationship')
    search_fields = ('parent_id', 'user__first_name', 'user__last_name', 'user__phone')
    list_filter = ('relationship', 'school')
