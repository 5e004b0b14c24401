from django.contrib import admin
from .models import Organization, School

@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'status', 'contact_email')
    search_fields = ('name', 'contact_email')
    list_filter = ('status',)

@admin.register(School)
class SchoolAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'organization', 'status', 'max_students_per_section')
    search_fields = ('name', 'email')
    list_filter = ('status', 'organization')
