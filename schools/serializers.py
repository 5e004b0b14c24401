from rest_framework import serializers

from core.exceptions import Conflict

from .models import Organization, School


class OrganizationSerializer(serializers.ModelSerializer):
    schools_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Organization
        fields = (
            'id', 'name', 'description', 'contact_email', 'contact_phone', 'address',
            'status', 'schools_count', 'created_at', 'updated_at',
        )
        read_only_fields = ('created_at', 'updated_at')


class OrganizationMiniSerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = ('id', 'name', 'status')


class SchoolSerializer(serializers.ModelSerializer):
    name = serializers.CharField(min_length=2, max_length=100)
    admin_username = serializers.SerializerMethodField()
    organization_detail = OrganizationMiniSerializer(source='organization', read_only=True)
    students_count = serializers.SerializerMethodField()
    teachers_count = serializers.SerializerMethodField()
    grades = serializers.ListField(child=serializers.IntegerField(min_value=1, max_value=12), min_length=1, required=False)
    sections = serializers.ListField(
        child=serializers.RegexField(r'^[A-Z]$', error_messages={'invalid': 'Sections must be uppercase letters'}),
        min_length=1,
        required=False,
    )

    class Meta:
        model = School
        fields = (
            'id', 'organization', 'organization_detail', 'name', 'address', 'phone', 'email', 'status',
            'admin_username', 'max_students_per_section', 'grades', 'sections',
            'academic_year_start', 'academic_year_end', 'attendance_grace_period',
            'students_count', 'teachers_count', 'created_at', 'updated_at',
        )
        read_only_fields = ('created_at', 'updated_at')
        # uniqueness is checked case-insensitively by the service
        validators = []

    def get_admin_username(self, obj):
        admin = obj.admin_user
        return admin.username if admin else None

    def get_students_count(self, obj):
        return obj.students.filter(is_active=True).count()

    def get_teachers_count(self, obj):
        return obj.teachers.filter(is_active=True).count()

    def validate_email(self, value):
        return value.lower()

    def validate(self, attrs):
        request = self.context.get('request')
        if self.instance is not None:
            attrs.pop('organization', None)
            if 'status' in attrs and getattr(request.user, 'role', None) != 'superadmin':
                raise serializers.ValidationError({'status': 'Only a superadmin can change school status'})
            name = attrs.get('name')
            if name and School.objects.filter(
                organization=self.instance.organization, name__iexact=name.strip()
            ).exclude(pk=self.instance.pk).exists():
                raise Conflict(f"School with name '{name}' already exists in this organization")
        return attrs


class ResetAdminPasswordSerializer(serializers.Serializer):
    new_password = serializers.CharField(min_length=6, max_length=50)
