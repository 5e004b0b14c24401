from rest_framework import serializers

from accounts.serializers import UserMiniSerializer

from .models import Parent, SchoolClass, Student, Subject, Teacher


class SubjectSerializer(serializers.ModelSerializer):
    teachers = serializers.PrimaryKeyRelatedField(many=True, required=False, queryset=Teacher.objects.all())

    class Meta:
        model = Subject
        fields = ('id', 'school', 'name', 'code', 'grade', 'description', 'teachers', 'is_active',
                  'created_at', 'updated_at')
        read_only_fields = ('school', 'created_at', 'updated_at')
        # (school, code) uniqueness is checked in validate_code
        validators = []

    def get_fields(self):
        fields = super().get_fields()
        school_id = _request_school_id(self.context)
        if school_id:
            fields['teachers'].child_relation.queryset = Teacher.objects.filter(school_id=school_id)
        return fields

    def validate_code(self, value):
        value = value.strip().upper()
        school_id = self.instance.school_id if self.instance else _request_school_id(self.context)
        qs = Subject.objects.filter(school_id=school_id, code=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if school_id and qs.exists():
            raise serializers.ValidationError(f"Subject code '{value}' already exists in this school")
        return value


class SubjectMiniSerializer(serializers.ModelSerializer):
    class Meta:
        model = Subject
        fields = ('id', 'name', 'code')


class TeacherSerializer(serializers.ModelSerializer):
    user = UserMiniSerializer(read_only=True)
    subjects = SubjectMiniSerializer(many=True, read_only=True)
    subject_ids = serializers.PrimaryKeyRelatedField(
        many=True, required=False, write_only=True, source='subjects', queryset=Subject.objects.all()
    )
    # login details, written through to the user on create/update
    first_name = serializers.CharField(write_only=True, max_length=150)
    last_name = serializers.CharField(write_only=True, max_length=150)
    email = serializers.EmailField(write_only=True, required=False, allow_blank=True)
    phone = serializers.CharField(write_only=True, required=False, allow_blank=True, max_length=20)

    class Meta:
        model = Teacher
        fields = (
            'id', 'teacher_id', 'user', 'school', 'designation', 'subjects', 'subject_ids',
            'qualification', 'experience_years', 'join_date', 'is_class_teacher', 'is_active', 'notes',
            'first_name', 'last_name', 'email', 'phone', 'created_at', 'updated_at',
        )
        read_only_fields = ('teacher_id', 'school', 'created_at', 'updated_at')
        validators = []

    def get_fields(self):
        fields = super().get_fields()
        school_id = _request_school_id(self.context)
        if school_id:
            fields['subject_ids'].child_relation.queryset = Subject.objects.filter(school_id=school_id)
        if self.instance is not None:
            fields['first_name'].required = False
            fields['last_name'].required = False
        return fields

    def update(self, instance, validated_data):
        user = instance.user
        dirty = []
        for field in ('first_name', 'last_name', 'email', 'phone'):
            if field in validated_data:
                setattr(user, field, validated_data.pop(field))
                dirty.append(field)
        if dirty:
            user.save(update_fields=dirty)
        return super().update(instance, validated_data)


class TeacherMiniSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Teacher
        fields = ('id', 'teacher_id', 'full_name', 'designation')


class SchoolClassSerializer(serializers.ModelSerializer):
    students_count = serializers.IntegerField(read_only=True, required=False)
    class_teacher_detail = TeacherMiniSerializer(source='class_teacher', read_only=True)

    class Meta:
        model = SchoolClass
        fields = ('id', 'school', 'grade', 'section', 'academic_year', 'name', 'class_teacher',
                  'class_teacher_detail', 'max_students', 'is_active', 'students_count', 'created_at')
        read_only_fields = ('school', 'created_at')
        validators = []

    def validate_section(self, value):
        return value.upper()

    def validate(self, attrs):
        school_id = self.instance.school_id if self.instance else _request_school_id(self.context)
        key = {
            'grade': attrs.get('grade', getattr(self.instance, 'grade', None)),
            'section': attrs.get('section', getattr(self.instance, 'section', None)),
            'academic_year': attrs.get('academic_year', getattr(self.instance, 'academic_year', None)),
        }
        qs = SchoolClass.objects.filter(school_id=school_id, **key)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if school_id and qs.exists():
            raise serializers.ValidationError(
                f"Grade {key['grade']} Section {key['section']} already exists for {key['academic_year']}"
            )
        teacher = attrs.get('class_teacher')
        if teacher is not None and school_id and teacher.school_id != int(school_id):
            raise serializers.ValidationError({'class_teacher': 'Teacher belongs to another school'})
        return attrs


class ClassMiniSerializer(serializers.ModelSerializer):
    class Meta:
        model = SchoolClass
        fields = ('id', 'name', 'grade', 'section', 'academic_year')


class StudentSerializer(serializers.ModelSerializer):
    user = UserMiniSerializer(read_only=True)
    school_class = ClassMiniSerializer(read_only=True)
    age = serializers.IntegerField(read_only=True)

    class Meta:
        model = Student
        fields = (
            'id', 'student_id', 'user', 'school', 'grade', 'section', 'school_class', 'roll_number',
            'blood_group', 'dob', 'age', 'admission_date', 'admission_year', 'address', 'is_active',
            'created_at', 'updated_at',
        )
        read_only_fields = fields


class StudentLiteSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Student
        fields = ('id', 'student_id', 'full_name', 'grade', 'section', 'roll_number')


class ParentInfoSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    relationship = serializers.ChoiceField(choices=Parent.RELATIONSHIPS, default='Guardian')
    occupation = serializers.CharField(max_length=100, required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)


class ParentCreateSerializer(ParentInfoSerializer):
    child_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=1)


class StudentCreateSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    grade = serializers.IntegerField(min_value=1, max_value=12)
    section = serializers.RegexField(r'^[A-Za-z]$')
    blood_group = serializers.ChoiceField(choices=Student.BLOOD_GROUPS)
    dob = serializers.DateField()
    admission_date = serializers.DateField(required=False)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    parent = ParentInfoSerializer(required=False)


class StudentUpdateSerializer(serializers.ModelSerializer):
    section = serializers.RegexField(r'^[A-Za-z]$', required=False)

    class Meta:
        model = Student
        fields = ('grade', 'section', 'blood_group', 'roll_number', 'address', 'is_active')


class ParentSerializer(serializers.ModelSerializer):
    user = UserMiniSerializer(read_only=True)
    children = StudentLiteSerializer(many=True, read_only=True)
    child_ids = serializers.PrimaryKeyRelatedField(
        many=True, required=False, write_only=True, source='children', queryset=Student.objects.all()
    )

    class Meta:
        model = Parent
        fields = ('id', 'parent_id', 'user', 'school', 'children', 'child_ids', 'relationship',
                  'occupation', 'address', 'created_at')
        read_only_fields = ('parent_id', 'school', 'created_at')
        validators = []

    def get_fields(self):
        fields = super().get_fields()
        school_id = _request_school_id(self.context)
        if school_id:
            fields['child_ids'].child_relation.queryset = Student.objects.filter(school_id=school_id)
        return fields

    def validate_child_ids(self, value):
        if not value:
            raise serializers.ValidationError('At least one child must be linked')
        return value


def _request_school_id(context):
    request = context.get('request') if context else None
    if request is None:
        return None
    user = request.user
    if getattr(user, 'role', None) == 'superadmin':
        return request.query_params.get('school') or (
            request.data.get('school') if hasattr(request.data, 'get') else None
        )
    return getattr(user, 'school_id', None)
