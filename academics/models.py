from datetime import date

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models

User = settings.AUTH_USER_MODEL


class Subject(models.Model):
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='subjects')
    name = models.CharField(max_length=120)
    code = models.CharField(max_length=20)
    grade = models.CharField(max_length=20, blank=True)
    description = models.TextField(blank=True)
    teachers = models.ManyToManyField('Teacher', blank=True, related_name='subjects')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['school', 'code'], name='unique_subject_code_per_school'),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)


class Teacher(models.Model):
    DESIGNATIONS = (
        ('principal', 'Principal'),
        ('vice_principal', 'Vice Principal'),
        ('head_teacher', 'Head Teacher'),
        ('senior_teacher', 'Senior Teacher'),
        ('teacher', 'Teacher'),
        ('assistant_teacher', 'Assistant Teacher'),
        ('subject_coordinator', 'Subject Coordinator'),
        ('sports_teacher', 'Sports Teacher'),
        ('music_teacher', 'Music Teacher'),
        ('art_teacher', 'Art Teacher'),
        ('librarian', 'Librarian'),
        ('counselor', 'Counselor'),
    )

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='teacher_profile')
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='teachers')
    teacher_id = models.CharField(
        max_length=20,
        validators=[RegexValidator(r'^TCH-\d{4}-\d{3}$', 'Teacher ID must follow format TCH-YYYY-XXX')],
    )
    designation = models.CharField(max_length=30, choices=DESIGNATIONS, default='teacher')
    qualification = models.CharField(max_length=200, blank=True)
    experience_years = models.PositiveSmallIntegerField(default=0, validators=[MaxValueValidator(50)])
    join_date = models.DateField(default=date.today)
    is_class_teacher = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['school', 'teacher_id'], name='unique_teacher_id_per_school'),
        ]

    def __str__(self):
        u = self.user
        return f"{u.first_name} {u.last_name} ({self.teacher_id})"

    @property
    def full_name(self):
        return self.user.full_name


class SchoolClass(models.Model):
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='classes')
    grade = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    section = models.CharField(max_length=1)
    academic_year = models.CharField(
        max_length=9, validators=[RegexValidator(r'^\d{4}-\d{4}$', 'Academic year must look like 2025-2026')]
    )
    name = models.CharField(max_length=50, blank=True)  # e.g., "Grade 7 - Section A"
    class_teacher = models.ForeignKey(
        Teacher, on_delete=models.SET_NULL, null=True, blank=True, related_name='classes_as_class_teacher'
    )
    max_students = models.PositiveIntegerField(default=40)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = 'school classes'
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'grade', 'section', 'academic_year'], name='unique_class_per_year'
            ),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.section = self.section.upper()
        if not self.name:
            self.name = f"Grade {self.grade} - Section {self.section}"
        super().save(*args, **kwargs)


class Student(models.Model):
    BLOOD_GROUPS = [(bg, bg) for bg in ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='student_profile')
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='students')
    student_id = models.CharField(max_length=10)  # YYYY + GG + RRRR
    grade = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    section = models.CharField(max_length=1)
    school_class = models.ForeignKey(
        SchoolClass, on_delete=models.SET_NULL, null=True, blank=True, related_name='students'
    )
    blood_group = models.CharField(max_length=3, choices=BLOOD_GROUPS)
    dob = models.DateField()
    admission_date = models.DateField(default=date.today)
    admission_year = models.PositiveIntegerField()
    roll_number = models.PositiveIntegerField(null=True, blank=True)
    address = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['school', 'student_id'], name='unique_student_id_per_school'),
        ]
        indexes = [
            models.Index(fields=['school', 'grade', 'section']),
            models.Index(fields=['school', 'admission_year', 'grade']),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.student_id})"

    def save(self, *args, **kwargs):
        self.section = self.section.upper()
        if self.admission_date:
            self.admission_year = self.admission_date.year
        super().save(*args, **kwargs)

    @property
    def full_name(self):
        return self.user.full_name

    @property
    def age(self):
        today = date.today()
        years = today.year - self.dob.year
        if (today.month, today.day) < (self.dob.month, self.dob.day):
            years -= 1
        return years


class Parent(models.Model):
    RELATIONSHIPS = [
        (r, r) for r in ('Father', 'Mother', 'Guardian', 'Step Parent', 'Foster Parent', 'Grandparent', 'Other')
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='parent_profile')
    school = models.ForeignKey('schools.School', on_delete=models.CASCADE, related_name='parents')
    parent_id = models.CharField(
        max_length=20,
        validators=[RegexValidator(r'^PAR-\d{4}-\d{3}$', 'Parent ID must follow format PAR-YYYY-XXX')],
    )
    children = models.ManyToManyField(Student, related_name='parents')
    relationship = models.CharField(max_length=20, choices=RELATIONSHIPS, default='Guardian')
    occupation = models.CharField(max_length=100, blank=True)
    address = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['school', 'parent_id'], name='unique_parent_id_per_school'),
        ]

    def __str__(self):
        return f"{self.user.full_name} ({self.parent_id})"
