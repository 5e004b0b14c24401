# academics/views.py
import logging
from collections import Counter, defaultdict
from datetime import timedelta

from django.db.models import Count, Q
from django.db.models.functions import TruncMonth
from django.utils import timezone
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import HasRole, IsSchoolAdmin, IsSchoolAdminOrReadOnly
from accounts.serializers import SetPasswordSerializer
from attendance.models import Attendance
from attendance.serializers import AttendanceSerializer
from core.dates import parse_date, percent, today, week_range
from core.mixins import SchoolScopedMixin, int_param, resolve_school
from scheduling.services import weekly_schedule

from . import services
from .models import Parent, SchoolClass, Student, Subject, Teacher
from .serializers import (
    ParentCreateSerializer,
    ParentSerializer,
    SchoolClassSerializer,
    StudentCreateSerializer,
    StudentLiteSerializer,
    StudentSerializer,
    StudentUpdateSerializer,
    SubjectSerializer,
    TeacherSerializer,
)

logger = logging.getLogger(__name__)

EXPERIENCE_BANDS = [(2, "0-2 years"), (5, "2-5 years"), (10, "5-10 years"), (20, "10-20 years")]


def _experience_band(years):
    return next((band for limit, band in EXPERIENCE_BANDS if years < limit), "20+ years")


# =========================
# Subjects
# =========================

class SubjectViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    queryset = Subject.objects.prefetch_related("teachers").all()
    serializer_class = SubjectSerializer
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdminOrReadOnly]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        grade = int_param(params, "grade")
        is_active = params.get("is_active")
        search = params.get("search")
        if grade:
            qs = qs.filter(grade=grade)
        if is_active in ("true", "false"):
            qs = qs.filter(is_active=is_active == "true")
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(code__icontains=search))
        return qs.order_by("name")


# =========================
# Teachers
# =========================

class TeacherViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    queryset = Teacher.objects.select_related("user").prefetch_related("subjects").all()
    serializer_class = TeacherSerializer
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdminOrReadOnly]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        designation = params.get("designation")
        is_active = params.get("is_active")
        subject = int_param(params, "subject")
        search = params.get("search")
        if designation:
            qs = qs.filter(designation=designation)
        if is_active in ("true", "false"):
            qs = qs.filter(is_active=is_active == "true")
        if subject:
            qs = qs.filter(subjects__id=subject)
        if search:
            qs = qs.filter(
                Q(teacher_id__icontains=search)
                | Q(user__first_name__icontains=search)
                | Q(user__last_name__icontains=search)
                | Q(user__username__icontains=search)
            )
        return qs.order_by("teacher_id")

    def create(self, request, *args, **kwargs):
        school = self.get_school()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        teacher, credentials = services.create_teacher(school, serializer.validated_data)
        return Response(
            {"teacher": TeacherSerializer(teacher).data, "credentials": credentials},
            status=status.HTTP_201_CREATED,
        )

    def perform_destroy(self, instance):
        # teachers are deactivated, never removed; attendance keeps pointing at them
        instance.is_active = False
        instance.save(update_fields=["is_active", "updated_at"])
        instance.user.is_active = False
        instance.user.save(update_fields=["is_active"])
        logger.info("Deactivated teacher %s", instance.teacher_id)

    # ---- Directory ----
    @action(detail=False, methods=["get"], permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin])
    def directory(self, request):
        qs = self.get_queryset().order_by("user__last_name", "user__first_name")
        rows = []
        for t in qs:
            u = t.user
            rows.append(
                {
                    "id": t.id,
                    "teacher_id": t.teacher_id,
                    "user_id": u.id,
                    "username": u.username,
                    "first_name": u.first_name,
                    "last_name": u.last_name,
                    "phone": u.phone,
                    "designation": t.designation,
                    "is_active": t.is_active,
                }
            )
        return Response(rows)

    # ---- Stats ----
    @action(detail=False, methods=["get"], permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin])
    def stats(self, request):
        qs = SchoolScopedMixin.get_queryset(self).prefetch_related(None)
        since = today() - timedelta(days=30)
        by_experience = defaultdict(int)
        for years in qs.values_list("experience_years", flat=True):
            by_experience[_experience_band(years)] += 1
        return Response({
            "total": qs.count(),
            "active": qs.filter(is_active=True).count(),
            "class_teachers": qs.filter(is_class_teacher=True).count(),
            "by_designation": {
                row["designation"]: row["n"]
                for row in qs.values("designation").annotate(n=Count("id")).order_by("designation")
            },
            "by_subject": {
                row["subjects__name"]: row["n"]
                for row in qs.filter(subjects__isnull=False)
                .values("subjects__name").annotate(n=Count("id")).order_by("subjects__name")
            },
            "by_experience": {band: by_experience[band] for _, band in EXPERIENCE_BANDS + [(None, "20+ years")]},
            "recent_joining": qs.filter(join_date__gte=since).count(),
        })

    @action(
        detail=True,
        methods=["post"],
        url_path="set-password",
        permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin],
    )
    def set_password(self, request, pk=None):
        teacher = self.get_object()
        serializer = SetPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.set_user_password(teacher.user, serializer.validated_data["password"])
        logger.info("Password reset for teacher %s by user %s", teacher.teacher_id, request.user.pk)
        return Response({"ok": True})

    @action(
        detail=False,
        methods=["get"],
        url_path="me/classes",
        permission_classes=[permissions.IsAuthenticated, HasRole("teacher")],
        pagination_class=None,
    )
    def my_classes(self, request):
        teacher = services.teacher_profile(request.user)
        if teacher is None:
            return Response([])
        classes = services.classes_taught_by(teacher).annotate(
            students_count=Count("students", filter=Q(students__is_active=True), distinct=True)
        )
        return Response(SchoolClassSerializer(classes, many=True).data)


# =========================
# Classes
# =========================

class SchoolClassViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    """
    CRUD for classes plus the class roster and weekly attendance grid.
    """
    queryset = SchoolClass.objects.select_related("class_teacher__user").all()
    serializer_class = SchoolClassSerializer
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdminOrReadOnly]

    def get_queryset(self):
        qs = super().get_queryset().annotate(
            students_count=Count("students", filter=Q(students__is_active=True))
        )
        params = self.request.query_params
        grade = int_param(params, "grade")
        if grade:
            qs = qs.filter(grade=grade)
        for field in ("section", "academic_year"):
            value = params.get(field)
            if value:
                qs = qs.filter(**{field: value.upper() if field == "section" else value})
        is_active = params.get("is_active")
        if is_active in ("true", "false"):
            qs = qs.filter(is_active=is_active == "true")
        return qs.order_by("grade", "section")

    @action(detail=True, methods=["get"])
    def students(self, request, pk=None):
        clazz = self.get_object()
        students = (
            Student.objects.filter(school_class=clazz, is_active=True)
            .select_related("user")
            .order_by("roll_number", "user__last_name", "user__first_name")
        )
        return Response(StudentLiteSerializer(students, many=True).data)

    # ---- Attendance grid for a class (Mon..Sat) ----
    @action(detail=True, methods=["get"])
    def attendance_grid(self, request, pk=None):
        clazz = self.get_object()
        d = request.query_params.get("week_of")
        anchor = parse_date(d, "week_of") if d else today()
        start, end = week_range(anchor)

        students = [
            {"id": s.id, "student_id": s.student_id, "name": s.full_name, "roll_number": s.roll_number}
            for s in Student.objects.filter(school_class=clazz, is_active=True)
            .select_related("user")
            .order_by("roll_number")
        ]
        att = Attendance.objects.filter(school_class=clazz, date__range=(start, end))
        grid = defaultdict(lambda: defaultdict(dict))
        for a in att:
            grid[a.student_id][a.date.isoformat()][a.period] = a.status
        days = [(start + timedelta(days=i)).isoformat() for i in range(6)]
        return Response({"class": clazz.name, "students": students, "days": days, "grid": grid})


# =========================
# Students
# =========================

class StudentViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    """
    Students of a school. Reads are scoped by role: teachers see their
    classes, parents their children, students themselves.
    """
    queryset = Student.objects.select_related("user", "school_class").all()
    serializer_class = StudentSerializer
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdminOrReadOnly]

    def get_queryset(self):
        qs = services.visible_students(self.request.user, super().get_queryset())
        params = self.request.query_params
        grade = int_param(params, "grade")
        section = params.get("section")
        is_active = params.get("is_active")
        search = params.get("search")
        if grade:
            qs = qs.filter(grade=grade)
        if section:
            qs = qs.filter(section=section.upper())
        if is_active in ("true", "false"):
            qs = qs.filter(is_active=is_active == "true")
        if search:
            qs = qs.filter(
                Q(student_id__icontains=search)
                | Q(user__first_name__icontains=search)
                | Q(user__last_name__icontains=search)
            )
        return qs.order_by("grade", "section", "roll_number")

    def create(self, request, *args, **kwargs):
        school = self.get_school()
        serializer = StudentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        student, credentials = services.enroll_student(school, serializer.validated_data)
        return Response(
            {"student": StudentSerializer(student).data, "credentials": credentials},
            status=status.HTTP_201_CREATED,
        )

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        student = self.get_object()
        serializer = StudentUpdateSerializer(student, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        grade = data.pop("grade", student.grade)
        section = data.pop("section", student.section)
        services.move_student(student, grade, section)
        for field, value in data.items():
            setattr(student, field, value)
        student.save()
        return Response(StudentSerializer(student).data)

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save(update_fields=["is_active", "updated_at"])
        instance.user.is_active = False
        instance.user.save(update_fields=["is_active"])
        logger.info("Deactivated student %s", instance.student_id)

    @action(detail=True, methods=["get"])
    def age(self, request, pk=None):
        student = self.get_object()
        return Response({"student_id": student.student_id, "dob": student.dob, "age": student.age})

    @action(detail=False, methods=["get"], permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin])
    def stats(self, request):
        qs = SchoolScopedMixin.get_queryset(self)
        since = today() - timedelta(days=30)
        by_grade = {
            row["grade"]: row["n"]
            for row in qs.filter(is_active=True).values("grade").annotate(n=Count("id")).order_by("grade")
        }
        by_section = {
            row["section"]: row["n"]
            for row in qs.filter(is_active=True).values("section").annotate(n=Count("id")).order_by("section")
        }
        return Response({
            "total": qs.count(),
            "active": qs.filter(is_active=True).count(),
            "by_grade": by_grade,
            "by_section": by_section,
            "recent_admissions": qs.filter(admission_date__gte=since).count(),
        })


# =========================
# Parents
# =========================

class ParentViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    queryset = Parent.objects.select_related("user").prefetch_related("children__user").all()
    serializer_class = ParentSerializer
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdmin]

    def get_queryset(self):
        qs = super().get_queryset()
        search = self.request.query_params.get("search")
        if search:
            qs = qs.filter(
                Q(parent_id__icontains=search)
                | Q(user__first_name__icontains=search)
                | Q(user__last_name__icontains=search)
                | Q(children__student_id__icontains=search)
            ).distinct()
        return qs.order_by("parent_id")

    def create(self, request, *args, **kwargs):
        school = self.get_school()
        serializer = ParentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        parent, credentials = services.create_parent(school, serializer.validated_data)
        return Response(
            {"parent": ParentSerializer(parent).data, "credentials": credentials},
            status=status.HTTP_201_CREATED,
        )

    def perform_destroy(self, instance):
        services.delete_parent(instance)

    @action(detail=False, methods=["get"])
    def stats(self, request):
        qs = SchoolScopedMixin.get_queryset(self).prefetch_related(None)
        since = timezone.now() - timedelta(days=30)
        by_children = Counter(qs.annotate(n_children=Count("children")).values_list("n_children", flat=True))
        return Response({
            "total": qs.count(),
            "active": qs.filter(user__is_active=True).count(),
            "by_relationship": {
                row["relationship"]: row["n"]
                for row in qs.values("relationship").annotate(n=Count("id")).order_by("relationship")
            },
            "by_children_count": [
                {"children_count": k, "parent_count": by_children[k]} for k in sorted(by_children)
            ],
            "recent_registrations": qs.filter(created_at__gte=since).count(),
        })

    @action(detail=False, methods=["get"], pagination_class=None)
    def directory(self, request):
        rows = []
        for p in self.get_queryset().order_by("user__last_name", "user__first_name"):
            u = p.user
            rows.append({
                "id": p.id,
                "parent_id": p.parent_id,
                "username": u.username,
                "first_name": u.first_name,
                "last_name": u.last_name,
                "phone": u.phone,
                "relationship": p.relationship,
                "children": [
                    {"id": s.id, "student_id": s.student_id, "name": s.full_name,
                     "grade": s.grade, "section": s.section}
                    for s in p.children.all()
                ],
            })
        return Response(rows)

    @action(detail=True, methods=["post"], url_path="set-password")
    def set_password(self, request, pk=None):
        parent = self.get_object()
        serializer = SetPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.set_user_password(parent.user, serializer.validated_data["password"])
        return Response({"status": "password_changed"})


class MyChildrenViewSet(viewsets.ViewSet):
    """Parent self-service: the parent's children and a per-child overview."""
    permission_classes = [permissions.IsAuthenticated, HasRole("parent")]

    def _parent(self, request):
        parent = services.parent_profile(request.user)
        if parent is None:
            raise PermissionDenied("Parent profile not found")
        return parent

    def list(self, request):
        kids = self._parent(request).children.select_related("user", "school_class").order_by("grade", "section")
        return Response(StudentSerializer(kids, many=True).data)

    @action(detail=True, methods=["get"])
    def overview(self, request, pk=None):
        parent = self._parent(request)
        student = parent.children.select_related("user", "school_class").filter(pk=pk).first()
        if student is None:
            raise PermissionDenied("You can only view your own children")

        start, end = week_range(today())
        week_att = Attendance.objects.filter(student=student, date__range=(start, end)).select_related(
            "subject", "teacher__user"
        )
        since = today() - timedelta(days=30)
        recent = Attendance.objects.filter(student=student, date__gte=since)
        total = recent.count()
        attended = recent.filter(status__in=("present", "late")).count()

        return Response({
            "student": StudentSerializer(student).data,
            "class_name": student.school_class.name if student.school_class else "",
            "timetable": weekly_schedule(student.school, student.grade, student.section),
            "latest_week_attendance": AttendanceSerializer(week_att.order_by("date", "period"), many=True).data,
            "attendance_percentage": percent(attended, total),
        })


# =========================
# School statistics (admin dashboard)
# =========================

class SchoolStatsView(APIView):
    """
    GET /api/admin/stats/
    Returns:
    {
      "totals": {"students", "active_students", "teachers", "classes", "parents", "subjects"},
      "classes": [{"id", "name", "students_count"}],
      "registrations": {"year", "monthly": [{"month": "YYYY-MM", "count"}], "total"}
    }
    """
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdmin]

    def get(self, request):
        school = resolve_school(request)
        students = Student.objects.filter(school=school)

        totals = {
            "students": students.count(),
            "active_students": students.filter(is_active=True).count(),
            "teachers": Teacher.objects.filter(school=school, is_active=True).count(),
            "classes": SchoolClass.objects.filter(school=school, is_active=True).count(),
            "parents": Parent.objects.filter(school=school).count(),
            "subjects": Subject.objects.filter(school=school, is_active=True).count(),
        }

        classes = (
            SchoolClass.objects.filter(school=school, is_active=True)
            .annotate(students_count=Count("students", filter=Q(students__is_active=True)))
            .order_by("grade", "section")
            .values("id", "name", "students_count")
        )

        year = today().year
        monthly = [
            {"month": row["m"].strftime("%Y-%m"), "count": row["n"]}
            for row in students.filter(admission_date__year=year)
            .annotate(m=TruncMonth("admission_date"))
            .values("m")
            .annotate(n=Count("id"))
            .order_by("m")
        ]

        return Response({
            "school": {"id": school.id, "name": school.name},
            "totals": totals,
            "classes": list(classes),
            "registrations": {"year": year, "monthly": monthly, "total": sum(x["count"] for x in monthly)},
        })
