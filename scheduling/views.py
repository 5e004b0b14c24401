import logging

from django.db.models import Case, IntegerField, Q, Value, When
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response

from academics.models import Teacher
from academics.services import teacher_profile
from accounts.permissions import HasRole, IsSchoolAdmin, IsSchoolAdminOrReadOnly
from core.dates import DAYS_OF_WEEK
from core.mixins import SchoolScopedMixin, int_param, resolve_school

from . import services
from .models import Schedule
from .serializers import (
    ScheduleSerializer,
    ScheduleUpdateSerializer,
    ScheduleWriteSerializer,
    SubstituteSerializer,
)

logger = logging.getLogger(__name__)

DAY_ORDER = Case(
    *[When(day_of_week=day, then=Value(i)) for i, day in enumerate(DAYS_OF_WEEK)],
    output_field=IntegerField(),
)


class ScheduleViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    queryset = Schedule.objects.select_related("school_class").prefetch_related(
        "periods__subject", "periods__teacher__user"
    )
    serializer_class = ScheduleSerializer
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdminOrReadOnly]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        grade = int_param(params, "grade")
        if grade:
            qs = qs.filter(grade=grade)
        for field in ("academic_year", "day_of_week"):
            value = params.get(field)
            if value:
                qs = qs.filter(**{field: value})
        section = params.get("section")
        if section:
            qs = qs.filter(section=section.upper())
        is_active = params.get("is_active")
        if is_active in ("true", "false"):
            qs = qs.filter(is_active=is_active == "true")
        teacher = int_param(params, "teacher")
        subject = int_param(params, "subject")
        if teacher or subject:
            q = Q()
            if teacher:
                q &= Q(periods__teacher_id=teacher)
            if subject:
                q &= Q(periods__subject_id=subject)
            qs = qs.filter(q).distinct()
        return qs.order_by("grade", "section", DAY_ORDER)

    def create(self, request, *args, **kwargs):
        school = self.get_school()
        serializer = ScheduleWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        schedule = services.create_schedule(school, serializer.validated_data, user=request.user)
        return Response(ScheduleSerializer(schedule).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        schedule = self.get_object()
        serializer = ScheduleUpdateSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        schedule = services.update_schedule(schedule, serializer.validated_data)
        return Response(ScheduleSerializer(self.get_queryset().get(pk=schedule.pk)).data)

    def destroy(self, request, *args, **kwargs):
        services.delete_schedule(self.get_object())
        return Response({"detail": "Schedule deleted successfully"})

    # ---- Weekly timetable of one class ----
    @action(detail=False, methods=["get"])
    def weekly(self, request):
        grade = int_param(request.query_params, "grade")
        section = request.query_params.get("section")
        if not grade or not section:
            raise ValidationError({"detail": "grade and section are required"})
        school = resolve_school(request)
        return Response(
            services.weekly_schedule(school, grade, section, request.query_params.get("academic_year"))
        )

    @action(detail=False, methods=["get"], url_path=r"teacher/(?P<teacher_pk>\d+)")
    def teacher(self, request, teacher_pk=None):
        school = resolve_school(request)
        teacher = Teacher.objects.select_related("user").filter(school=school, pk=teacher_pk).first()
        if teacher is None:
            raise NotFound("Teacher not found")
        return Response(services.teacher_workload(teacher, request.query_params.get("academic_year")))

    @action(
        detail=False,
        methods=["get"],
        url_path="teacher-me",
        permission_classes=[permissions.IsAuthenticated, HasRole("teacher")],
    )
    def my_schedule(self, request):
        teacher = teacher_profile(request.user)
        if teacher is None:
            raise NotFound("Teacher profile not found")
        return Response(services.teacher_workload(teacher, request.query_params.get("academic_year")))

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin])
    def substitute(self, request, pk=None):
        schedule = self.get_object()
        serializer = SubstituteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        services.assign_substitute(
            schedule, data["period_number"], data["substitute_teacher"], data.get("reason", "")
        )
        return Response(ScheduleSerializer(self.get_queryset().get(pk=schedule.pk)).data)

    @action(detail=False, methods=["get"], permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin])
    def stats(self, request):
        return Response(
            services.schedule_stats(resolve_school(request), request.query_params.get("academic_year"))
        )

    @action(detail=False, methods=["post"], permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin])
    def bulk(self, request):
        """
        POST /api/schedules/bulk/
        {"school": <id, superadmin only>, "schedules": [<schedule>, ...]}
        """
        items = request.data if isinstance(request.data, list) else request.data.get("schedules")
        if not isinstance(items, list) or not items:
            raise ValidationError({"schedules": "A non-empty list of schedules is required"})
        school = resolve_school(request)
        serializer = ScheduleWriteSerializer(data=items, many=True)
        serializer.is_valid(raise_exception=True)
        created = services.bulk_create_schedules(school, serializer.validated_data, user=request.user)
        qs = self.get_queryset().filter(pk__in=[s.pk for s in created])
        return Response(ScheduleSerializer(qs, many=True).data, status=status.HTTP_201_CREATED)
