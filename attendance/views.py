import logging
from datetime import timedelta

from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.response import Response

from academics.models import SchoolClass, Student
from academics.services import visible_students
from accounts.permissions import HasRole, IsSchoolAdmin
from core.dates import parse_date, today
from core.mixins import SchoolScopedMixin, int_param, resolve_school

from . import services
from .models import Attendance
from .serializers import (
    AttendanceSerializer,
    DateRangeSerializer,
    MarkAttendanceSerializer,
    StatsFilterSerializer,
    UpdateAttendanceSerializer,
)

logger = logging.getLogger(__name__)

MARKING_ROLES = ("teacher",)
EDITING_ROLES = ("teacher", "admin", "superadmin")


def _date_range(request, default_days=30):
    params = request.query_params
    if "start_date" in params or "end_date" in params:
        serializer = DateRangeSerializer(data=params)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data["start_date"], serializer.validated_data["end_date"]
    end = today()
    return end - timedelta(days=default_days), end


class AttendanceViewSet(SchoolScopedMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin,
                        mixins.UpdateModelMixin, viewsets.GenericViewSet):
    """
    Per-period attendance.

    Reads are scoped by role: teachers see their classes and subjects,
    parents their children and students their own records.
    """
    queryset = Attendance.objects.select_related("student__user", "teacher__user", "subject").all()
    serializer_class = AttendanceSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        qs = services.visible_attendance(self.request.user, super().get_queryset())
        params = self.request.query_params
        for param, field in (
            ("student", "student_id"),
            ("teacher", "teacher_id"),
            ("school_class", "school_class_id"),
            ("subject", "subject_id"),
            ("period", "period"),
        ):
            value = int_param(params, param)
            if value:
                qs = qs.filter(**{field: value})
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("date"):
            qs = qs.filter(date=parse_date(params["date"]))
        else:
            if params.get("start_date"):
                qs = qs.filter(date__gte=parse_date(params["start_date"], "start_date"))
            if params.get("end_date"):
                qs = qs.filter(date__lte=parse_date(params["end_date"], "end_date"))
        return qs.order_by("-date", "period")

    def update(self, request, *args, **kwargs):
        if getattr(request.user, "role", None) not in EDITING_ROLES:
            raise PermissionDenied("Access denied. Insufficient permissions.")
        record = self.get_object()
        serializer = UpdateAttendanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = services.update_attendance(record, request.user, serializer.validated_data)
        return Response(AttendanceSerializer(record).data)

    # ---- Mark one period for a class ----
    @action(detail=False, methods=["post"], permission_classes=[permissions.IsAuthenticated, HasRole(*MARKING_ROLES)])
    def mark(self, request):
        """
        Payload:
        {
          "school_class": <id>, "subject": <id>, "date": "YYYY-MM-DD", "period": 1..8,
          "entries": [{"student": <id>, "status": "present|absent|late|excused"}]
        }
        """
        serializer = MarkAttendanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        records = services.mark_attendance(request.user, serializer.validated_data)
        return Response(AttendanceSerializer(records, many=True).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path=r"class/(?P<class_pk>\d+)")
    def by_class(self, request, class_pk=None):
        classes = SchoolClass.objects.all()
        if request.user.role != "superadmin":
            classes = classes.filter(school_id=request.user.school_id)
        clazz = classes.filter(pk=class_pk).first()
        if clazz is None:
            raise NotFound("Class not found")
        d = request.query_params.get("date")
        on = parse_date(d) if d else today()
        records = services.visible_attendance(
            request.user, services.class_attendance(clazz, on, int_param(request.query_params, "period"))
        )
        return Response({
            "class": clazz.name,
            "date": on,
            "records": AttendanceSerializer(records, many=True).data,
        })

    @action(detail=False, methods=["get"], url_path=r"student/(?P<student_pk>\d+)")
    def by_student(self, request, student_pk=None):
        student = self._student(request, student_pk)
        start, end = _date_range(request)
        records = services.student_attendance(student, start, end, int_param(request.query_params, "subject"))
        return Response(AttendanceSerializer(records, many=True).data)

    @action(detail=False, methods=["get"], url_path=r"student/(?P<student_pk>\d+)/report")
    def report(self, request, student_pk=None):
        student = self._student(request, student_pk)
        start, end = _date_range(request)
        return Response(services.student_report(student, start, end))

    @action(detail=False, methods=["get"], permission_classes=[permissions.IsAuthenticated, IsSchoolAdmin])
    def stats(self, request):
        school = resolve_school(request)
        start, end = _date_range(request)
        filters = StatsFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)
        return Response(services.attendance_stats(school, start, end, **filters.validated_data))

    def _student(self, request, student_pk):
        qs = Student.objects.select_related("user")
        if request.user.role != "superadmin":
            qs = qs.filter(school_id=request.user.school_id)
        student = visible_students(request.user, qs).filter(pk=student_pk).first()
        if student is None:
            raise NotFound("Student not found")
        return student
