# fees/views.py
import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from academics.serializers import StudentLiteSerializer
from accounts.permissions import HasRole, IsSchoolAdminOrReadOnly
from core.dates import parse_date, today
from core.mixins import SchoolScopedMixin, int_param, resolve_school

from . import services
from .models import FeeStructure
from .serializers import (
    CollectFeeSerializer,
    CollectionCheckSerializer,
    FeeStructureSerializer,
    FeeTransactionSerializer,
    MonthlyPaymentSerializer,
    StudentFeeRecordSerializer,
)

logger = logging.getLogger(__name__)

FEE_ROLES = ("accountant", "admin", "superadmin")


def _client_ip(request):
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


# =========================
# Fee structures
# =========================

class FeeStructureViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    queryset = FeeStructure.objects.all()
    serializer_class = FeeStructureSerializer
    permission_classes = [permissions.IsAuthenticated, HasRole(*FEE_ROLES), IsSchoolAdminOrReadOnly]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        grade = int_param(params, "grade")
        if grade:
            qs = qs.filter(grade=grade)
        if params.get("academic_year"):
            qs = qs.filter(academic_year=params["academic_year"])
        if params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=params["is_active"] == "true")
        return qs.order_by("-academic_year", "grade")

    def perform_create(self, serializer):
        serializer.save(school=self.get_school(), created_by=self.request.user)

    def perform_destroy(self, instance):
        if instance.records.exists():
            instance.is_active = False
            instance.save(update_fields=["is_active", "updated_at"])
            return
        instance.delete()


# =========================
# Fee collection
# =========================

class FeeCollectionViewSet(viewsets.ViewSet):
    """
    Accountant desk: look a student up, check what is owed, take a payment
    and print the receipt. Everything is pinned to the caller's school.
    """
    permission_classes = [permissions.IsAuthenticated, HasRole(*FEE_ROLES)]

    @action(detail=False, methods=["get"], url_path="search")
    def search(self, request):
        student_id = request.query_params.get("student_id", "").strip().upper()
        if not student_id:
            raise ValidationError({"student_id": "This query parameter is required."})
        return Response(services.search_student(resolve_school(request), student_id))

    @action(detail=False, methods=["get"], url_path=r"students/(?P<student_pk>\d+)/status")
    def fee_status(self, request, student_pk=None):
        result = services.fee_status(
            resolve_school(request), student_pk, request.query_params.get("academic_year")
        )
        upcoming = result["upcoming_due"]
        return Response({
            "student": StudentLiteSerializer(result["student"]).data,
            "record": StudentFeeRecordSerializer(result["record"]).data,
            "upcoming_due": MonthlyPaymentSerializer(upcoming).data if upcoming else None,
            "recent_transactions": FeeTransactionSerializer(result["recent_transactions"], many=True).data,
        })

    @action(detail=False, methods=["post"])
    def validate(self, request):
        serializer = CollectionCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = services.validate_collection(resolve_school(request), data["student"], data["month"], data["amount"])
        return Response({
            "valid": result["valid"],
            "errors": result["errors"],
            "warnings": result["warnings"],
            "expected_amount": result["expected_amount"],
            "monthly_payment": MonthlyPaymentSerializer(result["monthly_payment"]).data,
        })

    @action(detail=False, methods=["post"])
    def collect(self, request):
        serializer = CollectFeeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = services.collect_fee(
            resolve_school(request),
            data["student"],
            data["month"],
            data["amount"],
            data["payment_method"],
            collected_by=request.user,
            remarks=data["remarks"],
            ip_address=_client_ip(request),
            device_info=request.META.get("HTTP_USER_AGENT", ""),
        )
        return Response({
            "transaction": FeeTransactionSerializer(result["transaction"]).data,
            "record": StudentFeeRecordSerializer(result["record"]).data,
            "warnings": result["warnings"],
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def transactions(self, request):
        params = request.query_params
        end = parse_date(params["end_date"], "end_date") if params.get("end_date") else today()
        start = parse_date(params["start_date"], "start_date") if params.get("start_date") else end
        if end < start:
            raise ValidationError({"end_date": "End date cannot be before start date"})
        qs = services.accountant_transactions(resolve_school(request), request.user, start, end)
        return Response(FeeTransactionSerializer(qs, many=True).data)

    @action(detail=False, methods=["get"], url_path="daily-summary")
    def daily_summary(self, request):
        d = request.query_params.get("date")
        on = parse_date(d) if d else today()
        return Response(services.daily_summary(resolve_school(request), request.user, on))

    @action(detail=False, methods=["get"])
    def dashboard(self, request):
        return Response(services.dashboard(resolve_school(request)))

    @action(detail=False, methods=["get"])
    def students(self, request):
        params = request.query_params
        school = resolve_school(request)
        return Response(services.students_with_fee_status(school, int_param(params, "grade"), params.get("section")))

    @action(detail=False, methods=["get"], url_path=r"receipt/(?P<transaction_id>[\w-]+)")
    def receipt(self, request, transaction_id=None):
        return Response(services.receipt(resolve_school(request), transaction_id))
