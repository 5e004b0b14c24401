import re
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.core.management import call_command
from rest_framework.exceptions import ValidationError

from academics import services as academics_services
from core.dates import academic_year_months, current_academic_year, today
from fees import services
from fees.models import FeeStructure, FeeTransaction, MonthlyPayment

pytestmark = pytest.mark.django_db

MONTHS = academic_year_months()


@pytest.fixture
def fee_structure(school, school_admin):
    return FeeStructure.objects.create(
        school=school,
        grade=7,
        academic_year=current_academic_year(),
        monthly_amount=Decimal("1000.00"),
        due_day=10,
        late_fee_amount=Decimal("50.00"),
        created_by=school_admin,
    )


@pytest.fixture
def record(student, fee_structure):
    return services.get_fee_record(student)


def _outstanding(record, month):
    return MonthlyPayment.objects.get(record=record, month=month).outstanding


def _collect(client, student, month, amount, method="cash"):
    return client.post("/api/fees/collection/collect/", {
        "student": student.id,
        "month": month,
        "amount": str(amount),
        "payment_method": method,
    }, format="json")


class TestFeeStructures:
    def test_admin_creates_structure(self, client_for, school_admin):
        resp = client_for(school_admin).post("/api/fees/structures/", {
            "grade": 5, "academic_year": "2025-2026", "monthly_amount": "750.00", "due_day": 5,
        }, format="json")
        assert resp.status_code == 201
        assert resp.json()["yearly_amount"] == "9000.00"
        assert FeeStructure.objects.get().school_id == school_admin.school_id

    def test_one_active_structure_per_grade_and_year(self, client_for, school_admin, fee_structure):
        resp = client_for(school_admin).post("/api/fees/structures/", {
            "grade": 7, "academic_year": fee_structure.academic_year, "monthly_amount": "900.00",
        }, format="json")
        assert resp.status_code == 400

    def test_bad_academic_year(self, client_for, school_admin):
        resp = client_for(school_admin).post("/api/fees/structures/", {
            "grade": 5, "academic_year": "2025-2027", "monthly_amount": "750.00",
        }, format="json")
        assert resp.status_code == 400

    def test_accountant_reads_but_cannot_write(self, client_for, accountant, fee_structure):
        client = client_for(accountant)
        assert client.get("/api/fees/structures/").status_code == 200
        resp = client.post("/api/fees/structures/", {
            "grade": 5, "academic_year": "2025-2026", "monthly_amount": "750.00",
        }, format="json")
        assert resp.status_code == 403

    def test_teacher_has_no_access(self, client_for, teacher):
        assert client_for(teacher.user).get("/api/fees/structures/").status_code == 403


class TestFeeRecord:
    def test_record_has_twelve_installments_in_academic_order(self, record):
        payments = list(record.payments.all())
        assert [p.month for p in payments] == MONTHS
        assert [p.sequence for p in payments] == list(range(12))
        assert record.total_fee_amount == Decimal("12000.00")

        start_year = int(record.academic_year[:4])
        assert payments[0].due_date == date(start_year, MONTHS[0], 10)
        assert payments[-1].due_date == date(start_year + 1, MONTHS[-1], 10)

    def test_past_installments_are_marked_overdue_with_late_fee(self, record):
        for p in record.payments.all():
            if p.due_date < today():
                assert p.status == "overdue"
                assert p.late_fee == Decimal("50.00")
            else:
                assert p.status == "pending"
                assert p.late_fee == Decimal("0")

    def test_fee_status_endpoint(self, client_for, accountant, student, fee_structure):
        resp = client_for(accountant).get(f"/api/fees/collection/students/{student.id}/status/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["student"]["student_id"] == student.student_id
        assert len(body["record"]["payments"]) == 12
        assert body["upcoming_due"]["month"] == MONTHS[0]
        assert body["recent_transactions"] == []

    def test_fee_status_without_structure(self, client_for, accountant, student):
        resp = client_for(accountant).get(f"/api/fees/collection/students/{student.id}/status/")
        assert resp.status_code == 404

    def test_student_of_other_school_is_forbidden(self, client_for, accountant, other_school, fee_structure):
        outsider, _ = academics_services.enroll_student(other_school, {
            "first_name": "Lee", "last_name": "Wong", "grade": 7, "section": "A",
            "blood_group": "O-", "dob": date(2012, 1, 1),
        })
        resp = client_for(accountant).get(f"/api/fees/collection/students/{outsider.id}/status/")
        assert resp.status_code == 403

    def test_search_student(self, client_for, accountant, student):
        resp = client_for(accountant).get("/api/fees/collection/search/", {"student_id": student.student_id})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Asha Rao"


class TestValidation:
    def test_paid_month_is_an_error(self, school, student, record):
        MonthlyPayment.objects.filter(record=record, month=MONTHS[0]).update(
            status="paid", paid_amount=Decimal("1000.00")
        )
        result = services.validate_collection(school, student.id, MONTHS[0], Decimal("100"))
        assert result["valid"] is False
        assert "This month's fee is already fully paid" in result["errors"]

    def test_waived_month_is_an_error(self, school, student, record):
        MonthlyPayment.objects.filter(record=record, month=MONTHS[1]).update(waived=True)
        result = services.validate_collection(school, student.id, MONTHS[1], Decimal("100"))
        assert result["valid"] is False
        assert "This month's fee has been waived" in result["errors"]

    def test_partial_payment_and_earlier_months_warn(self, school, student, record):
        month = MONTHS[5]
        result = services.validate_collection(school, student.id, month, Decimal("10"))
        assert result["valid"] is True
        assert any(w.startswith("Partial payment.") for w in result["warnings"])
        assert "5 previous month(s) are still pending" in result["warnings"]

    def test_over_payment_warns(self, school, student, record):
        result = services.validate_collection(school, student.id, MONTHS[0], Decimal("99999"))
        assert any(w.startswith("Amount exceeds due amount.") for w in result["warnings"])

    def test_exact_first_month_has_no_amount_warning(self, school, student, record):
        amount = _outstanding(record, MONTHS[0])
        result = services.validate_collection(school, student.id, MONTHS[0], amount)
        assert not [w for w in result["warnings"] if "Partial" in w or "exceeds" in w]
        assert not [w for w in result["warnings"] if "previous month" in w]

    def test_unknown_month(self, client_for, accountant, student, record):
        resp = client_for(accountant).post("/api/fees/collection/validate/", {
            "student": student.id, "month": 13, "amount": "10",
        }, format="json")
        assert resp.status_code == 400


class TestCollection:
    def test_collect_full_installment(self, client_for, accountant, student, record):
        amount = _outstanding(record, MONTHS[0])
        resp = _collect(client_for(accountant), student, MONTHS[0], amount)
        assert resp.status_code == 201
        body = resp.json()
        assert re.match(r"^TXN-\d{13}-[A-Z0-9]{6}$", body["transaction"]["transaction_id"])
        assert Decimal(body["record"]["total_paid_amount"]) == amount

        payment = MonthlyPayment.objects.get(record=record, month=MONTHS[0])
        assert payment.status == "paid"
        assert payment.paid_date == today()

        txn = FeeTransaction.objects.get()
        assert txn.collected_by == accountant
        assert txn.ip_address == "127.0.0.1"
        assert txn.school_id == student.school_id

    def test_paid_month_cannot_be_collected_twice(self, client_for, accountant, student, record):
        client = client_for(accountant)
        amount = _outstanding(record, MONTHS[0])
        assert _collect(client, student, MONTHS[0], amount).status_code == 201
        resp = _collect(client, student, MONTHS[0], amount)
        assert resp.status_code == 400
        assert FeeTransaction.objects.count() == 1

    def test_service_refuses_second_collection_of_paid_month(self, school, accountant, student, record):
        amount = _outstanding(record, MONTHS[0])
        services.collect_fee(school, student.pk, MONTHS[0], amount, "cash", accountant)
        with pytest.raises(ValidationError):
            services.collect_fee(school, student.pk, MONTHS[0], amount, "cash", accountant)
        assert FeeTransaction.objects.count() == 1
        assert MonthlyPayment.objects.get(record=record, month=MONTHS[0]).paid_amount == amount

    def test_split_collections_add_up_on_the_stored_installment(self, school, accountant, student, record):
        services.collect_fee(school, student.pk, MONTHS[0], Decimal("400.00"), "cash", accountant)
        services.collect_fee(school, student.pk, MONTHS[0], Decimal("600.00"), "upi", accountant)
        payment = MonthlyPayment.objects.get(record=record, month=MONTHS[0])
        assert payment.paid_amount == Decimal("1000.00")
        assert FeeTransaction.objects.count() == 2

    def test_partial_collection(self, client_for, accountant, student, record):
        resp = _collect(client_for(accountant), student, MONTHS[0], Decimal("400.00"), method="upi")
        assert resp.status_code == 201
        assert any(w.startswith("Partial payment.") for w in resp.json()["warnings"])
        payment = MonthlyPayment.objects.get(record=record, month=MONTHS[0])
        assert payment.paid_amount == Decimal("400.00")
        assert payment.status in ("partial", "overdue")
        record.refresh_from_db()
        assert record.status in ("partial", "overdue")

    def test_invalid_payment_method(self, client_for, accountant, student, record):
        resp = _collect(client_for(accountant), student, MONTHS[0], Decimal("10"), method="barter")
        assert resp.status_code == 400


class TestReports:
    @pytest.fixture
    def collected(self, client_for, accountant, student, record):
        client = client_for(accountant)
        _collect(client, student, MONTHS[0], Decimal("300.00"), method="cash")
        _collect(client, student, MONTHS[1], Decimal("200.00"), method="card")
        return client

    def test_transactions(self, collected):
        resp = collected.get("/api/fees/collection/transactions/")
        assert resp.status_code == 200
        assert sorted(t["payment_method"] for t in resp.json()) == ["card", "cash"]

    def test_daily_summary(self, collected):
        resp = collected.get("/api/fees/collection/daily-summary/")
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(str(body["total_collected"])) == Decimal("500.00")
        assert body["total_transactions"] == 2
        assert [row["payment_method"] for row in body["by_payment_method"]] == ["card", "cash"]

    def test_dashboard(self, collected):
        resp = collected.get("/api/fees/collection/dashboard/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["today_transactions"] == 2
        assert Decimal(str(body["month_collection"])) == Decimal("500.00")
        assert len(body["recent_transactions"]) == 2

    def test_students_with_fee_status(self, collected, student):
        resp = collected.get("/api/fees/collection/students/", {"grade": 7, "section": "a"})
        assert resp.status_code == 200
        rows = resp.json()
        assert [r["student_id"] for r in rows] == [student.student_id]
        assert rows[0]["fee_status"]["pending_months"] <= 12

    def test_receipt(self, collected):
        txn = FeeTransaction.objects.get(payment_method="card")
        resp = collected.get(f"/api/fees/collection/receipt/{txn.transaction_id}/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["school"]["name"] == "Green Valley High"
        assert body["month"] == MONTHS[1]
        assert body["collected_by"] == "Cal Cash"

    def test_unknown_receipt(self, collected):
        assert collected.get("/api/fees/collection/receipt/TXN-0-NOPE/").status_code == 404


def test_mark_overdue_command(student, fee_structure):
    record = services.create_fee_record(student, current_academic_year())
    record.payments.update(due_date=today() + timedelta(days=30))
    record.payments.filter(month=MONTHS[0]).update(due_date=today() - timedelta(days=1))

    call_command("mark_overdue_fees")

    first = record.payments.get(month=MONTHS[0])
    assert first.status == "overdue"
    assert first.late_fee == Decimal("50.00")
    assert record.payments.filter(status="overdue").count() == 1
    record.refresh_from_db()
    assert record.status == "overdue"
    assert record.total_due_amount == Decimal("12050.00")


def test_mark_overdue_applies_late_fee_once(student, fee_structure):
    record = services.create_fee_record(student, current_academic_year())
    record.payments.update(due_date=today() + timedelta(days=30))
    record.payments.filter(month=MONTHS[0]).update(due_date=today() - timedelta(days=1))
    assert services.mark_overdue() == 1
    assert services.mark_overdue() == 0
    assert record.payments.get(month=MONTHS[0]).late_fee == Decimal("50.00")
