from datetime import time

import pytest
from django.db import IntegrityError, transaction
from rest_framework.exceptions import ValidationError

from academics.models import Subject
from core.dates import current_academic_year
from core.exceptions import Conflict
from scheduling import services
from scheduling.models import Period, Schedule

pytestmark = pytest.mark.django_db

YEAR = current_academic_year()


def _periods(subject, teacher, numbers=(1, 2)):
    return [
        {
            "period_number": n,
            "subject": subject.id,
            "teacher": teacher.id,
            "start_time": f"{8 + n:02d}:00",
            "end_time": f"{8 + n:02d}:45",
        }
        for n in numbers
    ]


def _payload(subject, teacher, grade=7, section="A", day="monday", numbers=(1, 2)):
    return {
        "grade": grade,
        "section": section,
        "academic_year": YEAR,
        "day_of_week": day,
        "periods": _periods(subject, teacher, numbers),
    }


@pytest.fixture
def schedule(school, subject, teacher):
    data = {
        "grade": 7,
        "section": "A",
        "academic_year": YEAR,
        "day_of_week": "monday",
        "periods": [
            {"period_number": 1, "subject": subject.id, "teacher": teacher.id,
             "start_time": time(9, 0), "end_time": time(9, 45)},
            {"period_number": 2, "is_break": True, "start_time": time(9, 45), "end_time": time(10, 0)},
        ],
    }
    return services.create_schedule(school, data)


def test_create_schedule(client_for, school_admin, subject, teacher):
    resp = client_for(school_admin).post("/api/schedules/", _payload(subject, teacher), format="json")
    assert resp.status_code == 201
    body = resp.json()
    assert body["class_name"] == "Grade 7 - Section A"
    assert [p["period_number"] for p in body["periods"]] == [1, 2]
    assert body["periods"][0]["teacher"]["teacher_id"] == teacher.teacher_id


def test_duplicate_day_for_class_conflicts(client_for, school_admin, subject, teacher, other_teacher):
    client = client_for(school_admin)
    assert client.post("/api/schedules/", _payload(subject, teacher), format="json").status_code == 201
    resp = client.post("/api/schedules/", _payload(subject, other_teacher), format="json")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Schedule already exists for Grade 7 Section A on monday"


def test_teacher_double_booking_conflicts(client_for, school_admin, subject, teacher):
    client = client_for(school_admin)
    assert client.post("/api/schedules/", _payload(subject, teacher), format="json").status_code == 201
    resp = client.post("/api/schedules/", _payload(subject, teacher, section="B", numbers=(2,)), format="json")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Teacher has a conflict on monday period 2"
    assert Schedule.objects.count() == 1


def test_same_period_other_day_is_fine(client_for, school_admin, subject, teacher):
    client = client_for(school_admin)
    client.post("/api/schedules/", _payload(subject, teacher), format="json")
    resp = client.post("/api/schedules/", _payload(subject, teacher, section="B", day="tuesday"), format="json")
    assert resp.status_code == 201


def test_non_break_period_needs_teacher(client_for, school_admin, subject):
    payload = {
        "grade": 7, "section": "A", "academic_year": YEAR, "day_of_week": "monday",
        "periods": [{"period_number": 1, "subject": subject.id, "start_time": "09:00", "end_time": "09:45"}],
    }
    assert client_for(school_admin).post("/api/schedules/", payload, format="json").status_code == 400


def test_end_time_must_follow_start_time(client_for, school_admin, subject, teacher):
    payload = _payload(subject, teacher, numbers=(1,))
    payload["periods"][0]["end_time"] = "08:30"
    assert client_for(school_admin).post("/api/schedules/", payload, format="json").status_code == 400


def test_subject_from_other_school_is_not_found(client_for, school_admin, other_school, teacher):
    foreign = Subject.objects.create(school=other_school, name="Physics", code="PHY")
    resp = client_for(school_admin).post("/api/schedules/", _payload(foreign, teacher), format="json")
    assert resp.status_code == 404


def test_update_does_not_conflict_with_itself(client_for, school_admin, schedule, subject, teacher):
    resp = client_for(school_admin).patch(
        f"/api/schedules/{schedule.id}/", {"periods": _periods(subject, teacher, numbers=(1, 3))}, format="json"
    )
    assert resp.status_code == 200
    assert list(schedule.periods.values_list("period_number", flat=True)) == [1, 3]


def test_update_detects_conflict_with_other_schedule(school, schedule, subject, teacher):
    other = services.create_schedule(school, {
        "grade": 7, "section": "B", "academic_year": YEAR, "day_of_week": "monday",
        "periods": [{"period_number": 3, "subject": subject.id, "teacher": teacher.id,
                     "start_time": time(11, 0), "end_time": time(11, 45)}],
    })
    with pytest.raises(Conflict):
        services.update_schedule(other, {"periods": [
            {"period_number": 1, "subject": subject.id, "teacher": teacher.id,
             "start_time": time(9, 0), "end_time": time(9, 45)},
        ]})


def test_delete_is_soft(client_for, school_admin, schedule):
    resp = client_for(school_admin).delete(f"/api/schedules/{schedule.id}/")
    assert resp.status_code == 200
    assert resp.json()["detail"] == "Schedule deleted successfully"
    schedule.refresh_from_db()
    assert schedule.is_active is False


def test_inactive_schedule_frees_teacher(school, schedule, subject, teacher):
    services.delete_schedule(schedule)
    assert not services.teacher_has_conflict(teacher.id, school, YEAR, "monday", 1)


def test_weekly_timetable(client_for, teacher, schedule):
    resp = client_for(teacher.user).get("/api/schedules/weekly/", {"grade": 7, "section": "a"})
    assert resp.status_code == 200
    days = resp.json()["days"]
    assert [p["period_number"] for p in days["monday"]] == [1, 2]
    assert days["monday"][1]["is_break"] is True
    assert days["tuesday"] == []


def test_teacher_workload(client_for, teacher, schedule):
    resp = client_for(teacher.user).get("/api/schedules/teacher-me/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_periods"] == 1
    assert body["periods_per_day"]["monday"] == 1
    assert body["classes"] == ["7A"]
    assert body["subjects"] == ["Mathematics"]
    assert body["utilization"] == round(1 / 30 * 100, 2)


def test_substitute_assignment(client_for, school_admin, schedule, other_teacher):
    resp = client_for(school_admin).post(
        f"/api/schedules/{schedule.id}/substitute/",
        {"period_number": 1, "substitute_teacher": other_teacher.id, "reason": "sick leave"},
        format="json",
    )
    assert resp.status_code == 200
    assert Period.objects.get(schedule=schedule, period_number=1).teacher_id == other_teacher.id


def test_substitute_on_break_is_rejected(schedule, other_teacher):
    with pytest.raises(ValidationError):
        services.assign_substitute(schedule, 2, other_teacher.id)


def test_substitute_with_conflict(school, schedule, subject, other_teacher):
    services.create_schedule(school, {
        "grade": 8, "section": "B", "academic_year": YEAR, "day_of_week": "monday",
        "periods": [{"period_number": 1, "subject": subject.id, "teacher": other_teacher.id,
                     "start_time": time(9, 0), "end_time": time(9, 45)}],
    })
    with pytest.raises(Conflict):
        services.assign_substitute(schedule, 1, other_teacher.id)


def test_bulk_create_is_all_or_nothing(client_for, school_admin, subject, teacher):
    items = [
        _payload(subject, teacher, day="monday"),
        _payload(subject, teacher, section="B", day="monday"),
    ]
    resp = client_for(school_admin).post("/api/schedules/bulk/", {"schedules": items}, format="json")
    assert resp.status_code == 409
    assert Schedule.objects.count() == 0


def test_schedule_stats(client_for, school_admin, schedule):
    resp = client_for(school_admin).get("/api/schedules/stats/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_schedules"] == 1
    assert body["by_day_of_week"] == {"monday": 1}
    assert body["teacher_utilization"][0]["total_periods"] == 1
    assert body["subject_distribution"][0]["classes_count"] == 1


def test_teacher_cannot_write_schedules(client_for, teacher, subject):
    resp = client_for(teacher.user).post("/api/schedules/", _payload(subject, teacher), format="json")
    assert resp.status_code == 403


# ---- academic years and reactivation ----

def _next_year():
    start = int(YEAR.split("-")[0]) + 1
    return f"{start}-{start + 1}"


def test_teacher_is_free_in_another_academic_year(school, schedule, subject, teacher):
    nxt = services.create_schedule(school, {
        "grade": 7, "section": "A", "academic_year": _next_year(), "day_of_week": "monday",
        "periods": [{"period_number": 1, "subject": subject.id, "teacher": teacher.id,
                     "start_time": time(9, 0), "end_time": time(9, 45)}],
    })
    assert nxt.academic_year == _next_year()
    assert services.teacher_has_conflict(teacher.id, school, YEAR, "monday", 1)


def test_reactivation_refused_when_day_is_taken(client_for, school_admin, school, schedule, subject, other_teacher):
    services.delete_schedule(schedule)
    services.create_schedule(school, {
        "grade": 7, "section": "A", "academic_year": YEAR, "day_of_week": "monday",
        "periods": [{"period_number": 1, "subject": subject.id, "teacher": other_teacher.id,
                     "start_time": time(9, 0), "end_time": time(9, 45)}],
    })
    resp = client_for(school_admin).patch(f"/api/schedules/{schedule.id}/", {"is_active": True}, format="json")
    assert resp.status_code == 409
    schedule.refresh_from_db()
    assert schedule.is_active is False


def test_reactivation_refused_when_teacher_is_booked(school, schedule, subject, teacher):
    services.delete_schedule(schedule)
    services.create_schedule(school, {
        "grade": 8, "section": "B", "academic_year": YEAR, "day_of_week": "monday",
        "periods": [{"period_number": 1, "subject": subject.id, "teacher": teacher.id,
                     "start_time": time(9, 0), "end_time": time(9, 45)}],
    })
    with pytest.raises(Conflict):
        services.update_schedule(schedule, {"is_active": True})
    schedule.refresh_from_db()
    assert schedule.is_active is False


def test_reactivation_when_nothing_clashes(school, schedule):
    services.delete_schedule(schedule)
    services.update_schedule(schedule, {"is_active": True})
    schedule.refresh_from_db()
    assert schedule.is_active is True


def test_database_keeps_one_active_schedule_per_class_day(school, schedule):
    with pytest.raises(IntegrityError), transaction.atomic():
        Schedule.objects.create(
            school=school, school_class=schedule.school_class, grade=7, section="A",
            academic_year=YEAR, day_of_week="monday",
        )


def test_inactive_copies_of_a_class_day_are_allowed(school, schedule):
    services.delete_schedule(schedule)
    Schedule.objects.create(
        school=school, school_class=schedule.school_class, grade=7, section="A",
        academic_year=YEAR, day_of_week="monday", is_active=False,
    )
    Schedule.objects.create(
        school=school, school_class=schedule.school_class, grade=7, section="A",
        academic_year=YEAR, day_of_week="monday",
    )
    assert Schedule.objects.filter(grade=7, section="A", day_of_week="monday").count() == 3


def test_workload_and_stats_default_to_current_year(client_for, school_admin, school, schedule, subject, teacher):
    services.create_schedule(school, {
        "grade": 7, "section": "A", "academic_year": _next_year(), "day_of_week": "tuesday",
        "periods": [{"period_number": 1, "subject": subject.id, "teacher": teacher.id,
                     "start_time": time(9, 0), "end_time": time(9, 45)}],
    })
    workload = services.teacher_workload(teacher)
    assert workload["academic_year"] == YEAR
    assert workload["total_periods"] == 1
    assert workload["periods_per_day"]["tuesday"] == 0

    stats = client_for(school_admin).get("/api/schedules/stats/").json()
    assert stats["academic_year"] == YEAR
    assert stats["total_schedules"] == 1
    assert stats["by_day_of_week"] == {"monday": 1}

    later = client_for(school_admin).get("/api/schedules/stats/", {"academic_year": _next_year()}).json()
    assert later["total_schedules"] == 1
    assert later["by_day_of_week"] == {"tuesday": 1}


# ---- malformed filters ----

def test_non_numeric_grade_filter_is_a_bad_request(client_for, school_admin, schedule):
    resp = client_for(school_admin).get("/api/schedules/", {"grade": "abc"})
    assert resp.status_code == 400
    assert "grade" in resp.json()


def test_weekly_with_non_numeric_grade(client_for, school_admin, schedule):
    resp = client_for(school_admin).get("/api/schedules/weekly/", {"grade": "seven", "section": "A"})
    assert resp.status_code == 400


def test_teacher_timetable_with_non_numeric_id(client_for, school_admin):
    assert client_for(school_admin).get("/api/schedules/teacher/abc/").status_code == 404


def test_superadmin_with_non_numeric_school(client_for, superadmin):
    resp = client_for(superadmin).get("/api/schedules/stats/", {"school": "abc"})
    assert resp.status_code == 400
    assert "school" in resp.json()


def test_school_with_schedules_cannot_be_deleted(client_for, superadmin, school, schedule):
    resp = client_for(superadmin).delete(f"/api/schools/{school.id}/")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Cannot delete school with existing teachers (1), schedules (1)"
