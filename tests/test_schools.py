import pytest

from accounts.models import User
from schools.models import Organization, School

pytestmark = pytest.mark.django_db


def test_superadmin_creates_school_with_admin(client_for, superadmin, organization):
    resp = client_for(superadmin).post(
        "/api/schools/", {"organization": organization.id, "name": "sunrise academy"}, format="json"
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["school"]["name"] == "Sunrise Academy"
    username = body["credentials"]["username"]
    assert username.startswith("sunadmin") and len(username) == len("sunadmin") + 3

    admin = User.objects.get(username=username)
    assert admin.role == "admin"
    assert admin.school_id == body["school"]["id"]
    assert admin.check_password(body["credentials"]["password"])


def test_school_name_is_unique_per_organization_ignoring_case(client_for, superadmin, school):
    resp = client_for(superadmin).post(
        "/api/schools/", {"organization": school.organization_id, "name": "GREEN VALLEY HIGH"}, format="json"
    )
    assert resp.status_code == 409


def test_cannot_create_school_for_inactive_organization(client_for, superadmin):
    org = Organization.objects.create(name="Dormant", status="inactive")
    resp = client_for(superadmin).post("/api/schools/", {"organization": org.id, "name": "Quiet School"}, format="json")
    assert resp.status_code == 400


def test_school_admin_sees_only_own_school(client_for, school_admin, other_school):
    client = client_for(school_admin)
    assert client.get(f"/api/schools/{school_admin.school_id}/").status_code == 200
    assert client.get(f"/api/schools/{other_school.id}/").status_code == 404
    assert client.get("/api/schools/").status_code == 403


def test_school_admin_cannot_change_status(client_for, school_admin):
    resp = client_for(school_admin).patch(
        f"/api/schools/{school_admin.school_id}/", {"status": "inactive"}, format="json"
    )
    assert resp.status_code == 400
    assert School.objects.get(pk=school_admin.school_id).status == "active"


def test_reset_admin_password(client_for, superadmin, school, school_admin):
    resp = client_for(superadmin).put(
        f"/api/schools/{school.id}/reset-password/", {"new_password": "reset1234"}, format="json"
    )
    assert resp.status_code == 200
    assert resp.json()["username"] == school_admin.username
    school_admin.refresh_from_db()
    assert school_admin.check_password("reset1234")


def test_organization_with_schools_cannot_be_deleted(client_for, superadmin, school):
    resp = client_for(superadmin).delete(f"/api/organizations/{school.organization_id}/")
    assert resp.status_code == 409
    assert Organization.objects.filter(pk=school.organization_id).exists()


def test_school_with_data_cannot_be_deleted(client_for, superadmin, school, student):
    resp = client_for(superadmin).delete(f"/api/schools/{school.id}/")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Cannot delete school with existing students (1), parents (1)"
    assert School.objects.filter(pk=school.id).exists()


def test_empty_school_can_be_deleted(client_for, superadmin, other_school):
    assert client_for(superadmin).delete(f"/api/schools/{other_school.id}/").status_code == 204
    assert not School.objects.filter(pk=other_school.id).exists()


def test_non_numeric_organization_filter(client_for, superadmin, school):
    resp = client_for(superadmin).get("/api/schools/", {"organization": "abc"})
    assert resp.status_code == 400
    assert "organization" in resp.json()


def test_active_organizations_are_public(api_client, organization):
    Organization.objects.create(name="Closed", status="inactive")
    resp = api_client.get("/api/organizations/active/")
    assert resp.status_code == 200
    assert [o["name"] for o in resp.json()] == ["Green Valley Trust"]


def test_system_stats(client_for, superadmin, school, school_admin, teacher):
    resp = client_for(superadmin).get("/api/superadmin/stats/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["organizations"] == 1
    assert body["schools_by_status"] == {"active": 1}
    assert body["users_by_role"]["admin"] == 1
    assert body["users_by_role"]["teacher"] == 1


def test_system_stats_requires_superadmin(client_for, school_admin):
    assert client_for(school_admin).get("/api/superadmin/stats/").status_code == 403


def test_api_root(api_client):
    resp = api_client.get("/api/")
    assert resp.status_code == 200
    assert resp.json()["success"] is True
