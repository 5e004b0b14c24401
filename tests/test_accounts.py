from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone

from accounts.credentials import generate_password, unique_username
from accounts.models import User

pytestmark = pytest.mark.django_db


def _login(client, username, password):
    return client.post("/api/auth/login/", {"username": username, "password": password}, format="json")


def test_login_returns_tokens_and_user(api_client, school_admin):
    resp = _login(api_client, "  GVHADMIN001 ", "adminpass123")
    assert resp.status_code == 200
    body = resp.json()
    assert body["access"] and body["refresh"]
    assert body["user"]["role"] == "admin"
    assert body["user"]["school"] == school_admin.school_id


def test_login_wrong_password(api_client, school_admin):
    resp = _login(api_client, "gvhadmin001", "nope")
    assert resp.status_code == 401


def test_login_inactive_user_is_refused(api_client, school_admin):
    school_admin.is_active = False
    school_admin.save()
    resp = _login(api_client, "gvhadmin001", "adminpass123")
    assert resp.status_code == 401


def test_login_refused_when_school_inactive(api_client, school_admin):
    school = school_admin.school
    school.status = "suspended"
    school.save()
    resp = _login(api_client, "gvhadmin001", "adminpass123")
    assert resp.status_code == 403


def test_token_rejected_after_password_change(api_client, school_admin):
    access = _login(api_client, "gvhadmin001", "adminpass123").json()["access"]
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    assert api_client.get("/api/auth/me/").status_code == 200

    User.objects.filter(pk=school_admin.pk).update(password_changed_at=timezone.now() + timedelta(minutes=1))
    resp = api_client.get("/api/auth/me/")
    assert resp.status_code == 401


def test_token_rejected_for_deactivated_user(api_client, school_admin):
    access = _login(api_client, "gvhadmin001", "adminpass123").json()["access"]
    User.objects.filter(pk=school_admin.pk).update(is_active=False)
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    assert api_client.get("/api/auth/me/").status_code == 401


def test_change_password(client_for, school_admin):
    client = client_for(school_admin)
    resp = client.post(
        "/api/auth/change-password/",
        {"old_password": "adminpass123", "new_password": "brandnew99"},
        format="json",
    )
    assert resp.status_code == 200
    school_admin.refresh_from_db()
    assert school_admin.check_password("brandnew99")
    assert school_admin.password_changed_at is not None


def test_change_password_wrong_old_password(client_for, school_admin):
    resp = client_for(school_admin).post(
        "/api/auth/change-password/",
        {"old_password": "wrong", "new_password": "brandnew99"},
        format="json",
    )
    assert resp.status_code == 400
    assert "old_password" in resp.json()


def test_me_includes_teacher_profile(client_for, teacher, subject):
    resp = client_for(teacher.user).get("/api/auth/me/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["teacher"]["teacher_id"] == "TCH-2024-001"
    assert body["teacher"]["subjects"] == [{"id": subject.id, "name": "Mathematics"}]
    assert body["school_name"] == "Green Valley High"


def test_admin_registers_accountant_in_own_school(client_for, school_admin, other_school):
    resp = client_for(school_admin).post("/api/auth/register/", {
        "username": "Books",
        "password": "secret123",
        "role": "accountant",
        "school": other_school.id,
    }, format="json")
    assert resp.status_code == 201
    user = User.objects.get(username="books")
    assert user.school_id == school_admin.school_id


def test_admin_cannot_register_admin(client_for, school_admin):
    resp = client_for(school_admin).post("/api/auth/register/", {
        "username": "another", "password": "secret123", "role": "admin",
    }, format="json")
    assert resp.status_code == 400


def test_teacher_cannot_register_users(client_for, teacher):
    resp = client_for(teacher.user).post("/api/auth/register/", {
        "username": "x", "password": "secret123", "role": "student",
    }, format="json")
    assert resp.status_code == 403


def test_generated_password_has_every_character_class():
    for _ in range(20):
        pw = generate_password()
        assert len(pw) == 8
        assert any(c.isupper() for c in pw)
        assert any(c.islower() for c in pw)
        assert any(c.isdigit() for c in pw)
        assert any(not c.isalnum() for c in pw)


def test_unique_username_adds_suffix(school):
    User.objects.create_user("student_x", "pw123456", school=school)
    User.objects.create_user("student_x1", "pw123456", school=school)
    assert unique_username("student_y") == "student_y"
    assert unique_username("student_x") == "student_x2"


def test_create_superadmin_command_is_idempotent():
    call_command("create_superadmin")
    call_command("create_superadmin")
    admin = User.objects.get(username="superadmin")
    assert admin.role == "superadmin"
    assert admin.school_id is None
    assert admin.is_superuser
