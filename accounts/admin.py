from django import forms
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.forms import ReadOnlyPasswordHashField

from .models import User


class SchoolUserCreationForm(forms.ModelForm):
    password = forms.CharField(label="Password", widget=forms.PasswordInput, min_length=6)
    confirm = forms.CharField(label="Confirm password", widget=forms.PasswordInput)

    class Meta:
        model = User
        fields = ("username", "email", "first_name", "last_name", "role", "school")

    def clean_username(self):
        return self.cleaned_data["username"].strip().lower()

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("password") != cleaned.get("confirm"):
            self.add_error("confirm", "Passwords don't match")
        role, school = cleaned.get("role"), cleaned.get("school")
        if role == "superadmin" and school:
            self.add_error("school", "Superadmins are not attached to a school")
        elif role and role != "superadmin" and not school:
            self.add_error("school", "School is required for this role")
        return cleaned

    def save(self, commit=True):
        user = super().save(commit=False)
        user.set_password(self.cleaned_data["password"])
        if commit:
            user.save()
        return user


class SchoolUserChangeForm(forms.ModelForm):
    password = ReadOnlyPasswordHashField()

    class Meta:
        model = User
        fields = "__all__"


@admin.register(User)
class SchoolUserAdmin(BaseUserAdmin):
    add_form = SchoolUserCreationForm
    form = SchoolUserChangeForm
    list_display = ("username", "full_name", "role", "school", "is_active", "password_changed_at")
    list_filter = ("role", "is_active", "school")
    list_select_related = ("school",)
    search_fields = ("username", "email", "phone", "first_name", "last_name")
    ordering = ("school", "role", "username")
    readonly_fields = ("date_joined", "last_login", "password_changed_at")

    fieldsets = (
        (None, {"fields": ("username", "password")}),
        ("Profile", {"fields": ("first_name", "last_name", "email", "phone")}),
        ("Access", {"fields": ("role", "school", "is_active", "is_staff", "is_superuser")}),
        ("History", {"fields": ("date_joined", "last_login", "password_changed_at")}),
    )
    add_fieldsets = (
        (None, {
            "classes": ("wide",),
            "fields": ("username", "first_name", "last_name", "email", "role", "school", "password", "confirm"),
        }),
    )
    filter_horizontal = ()
