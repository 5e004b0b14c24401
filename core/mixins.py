from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from schools.models import School


def is_superadmin(user) -> bool:
    return getattr(user, "role", None) == "superadmin"


def int_param(params, name):
    """Optional integer from query params or payload; non-numeric is a 400."""
    value = params.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({name: f"{name} must be a number"})


def resolve_school(request, school_id=None):
    """
    School a request acts on. Superadmins name it explicitly (payload or
    ?school=); everybody else is pinned to their own school.
    """
    user = request.user
    if not is_superadmin(user):
        if not user.school_id:
            raise PermissionDenied("No school association found for this user")
        return user.school

    if not school_id and hasattr(request.data, "get"):
        school_id = int_param(request.data, "school")
    school_id = school_id or int_param(request.query_params, "school")
    if not school_id:
        raise ValidationError({"school": "School ID is required"})
    school = School.objects.filter(pk=school_id).first()
    if school is None:
        raise NotFound(f"School not found with ID: {school_id}")
    return school


class SchoolScopedMixin:
    """
    Restricts a viewset's queryset to the caller's school.

    Superadmins see every school, optionally narrowed with ?school=<id>.
    """

    school_field = "school"

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if is_superadmin(user):
            school_id = int_param(self.request.query_params, "school")
            if school_id:
                qs = qs.filter(**{f"{self.school_field}_id": school_id})
            return qs
        if not user.school_id:
            return qs.none()
        return qs.filter(**{f"{self.school_field}_id": user.school_id})

    def get_school(self):
        return resolve_school(self.request)

    def perform_create(self, serializer):
        serializer.save(**{self.school_field: self.get_school()})
