from rest_framework.permissions import BasePermission, SAFE_METHODS

SCHOOL_ADMIN_ROLES = ('superadmin', 'admin')


def _role(request):
    user = request.user
    if not (user and user.is_authenticated):
        return None
    return getattr(user, 'role', None)


class IsSuperadmin(BasePermission):
    message = 'Superadmin access required.'

    def has_permission(self, request, view):
        return _role(request) == 'superadmin'


class IsSchoolAdmin(BasePermission):
    """School admins and superadmins."""
    message = 'Access denied. Insufficient permissions.'

    def has_permission(self, request, view):
        return _role(request) in SCHOOL_ADMIN_ROLES


class IsSchoolAdminOrReadOnly(BasePermission):
    """Authenticated users can read. Only admin/superadmin can write."""
    message = 'Access denied. Insufficient permissions.'

    def has_permission(self, request, view):
        role = _role(request)
        if role is None:
            return False
        if request.method in SAFE_METHODS:
            return True
        return role in SCHOOL_ADMIN_ROLES


def HasRole(*roles):
    """Permission class admitting only the given roles."""

    class _HasRole(BasePermission):
        message = 'Access denied. Insufficient permissions.'

        def has_permission(self, request, view):
            return _role(request) in roles

    _HasRole.__name__ = 'HasRole_' + '_'.join(roles)
    return _HasRole
