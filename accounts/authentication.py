from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed


class SchoolJWTAuthentication(JWTAuthentication):
    """
    Bearer JWT authentication that also rejects tokens issued before the
    user's last password change.
    """

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        if not user.is_active:
            raise AuthenticationFailed(
                "Your account has been deactivated. Please contact support.",
                code="user_inactive",
            )
        if user.password_changed_after(validated_token.get("iat")):
            raise AuthenticationFailed(
                "Password was recently changed. Please login again.",
                code="password_changed",
            )
        return user
