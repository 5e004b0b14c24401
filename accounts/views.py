import logging

from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .permissions import IsSchoolAdmin
from .serializers import (
    ChangePasswordSerializer,
    RegisterUserSerializer,
    SchoolTokenObtainPairSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


class LoginView(TokenObtainPairView):
    serializer_class = SchoolTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'


class RefreshView(TokenRefreshView):
    pass


class MeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        user = request.user
        data = UserSerializer(user).data
        data['full_name'] = user.full_name
        data['school_name'] = user.school.name if user.school_id else None

        # Attach role profile (if exists)
        teacher = getattr(user, 'teacher_profile', None)
        if teacher:
            data['teacher'] = {
                'id': teacher.id,
                'teacher_id': teacher.teacher_id,
                'subjects': list(teacher.subjects.values('id', 'name')),
            }
        student = getattr(user, 'student_profile', None)
        if student:
            data['student'] = {
                'id': student.id,
                'student_id': student.student_id,
                'grade': student.grade,
                'section': student.section,
            }
        parent = getattr(user, 'parent_profile', None)
        if parent:
            data['parent'] = {
                'id': parent.id,
                'parent_id': parent.parent_id,
                'children': list(parent.children.values_list('id', flat=True)),
            }
        return Response(data)


class ChangePasswordView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = request.user
        user.set_password(serializer.validated_data['new_password'])
        user.save(update_fields=['password', 'password_changed_at'])
        logger.info('Password changed for user %s', user.username)
        return Response({'ok': True, 'detail': 'Password changed. Please login again.'})


class RegisterUserView(generics.CreateAPIView):
    permission_classes = [permissions.IsAuthenticated, IsSchoolAdmin]
    serializer_class = RegisterUserSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info('User %s (%s) registered by %s', user.username, user.role, request.user.username)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
