from django.utils import timezone
from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView


class ApiRootView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response(
            {
                "success": True,
                "message": "School Management System API is running!",
                "version": "1.0.0",
                "timestamp": timezone.now().isoformat(),
            }
        )
