from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AttendanceViewSet

router = DefaultRouter()
router.include_root_view = False
router.register('attendance', AttendanceViewSet)

urlpatterns = [
    path('', include(router.urls)),
]
