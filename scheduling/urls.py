from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import ScheduleViewSet

router = DefaultRouter()
router.include_root_view = False
router.register('schedules', ScheduleViewSet)

urlpatterns = [
    path('', include(router.urls)),
]
