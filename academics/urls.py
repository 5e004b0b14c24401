from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    MyChildrenViewSet,
    ParentViewSet,
    SchoolClassViewSet,
    SchoolStatsView,
    StudentViewSet,
    SubjectViewSet,
    TeacherViewSet,
)

router = DefaultRouter()
router.include_root_view = False
router.register('subjects', SubjectViewSet)
router.register('teachers', TeacherViewSet)
router.register('classes', SchoolClassViewSet)
router.register('students', StudentViewSet)
router.register('parents', ParentViewSet)
router.register('parent/children', MyChildrenViewSet, basename='parent-children')

urlpatterns = [
    path('', include(router.urls)),
    path('admin/stats/', SchoolStatsView.as_view(), name='school-stats'),
]
