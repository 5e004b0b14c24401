from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import OrganizationViewSet, SchoolViewSet, SystemStatsView

router = DefaultRouter()
router.include_root_view = False
router.register('organizations', OrganizationViewSet)
router.register('schools', SchoolViewSet)

urlpatterns = [
    path('superadmin/stats/', SystemStatsView.as_view(), name='system-stats'),
    path('', include(router.urls)),
]
