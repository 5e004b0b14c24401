from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import FeeCollectionViewSet, FeeStructureViewSet

router = DefaultRouter()
router.include_root_view = False
router.register('structures', FeeStructureViewSet)
router.register('collection', FeeCollectionViewSet, basename='fee-collection')

urlpatterns = [
    path('', include(router.urls)),
]
