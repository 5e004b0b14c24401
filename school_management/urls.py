from django.contrib import admin
from django.urls import include, path

from core.views import ApiRootView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", ApiRootView.as_view(), name="api-root"),
    path("api/auth/", include("accounts.urls")),
    path("api/", include("schools.urls")),
    path("api/", include("academics.urls")),
    path("api/", include("scheduling.urls")),
    path("api/", include("attendance.urls")),
    path("api/fees/", include("fees.urls")),
]
