from django.contrib import admin
from django.shortcuts import render
from django.urls import path, include

from apps.analytics.views import analytics_dashboard
from apps.common.views import dashboard, healthz, landing_page


def custom_404(request, exception):
    return render(request, '404.html', status=404)


def custom_500(request):
    return render(request, '500.html', status=500)


def custom_403(request, exception):
    return render(request, '403.html', status=403)


urlpatterns = [
    path("admin/", admin.site.urls),
    path("", landing_page, name="landing"),
    path("dashboard/", dashboard, name="dashboard"),
    path("analytics/", analytics_dashboard, name="analytics_dashboard"),
    path("healthz/", healthz, name="healthz"),
    path(
        "api/",
        include([
            path("healthz/", healthz, name="api-healthz"),
            path("", include("apps.users.api.urls")),
            path("", include("apps.projects.api.urls")),
            path("", include("apps.analytics.api.urls")),
        ])
    ),
]

# Error handlers
handler404 = custom_404
handler500 = custom_500
handler403 = custom_403
