import logging

from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied
from django.shortcuts import render

from apps.analytics.aggregator import build_analytics
from apps.common.authorization import resolve_permissions
from apps.users.models import Permission

logger = logging.getLogger(__name__)


def _bar_width(value, total):
    return int(round(value * 100 / total)) if total else 0


@login_required
def analytics_dashboard(request):
    """Server-rendered analytics for the signed-in identity."""
    access = resolve_permissions(request.user)
    if not access.has(Permission.VIEW_ANALYTICS):
        logger.info("Analytics page denied for %s", access.identity)
        raise PermissionDenied("Insufficient permissions")

    analytics = build_analytics(access.identity)
    charts = [
        ("Project status", analytics["charts"]["project_status"]),
        ("Task status", analytics["charts"]["task_status"]),
        ("Priority distribution", analytics["charts"]["priority_distribution"]),
    ]
    for _, series in charts:
        total = sum(item["value"] for item in series)
        for item in series:
            item["width"] = _bar_width(item["value"], total)

    max_completed = max((d["tasks_completed"] for d in analytics["productivity"]), default=0)
    for day in analytics["productivity"]:
        day["width"] = _bar_width(day["tasks_completed"], max_completed)

    return render(request, "analytics/dashboard.html", {"analytics": analytics, "charts": charts, "access": access})
