from rest_framework.response import Response
from rest_framework.views import APIView

from apps.analytics.aggregator import build_analytics
from apps.common.api import ServiceViewMixin
from apps.users.models import Permission


class AnalyticsView(ServiceViewMixin, APIView):
    rate_limit_scope = "analytics"
    rate_limits = {"GET": 30}
    required_permissions = {"GET": Permission.VIEW_ANALYTICS}

    def get(self, request):
        return Response(build_analytics(self.access.identity))
