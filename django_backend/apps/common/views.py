import logging

from django.contrib.auth.decorators import login_required
from django.db import DatabaseError, connection
from django.shortcuts import render
from pymongo.errors import PyMongoError
from rest_framework import permissions, status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from apps.common import mongo
from apps.common.authorization import resolve_permissions
from apps.common.responses import envelope
from apps.projects.documents import Priority, TaskStatus, serialize_task
from apps.projects.repositories import TaskRepository

logger = logging.getLogger(__name__)


def landing_page(request):
    """Landing page for visitors without a session"""
    if request.user.is_authenticated:
        return dashboard(request)
    return render(request, "landing.html")


@login_required
def dashboard(request):
    """Tasks assigned to the signed-in identity"""
    access = resolve_permissions(request.user)
    tasks = TaskRepository()
    mine = {"assignee_id": access.identity}

    rows = tasks.aggregate([
        {"$match": mine},
        {"$group": {"_id": {"status": "$status", "priority": "$priority"}, "count": {"$sum": 1}}},
    ])
    by_status = {value: 0 for value in TaskStatus.values}
    by_priority = {value: 0 for value in Priority.values}
    for row in rows:
        by_status[row["_id"]["status"]] = by_status.get(row["_id"]["status"], 0) + row["count"]
        by_priority[row["_id"]["priority"]] = by_priority.get(row["_id"]["priority"], 0) + row["count"]

    context = {
        "access": access,
        "stats": {"total": sum(by_status.values()), **by_status},
        "priority_stats": by_priority,
        "recent_tasks": [serialize_task(t) for t in tasks.recent(mine, 5)],
    }
    return render(request, "dashboard.html", context)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([permissions.AllowAny])
def healthz(request):
    checks = {}
    try:
        connection.ensure_connection()
        checks["relational"] = "ok"
    except DatabaseError as e:
        logger.error(f"Health check: relational store unavailable: {e}")
        checks["relational"] = "unavailable"
    try:
        mongo.ping()
        checks["document"] = "ok"
    except PyMongoError as e:
        logger.error(f"Health check: document store unavailable: {e}")
        checks["document"] = "unavailable"

    healthy = all(value == "ok" for value in checks.values())
    body = envelope(success=healthy, data={"status": "healthy" if healthy else "degraded", "checks": checks})
    return Response(body, status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE)
