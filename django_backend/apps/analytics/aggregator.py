"""
Dashboard figures for one identity.

Everything is computed by the document store with ``$group`` pipelines over
the projects the identity owns or belongs to, and the tasks in those projects
or assigned to / reported by the identity. Queries are bounded by a client
side timeout. With snapshot reads enabled they share one snapshot session so
the counts agree with each other; otherwise they are eventually consistent.
"""
import contextlib
import logging
import math
from datetime import datetime, timedelta, timezone

import pymongo
from django.conf import settings

from apps.common import mongo
from apps.projects.documents import (
    Priority,
    ProjectStatus,
    TaskStatus,
    serialize_project,
    serialize_task,
    utcnow,
)
from apps.projects.repositories import ProjectRepository, TaskRepository

logger = logging.getLogger(__name__)

PROJECT_STATUS_COLORS = {
    ProjectStatus.ACTIVE.value: "#8884d8",
    ProjectStatus.COMPLETED.value: "#82ca9d",
    ProjectStatus.ARCHIVED.value: "#ffc658",
}

TASK_STATUS_COLORS = {
    TaskStatus.TODO.value: "#ff7300",
    TaskStatus.IN_PROGRESS.value: "#387908",
    TaskStatus.REVIEW.value: "#ff7f0e",
    TaskStatus.DONE.value: "#2ca02c",
}

PRIORITY_COLORS = {
    Priority.CRITICAL.value: "#d62728",
    Priority.HIGH.value: "#d62728",
    Priority.MEDIUM.value: "#ff7f0e",
    Priority.LOW.value: "#2ca02c",
}


def round_half_up(value):
    return int(math.floor(value + 0.5))


def completion_rate(done, total):
    """Percentage of done tasks with one decimal, or exactly "0" when there are no tasks."""
    if not total:
        return "0"
    return f"{done / total * 100:.1f}"


def _counts(rows, key):
    counts = {}
    for row in rows:
        value = row["_id"].get(key)
        counts[value] = counts.get(value, 0) + row["count"]
    return counts


class AnalyticsAggregator:
    def __init__(self, projects=None, tasks=None, clock=None, timeout=None, snapshot=None):
        conf = settings.ANALYTICS
        self.projects = projects or ProjectRepository()
        self.tasks = tasks or TaskRepository()
        self.clock = clock or utcnow
        self.timeout = timeout if timeout is not None else conf["QUERY_TIMEOUT_SECONDS"]
        self.snapshot = conf["SNAPSHOT_READS"] if snapshot is None else snapshot
        self.trend_days = conf["TREND_DAYS"]
        self.recent_projects = conf["RECENT_PROJECTS"]
        self.recent_tasks = conf["RECENT_TASKS"]

    def _session(self):
        if self.snapshot:
            return mongo.get_client().start_session(snapshot=True)
        return contextlib.nullcontext()

    def build(self, identity):
        now = self.clock()
        with self._session() as session, pymongo.timeout(self.timeout):
            project_ids = self.projects.accessible_ids(identity, session=session)
            project_scope = {"_id": {"$in": project_ids}}
            task_scope = TaskRepository.visibility_filter(identity, project_ids)

            projects = self._project_figures(project_scope, session)
            tasks = self._task_figures(task_scope, now, session)
            recent = self._recent(project_scope, task_scope, session)
            productivity = self._productivity(task_scope, now, session)

        logger.debug(
            "Analytics for %s: %d projects, %d tasks", identity, projects["total"], tasks["total"]
        )
        result = {
            "projects": projects,
            "tasks": tasks,
            "recent": recent,
            "productivity": productivity,
            "charts": self._charts(projects, tasks),
            "consistency": "snapshot" if self.snapshot else "eventual",
            "generated_at": now.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        return result

    def _project_figures(self, scope, session):
        rows = self.projects.aggregate([
            {"$match": scope},
            {"$group": {
                "_id": {"status": "$status", "priority": "$priority"},
                "count": {"$sum": 1},
                "progress": {"$sum": "$progress"},
            }},
        ], session=session)

        total = sum(row["count"] for row in rows)
        progress = sum(row["progress"] or 0 for row in rows)
        by_status = _counts(rows, "status")
        return {
            "total": total,
            "active": by_status.get(ProjectStatus.ACTIVE.value, 0),
            "completed": by_status.get(ProjectStatus.COMPLETED.value, 0),
            "archived": by_status.get(ProjectStatus.ARCHIVED.value, 0),
            "average_progress": round_half_up(progress / total) if total else 0,
            "by_priority": _counts(rows, "priority"),
        }

    def _task_figures(self, scope, now, session):
        rows = self.tasks.aggregate([
            {"$match": scope},
            {"$group": {
                "_id": {"status": "$status", "priority": "$priority"},
                "count": {"$sum": 1},
            }},
        ], session=session)
        overdue = self.tasks.count({"$and": [
            scope,
            {"due_date": {"$ne": None, "$lt": now}},
            {"status": {"$ne": TaskStatus.DONE.value}},
        ]}, session=session)

        total = sum(row["count"] for row in rows)
        by_status = _counts(rows, "status")
        done = by_status.get(TaskStatus.DONE.value, 0)
        return {
            "total": total,
            "todo": by_status.get(TaskStatus.TODO.value, 0),
            "in_progress": by_status.get(TaskStatus.IN_PROGRESS.value, 0),
            "review": by_status.get(TaskStatus.REVIEW.value, 0),
            "done": done,
            "overdue": overdue,
            "completion_rate": completion_rate(done, total),
            "by_priority": _counts(rows, "priority"),
        }

    def _recent(self, project_scope, task_scope, session):
        projects = self.projects.recent(project_scope, self.recent_projects, session=session)
        tasks = self.tasks.recent(task_scope, self.recent_tasks, session=session)
        names = {
            p["_id"]: p
            for p in self.projects.get_many({t.get("project_id") for t in tasks}, {"name": 1}, session=session)
        }
        return {
            "projects": [serialize_project(p) for p in projects],
            "tasks": [serialize_task(t, project=names.get(t.get("project_id"))) for t in tasks],
        }

    def _productivity(self, scope, now, session):
        today = datetime(now.year, now.month, now.day)
        start = today - timedelta(days=self.trend_days - 1)
        rows = self.tasks.aggregate([
            {"$match": {"$and": [scope, {"updated_at": {"$gte": start}}]}},
            {"$group": {
                "_id": {
                    "year": {"$year": "$updated_at"},
                    "month": {"$month": "$updated_at"},
                    "day": {"$dayOfMonth": "$updated_at"},
                    "status": "$status",
                },
                "count": {"$sum": 1},
                "hours": {"$sum": {"$ifNull": ["$actual_hours", 0]}},
            }},
        ], session=session)

        days = {}
        for row in rows:
            key = (row["_id"]["year"], row["_id"]["month"], row["_id"]["day"])
            entry = days.setdefault(key, {"completed": 0, "hours": 0.0})
            if row["_id"]["status"] == TaskStatus.DONE.value:
                entry["completed"] += row["count"]
            entry["hours"] += row["hours"] or 0

        series = []
        for offset in range(self.trend_days):
            day = start + timedelta(days=offset)
            entry = days.get((day.year, day.month, day.day), {"completed": 0, "hours": 0.0})
            series.append({
                "date": day.date().isoformat(),
                "tasks_completed": entry["completed"],
                "hours_logged": round(float(entry["hours"]), 2),
            })
        return series

    def _charts(self, projects, tasks):
        priority_totals = {}
        for counts in (projects["by_priority"], tasks["by_priority"]):
            for priority, count in counts.items():
                priority_totals[priority] = priority_totals.get(priority, 0) + count

        return {
            "project_status": [
                {"name": status.label, "value": projects[status.value], "color": PROJECT_STATUS_COLORS[status.value]}
                for status in ProjectStatus
            ],
            "task_status": [
                {"name": status.label, "value": tasks[status.value], "color": TASK_STATUS_COLORS[status.value]}
                for status in TaskStatus
            ],
            "priority_distribution": [
                {
                    "name": str(priority).capitalize(),
                    "value": count,
                    "color": PRIORITY_COLORS.get(priority, PRIORITY_COLORS[Priority.LOW.value]),
                }
                for priority, count in priority_totals.items()
                if priority
            ],
        }


def build_analytics(identity, **kwargs):
    return AnalyticsAggregator(**kwargs).build(identity)
