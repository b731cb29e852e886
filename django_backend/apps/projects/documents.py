"""
Project and task documents.

Documents are plain dicts as returned by PyMongo. Datetimes are stored as
naive UTC and converted to aware values on the way out.
"""
from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId
from django.db import models


class ProjectStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"
    ARCHIVED = "archived", "Archived"


class TaskStatus(models.TextChoices):
    TODO = "todo", "To Do"
    IN_PROGRESS = "in_progress", "In Progress"
    REVIEW = "review", "Review"
    DONE = "done", "Done"


class Priority(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    CRITICAL = "critical", "Critical"


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_storage(value):
    """Normalize an incoming datetime to naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_storage(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def parse_object_id(value):
    """ObjectId for ``value`` or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_project(doc):
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name", ""),
        "description": doc.get("description", ""),
        "status": doc.get("status", ProjectStatus.ACTIVE),
        "priority": doc.get("priority", Priority.MEDIUM),
        "organization_id": doc.get("organization_id"),
        "owner_id": doc.get("owner_id"),
        "team_members": list(doc.get("team_members", [])),
        "start_date": from_storage(doc.get("start_date")),
        "end_date": from_storage(doc.get("end_date")),
        "progress": doc.get("progress", 0),
        "tags": list(doc.get("tags", [])),
        "settings": doc.get("settings", {}),
        "created_at": from_storage(doc.get("created_at")),
        "updated_at": from_storage(doc.get("updated_at")),
    }


def serialize_task(doc, project=None, dependencies=None):
    data = {
        "id": str(doc["_id"]),
        "title": doc.get("title", ""),
        "description": doc.get("description", ""),
        "status": doc.get("status", TaskStatus.TODO),
        "priority": doc.get("priority", Priority.MEDIUM),
        "project_id": str(doc["project_id"]) if doc.get("project_id") else None,
        "assignee_id": doc.get("assignee_id"),
        "reporter_id": doc.get("reporter_id"),
        "due_date": from_storage(doc.get("due_date")),
        "estimated_hours": doc.get("estimated_hours"),
        "actual_hours": doc.get("actual_hours"),
        "dependencies": [str(dep) for dep in doc.get("dependencies", [])],
        "tags": list(doc.get("tags", [])),
        "attachments": list(doc.get("attachments", [])),
        "created_at": from_storage(doc.get("created_at")),
        "updated_at": from_storage(doc.get("updated_at")),
    }
    if project is not None:
        data["project"] = {"id": str(project["_id"]), "name": project.get("name", "")}
    if dependencies is not None:
        data["dependency_details"] = [
            {"id": str(dep["_id"]), "title": dep.get("title", ""), "status": dep.get("status")}
            for dep in dependencies
        ]
    return data
