from enum import Enum
from typing import Dict, Any, Optional

from apps.common.events import publish_event
from apps.common.kafka.topics import PROJECT_EVENTS_TOPIC, TASK_EVENTS_TOPIC


class ProjectEventType(Enum):
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"


class TaskEventType(Enum):
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    TASK_ASSIGNED = "task_assigned"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_COMPLETED = "task_completed"


def publish_project_event(event_type: ProjectEventType, actor_id: str, project: Dict[str, Any],
                          extra: Optional[Dict[str, Any]] = None) -> bool:
    data = {
        'project_id': str(project['_id']),
        'name': project.get('name'),
        'organization_id': project.get('organization_id'),
        **(extra or {}),
    }
    return publish_event(PROJECT_EVENTS_TOPIC, event_type.value, actor_id, data, key=data['project_id'])


def publish_task_event(event_type: TaskEventType, actor_id: str, task: Dict[str, Any],
                       extra: Optional[Dict[str, Any]] = None) -> bool:
    data = {
        'task_id': str(task['_id']),
        'project_id': str(task.get('project_id')),
        'title': task.get('title'),
        'status': task.get('status'),
        **(extra or {}),
    }
    # Keyed by project so a project's task events stay ordered
    return publish_event(TASK_EVENTS_TOPIC, event_type.value, actor_id, data, key=data['project_id'])


def publish_task_changes(actor_id: str, before: Dict[str, Any], after: Dict[str, Any]):
    """Publishes the update plus assignment and status transitions it contains"""
    publish_task_event(TaskEventType.TASK_UPDATED, actor_id, after)

    if before.get('assignee_id') != after.get('assignee_id') and after.get('assignee_id'):
        publish_task_event(
            TaskEventType.TASK_ASSIGNED, actor_id, after, {'assignee_id': after['assignee_id']}
        )

    if before.get('status') != after.get('status'):
        publish_task_event(
            TaskEventType.TASK_STATUS_CHANGED, actor_id, after,
            {'from': before.get('status'), 'to': after.get('status')}
        )
        if after.get('status') == 'done':
            publish_task_event(TaskEventType.TASK_COMPLETED, actor_id, after)
