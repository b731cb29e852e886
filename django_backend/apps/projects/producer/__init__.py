from .events import (
    ProjectEventType,
    TaskEventType,
    publish_project_event,
    publish_task_event,
    publish_task_changes,
)

__all__ = [
    "ProjectEventType",
    "TaskEventType",
    "publish_project_event",
    "publish_task_event",
    "publish_task_changes",
]
