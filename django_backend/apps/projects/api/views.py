import logging

from rest_framework import status, viewsets
from rest_framework.response import Response

from apps.common.api import ServiceViewMixin
from apps.common.authorization import (
    DELETE,
    PROJECT,
    READ,
    TASK,
    WRITE,
    authorize,
    permits,
    require_permission,
)
from apps.common.exceptions import ResourceNotFound, ValidationFailed
from apps.common.responses import paginated
from apps.projects.documents import (
    Priority,
    ProjectStatus,
    TaskStatus,
    parse_object_id,
    serialize_project,
    serialize_task,
)
from apps.projects.producer import (
    ProjectEventType,
    TaskEventType,
    publish_project_event,
    publish_task_changes,
    publish_task_event,
)
from apps.projects.repositories import ProjectRepository, TaskRepository
from apps.users.models import Permission

from .serializers import (
    ProjectCreateSerializer,
    ProjectUpdateSerializer,
    TaskCreateSerializer,
    TaskUpdateSerializer,
)

logger = logging.getLogger(__name__)


def choice_filter(params, name, choices):
    value = params.get(name)
    if value and value not in choices:
        raise ValidationFailed(f"{name}: \"{value}\" is not a valid choice.")
    return value or None


class ProjectViewSet(ServiceViewMixin, viewsets.ViewSet):
    rate_limit_scope = "projects"
    rate_limits = {"list": 100, "retrieve": 100, "create": 20, "update": 30, "partial_update": 30, "destroy": 10}
    required_permissions = {
        "list": Permission.READ_PROJECT,
    }

    projects = ProjectRepository()
    tasks = TaskRepository()

    def list(self, request):
        access = self.access
        page, limit = self.get_page_params()
        params = request.query_params
        filters = {
            "status": choice_filter(params, "status", ProjectStatus.values),
            "priority": choice_filter(params, "priority", Priority.values),
            "search": params.get("search"),
        }
        items, total = self.projects.list_for(
            access.identity, filters, page=page, limit=limit, include_all=access.is_global_admin
        )
        return Response(paginated([serialize_project(p) for p in items], total, page, limit))

    def create(self, request):
        serializer = ProjectCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        access = self.access
        organization_id = str(access.organization_id) if access.organization_id else "default"
        project = self.projects.create(serializer.validated_data, access.identity, organization_id)
        publish_project_event(ProjectEventType.PROJECT_CREATED, access.identity, project)
        return Response(serialize_project(project), status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        project = self.projects.get(pk)
        authorize(self.access, PROJECT, READ, project)
        return Response(serialize_project(project))

    def update(self, request, pk=None):
        access = self.access
        project = self.projects.get(pk)
        authorize(access, PROJECT, WRITE, project)

        serializer = ProjectUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        updated = self.projects.update(project["_id"], serializer.validated_data)
        if updated is None:
            raise ResourceNotFound("Project not found")
        publish_project_event(
            ProjectEventType.PROJECT_UPDATED, access.identity, updated,
            {"changes": sorted(serializer.validated_data)},
        )
        return Response(serialize_project(updated))

    partial_update = update

    def destroy(self, request, pk=None):
        access = self.access
        project = self.projects.get(pk)
        authorize(access, PROJECT, DELETE, project)

        removed_tasks = self.tasks.delete_for_project(project["_id"])
        self.projects.delete(project["_id"])
        logger.info(f"Project {project['_id']} deleted by {access.identity} with {removed_tasks} tasks")
        publish_project_event(ProjectEventType.PROJECT_DELETED, access.identity, project, {"deleted_tasks": removed_tasks})
        return Response({"message": "Project deleted successfully", "deleted_tasks": removed_tasks})


class TaskViewSet(ServiceViewMixin, viewsets.ViewSet):
    rate_limit_scope = "tasks"
    rate_limits = {"list": 100, "retrieve": 100, "create": 30, "update": 50, "partial_update": 50, "destroy": 20}
    required_permissions = {
        "list": Permission.READ_TASK,
        "create": Permission.CREATE_TASK,
    }

    projects = ProjectRepository()
    tasks = TaskRepository()

    def list(self, request):
        access = self.access
        page, limit = self.get_page_params()
        params = request.query_params
        filters = {
            "status": choice_filter(params, "status", TaskStatus.values),
            "priority": choice_filter(params, "priority", Priority.values),
            "assignee_id": params.get("assignee_id"),
            "project_id": params.get("project_id"),
            "search": params.get("search"),
        }
        if filters["project_id"] and parse_object_id(filters["project_id"]) is None:
            raise ValidationFailed("project_id: Invalid id")

        project_ids = [] if access.is_global_admin else self.projects.accessible_ids(access.identity)
        items, total = self.tasks.list_for(
            access.identity, project_ids, filters, page=page, limit=limit, include_all=access.is_global_admin
        )
        names = {
            p["_id"]: p
            for p in self.projects.get_many({t.get("project_id") for t in items}, {"name": 1})
        }
        data = [serialize_task(t, project=names.get(t.get("project_id"))) for t in items]
        return Response(paginated(data, total, page, limit))

    def _readable_project(self, project_id):
        project = self.projects.get(project_id)
        if not permits(self.access, PROJECT, READ, project):
            raise ResourceNotFound("Project not found or access denied")
        return project

    def _check_dependencies(self, dependencies, task_id=None):
        if not dependencies:
            return
        if task_id is not None and str(task_id) in dependencies:
            raise ValidationFailed("dependencies: A task cannot depend on itself")
        found = self.tasks.get_many(dependencies, {"_id": 1})
        if len(found) != len(dependencies):
            raise ValidationFailed("dependencies: Unknown task id")

    def _check_assignment(self, assignee_id, current=None):
        access = self.access
        if assignee_id and assignee_id != current and assignee_id != access.identity:
            require_permission(access, Permission.ASSIGN_TASK)

    def create(self, request):
        serializer = TaskCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        project = self._readable_project(data["project_id"])
        self._check_dependencies(data.get("dependencies"))
        self._check_assignment(data.get("assignee_id"))

        task = self.tasks.create(data, self.access.identity)
        publish_task_event(TaskEventType.TASK_CREATED, self.access.identity, task)
        if task.get("assignee_id"):
            publish_task_event(
                TaskEventType.TASK_ASSIGNED, self.access.identity, task, {"assignee_id": task["assignee_id"]}
            )
        return Response(serialize_task(task, project=project), status=status.HTTP_201_CREATED)

    def _load(self, pk):
        task = self.tasks.get(pk)
        project = self.projects.get(task.get("project_id")) if task else None
        return task, project

    def retrieve(self, request, pk=None):
        task, project = self._load(pk)
        authorize(self.access, TASK, READ, task, project)
        dependencies = self.tasks.get_many(task.get("dependencies", []), {"title": 1, "status": 1})
        return Response(serialize_task(task, project=project, dependencies=dependencies))

    def update(self, request, pk=None):
        access = self.access
        task, project = self._load(pk)
        authorize(access, TASK, WRITE, task, project)

        serializer = TaskUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)

        if "project_id" in changes:
            new_project = parse_object_id(changes["project_id"])
            if new_project != task.get("project_id"):
                project = self._readable_project(new_project)
            changes["project_id"] = new_project
        if "dependencies" in changes:
            self._check_dependencies(changes["dependencies"], task_id=task["_id"])
            changes["dependencies"] = [parse_object_id(dep) for dep in changes["dependencies"]]
        if "assignee_id" in changes:
            self._check_assignment(changes["assignee_id"], current=task.get("assignee_id"))

        updated = self.tasks.update(task["_id"], changes)
        if updated is None:
            raise ResourceNotFound("Task not found")
        publish_task_changes(access.identity, task, updated)
        return Response(serialize_task(updated, project=project))

    partial_update = update

    def destroy(self, request, pk=None):
        access = self.access
        task, project = self._load(pk)
        authorize(access, TASK, DELETE, task, project)

        self.tasks.delete(task["_id"])
        logger.info(f"Task {task['_id']} deleted by {access.identity}")
        publish_task_event(TaskEventType.TASK_DELETED, access.identity, task)
        return Response({"message": "Task deleted successfully"})
