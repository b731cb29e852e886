from django.urls import reverse
from rest_framework import status

from apps.common.kafka.topics import PROJECT_EVENTS_TOPIC, TASK_EVENTS_TOPIC
from apps.common.tests.helpers import TaskflowAPITestCase, make_identity
from apps.projects.repositories import ProjectRepository, TaskRepository
from apps.users.models import RoleName

MISSING_ID = "64b7f0000000000000000000"


class ProjectTestCase(TaskflowAPITestCase):
    def setUp(self):
        super().setUp()
        make_identity("user_alice", RoleName.MANAGER, organization=self.organization)
        make_identity("user_bob", RoleName.MANAGER, organization=self.organization)
        make_identity("user_carol", RoleName.MEMBER, organization=self.organization)
        make_identity("user_root", RoleName.ADMIN, organization=self.organization)

    def create_project(self, owner="user_alice", **data):
        self.authenticate(owner)
        body = {"name": "Apollo", "priority": "high", **data}
        response = self.client.post(reverse("projects-list"), body, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data["data"]

    def create_task(self, project_id, reporter="user_alice", **data):
        self.authenticate(reporter)
        body = {"title": "Write docs", "priority": "medium", "project_id": project_id, **data}
        response = self.client.post(reverse("tasks-list"), body, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data["data"]


class ProjectAPITest(ProjectTestCase):
    def test_create_defaults(self):
        project = self.create_project(description="Moon", tags=["space"])
        self.assertEqual(project["owner_id"], "user_alice")
        self.assertEqual(project["status"], "active")
        self.assertEqual(project["progress"], 0)
        self.assertEqual(project["organization_id"], str(self.organization.pk))
        self.assertTrue(project["created_at"].endswith("Z"))

        events = self.events.get_events(PROJECT_EVENTS_TOPIC)
        self.assertEqual(events[-1]["event_type"], "project_created")

    def test_member_can_create(self):
        project = self.create_project(owner="user_carol", name="Side quest")
        self.assertEqual(project["owner_id"], "user_carol")

    def test_unregistered_caller_creates_in_default_organization(self):
        project = self.create_project(owner="user_newcomer")
        self.assertEqual(project["organization_id"], "default")

    def test_validation(self):
        self.authenticate("user_alice")
        cases = [
            ({"priority": "low"}, "name:"),
            ({"name": "X" * 101, "priority": "low"}, "name:"),
            ({"name": "X", "priority": "urgent"}, "priority:"),
            ({"name": "X", "priority": "low", "start_date": "2024-05-02T00:00:00Z",
              "end_date": "2024-05-01T00:00:00Z"}, "end_date:"),
        ]
        for body, prefix in cases:
            response = self.client.post(reverse("projects-list"), body, format="json")
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, body)
            self.assertTrue(response.data["error"].startswith(prefix), response.data["error"])

    def test_team_member_scenario(self):
        project = self.create_project()
        url = reverse("projects-detail", args=[project["id"]])

        self.authenticate("user_bob")
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "Project not found")

        self.authenticate("user_alice")
        response = self.client.put(url, {"team_members": ["user_bob", "user_bob"]}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["team_members"], ["user_bob"])

        self.authenticate("user_bob")
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["status"], "active")

    def test_team_member_cannot_update_or_delete(self):
        project = self.create_project(team_members=["user_bob"])
        url = reverse("projects-detail", args=[project["id"]])
        self.authenticate("user_bob")

        response = self.client.put(url, {"progress": 50}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"], "Insufficient permissions")

        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update(self):
        project = self.create_project()
        self.authenticate("user_alice")
        response = self.client.put(
            reverse("projects-detail", args=[project["id"]]),
            {"status": "completed", "progress": 100},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["status"], "completed")
        self.assertEqual(response.data["data"]["progress"], 100)

    def test_invalid_progress(self):
        project = self.create_project()
        self.authenticate("user_alice")
        response = self.client.put(reverse("projects-detail", args=[project["id"]]), {"progress": 101}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(response.data["error"].startswith("progress:"))

    def test_unknown_and_malformed_ids(self):
        self.authenticate("user_alice")
        for pk in (MISSING_ID, "not-an-id"):
            response = self.client.get(reverse("projects-detail", args=[pk]))
            self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_owner_delete_cascades_tasks(self):
        project = self.create_project(team_members=["user_carol"])
        self.create_task(project["id"])
        self.create_task(project["id"], reporter="user_carol")

        self.authenticate("user_alice")
        response = self.client.delete(reverse("projects-detail", args=[project["id"]]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"], {"message": "Project deleted successfully", "deleted_tasks": 2})
        self.assertEqual(TaskRepository().count({}), 0)
        self.assertIsNone(ProjectRepository().get(project["id"]))

    def test_list_is_scoped_and_filtered(self):
        self.create_project(name="Apollo")
        self.create_project(name="Gemini", priority="low", team_members=["user_bob"])
        self.create_project(owner="user_bob", name="Mercury")

        self.authenticate("user_alice")
        response = self.client.get(reverse("projects-list"))
        self.assertEqual({p["name"] for p in response.data["data"]["items"]}, {"Apollo", "Gemini"})

        response = self.client.get(reverse("projects-list"), {"priority": "low"})
        self.assertEqual([p["name"] for p in response.data["data"]["items"]], ["Gemini"])

        self.authenticate("user_bob")
        response = self.client.get(reverse("projects-list"), {"search": "gEm"})
        self.assertEqual([p["name"] for p in response.data["data"]["items"]], ["Gemini"])

        self.authenticate("user_root")
        response = self.client.get(reverse("projects-list"), {"limit": 2, "page": 2})
        self.assertEqual(len(response.data["data"]["items"]), 1)
        self.assertEqual(response.data["data"]["pagination"], {"page": 2, "limit": 2, "total": 3, "pages": 2})


class TaskAPITest(ProjectTestCase):
    def setUp(self):
        super().setUp()
        self.project = self.create_project(team_members=["user_carol"])

    def test_create(self):
        task = self.create_task(self.project["id"], assignee_id="user_carol", due_date="2030-01-01T12:00:00+02:00")
        self.assertEqual(task["reporter_id"], "user_alice")
        self.assertEqual(task["status"], "todo")
        self.assertEqual(task["due_date"], "2030-01-01T10:00:00Z")
        self.assertEqual(task["project"], {"id": self.project["id"], "name": "Apollo"})

        types = [e["event_type"] for e in self.events.get_events(TASK_EVENTS_TOPIC)]
        self.assertEqual(types, ["task_created", "task_assigned"])

    def test_create_in_unreadable_project(self):
        self.authenticate("user_bob")
        response = self.client.post(
            reverse("tasks-list"),
            {"title": "Sneaky", "priority": "low", "project_id": self.project["id"]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "Project not found or access denied")

    def test_invalid_project_id(self):
        self.authenticate("user_alice")
        response = self.client.post(
            reverse("tasks-list"), {"title": "T", "priority": "low", "project_id": "nope"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "project_id: Invalid id")

    def test_member_assigning_others_needs_assign_permission(self):
        self.authenticate("user_carol")
        response = self.client.post(
            reverse("tasks-list"),
            {"title": "T", "priority": "low", "project_id": self.project["id"], "assignee_id": "user_alice"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post(
            reverse("tasks-list"),
            {"title": "T", "priority": "low", "project_id": self.project["id"], "assignee_id": "user_carol"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_dependencies(self):
        first = self.create_task(self.project["id"], title="First")
        second = self.create_task(self.project["id"], title="Second", dependencies=[first["id"]])

        response = self.client.get(reverse("tasks-detail", args=[second["id"]]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data["data"]["dependency_details"],
            [{"id": first["id"], "title": "First", "status": "todo"}],
        )

        response = self.client.post(
            reverse("tasks-list"),
            {"title": "Third", "priority": "low", "project_id": self.project["id"], "dependencies": [MISSING_ID]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "dependencies: Unknown task id")

        response = self.client.put(
            reverse("tasks-detail", args=[first["id"]]), {"dependencies": [first["id"]]}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "dependencies: A task cannot depend on itself")

    def test_visibility(self):
        task = self.create_task(self.project["id"])
        url = reverse("tasks-detail", args=[task["id"]])

        self.authenticate("user_carol")
        self.assertEqual(self.client.get(url).status_code, status.HTTP_200_OK)

        self.authenticate("user_bob")
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "Task not found")

    def test_assignee_outside_project_can_work_on_task(self):
        task = self.create_task(self.project["id"], assignee_id="user_bob")
        self.authenticate("user_bob")
        response = self.client.put(
            reverse("tasks-detail", args=[task["id"]]), {"status": "in_progress", "actual_hours": 2}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["status"], "in_progress")

        types = [e["event_type"] for e in self.events.get_events(TASK_EVENTS_TOPIC)]
        self.assertIn("task_status_changed", types)

    def test_completion_event(self):
        task = self.create_task(self.project["id"])
        response = self.client.put(reverse("tasks-detail", args=[task["id"]]), {"status": "done"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        types = [e["event_type"] for e in self.events.get_events(TASK_EVENTS_TOPIC)]
        self.assertEqual(types[-1], "task_completed")

    def test_move_to_unreadable_project(self):
        other = self.create_project(owner="user_bob", name="Mercury")
        task = self.create_task(self.project["id"])
        self.authenticate("user_alice")
        response = self.client.put(reverse("tasks-detail", args=[task["id"]]), {"project_id": other["id"]}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_reporter_deletes_and_assignee_cannot(self):
        task = self.create_task(self.project["id"], reporter="user_carol")
        TaskRepository().update(task["id"], {"assignee_id": "user_bob"})
        url = reverse("tasks-detail", args=[task["id"]])

        self.authenticate("user_bob")
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"], "Insufficient permissions")

        self.authenticate("user_carol")
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"], {"message": "Task deleted successfully"})
        self.assertIsNone(TaskRepository().get(task["id"]))

    def test_project_owner_deletes_reported_task(self):
        task = self.create_task(self.project["id"], reporter="user_carol")
        self.authenticate("user_alice")
        response = self.client.delete(reverse("tasks-detail", args=[task["id"]]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(TaskRepository().get(task["id"]))

    def test_team_member_cannot_delete_others_task(self):
        task = self.create_task(self.project["id"])
        self.authenticate("user_carol")
        response = self.client.delete(reverse("tasks-detail", args=[task["id"]]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertIsNotNone(TaskRepository().get(task["id"]))

    def test_list(self):
        self.create_task(self.project["id"], title="Docs", assignee_id="user_carol")
        self.create_task(self.project["id"], title="Tests", priority="high")
        other = self.create_project(owner="user_bob", name="Mercury")
        self.create_task(other["id"], reporter="user_bob", title="Hidden")
        self.create_task(other["id"], reporter="user_bob", title="Assigned", assignee_id="user_alice")

        self.authenticate("user_alice")
        response = self.client.get(reverse("tasks-list"))
        titles = {t["title"] for t in response.data["data"]["items"]}
        self.assertEqual(titles, {"Docs", "Tests", "Assigned"})
        names = {t["title"]: t["project"]["name"] for t in response.data["data"]["items"]}
        self.assertEqual(names["Assigned"], "Mercury")

        response = self.client.get(reverse("tasks-list"), {"assignee_id": "user_carol"})
        self.assertEqual([t["title"] for t in response.data["data"]["items"]], ["Docs"])

        response = self.client.get(reverse("tasks-list"), {"project_id": self.project["id"], "priority": "high"})
        self.assertEqual([t["title"] for t in response.data["data"]["items"]], ["Tests"])

        response = self.client.get(reverse("tasks-list"), {"search": "DOC"})
        self.assertEqual([t["title"] for t in response.data["data"]["items"]], ["Docs"])

        response = self.client.get(reverse("tasks-list"), {"project_id": "bad"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
