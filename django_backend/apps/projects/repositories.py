"""
Document store access for projects and tasks.

Repositories only know how to read and write documents. Who may do what is
decided in apps.common.authorization before any of these methods run.
"""
import logging
import re

from pymongo import DESCENDING, ReturnDocument

from apps.common import mongo

from .documents import ProjectStatus, Priority, TaskStatus, parse_object_id, utcnow

logger = logging.getLogger(__name__)


def session_kwargs(session):
    return {"session": session} if session is not None else {}


def search_filter(fields, term):
    pattern = re.compile(re.escape(term), re.IGNORECASE)
    return {"$or": [{field: pattern} for field in fields]}


class DocumentRepository:
    collection_name = None

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def collection(self):
        if self._collection is not None:
            return self._collection
        return mongo.get_collection(self.collection_name)

    def get(self, document_id, session=None):
        oid = parse_object_id(document_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid}, **session_kwargs(session))

    def get_many(self, ids, projection=None, session=None):
        oids = [oid for oid in (parse_object_id(i) for i in ids) if oid is not None]
        if not oids:
            return []
        return list(self.collection.find({"_id": {"$in": oids}}, projection, **session_kwargs(session)))

    def page(self, query, page=1, limit=10, sort=("created_at", DESCENDING)):
        """One page of matching documents plus the total match count."""
        total = self.collection.count_documents(query)
        cursor = self.collection.find(query).sort(*sort).skip((page - 1) * limit).limit(limit)
        return list(cursor), total

    def recent(self, query, limit, projection=None, session=None):
        cursor = self.collection.find(query, projection, **session_kwargs(session))
        return list(cursor.sort("updated_at", DESCENDING).limit(limit))

    def count(self, query, session=None):
        return self.collection.count_documents(query, **session_kwargs(session))

    def aggregate(self, pipeline, session=None):
        return list(self.collection.aggregate(pipeline, **session_kwargs(session)))

    def update(self, document_id, changes):
        """Apply ``changes`` and return the updated document, or None if it no longer exists."""
        oid = parse_object_id(document_id)
        if oid is None:
            return None
        changes = dict(changes, updated_at=utcnow())
        return self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, document_id):
        oid = parse_object_id(document_id)
        if oid is None:
            return False
        return self.collection.delete_one({"_id": oid}).deleted_count == 1


class ProjectRepository(DocumentRepository):
    collection_name = mongo.PROJECTS

    @staticmethod
    def member_filter(external_id):
        """Projects owned by or shared with ``external_id``."""
        return {"$or": [{"owner_id": external_id}, {"team_members": external_id}]}

    def accessible_ids(self, external_id, session=None):
        cursor = self.collection.find(self.member_filter(external_id), {"_id": 1}, **session_kwargs(session))
        return [doc["_id"] for doc in cursor]

    def list_for(self, external_id, filters=None, page=1, limit=10, include_all=False):
        clauses = [] if include_all else [self.member_filter(external_id)]
        filters = filters or {}
        if filters.get("status"):
            clauses.append({"status": filters["status"]})
        if filters.get("priority"):
            clauses.append({"priority": filters["priority"]})
        if filters.get("search"):
            clauses.append(search_filter(["name", "description"], filters["search"]))
        query = {"$and": clauses} if clauses else {}
        return self.page(query, page=page, limit=limit)

    def create(self, data, owner_id, organization_id):
        now = utcnow()
        doc = {
            "name": data["name"],
            "description": data.get("description", ""),
            "status": ProjectStatus.ACTIVE.value,
            "priority": data.get("priority", Priority.MEDIUM.value),
            "organization_id": organization_id,
            "owner_id": owner_id,
            "team_members": list(data.get("team_members", [])),
            "start_date": data.get("start_date") or now,
            "end_date": data.get("end_date"),
            "progress": 0,
            "tags": list(data.get("tags", [])),
            "settings": data.get("settings", {}),
            "created_at": now,
            "updated_at": now,
        }
        doc["_id"] = self.collection.insert_one(doc).inserted_id
        logger.info("Project %s created by %s", doc["_id"], owner_id)
        return doc


class TaskRepository(DocumentRepository):
    collection_name = mongo.TASKS

    @staticmethod
    def visibility_filter(external_id, project_ids):
        """Tasks the identity works on directly or that belong to one of ``project_ids``."""
        return {"$or": [
            {"project_id": {"$in": list(project_ids)}},
            {"assignee_id": external_id},
            {"reporter_id": external_id},
        ]}

    def list_for(self, external_id, project_ids, filters=None, page=1, limit=10, include_all=False):
        clauses = [] if include_all else [self.visibility_filter(external_id, project_ids)]
        filters = filters or {}
        for field in ("status", "priority", "assignee_id"):
            if filters.get(field):
                clauses.append({field: filters[field]})
        if filters.get("project_id"):
            clauses.append({"project_id": parse_object_id(filters["project_id"])})
        if filters.get("search"):
            clauses.append(search_filter(["title", "description"], filters["search"]))
        query = {"$and": clauses} if clauses else {}
        return self.page(query, page=page, limit=limit)

    def create(self, data, reporter_id):
        now = utcnow()
        doc = {
            "title": data["title"],
            "description": data.get("description", ""),
            "status": TaskStatus.TODO.value,
            "priority": data.get("priority", Priority.MEDIUM.value),
            "project_id": parse_object_id(data["project_id"]),
            "assignee_id": data.get("assignee_id"),
            "reporter_id": reporter_id,
            "due_date": data.get("due_date"),
            "estimated_hours": data.get("estimated_hours"),
            "actual_hours": None,
            "dependencies": [parse_object_id(dep) for dep in data.get("dependencies", [])],
            "tags": list(data.get("tags", [])),
            "attachments": list(data.get("attachments", [])),
            "created_at": now,
            "updated_at": now,
        }
        doc["_id"] = self.collection.insert_one(doc).inserted_id
        logger.info("Task %s created by %s in project %s", doc["_id"], reporter_id, doc["project_id"])
        return doc

    def delete_for_project(self, project_id):
        oid = parse_object_id(project_id)
        if oid is None:
            return 0
        return self.collection.delete_many({"project_id": oid}).deleted_count
