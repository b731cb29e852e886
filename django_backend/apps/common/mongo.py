"""
Process-wide document store connection.

The client is created on first use and reused for the lifetime of the
process; PyMongo clients are thread-safe and pool their own connections.
"""
import logging
import threading

from django.conf import settings
from django.utils.module_loading import import_string
from pymongo import ASCENDING, DESCENDING, IndexModel

logger = logging.getLogger(__name__)

PROJECTS = "projects"
TASKS = "tasks"

INDEXES = {
    PROJECTS: [
        IndexModel([("organization_id", ASCENDING), ("status", ASCENDING)]),
        IndexModel([("owner_id", ASCENDING)]),
        IndexModel([("team_members", ASCENDING)]),
        IndexModel([("updated_at", DESCENDING)]),
    ],
    TASKS: [
        IndexModel([("project_id", ASCENDING), ("status", ASCENDING)]),
        IndexModel([("assignee_id", ASCENDING)]),
        IndexModel([("reporter_id", ASCENDING)]),
        IndexModel([("due_date", ASCENDING)]),
        IndexModel([("updated_at", DESCENDING)]),
    ],
}

_client = None
_lock = threading.Lock()


def get_client():
    global _client
    if _client is None:
        with _lock:
            if _client is None:
                conf = settings.MONGODB
                client_class = import_string(conf["CLIENT_CLASS"])
                _client = client_class(conf["URI"], **conf.get("OPTIONS", {}))
                logger.info("Document store client created for database %s", conf["NAME"])
    return _client


def get_database():
    return get_client()[settings.MONGODB["NAME"]]


def get_collection(name):
    return get_database()[name]


def drop_database():
    """Remove every document. Used by tests and the seed command's --flush."""
    get_client().drop_database(settings.MONGODB["NAME"])


def ensure_indexes():
    created = []
    for collection_name, indexes in INDEXES.items():
        names = get_collection(collection_name).create_indexes(indexes)
        created.extend(f"{collection_name}.{name}" for name in names)
    logger.info("Ensured %d document store indexes", len(created))
    return created


def ping():
    return get_database().command("ping")
