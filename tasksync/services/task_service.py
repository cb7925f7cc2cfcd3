"""Local task store.

Owns the ``tasks`` collection and its timestamp / sync fields. Every user
mutation leaves the task ``pending`` and queues exactly one sync operation.
"""
import uuid
from datetime import timedelta
from typing import List, Optional

from pymongo import DESCENDING, ReturnDocument

from tasksync.models.task_model import (
    SYNC_ERROR,
    SYNC_PENDING,
    SYNC_STATUSES,
    SYNC_SYNCED,
    UPDATABLE_FIELDS,
    Task,
)
from tasksync.utils.timeutil import utcnow

# Never rewritten once the task exists
IMMUTABLE_FIELDS = ("id", "_id", "created_at")


class TaskService:
    def __init__(self, db, queue=None, collection="tasks"):
        self.collection = db[collection]
        self.queue = queue
        self.collection.create_index("sync_status")

    def _enqueue(self, task_id, operation, snapshot):
        if self.queue is not None:
            self.queue.enqueue(task_id, operation, snapshot)

    def create_task(self, title, description=None) -> Task:
        now = utcnow()
        task = Task(
            id=str(uuid.uuid4()),
            title=title,
            description=description or "",
            created_at=now,
            updated_at=now,
            sync_status=SYNC_PENDING,
        )
        self.collection.insert_one(task.to_doc())
        self._enqueue(task.id, "create", task.to_dict())
        return task

    def _next_timestamp(self, task_id):
        """A mutation time strictly after the task's current updated_at.

        Returns None when the task is missing or soft-deleted.
        """
        doc = self.collection.find_one({"_id": task_id, "is_deleted": False}, {"updated_at": 1})
        if doc is None:
            return None
        now = utcnow()
        previous = doc.get("updated_at")
        if previous is not None and now <= previous:
            now = previous + timedelta(milliseconds=1)
        return now

    def update_task(self, task_id, updates) -> Optional[Task]:
        now = self._next_timestamp(task_id)
        if now is None:
            return None
        changes = {k: v for k, v in (updates or {}).items() if k in UPDATABLE_FIELDS}
        for flag in ("completed", "is_deleted"):
            if flag in changes:
                changes[flag] = bool(changes[flag])
        changes["updated_at"] = now
        changes["sync_status"] = SYNC_PENDING

        doc = self.collection.find_one_and_update(
            {"_id": task_id, "is_deleted": False},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        task = Task.from_dict(doc)
        self._enqueue(task.id, self._update_operation(task), task.to_dict())
        return task

    def _update_operation(self, task: Task) -> str:
        # The remote has never seen a task whose create is still queued.
        if self.queue is not None and not task.server_id:
            pending = self.queue.get(task.id)
            if pending is not None and pending.operation == "create":
                return "create"
        return "update"

    def delete_task(self, task_id) -> bool:
        now = self._next_timestamp(task_id)
        if now is None:
            return False
        doc = self.collection.find_one_and_update(
            {"_id": task_id, "is_deleted": False},
            {"$set": {"is_deleted": True, "updated_at": now, "sync_status": SYNC_PENDING}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return False
        self._enqueue(task_id, "delete", {"id": task_id, "updated_at": now})
        return True

    def get_task(self, task_id) -> Optional[Task]:
        doc = self.collection.find_one({"_id": task_id, "is_deleted": False})
        return Task.from_dict(doc) if doc else None

    def list_tasks(self) -> List[Task]:
        cursor = self.collection.find({"is_deleted": False}).sort("created_at", DESCENDING)
        return [Task.from_dict(d) for d in cursor]

    def tasks_needing_sync(self) -> List[Task]:
        cursor = self.collection.find({"sync_status": {"$in": [SYNC_PENDING, SYNC_ERROR]}})
        return [Task.from_dict(d) for d in cursor]

    # Contract used by the sync engine. These never queue anything.

    def find_task(self, task_id) -> Optional[Task]:
        """Like get_task, but soft-deleted tasks are returned too."""
        doc = self.collection.find_one({"_id": task_id})
        return Task.from_dict(doc) if doc else None

    def update_task_fields(self, task_id, fields) -> Optional[Task]:
        known = Task.field_names()
        changes = {
            k: v for k, v in (fields or {}).items() if k in known and k not in IMMUTABLE_FIELDS
        }
        if not changes:
            return self.find_task(task_id)
        doc = self.collection.find_one_and_update(
            {"_id": task_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return Task.from_dict(doc) if doc else None

    def mark_sync_status(self, task_id, status) -> Optional[Task]:
        if status not in SYNC_STATUSES:
            raise ValueError(f"Unknown sync status: {status}")
        return self.update_task_fields(task_id, {"sync_status": status})

    def last_synced_at(self):
        doc = self.collection.find_one(
            {"sync_status": SYNC_SYNCED, "last_synced_at": {"$ne": None}},
            sort=[("last_synced_at", DESCENDING)],
        )
        return doc["last_synced_at"] if doc else None
