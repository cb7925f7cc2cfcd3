"""Durable queue of pending sync operations.

One document per task: enqueueing replaces whatever was pending for the
task in a single ``find_one_and_replace`` so two intents for the same task
never coexist. The ``task_id`` index is unique as a backstop.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument

from tasksync.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

OPERATIONS = ("create", "update", "delete")
DEFAULT_RETRY_CEILING = 3


@dataclass
class QueueItem:
    id: str
    task_id: str
    operation: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: Any = None
    retry_count: int = 0
    error_message: Optional[str] = None

    @classmethod
    def from_doc(cls, doc):
        return cls(
            id=doc["id"],
            task_id=doc["task_id"],
            operation=doc["operation"],
            data=dict(doc.get("data") or {}),
            created_at=doc.get("created_at"),
            retry_count=int(doc.get("retry_count", 0)),
            error_message=doc.get("error_message"),
        )


class SyncQueue:
    def __init__(self, db, retry_ceiling=DEFAULT_RETRY_CEILING, collection="sync_queue"):
        self.collection = db[collection]
        self.retry_ceiling = retry_ceiling
        self.collection.create_index("task_id", unique=True)
        self.collection.create_index("id", unique=True)
        self.collection.create_index([("created_at", ASCENDING), ("id", ASCENDING)])

    def enqueue(self, task_id, operation, snapshot) -> QueueItem:
        """Replace any pending operation for ``task_id`` with a fresh one."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown sync operation: {operation}")
        doc = {
            # ObjectId hex sorts by creation order within a process
            "id": str(ObjectId()),
            "task_id": task_id,
            "operation": operation,
            "data": dict(snapshot or {}),
            "created_at": utcnow(),
            "retry_count": 0,
            "error_message": None,
        }
        self.collection.find_one_and_replace({"task_id": task_id}, doc, upsert=True)
        logger.debug("Queued %s for task %s", operation, task_id)
        return QueueItem.from_doc(doc)

    def drain(self, limit, exclude_ids=()) -> List[QueueItem]:
        """Oldest eligible items first, at most ``limit`` of them."""
        query = {"retry_count": {"$lt": self.retry_ceiling}}
        if exclude_ids:
            query["id"] = {"$nin": list(exclude_ids)}
        cursor = (
            self.collection.find(query)
            .sort([("created_at", ASCENDING), ("id", ASCENDING)])
            .limit(int(limit))
        )
        return [QueueItem.from_doc(doc) for doc in cursor]

    def get(self, task_id) -> Optional[QueueItem]:
        doc = self.collection.find_one({"task_id": task_id})
        return QueueItem.from_doc(doc) if doc else None

    def mark_synced(self, task_id, item_id=None) -> bool:
        """Remove the item for ``task_id``.

        With ``item_id`` only that exact item goes, so an operation queued
        while a batch was in flight is kept.
        """
        query = {"task_id": task_id}
        if item_id is not None:
            query["id"] = item_id
        return self.collection.delete_one(query).deleted_count > 0

    def mark_failed(self, item_id, error_message) -> Optional[int]:
        """Record a failed attempt and return the new retry count.

        Returns None when the item is gone (synced or superseded).
        """
        doc = self.collection.find_one_and_update(
            {"id": item_id},
            {"$inc": {"retry_count": 1}, "$set": {"error_message": error_message}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        return int(doc["retry_count"])

    def pending_count(self) -> int:
        return self.collection.count_documents({})

    def failed_items(self) -> List[QueueItem]:
        cursor = self.collection.find({"retry_count": {"$gte": self.retry_ceiling}}).sort(
            "created_at", ASCENDING
        )
        return [QueueItem.from_doc(doc) for doc in cursor]
