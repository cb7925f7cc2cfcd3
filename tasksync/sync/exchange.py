"""Remote authority side of the batch sync protocol.

The exchange keeps its own copy of every task in a database the local store
never touches. It assigns an ObjectId as the canonical (server) id and keys
lookups on the client's task id.

Request:  {"items": [{id, task_id, operation, data, created_at, retry_count}],
           "client_timestamp": ...}
Response: {"processed_items": [{client_id, server_id, status,
           resolved_data?, error?}]}
"""
import logging

from pymongo import ReturnDocument

from tasksync.utils.db import serialize_doc
from tasksync.utils.timeutil import parse_timestamp, utcnow

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_CONFLICT = "conflict"
STATUS_ERROR = "error"

CONTENT_FIELDS = ("title", "description", "completed", "is_deleted")


class TaskNotFound(Exception):
    pass


class BatchExchange:
    def __init__(self, db, signal_conflicts=False, collection="tasks"):
        self.collection = db[collection]
        # When set, a stored version strictly newer than the client's is
        # reported as a conflict instead of a plain success.
        self.signal_conflicts = signal_conflicts
        self.collection.create_index("client_id", unique=True)

    def process_batch(self, payload):
        items = (payload or {}).get("items")
        if not isinstance(items, list):
            raise ValueError("Request body must contain an array of items.")

        processed = []
        for item in items:
            task_id = item.get("task_id") if isinstance(item, dict) else None
            try:
                processed.append(self._process_item(item))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Batch item for task %s failed: %s", task_id, exc)
                processed.append(
                    {
                        "client_id": task_id,
                        "server_id": task_id or "",
                        "status": STATUS_ERROR,
                        "error": str(exc),
                    }
                )
        return {"processed_items": processed}

    def _process_item(self, item):
        task_id = item["task_id"]
        operation = item.get("operation")
        data = item.get("data") or {}

        if operation == "create":
            doc = self._create(task_id, data)
            status = STATUS_SUCCESS
        elif operation == "update":
            doc, status = self._update(task_id, data)
        elif operation == "delete":
            doc = self._delete(task_id, data)
            return {
                "client_id": task_id,
                "server_id": str(doc["_id"]) if doc else task_id,
                "status": STATUS_SUCCESS,
            }
        else:
            raise ValueError(f"Unknown operation: {operation}")

        return {
            "client_id": task_id,
            "server_id": str(doc["_id"]),
            "status": status,
            "resolved_data": self._resolved(doc),
        }

    def _create(self, task_id, data):
        existing = self.collection.find_one({"client_id": task_id})
        if existing is not None:
            # Replayed create: the earlier response was lost, or the task was
            # edited before the client learned its server id.
            return self._apply_if_newer(existing, data)
        now = utcnow()
        created_at = parse_timestamp(data.get("created_at")) or now
        doc = {
            "client_id": task_id,
            "title": data.get("title") or "Untitled",
            "description": data.get("description") or "",
            "completed": bool(data.get("completed", False)),
            "is_deleted": bool(data.get("is_deleted", False)),
            "created_at": created_at,
            "updated_at": parse_timestamp(data.get("updated_at")) or created_at,
        }
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def _update(self, task_id, data):
        stored = self.collection.find_one({"client_id": task_id, "is_deleted": False})
        if stored is None:
            raise TaskNotFound(f"Task with id {task_id} not found on server.")

        client_updated = parse_timestamp(data.get("updated_at"))
        if client_updated is None:
            raise ValueError(f"Update for task {task_id} is missing updated_at.")

        if client_updated > stored["updated_at"]:
            return self._apply_if_newer(stored, data), STATUS_SUCCESS

        if self.signal_conflicts and stored["updated_at"] > client_updated:
            return stored, STATUS_CONFLICT
        return stored, STATUS_SUCCESS

    def _apply_if_newer(self, stored, data):
        client_updated = parse_timestamp(data.get("updated_at"))
        if client_updated is None or client_updated <= stored["updated_at"]:
            return stored
        changes = {k: data[k] for k in CONTENT_FIELDS if k in data}
        changes["updated_at"] = client_updated
        return self.collection.find_one_and_update(
            {"_id": stored["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )

    def _delete(self, task_id, data):
        deleted_at = parse_timestamp(data.get("updated_at")) or utcnow()
        return self.collection.find_one_and_update(
            {"client_id": task_id},
            {"$set": {"is_deleted": True, "updated_at": deleted_at}},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def _resolved(doc):
        out = serialize_doc(doc)
        out["server_id"] = out.pop("id")
        out["id"] = out.pop("client_id")
        return out
