from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional

from tasksync.utils.timeutil import format_timestamp, parse_timestamp, utcnow

SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_ERROR = "error"
SYNC_STATUSES = (SYNC_PENDING, SYNC_SYNCED, SYNC_ERROR)

TIMESTAMP_FIELDS = ("created_at", "updated_at", "last_synced_at")
# Fields a client may change through an update
UPDATABLE_FIELDS = ("title", "description", "completed", "is_deleted")


@dataclass
class Task:
    title: str
    description: Optional[str] = ""
    completed: bool = False
    is_deleted: bool = False
    created_at: Any = field(default_factory=utcnow)
    updated_at: Any = field(default_factory=utcnow)
    sync_status: str = SYNC_PENDING  # pending | synced | error
    server_id: Optional[str] = None
    last_synced_at: Any = None
    id: Optional[str] = None

    @classmethod
    def field_names(cls):
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Build a Task from a stored document or a wire payload.

        Unknown keys are ignored, ``_id`` is accepted in place of ``id`` and
        timestamps may be datetimes or ISO strings.
        """
        values = {k: v for k, v in data.items() if k in cls.field_names()}
        if "id" not in values and "_id" in data:
            values["id"] = str(data["_id"])
        for name in TIMESTAMP_FIELDS:
            if name in values:
                values[name] = parse_timestamp(values[name])
        values.setdefault("title", "")
        if "completed" in values:
            values["completed"] = bool(values["completed"])
        if "is_deleted" in values:
            values["is_deleted"] = bool(values["is_deleted"])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> Dict[str, Any]:
        out = self.to_dict()
        for name in TIMESTAMP_FIELDS:
            out[name] = format_timestamp(out[name])
        return out

    def to_doc(self) -> Dict[str, Any]:
        doc = self.to_dict()
        doc["_id"] = doc.pop("id")
        return doc
