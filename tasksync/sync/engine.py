"""Batch sync engine.

A cycle drains the queue oldest-first in batches of ``batch_size``, sends
each batch to the remote exchange as one request and applies the per-item
outcomes:

* ``success``  - commit the remote's data, mark synced, drop the queue item
* ``conflict`` - last-write-wins against the local copy, commit the winner
* ``error``    - count a retry; at the ceiling the task goes to ``error``

A transport failure fails every item in that batch and the cycle moves on to
the next one. Nothing here raises to the caller; failures end up in the
returned ``SyncReport``.
"""
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional

from tasksync.models.task_model import SYNC_ERROR, SYNC_SYNCED, Task
from tasksync.sync.queue import DEFAULT_RETRY_CEILING, QueueItem
from tasksync.sync.remote import check_response
from tasksync.sync.resolver import resolve
from tasksync.utils.timeutil import format_timestamp, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncConfig:
    batch_size: int = 50
    remote_endpoint: str = ""
    retry_ceiling: int = DEFAULT_RETRY_CEILING
    connectivity_timeout: float = 5.0
    request_timeout: float = 30.0

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.retry_ceiling < 1:
            raise ValueError("retry_ceiling must be at least 1")

    @classmethod
    def from_mapping(cls, config):
        """Build from a Flask-style config mapping."""
        return cls(
            batch_size=int(config.get("SYNC_BATCH_SIZE", 50)),
            remote_endpoint=config.get("REMOTE_ENDPOINT", "") or "",
            retry_ceiling=int(config.get("SYNC_RETRY_CEILING", DEFAULT_RETRY_CEILING)),
            connectivity_timeout=float(config.get("SYNC_CONNECTIVITY_TIMEOUT", 5.0)),
            request_timeout=float(config.get("SYNC_REQUEST_TIMEOUT", 30.0)),
        )


@dataclass
class SyncError:
    task_id: str
    operation: str
    error: str
    timestamp: Any = field(default_factory=utcnow)

    def to_dict(self):
        out = asdict(self)
        out["timestamp"] = format_timestamp(self.timestamp)
        return out


@dataclass
class SyncReport:
    success: bool = True
    synced_items: int = 0
    failed_items: int = 0
    conflicts: int = 0
    errors: List[SyncError] = field(default_factory=list)
    connected: bool = True

    def to_dict(self):
        return {
            "success": self.success,
            "synced_items": self.synced_items,
            "failed_items": self.failed_items,
            "conflicts": self.conflicts,
            "errors": [e.to_dict() for e in self.errors],
            "connected": self.connected,
        }


class OutcomeError(Exception):
    """A per-item outcome that cannot be applied locally."""


class SyncEngine:
    def __init__(self, tasks, queue, remote, config: Optional[SyncConfig] = None):
        self.tasks = tasks
        self.queue = queue
        self.remote = remote
        self.config = config or SyncConfig()
        # Drain eligibility follows the engine's ceiling
        self.queue.retry_ceiling = self.config.retry_ceiling
        self._cycle_lock = threading.Lock()

    def check_connectivity(self) -> bool:
        try:
            return bool(self.remote.ping(timeout=self.config.connectivity_timeout))
        except Exception as exc:  # noqa: BLE001
            logger.info("Connectivity probe failed: %s", exc)
            return False

    def sync(self, check_connectivity=True) -> SyncReport:
        if check_connectivity and not self.check_connectivity():
            logger.warning("Remote exchange unreachable, skipping sync cycle")
            return SyncReport(success=False, connected=False)

        # One cycle at a time so retry bookkeeping has a single writer
        with self._cycle_lock:
            report = SyncReport()
            attempted = set()
            while True:
                batch = self.queue.drain(self.config.batch_size, exclude_ids=attempted)
                if not batch:
                    break
                attempted.update(item.id for item in batch)
                self._run_batch(batch, report)

        report.success = report.failed_items == 0
        logger.info(
            "Sync cycle finished: %d synced, %d failed, %d conflicts",
            report.synced_items,
            report.failed_items,
            report.conflicts,
        )
        return report

    def _run_batch(self, batch: List[QueueItem], report: SyncReport):
        try:
            response = check_response(self.remote.submit_batch(batch))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Batch of %d items failed: %s", len(batch), exc)
            for item in batch:
                self._fail(item, str(exc) or exc.__class__.__name__, report)
            return

        outcomes = {}
        for entry in response["processed_items"]:
            if isinstance(entry, dict):
                outcomes.setdefault(entry.get("client_id"), entry)

        for item in batch:
            entry = outcomes.get(item.task_id)
            if entry is None:
                self._fail(item, "No outcome returned for item", report)
                continue
            if entry.get("status") not in ("success", "conflict"):
                self._fail(item, entry.get("error") or "Unknown error from server", report)
                continue
            try:
                self._apply(item, entry, report)
            except OutcomeError as exc:
                logger.warning("Cannot apply outcome for task %s: %s", item.task_id, exc)
                self._fail(item, str(exc), report)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Applying outcome for task %s failed", item.task_id)
                self._fail(item, str(exc) or exc.__class__.__name__, report)

    def _apply(self, item: QueueItem, entry, report: SyncReport):
        status = entry.get("status")
        server_id = entry.get("server_id")
        resolved_data = entry.get("resolved_data")

        if status == "success":
            self._commit(item, resolved_data, server_id)
            report.synced_items += 1
        else:
            local = self.tasks.find_task(item.task_id)
            if local is None:
                raise OutcomeError("Conflict reported for a task with no local record")
            if not resolved_data:
                raise OutcomeError("Conflict reported without the remote version")
            # Fields the remote left out keep their local values.
            remote = Task.from_dict(
                {
                    **local.to_dict(),
                    **resolved_data,
                    "id": item.task_id,
                    "server_id": server_id or local.server_id,
                }
            )
            winner = resolve(local, remote)
            logger.info(
                "Conflict on task %s resolved in favour of the %s version",
                item.task_id,
                "local" if winner.updated_at == local.updated_at else "remote",
            )
            self._commit(item, winner.to_dict(), server_id)
            report.conflicts += 1
            report.synced_items += 1

    def _commit(self, item: QueueItem, data, server_id):
        current = self.queue.get(item.task_id)
        if current is not None and current.id != item.id:
            # A newer local edit was queued while this batch was in flight;
            # keep it and only record the server id.
            local = self.tasks.find_task(item.task_id)
            if local is not None and not local.server_id and server_id:
                self.tasks.update_task_fields(item.task_id, {"server_id": server_id})
            logger.debug("Task %s changed during sync, keeping newer operation", item.task_id)
            return

        changes = {}
        if data:
            parsed = Task.from_dict(data)
            changes = {k: getattr(parsed, k) for k in data if k in Task.field_names()}
            if server_id:
                changes["server_id"] = server_id
        changes.pop("id", None)
        changes["sync_status"] = SYNC_SYNCED
        changes["last_synced_at"] = utcnow()

        if self.tasks.update_task_fields(item.task_id, changes) is None:
            raise OutcomeError("Local task not found")
        self.queue.mark_synced(item.task_id, item.id)

    def _fail(self, item: QueueItem, error: str, report: SyncReport):
        self.handle_retry(item, error)
        report.failed_items += 1
        report.errors.append(SyncError(task_id=item.task_id, operation=item.operation, error=error))

    def handle_retry(self, item: QueueItem, error) -> Optional[int]:
        """Count a failed attempt; at the ceiling force the task to ``error``.

        The item stays queued for inspection and drops out of future drains.
        """
        message = str(error)
        retry_count = self.queue.mark_failed(item.id, message)
        if retry_count is None:
            logger.debug("Queue item %s for task %s no longer queued", item.id, item.task_id)
            return None
        if retry_count >= self.config.retry_ceiling:
            self.tasks.mark_sync_status(item.task_id, SYNC_ERROR)
            logger.warning(
                "Task %s reached the retry ceiling (%d): %s",
                item.task_id,
                retry_count,
                message,
            )
        return retry_count

    def status(self):
        return {
            "pending": self.queue.pending_count(),
            "last_sync": self.tasks.last_synced_at(),
        }
