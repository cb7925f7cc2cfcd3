"""Last-write-wins conflict resolution."""
from dataclasses import replace

from tasksync.models.task_model import SYNC_SYNCED, Task
from tasksync.utils.timeutil import utcnow


def resolve(local: Task, remote: Task, now=None) -> Task:
    """Pick the version with the later ``updated_at``; ties go to local.

    The winner's fields are adopted wholesale, keeping the local id. Neither
    input is modified and nothing is written; the caller commits the result.
    """
    now = now or utcnow()
    if local.updated_at >= remote.updated_at:
        winner = local
    else:
        winner = remote
    return replace(
        winner,
        id=local.id,
        server_id=winner.server_id or remote.server_id or local.server_id,
        sync_status=SYNC_SYNCED,
        last_synced_at=now,
    )
