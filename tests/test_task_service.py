from datetime import timedelta


def test_create_task_sets_defaults_and_queues_create(tasks, queue):
    task = tasks.create_task("Write report", "quarterly")

    assert task.id
    assert task.completed is False
    assert task.is_deleted is False
    assert task.sync_status == "pending"
    assert task.server_id is None
    assert task.last_synced_at is None
    assert task.created_at == task.updated_at

    item = queue.get(task.id)
    assert item.operation == "create"
    assert item.data["title"] == "Write report"
    assert tasks.get_task(task.id) == task


def test_update_bumps_updated_at_and_replaces_queue_item(tasks, queue):
    task = tasks.create_task("A")
    tasks.update_task_fields(task.id, {"server_id": "srv-1"})
    queue.mark_synced(task.id)

    updated = tasks.update_task(task.id, {"title": "B", "completed": 1, "id": "hijack"})

    assert updated.id == task.id
    assert updated.title == "B"
    assert updated.completed is True
    assert updated.updated_at > task.updated_at
    assert updated.created_at == task.created_at
    assert updated.sync_status == "pending"
    assert queue.pending_count() == 1
    item = queue.get(task.id)
    assert item.operation == "update"
    assert item.data["title"] == "B"


def test_update_before_first_sync_stays_a_create(tasks, queue):
    task = tasks.create_task("A")
    first = queue.get(task.id)

    tasks.update_task(task.id, {"title": "B"})

    assert queue.pending_count() == 1
    item = queue.get(task.id)
    assert item.id != first.id
    assert item.operation == "create"
    assert item.data["title"] == "B"
    assert item.data["updated_at"] > task.updated_at


def test_update_unknown_task_returns_none(tasks, queue):
    assert tasks.update_task("missing", {"title": "x"}) is None
    assert queue.pending_count() == 0


def test_soft_delete_hides_task_but_keeps_it_addressable(tasks, queue):
    task = tasks.create_task("A")

    assert tasks.delete_task(task.id) is True

    assert tasks.get_task(task.id) is None
    assert tasks.list_tasks() == []
    stored = tasks.find_task(task.id)
    assert stored.is_deleted is True
    assert stored.sync_status == "pending"
    assert stored.updated_at > task.updated_at
    item = queue.get(task.id)
    assert item.operation == "delete"
    assert item.data["id"] == task.id

    assert tasks.delete_task(task.id) is False
    assert tasks.update_task(task.id, {"title": "zombie"}) is None


def test_list_tasks_newest_first(tasks):
    first = tasks.create_task("first")
    tasks.create_task("second")
    tasks.collection.update_one(
        {"_id": first.id}, {"$set": {"created_at": first.created_at - timedelta(days=1)}}
    )

    assert [t.title for t in tasks.list_tasks()] == ["second", "first"]


def test_created_at_is_immutable(tasks):
    task = tasks.create_task("A")

    tasks.update_task_fields(task.id, {"created_at": task.created_at - timedelta(days=3)})

    assert tasks.find_task(task.id).created_at == task.created_at


def test_tasks_needing_sync(tasks):
    pending = tasks.create_task("pending")
    synced = tasks.create_task("synced")
    failed = tasks.create_task("failed")
    tasks.mark_sync_status(synced.id, "synced")
    tasks.mark_sync_status(failed.id, "error")

    ids = {t.id for t in tasks.tasks_needing_sync()}

    assert ids == {pending.id, failed.id}


def test_update_task_fields_never_queues(tasks, queue):
    task = tasks.create_task("A")
    queue.mark_synced(task.id)

    committed = tasks.update_task_fields(task.id, {"title": "server", "server_id": "s1"})

    assert committed.title == "server"
    assert committed.server_id == "s1"
    assert queue.pending_count() == 0


def test_last_synced_at_only_counts_synced_tasks(tasks):
    assert tasks.last_synced_at() is None
    a = tasks.create_task("a")
    b = tasks.create_task("b")
    early = a.created_at
    late = b.created_at.replace(year=b.created_at.year + 1)
    tasks.update_task_fields(a.id, {"sync_status": "synced", "last_synced_at": early})
    tasks.update_task_fields(b.id, {"sync_status": "error", "last_synced_at": late})

    assert tasks.last_synced_at() == early
