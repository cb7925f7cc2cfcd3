import pytest
from bson import ObjectId

from tasksync.sync.exchange import BatchExchange

T1 = "2024-05-01T12:00:00"
T2 = "2024-05-01T12:05:00"


def item(task_id, operation, **data):
    return {
        "id": f"q-{task_id}",
        "task_id": task_id,
        "operation": operation,
        "data": data,
        "created_at": T1,
        "retry_count": 0,
    }


def run(exchange, *items):
    return exchange.process_batch({"items": list(items), "client_timestamp": T2})["processed_items"]


def test_create_assigns_server_id_and_keeps_client_fields(exchange):
    [outcome] = run(exchange, item("t1", "create", id="t1", title="A", created_at=T1, updated_at=T1))

    assert outcome["client_id"] == "t1"
    assert outcome["status"] == "success"
    assert ObjectId.is_valid(outcome["server_id"])
    data = outcome["resolved_data"]
    assert data["id"] == "t1"
    assert data["server_id"] == outcome["server_id"]
    assert data["title"] == "A"
    assert data["updated_at"] == T1


def test_create_without_title_defaults_to_untitled(exchange):
    [outcome] = run(exchange, item("t1", "create"))

    assert outcome["resolved_data"]["title"] == "Untitled"


def test_replayed_create_is_idempotent(exchange):
    [first] = run(exchange, item("t1", "create", title="A", updated_at=T1))
    [again] = run(exchange, item("t1", "create", title="A", updated_at=T1))

    assert again["server_id"] == first["server_id"]
    assert exchange.collection.count_documents({}) == 1


def test_replayed_create_with_newer_edit_is_applied(exchange):
    [first] = run(exchange, item("t1", "create", title="A", updated_at=T1))
    [again] = run(exchange, item("t1", "create", title="B", updated_at=T2))
    [stale] = run(exchange, item("t1", "create", title="old", updated_at=T1))

    assert again["server_id"] == first["server_id"]
    assert again["resolved_data"]["title"] == "B"
    assert again["resolved_data"]["updated_at"] == T2
    assert stale["resolved_data"]["title"] == "B"
    assert exchange.collection.count_documents({}) == 1


def test_update_missing_task_is_error(exchange):
    [outcome] = run(exchange, item("ghost", "update", title="x", updated_at=T2))

    assert outcome["status"] == "error"
    assert "not found" in outcome["error"]
    assert outcome["server_id"] == "ghost"


def test_newer_client_update_is_applied(exchange):
    run(exchange, item("t1", "create", title="A", updated_at=T1))

    [outcome] = run(exchange, item("t1", "update", title="B", completed=True, updated_at=T2))

    assert outcome["status"] == "success"
    assert outcome["resolved_data"]["title"] == "B"
    assert outcome["resolved_data"]["completed"] is True
    assert outcome["resolved_data"]["updated_at"] == T2


def test_stale_client_update_returns_server_version_as_success(exchange):
    run(exchange, item("t1", "create", title="server", updated_at=T2))

    [outcome] = run(exchange, item("t1", "update", title="client", updated_at=T1))

    assert outcome["status"] == "success"
    assert outcome["resolved_data"]["title"] == "server"


def test_stale_client_update_is_conflict_when_signalling(remote_db):
    exchange = BatchExchange(remote_db, signal_conflicts=True)
    run(exchange, item("t1", "create", title="server", updated_at=T2))

    [outcome] = run(exchange, item("t1", "update", title="client", updated_at=T1))

    assert outcome["status"] == "conflict"
    assert outcome["resolved_data"]["title"] == "server"


def test_equal_timestamps_keep_server_version(exchange):
    run(exchange, item("t1", "create", title="server", updated_at=T1))

    [outcome] = run(exchange, item("t1", "update", title="client", updated_at=T1))

    assert outcome["status"] == "success"
    assert outcome["resolved_data"]["title"] == "server"


def test_delete_soft_deletes(exchange):
    run(exchange, item("t1", "create", title="A", updated_at=T1))

    [outcome] = run(exchange, item("t1", "delete", id="t1", updated_at=T2))

    assert outcome["status"] == "success"
    assert "resolved_data" not in outcome
    stored = exchange.collection.find_one({"client_id": "t1"})
    assert stored["is_deleted"] is True
    # deleted records are no longer updatable
    [after] = run(exchange, item("t1", "update", title="again", updated_at="2024-06-01T00:00:00"))
    assert after["status"] == "error"


def test_one_bad_item_does_not_abort_batch(exchange):
    outcomes = run(
        exchange,
        item("t1", "create", title="A", updated_at=T1),
        item("t2", "rename", title="?"),
        item("t3", "update", title="no timestamp"),
        item("t4", "create", title="D", updated_at=T1),
    )

    assert [o["status"] for o in outcomes] == ["success", "error", "error", "success"]
    assert "Unknown operation" in outcomes[1]["error"]


def test_batch_without_items_list_is_rejected(exchange):
    with pytest.raises(ValueError):
        exchange.process_batch({"items": "nope"})
