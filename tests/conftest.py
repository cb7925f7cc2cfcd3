"""Shared pytest fixtures."""
import mongomock
import pytest

from tasksync.services.task_service import TaskService
from tasksync.sync.engine import SyncConfig, SyncEngine
from tasksync.sync.exchange import BatchExchange
from tasksync.sync.queue import SyncQueue
from tasksync.sync.remote import LocalRemoteClient


class FakeRemote:
    """Remote client double: answers batches with a callable or raises."""

    def __init__(self, responder=None, reachable=True):
        self.responder = responder
        self.reachable = reachable
        self.batches = []

    def submit_batch(self, items):
        self.batches.append(list(items))
        if isinstance(self.responder, Exception):
            raise self.responder
        return {"processed_items": [self.responder(item) for item in items]}

    def ping(self, timeout=5.0):
        return self.reachable


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def db(mongo_client):
    return mongo_client["tasksync_test"]


@pytest.fixture
def remote_db(mongo_client):
    return mongo_client["tasksync_remote_test"]


@pytest.fixture
def queue(db):
    return SyncQueue(db)


@pytest.fixture
def tasks(db, queue):
    return TaskService(db, queue=queue)


@pytest.fixture
def exchange(remote_db):
    return BatchExchange(remote_db)


@pytest.fixture
def local_engine(tasks, queue, exchange):
    """Engine wired to an in-process remote exchange."""
    return SyncEngine(tasks, queue, LocalRemoteClient(exchange), SyncConfig(batch_size=2))


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def engine(tasks, queue, fake_remote):
    return SyncEngine(tasks, queue, fake_remote, SyncConfig(batch_size=50))


@pytest.fixture
def app(mongo_client):
    from tasksync.app import create_app

    app = create_app(
        overrides={
            "TESTING": True,
            "MONGO_DB_NAME": "tasksync_app_test",
            "REMOTE_DB_NAME": "tasksync_app_remote_test",
            "REMOTE_ENDPOINT": "",
            "SYNC_INTERVAL_SECONDS": 0,
        },
        mongo_client=mongo_client,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()
