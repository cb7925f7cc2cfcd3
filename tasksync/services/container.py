from dataclasses import dataclass
from typing import Optional

from flask import current_app

from tasksync.services.task_service import TaskService
from tasksync.sync.engine import SyncConfig, SyncEngine
from tasksync.sync.exchange import BatchExchange
from tasksync.sync.queue import SyncQueue
from tasksync.sync.remote import HttpRemoteClient, LocalRemoteClient
from tasksync.sync.scheduler import SyncScheduler
from tasksync.utils.db import get_db, get_remote_db


@dataclass
class Services:
    tasks: TaskService
    queue: SyncQueue
    exchange: BatchExchange
    engine: SyncEngine
    scheduler: Optional[SyncScheduler] = None


def build_services(app) -> Services:
    """Wire the local store, the queue, the remote exchange and the engine."""
    sync_config = SyncConfig.from_mapping(app.config)

    queue = SyncQueue(get_db(app), retry_ceiling=sync_config.retry_ceiling)
    tasks = TaskService(get_db(app), queue=queue)
    exchange = BatchExchange(
        get_remote_db(app), signal_conflicts=app.config.get("SYNC_SIGNAL_CONFLICTS", False)
    )

    if sync_config.remote_endpoint:
        remote = HttpRemoteClient(
            sync_config.remote_endpoint, request_timeout=sync_config.request_timeout
        )
    else:
        remote = LocalRemoteClient(exchange)

    engine = SyncEngine(tasks, queue, remote, sync_config)

    scheduler = None
    interval = float(app.config.get("SYNC_INTERVAL_SECONDS", 0) or 0)
    if interval > 0:
        scheduler = SyncScheduler(engine, interval)

    services = Services(
        tasks=tasks,
        queue=queue,
        exchange=exchange,
        engine=engine,
        scheduler=scheduler,
    )
    app.extensions["tasksync"] = services
    return services


def get_services(app=None) -> Services:
    app = app or current_app
    return app.extensions["tasksync"]
