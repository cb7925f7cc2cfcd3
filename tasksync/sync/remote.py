"""Client side of the remote exchange.

Both clients expose ``submit_batch(items)`` and ``ping(timeout)``. The HTTP
client talks to a remote deployment with requests; the local client drives a
``BatchExchange`` in this process through the same JSON wire format.
"""
import json
import logging
from datetime import datetime

import requests

from tasksync.utils.timeutil import format_timestamp, utcnow

logger = logging.getLogger(__name__)


class RemoteExchangeError(Exception):
    """The remote exchange could not be reached or answered nonsense."""


def _jsonable(value):
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def build_request(items, now=None):
    """Serialise queue items into the batch request body."""
    return {
        "items": [
            _jsonable(
                {
                    "id": item.id,
                    "task_id": item.task_id,
                    "operation": item.operation,
                    "data": item.data,
                    "created_at": item.created_at,
                    "retry_count": item.retry_count,
                }
            )
            for item in items
        ],
        "client_timestamp": format_timestamp(now or utcnow()),
    }


def check_response(body):
    if not isinstance(body, dict) or not isinstance(body.get("processed_items"), list):
        raise RemoteExchangeError("Malformed batch response: missing processed_items")
    return body


class HttpRemoteClient:
    def __init__(self, endpoint, request_timeout=30.0, session=None):
        self.endpoint = endpoint.rstrip("/")
        self.request_timeout = request_timeout
        self.session = session or requests.Session()

    def submit_batch(self, items):
        payload = build_request(items)
        try:
            resp = self.session.post(
                f"{self.endpoint}/batch", json=payload, timeout=self.request_timeout
            )
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as exc:
            raise RemoteExchangeError(f"Batch request failed: {exc}") from exc
        except ValueError as exc:
            raise RemoteExchangeError(f"Batch response was not JSON: {exc}") from exc
        return check_response(body)

    def ping(self, timeout=5.0):
        try:
            resp = self.session.get(f"{self.endpoint}/health", timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.info("Remote exchange at %s unreachable: %s", self.endpoint, exc)
            return False
        return True


class LocalRemoteClient:
    def __init__(self, exchange):
        self.exchange = exchange

    def submit_batch(self, items):
        # Round-trip through JSON so the exchange sees exactly what HTTP would carry
        payload = json.loads(json.dumps(build_request(items)))
        try:
            body = self.exchange.process_batch(payload)
        except ValueError as exc:
            raise RemoteExchangeError(str(exc)) from exc
        return check_response(json.loads(json.dumps(_jsonable(body))))

    def ping(self, timeout=5.0):
        return True
