from flask import Blueprint, current_app, jsonify, request

from tasksync.services.container import get_services
from tasksync.utils.timeutil import format_timestamp, utcnow


sync_bp = Blueprint("sync", __name__)


@sync_bp.post("/sync")
def trigger_sync():
    engine = get_services().engine
    if not engine.check_connectivity():
        return jsonify(error="Remote server is unreachable", connected=False), 503

    # The probe above already ran; don't spend a second round trip on it
    report = engine.sync(check_connectivity=False)
    if not report.success:
        current_app.logger.warning(
            "Sync finished with %d failed items", report.failed_items
        )
    return jsonify(report.to_dict()), 200


@sync_bp.post("/batch")
def process_batch():
    """Remote side of the protocol: apply a batch of client operations."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload.get("items"), list):
        return jsonify(error="Request body must contain an array of items."), 400
    response = get_services().exchange.process_batch(payload)
    return jsonify(response), 200


@sync_bp.get("/status")
def sync_status():
    engine = get_services().engine
    status = engine.status()
    return jsonify(
        pending=status["pending"],
        lastSync=format_timestamp(status["last_sync"]),
        connected=engine.check_connectivity(),
    ), 200


@sync_bp.get("/health")
def health():
    return jsonify(status="ok", service="tasksync", timestamp=format_timestamp(utcnow())), 200
