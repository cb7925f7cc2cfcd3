from flask import Blueprint, jsonify, request

from tasksync.models.task_model import UPDATABLE_FIELDS
from tasksync.services.container import get_services


tasks_bp = Blueprint("tasks", __name__)


@tasks_bp.get("/ping")
def ping():
    return jsonify(message="tasks ok"), 200


@tasks_bp.get("/")
def list_tasks():
    tasks = get_services().tasks.list_tasks()
    return jsonify(items=[t.to_json() for t in tasks]), 200


@tasks_bp.get("/pending")
def pending_tasks():
    tasks = get_services().tasks.tasks_needing_sync()
    return jsonify(items=[t.to_json() for t in tasks]), 200


@tasks_bp.get("/<task_id>")
def get_task(task_id):
    task = get_services().tasks.get_task(task_id)
    if task is None:
        return jsonify(error="Task not found"), 404
    return jsonify(item=task.to_json()), 200


@tasks_bp.post("/")
def create_task():
    payload = request.get_json(silent=True) or {}
    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        return jsonify(error="Title is required and must be a non-empty string"), 400
    description = payload.get("description")
    if description is not None and not isinstance(description, str):
        return jsonify(error="Description must be a string"), 400

    task = get_services().tasks.create_task(title.strip(), description)
    return jsonify(item=task.to_json()), 201


@tasks_bp.put("/<task_id>")
def update_task(task_id):
    payload = request.get_json(silent=True) or {}
    updates = {field: payload[field] for field in UPDATABLE_FIELDS if field in payload}
    if not updates:
        return jsonify(error="Request body must contain at least one field to update"), 400
    if "title" in updates and (not isinstance(updates["title"], str) or not updates["title"].strip()):
        return jsonify(error="Title must be a non-empty string"), 400

    task = get_services().tasks.update_task(task_id, updates)
    if task is None:
        return jsonify(error="Task not found"), 404
    return jsonify(item=task.to_json()), 200


@tasks_bp.delete("/<task_id>")
def delete_task(task_id):
    if not get_services().tasks.delete_task(task_id):
        return jsonify(error="Task not found"), 404
    return "", 204
