import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException


def create_app(overrides=None, mongo_client=None):
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"), override=False)

    app = Flask(__name__)
    app.config.from_object("tasksync.config.Config")
    if overrides:
        app.config.update(overrides)

    # Core extensions
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if isinstance(level, int):
        app.logger.setLevel(level)
        logging.getLogger("tasksync").setLevel(level)

    from tasksync.utils.db import init_app as init_db
    from tasksync.services.container import build_services

    init_db(app, client=mongo_client)
    services = build_services(app)

    # Register blueprints
    from tasksync.routes.task_routes import tasks_bp
    from tasksync.routes.sync_routes import sync_bp

    app.register_blueprint(tasks_bp, url_prefix="/api/tasks")
    app.register_blueprint(sync_bp, url_prefix="/api")

    if services.scheduler is not None:
        services.scheduler.start()
    if not services.engine.config.remote_endpoint:
        app.logger.info("REMOTE_ENDPOINT not set; using the in-process remote exchange.")

    @app.errorhandler(404)
    def not_found(_):
        return jsonify(error="Not Found"), 404

    @app.errorhandler(405)
    def method_not_allowed(_):
        return jsonify(error="Method Not Allowed"), 405

    @app.errorhandler(500)
    def server_error(_):
        return jsonify(error="Internal server error"), 500

    @app.errorhandler(Exception)
    def unhandled(exc):
        if isinstance(exc, HTTPException):
            return jsonify(error=exc.description), exc.code
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify(error="Internal server error"), 500

    return app


if __name__ == "__main__":
    # Direct run support: python -m tasksync.app
    create_app().run(
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "5000")),
        debug=os.environ.get("FLASK_DEBUG", "1") == "1",
    )
