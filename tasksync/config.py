import os

from dotenv import load_dotenv

# Load .env from project root so local development settings are picked up
load_dotenv()


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017/?directConnection=true")
    MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "tasksync")
    # Database owned by the remote authority when it runs in this process
    REMOTE_DB_NAME = os.environ.get("REMOTE_DB_NAME", "tasksync_remote")

    # Empty endpoint means the remote exchange runs in-process
    REMOTE_ENDPOINT = os.environ.get("REMOTE_ENDPOINT", "")
    SYNC_BATCH_SIZE = int(os.environ.get("SYNC_BATCH_SIZE", "50"))
    SYNC_RETRY_CEILING = int(os.environ.get("SYNC_RETRY_CEILING", "3"))
    SYNC_CONNECTIVITY_TIMEOUT = float(os.environ.get("SYNC_CONNECTIVITY_TIMEOUT", "5"))
    SYNC_REQUEST_TIMEOUT = float(os.environ.get("SYNC_REQUEST_TIMEOUT", "30"))
    SYNC_INTERVAL_SECONDS = float(os.environ.get("SYNC_INTERVAL_SECONDS", "0"))
    SYNC_SIGNAL_CONFLICTS = os.environ.get("SYNC_SIGNAL_CONFLICTS", "0") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    JSON_SORT_KEYS = False
