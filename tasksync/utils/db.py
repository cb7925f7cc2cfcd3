from bson import ObjectId
from flask import current_app
from pymongo import MongoClient


def init_app(app, client=None):
    """Attach a MongoDB client to the app.

    The client is created lazily by pymongo, so building the app does not
    require a reachable server. Tests pass their own client.
    """
    if client is None:
        client = MongoClient(app.config["MONGO_URI"], serverSelectionTimeoutMS=2000)
    app.extensions["mongo"] = client
    return client


def get_client(app=None):
    app = app or current_app
    return app.extensions["mongo"]


def get_db(app=None):
    app = app or current_app
    return get_client(app)[app.config["MONGO_DB_NAME"]]


def get_remote_db(app=None):
    app = app or current_app
    return get_client(app)[app.config["REMOTE_DB_NAME"]]


def serialize_doc(doc):
    """Turn a Mongo document into a JSON friendly dict (``_id`` becomes ``id``)."""
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        _id = out.pop("_id")
        out.setdefault("id", str(_id))
    for key, value in out.items():
        if isinstance(value, ObjectId):
            out[key] = str(value)
        elif hasattr(value, "isoformat"):
            out[key] = value.isoformat()
    return out

