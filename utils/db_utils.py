import os
import pymongo
from pymongo.errors import PyMongoError
import logging

# Cached across Azure Function invocations so the connection pool is reused
_CLIENT_CACHE = None

CONNECTION_STRING_KEYS = [
    "MongoDb-Connection-String",
    "MONGODB_CONNECTION_STRING",
    "CUSTOMCONNSTR_MongoDb-Connection-String",
    "MONGODB_URI",
]


def get_db_client(**kwargs):
    """
    Returns a PyMongo client using the connection string from environment variables.
    The first key in CONNECTION_STRING_KEYS that is set wins.
    """
    global _CLIENT_CACHE

    if _CLIENT_CACHE is not None:
        return _CLIENT_CACHE

    uri = next((os.getenv(k) for k in CONNECTION_STRING_KEYS if os.getenv(k)), None)
    if not uri:
        # never fall back to localhost:27017
        error_msg = f"MongoDB connection string not found in environment variables. Checked: {CONNECTION_STRING_KEYS}"
        logging.critical(error_msg)
        raise RuntimeError(error_msg)

    try:
        _CLIENT_CACHE = pymongo.MongoClient(uri, **kwargs)
    except PyMongoError as e:
        logging.critical(f"Failed to create MongoClient: {e}")
        raise
    return _CLIENT_CACHE


def get_db(db_name_env="GOAL_SYNC_DB_NAME", default_db="Goal_Sync"):
    client = get_db_client()
    db_name = os.getenv(db_name_env, os.getenv("DB_NAME", default_db))
    return client[db_name]


def get_report_collection(collection_env="GOAL_SYNC_REPORT_COLLECTION", default_collection="report__c"):
    """Snapshot collection holding one document per player per upload."""
    db = get_db()
    return db[os.getenv(collection_env, default_collection)]
