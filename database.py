"""MongoDB access for the booking backend.

A single pymongo client is created lazily from ``DATABASE_URL`` /
``DATABASE_NAME``. Route handlers receive the database through the ``get_db``
dependency so tests can swap in another store.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo import MongoClient
from pymongo.database import Database

import config

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def connect() -> Optional[Database]:
    global _client, _db

    if _db is not None:
        return _db
    if not config.DATABASE_URL or not config.DATABASE_NAME:
        return None

    _client = MongoClient(config.DATABASE_URL)
    _db = _client[config.DATABASE_NAME]
    return _db


def close() -> None:
    global _client, _db

    if _client is not None:
        _client.close()
    _client = None
    _db = None


def get_db() -> Database:
    db = connect()
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Copy a stored document into a JSON-friendly dict with ``id`` for ``_id``."""
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        elif isinstance(value, datetime):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out
