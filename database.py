"""
Database access for the storefront.

A single ``Database`` wraps one MongoClient and is created once at startup
(see ``main.create_app``). Collection names are the lowercased entity names
from ``schemas.py``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection

from config import Settings

log = logging.getLogger(__name__)


def parse_object_id(value: Optional[str]) -> Optional[ObjectId]:
    if not value:
        return None
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def to_dict(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


class Database:
    def __init__(self, client: MongoClient, name: str):
        self.client = client
        self.name = name
        self.db = client[name]

    def __getitem__(self, collection_name: str) -> Collection:
        return self.db[collection_name]

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        if isinstance(data, BaseModel):
            doc = data.model_dump()
        else:
            doc = dict(data)
        now = datetime.utcnow()
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        result = self.db[collection_name].insert_one(doc)
        return str(result.inserted_id)

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        sort: Optional[List] = None,
        skip: int = 0,
    ) -> List[dict]:
        cursor = self.db[collection_name].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def find_by_id(self, collection_name: str, doc_id: str) -> Optional[dict]:
        _id = parse_object_id(doc_id)
        if _id is None:
            return None
        return self.db[collection_name].find_one({"_id": _id})

    def update_by_id(self, collection_name: str, doc_id: str, updates: Dict[str, Any]) -> bool:
        _id = parse_object_id(doc_id)
        if _id is None:
            return False
        updates = dict(updates)
        updates["updated_at"] = datetime.utcnow()
        res = self.db[collection_name].update_one({"_id": _id}, {"$set": updates})
        return res.matched_count > 0

    def ensure_indexes(self) -> None:
        self.db["user"].create_index("email", unique=True)
        self.db["refresh_token"].create_index("token", unique=True)
        self.db["refresh_token"].create_index("user_id")
        self.db["variant"].create_index("product_id")
        self.db["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        self.db["stock_history"].create_index("product_id")

    def collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def close(self) -> None:
        self.client.close()


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url or not settings.database_name:
        log.warning("DATABASE_URL / DATABASE_NAME not set, database unavailable")
        return None
    client = MongoClient(settings.database_url)
    log.info("Connected to database %s", settings.database_name)
    return Database(client, settings.database_name)
