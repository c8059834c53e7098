"""
MongoDB access for Seratus Studio.

`db` is the shared database handle; the helpers below stamp timestamps on
writes and turn stored documents into JSON-friendly dicts.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pydantic import BaseModel

from config import Config
from errors import ValidationError

logger = logging.getLogger(__name__)


def _connect():
    if not Config.DATABASE_URL:
        logger.warning("DATABASE_URL is not set; database unavailable")
        return None
    client = MongoClient(Config.DATABASE_URL)
    return client[Config.DATABASE_NAME]


db = _connect()


def utcnow() -> datetime:
    # BSON dates are naive UTC once read back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_obj_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def ensure_indexes():
    """Create the indexes the API relies on (idempotent)."""
    db.users.create_index([("username", ASCENDING)], unique=True)
    db.users.create_index([("email", ASCENDING)], unique=True)
    db.products.create_index([("category", ASCENDING), ("active", ASCENDING)])
    db.products.create_index([("price", ASCENDING)])
    db.products.create_index([("downloads", DESCENDING)])
    db.artworks.create_index([("featured", DESCENDING), ("created_at", DESCENDING)])
    db.orders.create_index([("customer_email", ASCENDING)])
    db.orders.create_index([("payment_status", ASCENDING)])
    db.orders.create_index([("delivery_status", ASCENDING)])
    db.orders.create_index([("product_id", ASCENDING)])
    db.backgrounds.create_index([("created_at", DESCENDING)])


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
