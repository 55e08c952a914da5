"""
MongoDB access for the marketplace.

The client is created lazily by pymongo, so importing this module never
blocks on a server. Routes obtain the handle through ``get_db`` which reads
the module-level ``db`` at call time.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.database import Database

from config import settings
from errors import InvalidIdentifier, NotFound

client: MongoClient = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000, tz_aware=True)
db: Database = client[settings.DATABASE_NAME]


def get_db() -> Database:
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_obj_id(id_str: Any, label: str = "id") -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        raise InvalidIdentifier(f"Invalid {label} format.")


def sanitize(doc: Optional[Dict]) -> Optional[Dict]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("password_hash", None)
    return d


def create_document(database: Database, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
    stamp = now()
    doc = {**data, "created_at": stamp, "updated_at": stamp}
    res = database[collection].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def get_documents(
    database: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    cursor = database[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_id(database: Database, collection: str, id_str: Any, label: str = "Document") -> Dict[str, Any]:
    doc = database[collection].find_one({"_id": to_obj_id(id_str, f"{label.lower()} ID")})
    if not doc:
        raise NotFound(f"{label} not found.")
    return doc


def find_optional(database: Database, collection: str, id_str: Any) -> Optional[Dict[str, Any]]:
    """Like find_by_id but a malformed or unknown id yields None."""
    try:
        oid = to_obj_id(id_str)
    except InvalidIdentifier:
        return None
    return database[collection].find_one({"_id": oid})


def find_by_email(database: Database, collection: str, email: str) -> Optional[Dict[str, Any]]:
    return database[collection].find_one({"email": (email or "").strip().lower()})


def update_by_id(database: Database, collection: str, id_str: Any, changes: Dict[str, Any], label: str = "Document") -> Dict[str, Any]:
    oid = to_obj_id(id_str, f"{label.lower()} ID")
    res = database[collection].update_one({"_id": oid}, {"$set": {**changes, "updated_at": now()}})
    if res.matched_count == 0:
        raise NotFound(f"{label} not found.")
    return database[collection].find_one({"_id": oid})


def delete_by_id(database: Database, collection: str, id_str: Any, label: str = "Document") -> None:
    res = database[collection].delete_one({"_id": to_obj_id(id_str, f"{label.lower()} ID")})
    if res.deleted_count == 0:
        raise NotFound(f"{label} not found.")


def attach_owners(database: Database, docs: Iterable[Dict[str, Any]], fields: Tuple[str, ...] = ("name", "email")) -> List[Dict[str, Any]]:
    """Populate ``owner`` on sanitized docs with the owner's public fields.

    Owners may live in either credential store; unknown owners are left as
    the bare id.
    """
    out = [sanitize(d) for d in docs]
    ids = {d.get("owner") for d in out if d.get("owner")}
    oids = []
    for i in ids:
        try:
            oids.append(to_obj_id(i))
        except InvalidIdentifier:
            continue
    owner_map: Dict[str, Dict[str, Any]] = {}
    if oids:
        for collection in ("admin", "user"):
            for o in database[collection].find({"_id": {"$in": oids}}):
                owner_map[str(o["_id"])] = {"id": str(o["_id"]), **{f: o.get(f) for f in fields}}
    for d in out:
        owner = owner_map.get(d.get("owner"))
        if owner:
            d["owner"] = owner
    return out
