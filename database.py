"""
Database Helper Functions with In-Memory Fallback

Uses MongoDB when DATABASE_URL and DATABASE_NAME are provided.
If not available, falls back to an in-memory store that mimics the subset of
PyMongo APIs used by the app (find, find_one, insert_one, count_documents,
create_index, list_collection_names).

One `Database` is created per process at startup and closed on shutdown.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import Settings
from errors import DuplicateRecordError, StorageError, ValidationError
from logger import get_logger
from schemas import COLLECTIONS, utcnow

logger = get_logger(__name__)

SortSpec = Sequence[Tuple[str, int]]


# ---------------------------
# In-Memory Fallback classes
# ---------------------------
class _InsertOneResult:
    def __init__(self, inserted_id: ObjectId):
        self.inserted_id = inserted_id


class MemoryCollection:
    def __init__(self, name: str, store: Dict[ObjectId, Dict[str, Any]]):
        self.name = name
        self.store = store  # id -> doc
        self._unique: List[Tuple[str, ...]] = []
        self._lock = threading.Lock()

    def create_index(self, keys: Union[str, Sequence[Tuple[str, int]]], unique: bool = False) -> str:
        fields = (keys,) if isinstance(keys, str) else tuple(k for k, _ in keys)
        if unique and fields not in self._unique:
            self._unique.append(fields)
        return "_".join(f"{f}_1" for f in fields)

    def find(
        self,
        filter_dict: Optional[Dict[str, Any]] = None,
        projection: Optional[Dict[str, int]] = None,
        sort: Optional[SortSpec] = None,
    ) -> Iterator[Dict[str, Any]]:
        filter_dict = filter_dict or {}
        docs = [doc for doc in list(self.store.values()) if _match_filter(doc, filter_dict)]
        # Stable sorts applied from the least significant key up
        for key, direction in reversed(list(sort or [])):
            docs.sort(key=lambda d: _sort_key(d.get(key)), reverse=direction < 0)
        for doc in docs:
            yield _project(doc, projection)

    def find_one(self, filter_dict: Dict[str, Any], projection: Optional[Dict[str, int]] = None):
        for doc in self.find(filter_dict, projection):
            return doc
        return None

    def count_documents(self, filter_dict: Dict[str, Any]) -> int:
        return sum(1 for doc in list(self.store.values()) if _match_filter(doc, filter_dict))

    def insert_one(self, data: Dict[str, Any]) -> _InsertOneResult:
        to_insert = dict(data)
        to_insert.setdefault("_id", ObjectId())
        with self._lock:
            for fields in self._unique:
                values = tuple(to_insert.get(f) for f in fields)
                if any(tuple(doc.get(f) for f in fields) == values for doc in self.store.values()):
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {'_'.join(fields)}",
                        11000,
                    )
            self.store[to_insert["_id"]] = to_insert
        return _InsertOneResult(to_insert["_id"])


class MemoryDB:
    """Process-local stand-in for a pymongo Database; collections appear on first use."""

    def __init__(self, name: str = "memory"):
        self.name = name
        self._collections: Dict[str, MemoryCollection] = {}

    def __getitem__(self, collection_name: str) -> MemoryCollection:
        coll = self._collections.get(collection_name)
        if coll is None:
            coll = self._collections[collection_name] = MemoryCollection(collection_name, {})
        return coll

    def command(self, name: str) -> Dict[str, float]:
        if name != "ping":
            raise ValueError(f"Unsupported command: {name}")
        return {"ok": 1.0}

    def list_collection_names(self) -> List[str]:
        return sorted(self._collections)


_RANGE_OPS = {
    "$gte": lambda a, b: a >= b,
    "$gt": lambda a, b: a > b,
    "$lte": lambda a, b: a <= b,
    "$lt": lambda a, b: a < b,
}


def _match_filter(doc: Dict[str, Any], filt: Dict[str, Any]) -> bool:
    for k, v in filt.items():
        value = doc.get(k)
        if isinstance(v, dict):
            for op, operand in v.items():
                if op == "$in":
                    if value not in operand:
                        return False
                elif op == "$ne":
                    if value == operand:
                        return False
                elif op in _RANGE_OPS:
                    if value is None or not _RANGE_OPS[op](value, operand):
                        return False
                else:
                    raise ValueError(f"Unsupported filter operator: {op}")
        elif value != v:
            return False
    return True


def _sort_key(value: Any):
    # Missing values sort first, as in MongoDB
    return (value is not None, value if value is not None else 0)


def _project(doc: Dict[str, Any], projection: Optional[Dict[str, int]]) -> Dict[str, Any]:
    if not projection:
        return dict(doc)
    out = {k: doc[k] for k, include in projection.items() if include and k in doc}
    out["_id"] = doc["_id"]
    return out


# ---------------------------
# Utility helpers
# ---------------------------

def to_obj_id(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    if not isinstance(id_str, str) or not ObjectId.is_valid(id_str):
        raise ValidationError("Invalid ID format")
    return ObjectId(id_str)


@contextmanager
def storage_errors(action: str):
    try:
        yield
    except DuplicateKeyError as e:
        raise DuplicateRecordError(f"{action}: {e}") from e
    except PyMongoError as e:
        raise StorageError(f"{action}: {e}") from e


# ---------------------------
# Process-wide store handle
# ---------------------------
class Database:
    """Either a real Mongo database or the memory fallback, behind one API."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: Optional[MongoClient] = None
        self._db = None

    @property
    def backend(self) -> str:
        return "mongo" if self.client is not None else "memory"

    @property
    def name(self) -> Optional[str]:
        return self._db.name if self._db is not None else None

    def connect(self) -> "Database":
        if self.settings.use_mongo:
            try:
                client = MongoClient(self.settings.database_url, serverSelectionTimeoutMS=2000, tz_aware=True)
                # Trigger a server selection to fail fast if not reachable
                client.server_info()
                self.client = client
                self._db = client[self.settings.database_name]
            except PyMongoError as e:
                logger.warning("MongoDB not reachable, falling back to in-memory store: %s", e)
                self.client = None
        if self._db is None:
            self._db = MemoryDB()
        self.ensure_indexes()
        logger.info("Connected to %s store (%s)", self.backend, self.name)
        return self

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self._db = None

    def collection(self, name: str):
        if self._db is None:
            raise StorageError("Database is not connected")
        return self._db[name]

    def ensure_indexes(self) -> None:
        with storage_errors("create indexes"):
            users = self.collection("users")
            users.create_index("username", unique=True)
            users.create_index("github_id", unique=True)
            for name in ("pipelines", "customers", "jobs"):
                self.collection(name).create_index([("user_id", 1)])

    def ping(self) -> bool:
        """Round trip to the store; raises StorageError when it does not answer."""
        if self._db is None:
            raise StorageError("Database is not connected")
        with storage_errors("ping"):
            if self.client is not None:
                self.client.admin.command("ping")
            else:
                self._db.command("ping")
        return True

    def list_collection_names(self) -> List[str]:
        with storage_errors("list collections"):
            return self._db.list_collection_names()

    # ---- helper functions (work for both backends) ----

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> ObjectId:
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = dict(data)
        data_dict.setdefault("created_at", utcnow())

        with storage_errors(f"insert into {collection_name}"):
            result = self.collection(collection_name).insert_one(data_dict)
        return result.inserted_id

    def insert(self, document: BaseModel) -> ObjectId:
        return self.create_document(COLLECTIONS[type(document)], document)

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[dict] = None,
        sort: Optional[SortSpec] = None,
        projection: Optional[Dict[str, int]] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        with storage_errors(f"find in {collection_name}"):
            cursor = self.collection(collection_name).find(filter_dict or {}, projection, sort=sort)
            docs = list(cursor)
        if limit:
            docs = docs[:limit]
        return docs

    def get_document(self, collection_name: str, filter_dict: dict) -> Optional[dict]:
        with storage_errors(f"find one in {collection_name}"):
            return self.collection(collection_name).find_one(filter_dict)

    def count_documents(self, collection_name: str, filter_dict: Optional[dict] = None) -> int:
        with storage_errors(f"count in {collection_name}"):
            return self.collection(collection_name).count_documents(filter_dict or {})
