"""
Ownership scoping.

Every read made through an `OwnerScope` is filtered on `user_id` and every
write is stamped with it, so a caller only ever sees records it owns.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import Depends, Request

from database import Database, SortSpec, to_obj_id
from errors import AuthenticationError, ValidationError

SESSION_KEY = "user_id"


class OwnerScope:
    def __init__(self, db: Database, user_id: ObjectId):
        self.db = db
        self.user_id = user_id

    def _scoped(self, filter_dict: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        scoped = dict(filter_dict or {})
        scoped["user_id"] = self.user_id
        return scoped

    def find(
        self,
        collection_name: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        projection: Optional[Dict[str, int]] = None,
    ) -> List[dict]:
        return self.db.get_documents(collection_name, self._scoped(filter_dict), sort=sort, projection=projection)

    def find_one(self, collection_name: str, filter_dict: Dict[str, Any]) -> Optional[dict]:
        return self.db.get_document(collection_name, self._scoped(filter_dict))

    def count(self, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        return self.db.count_documents(collection_name, self._scoped(filter_dict))

    def insert(self, document) -> ObjectId:
        # Ownership is always the caller's, whatever the document says
        document = document.model_copy(update={"user_id": self.user_id})
        return self.db.insert(document)

    def require(self, collection_name: str, id_str: str, label: str) -> dict:
        """Fetch an owned record by id or fail with a validation error."""
        doc = self.find_one(collection_name, {"_id": to_obj_id(id_str)})
        if doc is None:
            raise ValidationError(f"{label} not found")
        return doc


# ---------------------------
# FastAPI dependencies
# ---------------------------

def get_db(request: Request) -> Database:
    return request.app.state.db


def session_user_id(request: Request) -> ObjectId:
    raw = request.session.get(SESSION_KEY)
    if not raw or not ObjectId.is_valid(raw):
        raise AuthenticationError()
    return ObjectId(raw)


def get_scope(
    user_id: ObjectId = Depends(session_user_id),
    db: Database = Depends(get_db),
) -> OwnerScope:
    return OwnerScope(db, user_id)
