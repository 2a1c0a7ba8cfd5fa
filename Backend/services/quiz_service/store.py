# services/quiz_service/store.py
"""
Profile document store used by the stats service and the leaderboard.

FirestoreProfileStore talks to Firestore through firebase-admin.
MemoryProfileStore keeps documents in process and understands the same write
transforms (Increment, SERVER_TIMESTAMP, nested map merge);
it backs local play without credentials and the test suite.
"""

from __future__ import annotations
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import threading

from firebase_admin import firestore

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Row = Tuple[str, Document]
Where = Tuple[str, str, Any]
Listener = Callable[[List[Row]], None]


class ProfileStore:
    """Interface: fetch, merge-write, ordered query and live ordered query."""

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def merge_write(self, collection: str, doc_id: str, fields: Document) -> None:
        raise NotImplementedError

    def find_one(self, collection: str, field: str, value: Any) -> Optional[Row]:
        raise NotImplementedError

    def query_ordered(self, collection: str, order_by: str, limit: Optional[int] = None,
                      where: Optional[Where] = None) -> List[Row]:
        raise NotImplementedError

    def subscribe_ordered(self, collection: str, order_by: str, callback: Listener,
                          limit: Optional[int] = None, where: Optional[Where] = None) -> Callable[[], None]:
        raise NotImplementedError


# ============================================================================
# Firestore
# ============================================================================

class FirestoreProfileStore(ProfileStore):
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            from services.firebase import get_db
            self._db = get_db()
        return self._db

    def _query(self, collection: str, order_by: str, limit: Optional[int], where: Optional[Where]):
        q = self.db.collection(collection)
        if where is not None:
            q = q.where(*where)
        q = q.order_by(order_by, direction=firestore.Query.DESCENDING)
        if limit:
            q = q.limit(limit)
        return q

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        snap = self.db.collection(collection).document(doc_id).get()
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def merge_write(self, collection: str, doc_id: str, fields: Document) -> None:
        self.db.collection(collection).document(doc_id).set(fields, merge=True)

    def find_one(self, collection: str, field: str, value: Any) -> Optional[Row]:
        q = self.db.collection(collection).where(field, "==", value).limit(1)
        for doc in q.stream():
            return doc.id, doc.to_dict() or {}
        return None

    def query_ordered(self, collection: str, order_by: str, limit: Optional[int] = None,
                      where: Optional[Where] = None) -> List[Row]:
        return [(d.id, d.to_dict() or {}) for d in self._query(collection, order_by, limit, where).stream()]

    def subscribe_ordered(self, collection: str, order_by: str, callback: Listener,
                          limit: Optional[int] = None, where: Optional[Where] = None) -> Callable[[], None]:
        def on_snapshot(docs, changes, read_time):
            try:
                callback([(d.id, d.to_dict() or {}) for d in docs])
            except Exception:
                logger.exception("Snapshot listener for %s failed", collection)

        watch = self._query(collection, order_by, limit, where).on_snapshot(on_snapshot)
        return watch.unsubscribe


# ============================================================================
# In-memory
# ============================================================================

def _apply_fields(target: Document, fields: Document) -> None:
    for key, value in fields.items():
        if value is firestore.SERVER_TIMESTAMP:
            target[key] = datetime.now(timezone.utc)
        elif isinstance(value, firestore.Increment):
            current = target.get(key)
            base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
            target[key] = base + value.value
        elif isinstance(value, dict):
            child = target.get(key)
            if not isinstance(child, dict):
                child = {}
                target[key] = child
            _apply_fields(child, value)
        else:
            target[key] = deepcopy(value)


def _matches(doc: Document, where: Optional[Where]) -> bool:
    if where is None:
        return True
    field, op, value = where
    if op != "==":
        raise ValueError(f"MemoryProfileStore only supports '==' filters, got {op!r}")
    return doc.get(field) == value


class MemoryProfileStore(ProfileStore):
    def __init__(self, documents: Optional[Dict[str, Dict[str, Document]]] = None):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Document]] = deepcopy(documents) if documents else {}
        self._listeners: List[Tuple[str, str, Listener, Optional[int], Optional[Where]]] = []

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return deepcopy(doc) if doc is not None else None

    def merge_write(self, collection: str, doc_id: str, fields: Document) -> None:
        with self._lock:
            doc = self._collections.setdefault(collection, {}).setdefault(doc_id, {})
            _apply_fields(doc, fields)
            listeners = [l for l in self._listeners if l[0] == collection]
        for listener in listeners:
            self._emit(*listener)

    def find_one(self, collection: str, field: str, value: Any) -> Optional[Row]:
        with self._lock:
            for doc_id, doc in self._collections.get(collection, {}).items():
                if doc.get(field) == value:
                    return doc_id, deepcopy(doc)
        return None

    def query_ordered(self, collection: str, order_by: str, limit: Optional[int] = None,
                      where: Optional[Where] = None) -> List[Row]:
        with self._lock:
            rows = [
                (doc_id, deepcopy(doc))
                for doc_id, doc in self._collections.get(collection, {}).items()
                if order_by in doc and _matches(doc, where)
            ]
        rows.sort(key=lambda row: row[1].get(order_by) or 0, reverse=True)
        return rows[:limit] if limit else rows

    def subscribe_ordered(self, collection: str, order_by: str, callback: Listener,
                          limit: Optional[int] = None, where: Optional[Where] = None) -> Callable[[], None]:
        entry = (collection, order_by, callback, limit, where)
        with self._lock:
            self._listeners.append(entry)
        self._emit(*entry)

        def unsubscribe():
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)
        return unsubscribe

    def _emit(self, collection, order_by, callback, limit, where) -> None:
        try:
            callback(self.query_ordered(collection, order_by, limit, where))
        except Exception:
            logger.exception("Snapshot listener for %s failed", collection)


def build_store(kind: str) -> ProfileStore:
    if kind == "memory":
        logger.warning("Using in-memory profile store; stats are lost on restart")
        return MemoryProfileStore()
    if kind == "firestore":
        return FirestoreProfileStore()
    raise ValueError(f"Unknown PROFILE_STORE {kind!r}")
