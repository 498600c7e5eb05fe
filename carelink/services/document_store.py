from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPIError
from google.cloud.firestore import FieldFilter

from carelink.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

ASCENDING = firestore.Query.ASCENDING
DESCENDING = firestore.Query.DESCENDING

Row = Tuple[str, Dict[str, Any]]


@dataclass(frozen=True)
class QuerySpec:
    """A filtered, ordered query over one collection.

    ``path`` is a collection path such as ``"appointments"`` or
    ``"patients/{id}/messages"``; filters are ``(field, op, value)``
    triples using Firestore operators (``"=="``, ``">="``,
    ``"array_contains"``).
    """

    path: str
    filters: Tuple[Tuple[str, str, Any], ...] = ()
    order_by: Optional[str] = None
    direction: str = ASCENDING


@dataclass(frozen=True)
class DocumentSpec:
    """One document, watched as a result set of zero or one rows."""

    path: str
    doc_id: str


def direction_from(value: Optional[str]) -> str:
    return DESCENDING if (value or "").lower() in ("desc", "descending") else ASCENDING


def _passthrough(fn):
    """Turn Firestore API failures into ProviderError."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except GoogleAPIError as exc:
            logger.exception("Firestore call %s failed", fn.__name__)
            raise ProviderError(str(exc)) from exc

    return wrapper


class DocumentStore:
    """Thin wrapper over the Firestore client.

    Everything here is a direct call into Firestore: no caching and no
    local state. ``subscribe`` hands back the SDK's watch handle, whose
    ``unsubscribe()`` must be called when the consumer goes away.
    """

    def __init__(self, db):
        self.db = db

    # -------------------------
    # Helpers
    # -------------------------
    def collection(self, path: str):
        parts = [p for p in path.split("/") if p]
        if len(parts) % 2 == 0:
            raise ValueError(f"Not a collection path: {path}")
        ref = self.db.collection(parts[0])
        for i in range(1, len(parts), 2):
            ref = ref.document(parts[i]).collection(parts[i + 1])
        return ref

    def query(self, spec: QuerySpec):
        q = self.collection(spec.path)
        for field, op, value in spec.filters:
            q = q.where(filter=FieldFilter(field, op, value))
        if spec.order_by:
            q = q.order_by(spec.order_by, direction=spec.direction)
        return q

    @staticmethod
    def array_union(values: Sequence[Any]):
        return firestore.ArrayUnion(list(values))

    @staticmethod
    def _rows(docs) -> List[Row]:
        return [(d.id, d.to_dict() or {}) for d in docs if d.exists]

    # -------------------------
    # Core API
    # -------------------------
    @_passthrough
    def get(self, spec: QuerySpec) -> List[Row]:
        return self._rows(self.query(spec).stream())

    @_passthrough
    def get_one(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        snap = self.collection(path).document(doc_id).get()
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    @_passthrough
    def create(self, path: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        coll = self.collection(path)
        if doc_id:
            coll.document(doc_id).set(data)
            return doc_id
        _, ref = coll.add(data)
        return ref.id

    @_passthrough
    def update(self, path: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.collection(path).document(doc_id).update(fields)

    @_passthrough
    def delete(self, path: str, doc_id: str) -> None:
        self.collection(path).document(doc_id).delete()

    def subscribe(
        self,
        spec: Union[QuerySpec, DocumentSpec],
        on_rows: Callable[[List[Row]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """Attach a live listener; every call delivers the full result set."""

        def _on_snapshot(docs, changes, read_time):
            try:
                on_rows(self._rows(docs))
            except Exception as exc:
                logger.exception("Snapshot listener on %s failed", spec.path)
                if on_error is not None:
                    on_error(exc)

        try:
            if isinstance(spec, DocumentSpec):
                target = self.collection(spec.path).document(spec.doc_id)
            else:
                target = self.query(spec)
            return target.on_snapshot(_on_snapshot)
        except GoogleAPIError as exc:
            logger.exception("Could not attach listener on %s", spec.path)
            raise ProviderError(str(exc)) from exc
