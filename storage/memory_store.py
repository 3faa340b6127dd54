from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from storage.documents import CollectionRef, ErrorCallback, SnapshotCallback, StoredDocument
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class _Listener:
    listener_id: int
    on_snapshot: SnapshotCallback
    on_error: Optional[ErrorCallback]


class _MemoryListenerHandle:
    def __init__(self, store: "InMemoryDocumentStore", ref: CollectionRef, listener_id: int) -> None:
        self._store = store
        self._ref = ref
        self._listener_id = listener_id
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._store._remove_listener(self._ref, self._listener_id)


class InMemoryDocumentStore:
    """Demo-mode document store used when Supabase is unavailable.

    Behaves like the remote store from a client's point of view: timestamps
    are assigned by the store, every listener receives the full collection on
    registration and after every change, and a write is visible to listeners
    as pending before its timestamp resolves.
    """

    def __init__(
        self,
        *,
        clock: Optional[Callable[[], float]] = None,
        auto_resolve: bool = True,
    ) -> None:
        self._clock = clock or time.time
        self._auto_resolve = auto_resolve
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[str, Dict[int, _Listener]] = {}
        self._next_listener_id = 0
        self._last_timestamp = 0.0

    # Writes -----------------------------------------------------------------
    async def add(self, ref: CollectionRef, data: Dict[str, Any]) -> StoredDocument:
        doc_id = uuid.uuid4().hex
        payload = copy.deepcopy(data)
        payload["created_at"] = None
        if ref.tenant:
            payload["tenant_id"] = ref.tenant
        self._collection(ref)[doc_id] = payload
        self._notify(ref)
        if self._auto_resolve:
            payload["created_at"] = self._server_timestamp()
            self._notify(ref)
        return StoredDocument(id=doc_id, data=copy.deepcopy(payload))

    def put(self, ref: CollectionRef, doc_id: str, data: Dict[str, Any]) -> StoredDocument:
        """Write a document as another client would, timestamp included."""
        payload = copy.deepcopy(data)
        self._collection(ref)[doc_id] = payload
        self._notify(ref)
        return StoredDocument(id=doc_id, data=copy.deepcopy(payload))

    def remove(self, ref: CollectionRef, doc_id: str) -> bool:
        removed = self._collection(ref).pop(doc_id, None) is not None
        if removed:
            self._notify(ref)
        return removed

    def resolve_pending(self, ref: CollectionRef) -> int:
        """Assign server timestamps to every pending document in `ref`."""
        resolved = 0
        for payload in self._collection(ref).values():
            if payload.get("created_at") is None:
                payload["created_at"] = self._server_timestamp()
                resolved += 1
        if resolved:
            self._notify(ref)
        return resolved

    # Reads / listeners -------------------------------------------------------
    def documents(self, ref: CollectionRef) -> List[StoredDocument]:
        return [
            StoredDocument(id=doc_id, data=copy.deepcopy(payload))
            for doc_id, payload in self._collection(ref).items()
        ]

    async def listen(
        self,
        ref: CollectionRef,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> _MemoryListenerHandle:
        self._next_listener_id += 1
        listener = _Listener(self._next_listener_id, on_snapshot, on_error)
        self._listeners.setdefault(ref.path, {})[listener.listener_id] = listener
        on_snapshot(self.documents(ref))
        return _MemoryListenerHandle(self, ref, listener.listener_id)

    def listener_count(self, ref: CollectionRef) -> int:
        return len(self._listeners.get(ref.path, {}))

    def fail_listeners(self, ref: CollectionRef, error: Exception) -> None:
        """Report a connection failure to every listener of `ref`."""
        for listener in list(self._listeners.get(ref.path, {}).values()):
            if listener.on_error is not None:
                listener.on_error(error)

    async def close(self) -> None:
        self._listeners.clear()

    # Internals ----------------------------------------------------------------
    def _collection(self, ref: CollectionRef) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(ref.path, {})

    def _server_timestamp(self) -> float:
        timestamp = float(self._clock())
        if timestamp <= self._last_timestamp:
            timestamp = self._last_timestamp + 0.001
        self._last_timestamp = timestamp
        return timestamp

    def _remove_listener(self, ref: CollectionRef, listener_id: int) -> None:
        self._listeners.get(ref.path, {}).pop(listener_id, None)

    def _notify(self, ref: CollectionRef) -> None:
        listeners = list(self._listeners.get(ref.path, {}).values())
        if not listeners:
            return
        logger.debug("memory_store_snapshot", extra={"collection": ref.path, "listeners": len(listeners)})
        for listener in listeners:
            listener.on_snapshot(self.documents(ref))
