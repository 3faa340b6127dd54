from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, List, Optional, Set

import httpx
from postgrest import APIError
from supabase import AsyncClient, acreate_client

from runtime.errors import ConnectivityError, UpstreamError
from storage.documents import CollectionRef, ErrorCallback, SnapshotCallback, StoredDocument
from telemetry.logging_utils import get_logger
from telemetry.metrics import timed_operation
from telemetry.retry import retry_async_with_backoff

logger = get_logger(__name__)

TENANT_COLUMN = "tenant_id"
_FAILED_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}


def _state_name(status: Any) -> str:
    return str(getattr(status, "value", status))


class SupabaseDocumentStore:
    """Document store backed by a Supabase table plus Realtime change feeds.

    The table's `id` and `created_at` columns are filled by database
    defaults, so timestamps are always server-assigned. Tenant-scoped
    collections map to rows filtered on `tenant_id`.
    """

    def __init__(self, client: AsyncClient, *, schema: str = "public") -> None:
        self.client = client
        self.schema = schema
        self._max_retries = 3
        self._retry_backoff_seconds = 0.25

    @classmethod
    async def connect(cls, url: str, key: str) -> "SupabaseDocumentStore":
        client = await acreate_client(url, key)
        return cls(client)

    def _table(self, ref: CollectionRef):
        return self.client.table(ref.name)

    async def fetch_all(self, ref: CollectionRef) -> List[StoredDocument]:
        def _query():
            query = self._table(ref).select("*")
            if ref.tenant:
                query = query.eq(TENANT_COLUMN, ref.tenant)
            return query.order("created_at", desc=False).execute()

        try:
            with timed_operation("store_fetch", ref.path):
                resp = await retry_async_with_backoff(
                    _query,
                    retries=self._max_retries,
                    base_delay=self._retry_backoff_seconds,
                    retry_exceptions=(httpx.TransportError, APIError),
                    operation="store_fetch",
                )
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"Could not load {ref.path}: {exc}") from exc
        except APIError as exc:
            raise UpstreamError(exc.message or str(exc)) from exc
        return [self._to_document(row) for row in (resp.data or [])]

    async def add(self, ref: CollectionRef, data: Dict[str, Any]) -> StoredDocument:
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at")}
        if ref.tenant:
            payload[TENANT_COLUMN] = ref.tenant
        try:
            resp = await self._table(ref).insert(payload).execute()
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"Could not write to {ref.path}: {exc}") from exc
        except APIError as exc:
            raise UpstreamError(exc.message or str(exc)) from exc
        if not resp.data:
            raise UpstreamError(f"Insert into {ref.path} returned no row")
        return self._to_document(resp.data[0])

    async def listen(
        self,
        ref: CollectionRef,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> "RealtimeCollectionListener":
        listener = RealtimeCollectionListener(self, ref, on_snapshot, on_error)
        await listener.start()
        return listener

    async def close(self) -> None:
        await self.client.remove_all_channels()

    @staticmethod
    def _to_document(row: Dict[str, Any]) -> StoredDocument:
        data = dict(row)
        doc_id = data.pop("id", None)
        data.pop(TENANT_COLUMN, None)
        return StoredDocument(id=str(doc_id), data=data)


class RealtimeCollectionListener:
    """Turns a Realtime change feed into full-collection snapshots.

    Every change event (and every re-subscription after a reconnect) triggers
    a full re-fetch. Refreshes may overlap; the most recently requested one
    wins and results of older requests are dropped.
    """

    def __init__(
        self,
        store: SupabaseDocumentStore,
        ref: CollectionRef,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback],
    ) -> None:
        self._store = store
        self._ref = ref
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._channel = None
        self._tasks: Set[asyncio.Task] = set()
        self._requested = 0
        self._delivered = 0
        self._subscribed_once = False
        self.closed = False

    async def start(self) -> None:
        channel = self._store.client.channel(f"{self._ref.name}-feed-{uuid.uuid4().hex[:8]}")
        change_filter = f"{TENANT_COLUMN}=eq.{self._ref.tenant}" if self._ref.tenant else None
        channel.on_postgres_changes(
            "*",
            schema=self._store.schema,
            table=self._ref.name,
            filter=change_filter,
            callback=self._on_change,
        )
        self._channel = channel
        try:
            await channel.subscribe(self._on_status)
        except Exception as exc:
            self._channel = None
            await self._store.client.remove_channel(channel)
            raise ConnectivityError(f"Could not subscribe to {self._ref.path}: {exc}") from exc
        await self.refresh()

    def _on_change(self, payload: Dict[str, Any]) -> None:
        logger.debug(
            "store_change_received",
            extra={"collection": self._ref.path, "event_type": (payload or {}).get("eventType")},
        )
        self._schedule_refresh()

    def _on_status(self, status: Any, error: Optional[Exception] = None) -> None:
        state = _state_name(status)
        if state == "SUBSCRIBED":
            # Writes landing before the join is acknowledged emit no change event.
            if self._subscribed_once:
                logger.info("store_feed_resubscribed", extra={"collection": self._ref.path})
            self._subscribed_once = True
            self._schedule_refresh()
        elif state in _FAILED_STATES:
            logger.warning(
                "store_feed_failed",
                extra={"collection": self._ref.path, "state": state, "error": str(error) if error else None},
            )
            self._report(ConnectivityError(f"Realtime feed for {self._ref.path} is {state}"))

    def _schedule_refresh(self) -> None:
        if self.closed:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def refresh(self) -> None:
        self._requested += 1
        request_id = self._requested
        try:
            documents = await self._store.fetch_all(self._ref)
        except (ConnectivityError, UpstreamError) as exc:
            if request_id == self._requested:
                self._report(exc)
            return
        if self.closed or request_id <= self._delivered:
            logger.debug("store_snapshot_superseded", extra={"collection": self._ref.path, "request_id": request_id})
            return
        self._delivered = request_id
        self._on_snapshot(documents)

    def _report(self, error: Exception) -> None:
        if self.closed or self._on_error is None:
            return
        self._on_error(error)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._channel is not None:
            await self._store.client.remove_channel(self._channel)
            self._channel = None
