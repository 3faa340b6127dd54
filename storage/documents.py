"""Shared types for the document stores: collection references, stored
documents and the backend/listener protocols both stores implement."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple


@dataclass(frozen=True)
class CollectionRef:
    """An already-resolved address of a document collection.

    `segments` is the full collection path; `tenant` is set when the
    collection lives under a tenant-scoped (sandboxed) prefix.
    """

    segments: Tuple[str, ...]
    tenant: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("Collection path must not be empty")
        if len(self.segments) % 2 == 0:
            raise ValueError("Collection path must have an odd number of segments")
        for segment in self.segments:
            if not segment or "/" in segment:
                raise ValueError(f"Invalid collection path segment: {segment!r}")

    @property
    def path(self) -> str:
        return "/".join(self.segments)

    @property
    def name(self) -> str:
        return self.segments[-1]


@dataclass(frozen=True)
class StoredDocument:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[StoredDocument]], None]
ErrorCallback = Callable[[Exception], None]


class ListenerHandle(Protocol):
    async def close(self) -> None: ...


class DocumentBackend(Protocol):
    """Client-observable contract of the remote document store."""

    async def add(self, ref: CollectionRef, data: Dict[str, Any]) -> StoredDocument: ...

    async def listen(
        self,
        ref: CollectionRef,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> ListenerHandle: ...

    async def close(self) -> None: ...
