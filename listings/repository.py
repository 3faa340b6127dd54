from __future__ import annotations

from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from listings.models import Listing
from listings.store_client import ListingStoreClient, ListingSubscription
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

Observer = Callable[[Tuple[Listing, ...]], None]


def _sort_key(listing: Listing) -> Tuple[int, float]:
    # Pending records first, then newest first. The 0.0 stand-in for a
    # pending timestamp never leaves this function.
    if listing.created_at is None:
        return (0, 0.0)
    return (1, -listing.created_at)


def sort_listings(listings: Iterable[Listing]) -> List[Listing]:
    """Newest first; stable, so equal timestamps keep arrival order."""
    return sorted(listings, key=_sort_key)


class ListingRepository:
    """Sorted, read-only projection of the listing collection.

    Only the store client's snapshot handler writes it; everything else reads.
    """

    def __init__(self, store: ListingStoreClient) -> None:
        self._store = store
        self._listings: Tuple[Listing, ...] = ()
        self._by_id: Dict[str, Listing] = {}
        self._observers: List[Observer] = []
        self._subscription: Optional[ListingSubscription] = None
        self.loading = True
        self.version = 0
        self.last_error: Optional[Exception] = None

    # Lifecycle ------------------------------------------------------------------
    async def start(self) -> None:
        self.loading = True
        self._subscription = await self._store.subscribe(self._apply_snapshot, on_error=self._on_error)

    async def stop(self) -> None:
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.unsubscribe()
        self.loading = False

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # Snapshot handling ---------------------------------------------------------
    def _apply_snapshot(self, listings: List[Listing]) -> None:
        ordered = tuple(sort_listings(listings))
        self._listings = ordered
        self._by_id = {listing.id: listing for listing in ordered}
        self.loading = False
        self.last_error = None
        self.version += 1
        for observer in list(self._observers):
            observer(ordered)

    def _on_error(self, error: Exception) -> None:
        # Keep the last-known projection; only the loading flag changes.
        self.loading = False
        self.last_error = error
        logger.warning(
            "listing_projection_stale",
            extra={"error": str(error)[:200], "count": len(self._listings)},
        )

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def _remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _remove

    # Reads -----------------------------------------------------------------------
    @property
    def listings(self) -> Tuple[Listing, ...]:
        return self._listings

    @property
    def is_empty(self) -> bool:
        return not self._listings

    def get(self, listing_id: str) -> Optional[Listing]:
        return self._by_id.get(listing_id)

    def __len__(self) -> int:
        return len(self._listings)

    def __iter__(self) -> Iterator[Listing]:
        return iter(self._listings)
