from __future__ import annotations

import random
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from listings.models import IMAGE_COLOR_PALETTE, Listing, ListingFields, normalize_image_color
from listings.schemas import listing_from_document, validate_listing_documents
from runtime.errors import ConfigurationError, FreeCycleError, MissingIdentityError, ValidationError
from storage.documents import CollectionRef, DocumentBackend, ListenerHandle, StoredDocument
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

ListingsCallback = Callable[[List[Listing]], None]
ErrorHandler = Callable[[Exception], None]


class ListingSubscription:
    """Handle for the single active listing feed. `unsubscribe()` is idempotent."""

    def __init__(self, client: "ListingStoreClient", token: int) -> None:
        self._client = client
        self.token = token
        self.handle: Optional[ListenerHandle] = None
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._client._forget(self)
        if self.handle is not None:
            handle, self.handle = self.handle, None
            await handle.close()


class ListingStoreClient:
    """Live view of the whole listing collection plus listing creation.

    Without a backend or a collection reference the client is *degraded*:
    subscribers get an empty set and writes fail with ConfigurationError,
    but nothing raises into the subscriber.
    """

    def __init__(
        self,
        backend: Optional[DocumentBackend],
        collection: Optional[CollectionRef],
        *,
        color_picker: Callable[[Sequence[str]], str] = random.choice,
    ) -> None:
        self._backend = backend
        self._collection = collection
        self._color_picker = color_picker
        self._subscription: Optional[ListingSubscription] = None
        self._next_token = 0
        self.last_snapshot: List[Listing] = []
        self.started = False

    @property
    def degraded(self) -> bool:
        return self._backend is None or self._collection is None

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def init(self) -> None:
        self.started = True
        logger.info(
            "listing_store_ready",
            extra={
                "degraded": self.degraded,
                "collection": self._collection.path if self._collection else None,
            },
        )

    async def dispose(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
        self.started = False

    # Subscriptions -------------------------------------------------------------
    async def subscribe(
        self, on_change: ListingsCallback, on_error: Optional[ErrorHandler] = None
    ) -> ListingSubscription:
        if self._subscription is not None:
            await self._subscription.unsubscribe()

        self._next_token += 1
        subscription = ListingSubscription(self, self._next_token)
        self._subscription = subscription

        if self.degraded:
            logger.warning("listing_store_degraded_subscribe")
            on_change([])
            return subscription

        def _deliver(documents: List[StoredDocument]) -> None:
            if self._subscription is not subscription or not subscription.active:
                logger.debug("listing_snapshot_discarded", extra={"token": subscription.token})
                return
            listings = validate_listing_documents(documents)
            self.last_snapshot = listings
            logger.info("listing_snapshot_applied", extra={"count": len(listings), "token": subscription.token})
            on_change(list(listings))

        def _failed(error: Exception) -> None:
            if self._subscription is not subscription or not subscription.active:
                return
            logger.warning("listing_feed_error", extra={"error": str(error)[:200]})
            if on_error is not None:
                on_error(error)

        try:
            handle = await self._backend.listen(self._collection, _deliver, _failed)
        except FreeCycleError as exc:
            logger.warning("listing_subscribe_failed", extra={"error": str(exc)[:200]})
            _failed(exc)
            on_change(list(self.last_snapshot))
            return subscription

        if not subscription.active or self._subscription is not subscription:
            # Superseded or cancelled while the listener was being set up.
            await handle.close()
        else:
            subscription.handle = handle
        return subscription

    def _forget(self, subscription: ListingSubscription) -> None:
        if self._subscription is subscription:
            self._subscription = None

    # Writes --------------------------------------------------------------------
    async def create(
        self,
        fields: Union[ListingFields, Mapping[str, Any]],
        owner_id: Optional[str],
        *,
        image_color: Optional[str] = None,
    ) -> Listing:
        if not owner_id:
            raise MissingIdentityError("Sign in before creating a listing.")
        if not isinstance(fields, ListingFields):
            try:
                fields = ListingFields.model_validate(dict(fields))
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid listing: {exc}") from exc
        if self.degraded:
            raise ConfigurationError("The listing store is not configured.")

        payload = fields.to_document()
        if image_color:
            payload["image_color"] = normalize_image_color(image_color)
        else:
            payload["image_color"] = self._color_picker(IMAGE_COLOR_PALETTE)
        payload["owner_id"] = owner_id
        document = await self._backend.add(self._collection, payload)
        listing = listing_from_document(document)
        logger.info("listing_created", extra={"listing_id": listing.id, "pending": listing.pending})
        return listing
