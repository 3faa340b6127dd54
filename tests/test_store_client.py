import asyncio

import pytest

from listings.store_client import ListingStoreClient
from runtime.errors import ConfigurationError, ConnectivityError, MissingIdentityError, ValidationError
from storage.documents import CollectionRef
from storage.memory_store import InMemoryDocumentStore

LISTINGS = CollectionRef(("listings",))

VALID_FIELDS = {
    "title": "Desk",
    "description": "Solid oak desk",
    "condition": "Good",
    "category": "Furniture",
    "location": "Elm St, Springfield",
    "dimensions": "",
    "availability": "Weekends",
}


class _RecordingBackend(InMemoryDocumentStore):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.add_calls = 0
        self.listen_calls = 0

    async def add(self, ref, data):
        self.add_calls += 1
        return await super().add(ref, data)

    async def listen(self, ref, on_snapshot, on_error=None):
        self.listen_calls += 1
        return await super().listen(ref, on_snapshot, on_error)


class _FailingBackend(InMemoryDocumentStore):
    async def listen(self, ref, on_snapshot, on_error=None):
        raise ConnectivityError("realtime unavailable")


def test_subscribe_delivers_current_collection_immediately():
    async def scenario():
        store = InMemoryDocumentStore()
        store.put(LISTINGS, "a", {**VALID_FIELDS, "created_at": 5.0})
        client = ListingStoreClient(store, LISTINGS)
        received = []
        subscription = await client.subscribe(received.append)
        assert [[item.id for item in batch] for batch in received] == [["a"]]
        assert client.subscribed
        await subscription.unsubscribe()

    asyncio.run(scenario())


def test_resubscribe_replaces_previous_listener():
    async def scenario():
        store = InMemoryDocumentStore()
        client = ListingStoreClient(store, LISTINGS)
        first, second = [], []
        old = await client.subscribe(first.append)
        new = await client.subscribe(second.append)
        assert store.listener_count(LISTINGS) == 1
        assert not old.active

        store.put(LISTINGS, "a", {**VALID_FIELDS, "created_at": 1.0})
        assert len(first) == 1
        assert len(second) == 2

        await new.unsubscribe()
        await new.unsubscribe()
        await old.unsubscribe()
        assert store.listener_count(LISTINGS) == 0
        assert not client.subscribed

    asyncio.run(scenario())


def test_unsubscribed_client_receives_nothing_further():
    async def scenario():
        store = InMemoryDocumentStore()
        client = ListingStoreClient(store, LISTINGS)
        received = []
        subscription = await client.subscribe(received.append)
        await subscription.unsubscribe()
        store.put(LISTINGS, "a", {**VALID_FIELDS, "created_at": 1.0})
        assert received == [[]]

    asyncio.run(scenario())


def test_degraded_client_reports_empty_set_and_rejects_writes():
    async def scenario():
        client = ListingStoreClient(None, None)
        assert client.degraded
        received = []
        await client.subscribe(received.append)
        assert received == [[]]
        with pytest.raises(ConfigurationError):
            await client.create(VALID_FIELDS, "u1")

    asyncio.run(scenario())


def test_create_without_identity_never_reaches_backend():
    async def scenario():
        store = _RecordingBackend()
        client = ListingStoreClient(store, LISTINGS)
        for owner in (None, ""):
            with pytest.raises(MissingIdentityError):
                await client.create(VALID_FIELDS, owner)
        assert store.add_calls == 0

    asyncio.run(scenario())


def test_missing_identity_is_reported_before_degraded_store():
    async def scenario():
        client = ListingStoreClient(None, None)
        with pytest.raises(MissingIdentityError):
            await client.create(VALID_FIELDS, None)

    asyncio.run(scenario())


def test_invalid_fields_are_rejected():
    async def scenario():
        store = _RecordingBackend()
        client = ListingStoreClient(store, LISTINGS)
        with pytest.raises(ValidationError):
            await client.create({**VALID_FIELDS, "title": "   "}, "u1")
        with pytest.raises(ValidationError):
            await client.create({**VALID_FIELDS, "condition": "Pristine"}, "u1")
        assert store.add_calls == 0

    asyncio.run(scenario())


def test_create_assigns_owner_color_and_store_timestamp():
    async def scenario():
        store = InMemoryDocumentStore(clock=lambda: 100.0)
        client = ListingStoreClient(store, LISTINGS, color_picker=lambda palette: palette[2])
        listing = await client.create(VALID_FIELDS, "u1")
        assert listing.owner_id == "u1"
        assert listing.image_color == "rose"
        assert listing.created_at == 100.0
        assert listing.dimensions is None

        stored = store.documents(LISTINGS)[0].data
        assert stored["owner_id"] == "u1"
        assert stored["condition"] == "Good"

        explicit = await client.create(VALID_FIELDS, "u1", image_color="bg-amber-600")
        assert explicit.image_color == "amber"

    asyncio.run(scenario())


def test_pending_write_is_observed_then_resolved():
    async def scenario():
        store = InMemoryDocumentStore(clock=lambda: 42.0, auto_resolve=False)
        client = ListingStoreClient(store, LISTINGS)
        received = []
        await client.subscribe(received.append)

        listing = await client.create(VALID_FIELDS, "u1")
        assert listing.pending
        assert received[-1][0].pending

        store.resolve_pending(LISTINGS)
        assert received[-1][0].created_at == 42.0
        assert len(received) == 3

    asyncio.run(scenario())


def test_invalid_documents_are_dropped_from_snapshots():
    async def scenario():
        store = InMemoryDocumentStore()
        store.put(LISTINGS, "good", {**VALID_FIELDS, "created_at": 1.0})
        store.put(LISTINGS, "bad", {"title": "no description"})
        client = ListingStoreClient(store, LISTINGS)
        received = []
        await client.subscribe(received.append)
        assert [item.id for item in received[0]] == ["good"]

    asyncio.run(scenario())


def test_malformed_timestamp_does_not_break_the_snapshot():
    async def scenario():
        store = InMemoryDocumentStore()
        store.put(LISTINGS, "good", {**VALID_FIELDS, "created_at": 1.0})
        store.put(LISTINGS, "bad-ts", {**VALID_FIELDS, "created_at": {"seconds": None}})
        client = ListingStoreClient(store, LISTINGS)
        received = []
        await client.subscribe(received.append)
        assert [item.id for item in received[0]] == ["good"]

        store.put(LISTINGS, "huge", {**VALID_FIELDS, "created_at": 10**400})
        assert [item.id for item in received[-1]] == ["good"]

    asyncio.run(scenario())


def test_listen_failure_reports_error_and_last_snapshot():
    async def scenario():
        client = ListingStoreClient(_FailingBackend(), LISTINGS)
        received, errors = [], []
        await client.subscribe(received.append, on_error=errors.append)
        assert received == [[]]
        assert len(errors) == 1
        assert isinstance(errors[0], ConnectivityError)

    asyncio.run(scenario())


def test_feed_errors_reach_only_the_current_subscription():
    async def scenario():
        store = InMemoryDocumentStore()
        client = ListingStoreClient(store, LISTINGS)
        old_errors, new_errors = [], []
        await client.subscribe(lambda listings: None, on_error=old_errors.append)
        await client.subscribe(lambda listings: None, on_error=new_errors.append)
        store.fail_listeners(LISTINGS, ConnectivityError("dropped"))
        assert old_errors == []
        assert len(new_errors) == 1

    asyncio.run(scenario())


def test_dispose_releases_the_listener():
    async def scenario():
        store = _RecordingBackend()
        client = ListingStoreClient(store, LISTINGS)
        await client.init()
        await client.subscribe(lambda listings: None)
        await client.dispose()
        assert store.listener_count(LISTINGS) == 0
        assert store.listen_calls == 1
        assert not client.started

    asyncio.run(scenario())
