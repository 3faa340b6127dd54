"""Application controller: wires identity, the listing feed and the
per-listing assistant session together, and tracks which view is active."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Set, Tuple, Union

from assistant.gemini_client import GeminiClient
from assistant.session import ConversationMessage, ConversationSession, TextGenerator
from givefree.demo_data import DEMO_LISTINGS
from identity.provider import AnonymousIdentityProvider, IdentityAdapter, IdentityProvider, SupabaseIdentityProvider
from listings.models import Listing, ListingFields
from listings.repository import ListingRepository
from listings.store_client import ListingStoreClient
from runtime.environment import RuntimeEnvironment
from runtime.errors import FreeCycleError
from storage.documents import DocumentBackend
from storage.memory_store import InMemoryDocumentStore
from storage.supabase_store import SupabaseDocumentStore
from telemetry.logging_utils import get_logger
from telemetry.metrics import fetch_metrics, summarize_metrics

logger = get_logger(__name__)


class View(str, Enum):
    LANDING = "landing"
    BROWSE = "browse"
    CREATE = "create"
    DETAIL = "detail"


async def build_backend(environment: RuntimeEnvironment) -> Tuple[Optional[DocumentBackend], Optional[Any]]:
    """Return (document backend, Supabase client for auth); either may be None."""
    if environment.store_configured:
        try:
            store = await SupabaseDocumentStore.connect(environment.supabase_url, environment.supabase_key)
        except Exception as exc:
            logger.error("store_connection_failed", extra={"error": str(exc)[:200]})
            return None, None
        return store, store.client
    if environment.demo_mode:
        logger.info("store_demo_mode")
        return InMemoryDocumentStore(), None
    logger.error("store_not_configured", extra={"sandbox": environment.sandbox})
    return None, None


class FreeCycleApp:
    """Top-level client object with an explicit start/shutdown lifecycle."""

    def __init__(
        self,
        environment: RuntimeEnvironment,
        *,
        store: ListingStoreClient,
        identity: IdentityAdapter,
        generator: TextGenerator,
        backend: Optional[DocumentBackend] = None,
    ) -> None:
        self.environment = environment
        self.store = store
        self.repository = ListingRepository(store)
        self.identity = identity
        self._generator = generator
        self._backend = backend
        self.view = View.LANDING
        self.session: Optional[ConversationSession] = None
        self.last_error: Optional[str] = None
        self._sync_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._remove_identity_listener: Optional[Callable[[], None]] = None
        self.metrics_summary: Optional[Dict[str, Any]] = None

    @classmethod
    async def bootstrap(
        cls,
        environment: Optional[RuntimeEnvironment] = None,
        *,
        identity_provider: Optional[IdentityProvider] = None,
        generator: Optional[TextGenerator] = None,
    ) -> "FreeCycleApp":
        environment = environment or RuntimeEnvironment.from_env()
        backend, auth_client = await build_backend(environment)
        collection = environment.collection_ref() if backend is not None else None
        if identity_provider is None:
            if auth_client is not None:
                identity_provider = SupabaseIdentityProvider(auth_client)
            else:
                identity_provider = AnonymousIdentityProvider()
        if generator is None:
            generator = GeminiClient(
                environment.gemini_api_key,
                model=environment.gemini_model,
                trusted_execution=environment.sandbox,
                timeout=environment.gemini_timeout,
            )
        return cls(
            environment,
            store=ListingStoreClient(backend, collection),
            identity=IdentityAdapter(identity_provider, custom_token=environment.initial_auth_token),
            generator=generator,
            backend=backend,
        )

    # Lifecycle ------------------------------------------------------------------
    async def start(self) -> None:
        await self.store.init()
        self._remove_identity_listener = self.identity.on_change(self._identity_changed)
        identity = await self.identity.start()
        await self._sync_subscription(identity)

    async def shutdown(self) -> None:
        self._close_session()
        if self._remove_identity_listener is not None:
            self._remove_identity_listener()
            self._remove_identity_listener = None
        for task in list(self._tasks):
            task.cancel()
        await self.repository.stop()
        await self.store.dispose()
        self.identity.dispose()
        aclose = getattr(self._generator, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._backend is not None:
            await self._backend.close()
        self.metrics_summary = summarize_metrics(fetch_metrics())
        logger.info("app_shutdown", extra={"metrics_summary": self.metrics_summary})

    def _identity_changed(self, identity: Optional[str]) -> None:
        task = asyncio.get_running_loop().create_task(self._sync_subscription(identity))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _sync_subscription(self, identity: Optional[str]) -> None:
        """Subscribe while someone is signed in; unsubscribe otherwise."""
        async with self._sync_lock:
            if identity and not self.repository.active:
                await self.repository.start()
            elif not identity and self.repository.active:
                await self.repository.stop()
            elif not identity:
                self.repository.loading = False

    # State ------------------------------------------------------------------------
    @property
    def listings(self) -> Tuple[Listing, ...]:
        return self.repository.listings

    @property
    def loading(self) -> bool:
        return self.repository.loading

    @property
    def signed_in(self) -> bool:
        return self.identity.signed_in

    @property
    def config_error(self) -> bool:
        return self.store.degraded and not self.environment.sandbox

    @property
    def can_seed(self) -> bool:
        return self.repository.is_empty and not self.repository.loading and not self.store.degraded

    # Navigation ---------------------------------------------------------------------
    def navigate(self, view: View) -> None:
        view = View(view)
        if view is View.DETAIL and self.session is None:
            raise ValueError("Select a listing to open its detail view.")
        if self.view is View.DETAIL and view is not View.DETAIL:
            self._close_session()
        self.view = view

    def select_listing(self, listing_id: str) -> Optional[ConversationSession]:
        listing = self.repository.get(listing_id)
        if listing is None:
            logger.warning("listing_not_found", extra={"listing_id": listing_id})
            return None
        self._close_session()
        # A fresh session rebuilds the grounding block from the current record.
        self.session = ConversationSession(listing, self._generator)
        self.view = View.DETAIL
        return self.session

    def leave_detail(self) -> None:
        self.navigate(View.BROWSE)

    def _close_session(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    async def ask(self, text: str) -> Optional[ConversationMessage]:
        session = self.session
        if session is None:
            return None
        return await session.submit(text)

    # Writes -------------------------------------------------------------------------
    async def create_listing(self, fields: Union[ListingFields, Mapping[str, Any]]) -> Optional[Listing]:
        try:
            listing = await self.store.create(fields, self.identity.identity)
        except FreeCycleError as exc:
            self.last_error = str(exc)
            logger.error("listing_create_failed", extra={"error": str(exc)[:200], "error_type": type(exc).__name__})
            return None
        self.last_error = None
        self.view = View.BROWSE
        return listing

    async def seed_demo_data(self) -> int:
        owner_id = self.identity.identity
        if not owner_id or self.store.degraded:
            return 0
        results = await asyncio.gather(
            *(self.store.create(fields, owner_id, image_color=color) for fields, color in DEMO_LISTINGS),
            return_exceptions=True,
        )
        created = 0
        for result in results:
            if isinstance(result, FreeCycleError):
                logger.error("demo_seed_failed", extra={"error": str(result)[:200]})
            elif isinstance(result, BaseException):
                raise result
            else:
                created += 1
        return created
