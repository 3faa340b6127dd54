from __future__ import annotations

import hashlib
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from supabase import AsyncClient

from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

IdentityCallback = Callable[[Optional[str]], None]


class IdentityProvider(ABC):
    """External auth flow. Identities are opaque strings."""

    @abstractmethod
    async def sign_in(self, custom_token: Optional[str] = None) -> Optional[str]:
        ...

    @abstractmethod
    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register for identity changes; returns an unsubscribe function."""
        ...

    async def sign_out(self) -> None:
        return None


class AnonymousIdentityProvider(IdentityProvider):
    """Local provider for demo mode and tests.

    Anonymous sign-in mints a random id; a custom token maps to a stable id
    derived from the token.
    """

    def __init__(self) -> None:
        self._callbacks: List[IdentityCallback] = []
        self.current: Optional[str] = None

    async def sign_in(self, custom_token: Optional[str] = None) -> Optional[str]:
        if custom_token:
            identity = "tok_" + hashlib.sha256(custom_token.encode("utf-8")).hexdigest()[:16]
        else:
            identity = "anon_" + uuid.uuid4().hex[:16]
        self._set(identity)
        return identity

    async def sign_out(self) -> None:
        self._set(None)

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)
        callback(self.current)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def _set(self, identity: Optional[str]) -> None:
        if identity == self.current:
            return
        self.current = identity
        for callback in list(self._callbacks):
            callback(identity)


def _user_id(obj: Any) -> Optional[str]:
    user = getattr(obj, "user", None)
    user_id = getattr(user, "id", None)
    return str(user_id) if user_id else None


class SupabaseIdentityProvider(IdentityProvider):
    """Supabase Auth: anonymous sign-in, or a pre-issued access token in the sandbox."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def sign_in(self, custom_token: Optional[str] = None) -> Optional[str]:
        if custom_token:
            resp = await self._client.auth.get_user(custom_token)
        else:
            resp = await self._client.auth.sign_in_anonymously()
        return _user_id(resp)

    async def sign_out(self) -> None:
        await self._client.auth.sign_out()

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        def _listener(event: Any, session: Any) -> None:
            callback(_user_id(session))

        subscription = self._client.auth.on_auth_state_change(_listener)
        return subscription.unsubscribe


class IdentityAdapter:
    """Turns a provider's auth flow into "current identity or None".

    Sign-in failures are logged and leave the identity unset; they never
    propagate.
    """

    def __init__(self, provider: IdentityProvider, *, custom_token: Optional[str] = None) -> None:
        self._provider = provider
        self._custom_token = custom_token
        self._callbacks: List[IdentityCallback] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.identity: Optional[str] = None

    @property
    def signed_in(self) -> bool:
        return self.identity is not None

    async def start(self) -> Optional[str]:
        if self._unsubscribe is None:
            self._unsubscribe = self._provider.on_change(self._changed)
        try:
            identity = await self._provider.sign_in(self._custom_token)
        except Exception as exc:
            logger.error(
                "identity_sign_in_failed",
                extra={"error": str(exc)[:200], "custom_token_used": bool(self._custom_token)},
            )
            return self.identity
        if identity != self.identity:
            self._changed(identity)
        return self.identity

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def _changed(self, identity: Optional[str]) -> None:
        if identity == self.identity:
            return
        self.identity = identity
        logger.info("identity_changed", extra={"signed_in": identity is not None})
        for callback in list(self._callbacks):
            callback(identity)

    def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._callbacks.clear()
