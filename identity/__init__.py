"""Identity provider adapter: the app only ever checks presence or absence."""

from .provider import AnonymousIdentityProvider, IdentityAdapter, IdentityProvider, SupabaseIdentityProvider

__all__ = ["AnonymousIdentityProvider", "IdentityAdapter", "IdentityProvider", "SupabaseIdentityProvider"]
