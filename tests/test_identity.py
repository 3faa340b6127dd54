import asyncio

from identity.provider import AnonymousIdentityProvider, IdentityAdapter, IdentityProvider


class BrokenProvider(IdentityProvider):
    async def sign_in(self, custom_token=None):
        raise RuntimeError("auth service unavailable")

    def on_change(self, callback):
        return lambda: None


def test_anonymous_sign_in_sets_identity_and_notifies():
    async def scenario():
        adapter = IdentityAdapter(AnonymousIdentityProvider())
        seen = []
        adapter.on_change(seen.append)
        identity = await adapter.start()
        assert identity.startswith("anon_")
        assert adapter.signed_in
        assert seen == [identity]

    asyncio.run(scenario())


def test_custom_token_maps_to_stable_identity():
    async def scenario():
        first = await IdentityAdapter(AnonymousIdentityProvider(), custom_token="tok-123").start()
        second = await IdentityAdapter(AnonymousIdentityProvider(), custom_token="tok-123").start()
        assert first == second
        assert first.startswith("tok_")

    asyncio.run(scenario())


def test_sign_in_failure_leaves_identity_unset():
    async def scenario():
        adapter = IdentityAdapter(BrokenProvider())
        assert await adapter.start() is None
        assert not adapter.signed_in

    asyncio.run(scenario())


def test_sign_out_and_dispose():
    async def scenario():
        provider = AnonymousIdentityProvider()
        adapter = IdentityAdapter(provider)
        seen = []
        adapter.on_change(seen.append)
        await adapter.start()
        await provider.sign_out()
        assert adapter.identity is None
        assert seen[-1] is None

        adapter.dispose()
        await provider.sign_in()
        assert adapter.identity is None

    asyncio.run(scenario())
