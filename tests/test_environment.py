import json

import pytest

from runtime.environment import RuntimeEnvironment, sanitize_app_id
from storage.documents import CollectionRef


def test_defaults_without_configuration():
    env = RuntimeEnvironment.from_env({})
    assert not env.sandbox
    assert not env.store_configured
    assert env.gemini_api_key == ""
    assert env.gemini_model == "gemini-1.5-flash-001"
    assert env.collection_ref() == CollectionRef(("listings",))


def test_standalone_configuration():
    env = RuntimeEnvironment.from_env(
        {
            "SUPABASE_URL": "https://example.supabase.co",
            "SUPABASE_ANON_KEY": "anon-key",
            "GEMINI_API_KEY": "AIza" + "k" * 35,
            "GEMINI_MODEL": "gemini-2.0-flash",
            "GEMINI_TIMEOUT": "12.5",
            "GIVEFREE_INITIAL_AUTH_TOKEN": "ignored-outside-sandbox",
        }
    )
    assert env.store_configured
    assert env.gemini_api_key.startswith("AIza")
    assert env.gemini_model == "gemini-2.0-flash"
    assert env.gemini_timeout == 12.5
    assert env.initial_auth_token is None


def test_placeholder_key_counts_as_unconfigured():
    env = RuntimeEnvironment.from_env(
        {"SUPABASE_URL": "https://example.supabase.co", "SUPABASE_ANON_KEY": "PASTE_YOUR_API_KEY_HERE"}
    )
    assert not env.store_configured


def test_sandbox_uses_injected_store_config_and_tenant_path():
    env = RuntimeEnvironment.from_env(
        {
            "GIVEFREE_SANDBOX": "true",
            "GIVEFREE_APP_ID": "team/app-1",
            "GIVEFREE_SANDBOX_STORE_CONFIG": json.dumps({"url": "https://sandbox.supabase.co", "key": "sandbox-key"}),
            "SUPABASE_URL": "https://other.supabase.co",
            "SUPABASE_ANON_KEY": "other",
            "GEMINI_API_KEY": "should-not-be-used-in-sandbox",
            "GIVEFREE_INITIAL_AUTH_TOKEN": "tok-123",
        }
    )
    assert env.sandbox
    assert env.supabase_url == "https://sandbox.supabase.co"
    assert env.supabase_key == "sandbox-key"
    assert env.gemini_api_key == ""
    assert env.initial_auth_token == "tok-123"
    ref = env.collection_ref()
    assert ref.segments == ("artifacts", "team_app-1", "public", "data", "listings")
    assert ref.tenant == "team_app-1"


def test_sandbox_with_broken_store_config_falls_back_to_plain_settings():
    env = RuntimeEnvironment.from_env(
        {
            "GIVEFREE_SANDBOX": "1",
            "GIVEFREE_SANDBOX_STORE_CONFIG": "{not json",
            "SUPABASE_URL": "https://example.supabase.co",
            "SUPABASE_SERVICE_ROLE_KEY": "service",
        }
    )
    assert env.supabase_url == "https://example.supabase.co"
    assert env.supabase_key == "service"
    assert env.app_id == "default-app-id"


def test_bad_timeout_uses_default():
    assert RuntimeEnvironment.from_env({"GEMINI_TIMEOUT": "soon"}).gemini_timeout == 30.0


def test_sanitize_app_id():
    assert sanitize_app_id("a/b/c") == "a_b_c"
    assert sanitize_app_id("") == "default-app-id"


@pytest.mark.parametrize(
    "segments",
    [(), ("artifacts", "app"), ("listings", ""), ("a/b",)],
)
def test_invalid_collection_paths_are_rejected(segments):
    with pytest.raises(ValueError):
        CollectionRef(segments)


def test_from_process_environment(monkeypatch):
    monkeypatch.setenv("GIVEFREE_DEMO_MODE", "yes")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-1.5-pro")
    monkeypatch.delenv("GIVEFREE_SANDBOX", raising=False)
    env = RuntimeEnvironment.from_env()
    assert env.demo_mode
    assert env.gemini_model == "gemini-1.5-pro"
