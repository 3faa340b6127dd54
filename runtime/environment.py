from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from storage.documents import CollectionRef
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_APP_ID = "default-app-id"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash-001"
PLACEHOLDER_KEY = "PASTE_YOUR_API_KEY_HERE"
LISTINGS_COLLECTION = "listings"

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def sanitize_app_id(app_id: str) -> str:
    """Make an app id safe to use as a single collection path segment."""
    return (app_id or DEFAULT_APP_ID).replace("/", "_")


def _parse_sandbox_store_config(raw: Optional[str]) -> Optional[Dict[str, str]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("sandbox_store_config_unparseable", extra={"error": str(exc)})
        return None
    if not isinstance(parsed, dict):
        logger.warning("sandbox_store_config_unparseable", extra={"error": "not an object"})
        return None
    return {"url": str(parsed.get("url") or ""), "key": str(parsed.get("key") or "")}


@dataclass(frozen=True)
class RuntimeEnvironment:
    """Everything environment-dependent, resolved once at startup."""

    sandbox: bool = False
    app_id: str = DEFAULT_APP_ID
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    demo_mode: bool = False
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_timeout: float = 30.0
    initial_auth_token: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RuntimeEnvironment":
        if env is None:
            load_dotenv()
            env = os.environ
        sandbox = _flag(env.get("GIVEFREE_SANDBOX"))

        url: Optional[str] = None
        key: Optional[str] = None
        if sandbox:
            sandbox_config = _parse_sandbox_store_config(env.get("GIVEFREE_SANDBOX_STORE_CONFIG"))
            if sandbox_config:
                url, key = sandbox_config["url"] or None, sandbox_config["key"] or None
        if not url or not key:
            url = env.get("SUPABASE_URL") or None
            key = env.get("SUPABASE_ANON_KEY") or env.get("SUPABASE_SERVICE_ROLE_KEY") or None

        try:
            timeout = float(env.get("GEMINI_TIMEOUT", "30"))
        except ValueError:
            timeout = 30.0

        environment = cls(
            sandbox=sandbox,
            app_id=sanitize_app_id(env.get("GIVEFREE_APP_ID") or DEFAULT_APP_ID),
            supabase_url=url,
            supabase_key=key,
            demo_mode=_flag(env.get("GIVEFREE_DEMO_MODE")),
            # The sandbox reaches the endpoint through its own authorization path.
            gemini_api_key="" if sandbox else (env.get("GEMINI_API_KEY") or ""),
            gemini_model=env.get("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
            gemini_timeout=timeout,
            initial_auth_token=(env.get("GIVEFREE_INITIAL_AUTH_TOKEN") or None) if sandbox else None,
        )
        logger.info(
            "runtime_environment_resolved",
            extra={
                "sandbox": environment.sandbox,
                "store_configured": environment.store_configured,
                "demo_mode": environment.demo_mode,
                "gemini_model": environment.gemini_model,
            },
        )
        return environment

    @property
    def store_configured(self) -> bool:
        if not self.supabase_url or not self.supabase_key:
            return False
        return self.supabase_key != PLACEHOLDER_KEY

    def collection_ref(self) -> CollectionRef:
        if self.sandbox:
            return CollectionRef(
                ("artifacts", self.app_id, "public", "data", LISTINGS_COLLECTION),
                tenant=self.app_id,
            )
        return CollectionRef((LISTINGS_COLLECTION,))
