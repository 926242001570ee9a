"""Process-wide configuration, built once at startup.

``load_settings`` reads the environment (after loading ``.env``) and an
optional YAML file named by ``HUMS_CONFIG_PATH``. The resulting frozen
``Settings`` object is passed explicitly to the dispatcher, the retry
controller and the collaborator services; nothing below this module reads
API keys or the mock-mode flag from the environment on its own.

YAML layout (every key optional)::

    mock_mode: false
    fallback_on_exhaustion: true
    cors_origins: ["http://localhost:4200"]
    retry:
      policy: overloaded        # start from a named preset
      max_attempts: 4           # then override single fields
      jitter: false
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from agent_hums.config.loader import load_yaml_file
from agent_hums.constants import (
    DEFAULT_CORS_ORIGINS,
    FALLBACK_ON_EXHAUSTION,
    MOCK_MODE,
    MODEL_CONFIG_PATH,
    SERVER_PORT,
)
from agent_hums.llm.retry import FallbackSettings, RetryPolicy, get_retry_policy

logger = logging.getLogger(__name__)

_RETRY_FIELDS = ("max_attempts", "initial_delay", "max_delay", "multiplier", "jitter", "jitter_cap")


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    anthropic_api_key: str = ""
    groq_api_key: str = ""
    openai_api_key: str = ""
    brave_search_api_key: str = ""
    google_client_id: str = ""
    environment: str = "development"
    port: int = SERVER_PORT
    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    mock_mode: bool = MOCK_MODE
    fallback_on_exhaustion: bool = FALLBACK_ON_EXHAUSTION
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    models_file: str = MODEL_CONFIG_PATH

    @property
    def is_development(self) -> bool:
        return self.environment != "production"

    @property
    def has_llm_credentials(self) -> bool:
        return bool(self.anthropic_api_key or self.groq_api_key or self.openai_api_key)

    @property
    def fallback(self) -> FallbackSettings:
        return FallbackSettings(
            mock_mode=self.mock_mode,
            fallback_on_exhaustion=self.fallback_on_exhaustion,
        )

    def masked(self) -> dict[str, str]:
        """Key presence summary that is safe to log."""
        return {
            "ANTHROPIC_API_KEY": _mask(self.anthropic_api_key),
            "GROQ_API_KEY": _mask(self.groq_api_key),
            "BRAVE_SEARCH_API_KEY": _mask(self.brave_search_api_key),
        }


def _mask(value: str) -> str:
    return f"{value[:6]}..." if value else "NOT FOUND"


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _build_retry_policy(env: Mapping[str, str], overrides: dict[str, Any] | None) -> RetryPolicy:
    overrides = dict(overrides or {})
    preset = overrides.pop("policy", None) or env.get("RETRY_POLICY")
    policy = get_retry_policy(preset) if preset else RetryPolicy()
    fields = {k: v for k, v in overrides.items() if k in _RETRY_FIELDS}
    unknown = set(overrides) - set(_RETRY_FIELDS)
    if unknown:
        logger.warning("Ignoring unknown retry settings: %s", sorted(unknown))
    return replace(policy, **fields) if fields else policy


def load_settings(
    env: Mapping[str, str] | None = None,
    config_path: str | None = None,
) -> Settings:
    if env is None:
        load_dotenv()
        env = os.environ

    data = load_yaml_file(config_path or env.get("HUMS_CONFIG_PATH", "")) or {}

    origins = data.get("cors_origins")
    if origins is None and env.get("CORS_ORIGINS"):
        origins = [o.strip() for o in env["CORS_ORIGINS"].split(",") if o.strip()]

    settings = Settings(
        anthropic_api_key=env.get("ANTHROPIC_API_KEY", "").strip(),
        groq_api_key=env.get("GROQ_API_KEY", "").strip(),
        openai_api_key=env.get("OPENAI_API_KEY", "").strip(),
        brave_search_api_key=env.get("BRAVE_SEARCH_API_KEY", "").strip(),
        google_client_id=env.get("GOOGLE_CLIENT_ID", "").strip(),
        environment=env.get("NODE_ENV", env.get("APP_ENV", "development")),
        port=int(data.get("port", SERVER_PORT)),
        cors_origins=origins or list(DEFAULT_CORS_ORIGINS),
        mock_mode=bool(data.get("mock_mode", _env_bool(env, "ENABLE_MOCK_MODE", MOCK_MODE))),
        fallback_on_exhaustion=bool(
            data.get(
                "fallback_on_exhaustion",
                _env_bool(env, "FALLBACK_ON_EXHAUSTION", FALLBACK_ON_EXHAUSTION),
            )
        ),
        retry_policy=_build_retry_policy(env, data.get("retry")),
        models_file=str(data.get("models_file", env.get("MODEL_CONFIG_PATH", MODEL_CONFIG_PATH))),
    )

    logger.info("Environment keys: %s", settings.masked())
    if not settings.has_llm_credentials:
        logger.warning("No LLM API key configured; chat requests will get simulated answers")
    return settings
