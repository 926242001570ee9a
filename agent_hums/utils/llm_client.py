import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
import json_repair
from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
)

from agent_hums.config.loader import load_model_config
from agent_hums.config.settings import Settings
from agent_hums.constants import (
    ANTHROPIC_BASE_URL,
    ANTHROPIC_MODEL,
    CONVERSATION_MODEL,
    GROQ_BASE_URL,
    LLM_DEFAULT_MAX_TOKENS,
    LLM_REQUEST_TIMEOUT_SECONDS,
    TOOL_MODEL,
)
from agent_hums.errors import (
    ErrorKind,
    MissingCredentialsError,
    PermanentUpstreamError,
    TransientUpstreamError,
    UpstreamError,
    classify_error,
)
from agent_hums.schemas import CostTier, ModelConfig, ModelProvider, TokenUsage

logger = logging.getLogger(__name__)

LLM_TIMEOUT = httpx.Timeout(connect=10.0, read=LLM_REQUEST_TIMEOUT_SECONDS, write=30.0, pool=30.0)

_client_cache: dict[tuple[str, str], AsyncOpenAI] = {}


def _get_or_create_client(api_key: str, base_url: str) -> AsyncOpenAI:
    cache_key = (base_url, api_key)
    if cache_key not in _client_cache:
        # Retries are owned by RetryController; the SDK must not retry on its own.
        _client_cache[cache_key] = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=LLM_TIMEOUT,
            max_retries=0,
        )
    return _client_cache[cache_key]


async def close_clients() -> None:
    for client in _client_cache.values():
        await client.close()
    _client_cache.clear()


# =============================================================================
# Model registry
# =============================================================================


def _infer_capabilities(provider: ModelProvider, model_name: str) -> dict[str, Any]:
    name_lower = model_name.lower()

    if provider == ModelProvider.ANTHROPIC:
        is_small = "haiku" in name_lower
        return {
            "max_context_tokens": 200_000,
            "cost_tier": CostTier.MEDIUM if is_small else CostTier.HIGH,
            "reasoning_score": 9 if is_small else 10,
            "latency_score": 6 if is_small else 4,
        }

    if provider == ModelProvider.GROQ:
        is_scout = "scout" in name_lower or "8b" in name_lower
        return {
            "max_context_tokens": 128_000,
            "cost_tier": CostTier.LOW if is_scout else CostTier.MEDIUM,
            "reasoning_score": 6 if is_scout else 8,
            "latency_score": 9 if is_scout else 7,
        }

    return {
        "max_context_tokens": 128_000,
        "cost_tier": CostTier.MEDIUM,
        "reasoning_score": 7,
        "latency_score": 6,
    }


def _registry_entry(
    provider: ModelProvider,
    model_name: str,
    api_base: str,
    api_key_env: str,
    display_name: str,
) -> ModelConfig:
    model_id = f"{provider.value}:{model_name}"
    return ModelConfig(
        id=model_id,
        provider=provider,
        model_name=model_name,
        display_name=display_name,
        api_base=api_base,
        api_key_env=api_key_env,
        supports_tools=True,
        max_output_tokens=LLM_DEFAULT_MAX_TOKENS,
        **_infer_capabilities(provider, model_name),
    )


def build_default_registry(settings: Settings) -> dict[str, ModelConfig]:
    """Registry auto-detected from the API keys present in ``settings``."""
    registry: dict[str, ModelConfig] = {}

    if settings.groq_api_key:
        for name in dict.fromkeys((CONVERSATION_MODEL, TOOL_MODEL)):
            entry = _registry_entry(
                ModelProvider.GROQ, name, GROQ_BASE_URL, "GROQ_API_KEY", f"{name} (Groq)"
            )
            registry[entry.id] = entry

    if settings.anthropic_api_key:
        entry = _registry_entry(
            ModelProvider.ANTHROPIC,
            ANTHROPIC_MODEL,
            ANTHROPIC_BASE_URL,
            "ANTHROPIC_API_KEY",
            f"{ANTHROPIC_MODEL} (Anthropic)",
        )
        registry[entry.id] = entry

    return registry


def build_model_registry(settings: Settings) -> dict[str, ModelConfig]:
    if settings.models_file:
        yaml_registry = load_model_config(settings.models_file)
        if yaml_registry:
            return yaml_registry
        logger.warning("Falling back to auto-detected model registry")
    return build_default_registry(settings)


def list_models(registry: dict[str, ModelConfig]) -> list[ModelConfig]:
    return [m for m in registry.values() if m.enabled]


def api_key_for(cfg: ModelConfig, settings: Settings) -> str:
    if cfg.provider == ModelProvider.ANTHROPIC:
        return settings.anthropic_api_key
    if cfg.provider == ModelProvider.GROQ:
        return settings.groq_api_key
    if cfg.provider == ModelProvider.OPENAI:
        return settings.openai_api_key
    # Self-hosted OpenAI-compatible servers usually ignore the key.
    return "not-needed"


def resolve_model(cfg: ModelConfig, settings: Settings) -> AsyncOpenAI:
    api_key = api_key_for(cfg, settings)
    if not api_key:
        raise MissingCredentialsError(f"No API key configured for model {cfg.id}")
    return _get_or_create_client(api_key, cfg.api_base)


# =============================================================================
# Chat completions
# =============================================================================


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: dict[str, Any]
    raw_arguments: str = "{}"


@dataclass(frozen=True)
class Completion:
    text: str
    model: str
    tool_calls: tuple[ToolCallRequest, ...] = field(default_factory=tuple)
    usage: TokenUsage | None = None
    finish_reason: str | None = None

    def assistant_message(self) -> dict[str, Any]:
        """The assistant turn to append before sending tool results back."""
        message: dict[str, Any] = {"role": "assistant", "content": self.text or None}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.raw_arguments},
                }
                for call in self.tool_calls
            ]
        return message


def parse_tool_arguments(raw: str | None) -> dict[str, Any]:
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Tool arguments are not valid JSON (%s), attempting json_repair...", e)
        parsed = json_repair.loads(raw)
    return parsed if isinstance(parsed, dict) else {}


def to_upstream_error(exc: Exception) -> UpstreamError:
    status = getattr(exc, "status_code", None)
    message = f"{type(exc).__name__}: {exc}"
    if classify_error(exc) is ErrorKind.TRANSIENT:
        return TransientUpstreamError(message, status_code=status)
    return PermanentUpstreamError(message, status_code=status)


def add_usage(total: TokenUsage | None, extra: TokenUsage | None) -> TokenUsage | None:
    if extra is None:
        return total
    if total is None:
        return extra
    return TokenUsage(
        input_tokens=total.input_tokens + extra.input_tokens,
        output_tokens=total.output_tokens + extra.output_tokens,
        total_tokens=total.total_tokens + extra.total_tokens,
    )


async def create_completion(
    client: AsyncOpenAI,
    model_name: str,
    messages: list[dict[str, Any]],
    temperature: float,
    max_tokens: int | None = None,
    tools: list[dict[str, Any]] | None = None,
) -> Completion:
    """Send one chat-completions request.

    Raises:
        TransientUpstreamError: rate limited, overloaded, 5xx, timeout or
            connection failure.
        PermanentUpstreamError: any other provider error, or a response with
            neither text nor tool calls.
    """
    effective_max_tokens = max_tokens or LLM_DEFAULT_MAX_TOKENS
    logger.info(
        "LLM request starting (model=%s, max_tokens=%s, tools=%d)",
        model_name,
        effective_max_tokens,
        len(tools or []),
    )
    kwargs: dict[str, Any] = {
        "model": model_name,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": effective_max_tokens,
    }
    if tools:
        kwargs["tools"] = tools
        kwargs["tool_choice"] = "auto"

    start_time = time.perf_counter()
    try:
        completion = await client.chat.completions.create(**kwargs)
    except (APIStatusError, APIConnectionError) as e:
        elapsed = time.perf_counter() - start_time
        logger.error("LLM request failed after %.2fs: %s: %s", elapsed, type(e).__name__, e)
        raise to_upstream_error(e) from e
    elapsed = time.perf_counter() - start_time
    logger.info("LLM request completed in %.2fs", elapsed)

    if not completion.choices:
        raise PermanentUpstreamError("LLM returned no choices")
    choice = completion.choices[0]
    message = choice.message

    tool_calls = tuple(
        ToolCallRequest(
            id=call.id,
            name=call.function.name,
            arguments=parse_tool_arguments(call.function.arguments),
            raw_arguments=call.function.arguments or "{}",
        )
        for call in (message.tool_calls or [])
    )
    text = message.content or ""
    if not text and not tool_calls:
        raise PermanentUpstreamError("LLM returned empty response")

    usage = None
    if completion.usage:
        usage = TokenUsage(
            input_tokens=completion.usage.prompt_tokens,
            output_tokens=completion.usage.completion_tokens,
            total_tokens=completion.usage.total_tokens,
        )

    return Completion(
        text=text,
        model=completion.model or model_name,
        tool_calls=tool_calls,
        usage=usage,
        finish_reason=choice.finish_reason,
    )
