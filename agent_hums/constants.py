"""Configuration constants with trade-off documentation.

Each constant has a rationale explaining why this specific value was chosen.
Values that operators commonly tune are read from the environment and clamped
to a safe range.
"""

import os

# =============================================================================
# Environment Variable Helpers
# =============================================================================


def _parse_int_env(name: str, default: int, min_val: int, max_val: int) -> int:
    """Parse an integer environment variable with bounds clamping.

    Returns default if env var is unset or unparseable. Clamps to [min_val, max_val].
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(min_val, min(max_val, value))


def _parse_float_env(name: str, default: float, min_val: float, max_val: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(min_val, min(max_val, value))


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Server Configuration
# =============================================================================

SERVER_PORT = _parse_int_env("PORT", default=3001, min_val=1, max_val=65535)
# Why 3001: The Angular dev server owns 4200 and its proxy config points at 3001.

DEFAULT_CORS_ORIGINS = ["http://localhost:4200", "http://localhost:3000"]

MAX_MESSAGE_LENGTH = 32_000
# Why 32000: ~8K tokens. Keeps the whole prompt (system + history + message)
# well below the smallest context window in the default registry.

MAX_HISTORY_MESSAGES = 20
# Why 20: Recent turns carry the useful context; older turns only add tokens.

# =============================================================================
# Retry Configuration (seconds)
# =============================================================================

RETRY_MAX_ATTEMPTS = _parse_int_env("RETRY_MAX_ATTEMPTS", default=5, min_val=1, max_val=10)
# Why 5: Anthropic 529 bursts usually clear within 30-60s. Five attempts with
# the overloaded backoff cover ~75s of waiting before the fallback kicks in.

RETRY_INITIAL_DELAY = _parse_float_env("RETRY_INITIAL_DELAY", default=5.0, min_val=0.0, max_val=60.0)
RETRY_MAX_DELAY = _parse_float_env("RETRY_MAX_DELAY", default=120.0, min_val=0.0, max_val=600.0)
RETRY_MULTIPLIER = _parse_float_env("RETRY_MULTIPLIER", default=1.8, min_val=1.01, max_val=10.0)
# Why 5s x 1.8 capped at 120s: 5, 9, 16.2, 29.2 ... A gentler curve than x2
# gives the provider time to shed load without making users wait minutes.

RETRY_JITTER = _parse_bool_env("RETRY_JITTER", default=True)

JITTER_CAP = 0.2
# Why 0.2: +/-20% spreads simultaneous retries enough to avoid a thundering
# herd while keeping each wait close to the documented schedule.

# =============================================================================
# Fallback Configuration
# =============================================================================

MOCK_MODE = _parse_bool_env("ENABLE_MOCK_MODE", default=False)
# Explicit switch: every chat request is answered by the fallback synthesizer.

FALLBACK_ON_EXHAUSTION = _parse_bool_env("FALLBACK_ON_EXHAUSTION", default=True)
# When the transient retry budget of one request is exhausted, answer with a
# labeled simulated response instead of a 5xx. The threshold is exactly the
# policy's max_attempts consecutive transient failures within that request.

# =============================================================================
# LLM Configuration
# =============================================================================

LLM_DEFAULT_MAX_TOKENS = 4096
# Why 4096: Chat answers rarely exceed 1500 tokens; 4096 leaves headroom for
# tabular document summaries and stays within every provider's output cap.

LLM_REQUEST_TIMEOUT_SECONDS = _parse_float_env(
    "LLM_REQUEST_TIMEOUT_SECONDS", default=60.0, min_val=5.0, max_val=300.0
)

MAX_TOOL_ROUNDS = 4
# Why 4: search -> read -> act -> confirm covers every flow seen in practice.
# More rounds usually mean the model is looping on a failing tool.

ANTHROPIC_BASE_URL = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1/")
GROQ_BASE_URL = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")

CONVERSATION_MODEL = os.getenv("GROQ_CONVERSATION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")
TOOL_MODEL = os.getenv("GROQ_TOOL_MODEL", "llama-3.3-70b-versatile")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-3-5-haiku-latest")

MODEL_CONFIG_PATH = os.getenv("MODEL_CONFIG_PATH", "")
# Path to YAML model configuration file. If set and file exists, takes priority
# over the registry auto-detected from API key env vars.

# =============================================================================
# External Services
# =============================================================================

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_MAX_RESULTS = 10
# Why 10: Brave's free tier caps `count` at 20; 10 is plenty for a chat answer
# and keeps the tool result small in the prompt.

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_DRIVE_API = "https://www.googleapis.com/drive/v3"
GOOGLE_DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"

HTTP_TIMEOUT_SECONDS = 15.0
# Why 15: Brave and Google APIs answer in <2s normally; 15s tolerates slow
# networks without letting a tool call hold a request for the LLM timeout.

# =============================================================================
# Document Analysis
# =============================================================================

SUPPORTED_DOCUMENT_EXTENSIONS = (".pdf", ".docx", ".txt", ".csv", ".xlsx", ".md")

DOCUMENT_ANALYSIS_TIMEOUT_SECONDS = 20.0
# Why 20: Large spreadsheets are the slow path (~5-10s). Past 20s a partial
# result is more useful to the user than a stalled chat.

DOCUMENT_CHUNK_SIZE = 8000
# Why 8000 chars: ~2K tokens per chunk keeps summaries focused while still
# fitting several chunks in one prompt.

DOCUMENT_CHUNK_OVERLAP_RATIO = 0.1

DOCUMENT_PROMPT_CHAR_LIMIT = 5000
# Why 5000: Attached document content injected into the chat prompt is capped;
# the summary carries the rest.

MAX_SPREADSHEET_ROWS = 500
# Why 500: Keeps workbook extraction bounded; beyond that the LLM sees a sample.
