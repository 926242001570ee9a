from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agent_hums.constants import MAX_MESSAGE_LENGTH


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _CamelModel(BaseModel):
    """Accepts and emits the camelCase field names the Angular client uses."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationMessage(_CamelModel):
    role: MessageRole
    content: str


class Attachment(_CamelModel):
    """A document sent alongside a chat message, base64-encoded."""

    name: str
    base64: str
    mime_type: str = Field(default="application/octet-stream", alias="mimeType")
    analysis_type: str = Field(default="general", alias="analysisType")


class ChatRequest(_CamelModel):
    message: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    conversation_history: list[ConversationMessage] = Field(
        default_factory=list, alias="conversationHistory"
    )
    # Kept as a raw string so an unknown value surfaces as InvalidInput from the
    # classifier instead of a generic 422.
    force_task_type: str | None = Field(default=None, alias="forceTaskType")
    conversation_id: str | None = Field(default=None, alias="conversationId")
    attachments: list[Attachment] = Field(default_factory=list)

    @field_validator("force_task_type")
    @classmethod
    def _blank_override_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class TokenUsage(_CamelModel):
    input_tokens: int = Field(default=0, alias="inputTokens")
    output_tokens: int = Field(default=0, alias="outputTokens")
    total_tokens: int = Field(default=0, alias="totalTokens")


class ToolCallRecord(_CamelModel):
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    success: bool = True
    execution_ms: float = Field(default=0.0, alias="executionMs")
    timestamp: str = Field(default_factory=_utc_now_iso)


class ChatResponse(_CamelModel):
    response: str
    task_type: str = Field(alias="taskType")
    model_used: str = Field(alias="modelUsed")
    tools_used: list[str] | None = Field(default=None, alias="toolsUsed")
    tool_calls: list[ToolCallRecord] = Field(default_factory=list, alias="toolCalls")
    simulated: bool = False
    fallback_reason: str | None = Field(default=None, alias="fallbackReason")
    attempts: int = 0
    usage: TokenUsage | None = None
    conversation_id: str | None = Field(default=None, alias="conversationId")
    timestamp: str = Field(default_factory=_utc_now_iso)


class ErrorResponse(BaseModel):
    error: str
    message: str


class ClassifyRequest(_CamelModel):
    message: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    force_task_type: str | None = Field(default=None, alias="forceTaskType")


class ClassifyResponse(_CamelModel):
    task_type: str = Field(alias="taskType")
    model_id: str | None = Field(default=None, alias="modelId")
    tools: list[str] = Field(default_factory=list)


# =============================================================================
# Model registry
# =============================================================================


class ModelProvider(StrEnum):
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    OPENAI = "openai"
    CUSTOM = "custom"


class CostTier(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3


class ModelConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    provider: ModelProvider
    model_name: str
    display_name: str = ""
    api_base: str
    api_key_env: str = ""
    supports_tools: bool = True
    max_output_tokens: int = 4096
    max_context_tokens: int = 128_000
    cost_tier: CostTier = CostTier.MEDIUM
    reasoning_score: int = Field(default=5, ge=0, le=10)
    latency_score: int = Field(default=5, ge=0, le=10)
    enabled: bool = True


# =============================================================================
# Collaborator payloads
# =============================================================================


class SearchResult(BaseModel):
    title: str
    url: str
    snippet: str


class CalendarEvent(BaseModel):
    id: str = ""
    title: str = "Sin título"
    description: str | None = None
    start_date_time: str = ""
    end_date_time: str = ""
    location: str | None = None
    html_link: str | None = None


class DriveFile(BaseModel):
    id: str
    name: str = "Sin nombre"
    mime_type: str = "application/octet-stream"
    size: str | None = None
    modified_time: str | None = None
    web_view_link: str | None = None


class ExtractedEntity(BaseModel):
    type: str
    value: str
    confidence: float


class DocumentMetadata(BaseModel):
    file_name: str
    file_type: str
    file_size: int = 0
    word_count: int = 0
    pages: int | None = None
    sheets: list[str] = Field(default_factory=list)
    headers: list[str] = Field(default_factory=list)
    chunks: int = 1
    estimated_tokens: int = 0
    processing_strategy: str = "single-pass"
    processed_at: str = Field(default_factory=_utc_now_iso)


class DocumentAnalysis(BaseModel):
    success: bool
    content: str
    summary: str | None = None
    metadata: DocumentMetadata
    entities: list[ExtractedEntity] = Field(default_factory=list)
    error: str | None = None
