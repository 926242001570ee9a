"""Chat request dispatch: classify, shape, call, map the outcome.

``ChatDispatcher.handle`` is the only entry point the HTTP layer uses. It
holds immutable configuration plus shared clients; every per-request value
(tool records, message list, attempt counts) lives in locals, so one
instance serves concurrent requests.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from functools import partial
from typing import Any

import httpx

from agent_hums.config.settings import Settings
from agent_hums.constants import (
    CONVERSATION_MODEL,
    MAX_HISTORY_MESSAGES,
    MAX_TOOL_ROUNDS,
    TOOL_MODEL,
)
from agent_hums.errors import InvalidInput, MissingCredentialsError
from agent_hums.llm.classifier import DEFAULT_RULES, KeywordRule, classify_task
from agent_hums.llm.mock_responses import generate_mock_response, mock_model_name
from agent_hums.llm.prompts import build_lightweight_prompt, build_task_prompt
from agent_hums.llm.retry import (
    Failure,
    FallbackUsed,
    RetryController,
    get_retry_policy,
)
from agent_hums.llm.router import select_model
from agent_hums.llm.task_types import TaskType, get_task_requirement
from agent_hums.schemas import (
    Attachment,
    ChatRequest,
    ChatResponse,
    ClassifyResponse,
    ConversationMessage,
    DocumentAnalysis,
    ModelConfig,
    TokenUsage,
    ToolCallRecord,
)
from agent_hums.services.brave_search import BraveSearchClient
from agent_hums.services.document_analysis import DocumentAnalyzer
from agent_hums.services.google_calendar import GoogleCalendarClient
from agent_hums.services.google_drive import GoogleDriveClient
from agent_hums.tools.definitions import tool_schemas
from agent_hums.tools.executor import (
    AuthTokens,
    ToolEventRecorder,
    ToolExecutor,
    ToolListener,
    ToolServices,
    tool_result_message,
)
from agent_hums.utils.llm_client import (
    Completion,
    add_usage,
    api_key_for,
    build_model_registry,
    create_completion,
    resolve_model,
)

logger = logging.getLogger(__name__)

# Tools that operate on the request's attachments.
ATTACHMENT_TOOLS = ("uploadDriveFile", "analyzeDocument")

_FALLBACK_MODEL_NAMES = {
    TaskType.CONVERSATION: CONVERSATION_MODEL,
    TaskType.TOOL_EXECUTION: TOOL_MODEL,
    TaskType.COMPLEX_ANALYSIS: TOOL_MODEL,
}


@dataclass(frozen=True)
class TaskProfile:
    """Model, tools and sampling settings bound to one task type."""

    task_type: TaskType
    model: ModelConfig | None
    tools: tuple[str, ...]
    temperature: float
    max_tokens: int

    @property
    def model_name(self) -> str:
        return self.model.model_name if self.model else _FALLBACK_MODEL_NAMES[self.task_type]


@dataclass
class _RunResult:
    text: str
    attempts: int
    usage: TokenUsage | None = None
    fallback: FallbackUsed | None = None


def format_document_context(analysis: DocumentAnalysis) -> str:
    meta = analysis.metadata
    lines = [f"📎 Documento adjunto: {meta.file_name} ({meta.file_type}, {meta.word_count} palabras)"]
    if analysis.summary:
        lines.append(f"Resumen:\n{analysis.summary}")
    if analysis.content:
        lines.append(f"Contenido (extracto):\n{analysis.content}")
    return "\n\n".join(lines)


class ChatDispatcher:
    def __init__(
        self,
        settings: Settings,
        registry: dict[str, ModelConfig] | None = None,
        controller: RetryController | None = None,
        services: ToolServices | None = None,
        http_client: httpx.AsyncClient | None = None,
        rules: Sequence[KeywordRule] = DEFAULT_RULES,
    ):
        self.settings = settings
        self.registry = registry if registry is not None else build_model_registry(settings)
        self.controller = controller or RetryController(settings.retry_policy, settings.fallback)
        # Summaries run inside the document-analysis deadline; retry them briefly.
        self._summary_controller = RetryController(get_retry_policy("fast"))
        self.rules = tuple(rules)
        self.services = services or self._build_services(http_client)

    def _build_services(self, http_client: httpx.AsyncClient | None) -> ToolServices:
        use_model = self.settings.has_llm_credentials and not self.settings.mock_mode
        return ToolServices(
            search=BraveSearchClient(self.settings.brave_search_api_key, http_client),
            calendar=GoogleCalendarClient(http_client),
            drive=GoogleDriveClient(http_client),
            documents=DocumentAnalyzer(summarize=self.summarize if use_model else None),
        )

    # -------------------------------------------------------------------------
    # Shaping
    # -------------------------------------------------------------------------

    def profile(self, task_type: TaskType) -> TaskProfile:
        requirement = get_task_requirement(task_type)
        model_id = select_model(task_type, self.registry)
        return TaskProfile(
            task_type=task_type,
            model=self.registry.get(model_id) if model_id else None,
            tools=requirement.tools,
            temperature=requirement.temperature,
            max_tokens=requirement.max_tokens,
        )

    def classify(self, message: str, force_task_type: str | None = None) -> ClassifyResponse:
        task_type = classify_task(message, force_task_type, self.rules)
        profile = self.profile(task_type)
        return ClassifyResponse(
            task_type=task_type.value,
            model_id=profile.model.id if profile.model else None,
            tools=list(profile.tools),
        )

    def _credentials_available(self, profile: TaskProfile) -> bool:
        return profile.model is not None and bool(api_key_for(profile.model, self.settings))

    @staticmethod
    def _tools_for_request(
        profile: TaskProfile, attachments: Sequence[Attachment], documents_preanalyzed: bool
    ) -> list[str]:
        tools = list(profile.tools)
        if not attachments:
            tools = [t for t in tools if t not in ATTACHMENT_TOOLS]
        elif documents_preanalyzed:
            tools = [t for t in tools if t != "analyzeDocument"]
        return tools

    @staticmethod
    def _build_messages(
        system_prompt: str,
        history: Sequence[ConversationMessage],
        user_content: str,
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for item in history[-MAX_HISTORY_MESSAGES:]:
            messages.append({"role": item.role.value, "content": item.content})
        messages.append({"role": "user", "content": user_content})
        return messages

    # -------------------------------------------------------------------------
    # Upstream calls
    # -------------------------------------------------------------------------

    async def _complete(
        self,
        model: ModelConfig,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
        tools: list[dict[str, Any]] | None,
    ) -> Completion:
        client = resolve_model(model, self.settings)
        return await create_completion(
            client, model.model_name, list(messages), temperature, max_tokens, tools
        )

    async def summarize(self, prompt: str) -> str:
        """One-shot completion used for document summaries."""
        model_id = select_model(TaskType.COMPLEX_ANALYSIS, self.registry)
        if model_id is None:
            raise MissingCredentialsError("No model available for document summaries")
        model = self.registry[model_id]
        messages = [
            {"role": "system", "content": build_lightweight_prompt()},
            {"role": "user", "content": prompt},
        ]
        outcome = await self._summary_controller.execute(
            partial(self._complete, model, messages, 0.3, 1500, None),
            text_of=lambda c: c.text,
            label="document summary",
        )
        if isinstance(outcome, Failure):
            raise outcome.error
        return outcome.text

    async def _run_tool_loop(
        self,
        profile: TaskProfile,
        messages: list[dict[str, Any]],
        tools: list[str],
        executor: ToolExecutor,
        message: str,
    ) -> _RunResult:
        schemas = tool_schemas(tools) if tools else None
        credentials = self._credentials_available(profile)
        label = f"{profile.model_name} ({profile.task_type})"
        attempts = 0
        usage: TokenUsage | None = None

        for round_number in range(MAX_TOOL_ROUNDS + 1):
            # The last round offers no tools so the model has to answer in text.
            round_tools = schemas if round_number < MAX_TOOL_ROUNDS else None
            # Without a model, credentials_available is False and the controller
            # answers with the fallback before calling.
            call = partial(
                self._complete,
                profile.model,
                messages,
                profile.temperature,
                profile.max_tokens,
                round_tools,
            )
            outcome = await self.controller.execute(
                call,
                fallback_factory=lambda reason: generate_mock_response(message, reason),
                credentials_available=credentials,
                text_of=lambda c: c.text,
                label=label,
            )
            attempts += outcome.attempts_used

            if isinstance(outcome, Failure):
                raise outcome.error
            if isinstance(outcome, FallbackUsed):
                return _RunResult(text=outcome.text, attempts=attempts, usage=usage, fallback=outcome)

            completion: Completion = outcome.value
            usage = add_usage(usage, completion.usage)
            if not completion.tool_calls or round_tools is None:
                return _RunResult(text=outcome.text, attempts=attempts, usage=usage)

            logger.info(
                "Round %d: model requested %d tool call(s): %s",
                round_number + 1,
                len(completion.tool_calls),
                [c.name for c in completion.tool_calls],
            )
            messages.append(completion.assistant_message())
            for tool_call in completion.tool_calls:
                if tool_call.name not in tools:
                    logger.warning("Model requested tool %s outside its profile", tool_call.name)
                record = await executor.execute(tool_call.name, tool_call.arguments)
                messages.append(tool_result_message(tool_call.id, record))

        raise AssertionError("tool loop exited without a result")

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def _preanalyze(
        self, attachments: Sequence[Attachment], executor: ToolExecutor
    ) -> list[str]:
        contexts = []
        for attachment in attachments:
            record = await executor.execute(
                "analyzeDocument",
                {"fileName": attachment.name, "analysisType": attachment.analysis_type},
            )
            if record.success:
                contexts.append(format_document_context(DocumentAnalysis.model_validate(record.output)))
            else:
                contexts.append(
                    f"📎 Documento adjunto: {attachment.name} (no se pudo analizar: {record.output})"
                )
        return contexts

    async def handle(
        self,
        request: ChatRequest,
        tokens: AuthTokens | None = None,
        listener: ToolListener | None = None,
    ) -> ChatResponse:
        """Serve one chat request.

        Raises:
            InvalidInput: empty message or unknown forced task type.
            UpstreamError: the provider failed and no fallback applies.
        """
        if not request.message.strip():
            raise InvalidInput("Message must not be empty")
        task_type = classify_task(request.message, request.force_task_type, self.rules)
        profile = self.profile(task_type)
        logger.info(
            "Dispatching conversation=%s task=%s model=%s attachments=%d",
            request.conversation_id,
            task_type,
            profile.model.id if profile.model else None,
            len(request.attachments),
        )

        recorder = ToolEventRecorder(listener)
        executor = ToolExecutor(self.services, recorder, tokens, request.attachments)

        user_content = request.message
        preanalyzed = False
        if request.attachments:
            contexts = await self._preanalyze(request.attachments, executor)
            user_content = "\n\n".join([request.message, *contexts])
            preanalyzed = True

        system_prompt = build_task_prompt(
            task_type,
            conversation_length=len(request.conversation_history),
            documents_preanalyzed=preanalyzed,
        )
        messages = self._build_messages(system_prompt, request.conversation_history, user_content)
        tools = self._tools_for_request(profile, request.attachments, preanalyzed)

        result = await self._run_tool_loop(profile, messages, tools, executor, request.message)

        records: list[ToolCallRecord] = recorder.records
        if result.fallback is not None:
            simulated_records = result.fallback.value or []
            records = [*records, *simulated_records]
            tools_used = list(dict.fromkeys(r.name for r in records))
            return ChatResponse(
                response=result.text,
                task_type=task_type.value,
                model_used=mock_model_name(profile.model_name, result.fallback.reason),
                tools_used=tools_used or None,
                tool_calls=records,
                simulated=True,
                fallback_reason=result.fallback.reason,
                attempts=result.attempts,
                usage=result.usage,
                conversation_id=request.conversation_id,
            )

        return ChatResponse(
            response=result.text,
            task_type=task_type.value,
            model_used=profile.model_name,
            tools_used=recorder.tool_names or None,
            tool_calls=records,
            simulated=False,
            attempts=result.attempts,
            usage=result.usage,
            conversation_id=request.conversation_id,
        )
