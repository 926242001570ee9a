"""Synthetic answers used when the real provider is unavailable.

Every answer produced here is explicitly labeled as simulated, both in the
text shown to the user and in the ``simulated`` tool records, so the UI can
tell it apart from a real completion.
"""

from __future__ import annotations

import logging
import random

from agent_hums.llm.classifier import normalize_text
from agent_hums.llm.retry import FallbackReason
from agent_hums.schemas import ToolCallRecord

logger = logging.getLogger(__name__)

MOCK_MODEL_SUFFIX = "-mock"
FALLBACK_MODEL_SUFFIX = "-fallback"

_TOOL_HINTS: dict[str, tuple[str, ...]] = {
    "searchWeb": ("busca", "search", "noticias", "news", "informacion", "ultimas"),
    "listCalendarEvents": ("calendario", "calendar", "reunion", "meeting", "cita", "evento"),
    "listDriveFiles": ("drive", "documento", "archivo", "file", "pdf", "guardar"),
    "analyzeDocument": ("analiza", "analyze", "resumen", "summary", "extracto"),
}

_TOOL_LINES: dict[str, str] = {
    "searchWeb": "🔍 **Búsqueda Web**: Encontré información relevante en internet",
    "listCalendarEvents": "📅 **Google Calendar**: Revisé tu calendario para eventos relacionados",
    "listDriveFiles": "📄 **Google Drive**: Accedí a documentos en tu Drive",
    "analyzeDocument": "📊 **Análisis de Documentos**: Procesé documentos adjuntos",
}

_REASON_NOTES: dict[str, str] = {
    FallbackReason.MOCK_MODE: "El modo de pruebas está activo.",
    FallbackReason.MISSING_CREDENTIALS: (
        "El servidor no tiene configuradas las credenciales del proveedor de IA."
    ),
    FallbackReason.RETRIES_EXHAUSTED: (
        "El proveedor de IA está sobrecargado y no respondió tras varios reintentos."
    ),
}

SIMULATED_NOTICE = "⚠️ *Respuesta simulada: no proviene del modelo real.*"


def determine_mock_tools(message: str) -> list[str]:
    """Tools a real run would most likely have used; web search by default."""
    normalized = normalize_text(message)
    tools = [
        tool
        for tool, hints in _TOOL_HINTS.items()
        if any(hint in normalized for hint in hints)
    ]
    return tools or ["searchWeb"]


def build_mock_message(message: str, tools: list[str], reason: str) -> str:
    lines = ["He procesado tu consulta utilizando las siguientes herramientas:", ""]
    lines.extend(_TOOL_LINES[tool] for tool in tools if tool in _TOOL_LINES)
    lines.append("")
    lines.append("**Respuesta Simulada**")
    lines.append(
        f"{_REASON_NOTES.get(reason, '')} En condiciones normales recibirías información "
        f'real y actualizada basada en tu consulta: "{message}"'
    )
    lines.append("")
    lines.append(SIMULATED_NOTICE)
    return "\n".join(lines)


def generate_mock_response(
    message: str,
    reason: str = FallbackReason.MOCK_MODE,
    rng: random.Random | None = None,
) -> tuple[str, list[ToolCallRecord]]:
    """Return the simulated answer text and its synthetic tool records."""
    logger.info("Generating simulated response (reason=%s)", reason)
    rng = rng or random.Random()
    tools = determine_mock_tools(message)
    records = [
        ToolCallRecord(
            name=tool,
            input={"query": message},
            output={"status": "simulated"},
            success=True,
            execution_ms=float(rng.randint(500, 2500)),
        )
        for tool in tools
    ]
    return build_mock_message(message, tools, reason), records


def mock_model_name(model_name: str, reason: str) -> str:
    suffix = MOCK_MODEL_SUFFIX if reason == FallbackReason.MOCK_MODE else FALLBACK_MODEL_SUFFIX
    return f"{model_name}{suffix}"
