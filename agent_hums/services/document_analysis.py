"""Document analysis: extraction, entities, chunked summaries.

``DocumentAnalyzer.analyze`` never blocks a chat request for longer than its
timeout. When the deadline passes it returns a partial result flagged with
``processing_strategy="timeout-limited"`` instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from agent_hums.constants import DOCUMENT_ANALYSIS_TIMEOUT_SECONDS, DOCUMENT_PROMPT_CHAR_LIMIT
from agent_hums.errors import DocumentParseError
from agent_hums.schemas import DocumentAnalysis, DocumentMetadata, ExtractedEntity
from agent_hums.utils.document_parser import (
    decode_base64,
    extract_text,
    get_file_extension,
    is_supported,
)
from agent_hums.utils.text_chunker import TextChunk, TextChunker

logger = logging.getLogger(__name__)

# Receives a prompt, returns the model's answer.
SummarizeFn = Callable[[str], Awaitable[str]]

ANALYSIS_TYPES = ("general", "summary", "extraction", "legal", "financial", "technical", "medical")

_ANALYSIS_FOCUS = {
    "general": "Provide a concise analysis focusing on key information and main points.",
    "summary": (
        "Create a comprehensive summary highlighting: main topics, key findings, "
        "important details, and conclusions."
    ),
    "extraction": (
        "Extract and list all important data: names, dates, numbers, addresses, emails, "
        "phone numbers, organizations, and key facts. Format as structured list."
    ),
    "legal": (
        "Legal analysis focusing on: key terms, dates, parties involved, obligations, "
        "rights, deadlines, and legal implications."
    ),
    "financial": (
        "Financial analysis focusing on: amounts, dates, financial terms, parties, "
        "obligations, ratios, and financial implications."
    ),
    "technical": (
        "Technical analysis focusing on: specifications, procedures, requirements, "
        "technical terms, processes, and implementation details."
    ),
    "medical": (
        "Medical analysis focusing on: patient information, medical terms, diagnoses, "
        "treatments, medications, dates, and clinical details."
    ),
}

_ENTITY_PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    "date": re.compile(
        r"\b(?:\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}[/-]\d{1,2}[/-]\d{1,2}|[A-Za-z]+\s+\d{1,2},?\s+\d{4})\b"
    ),
    "currency": re.compile(r"[$€£¥]\s*\d{1,3}(?:,\d{3})*(?:\.\d{2})?"),
    "percentage": re.compile(r"\b\d+(?:\.\d+)?%"),
    "url": re.compile(r"https?://[-\w.]+(?::\d+)?(?:/[\w._~:/?#\[\]@!$&'()*+,;=%-]*)?"),
    "zipcode": re.compile(r"\b\d{5}(?:-\d{4})?\b"),
}

_TABULAR_PATTERNS: dict[str, re.Pattern[str]] = {
    "id": re.compile(r"\b(?:ID|id)[-_]?\s*:?\s*[A-Z0-9-]+\b"),
    "reference": re.compile(r"\b(?:REF|ref|reference)[-_]?\s*:?\s*[A-Z0-9-]+\b"),
}

_TABULAR_EXTENSIONS = {".csv", ".xlsx"}

_META_SUMMARY_THRESHOLD = 8000


def extract_entities(text: str, file_type: str = "") -> list[ExtractedEntity]:
    """Regex entity extraction, deduplicated by (type, value) in first-seen order."""
    patterns = dict(_ENTITY_PATTERNS)
    if file_type in _TABULAR_EXTENSIONS:
        patterns.update(_TABULAR_PATTERNS)

    seen: set[tuple[str, str]] = set()
    entities: list[ExtractedEntity] = []
    for entity_type, pattern in patterns.items():
        for match in pattern.finditer(text):
            value = match.group(0).strip()
            if (entity_type, value) in seen:
                continue
            seen.add((entity_type, value))
            confidence = 0.8
            if entity_type in ("email", "url"):
                confidence = 0.95
            elif entity_type == "phone" and len(value) >= 10:
                confidence = 0.9
            entities.append(ExtractedEntity(type=entity_type, value=value, confidence=confidence))
    return entities


def extractive_summary(content: str, max_length: int = 1000) -> str:
    """Leading sentences of ``content``, used when no model summary is available."""
    limit = min(len(content), max_length)
    summary = ""
    for sentence in re.split(r"[.!?]\s+", content):
        if len(summary) + len(sentence) > limit:
            break
        summary += f"{sentence}. "

    if len(summary) < 100 and len(content) < 1000:
        return content
    return (
        f"{summary.strip()}\n\nNota: resumen extractivo generado automáticamente de una "
        f"sección del documento de {len(content)} caracteres."
    )


def build_analysis_prompt(
    content: str,
    analysis_type: str,
    file_name: str,
    chunk_index: int = 0,
    total_chunks: int = 1,
    questions: list[str] | None = None,
) -> str:
    if total_chunks > 1:
        prefix = f'Analyzing section {chunk_index + 1}/{total_chunks} from "{file_name}":\n\n'
    else:
        prefix = f'Analyzing document "{file_name}":\n\n'
    focus = _ANALYSIS_FOCUS.get(analysis_type, _ANALYSIS_FOCUS["general"])
    questions_block = f"\nFocus on these specific questions: {'; '.join(questions)}\n" if questions else ""
    return f"{prefix}{focus}{questions_block}\nRespond in Spanish.\n\nContent:\n{content}"


def content_sample(text: str, chunks: list[TextChunk], limit: int = DOCUMENT_PROMPT_CHAR_LIMIT) -> str:
    if len(text) <= limit:
        return text
    if chunks:
        return chunks[0].text[:limit]
    return text[:limit]


def _format_combined(summaries: list[str], file_name: str, file_type: str) -> str:
    header = f'Análisis de "{file_name}" ({file_type.upper()})'
    body = "\n\n".join(summaries)
    return f"{header}\n{'=' * len(header)}\n\nSecciones procesadas: {len(summaries)}\n\n{body}"


class DocumentAnalyzer:
    def __init__(
        self,
        summarize: SummarizeFn | None = None,
        timeout: float = DOCUMENT_ANALYSIS_TIMEOUT_SECONDS,
        chunker: TextChunker | None = None,
    ):
        self._summarize = summarize
        self.timeout = timeout
        self.chunker = chunker or TextChunker()

    async def analyze(
        self,
        file_name: str,
        content_base64: str,
        analysis_type: str = "general",
        questions: list[str] | None = None,
    ) -> DocumentAnalysis:
        """Analyze one base64-encoded document.

        Raises:
            DocumentParseError: unsupported extension, bad base64, or an
                unreadable file. A timeout is not an error: it yields a
                partial result.
        """
        if not is_supported(file_name):
            raise DocumentParseError(
                f"Unsupported file format: {get_file_extension(file_name) or '(none)'}"
            )
        data = decode_base64(content_base64)
        progress: dict[str, Any] = {}

        try:
            return await asyncio.wait_for(
                self._analyze(file_name, data, analysis_type, questions, progress),
                timeout=self.timeout,
            )
        except TimeoutError:
            logger.warning("Document analysis of %s timed out after %.0fs", file_name, self.timeout)
            return self._partial_result(file_name, data, progress)

    async def _analyze(
        self,
        file_name: str,
        data: bytes,
        analysis_type: str,
        questions: list[str] | None,
        progress: dict[str, Any],
    ) -> DocumentAnalysis:
        file_type = get_file_extension(file_name)
        extracted = await asyncio.to_thread(extract_text, data, file_name)
        progress["extracted"] = extracted
        text = extracted.text

        chunks = self.chunker.chunk_text(text)
        entities = extract_entities(text, file_type)
        summary = await self._summarize_chunks(chunks, analysis_type, file_name, file_type, questions)

        metadata = DocumentMetadata(
            file_name=file_name,
            file_type=file_type,
            file_size=len(data),
            word_count=len(text.split()),
            pages=extracted.pages,
            sheets=extracted.sheets,
            headers=extracted.headers,
            chunks=len(chunks),
            estimated_tokens=-(-len(text) // 4),
            processing_strategy=self.chunker.strategy_for(text) if text else "empty",
        )
        logger.info(
            "Analyzed %s: %d words, %d chunk(s), %d entities",
            file_name,
            metadata.word_count,
            metadata.chunks,
            len(entities),
        )
        return DocumentAnalysis(
            success=True,
            content=content_sample(text, chunks),
            summary=summary,
            metadata=metadata,
            entities=entities,
        )

    async def _summarize_chunks(
        self,
        chunks: list[TextChunk],
        analysis_type: str,
        file_name: str,
        file_type: str,
        questions: list[str] | None,
    ) -> str | None:
        if not chunks:
            return None

        summaries = []
        for chunk in chunks:
            prompt = build_analysis_prompt(
                chunk.text, analysis_type, file_name, chunk.chunk_index, len(chunks), questions
            )
            summaries.append(await self._summarize_one(prompt, chunk.text))

        if len(summaries) == 1:
            return summaries[0]

        combined = _format_combined(summaries, file_name, file_type)
        if self._summarize is None or len(combined) <= _META_SUMMARY_THRESHOLD:
            return combined
        meta_prompt = (
            f'Create a comprehensive final summary by synthesizing these {len(summaries)} '
            f'section analyses of "{file_name}". Eliminate redundancy. Respond in Spanish.\n\n'
            f"{combined}"
        )
        return await self._summarize_one(meta_prompt, combined)

    async def _summarize_one(self, prompt: str, fallback_source: str) -> str:
        if self._summarize is None:
            return extractive_summary(fallback_source)
        try:
            summary = await self._summarize(prompt)
        except Exception as e:
            logger.warning("Model summary failed (%s: %s), using extractive summary", type(e).__name__, e)
            return extractive_summary(fallback_source)
        return summary or extractive_summary(fallback_source)

    def _partial_result(
        self, file_name: str, data: bytes, progress: dict[str, Any]
    ) -> DocumentAnalysis:
        file_type = get_file_extension(file_name)
        extracted = progress.get("extracted")
        text = extracted.text if extracted is not None else ""
        return DocumentAnalysis(
            success=True,
            content=text[:DOCUMENT_PROMPT_CHAR_LIMIT],
            summary=(
                f"Documento {file_name}: archivo de tipo {file_type}. El análisis completo no "
                "pudo terminar dentro del tiempo límite; puedes hacer preguntas específicas "
                "sobre el documento."
            ),
            metadata=DocumentMetadata(
                file_name=file_name,
                file_type=file_type,
                file_size=len(data),
                word_count=len(text.split()),
                pages=extracted.pages if extracted is not None else None,
                sheets=extracted.sheets if extracted is not None else [],
                estimated_tokens=-(-len(text) // 4),
                processing_strategy="timeout-limited",
            ),
            error="timeout",
        )
