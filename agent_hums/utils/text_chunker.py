"""Character-based text chunking for document summaries.

Chunks respect paragraph boundaries when the document has usable paragraphs
and fall back to a sliding window otherwise. Neighbouring chunks share an
overlap so a summary of one chunk keeps some context from the next.
"""

import logging

from pydantic import BaseModel, Field

from agent_hums.constants import DOCUMENT_CHUNK_OVERLAP_RATIO, DOCUMENT_CHUNK_SIZE

logger = logging.getLogger(__name__)

MIN_CHUNK_SIZE = 100


class TextChunk(BaseModel):
    text: str = Field(description="The text content of the chunk")
    chunk_index: int = Field(description="Index of this chunk in the sequence")
    kind: str = Field(default="section", description="section, paragraph or window")


class TextChunker:
    """Paragraph-aware chunker with overlap between neighbouring chunks."""

    def __init__(
        self,
        chunk_size: int = DOCUMENT_CHUNK_SIZE,
        overlap_ratio: float = DOCUMENT_CHUNK_OVERLAP_RATIO,
        min_chunk_size: int = MIN_CHUNK_SIZE,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap_ratio < 0.5:
            raise ValueError("overlap_ratio must be in [0, 0.5)")
        self.chunk_size = chunk_size
        self.overlap_ratio = overlap_ratio
        self.min_chunk_size = min_chunk_size

    @property
    def overlap_size(self) -> int:
        return int(self.chunk_size * self.overlap_ratio)

    def strategy_for(self, text: str) -> str:
        if len(text) <= self.chunk_size:
            return "single-pass"
        if self._can_use_paragraphs(self._split_by_paragraphs(text)):
            return "semantic"
        return "hybrid"

    def chunk_text(self, text: str) -> list[TextChunk]:
        """Chunk text into pieces of at most ``chunk_size`` characters (plus overlap).

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects; empty for blank input
        """
        if not text or not text.strip():
            logger.warning("Empty text provided to chunker")
            return []

        strategy = self.strategy_for(text)
        if strategy == "single-pass":
            return [TextChunk(text=text, chunk_index=0, kind="section")]
        if strategy == "semantic":
            chunks = self._create_paragraph_chunks(self._split_by_paragraphs(text))
        else:
            chunks = self._create_window_chunks(text)

        logger.info(
            "Created %d %s chunks from text (length=%d chars)", len(chunks), strategy, len(text)
        )
        return chunks

    def _split_by_paragraphs(self, text: str) -> list[str]:
        return [p.strip() for p in text.split("\n\n") if p.strip()]

    def _can_use_paragraphs(self, paragraphs: list[str]) -> bool:
        if len(paragraphs) <= 2:
            return False
        average = sum(len(p) for p in paragraphs) / len(paragraphs)
        return average < self.chunk_size * 0.8

    def _overlap(self, text: str, from_end: bool) -> str:
        size = self.overlap_size
        if size == 0:
            return ""
        if len(text) <= size:
            return text
        if from_end:
            tail = text[-size:]
            start = tail.find(". ")
            return tail[start + 2 :] if start > 0 else tail
        head = text[:size]
        end = head.rfind(". ")
        return head[: end + 1] if end > 0 else head

    def _create_paragraph_chunks(self, paragraphs: list[str]) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        current = ""

        for paragraph in paragraphs:
            too_long = len(current) + 2 + len(paragraph) > self.chunk_size
            if too_long and len(current) >= self.min_chunk_size:
                lookahead = self._overlap(paragraph, from_end=False)
                chunks.append(
                    TextChunk(
                        text=f"{current}\n\n{lookahead}" if lookahead else current,
                        chunk_index=len(chunks),
                        kind="paragraph",
                    )
                )
                carried = self._overlap(current, from_end=True)
                current = f"{carried}\n\n{paragraph}" if carried else paragraph
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph

        if current.strip():
            chunks.append(TextChunk(text=current, chunk_index=len(chunks), kind="paragraph"))
        return chunks

    def _create_window_chunks(self, text: str) -> list[TextChunk]:
        step = self.chunk_size - self.overlap_size
        chunks: list[TextChunk] = []
        for start in range(0, len(text), step):
            piece = text[start : start + self.chunk_size]
            if len(piece.strip()) >= self.min_chunk_size or not chunks:
                chunks.append(TextChunk(text=piece, chunk_index=len(chunks), kind="window"))
            if start + self.chunk_size >= len(text):
                break
        return chunks
