import pytest

from agent_hums.utils.text_chunker import TextChunker


def _paragraph_text(count: int = 10, words: int = 40) -> str:
    return "\n\n".join(
        f"Párrafo {i}. " + " ".join(f"palabra{j}" for j in range(words)) + "." for i in range(count)
    )


class TestTextChunker:
    def test_short_text_single_chunk(self):
        chunker = TextChunker(chunk_size=1000)
        chunks = chunker.chunk_text("Un texto corto.")
        assert len(chunks) == 1
        assert chunks[0].text == "Un texto corto."
        assert chunker.strategy_for("Un texto corto.") == "single-pass"

    def test_empty_text(self):
        chunker = TextChunker(chunk_size=1000)
        assert chunker.chunk_text("") == []
        assert chunker.chunk_text("   \n\n ") == []

    def test_paragraph_strategy(self):
        chunker = TextChunker(chunk_size=1000)
        text = _paragraph_text()
        assert len(text) > 1000
        assert chunker.strategy_for(text) == "semantic"

        chunks = chunker.chunk_text(text)

        assert len(chunks) > 1
        assert all(c.kind == "paragraph" for c in chunks)
        for chunk in chunks:
            assert len(chunk.text) <= chunker.chunk_size + chunker.overlap_size + 2

    def test_chunk_indices_sequential(self):
        chunks = TextChunker(chunk_size=1000).chunk_text(_paragraph_text())
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_every_paragraph_survives(self):
        text = _paragraph_text()
        joined = "\n\n".join(c.text for c in TextChunker(chunk_size=1000).chunk_text(text))
        for i in range(10):
            assert f"Párrafo {i}." in joined

    def test_window_strategy_for_unbroken_text(self):
        chunker = TextChunker(chunk_size=1000, overlap_ratio=0.1)
        text = "".join(str(i % 10) for i in range(3000))
        assert chunker.strategy_for(text) == "hybrid"

        chunks = chunker.chunk_text(text)

        assert len(chunks) == 4
        assert all(c.kind == "window" for c in chunks)
        assert chunks[0].text[-100:] == chunks[1].text[:100]

    def test_zero_overlap(self):
        chunker = TextChunker(chunk_size=1000, overlap_ratio=0.0)
        chunks = chunker.chunk_text("x" * 3000)
        assert len(chunks) == 3
        assert sum(len(c.text) for c in chunks) == 3000

    @pytest.mark.parametrize("kwargs", [{"chunk_size": 0}, {"overlap_ratio": 0.5}, {"overlap_ratio": -0.1}])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            TextChunker(**kwargs)
