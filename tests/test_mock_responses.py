import random

from agent_hums.llm.mock_responses import (
    SIMULATED_NOTICE,
    determine_mock_tools,
    generate_mock_response,
    mock_model_name,
)
from agent_hums.llm.retry import FallbackReason


class TestDetermineMockTools:
    def test_default_is_search(self):
        assert determine_mock_tools("hola") == ["searchWeb"]

    def test_calendar_hint(self):
        assert determine_mock_tools("¿Qué reuniones tengo?") == ["listCalendarEvents"]

    def test_multiple_hints_keep_tool_order(self):
        tools = determine_mock_tools("Busca noticias y revisa mi calendario")
        assert tools == ["searchWeb", "listCalendarEvents"]

    def test_accents_ignored(self):
        assert "searchWeb" in determine_mock_tools("Últimas novedades")


class TestGenerateMockResponse:
    def test_text_is_labeled_simulated(self):
        text, _ = generate_mock_response("hola", FallbackReason.MOCK_MODE)
        assert SIMULATED_NOTICE in text
        assert "Respuesta Simulada" in text
        assert '"hola"' in text

    def test_reason_note_included(self):
        text, _ = generate_mock_response("hola", FallbackReason.RETRIES_EXHAUSTED)
        assert "sobrecargado" in text

    def test_records_are_simulated(self):
        _, records = generate_mock_response("busca el clima", rng=random.Random(1))
        assert [r.name for r in records] == ["searchWeb"]
        record = records[0]
        assert record.output == {"status": "simulated"}
        assert record.input == {"query": "busca el clima"}
        assert 500 <= record.execution_ms <= 2500

    def test_seeded_rng_is_deterministic(self):
        first = generate_mock_response("hola", rng=random.Random(7))[1][0].execution_ms
        second = generate_mock_response("hola", rng=random.Random(7))[1][0].execution_ms
        assert first == second


class TestMockModelName:
    def test_mock_mode_suffix(self):
        assert mock_model_name("llama", FallbackReason.MOCK_MODE) == "llama-mock"

    def test_fallback_suffix(self):
        assert mock_model_name("llama", FallbackReason.RETRIES_EXHAUSTED) == "llama-fallback"
        assert mock_model_name("llama", FallbackReason.MISSING_CREDENTIALS) == "llama-fallback"
