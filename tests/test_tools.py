import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_hums.errors import ToolExecutionError
from agent_hums.llm.task_types import ALL_TOOLS
from agent_hums.schemas import Attachment, CalendarEvent, DriveFile, SearchResult, ToolCallRecord
from agent_hums.services.document_analysis import DocumentAnalyzer
from agent_hums.tools.definitions import TOOL_DEFINITIONS, tool_schemas
from agent_hums.tools.executor import (
    AuthTokens,
    ToolEventRecorder,
    ToolExecutor,
    ToolServices,
    tool_result_message,
)


def _services(**overrides) -> ToolServices:
    search = MagicMock()
    search.search = AsyncMock(
        return_value=[SearchResult(title="Clima", url="https://clima.test", snippet="Soleado")]
    )
    calendar = MagicMock()
    calendar.list_events = AsyncMock(return_value=[CalendarEvent(id="e1", title="Standup")])
    calendar.create_event = AsyncMock(return_value=CalendarEvent(id="new", title="Dentista"))
    calendar.delete_event = AsyncMock(return_value=None)
    drive = MagicMock()
    drive.list_files = AsyncMock(return_value=[DriveFile(id="f1", name="plan.pdf")])
    drive.upload_file = AsyncMock(return_value=DriveFile(id="f2", name="nota.txt"))
    parts = {"search": search, "calendar": calendar, "drive": drive, "documents": DocumentAnalyzer()}
    parts.update(overrides)
    return ToolServices(**parts)


def _attachment(name: str = "nota.txt", text: str = "Reunión con ana@example.com.") -> Attachment:
    return Attachment(name=name, base64=base64.b64encode(text.encode()).decode(), mime_type="text/plain")


class TestToolDefinitions:
    def test_every_tool_has_schema(self):
        assert set(TOOL_DEFINITIONS) == set(ALL_TOOLS)
        for name, schema in TOOL_DEFINITIONS.items():
            assert schema["type"] == "function"
            assert schema["function"]["name"] == name
            assert schema["function"]["parameters"]["type"] == "object"

    def test_tool_schemas_keeps_order(self):
        names = [s["function"]["name"] for s in tool_schemas(["listDriveFiles", "searchWeb"])]
        assert names == ["listDriveFiles", "searchWeb"]

    def test_unknown_tool(self):
        with pytest.raises(KeyError):
            tool_schemas(["sendEmail"])


class TestToolEventRecorder:
    def test_records_in_order_with_listener(self):
        seen = []
        recorder = ToolEventRecorder(seen.append)
        first = ToolCallRecord(name="searchWeb")
        second = ToolCallRecord(name="listCalendarEvents")
        third = ToolCallRecord(name="searchWeb")

        for record in (first, second, third):
            recorder.record(record)

        assert seen == [first, second, third]
        assert len(recorder) == 3
        assert recorder.tool_names == ["searchWeb", "listCalendarEvents"]

    def test_records_returns_copy(self):
        recorder = ToolEventRecorder()
        recorder.record(ToolCallRecord(name="searchWeb"))
        recorder.records.clear()
        assert len(recorder) == 1


class TestToolExecutor:
    @pytest.mark.asyncio
    async def test_search_web(self):
        services = _services()
        recorder = ToolEventRecorder()
        executor = ToolExecutor(services, recorder)

        record = await executor.execute("searchWeb", {"query": "clima", "limit": "3"})

        assert record.success
        assert record.output == {
            "results": [{"title": "Clima", "url": "https://clima.test", "snippet": "Soleado"}],
            "count": 1,
        }
        assert record.input == {"query": "clima", "limit": "3"}
        assert record.execution_ms >= 0
        services.search.search.assert_awaited_once_with("clima", 3)
        assert recorder.records == [record]

    @pytest.mark.asyncio
    async def test_missing_required_argument(self):
        services = _services()
        executor = ToolExecutor(services, ToolEventRecorder())

        record = await executor.execute("searchWeb", {})

        assert not record.success
        assert record.output == "Missing required argument: query"
        services.search.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_tool_recorded_as_failure(self):
        recorder = ToolEventRecorder()
        record = await ToolExecutor(_services(), recorder).execute("sendEmail", {})
        assert not record.success
        assert "Unknown tool" in record.output
        assert recorder.tool_names == ["sendEmail"]

    @pytest.mark.asyncio
    async def test_service_error_message_kept(self):
        search = MagicMock()
        search.search = AsyncMock(side_effect=ToolExecutionError("BRAVE_SEARCH_API_KEY no está configurada"))
        record = await ToolExecutor(_services(search=search), ToolEventRecorder()).execute(
            "searchWeb", {"query": "x"}
        )
        assert not record.success
        assert record.output == "BRAVE_SEARCH_API_KEY no está configurada"

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_escape(self):
        search = MagicMock()
        search.search = AsyncMock(side_effect=RuntimeError("boom"))
        record = await ToolExecutor(_services(search=search), ToolEventRecorder()).execute(
            "searchWeb", {"query": "x"}
        )
        assert not record.success
        assert record.output == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_calendar_uses_calendar_token(self):
        services = _services()
        executor = ToolExecutor(services, ToolEventRecorder(), AuthTokens(calendar="cal-tok", drive="drv-tok"))

        record = await executor.execute("listCalendarEvents", {"timeMin": "2024-03-15", "maxResults": 5})

        assert record.output["count"] == 1
        assert record.output["events"][0]["title"] == "Standup"
        services.calendar.list_events.assert_awaited_once_with(
            "cal-tok", time_min="2024-03-15", time_max=None, max_results=5
        )

    @pytest.mark.asyncio
    async def test_create_and_delete_event(self):
        services = _services()
        executor = ToolExecutor(services, ToolEventRecorder(), AuthTokens(calendar="tok"))

        created = await executor.execute(
            "createCalendarEvent",
            {"summary": "Dentista", "startDateTime": "2024-03-20T10:00:00", "endDateTime": "2024-03-20T11:00:00"},
        )
        deleted = await executor.execute("deleteCalendarEvent", {"eventId": "new"})

        assert created.output["event"]["id"] == "new"
        assert deleted.output == {"deleted": "new"}
        services.calendar.delete_event.assert_awaited_once_with("tok", "new")

    @pytest.mark.asyncio
    async def test_list_drive_files_defaults(self):
        services = _services()
        executor = ToolExecutor(services, ToolEventRecorder(), AuthTokens(drive="drv"))

        record = await executor.execute("listDriveFiles", {})

        assert record.output["files"][0]["name"] == "plan.pdf"
        services.drive.list_files.assert_awaited_once_with(
            "drv", query="", max_results=10, order_by="modifiedTime", mime_type=None, folder_id=None
        )

    @pytest.mark.asyncio
    async def test_upload_uses_attachment(self):
        services = _services()
        attachment = _attachment()
        executor = ToolExecutor(services, ToolEventRecorder(), AuthTokens(drive="drv"), [attachment])

        record = await executor.execute("uploadDriveFile", {"fileName": "nota.txt", "makePublic": True})

        assert record.success
        assert record.output["file"]["id"] == "f2"
        services.drive.upload_file.assert_awaited_once_with(
            "drv",
            file_name="nota.txt",
            content_base64=attachment.base64,
            mime_type="text/plain",
            folder_id=None,
            make_public=True,
        )

    @pytest.mark.asyncio
    async def test_upload_unknown_attachment(self):
        record = await ToolExecutor(_services(), ToolEventRecorder()).execute(
            "uploadDriveFile", {"fileName": "otro.pdf"}
        )
        assert not record.success
        assert "ninguno" in record.output

    @pytest.mark.asyncio
    async def test_analyze_document(self):
        executor = ToolExecutor(_services(), ToolEventRecorder(), attachments=[_attachment()])

        record = await executor.execute("analyzeDocument", {"fileName": "nota.txt"})

        assert record.success
        assert record.output["success"] is True
        assert record.output["metadata"]["file_name"] == "nota.txt"
        assert record.output["entities"][0]["value"] == "ana@example.com"

    @pytest.mark.asyncio
    async def test_analyze_unsupported_document_fails_cleanly(self):
        attachment = Attachment(name="app.exe", base64=base64.b64encode(b"MZ").decode())
        executor = ToolExecutor(_services(), ToolEventRecorder(), attachments=[attachment])

        record = await executor.execute("analyzeDocument", {"fileName": "app.exe"})

        assert not record.success
        assert "Unsupported" in record.output


class TestToolResultMessage:
    def test_success_payload(self):
        record = ToolCallRecord(name="searchWeb", output={"count": 0, "results": []})
        message = tool_result_message("call_1", record)
        assert message["role"] == "tool"
        assert message["tool_call_id"] == "call_1"
        assert json.loads(message["content"]) == {"count": 0, "results": []}

    def test_failure_payload(self):
        record = ToolCallRecord(name="searchWeb", output="sin clave", success=False)
        assert json.loads(tool_result_message("c", record)["content"]) == {"error": "sin clave"}
