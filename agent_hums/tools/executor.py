"""Tool execution with an explicit per-request event channel.

Every tool run produces one ``ToolCallRecord`` that is both returned to the
caller and delivered to the request's ``ToolEventRecorder``. The dispatcher
reads ``toolsUsed`` from the recorder.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from agent_hums.errors import HumsError, ToolExecutionError
from agent_hums.schemas import Attachment, ToolCallRecord
from agent_hums.services.brave_search import BraveSearchClient
from agent_hums.services.document_analysis import DocumentAnalyzer
from agent_hums.services.google_calendar import GoogleCalendarClient
from agent_hums.services.google_drive import GoogleDriveClient

logger = logging.getLogger(__name__)

ToolListener = Callable[[ToolCallRecord], None]
ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class ToolEventRecorder:
    """Collects the tool records of one request, in execution order."""

    def __init__(self, listener: ToolListener | None = None):
        self._records: list[ToolCallRecord] = []
        self._listener = listener

    def record(self, record: ToolCallRecord) -> None:
        self._records.append(record)
        if self._listener is not None:
            self._listener(record)

    @property
    def records(self) -> list[ToolCallRecord]:
        return list(self._records)

    @property
    def tool_names(self) -> list[str]:
        return list(dict.fromkeys(r.name for r in self._records))

    def __len__(self) -> int:
        return len(self._records)


@dataclass(frozen=True)
class AuthTokens:
    """Per-user Google OAuth access tokens forwarded by the browser."""

    calendar: str | None = None
    drive: str | None = None


@dataclass(frozen=True)
class ToolServices:
    search: BraveSearchClient
    calendar: GoogleCalendarClient
    drive: GoogleDriveClient
    documents: DocumentAnalyzer


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


def _require(arguments: dict[str, Any], key: str) -> Any:
    value = arguments.get(key)
    if value in (None, ""):
        raise ToolExecutionError(f"Missing required argument: {key}")
    return value


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def tool_result_message(call_id: str, record: ToolCallRecord) -> dict[str, Any]:
    """Chat message that feeds a tool's output back to the model."""
    payload = record.output if record.success else {"error": record.output}
    return {
        "role": "tool",
        "tool_call_id": call_id,
        "content": json.dumps(payload, ensure_ascii=False, default=str),
    }


class ToolExecutor:
    """Runs tools for one request. Tool failures become ``success=False`` records."""

    def __init__(
        self,
        services: ToolServices,
        recorder: ToolEventRecorder,
        tokens: AuthTokens | None = None,
        attachments: Sequence[Attachment] = (),
    ):
        self.services = services
        self.recorder = recorder
        self.tokens = tokens or AuthTokens()
        self._attachments = {a.name: a for a in attachments}
        self._handlers: dict[str, ToolHandler] = {
            "searchWeb": self._search_web,
            "listCalendarEvents": self._list_calendar_events,
            "createCalendarEvent": self._create_calendar_event,
            "deleteCalendarEvent": self._delete_calendar_event,
            "listDriveFiles": self._list_drive_files,
            "uploadDriveFile": self._upload_drive_file,
            "analyzeDocument": self._analyze_document,
        }

    @property
    def available_tools(self) -> list[str]:
        return list(self._handlers)

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolCallRecord:
        start = time.perf_counter()
        handler = self._handlers.get(name)
        try:
            if handler is None:
                raise ToolExecutionError(f"Unknown tool: {name}")
            output = _jsonable(await handler(arguments))
            success = True
        except HumsError as e:
            logger.warning("Tool %s failed: %s", name, e)
            output, success = str(e), False
        except Exception as e:
            logger.exception("Tool %s raised unexpectedly", name)
            output, success = f"{type(e).__name__}: {e}", False

        elapsed_ms = (time.perf_counter() - start) * 1000
        record = ToolCallRecord(
            name=name,
            input=arguments,
            output=output,
            success=success,
            execution_ms=round(elapsed_ms, 1),
        )
        logger.info("Tool %s finished in %.0fms (success=%s)", name, elapsed_ms, success)
        self.recorder.record(record)
        return record

    def _attachment(self, file_name: str) -> Attachment:
        attachment = self._attachments.get(file_name)
        if attachment is None:
            available = ", ".join(self._attachments) or "ninguno"
            raise ToolExecutionError(
                f"No hay un archivo adjunto llamado {file_name!r} (adjuntos: {available})"
            )
        return attachment

    async def _search_web(self, args: dict[str, Any]) -> dict[str, Any]:
        results = await self.services.search.search(
            _require(args, "query"), _as_int(args.get("limit"), 5)
        )
        return {"results": results, "count": len(results)}

    async def _list_calendar_events(self, args: dict[str, Any]) -> dict[str, Any]:
        events = await self.services.calendar.list_events(
            self.tokens.calendar,
            time_min=args.get("timeMin"),
            time_max=args.get("timeMax"),
            max_results=_as_int(args.get("maxResults"), 10),
        )
        return {"events": events, "count": len(events)}

    async def _create_calendar_event(self, args: dict[str, Any]) -> dict[str, Any]:
        event = await self.services.calendar.create_event(
            self.tokens.calendar,
            summary=_require(args, "summary"),
            start_date_time=_require(args, "startDateTime"),
            end_date_time=_require(args, "endDateTime"),
            description=args.get("description"),
            location=args.get("location"),
            attendees=args.get("attendees"),
        )
        return {"event": event}

    async def _delete_calendar_event(self, args: dict[str, Any]) -> dict[str, Any]:
        event_id = _require(args, "eventId")
        await self.services.calendar.delete_event(self.tokens.calendar, event_id)
        return {"deleted": event_id}

    async def _list_drive_files(self, args: dict[str, Any]) -> dict[str, Any]:
        files = await self.services.drive.list_files(
            self.tokens.drive,
            query=args.get("query") or "",
            max_results=_as_int(args.get("maxResults"), 10),
            order_by=args.get("orderBy") or "modifiedTime",
            mime_type=args.get("mimeType"),
            folder_id=args.get("folderId"),
        )
        return {"files": files, "count": len(files)}

    async def _upload_drive_file(self, args: dict[str, Any]) -> dict[str, Any]:
        attachment = self._attachment(_require(args, "fileName"))
        uploaded = await self.services.drive.upload_file(
            self.tokens.drive,
            file_name=attachment.name,
            content_base64=attachment.base64,
            mime_type=attachment.mime_type,
            folder_id=args.get("folderId"),
            make_public=bool(args.get("makePublic", False)),
        )
        return {"file": uploaded}

    async def _analyze_document(self, args: dict[str, Any]) -> Any:
        attachment = self._attachment(_require(args, "fileName"))
        return await self.services.documents.analyze(
            attachment.name,
            attachment.base64,
            analysis_type=args.get("analysisType") or attachment.analysis_type,
            questions=args.get("questions"),
        )
