import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from agent_hums.config.settings import Settings, load_settings
from agent_hums.dispatcher import ChatDispatcher
from agent_hums.errors import DocumentParseError, InvalidInput, UpstreamError
from agent_hums.llm.prompts import build_lightweight_prompt, build_system_prompt
from agent_hums.llm.task_types import TASK_REQUIREMENTS
from agent_hums.schemas import (
    ChatRequest,
    ChatResponse,
    ClassifyRequest,
    ClassifyResponse,
    ErrorResponse,
    ModelConfig,
)
from agent_hums.tools.executor import AuthTokens
from agent_hums.utils.http_pool import close_http_client
from agent_hums.utils.llm_client import close_clients, list_models

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

T = TypeVar("T")

DISCONNECT_POLL_SECONDS = 0.5
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    pass


async def run_until_disconnect(request: Request, work: Awaitable[T]) -> T:
    """Await ``work``, cancelling it if the client goes away first."""
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling %s %s", request.method, request.url.path)
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(),
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return _error(400, "invalid_input", str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "invalid request"
        return _error(400, "invalid_input", message)

    @app.exception_handler(DocumentParseError)
    async def document_handler(request: Request, exc: DocumentParseError):
        return _error(400, "invalid_document", str(exc))

    @app.exception_handler(UpstreamError)
    async def upstream_handler(request: Request, exc: UpstreamError):
        logger.error("Upstream failure on %s: %s", request.url.path, exc)
        return _error(502, "upstream_error", str(exc))

    @app.exception_handler(ClientDisconnected)
    async def disconnected_handler(request: Request, exc: ClientDisconnected):
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return _error(500, "internal_error", "Error interno del servidor")


def create_app(settings: Settings | None = None, dispatcher: ChatDispatcher | None = None) -> FastAPI:
    settings = settings or load_settings()
    dispatcher = dispatcher or ChatDispatcher(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Agent Hums API ready (env=%s, mock_mode=%s, models=%d)",
            settings.environment,
            settings.mock_mode,
            len(dispatcher.registry),
        )
        yield
        await close_http_client()
        await close_clients()
        logger.info("Agent Hums API shut down")

    app = FastAPI(title="Agent Hums API", lifespan=lifespan)
    app.state.settings = settings
    app.state.dispatcher = dispatcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_exception_handlers(app)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
            "mockMode": settings.mock_mode,
            "services": {
                "anthropic": bool(settings.anthropic_api_key),
                "groq": bool(settings.groq_api_key),
                "braveSearch": bool(settings.brave_search_api_key),
            },
        }

    @app.get("/api/config")
    async def public_config() -> dict[str, Any]:
        return {
            "googleClientId": settings.google_client_id,
            "environment": settings.environment,
            "mockMode": settings.mock_mode,
        }

    @app.get("/api/prompt-info")
    async def prompt_info() -> dict[str, Any]:
        return {
            "systemPromptLength": len(build_system_prompt()),
            "lightweightPromptLength": len(build_lightweight_prompt()),
            "taskTypes": {
                task.value: {
                    "tools": list(req.tools),
                    "temperature": req.temperature,
                    "maxTokens": req.max_tokens,
                }
                for task, req in TASK_REQUIREMENTS.items()
            },
        }

    @app.get("/api/models", response_model=list[ModelConfig])
    async def get_available_models():
        return list_models(dispatcher.registry)

    @app.post("/api/classify", response_model=ClassifyResponse)
    async def classify(req: ClassifyRequest):
        return dispatcher.classify(req.message, req.force_task_type)

    @app.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
    @app.post("/hybridChat", response_model=ChatResponse, response_model_exclude_none=True)
    async def chat(
        req: ChatRequest,
        request: Request,
        calendar_token: str | None = Header(default=None, alias="X-Calendar-Token"),
        drive_token: str | None = Header(default=None, alias="X-Drive-Token"),
    ):
        tokens = AuthTokens(calendar=calendar_token, drive=drive_token)
        return await run_until_disconnect(request, dispatcher.handle(req, tokens))

    return app


app = create_app()


def run() -> None:
    settings: Settings = app.state.settings
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
