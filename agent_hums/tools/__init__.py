from agent_hums.tools.definitions import TOOL_DEFINITIONS, tool_schemas
from agent_hums.tools.executor import AuthTokens, ToolEventRecorder, ToolExecutor, ToolServices

__all__ = [
    "TOOL_DEFINITIONS",
    "AuthTokens",
    "ToolEventRecorder",
    "ToolExecutor",
    "ToolServices",
    "tool_schemas",
]
