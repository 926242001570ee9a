"""OpenAI function-calling schemas for the assistant's tools."""

from typing import Any

from agent_hums.services.document_analysis import ANALYSIS_TYPES


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DEFINITIONS: dict[str, dict[str, Any]] = {
    "searchWeb": _function(
        "searchWeb",
        "Busca información actualizada en internet (noticias, tendencias, datos recientes).",
        {
            "query": {"type": "string", "description": "Texto de búsqueda"},
            "limit": {"type": "integer", "description": "Número de resultados (1-10)", "default": 5},
        },
        ["query"],
    ),
    "listCalendarEvents": _function(
        "listCalendarEvents",
        "Lista los eventos del Google Calendar del usuario en un rango de fechas.",
        {
            "timeMin": {"type": "string", "description": "Inicio (RFC3339 o YYYY-MM-DD)"},
            "timeMax": {"type": "string", "description": "Fin (RFC3339 o YYYY-MM-DD)"},
            "maxResults": {"type": "integer", "default": 10},
        },
        [],
    ),
    "createCalendarEvent": _function(
        "createCalendarEvent",
        "Crea un evento en el Google Calendar del usuario.",
        {
            "summary": {"type": "string", "description": "Título del evento"},
            "startDateTime": {"type": "string", "description": "Inicio en RFC3339"},
            "endDateTime": {"type": "string", "description": "Fin en RFC3339"},
            "description": {"type": "string"},
            "location": {"type": "string"},
            "attendees": {"type": "array", "items": {"type": "string"}},
        },
        ["summary", "startDateTime", "endDateTime"],
    ),
    "deleteCalendarEvent": _function(
        "deleteCalendarEvent",
        "Elimina un evento del Google Calendar del usuario por su id.",
        {"eventId": {"type": "string"}},
        ["eventId"],
    ),
    "listDriveFiles": _function(
        "listDriveFiles",
        "Busca o lista archivos en el Google Drive del usuario.",
        {
            "query": {"type": "string", "description": "Texto a buscar en nombre o contenido"},
            "maxResults": {"type": "integer", "default": 10},
            "orderBy": {
                "type": "string",
                "enum": ["modifiedTime", "createdTime", "size", "name"],
            },
            "mimeType": {"type": "string"},
            "folderId": {"type": "string"},
        },
        [],
    ),
    "uploadDriveFile": _function(
        "uploadDriveFile",
        "Sube a Google Drive un archivo adjunto por el usuario.",
        {
            "fileName": {"type": "string"},
            "folderId": {"type": "string"},
            "makePublic": {"type": "boolean", "default": False},
        },
        ["fileName"],
    ),
    "analyzeDocument": _function(
        "analyzeDocument",
        "Extrae el texto y resume un documento adjunto (PDF, Word, Excel, CSV, TXT).",
        {
            "fileName": {"type": "string"},
            "analysisType": {"type": "string", "enum": list(ANALYSIS_TYPES)},
            "questions": {"type": "array", "items": {"type": "string"}},
        },
        ["fileName"],
    ),
}


def tool_schemas(names: list[str] | tuple[str, ...]) -> list[dict[str, Any]]:
    """Schemas for ``names`` in the given order; unknown names are an error."""
    unknown = [n for n in names if n not in TOOL_DEFINITIONS]
    if unknown:
        raise KeyError(f"Unknown tool(s): {unknown}")
    return [TOOL_DEFINITIONS[n] for n in names]
