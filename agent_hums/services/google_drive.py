import base64
import binascii
import json
import logging
import uuid
from typing import Any

from agent_hums.constants import GOOGLE_DRIVE_API, GOOGLE_DRIVE_UPLOAD_API
from agent_hums.errors import ToolExecutionError
from agent_hums.schemas import DriveFile
from agent_hums.services.google_api import GoogleApiClient

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
_FILE_FIELDS = "id,name,mimeType,size,modifiedTime,webViewLink"

_ORDER_BY = {
    "modifiedTime": "modifiedTime desc",
    "createdTime": "createdTime desc",
    "size": "quotaBytesUsed desc",
    "name": "name",
}


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_drive_query(
    query: str = "",
    mime_type: str | None = None,
    folder_id: str | None = None,
) -> str:
    parts: list[str] = []
    if query:
        q = _escape_query(query)
        parts.append(f"(name contains '{q}' or fullText contains '{q}')")
    if mime_type:
        parts.append(f"mimeType='{_escape_query(mime_type)}'")
    if folder_id:
        parts.append(f"'{_escape_query(folder_id)}' in parents")
    parts.append("trashed=false")
    return " and ".join(parts)


def _multipart_related(
    metadata: dict[str, Any], content: bytes, mime_type: str
) -> tuple[bytes, str]:
    """Body for Drive's ``uploadType=multipart``: JSON metadata part, then media."""
    boundary = f"agent_hums_{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--".encode()
    return head + content + tail, f"multipart/related; boundary={boundary}"


def _file_from_api(item: dict[str, Any]) -> DriveFile:
    return DriveFile(
        id=item.get("id", ""),
        name=item.get("name") or "Sin nombre",
        mime_type=item.get("mimeType") or "application/octet-stream",
        size=item.get("size"),
        modified_time=item.get("modifiedTime"),
        web_view_link=item.get("webViewLink"),
    )


class GoogleDriveClient(GoogleApiClient):
    service_name = "Google Drive"

    async def list_files(
        self,
        access_token: str | None,
        query: str = "",
        max_results: int = 10,
        order_by: str = "modifiedTime",
        mime_type: str | None = None,
        folder_id: str | None = None,
    ) -> list[DriveFile]:
        params = {
            "q": build_drive_query(query, mime_type, folder_id),
            "pageSize": max(1, min(max_results, 100)),
            "orderBy": _ORDER_BY.get(order_by, _ORDER_BY["modifiedTime"]),
            "fields": f"files({_FILE_FIELDS})",
        }
        logger.info("Listing Drive files q=%r", params["q"])
        data = await self._request("GET", f"{GOOGLE_DRIVE_API}/files", access_token, params=params)
        return [_file_from_api(item) for item in data.get("files", [])]

    async def upload_file(
        self,
        access_token: str | None,
        file_name: str,
        content_base64: str,
        mime_type: str = "application/octet-stream",
        folder_id: str | None = None,
        make_public: bool = False,
    ) -> DriveFile:
        try:
            content = base64.b64decode(content_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ToolExecutionError(f"Contenido base64 inválido para {file_name!r}") from e

        metadata: dict[str, Any] = {"name": file_name}
        if folder_id:
            metadata["parents"] = [folder_id]

        logger.info("Uploading %s to Drive (%d bytes)", file_name, len(content))
        body, content_type = _multipart_related(metadata, content, mime_type)
        data = await self._request(
            "POST",
            f"{GOOGLE_DRIVE_UPLOAD_API}/files",
            access_token,
            params={"uploadType": "multipart", "fields": _FILE_FIELDS},
            headers={"Content-Type": content_type},
            content=body,
        )
        uploaded = _file_from_api(data)

        if make_public and uploaded.id:
            await self.share_file(access_token, uploaded.id)
        return uploaded

    async def share_file(
        self,
        access_token: str | None,
        file_id: str,
        email: str | None = None,
        role: str = "reader",
    ) -> None:
        if email:
            permission = {"role": role, "type": "user", "emailAddress": email}
        else:
            permission = {"role": "reader", "type": "anyone"}
        await self._request(
            "POST",
            f"{GOOGLE_DRIVE_API}/files/{file_id}/permissions",
            access_token,
            json=permission,
        )

    async def create_folder(
        self,
        access_token: str | None,
        name: str,
        parent_id: str | None = None,
    ) -> DriveFile:
        body: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]
        data = await self._request(
            "POST",
            f"{GOOGLE_DRIVE_API}/files",
            access_token,
            json=body,
            params={"fields": _FILE_FIELDS},
        )
        return _file_from_api(data)
