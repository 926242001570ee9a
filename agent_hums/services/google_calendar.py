import logging
from datetime import date, datetime, time
from typing import Any
from urllib.parse import quote

from agent_hums.constants import GOOGLE_CALENDAR_API
from agent_hums.errors import ToolExecutionError
from agent_hums.schemas import CalendarEvent
from agent_hums.services.google_api import GoogleApiClient

logger = logging.getLogger(__name__)

DEFAULT_TIME_ZONE = "America/Mexico_City"


def _local_now() -> datetime:
    return datetime.now().astimezone()


def normalize_time_bound(value: str | None, end_of_day: bool, now: datetime | None = None) -> str:
    """RFC3339 timestamp for a list window bound.

    Missing bounds default to today's start or end. Bare dates
    (``YYYY-MM-DD``) are widened to the whole day in local time.
    """
    now = now or _local_now()
    tz = now.tzinfo
    if not value:
        day = now.date()
    elif "T" in value:
        return value
    else:
        try:
            day = date.fromisoformat(value)
        except ValueError as e:
            raise ToolExecutionError(f"Fecha inválida: {value!r}") from e
    moment = time(23, 59, 59) if end_of_day else time(0, 0, 0)
    return datetime.combine(day, moment, tzinfo=tz).isoformat()


def _event_from_api(item: dict[str, Any]) -> CalendarEvent:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return CalendarEvent(
        id=item.get("id", ""),
        title=item.get("summary") or "Sin título",
        description=item.get("description"),
        start_date_time=start.get("dateTime") or start.get("date") or "",
        end_date_time=end.get("dateTime") or end.get("date") or "",
        location=item.get("location"),
        html_link=item.get("htmlLink"),
    )


class GoogleCalendarClient(GoogleApiClient):
    service_name = "Google Calendar"

    def _events_url(self, calendar_id: str, event_id: str | None = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            url = f"{url}/{quote(event_id, safe='')}"
        return url

    async def list_events(
        self,
        access_token: str | None,
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = 10,
        calendar_id: str = "primary",
    ) -> list[CalendarEvent]:
        params = {
            "timeMin": normalize_time_bound(time_min, end_of_day=False),
            "timeMax": normalize_time_bound(time_max, end_of_day=True),
            "maxResults": max(1, min(max_results, 250)),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        logger.info("Listing calendar events %s .. %s", params["timeMin"], params["timeMax"])
        data = await self._request("GET", self._events_url(calendar_id), access_token, params=params)
        return [_event_from_api(item) for item in data.get("items", [])]

    async def create_event(
        self,
        access_token: str | None,
        summary: str,
        start_date_time: str,
        end_date_time: str,
        description: str | None = None,
        location: str | None = None,
        attendees: list[str] | None = None,
        time_zone: str = DEFAULT_TIME_ZONE,
        calendar_id: str = "primary",
    ) -> CalendarEvent:
        if not summary or not start_date_time or not end_date_time:
            raise ToolExecutionError("Un evento necesita título, inicio y fin")
        body: dict[str, Any] = {
            "summary": summary,
            "start": {"dateTime": start_date_time, "timeZone": time_zone},
            "end": {"dateTime": end_date_time, "timeZone": time_zone},
        }
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        if attendees:
            body["attendees"] = [{"email": email} for email in attendees]

        logger.info("Creating calendar event %r", summary)
        data = await self._request(
            "POST",
            self._events_url(calendar_id),
            access_token,
            json=body,
            params={"sendUpdates": "all" if attendees else "none"},
        )
        return _event_from_api(data)

    async def update_event(
        self,
        access_token: str | None,
        event_id: str,
        time_zone: str = DEFAULT_TIME_ZONE,
        calendar_id: str = "primary",
        **changes: Any,
    ) -> CalendarEvent:
        """Patch only the fields given in ``changes``.

        Accepted keys: summary, description, location, start_date_time,
        end_date_time, attendees.
        """
        if not event_id:
            raise ToolExecutionError("Se necesita el id del evento")
        body: dict[str, Any] = {}
        for key in ("summary", "description", "location"):
            if changes.get(key) is not None:
                body[key] = changes[key]
        if changes.get("start_date_time"):
            body["start"] = {"dateTime": changes["start_date_time"], "timeZone": time_zone}
        if changes.get("end_date_time"):
            body["end"] = {"dateTime": changes["end_date_time"], "timeZone": time_zone}
        if changes.get("attendees") is not None:
            body["attendees"] = [{"email": email} for email in changes["attendees"]]
        if not body:
            raise ToolExecutionError("No hay cambios que aplicar al evento")

        logger.info("Updating calendar event %s (%s)", event_id, sorted(body))
        data = await self._request(
            "PATCH", self._events_url(calendar_id, event_id), access_token, json=body
        )
        return _event_from_api(data)

    async def delete_event(
        self,
        access_token: str | None,
        event_id: str,
        calendar_id: str = "primary",
    ) -> None:
        if not event_id:
            raise ToolExecutionError("Se necesita el id del evento")
        logger.info("Deleting calendar event %s", event_id)
        await self._request("DELETE", self._events_url(calendar_id, event_id), access_token)
