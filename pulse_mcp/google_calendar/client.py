"""
Google Calendar client backed by the googleapiclient ``calendar`` v3 service.

Authenticates as a service account impersonating a workspace user through
domain-wide delegation.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from ..core.config import CalendarConfig
from ..core.state import SingleSlotCache
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.google_calendar")

SCOPES = ["https://www.googleapis.com/auth/calendar"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def _drop_none(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


class CalendarClient(ABC):

    @abstractmethod
    async def list_events(self, calendar_id: str = "primary", time_min: Optional[str] = None,
                          time_max: Optional[str] = None, max_results: int = 10,
                          query: Optional[str] = None, single_events: bool = True,
                          order_by: Optional[str] = None,
                          page_token: Optional[str] = None) -> Dict[str, Any]:
        """Return the events list resource: ``{summary, timeZone, items, nextPageToken}``"""

    @abstractmethod
    async def get_event(self, calendar_id: str, event_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def create_event(self, calendar_id: str, event: Dict[str, Any],
                           supports_attachments: bool = False) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_event(self, calendar_id: str, event_id: str, event: Dict[str, Any],
                           send_updates: Optional[str] = None,
                           supports_attachments: bool = False) -> Dict[str, Any]: ...

    @abstractmethod
    async def delete_event(self, calendar_id: str, event_id: str,
                           send_updates: Optional[str] = None) -> None: ...

    @abstractmethod
    async def list_calendars(self, max_results: Optional[int] = None, show_hidden: bool = False,
                             page_token: Optional[str] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def query_freebusy(self, time_min: str, time_max: str, calendar_ids: List[str],
                             timezone: Optional[str] = None) -> Dict[str, Any]: ...


def build_calendar_credentials(config: CalendarConfig):
    return service_account.Credentials.from_service_account_info(
        {
            "type": "service_account",
            "client_email": config.client_email,
            "private_key": config.private_key,
            "token_uri": TOKEN_URI,
        },
        scopes=SCOPES,
        subject=config.impersonate_email,
    )


class GoogleCalendarClient(CalendarClient):

    def __init__(self, config: CalendarConfig):
        self.config = config
        self._service = SingleSlotCache(self._build_service)

    async def _build_service(self):
        service = build("calendar", "v3", credentials=build_calendar_credentials(self.config),
                        cache_discovery=False)
        logger.info(f"Calendar API service initialized for {self.config.impersonate_email}")
        return service

    async def list_events(self, calendar_id="primary", time_min=None, time_max=None, max_results=10,
                          query=None, single_events=True, order_by=None, page_token=None):
        service = await self._service.get()
        return service.events().list(**_drop_none({
            "calendarId": calendar_id,
            "timeMin": time_min,
            "timeMax": time_max,
            "maxResults": max_results,
            "q": query,
            "singleEvents": single_events,
            "orderBy": order_by,
            "pageToken": page_token,
        })).execute()

    async def get_event(self, calendar_id, event_id):
        service = await self._service.get()
        return service.events().get(calendarId=calendar_id, eventId=event_id).execute()

    async def create_event(self, calendar_id, event, supports_attachments=False):
        service = await self._service.get()
        params = {"calendarId": calendar_id, "body": event}
        if supports_attachments:
            params["supportsAttachments"] = True
        return service.events().insert(**params).execute()

    async def update_event(self, calendar_id, event_id, event, send_updates=None, supports_attachments=False):
        service = await self._service.get()
        params = _drop_none({"calendarId": calendar_id, "eventId": event_id, "body": event,
                             "sendUpdates": send_updates})
        if supports_attachments:
            params["supportsAttachments"] = True
        return service.events().patch(**params).execute()

    async def delete_event(self, calendar_id, event_id, send_updates=None):
        service = await self._service.get()
        service.events().delete(**_drop_none({
            "calendarId": calendar_id, "eventId": event_id, "sendUpdates": send_updates,
        })).execute()

    async def list_calendars(self, max_results=None, show_hidden=False, page_token=None):
        service = await self._service.get()
        return service.calendarList().list(**_drop_none({
            "maxResults": max_results,
            "showHidden": show_hidden or None,
            "pageToken": page_token,
        })).execute()

    async def query_freebusy(self, time_min, time_max, calendar_ids, timezone=None):
        service = await self._service.get()
        body = _drop_none({
            "timeMin": time_min,
            "timeMax": time_max,
            "items": [{"id": calendar_id} for calendar_id in calendar_ids],
            "timeZone": timezone,
        })
        return service.freebusy().query(body=body).execute()
