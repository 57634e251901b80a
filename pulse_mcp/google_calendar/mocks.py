"""
In-memory calendar client for tests.
"""

import copy
from typing import Any, Dict, List, Optional

from .client import CalendarClient

DEFAULT_CALENDARS = [
    {"id": "primary", "summary": "me@example.com", "timeZone": "America/New_York",
     "accessRole": "owner", "primary": True},
    {"id": "team@example.com", "summary": "Team", "timeZone": "America/New_York",
     "accessRole": "reader", "description": "Shared team calendar"},
]


class MockCalendarClient(CalendarClient):
    """
    ``events`` maps calendar id to a list of event resources; ``busy`` maps
    calendar id to busy periods returned by ``query_freebusy``.
    """

    def __init__(self, events: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 calendars: Optional[List[Dict[str, Any]]] = None,
                 busy: Optional[Dict[str, List[Dict[str, str]]]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.events = copy.deepcopy(events or {})
        self.calendars = copy.deepcopy(calendars if calendars is not None else DEFAULT_CALENDARS)
        self.busy = copy.deepcopy(busy or {})
        self.errors = errors or {}
        self.calls: List[tuple] = []

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def _find(self, calendar_id: str, event_id: str) -> Dict[str, Any]:
        for event in self.events.get(calendar_id, []):
            if event["id"] == event_id:
                return event
        raise LookupError(f"Event not found: {event_id}")

    async def list_events(self, calendar_id="primary", time_min=None, time_max=None, max_results=10,
                          query=None, single_events=True, order_by=None, page_token=None):
        self._record("list_events", calendar_id, max_results, query, page_token)
        events = [
            e for e in self.events.get(calendar_id, [])
            if not query or query.lower() in (e.get("summary", "") + " " + e.get("description", "")).lower()
        ]
        offset = int(page_token) if page_token else 0
        page = events[offset:offset + max_results]
        result = {
            "summary": "me@example.com" if calendar_id == "primary" else calendar_id,
            "timeZone": "America/New_York",
            "items": copy.deepcopy(page),
        }
        if offset + max_results < len(events):
            result["nextPageToken"] = str(offset + max_results)
        return result

    async def get_event(self, calendar_id, event_id):
        self._record("get_event", calendar_id, event_id)
        return copy.deepcopy(self._find(calendar_id, event_id))

    async def create_event(self, calendar_id, event, supports_attachments=False):
        self._record("create_event", calendar_id, event, supports_attachments)
        created = dict(copy.deepcopy(event), id=f"evt-{sum(len(v) for v in self.events.values()) + 1}",
                       status="confirmed", htmlLink="https://calendar.google.com/event?eid=new")
        self.events.setdefault(calendar_id, []).append(created)
        return copy.deepcopy(created)

    async def update_event(self, calendar_id, event_id, event, send_updates=None, supports_attachments=False):
        self._record("update_event", calendar_id, event_id, event, send_updates, supports_attachments)
        existing = self._find(calendar_id, event_id)
        existing.update(copy.deepcopy(event))
        return copy.deepcopy(existing)

    async def delete_event(self, calendar_id, event_id, send_updates=None):
        self._record("delete_event", calendar_id, event_id, send_updates)
        self.events[calendar_id].remove(self._find(calendar_id, event_id))

    async def list_calendars(self, max_results=None, show_hidden=False, page_token=None):
        self._record("list_calendars", max_results, show_hidden)
        calendars = [c for c in self.calendars if show_hidden or not c.get("hidden")]
        return {"items": copy.deepcopy(calendars[:max_results] if max_results else calendars)}

    async def query_freebusy(self, time_min, time_max, calendar_ids, timezone=None):
        self._record("query_freebusy", time_min, time_max, list(calendar_ids), timezone)
        calendars = {}
        known = {c["id"] for c in self.calendars}
        for calendar_id in calendar_ids:
            if calendar_id not in known:
                calendars[calendar_id] = {"errors": [{"domain": "global", "reason": "notFound"}], "busy": []}
            else:
                calendars[calendar_id] = {"busy": copy.deepcopy(self.busy.get(calendar_id, []))}
        return {"timeMin": time_min, "timeMax": time_max, "calendars": calendars}
