#!/usr/bin/env python3
"""
Google Calendar MCP Server

Lists, reads, creates, updates and deletes events, lists calendars and
queries free/busy time for a workspace user impersonated by a service
account. GCAL_ENABLED_TOOLGROUPS selects ``readonly`` or ``readwrite``.
"""

from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import Field, model_validator

from .. import __version__
from ..core.config import CalendarConfig, require_environment
from ..core.errors import ToolError
from ..core.tool_groups import is_tool_enabled, parse_tool_groups
from ..core.tooling import ToolInput, ToolSpec, build_server, run_main, run_stdio
from ..utils.formatting import truncate_text
from ..utils.logger import get_logger
from .client import CalendarClient, GoogleCalendarClient

SERVER_NAME = "google-calendar-mcp-server"
TOOL_GROUPS = ("readonly", "readwrite")
READ_GROUPS = TOOL_GROUPS
WRITE_GROUPS = ("readwrite",)

MAX_ATTACHMENTS = 25
DESCRIPTION_PREVIEW = 200

logger = get_logger("google-calendar-mcp-server")

ClientFactory = Callable[[], CalendarClient]


class ListEventsInput(ToolInput):
    calendar_id: str = Field("primary", description='Calendar ID. Use "primary" for the main calendar')
    time_min: Optional[str] = Field(None, description="Lower bound (RFC3339) for event end time, e.g. 2024-01-01T00:00:00Z")
    time_max: Optional[str] = Field(None, description="Upper bound (RFC3339) for event start time")
    max_results: int = Field(10, ge=1, le=250, description="Maximum number of events (1-250). Default 10")
    query: Optional[str] = Field(None, description="Free text search across event fields")
    single_events: bool = Field(True, description="Expand recurring events into instances. Default true")
    order_by: Optional[Literal["startTime", "updated"]] = Field(
        None, description="startTime (requires single_events) or updated")
    page_token: Optional[str] = Field(None, description="Token from a previous call to fetch the next page")


class GetEventInput(ToolInput):
    calendar_id: str = Field("primary", description="Calendar ID")
    event_id: str = Field(min_length=1, description="Event ID from list_calendar_events")


class Attachment(ToolInput):
    file_url: str = Field(min_length=1, description="Google Drive URL of the file")
    title: Optional[str] = Field(None, description="Display title for the attachment")


class EventFields(ToolInput):
    calendar_id: str = Field("primary", description="Calendar ID")
    summary: Optional[str] = Field(None, description="Event title")
    description: Optional[str] = Field(None, description="Event description")
    location: Optional[str] = Field(None, description="Event location")
    start_datetime: Optional[str] = Field(None, description="Start time (RFC3339), e.g. 2024-01-15T10:00:00-05:00")
    start_date: Optional[str] = Field(None, description="Start date for all-day events, YYYY-MM-DD")
    start_timezone: Optional[str] = Field(None, description="Time zone for the start, e.g. America/New_York")
    end_datetime: Optional[str] = Field(None, description="End time (RFC3339)")
    end_date: Optional[str] = Field(None, description="End date for all-day events, YYYY-MM-DD (exclusive)")
    end_timezone: Optional[str] = Field(None, description="Time zone for the end")
    timezone: Optional[str] = Field(None, description="Time zone applied to start and end when not set separately")
    attendees: Optional[List[str]] = Field(None, description="Attendee email addresses")
    attachments: Optional[List[Attachment]] = Field(
        None, max_length=MAX_ATTACHMENTS, description="Google Drive files to attach (max 25)")


class CreateEventInput(EventFields):
    summary: str = Field(min_length=1, description="Event title")

    @model_validator(mode="after")
    def require_start_and_end(self):
        if not self.start_datetime and not self.start_date:
            raise ValueError("Must provide either start_datetime or start_date")
        if not self.end_datetime and not self.end_date:
            raise ValueError("Must provide either end_datetime or end_date")
        return self


class UpdateEventInput(EventFields):
    event_id: str = Field(min_length=1, description="ID of the event to update")
    send_updates: Optional[Literal["all", "externalOnly", "none"]] = Field(
        None, description="Who receives update notifications: all, externalOnly or none")


class DeleteEventInput(ToolInput):
    calendar_id: str = Field("primary", description="Calendar ID")
    event_id: str = Field(min_length=1, description="ID of the event to delete")
    send_updates: Optional[Literal["all", "externalOnly", "none"]] = Field(
        None, description="Who receives cancellation notifications")


class ListCalendarsInput(ToolInput):
    max_results: Optional[int] = Field(None, ge=1, le=250, description="Maximum number of calendars")
    show_hidden: bool = Field(False, description="Include hidden calendars")


class FreeBusyInput(ToolInput):
    time_min: str = Field(min_length=1, description="Start of the interval (RFC3339)")
    time_max: str = Field(min_length=1, description="End of the interval (RFC3339)")
    calendar_ids: List[str] = Field(min_length=1, description="Calendar IDs to query")
    timezone: Optional[str] = Field(None, description="Time zone for the response")


def _time_field(datetime_value: Optional[str], date_value: Optional[str],
                timezone: Optional[str]) -> Optional[Dict[str, str]]:
    if datetime_value:
        field = {"dateTime": datetime_value}
        if timezone:
            field["timeZone"] = timezone
        return field
    if date_value:
        return {"date": date_value}
    return None


def event_body(params: EventFields) -> Dict[str, Any]:
    """Event resource holding only the fields that were provided"""
    body: Dict[str, Any] = {}
    for key in ("summary", "description", "location"):
        value = getattr(params, key)
        if value is not None:
            body[key] = value
    start = _time_field(params.start_datetime, params.start_date, params.start_timezone or params.timezone)
    if start:
        body["start"] = start
    end = _time_field(params.end_datetime, params.end_date, params.end_timezone or params.timezone)
    if end:
        body["end"] = end
    if params.attendees is not None:
        body["attendees"] = [{"email": address} for address in params.attendees]
    if params.attachments:
        body["attachments"] = [
            {"fileUrl": a.file_url, **({"title": a.title} if a.title else {})} for a in params.attachments
        ]
    return body


def format_time(label: str, value: Optional[Dict[str, str]]) -> Optional[str]:
    if not value:
        return None
    if value.get("dateTime"):
        line = f"**{label}:** {value['dateTime']}"
        if value.get("timeZone"):
            line += f" ({value['timeZone']})"
        return line
    if value.get("date"):
        return f"**{label}:** {value['date']} (All day)"
    return None


def _person(person: Dict[str, Any]) -> str:
    return person.get("displayName") or person.get("email", "")


def format_event_summary(event: Dict[str, Any]) -> str:
    lines = [f"## {event.get('summary') or '(No title)'}", "", f"**Event ID:** {event.get('id')}"]
    for label, key in (("Start", "start"), ("End", "end")):
        line = format_time(label, event.get(key))
        if line:
            lines.append(line)
    if event.get("location"):
        lines.append(f"**Location:** {event['location']}")
    if event.get("status"):
        lines.append(f"**Status:** {event['status']}")
    if event.get("organizer"):
        lines.append(f"**Organizer:** {_person(event['organizer'])}")
    if event.get("attendees"):
        lines.append("**Attendees:**")
        for attendee in event["attendees"]:
            lines.append(f"  - {_person(attendee)} ({attendee.get('responseStatus', 'needsAction')})")
    if event.get("description"):
        lines.append(f"**Description:** {truncate_text(event['description'], DESCRIPTION_PREVIEW)}")
    if event.get("htmlLink"):
        lines.append(f"**Link:** {event['htmlLink']}")
    return "\n".join(lines)


def format_event_details(event: Dict[str, Any]) -> str:
    lines = ["# Event Details", "", f"## {event.get('summary') or '(No title)'}", "",
             f"**Event ID:** {event.get('id')}"]
    if event.get("status"):
        lines.append(f"**Status:** {event['status']}")
    for label, key in (("Start", "start"), ("End", "end")):
        line = format_time(label, event.get(key))
        if line:
            lines.append(line)
    if event.get("location"):
        lines.append(f"**Location:** {event['location']}")
    if event.get("creator"):
        lines.append(f"**Created By:** {_person(event['creator'])}")
    if event.get("organizer"):
        lines.append(f"**Organizer:** {_person(event['organizer'])}")

    attendees = event.get("attendees") or []
    if attendees:
        lines += ["", f"### Attendees ({len(attendees)})", ""]
        for attendee in attendees:
            optional = " (optional)" if attendee.get("optional") else ""
            lines.append(f"- {_person(attendee)} - **{attendee.get('responseStatus', 'needsAction')}**{optional}")
    if event.get("description"):
        lines += ["", "### Description", "", event["description"]]
    if event.get("recurrence"):
        lines += ["", "### Recurrence", ""] + [f"- {rule}" for rule in event["recurrence"]]

    reminders = event.get("reminders")
    if reminders:
        lines += ["", "### Reminders", ""]
        if reminders.get("useDefault"):
            lines.append("Using default reminders")
        for reminder in reminders.get("overrides") or []:
            lines.append(f"- {reminder.get('method')}: {reminder.get('minutes')} minutes before")

    extra = []
    for label, key in (("Visibility", "visibility"), ("Show as", "transparency"),
                       ("Created", "created"), ("Updated", "updated")):
        if event.get(key):
            extra.append(f"**{label}:** {event[key]}")
    if extra:
        lines += [""] + extra
    if event.get("htmlLink"):
        lines += ["", f"**Event Link:** {event['htmlLink']}"]
    return "\n".join(lines)


def format_saved_event(title: str, event: Dict[str, Any]) -> str:
    lines = [f"# {title}", "", f"## {event.get('summary') or '(No title)'}", "",
             f"**Event ID:** {event.get('id')}"]
    for label, key in (("Start", "start"), ("End", "end")):
        line = format_time(label, event.get(key))
        if line:
            lines.append(line)
    if event.get("location"):
        lines.append(f"**Location:** {event['location']}")
    if event.get("attendees"):
        lines.append(f"**Attendees:** {len(event['attendees'])}")
        lines += [f"  - {attendee.get('email')}" for attendee in event["attendees"]]
    if event.get("attachments"):
        lines.append(f"**Attachments:** {len(event['attachments'])}")
        lines += [f"  - {a.get('title') or a.get('fileUrl')}" for a in event["attachments"]]
    if event.get("htmlLink"):
        lines += ["", f"**Event Link:** {event['htmlLink']}"]
    return "\n".join(lines)


def format_freebusy(response: Dict[str, Any]) -> str:
    lines = ["# Free/Busy Information", "",
             f"**Time Range:** {response.get('timeMin')} to {response.get('timeMax')}"]
    for calendar_id, info in (response.get("calendars") or {}).items():
        lines += ["", f"## Calendar: {calendar_id}", ""]
        errors = info.get("errors") or []
        busy = info.get("busy") or []
        if errors:
            lines.append("**Errors:**")
            lines += [f"  - {error.get('domain')}: {error.get('reason')}" for error in errors]
        elif not busy:
            lines.append("**Status:** Free for the entire time range")
        else:
            lines.append(f"**Busy Periods:** {len(busy)}")
            lines += [f"  - {period.get('start')} to {period.get('end')}" for period in busy]
    return "\n".join(lines)


def create_tools(client_factory: ClientFactory) -> List[ToolSpec]:

    async def list_calendar_events(params: ListEventsInput) -> str:
        try:
            response = await client_factory().list_events(
                calendar_id=params.calendar_id,
                time_min=params.time_min,
                time_max=params.time_max,
                max_results=params.max_results,
                query=params.query,
                single_events=params.single_events,
                order_by=params.order_by,
                page_token=params.page_token,
            )
        except Exception as e:
            raise ToolError(f"Error listing events: {e}") from e

        events = response.get("items") or []
        if not events:
            return "No events found matching the criteria."

        sections = [
            f"# Calendar Events ({len(events)} found)\n\n"
            f"**Calendar:** {response.get('summary') or params.calendar_id}\n"
            f"**Time Zone:** {response.get('timeZone', 'Unknown')}"
        ]
        sections += [format_event_summary(event) for event in events]
        text = "\n\n---\n\n".join(sections) + "\n\n---"
        if response.get("nextPageToken"):
            text += f"\n\n**Next page token:** {response['nextPageToken']}"
        return text

    async def get_calendar_event(params: GetEventInput) -> str:
        try:
            event = await client_factory().get_event(params.calendar_id, params.event_id)
        except Exception as e:
            raise ToolError(f"Error getting event: {e}") from e
        return format_event_details(event)

    async def create_calendar_event(params: CreateEventInput) -> str:
        body = event_body(params)
        try:
            event = await client_factory().create_event(
                params.calendar_id, body, supports_attachments=bool(params.attachments))
        except Exception as e:
            raise ToolError(f"Error creating event: {e}") from e
        logger.info(f"Created event {event.get('id')} on {params.calendar_id}")
        return format_saved_event("Event Created Successfully", event)

    async def update_calendar_event(params: UpdateEventInput) -> str:
        body = event_body(params)
        if not body:
            return "No changes specified. Provide at least one field to update."
        try:
            event = await client_factory().update_event(
                params.calendar_id, params.event_id, body,
                send_updates=params.send_updates, supports_attachments=bool(params.attachments))
        except Exception as e:
            raise ToolError(f"Error updating event: {e}") from e
        return format_saved_event("Event Updated Successfully", event)

    async def delete_calendar_event(params: DeleteEventInput) -> str:
        try:
            await client_factory().delete_event(params.calendar_id, params.event_id, params.send_updates)
        except Exception as e:
            raise ToolError(f"Error deleting event: {e}") from e
        logger.info(f"Deleted event {params.event_id} from {params.calendar_id}")
        return f"Event {params.event_id} deleted successfully from calendar {params.calendar_id}."

    async def list_calendars(params: ListCalendarsInput) -> str:
        try:
            response = await client_factory().list_calendars(
                max_results=params.max_results, show_hidden=params.show_hidden)
        except Exception as e:
            raise ToolError(f"Error listing calendars: {e}") from e

        calendars = response.get("items") or []
        if not calendars:
            return "No calendars found."
        sections = [f"# Calendars ({len(calendars)} found)"]
        for calendar in calendars:
            lines = [f"## {calendar.get('summary') or calendar.get('id')}" + (" (Primary)" if calendar.get("primary") else ""),
                     "", f"**Calendar ID:** {calendar.get('id')}"]
            if calendar.get("timeZone"):
                lines.append(f"**Time Zone:** {calendar['timeZone']}")
            if calendar.get("accessRole"):
                lines.append(f"**Access Role:** {calendar['accessRole']}")
            if calendar.get("description"):
                lines.append(f"**Description:** {calendar['description']}")
            sections.append("\n".join(lines))
        return "\n\n".join(sections)

    async def query_calendar_freebusy(params: FreeBusyInput) -> str:
        try:
            response = await client_factory().query_freebusy(
                params.time_min, params.time_max, params.calendar_ids, params.timezone)
        except Exception as e:
            raise ToolError(f"Error querying free/busy: {e}") from e
        return format_freebusy(response)

    return [
        ToolSpec("list_calendar_events",
                 "List events from a calendar, optionally within a time range or matching a text query. "
                 "Returns titles, times, attendees and links.",
                 ListEventsInput, list_calendar_events, READ_GROUPS),
        ToolSpec("get_calendar_event",
                 "Get full details of a single event, including attendees, recurrence and reminders.",
                 GetEventInput, get_calendar_event, READ_GROUPS),
        ToolSpec("list_calendars",
                 "List the calendars the user can access, with their IDs and access roles.",
                 ListCalendarsInput, list_calendars, READ_GROUPS),
        ToolSpec("query_calendar_freebusy",
                 "Find busy periods for one or more calendars within a time range.",
                 FreeBusyInput, query_calendar_freebusy, READ_GROUPS),
        ToolSpec("create_calendar_event",
                 "Create an event with a timed (start_datetime) or all-day (start_date) start and end. "
                 "Attendees and Google Drive attachments are optional.",
                 CreateEventInput, create_calendar_event, WRITE_GROUPS, is_write=True),
        ToolSpec("update_calendar_event",
                 "Update fields of an existing event. Only the fields provided are changed.",
                 UpdateEventInput, update_calendar_event, WRITE_GROUPS, is_write=True),
        ToolSpec("delete_calendar_event",
                 "Delete an event. This cannot be undone.",
                 DeleteEventInput, delete_calendar_event, WRITE_GROUPS, is_write=True),
    ]


def enabled_tools(config: CalendarConfig, client_factory: ClientFactory) -> List[ToolSpec]:
    enabled = parse_tool_groups(config.enabled_toolgroups, TOOL_GROUPS,
                                env_name="GCAL_ENABLED_TOOLGROUPS", logger=logger)
    return [tool for tool in create_tools(client_factory) if is_tool_enabled(tool.groups, enabled)]


def create_server(config: CalendarConfig, client_factory: Optional[ClientFactory] = None):
    if client_factory is None:
        client = GoogleCalendarClient(config)
        client_factory = lambda: client
    return build_server(SERVER_NAME, enabled_tools(config, client_factory))


async def main():
    """Run the MCP server"""
    config = CalendarConfig.from_environment()
    require_environment(config, SERVER_NAME)
    server = create_server(config)
    logger.info(f"Starting {SERVER_NAME} v{__version__} as {config.impersonate_email}")
    await run_stdio(server, __version__)


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
