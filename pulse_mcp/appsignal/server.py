#!/usr/bin/env python3
"""
AppSignal MCP Server

Incident triage, log search, metrics and deploy markers from AppSignal's
GraphQL API. Most tools act on the selected app, which is either locked by
APPSIGNAL_APP_ID or chosen at runtime with select_app_id.
"""

import re
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import Field

from .. import __version__
from ..core.config import AppsignalConfig, require_environment
from ..core.errors import ToolError
from ..core.state import SelectionState, SingleSlotCache
from ..core.tooling import EmptyInput, ToolInput, ToolSpec, build_server, json_text, run_main, run_stdio
from ..utils.logger import get_logger
from ..utils.truncation import truncate_strings
from .client import AppsignalClient, GraphQLAppsignalClient

SERVER_NAME = "appsignal-mcp-server"
NO_APP_SELECTED = (
    "Error: No app ID selected. Please use select_app_id tool first or set "
    "APPSIGNAL_APP_ID environment variable."
)
MAX_LOG_LINES = 1000

logger = get_logger("appsignal-mcp-server")

ClientFactory = Callable[[], AppsignalClient]

IncidentState = Literal["OPEN", "CLOSED", "WIP"]
Severity = Literal["debug", "info", "warn", "error", "fatal"]
Timeframe = Literal["R1H", "R4H", "R8H", "R12H", "R24H", "R48H", "R7D", "R30D"]


class SelectAppInput(ToolInput):
    app_id: str = Field(min_length=1, description="ID of the app to use for subsequent calls (from get_apps)")


class IncidentListInput(ToolInput):
    states: Optional[List[IncidentState]] = Field(
        None, description='Incident states to include. OPEN, WIP or CLOSED. Defaults to ["OPEN"]')
    limit: int = Field(50, ge=1, description="Maximum number of incidents to return")
    offset: int = Field(0, ge=0, description="Number of incidents to skip")


class IncidentInput(ToolInput):
    incident_number: int = Field(description="Incident number as shown in AppSignal")


class IncidentSampleInput(IncidentInput):
    offset: int = Field(0, ge=0, description="Sample offset; 0 is the most recent sample")
    expand_fields: Optional[List[str]] = Field(
        None, description='Paths to return untruncated. Example: ["params", "backtrace[]"]')


class SearchLogsInput(ToolInput):
    query: str = Field(description='Search query. Example: "payment failed" or "user_id:123"')
    limit: int = Field(50, ge=1, description="Maximum number of log lines (default 50, max 1000)")
    severities: Optional[List[Severity]] = Field(None, description="Only return lines with these severities")
    start: Optional[str] = Field(None, description='Window start in ISO 8601. Example: "2024-01-15T00:00:00Z"')
    end: Optional[str] = Field(None, description='Window end in ISO 8601. Example: "2024-01-15T23:59:59Z"')


class MetricsInput(ToolInput):
    metric_name: str = Field(description='Metric name. Example: "transaction_duration"')
    namespace: str = Field(description='Namespace tag. Example: "web" or "background"')
    timeframe: Timeframe = Field("R24H", description="Relative timeframe such as R1H, R24H or R7D")
    limit: int = Field(30, ge=1, le=1000, description="Maximum number of rows")


class DeployMarkersInput(ToolInput):
    timeframe: Timeframe = Field("R7D", description="Relative timeframe such as R24H or R30D")
    limit: int = Field(10, ge=1, le=100, description="Maximum number of deploy markers")


class CustomQueryInput(ToolInput):
    query: str = Field(min_length=1, description="GraphQL query string following the AppSignal schema")
    variables: Optional[Dict[str, Any]] = Field(
        None, description="Variables for the query, keyed by name without the $ prefix")


_APP_ID_VARIABLE = re.compile(r"\$appId\b")


def custom_query_hint(message: str) -> str:
    if "Cannot query field" in message:
        return "\n\nTip: Check the field names against the AppSignal GraphQL schema for the type you are querying."
    if "Variable" in message and "required" in message:
        return "\n\nTip: Make sure all required variables are provided in the variables parameter."
    return ""


def create_tools(client_factory: ClientFactory,
                 selection: Optional[SelectionState] = None) -> List[ToolSpec]:
    """
    Build the AppSignal tools around a shared app selection.

    The app list is fetched once and reused by select_app_id until the
    process restarts.
    """
    selection = selection or SelectionState()
    apps_cache: SingleSlotCache[List[Dict[str, Any]]] = SingleSlotCache(
        lambda: client_factory().get_apps())

    def require_app() -> str:
        if not selection.selected_id:
            raise ToolError(NO_APP_SELECTED)
        return selection.selected_id

    async def get_apps(params: EmptyInput) -> str:
        try:
            apps = await apps_cache.get()
        except Exception as e:
            raise ToolError(f"Error fetching apps: {e}") from e
        return json_text({"apps": apps, "selectedAppId": selection.selected_id})

    async def select_app_id(params: SelectAppInput) -> str:
        if selection.locked and selection.selected_id != params.app_id:
            raise ToolError(f'Cannot change {selection.label}: current selection is locked to "{selection.selected_id}"')
        try:
            apps = await apps_cache.get()
        except Exception as e:
            raise ToolError(f"Error fetching apps: {e}") from e

        app = next((a for a in apps if a.get("id") == params.app_id), None)
        if app is None:
            available = ", ".join(f"{a.get('id')} ({a.get('name')})" for a in apps) or "none"
            raise ToolError(f'Error: App ID "{params.app_id}" not found. Available apps: {available}')
        try:
            selection.select(params.app_id)
        except RuntimeError as e:
            raise ToolError(str(e)) from e
        return f"Selected app: {app.get('name')} ({app.get('environment')}) - ID: {app.get('id')}"

    def incident_list(method: str, noun: str):
        async def handler(params: IncidentListInput) -> str:
            app_id = require_app()
            try:
                result = await getattr(client_factory(), method)(
                    app_id, params.states or ["OPEN"], params.limit, params.offset)
            except Exception as e:
                raise ToolError(f"Error fetching {noun}: {e}") from e
            return json_text(result)
        return handler

    async def get_exception_incident(params: IncidentInput) -> str:
        app_id = require_app()
        try:
            incident = await client_factory().get_exception_incident(app_id, params.incident_number)
        except Exception as e:
            raise ToolError(f"Error fetching exception incident: {e}") from e
        return json_text(incident)

    async def get_exception_incident_sample(params: IncidentSampleInput) -> str:
        app_id = require_app()
        try:
            sample = await client_factory().get_exception_incident_sample(
                app_id, params.incident_number, params.offset)
        except Exception as e:
            raise ToolError(f"Error fetching exception incident sample: {e}") from e
        return json_text(truncate_strings(sample, params.expand_fields or ()))

    async def get_log_incident(params: IncidentInput) -> str:
        app_id = require_app()
        try:
            incident = await client_factory().get_log_incident(app_id, params.incident_number)
        except Exception as e:
            raise ToolError(f"Error fetching log incident: {e}") from e
        return json_text(incident)

    async def search_logs(params: SearchLogsInput) -> str:
        app_id = require_app()
        limit = min(params.limit, MAX_LOG_LINES)
        try:
            result = await client_factory().search_logs(
                app_id, params.query, limit, params.severities, params.start, params.end)
        except Exception as e:
            raise ToolError(f"Error searching logs: {e}") from e
        return json_text(result)

    async def get_metrics(params: MetricsInput) -> str:
        app_id = require_app()
        try:
            result = await client_factory().get_metrics(
                app_id, params.metric_name, params.namespace, params.timeframe, params.limit)
        except Exception as e:
            raise ToolError(f"Error fetching metrics: {e}") from e
        return json_text(result)

    async def get_deploy_markers(params: DeployMarkersInput) -> str:
        app_id = require_app()
        try:
            markers = await client_factory().get_deploy_markers(app_id, params.timeframe, params.limit)
        except Exception as e:
            raise ToolError(f"Error fetching deploy markers: {e}") from e
        return json_text({"deployMarkers": markers, "count": len(markers)})

    async def custom_graphql_query(params: CustomQueryInput) -> str:
        variables = dict(params.variables or {})
        if selection.selected_id and _APP_ID_VARIABLE.search(params.query) and "appId" not in variables:
            variables["appId"] = selection.selected_id
        try:
            result = await client_factory().execute_custom_query(params.query, variables)
        except Exception as e:
            raise ToolError(f"Error executing GraphQL query: {e}{custom_query_hint(str(e))}") from e
        return json_text(result)

    return [
        ToolSpec("get_apps",
                 "List the AppSignal apps available to this API key with their ids and environments.",
                 EmptyInput, get_apps),
        ToolSpec("select_app_id",
                 "Select the app that the other AppSignal tools operate on. Fails when the app is "
                 "fixed by the APPSIGNAL_APP_ID environment variable.",
                 SelectAppInput, select_app_id),
        ToolSpec("get_exception_incidents",
                 "List exception incidents for the selected app. Exception incidents group similar "
                 "errors and show counts, last occurrence and affected actions.",
                 IncidentListInput, incident_list("get_exception_incidents", "exception incidents")),
        ToolSpec("get_exception_incident",
                 "Get details for one exception incident by its number.",
                 IncidentInput, get_exception_incident),
        ToolSpec("get_exception_incident_sample",
                 "Get one sample of an exception incident with its backtrace, params and environment. "
                 "Use offset to page through older samples and expand_fields to see truncated values.",
                 IncidentSampleInput, get_exception_incident_sample),
        ToolSpec("get_log_incidents",
                 "List log incidents for the selected app. Log incidents are raised by log triggers.",
                 IncidentListInput, incident_list("get_log_incidents", "log incidents")),
        ToolSpec("get_log_incident",
                 "Get details for one log incident by its number, including its trigger.",
                 IncidentInput, get_log_incident),
        ToolSpec("get_anomaly_incidents",
                 "List anomaly detection incidents for the selected app.",
                 IncidentListInput, incident_list("get_anomaly_incidents", "anomaly incidents")),
        ToolSpec("get_performance_incidents",
                 "List performance incidents for the selected app with mean duration and affected actions.",
                 IncidentListInput, incident_list("get_performance_incidents", "performance incidents")),
        ToolSpec("search_logs",
                 "Search application logs by content, optionally filtered by severity and a time "
                 "window. A window from about 10 seconds before to 3 seconds after an incident "
                 "usually gives enough context.",
                 SearchLogsInput, search_logs),
        ToolSpec("get_metrics",
                 "Get aggregated metric rows (mean, count, p95 and so on) for a metric and namespace.",
                 MetricsInput, get_metrics),
        ToolSpec("get_deploy_markers",
                 "List recent deploys with revision, author and the exception counts they introduced.",
                 DeployMarkersInput, get_deploy_markers),
        ToolSpec("custom_graphql_query",
                 "Run a custom query against the AppSignal GraphQL API when the specialized tools do "
                 "not cover the data you need. Most data lives under viewer { organizations { apps } } "
                 "or app(id: $appId). The selected app id is injected as $appId when the query uses "
                 "it and no appId variable is given.",
                 CustomQueryInput, custom_graphql_query),
    ]


def create_server(config: AppsignalConfig, client_factory: Optional[ClientFactory] = None,
                  selection: Optional[SelectionState] = None):
    if client_factory is None:
        client = GraphQLAppsignalClient(config)
        client_factory = lambda: client
    selection = selection or SelectionState()
    if config.app_id:
        selection.select(config.app_id, locked=True)
        logger.info(f"App selection locked to {config.app_id}")
    return build_server(SERVER_NAME, create_tools(client_factory, selection))


async def main():
    """Run the MCP server"""
    config = AppsignalConfig.from_environment()
    require_environment(config, SERVER_NAME)
    client = GraphQLAppsignalClient(config)
    server = create_server(config, lambda: client)
    logger.info(f"Starting {SERVER_NAME} v{__version__}")
    try:
        await run_stdio(server, __version__)
    finally:
        await client.close()


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
