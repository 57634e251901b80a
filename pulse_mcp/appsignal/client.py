"""
AppSignal GraphQL API client.

Every query is scoped to one app through ``app(id: $appId)``. Incident lists
are fetched once per requested state and merged.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import AppsignalConfig
from ..core.errors import ApiError
from ..utils.http import ApiHttpClient
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.appsignal")

INCIDENT_STATES = ("OPEN", "CLOSED", "WIP")
SEVERITIES = ("debug", "info", "warn", "error", "fatal")
TIMEFRAMES = ("R1H", "R4H", "R8H", "R12H", "R24H", "R48H", "R7D", "R30D")


APPS_QUERY = """
query GetApps {
  viewer {
    organizations {
      name
      apps { id name environment }
    }
  }
}
"""

EXCEPTION_INCIDENTS_QUERY = """
query GetExceptionIncidents($appId: String!, $state: IncidentStateEnum, $limit: Int, $offset: Int) {
  app(id: $appId) {
    exceptionIncidents(state: $state, limit: $limit, offset: $offset) {
      id number count state severity lastOccurredAt
      exceptionName exceptionMessage actionNames namespace
    }
  }
}
"""

EXCEPTION_INCIDENT_QUERY = """
query GetExceptionIncident($appId: String!, $number: Int!) {
  app(id: $appId) {
    exceptionIncident(incidentNumber: $number) {
      id number count state severity createdAt lastOccurredAt
      exceptionName exceptionMessage actionNames namespace description
    }
  }
}
"""

EXCEPTION_SAMPLE_QUERY = """
query GetExceptionIncidentSample($appId: String!, $number: Int!, $offset: Int!) {
  app(id: $appId) {
    exceptionIncident(incidentNumber: $number) {
      samples(limit: 1, offset: $offset) {
        id time action namespace revision version duration queueDuration
        params customData sessionData
        overview { key value }
        environment { key value }
        exception { name message backtrace { path line method } }
        errorCauses { name message firstLine { path line method } }
        firstMarker { revision shortRevision liveFor liveForInWords exceptionRate exceptionCount createdAt }
      }
    }
  }
}
"""

LOG_INCIDENTS_QUERY = """
query GetLogIncidents($appId: String!, $state: IncidentStateEnum, $limit: Int, $offset: Int) {
  app(id: $appId) {
    logIncidents(state: $state, limit: $limit, offset: $offset) {
      id number summary description severity state count lastOccurredAt updatedAt
      trigger { id name query severities }
    }
  }
}
"""

LOG_INCIDENT_QUERY = """
query GetLogIncident($appId: String!, $number: Int!) {
  app(id: $appId) {
    logIncident(incidentNumber: $number) {
      id number summary description severity state count createdAt lastOccurredAt updatedAt digests
      trigger { id name description query severities sourceIds }
    }
  }
}
"""

ANOMALY_INCIDENTS_QUERY = """
query GetAnomalyIncidents($appId: String!, $state: IncidentStateEnum, $limit: Int, $offset: Int) {
  app(id: $appId) {
    anomalyIncidents(state: $state, limit: $limit, offset: $offset) {
      id number summary description state count createdAt lastOccurredAt updatedAt
      alertState trigger { id name description }
    }
  }
}
"""

PERFORMANCE_INCIDENTS_QUERY = """
query GetPerformanceIncidents($appId: String!, $state: IncidentStateEnum, $limit: Int, $offset: Int) {
  app(id: $appId) {
    performanceIncidents(state: $state, limit: $limit, offset: $offset) {
      id number state severity count lastOccurredAt createdAt
      actionNames namespace description mean totalDuration hasNPlusOne
    }
  }
}
"""

SEARCH_LOGS_QUERY = """
query SearchLogs($appId: String!, $query: String!, $limit: Int!, $severities: [SeverityEnum!],
                 $start: DateTime, $end: DateTime) {
  app(id: $appId) {
    logs {
      lines(query: $query, limit: $limit, severities: $severities, start: $start, end: $end) {
        id timestamp message severity hostname group
        attributes { key value }
      }
    }
  }
}
"""

METRICS_QUERY = """
query GetMetrics($appId: String!, $name: String!, $namespace: String!, $timeframe: TimeframeEnum!,
                 $limit: Int!) {
  app(id: $appId) {
    metrics {
      list(timeframe: $timeframe, limit: $limit,
           filter: {name: $name, tags: [{key: "namespace", value: $namespace}]}) {
        start end
        rows { name tags { key value } fields { key value } }
      }
    }
  }
}
"""

DEPLOY_MARKERS_QUERY = """
query GetDeployMarkers($appId: String!, $timeframe: TimeframeEnum!, $limit: Int!) {
  app(id: $appId) {
    deployMarkers(timeframe: $timeframe, limit: $limit) {
      id createdAt revision shortRevision user namespace gitCompareUrl
      exceptionCount exceptionRate liveFor liveForInWords
    }
  }
}
"""


def _frame(frame: Optional[Dict[str, Any]]) -> str:
    frame = frame or {}
    return f"{frame.get('path')}:{frame.get('line')} in {frame.get('method')}"


def simplify_sample(sample: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a raw exception sample into the shape tools return"""
    exception = sample.get("exception") or {}
    simplified = {
        "id": sample.get("id"),
        "timestamp": sample.get("time"),
        "message": exception.get("message"),
        "backtrace": [_frame(frame) for frame in exception.get("backtrace") or []],
        "action": sample.get("action"),
        "namespace": sample.get("namespace"),
        "revision": sample.get("revision"),
        "version": sample.get("version"),
        "duration": sample.get("duration"),
        "queueDuration": sample.get("queueDuration"),
        "params": sample.get("params"),
        "customData": sample.get("customData"),
        "sessionData": sample.get("sessionData"),
        "overview": sample.get("overview"),
        "environment": sample.get("environment"),
        "errorCauses": [
            {"name": cause.get("name"), "message": cause.get("message"),
             "firstLine": _frame(cause.get("firstLine"))}
            for cause in sample.get("errorCauses") or []
        ],
        "firstMarker": sample.get("firstMarker"),
    }
    return {key: value for key, value in simplified.items() if value not in (None, [], {})}


class AppsignalClient(ABC):
    """Operations used by the AppSignal tools; app-scoped calls take the app id first"""

    @abstractmethod
    async def get_apps(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_exception_incidents(self, app_id: str, states: Sequence[str] = ("OPEN",),
                                      limit: int = 50, offset: int = 0) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_exception_incident(self, app_id: str, number: int) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_exception_incident_sample(self, app_id: str, number: int,
                                            offset: int = 0) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_log_incidents(self, app_id: str, states: Sequence[str] = ("OPEN",),
                                limit: int = 50, offset: int = 0) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_log_incident(self, app_id: str, number: int) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_anomaly_incidents(self, app_id: str, states: Sequence[str] = ("OPEN",),
                                    limit: int = 50, offset: int = 0) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_performance_incidents(self, app_id: str, states: Sequence[str] = ("OPEN",),
                                        limit: int = 50, offset: int = 0) -> Dict[str, Any]: ...

    @abstractmethod
    async def search_logs(self, app_id: str, query: str, limit: int = 50,
                          severities: Optional[Sequence[str]] = None,
                          start: Optional[str] = None, end: Optional[str] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_metrics(self, app_id: str, metric_name: str, namespace: str,
                          timeframe: str = "R24H", limit: int = 30) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_deploy_markers(self, app_id: str, timeframe: str = "R7D",
                                 limit: int = 10) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def execute_custom_query(self, query: str,
                                   variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...


class GraphQLAppsignalClient(ApiHttpClient, AppsignalClient):
    """AppSignal GraphQL endpoint over aiohttp; the API key travels as the ``token`` parameter"""

    def __init__(self, config: AppsignalConfig):
        super().__init__(
            config.api_url,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout_seconds=config.request_timeout,
        )
        self.api_key = config.api_key

    async def _graphql(self, query: str, variables: Optional[Dict[str, Any]] = None,
                       action: str = "GraphQL query") -> Dict[str, Any]:
        payload = await self._request(
            "POST", "", action,
            params={"token": self.api_key},
            json_body={"query": query, "variables": variables or {}},
        )
        if not isinstance(payload, dict):
            raise ApiError(f"{action} failed: empty response")
        errors = payload.get("errors")
        if errors:
            messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]
            raise ApiError("; ".join(messages))
        return payload.get("data") or {}

    async def _app(self, app_id: str, query: str, variables: Dict[str, Any], action: str) -> Dict[str, Any]:
        data = await self._graphql(query, {"appId": app_id, **variables}, action)
        app = data.get("app")
        if app is None:
            raise ApiError(f"App not found: {app_id}")
        return app

    async def _incident_list(self, app_id: str, query: str, field: str, states: Sequence[str],
                             limit: int, offset: int, action: str) -> Dict[str, Any]:
        incidents: List[Dict[str, Any]] = []
        has_more = False
        for state in states:
            app = await self._app(app_id, query, {"state": state, "limit": limit, "offset": offset}, action)
            batch = app.get(field) or []
            has_more = has_more or len(batch) >= limit
            incidents.extend(batch)
        return {"incidents": incidents[:limit], "total": len(incidents),
                "hasMore": has_more or len(incidents) > limit}

    async def get_apps(self):
        data = await self._graphql(APPS_QUERY, action="Fetch apps")
        apps = []
        for organization in (data.get("viewer") or {}).get("organizations") or []:
            for app in organization.get("apps") or []:
                apps.append({"id": app.get("id"), "name": app.get("name"),
                             "environment": app.get("environment")})
        return apps

    async def get_exception_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        return await self._incident_list(app_id, EXCEPTION_INCIDENTS_QUERY, "exceptionIncidents",
                                         states, limit, offset, "Fetch exception incidents")

    async def get_exception_incident(self, app_id, number):
        app = await self._app(app_id, EXCEPTION_INCIDENT_QUERY, {"number": int(number)},
                              "Fetch exception incident")
        incident = app.get("exceptionIncident")
        if not incident:
            raise ApiError(f"Exception incident {number} not found")
        return incident

    async def get_exception_incident_sample(self, app_id, number, offset=0):
        app = await self._app(app_id, EXCEPTION_SAMPLE_QUERY, {"number": int(number), "offset": offset},
                              "Fetch exception incident sample")
        samples = (app.get("exceptionIncident") or {}).get("samples") or []
        if not samples:
            raise ApiError(f"No samples found for exception incident {number} at offset {offset}")
        return simplify_sample(samples[0])

    async def get_log_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        return await self._incident_list(app_id, LOG_INCIDENTS_QUERY, "logIncidents",
                                         states, limit, offset, "Fetch log incidents")

    async def get_log_incident(self, app_id, number):
        app = await self._app(app_id, LOG_INCIDENT_QUERY, {"number": int(number)}, "Fetch log incident")
        incident = app.get("logIncident")
        if not incident:
            raise ApiError(f"Log incident {number} not found")
        return incident

    async def get_anomaly_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        return await self._incident_list(app_id, ANOMALY_INCIDENTS_QUERY, "anomalyIncidents",
                                         states, limit, offset, "Fetch anomaly incidents")

    async def get_performance_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        return await self._incident_list(app_id, PERFORMANCE_INCIDENTS_QUERY, "performanceIncidents",
                                         states, limit, offset, "Fetch performance incidents")

    async def search_logs(self, app_id, query, limit=50, severities=None, start=None, end=None):
        variables = {"query": query, "limit": limit, "start": start, "end": end,
                     "severities": [s.upper() for s in severities] if severities else None}
        app = await self._app(app_id, SEARCH_LOGS_QUERY, variables, "Search logs")
        lines = ((app.get("logs") or {}).get("lines")) or []
        return {"query": query, "lines": lines, "count": len(lines)}

    async def get_metrics(self, app_id, metric_name, namespace, timeframe="R24H", limit=30):
        variables = {"name": metric_name, "namespace": namespace, "timeframe": timeframe, "limit": limit}
        app = await self._app(app_id, METRICS_QUERY, variables, "Fetch metrics")
        return (app.get("metrics") or {}).get("list") or {"rows": []}

    async def get_deploy_markers(self, app_id, timeframe="R7D", limit=10):
        app = await self._app(app_id, DEPLOY_MARKERS_QUERY, {"timeframe": timeframe, "limit": limit},
                              "Fetch deploy markers")
        return app.get("deployMarkers") or []

    async def execute_custom_query(self, query, variables=None):
        logger.debug("Executing custom GraphQL query")
        return await self._graphql(query, variables, "Custom GraphQL query")
