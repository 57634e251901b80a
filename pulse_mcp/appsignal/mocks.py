"""
In-memory AppSignal client for tests and local development.
"""

import copy
from typing import Any, Dict, List, Optional

from ..core.errors import ApiError
from .client import AppsignalClient


DEFAULT_APPS = [
    {"id": "app-1", "name": "Production App", "environment": "production"},
    {"id": "app-2", "name": "Staging App", "environment": "staging"},
]


def _paginate(items: List[Dict[str, Any]], states, limit: int, offset: int) -> Dict[str, Any]:
    wanted = {s.upper() for s in states}
    matching = [i for i in items if str(i.get("state", "OPEN")).upper() in wanted]
    page = matching[offset:offset + limit]
    return {"incidents": copy.deepcopy(page), "total": len(matching),
            "hasMore": offset + limit < len(matching)}


class MockAppsignalClient(AppsignalClient):
    """
    Canned responses keyed by kind.

    ``data`` may hold ``apps``, ``exception_incidents``, ``log_incidents``,
    ``anomaly_incidents``, ``performance_incidents`` (lists), ``samples``
    (incident number to list of samples), ``logs``, ``metrics``,
    ``deploy_markers`` and ``custom`` (custom query result). ``errors`` maps
    a method name to the exception it raises.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.data: Dict[str, Any] = {
            "apps": copy.deepcopy(DEFAULT_APPS),
            "exception_incidents": [],
            "log_incidents": [],
            "anomaly_incidents": [],
            "performance_incidents": [],
            "samples": {},
            "logs": [],
            "metrics": {"start": None, "end": None, "rows": []},
            "deploy_markers": [],
            "custom": {},
        }
        self.data.update(copy.deepcopy(data or {}))
        self.errors = errors or {}
        self.calls: List[tuple] = []

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def _find(self, kind: str, number) -> Dict[str, Any]:
        for incident in self.data[kind]:
            if str(incident.get("number")) == str(number):
                return copy.deepcopy(incident)
        raise ApiError(f"{kind.split('_')[0].capitalize()} incident {number} not found")

    async def get_apps(self):
        self._record("get_apps")
        return copy.deepcopy(self.data["apps"])

    async def get_exception_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        self._record("get_exception_incidents", app_id, tuple(states), limit, offset)
        return _paginate(self.data["exception_incidents"], states, limit, offset)

    async def get_exception_incident(self, app_id, number):
        self._record("get_exception_incident", app_id, number)
        return self._find("exception_incidents", number)

    async def get_exception_incident_sample(self, app_id, number, offset=0):
        self._record("get_exception_incident_sample", app_id, number, offset)
        samples = self.data["samples"].get(str(number), [])
        if offset >= len(samples):
            raise ApiError(f"No samples found for exception incident {number} at offset {offset}")
        return copy.deepcopy(samples[offset])

    async def get_log_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        self._record("get_log_incidents", app_id, tuple(states), limit, offset)
        return _paginate(self.data["log_incidents"], states, limit, offset)

    async def get_log_incident(self, app_id, number):
        self._record("get_log_incident", app_id, number)
        return self._find("log_incidents", number)

    async def get_anomaly_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        self._record("get_anomaly_incidents", app_id, tuple(states), limit, offset)
        return _paginate(self.data["anomaly_incidents"], states, limit, offset)

    async def get_performance_incidents(self, app_id, states=("OPEN",), limit=50, offset=0):
        self._record("get_performance_incidents", app_id, tuple(states), limit, offset)
        return _paginate(self.data["performance_incidents"], states, limit, offset)

    async def search_logs(self, app_id, query, limit=50, severities=None, start=None, end=None):
        self._record("search_logs", app_id, query, limit, tuple(severities or ()), start, end)
        lines = [line for line in self.data["logs"] if query.lower() in line.get("message", "").lower()]
        if severities:
            lines = [line for line in lines if line.get("severity") in severities]
        lines = copy.deepcopy(lines[:limit])
        return {"query": query, "lines": lines, "count": len(lines)}

    async def get_metrics(self, app_id, metric_name, namespace, timeframe="R24H", limit=30):
        self._record("get_metrics", app_id, metric_name, namespace, timeframe, limit)
        return copy.deepcopy(self.data["metrics"])

    async def get_deploy_markers(self, app_id, timeframe="R7D", limit=10):
        self._record("get_deploy_markers", app_id, timeframe, limit)
        return copy.deepcopy(self.data["deploy_markers"][:limit])

    async def execute_custom_query(self, query, variables=None):
        self._record("execute_custom_query", query, dict(variables or {}))
        return copy.deepcopy(self.data["custom"])
