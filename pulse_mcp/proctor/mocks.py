"""
In-memory Proctor client with canned runtimes, exams and machines.
"""

import copy
from typing import Any, Dict, List, Optional

from ..core.errors import NotFoundError
from .client import ProctorClient


def default_mock_data() -> Dict[str, Any]:
    return {
        "metadata": {
            "runtimes": [
                {"id": "v0.0.37", "name": "Proctor v0.0.37", "image": "registry.fly.io/proctor:v0.0.37"},
                {"id": "v0.0.36", "name": "Proctor v0.0.36", "image": "registry.fly.io/proctor:v0.0.36"},
            ],
            "exams": [
                {"id": "proctor-mcp-client-auth-check", "name": "Auth Check",
                 "description": "Verifies authentication mechanisms"},
                {"id": "proctor-mcp-client-init-tools-list", "name": "Init Tools List",
                 "description": "Tests initialization and tool listing"},
            ],
        },
        "machines": {
            "machines": [
                {"id": "machine-123", "name": "proctor-exam-1", "state": "running", "region": "sjc",
                 "created_at": "2024-01-15T10:30:00Z"},
                {"id": "machine-456", "name": "proctor-exam-2", "state": "stopped", "region": "iad",
                 "created_at": "2024-01-15T09:00:00Z"},
            ],
        },
        "exam_results": [
            {"type": "log", "data": {"time": "2024-01-15T10:30:00Z", "message": "Starting exam..."}},
            {"type": "log", "data": {"time": "2024-01-15T10:30:01Z", "message": "Initializing MCP client..."}},
            {"type": "log", "data": {"time": "2024-01-15T10:30:02Z", "message": "Running tests..."}},
            {"type": "result", "data": {
                "status": "passed",
                "tests": [
                    {"name": "initialization", "passed": True},
                    {"name": "tools_list", "passed": True},
                ],
            }},
        ],
        "prior_result": None,
    }


class MockProctorClient(ProctorClient):
    """
    ``errors`` maps a method name to an exception raised when it is called.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.data = default_mock_data()
        self.data.update(copy.deepcopy(data or {}))
        self.errors = errors or {}
        self.saved_results: List[Dict[str, Any]] = []
        self.exam_requests: List[Dict[str, Any]] = []

    def _raise_if_configured(self, method: str) -> None:
        if method in self.errors:
            raise self.errors[method]

    async def get_metadata(self):
        self._raise_if_configured("get_metadata")
        return copy.deepcopy(self.data["metadata"])

    async def run_exam(self, params):
        self._raise_if_configured("run_exam")
        self.exam_requests.append(params)
        for entry in self.data["exam_results"]:
            yield copy.deepcopy(entry)

    async def save_result(self, params):
        self._raise_if_configured("save_result")
        self.saved_results.append(params)
        return {"success": True, "id": len(self.saved_results)}

    async def get_prior_result(self, mirror_id, exam_id, input_json=None):
        self._raise_if_configured("get_prior_result")
        if not self.data.get("prior_result"):
            raise NotFoundError("No prior result found")
        return copy.deepcopy(self.data["prior_result"])

    async def get_machines(self):
        self._raise_if_configured("get_machines")
        return copy.deepcopy(self.data["machines"])

    async def destroy_machine(self, machine_id):
        self._raise_if_configured("destroy_machine")
        machines = self.data["machines"]["machines"]
        self.data["machines"]["machines"] = [m for m in machines if m["id"] != machine_id]
        return {"success": True}

    async def cancel_exam(self, machine_id, exam_id):
        self._raise_if_configured("cancel_exam")
        return {"success": True, "message": "Exam cancelled successfully"}
