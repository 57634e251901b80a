"""
Proctor API client.

Proctor runs MCP server exams on short-lived Fly.io machines. ``run_exam``
streams newline-delimited JSON entries while the exam executes.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from ..core.config import ProctorConfig
from ..core.errors import ApiError, NotFoundError
from ..utils.http import ApiHttpClient
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.proctor")

# Where a non-object ``data`` value is stored for each entry type
_SCALAR_KEYS = {"log": "message", "error": "error", "result": "value"}


def parse_stream_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Decode one NDJSON line into a ``{"type", "data"}`` entry.

    Blank lines yield None. Lines that are not JSON objects, or objects
    without a known type, are kept as log entries so no output is lost.
    """
    line = line.strip()
    if not line:
        return None
    try:
        payload = json.loads(line)
    except ValueError:
        return {"type": "log", "data": {"message": line}}
    if not isinstance(payload, dict):
        return {"type": "log", "data": {"message": line}}
    entry_type = payload.get("type")
    if entry_type not in _SCALAR_KEYS:
        return {"type": "log", "data": payload}
    data = payload.get("data")
    if not isinstance(data, dict):
        data = {_SCALAR_KEYS[entry_type]: data}
    return {"type": entry_type, "data": data}


def _decode_results(results: Any) -> Any:
    """Results may arrive as a JSON string; free text is sent unchanged"""
    if not isinstance(results, str):
        return results
    try:
        return json.loads(results)
    except ValueError:
        return results


class ProctorClient(ABC):

    @abstractmethod
    async def get_metadata(self) -> Dict[str, Any]: ...

    @abstractmethod
    def run_exam(self, params: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]: ...

    @abstractmethod
    async def save_result(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_prior_result(self, mirror_id: int, exam_id: str,
                               input_json: Optional[str] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_machines(self) -> Dict[str, Any]: ...

    @abstractmethod
    async def destroy_machine(self, machine_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def cancel_exam(self, machine_id: str, exam_id: str) -> Dict[str, Any]: ...


class HttpProctorClient(ApiHttpClient, ProctorClient):
    """Proctor REST API over aiohttp, authenticated with X-API-Key"""

    def __init__(self, config: ProctorConfig, exam_timeout_seconds: int = 900):
        super().__init__(
            config.api_url,
            headers={"X-API-Key": config.api_key, "Accept": "application/json"},
        )
        self.exam_timeout_seconds = exam_timeout_seconds

    async def get_metadata(self):
        return await self._request("GET", "/api/proctor/metadata", "Fetch Proctor metadata")

    async def run_exam(self, params):
        await self._ensure_session()
        body = {k: v for k, v in params.items() if v is not None}
        url = f"{self.base_url}/api/proctor/run_exam"
        logger.info(f"Running exam {params.get('exam_id')} on runtime {params.get('runtime_id')}")

        try:
            async with self._session.post(
                url,
                json=body,
                headers={"Accept": "application/x-ndjson"},
                timeout=aiohttp.ClientTimeout(total=self.exam_timeout_seconds),
            ) as response:
                await self._handle_response_errors(response, "Run exam")
                # StreamReader iteration splits on newlines
                async for raw in response.content:
                    entry = parse_stream_line(raw.decode("utf-8", errors="replace"))
                    if entry is not None:
                        yield entry
        except aiohttp.ClientError as e:
            raise ApiError(f"Run exam failed: {e}") from e

    async def save_result(self, params):
        body = {k: v for k, v in params.items() if v is not None}
        body["results"] = _decode_results(body.get("results"))
        return await self._request("POST", "/api/proctor/save_result", "Save result", json_body=body)

    async def get_prior_result(self, mirror_id, exam_id, input_json=None):
        return await self._request(
            "GET",
            "/api/proctor/prior_result",
            "Get prior result",
            params={"mirror_id": mirror_id, "exam_id": exam_id, "input_json": input_json},
            not_found_message="No prior result found",
        )

    async def get_machines(self):
        return await self._request("GET", "/api/proctor/machines", "Fetch machines")

    async def destroy_machine(self, machine_id):
        result = await self._request(
            "DELETE", f"/api/proctor/machines/{machine_id}", "Destroy machine",
            not_found_message=f"Machine not found: {machine_id}",
        )
        return result or {"success": True}

    async def cancel_exam(self, machine_id, exam_id):
        return await self._request(
            "POST", "/api/proctor/cancel_exam", "Cancel exam",
            json_body={"machine_id": machine_id, "exam_id": exam_id},
        )


def is_no_prior_result(error: Exception) -> bool:
    return isinstance(error, NotFoundError) or "No prior result found" in str(error)
