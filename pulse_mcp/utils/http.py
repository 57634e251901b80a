"""
Shared aiohttp plumbing for the REST and GraphQL API clients.
"""

import json
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.errors import ApiError, status_error


class ApiHttpClient:
    """
    Base class for JSON API clients.

    Holds one lazily created ``aiohttp.ClientSession`` and maps non-2xx
    responses to ``ApiError`` with the messages tools surface to users.
    """

    forbidden_message = "Access forbidden"

    def __init__(self, base_url: str, headers: Optional[Dict[str, str]] = None,
                 timeout_seconds: int = 30):
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry"""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def _ensure_session(self):
        """Ensure HTTP session is available"""
        if not self._session or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=self.headers)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, action: str,
                       params: Optional[Dict[str, Any]] = None,
                       json_body: Any = None,
                       data: Any = None,
                       not_found_message: Optional[str] = None) -> Any:
        """Send a request and return the decoded JSON body (None when empty)"""
        await self._ensure_session()
        url = f"{self.base_url}{path}"
        if params:
            params = {k: _query_value(v) for k, v in params.items() if v is not None}

        try:
            async with self._session.request(method, url, params=params, json=json_body, data=data) as response:
                await self._handle_response_errors(response, action, not_found_message)
                text = await response.text()
        except aiohttp.ClientError as e:
            raise ApiError(f"{action} failed: {e}") from e

        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise ApiError(f"{action} failed: invalid JSON response") from e

    async def _handle_response_errors(self, response: aiohttp.ClientResponse, action: str,
                                      not_found_message: Optional[str] = None):
        """Handle HTTP response errors"""
        if 200 <= response.status < 300:
            return

        validation_errors = None
        if response.status == 422:
            validation_errors = _validation_errors(await response.text())

        raise status_error(
            response.status,
            response.reason or "",
            action,
            forbidden_message=self.forbidden_message,
            not_found_message=not_found_message,
            validation_errors=validation_errors,
        )


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _validation_errors(body: str) -> Optional[List[str]]:
    try:
        payload = json.loads(body) if body else {}
    except ValueError:
        return [body] if body else None
    if not isinstance(payload, dict):
        return None

    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        return [str(e) for e in errors]
    if isinstance(errors, dict) and errors:
        return [
            f"{field} {', '.join(messages) if isinstance(messages, list) else messages}"
            for field, messages in errors.items()
        ]
    if payload.get("error"):
        return [str(payload["error"])]
    return None


def rails_form(resource: str, fields: Dict[str, Any]) -> List[tuple]:
    """Encode fields as Rails-style ``resource[field]`` form pairs, skipping None"""
    pairs: List[tuple] = []
    for name, value in fields.items():
        if value is None:
            continue
        key = f"{resource}[{name}]"
        if isinstance(value, (list, tuple)):
            for item in value:
                pairs.append((f"{key}[]", str(item)))
        elif isinstance(value, bool):
            pairs.append((key, "true" if value else "false"))
        elif isinstance(value, dict):
            pairs.append((key, json.dumps(value)))
        else:
            pairs.append((key, str(value)))
    return pairs
