"""
PulseMCP admin API client.

Writes are form-encoded with Rails-style ``resource[field]`` keys; reads
return JSON with an optional ``pagination`` block.
"""

import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from ..core.config import PulseMCPAdminConfig
from ..utils.http import ApiHttpClient, rails_form
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.pulsemcp_admin")


class PulseMCPAdminClient(ABC):

    # Newsletter
    @abstractmethod
    async def get_posts(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_post(self, slug: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def create_post(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_post(self, slug: str, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def upload_image(self, post_slug: str, file_name: str, data: bytes) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_authors(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_author_by_slug(self, slug: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_mcp_server_by_slug(self, slug: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_mcp_client_by_slug(self, slug: str) -> Dict[str, Any]: ...

    # Server queue
    @abstractmethod
    async def search_mcp_implementations(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_draft_mcp_implementations(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def save_mcp_implementation(self, implementation_id: int, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    # Mirrors
    @abstractmethod
    async def get_unofficial_mirrors(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_unofficial_mirror(self, mirror_id: int) -> Dict[str, Any]: ...

    @abstractmethod
    async def create_unofficial_mirror(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_unofficial_mirror(self, mirror_id: int, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def delete_unofficial_mirror(self, mirror_id: int) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_official_mirrors(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_official_mirror(self, mirror_id: int) -> Dict[str, Any]: ...

    # Background jobs
    @abstractmethod
    async def list_good_jobs(self, params: Dict[str, Any]) -> Dict[str, Any]: ...


class HttpPulseMCPAdminClient(ApiHttpClient, PulseMCPAdminClient):
    """Admin REST API over aiohttp, authenticated with X-API-Key"""

    forbidden_message = "User lacks admin privileges"

    def __init__(self, config: PulseMCPAdminConfig):
        super().__init__(
            config.api_url,
            headers={"X-API-Key": config.api_key or "", "Accept": "application/json"},
        )

    async def get_posts(self, params):
        return await self._request("GET", "/posts", "Fetch posts", params=params)

    async def get_post(self, slug):
        return await self._request("GET", f"/supervisor/posts/{slug}", "Fetch post",
                                   not_found_message=f"Post not found: {slug}")

    async def create_post(self, fields):
        return await self._request("POST", "/supervisor/posts", "Create post",
                                   data=aiohttp.FormData(rails_form("post", fields)))

    async def update_post(self, slug, fields):
        return await self._request("PUT", f"/supervisor/posts/{slug}", "Update post",
                                   data=aiohttp.FormData(rails_form("post", fields)),
                                   not_found_message=f"Post not found: {slug}")

    async def upload_image(self, post_slug, file_name, data):
        form = aiohttp.FormData()
        form.add_field("post_slug", post_slug)
        form.add_field("file_name", file_name)
        form.add_field("file", data, filename=os.path.basename(file_name),
                       content_type="application/octet-stream")
        return await self._request("POST", "/upload_image", "Upload image", data=form)

    async def get_authors(self, params):
        return await self._request("GET", "/supervisor/authors", "Fetch authors", params=params)

    async def get_author_by_slug(self, slug):
        return await self._request("GET", f"/supervisor/authors/{slug}", "Fetch author",
                                   not_found_message=f"Author not found: {slug}")

    async def get_mcp_server_by_slug(self, slug):
        return await self._request("GET", f"/supervisor/mcp_servers/{slug}", "Fetch MCP server",
                                   not_found_message=f"MCP server not found: {slug}")

    async def get_mcp_client_by_slug(self, slug):
        return await self._request("GET", f"/supervisor/mcp_clients/{slug}", "Fetch MCP client",
                                   not_found_message=f"MCP client not found: {slug}")

    async def search_mcp_implementations(self, params):
        return await self._request("GET", "/api/implementations/search", "Search MCP implementations",
                                   params=params)

    async def get_draft_mcp_implementations(self, params):
        return await self._request("GET", "/api/implementations/drafts", "Fetch draft MCP implementations",
                                   params=params)

    async def save_mcp_implementation(self, implementation_id, fields):
        return await self._request(
            "PUT", f"/api/implementations/{implementation_id}", "Save MCP implementation",
            data=aiohttp.FormData(rails_form("mcp_implementation", fields)),
            not_found_message=f"MCP implementation not found: {implementation_id}",
        )

    async def get_unofficial_mirrors(self, params):
        return await self._request("GET", "/api/unofficial_mirrors", "Fetch unofficial mirrors", params=params)

    async def get_unofficial_mirror(self, mirror_id):
        return await self._request("GET", f"/api/unofficial_mirrors/{mirror_id}", "Fetch unofficial mirror",
                                   not_found_message=f"Unofficial mirror not found: {mirror_id}")

    async def create_unofficial_mirror(self, fields):
        return await self._request("POST", "/api/unofficial_mirrors", "Create unofficial mirror",
                                   data=aiohttp.FormData(rails_form("unofficial_mirror", fields)))

    async def update_unofficial_mirror(self, mirror_id, fields):
        return await self._request(
            "PUT", f"/api/unofficial_mirrors/{mirror_id}", "Update unofficial mirror",
            data=aiohttp.FormData(rails_form("unofficial_mirror", fields)),
            not_found_message=f"Unofficial mirror not found: {mirror_id}",
        )

    async def delete_unofficial_mirror(self, mirror_id):
        result = await self._request(
            "DELETE", f"/api/unofficial_mirrors/{mirror_id}", "Delete unofficial mirror",
            not_found_message=f"Unofficial mirror not found: {mirror_id}",
        )
        return result or {"success": True}

    async def get_official_mirrors(self, params):
        return await self._request("GET", "/api/official_mirrors", "Fetch official mirrors", params=params)

    async def get_official_mirror(self, mirror_id):
        return await self._request("GET", f"/api/official_mirrors/{mirror_id}", "Fetch official mirror",
                                   not_found_message=f"Official mirror not found: {mirror_id}")

    async def list_good_jobs(self, params):
        return await self._request("GET", "/api/good_jobs", "Fetch good jobs", params=params)


async def check_connection(client: PulseMCPAdminClient) -> None:
    """Cheapest authenticated call, used by the startup health check"""
    await client.get_posts({"page": 1})
