"""
Integration tests for the PulseMCP admin HTTP client against a local aiohttp server.
"""

import pytest
from aiohttp import web
from aiohttp import test_utils

from pulse_mcp.core.config import PulseMCPAdminConfig
from pulse_mcp.core.errors import ApiError, ConfigurationError, NotFoundError
from pulse_mcp.core.health import run_health_check
from pulse_mcp.pulsemcp_admin.client import HttpPulseMCPAdminClient, check_connection


pytestmark = pytest.mark.integration


def build_app(received):
    async def posts(request):
        key = request.headers.get("X-API-Key")
        if key == "reader":
            return web.json_response({"error": "forbidden"}, status=403)
        return web.json_response({"posts": [], "pagination": {"current_page": 1, "total_pages": 1, "total_count": 0}})

    async def create_post(request):
        form = await request.post()
        received.append(dict(form))
        if not form.get("post[title]"):
            return web.json_response({"errors": {"title": ["can't be blank"]}}, status=422)
        return web.json_response({"id": 9, "title": form["post[title]"], "slug": form["post[slug]"]}, status=201)

    async def author(request):
        return web.json_response({"error": "not found"}, status=404)

    app = web.Application()
    app.router.add_get("/posts", posts)
    app.router.add_post("/supervisor/posts", create_post)
    app.router.add_get("/supervisor/authors/{slug}", author)
    return app


class TestHttpPulseMCPAdminClient:

    @pytest.mark.asyncio
    async def test_create_post_sends_rails_form(self):
        received = []
        async with test_utils.TestServer(build_app(received)) as server:
            config = PulseMCPAdminConfig(api_key="admin", api_url=f"http://{server.host}:{server.port}")
            async with HttpPulseMCPAdminClient(config) as client:
                post = await client.create_post(
                    {"title": "Hello", "slug": "hello", "author_id": 3, "status": "draft", "image_url": None})
        assert post["id"] == 9
        assert received == [{"post[title]": "Hello", "post[slug]": "hello",
                             "post[author_id]": "3", "post[status]": "draft"}]

    @pytest.mark.asyncio
    async def test_validation_errors(self):
        async with test_utils.TestServer(build_app([])) as server:
            config = PulseMCPAdminConfig(api_key="admin", api_url=f"http://{server.host}:{server.port}")
            async with HttpPulseMCPAdminClient(config) as client:
                with pytest.raises(ApiError, match="Validation failed: title can't be blank"):
                    await client.create_post({"slug": "x"})

    @pytest.mark.asyncio
    async def test_non_admin_key(self):
        async with test_utils.TestServer(build_app([])) as server:
            config = PulseMCPAdminConfig(api_key="reader", api_url=f"http://{server.host}:{server.port}")
            async with HttpPulseMCPAdminClient(config) as client:
                with pytest.raises(ApiError, match="User lacks admin privileges"):
                    await client.get_posts({})

    @pytest.mark.asyncio
    async def test_not_found(self):
        async with test_utils.TestServer(build_app([])) as server:
            config = PulseMCPAdminConfig(api_key="admin", api_url=f"http://{server.host}:{server.port}")
            async with HttpPulseMCPAdminClient(config) as client:
                with pytest.raises(NotFoundError, match="Author not found: ghost"):
                    await client.get_author_by_slug("ghost")

    @pytest.mark.asyncio
    async def test_health_check(self):
        async with test_utils.TestServer(build_app([])) as server:
            url = f"http://{server.host}:{server.port}"
            async with HttpPulseMCPAdminClient(PulseMCPAdminConfig(api_key="admin", api_url=url)) as client:
                await run_health_check(lambda: check_connection(client), 5000, "the PulseMCP admin API")
            async with HttpPulseMCPAdminClient(PulseMCPAdminConfig(api_key="reader", api_url=url)) as client:
                with pytest.raises(ConfigurationError, match="Health check failed: User lacks admin privileges"):
                    await run_health_check(lambda: check_connection(client), 5000, "the PulseMCP admin API")
