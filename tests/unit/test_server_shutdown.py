"""
The HTTP-backed servers close their API session when the stdio loop ends.
"""

import importlib
from unittest.mock import AsyncMock, MagicMock

import pytest


SERVERS = [
    ("pulse_mcp.appsignal.server", "GraphQLAppsignalClient",
     {"APPSIGNAL_API_KEY": "key"}),
    ("pulse_mcp.pulsemcp_admin.server", "HttpPulseMCPAdminClient",
     {"PULSEMCP_ADMIN_API_KEY": "key", "SKIP_HEALTH_CHECKS": "true"}),
    ("pulse_mcp.proctor.server", "HttpProctorClient",
     {"PROCTOR_API_KEY": "key", "PROCTOR_API_URL": "https://proctor.example.com"}),
]


class TestServerShutdown:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("module_name,client_class,environment", SERVERS)
    async def test_client_closed_when_transport_fails(self, clean_environment, module_name,
                                                      client_class, environment):
        module = importlib.import_module(module_name)
        for key, value in environment.items():
            clean_environment.setenv(key, value)

        client = MagicMock()
        client.close = AsyncMock()
        clean_environment.setattr(module, client_class, MagicMock(return_value=client))
        clean_environment.setattr(module, "run_stdio", AsyncMock(side_effect=RuntimeError("stdin closed")))

        with pytest.raises(RuntimeError, match="stdin closed"):
            await module.main()
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_client_closed_after_clean_exit(self, clean_environment):
        module = importlib.import_module("pulse_mcp.proctor.server")
        clean_environment.setenv("PROCTOR_API_KEY", "key")
        clean_environment.setenv("PROCTOR_API_URL", "https://proctor.example.com")

        client = MagicMock()
        client.close = AsyncMock()
        clean_environment.setattr(module, "HttpProctorClient", MagicMock(return_value=client))
        clean_environment.setattr(module, "run_stdio", AsyncMock())

        await module.main()
        client.close.assert_awaited_once()
