"""
Unit tests for shared configuration, state, health checks and formatting helpers.
"""

import asyncio
import json
import logging
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from pulse_mcp.core.config import (
    CalendarConfig,
    DynamoDBConfig,
    GmailConfig,
    GoodEggsConfig,
    SSHConfig,
    parse_bool,
    parse_csv,
    require_environment,
)
from pulse_mcp.core.errors import ConfigurationError, NotFoundError, status_error
from pulse_mcp.core.health import get_error_hint, parse_health_check_timeout, run_health_check
from pulse_mcp.core.state import SelectionState, SingleSlotCache
from pulse_mcp.utils.formatting import convert_decimals, format_bytes, prepare_item, strip_html
from pulse_mcp.utils.logger import TEXT_FORMAT, JSONFormatter, get_logger, with_correlation_id


class TestConfig:
    """Environment parsing."""

    def test_parse_helpers(self):
        assert parse_bool("YES") is True
        assert parse_bool("off") is False
        assert parse_bool("maybe", default=True) is True
        assert parse_csv(" a, ,b ,") == ["a", "b"]

    def test_dynamodb_region_fallback(self):
        config = DynamoDBConfig.from_environment({"AWS_DEFAULT_REGION": "eu-west-1",
                                                  "DYNAMODB_ALLOWED_TABLES": "users, orders"})
        assert config.region == "eu-west-1"
        assert config.allowed_tables == ["users", "orders"]

    def test_require_environment_lists_missing_variables(self):
        with pytest.raises(ConfigurationError, match="SSH_HOST, SSH_USERNAME"):
            require_environment(SSHConfig.from_environment({}), "ssh-mcp-server")

    def test_ssh_defaults(self):
        config = SSHConfig.from_environment({"SSH_HOST": "h", "SSH_USERNAME": "u", "SSH_PORT": "bad"})
        assert config.port == 22
        assert config.timeout == 30000
        assert config.missing_variables() == []

    def test_calendar_private_key_newlines(self):
        config = CalendarConfig.from_environment({"GCAL_SERVICE_ACCOUNT_PRIVATE_KEY": "-----BEGIN-----\\nabc"})
        assert config.private_key == "-----BEGIN-----\nabc"

    def test_gmail_auth_modes(self):
        assert GmailConfig(access_token="t").auth_mode == "access_token"
        assert GmailConfig(service_account_key_file="k.json", impersonate_email="a@b.c").auth_mode == "service_account"
        partial = GmailConfig(oauth_client_id="id")
        assert partial.auth_mode is None
        assert partial.missing_variables() == ["GMAIL_OAUTH_CLIENT_SECRET", "GMAIL_OAUTH_REFRESH_TOKEN"]

    def test_good_eggs_headless_and_timeout(self):
        config = GoodEggsConfig.from_environment({"HEADLESS": "false", "TIMEOUT": "5000"})
        assert config.headless is False
        assert config.timeout == 5000
        assert GoodEggsConfig.from_environment({}).headless is True


class TestErrors:

    def test_status_error_mapping(self):
        assert str(status_error(401, "Unauthorized", "Fetch")) == "Invalid API key"
        assert str(status_error(403, "Forbidden", "Fetch", forbidden_message="User lacks admin privileges")) == "User lacks admin privileges"
        assert isinstance(status_error(404, "Not Found", "Fetch"), NotFoundError)
        assert str(status_error(422, "", "Save", validation_errors=["name is blank"])) == "Validation failed: name is blank"
        assert str(status_error(422, "", "Save")) == "Validation failed: Unknown validation error"
        assert str(status_error(500, "Server Error", "Fetch posts")) == "Fetch posts failed: 500 Server Error"


class TestSingleSlotCache:

    @pytest.mark.asyncio
    async def test_loads_once_until_invalidated(self):
        loader = AsyncMock(side_effect=["first", "second"])
        cache = SingleSlotCache(loader)

        assert cache.peek() is None
        assert await cache.get() == "first"
        assert await cache.get() == "first"
        assert loader.await_count == 1

        assert cache.invalidate() == "first"
        assert not cache.is_populated
        assert await cache.get() == "second"

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_load(self):
        calls = []

        async def loader():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "value"

        cache = SingleSlotCache(loader)
        results = await asyncio.gather(cache.get(), cache.get(), cache.get())
        assert results == ["value"] * 3
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_failed_load_leaves_slot_empty(self):
        cache = SingleSlotCache(AsyncMock(side_effect=RuntimeError("boom")))
        with pytest.raises(RuntimeError):
            await cache.get()
        assert not cache.is_populated


class TestSelectionState:

    def test_select_and_clear(self):
        state = SelectionState("app")
        state.select("a1")
        state.select("a2")
        assert state.selected_id == "a2"
        state.clear()
        assert state.selected_id is None

    def test_locked_selection_rejects_changes(self):
        state = SelectionState("app")
        state.select("locked-1", locked=True)
        state.select("locked-1")
        with pytest.raises(RuntimeError, match='locked to "locked-1"'):
            state.select("other")
        with pytest.raises(RuntimeError, match="selection is locked"):
            state.clear()
        state.reset()
        assert state.selected_id is None and not state.locked

    def test_unlocked_select_does_not_lock(self):
        state = SelectionState()
        state.select("a1")
        assert not state.locked


class TestHealth:

    def test_timeout_parsing(self):
        logger = MagicMock()
        assert parse_health_check_timeout(None) == 10000
        assert parse_health_check_timeout("2500") == 2500
        assert parse_health_check_timeout("300000") == 300000
        assert parse_health_check_timeout("300001", logger) == 10000
        assert parse_health_check_timeout("-5", logger) == 10000
        assert parse_health_check_timeout("abc", logger) == 10000
        assert logger.warning.call_count == 3

    def test_error_hints(self):
        assert "credentials" in get_error_hint("HTTP 401 Unauthorized", 10000)
        assert "10000ms" in get_error_hint("Request timed out", 10000)
        assert "refused" in get_error_hint("connect ECONNREFUSED 127.0.0.1:22", 10000)
        assert "resolved" in get_error_hint("getaddrinfo ENOTFOUND host", 10000)
        assert "network path" in get_error_hint("read ECONNRESET", 10000)
        assert get_error_hint("something odd", 10000) == ""

    @pytest.mark.asyncio
    async def test_run_health_check_success(self):
        check = AsyncMock(return_value=True)
        await run_health_check(check, 1000, "the API")
        check.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_health_check_failure_includes_hint(self):
        check = AsyncMock(side_effect=RuntimeError("401 Unauthorized"))
        with pytest.raises(ConfigurationError, match="Health check failed: 401 Unauthorized"):
            await run_health_check(check, 1000, "the API")

    @pytest.mark.asyncio
    async def test_run_health_check_timeout(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(ConfigurationError, match="timed out after 10ms"):
            await run_health_check(slow, 10, "the API")


class TestFormatting:

    def test_decimal_round_trip_helpers(self):
        assert convert_decimals({"a": Decimal("3"), "b": [Decimal("1.5")]}) == {"a": 3, "b": [1.5]}
        assert prepare_item({"a": 1.25, "b": True, "c": [2.5]}) == {"a": Decimal("1.25"), "b": True, "c": [Decimal("2.5")]}

    def test_format_bytes(self):
        assert format_bytes(0) == "0 B"
        assert format_bytes(512) == "512 B"
        assert format_bytes(1536) == "1.5 KB"
        assert format_bytes(1024 * 1024) == "1 MB"

    def test_strip_html(self):
        html = "<style>p{}</style><p>Hello&nbsp;<b>world</b></p><script>x()</script><p>Bye &amp; thanks</p>"
        assert strip_html(html) == "Hello\xa0world\nBye & thanks"


class TestLogger:

    def test_logger_is_configured_once(self):
        first = get_logger("pulse_mcp.tests.once")
        second = get_logger("pulse_mcp.tests.once")
        assert first is second
        assert len(first.handlers) == 1
        assert first.propagate is False

    def test_json_formatter_includes_correlation_id(self):
        logger = get_logger("pulse_mcp.tests.json")
        record = logger.makeRecord(logger.name, logging.INFO, __file__, 1, "hello", (), None)
        record.correlation_id = "abc-123"
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"] == "hello"
        assert payload["correlation_id"] == "abc-123"

    @staticmethod
    def stamped_id(logger, message="hello"):
        record = logger.makeRecord(logger.name, logging.INFO, __file__, 1, message, (), None)
        logger.handlers[0].filters[0].filter(record)
        return record.correlation_id

    def test_with_correlation_id_restores_previous(self):
        logger = get_logger("pulse_mcp.tests.context", correlation_id="outer")
        with with_correlation_id(logger, "inner"):
            assert self.stamped_id(logger) == "inner"
        assert self.stamped_id(logger) == "outer"

    @pytest.mark.asyncio
    async def test_concurrent_calls_keep_their_own_ids(self):
        logger = get_logger("pulse_mcp.tests.concurrent")
        seen = {}

        async def call(name, delay):
            with with_correlation_id(logger, name):
                await asyncio.sleep(delay)
                seen[f"{name}-mid"] = self.stamped_id(logger)
                await asyncio.sleep(delay)
                seen[f"{name}-end"] = self.stamped_id(logger)

        await asyncio.gather(call("A", 0.02), call("B", 0.01))
        assert seen == {"A-mid": "A", "A-end": "A", "B-mid": "B", "B-end": "B"}
        assert self.stamped_id(logger) == "none"

    def test_text_and_json_layouts(self):
        logger = get_logger("pulse_mcp.tests.layout")
        record = logger.makeRecord(logger.name, logging.INFO, __file__, 7, "hello", (), None, func="handler")
        record.correlation_id = "abc"
        text = logging.Formatter(TEXT_FORMAT).format(record)
        assert text.endswith(" - pulse_mcp.tests.layout - INFO - [abc] - hello")
        payload = json.loads(JSONFormatter().format(record))
        assert (payload["function"], payload["line"]) == ("handler", 7)
        assert "location" not in payload
