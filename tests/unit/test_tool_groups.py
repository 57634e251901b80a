"""
Unit tests for tool-group gating and table allow-listing.
"""

from unittest.mock import MagicMock

from pulse_mcp.core.tool_groups import (
    ToolFilter,
    filter_allowed_tables,
    is_scoped_tool_enabled,
    is_table_allowed,
    is_tool_enabled,
    parse_scoped_groups,
    parse_tool_groups,
)


ALL_GROUPS = ("readonly", "readwrite", "readwrite_external")


class TestParseToolGroups:
    """Flat group parsing."""

    def test_unset_enables_all_groups(self):
        assert parse_tool_groups(None, ALL_GROUPS) == list(ALL_GROUPS)
        assert parse_tool_groups("   ", ALL_GROUPS) == list(ALL_GROUPS)

    def test_parses_trimmed_lowercase_names(self):
        assert parse_tool_groups(" ReadOnly , readwrite ", ALL_GROUPS) == ["readonly", "readwrite"]

    def test_drops_duplicates(self):
        assert parse_tool_groups("readonly,readonly", ALL_GROUPS) == ["readonly"]

    def test_invalid_names_are_warned_and_ignored(self):
        logger = MagicMock()
        result = parse_tool_groups("readonly,bogus", ALL_GROUPS, env_name="GMAIL_ENABLED_TOOLGROUPS", logger=logger)
        assert result == ["readonly"]
        assert "bogus" in logger.warning.call_args_list[0][0][0]

    def test_all_invalid_falls_back_to_all_groups(self):
        logger = MagicMock()
        assert parse_tool_groups("nope", ALL_GROUPS, logger=logger) == list(ALL_GROUPS)
        assert logger.warning.call_count == 2

    def test_is_tool_enabled(self):
        assert is_tool_enabled(("readonly", "readwrite"), ["readwrite"])
        assert not is_tool_enabled(("readwrite_external",), ["readonly", "readwrite"])


class TestScopedGroups:
    """Base groups with readonly variants."""

    BASE = ("newsletter", "server_queue")

    def test_unset_enables_every_base_group(self):
        assert parse_scoped_groups(None, self.BASE) == ["newsletter", "server_queue"]

    def test_readonly_variant_admits_reads_only(self):
        enabled = parse_scoped_groups("newsletter_readonly", self.BASE)
        assert is_scoped_tool_enabled("newsletter", False, enabled)
        assert not is_scoped_tool_enabled("newsletter", True, enabled)
        assert not is_scoped_tool_enabled("server_queue", False, enabled)

    def test_base_group_admits_writes(self):
        enabled = parse_scoped_groups("server_queue", self.BASE)
        assert is_scoped_tool_enabled("server_queue", True, enabled)

    def test_unknown_groups_are_dropped(self):
        logger = MagicMock()
        assert parse_scoped_groups("bogus", self.BASE, logger=logger) == []
        logger.warning.assert_called_once()


class TestToolFilter:
    """Per-tool allow and deny lists."""

    GROUPS = ("readonly", "readwrite", "admin")
    TOOLS = ("list_tables", "put_item", "delete_table")

    def test_defaults_allow_everything(self):
        tool_filter = ToolFilter.from_values(None, None, None, self.GROUPS, self.TOOLS)
        assert tool_filter.is_enabled("delete_table", "admin")

    def test_enabled_tools_take_priority(self):
        tool_filter = ToolFilter.from_values("admin", "list_tables", "list_tables", self.GROUPS, self.TOOLS)
        assert tool_filter.is_enabled("list_tables", "readonly")
        assert not tool_filter.is_enabled("delete_table", "admin")

    def test_disabled_tools_override_groups(self):
        tool_filter = ToolFilter.from_values("readonly,admin", None, "DELETE_TABLE", self.GROUPS, self.TOOLS)
        assert tool_filter.is_enabled("list_tables", "readonly")
        assert not tool_filter.is_enabled("delete_table", "admin")
        assert not tool_filter.is_enabled("put_item", "readwrite")

    def test_invalid_names_are_ignored(self):
        tool_filter = ToolFilter.from_values("readonly,superuser", None, None, self.GROUPS, self.TOOLS)
        assert tool_filter.enabled_groups == {"readonly"}
        assert not tool_filter.is_enabled("delete_table", "admin")

    def test_all_invalid_groups_leave_everything_enabled(self):
        tool_filter = ToolFilter.from_values("superuser", None, None, self.GROUPS, self.TOOLS)
        assert tool_filter.enabled_groups is None
        assert tool_filter.is_enabled("list_tables", "readonly")
        assert tool_filter.is_enabled("delete_table", "admin")

    def test_all_invalid_tools_leave_everything_enabled(self):
        tool_filter = ToolFilter.from_values(None, "dynamodb_query_items", None, self.GROUPS, self.TOOLS)
        assert tool_filter.enabled_tools is None
        assert tool_filter.is_enabled("list_tables", "readonly")


class TestTableAllowList:

    def test_empty_allow_list_permits_everything(self):
        assert is_table_allowed("anything", [])

    def test_only_listed_tables_are_allowed(self):
        assert is_table_allowed("users", ["users", "orders"])
        assert not is_table_allowed("secrets", ["users", "orders"])

    def test_filter_allowed_tables(self):
        assert filter_allowed_tables(["users", "secrets", "orders"], ["orders", "users"]) == ["users", "orders"]
