"""
Functional tests for the Proctor tools using the in-memory client.
"""

import json

import pytest

from pulse_mcp.core.errors import ApiError, ToolError
from pulse_mcp.proctor.client import parse_stream_line
from pulse_mcp.proctor.mocks import MockProctorClient
from pulse_mcp.proctor.server import create_tools, enabled_tools


MCP_JSON = json.dumps({"my-server": {"type": "streamable-http", "url": "https://example.com/mcp"}})


class TestStreamParsing:

    def test_known_entries(self):
        assert parse_stream_line('{"type": "result", "data": {"status": "passed"}}\n') == {
            "type": "result", "data": {"status": "passed"}}

    def test_blank_lines_are_skipped(self):
        assert parse_stream_line("   \n") is None

    def test_malformed_lines_become_logs(self):
        assert parse_stream_line("not json") == {"type": "log", "data": {"message": "not json"}}

    def test_scalar_error_data(self):
        assert parse_stream_line('{"type": "error", "data": "boom"}') == {"type": "error", "data": {"error": "boom"}}


class TestProctorTools:
    """Exam and machine tools."""

    def setup_method(self):
        self.client = MockProctorClient()
        self.tools = {tool.name: tool for tool in create_tools(lambda: self.client)}

    @pytest.mark.asyncio
    async def test_get_metadata(self):
        text = await self.tools["get_proctor_metadata"].invoke({})
        assert "## Available Proctor Runtimes" in text
        assert "v0.0.37" in text
        assert "## Available Exams" in text
        assert "Init Tools List" in text

    @pytest.mark.asyncio
    async def test_get_metadata_error(self):
        self.client.errors["get_metadata"] = ApiError("API error")
        with pytest.raises(ToolError, match="Error getting Proctor metadata: API error"):
            await self.tools["get_proctor_metadata"].invoke({})

    @pytest.mark.asyncio
    async def test_run_exam_formats_logs_and_result(self):
        text = await self.tools["run_exam"].invoke({
            "runtime_id": "v0.0.37",
            "exam_id": "proctor-mcp-client-init-tools-list",
            "mcp_json": MCP_JSON,
        })
        assert text.startswith("## Exam Execution")
        assert "**Runtime:** v0.0.37" in text
        assert "[2024-01-15T10:30:00Z] Starting exam..." in text
        assert "### Result" in text
        assert '"status": "passed"' in text
        assert self.client.exam_requests[0]["mcp_json"] == MCP_JSON

    @pytest.mark.asyncio
    async def test_run_exam_log_without_message(self):
        self.client.data["exam_results"] = [{"type": "log", "data": {"step": 1}}]
        text = await self.tools["run_exam"].invoke({"runtime_id": "v0.0.37", "exam_id": "e", "mcp_json": "{}"})
        assert '[LOG] {"step": 1}' in text
        assert "### Result" not in text

    @pytest.mark.asyncio
    async def test_run_exam_error_entry_is_an_error_result(self):
        self.client.data["exam_results"] = [
            {"type": "log", "data": {"message": "Starting"}},
            {"type": "error", "data": {"error": "Server failed to start"}},
        ]
        with pytest.raises(ToolError) as exc_info:
            await self.tools["run_exam"].invoke({"runtime_id": "v0.0.37", "exam_id": "e", "mcp_json": "{}"})
        message = str(exc_info.value)
        assert "[LOG] Starting" in message
        assert message.endswith("### Error\n\nServer failed to start")

    @pytest.mark.asyncio
    async def test_run_exam_validation(self):
        with pytest.raises(ToolError, match="mcp_json must be a valid JSON string"):
            await self.tools["run_exam"].invoke({"runtime_id": "v0.0.37", "exam_id": "e", "mcp_json": "{bad"})
        with pytest.raises(ToolError, match="custom_runtime_image is required"):
            await self.tools["run_exam"].invoke({"runtime_id": "__custom__", "exam_id": "e", "mcp_json": "{}"})
        with pytest.raises(ToolError, match="Invalid arguments"):
            await self.tools["run_exam"].invoke({"runtime_id": "v1", "exam_id": "e", "mcp_json": "{}", "max_retries": 11})

    @pytest.mark.asyncio
    async def test_run_exam_client_failure(self):
        self.client.errors["run_exam"] = ApiError("connection reset")
        with pytest.raises(ToolError, match="^Error running exam: connection reset"):
            await self.tools["run_exam"].invoke({"runtime_id": "v0.0.37", "exam_id": "e", "mcp_json": "{}"})

    @pytest.mark.asyncio
    async def test_save_result(self):
        text = await self.tools["save_result"].invoke({
            "runtime_id": "v0.0.37", "exam_id": "e", "mcp_server_slug": "my-server",
            "mirror_id": 12, "results": {"status": "passed"},
        })
        assert "## Result Saved" in text
        assert "**Success:** true" in text
        assert "**Result ID:** 1" in text
        assert self.client.saved_results[0]["results"] == {"status": "passed"}

    @pytest.mark.asyncio
    async def test_save_result_error(self):
        self.client.errors["save_result"] = ApiError("Validation failed: mirror missing")
        with pytest.raises(ToolError, match="Error saving result"):
            await self.tools["save_result"].invoke({
                "runtime_id": "v0.0.37", "exam_id": "e", "mcp_server_slug": "s",
                "mirror_id": 1, "results": "{}",
            })

    @pytest.mark.asyncio
    async def test_prior_result_missing_is_not_an_error(self):
        text = await self.tools["get_prior_result"].invoke({"mirror_id": 1, "exam_id": "e"})
        assert text == "No prior result found for this mirror and exam combination."

    @pytest.mark.asyncio
    async def test_prior_result_found(self):
        self.client.data["prior_result"] = {
            "id": 7, "datetime_performed": "2024-01-15T10:30:00Z",
            "runtime_image": "registry.fly.io/proctor:v0.0.37", "match_type": "exact",
            "results": {"status": "passed"},
        }
        text = await self.tools["get_prior_result"].invoke({"mirror_id": 1, "exam_id": "e"})
        assert "## Prior Result" in text
        assert "**Match Type:** exact" in text
        assert '"status": "passed"' in text

    @pytest.mark.asyncio
    async def test_get_machines(self):
        text = await self.tools["get_machines"].invoke({})
        assert "Active Machines" in text
        assert "machine-123" in text
        assert "State: running" in text
        assert "Region: sjc" in text

    @pytest.mark.asyncio
    async def test_get_machines_empty(self):
        self.client.data["machines"] = {"machines": []}
        assert "No active Fly.io machines found" in await self.tools["get_machines"].invoke({})

    @pytest.mark.asyncio
    async def test_destroy_machine(self):
        text = await self.tools["destroy_machine"].invoke({"machine_id": "machine-123"})
        assert "Machine Destroyed" in text
        assert "machine-123" in text
        assert "**Success:** true" in text
        assert [m["id"] for m in self.client.data["machines"]["machines"]] == ["machine-456"]

    @pytest.mark.asyncio
    async def test_destroy_machine_rejects_unsafe_ids(self):
        with pytest.raises(ToolError, match="Invalid arguments"):
            await self.tools["destroy_machine"].invoke({"machine_id": "../etc"})

    @pytest.mark.asyncio
    async def test_destroy_machine_error(self):
        self.client.errors["destroy_machine"] = ApiError("Machine not found")
        with pytest.raises(ToolError, match="Error destroying machine"):
            await self.tools["destroy_machine"].invoke({"machine_id": "machine-999"})

    @pytest.mark.asyncio
    async def test_cancel_exam(self):
        text = await self.tools["cancel_exam"].invoke({"machine_id": "machine-123", "exam_id": "exam-1"})
        assert "Exam Cancellation" in text
        assert "machine-123" in text
        assert "Exam cancelled successfully" in text


class TestProctorToolGroups:

    def test_all_tools_by_default(self):
        assert len(enabled_tools(None, MockProctorClient)) == 7

    def test_readonly_variants(self):
        names = [t.name for t in enabled_tools("exams_readonly,machines_readonly", MockProctorClient)]
        assert names == ["get_proctor_metadata", "get_prior_result", "get_machines"]

    def test_single_group(self):
        names = [t.name for t in enabled_tools("machines", MockProctorClient)]
        assert names == ["get_machines", "destroy_machine", "cancel_exam"]
