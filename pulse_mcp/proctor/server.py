#!/usr/bin/env python3
"""
Proctor MCP Server

Runs Proctor exams against MCP servers, stores and compares results, and
manages the Fly.io machines exams run on.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import Field

from .. import __version__
from ..core.config import ProctorConfig, require_environment
from ..core.errors import ToolError
from ..core.tool_groups import is_scoped_tool_enabled, parse_scoped_groups
from ..core.tooling import EmptyInput, ToolInput, ToolSpec, build_server, run_main, run_stdio
from ..utils.logger import get_logger
from .client import HttpProctorClient, ProctorClient, is_no_prior_result

SERVER_NAME = "proctor-mcp-server"
BASE_GROUPS = ("exams", "machines")
CUSTOM_RUNTIME = "__custom__"
ID_PATTERN = r"^[A-Za-z0-9_-]+$"

logger = get_logger("proctor-mcp-server")

ClientFactory = Callable[[], ProctorClient]


class RunExamInput(ToolInput):
    runtime_id: str = Field(
        min_length=1,
        description='Runtime ID from get_proctor_metadata, or "__custom__" for a custom Docker image. Example: "v0.0.37"')
    exam_id: str = Field(
        min_length=1,
        description='Exam ID from get_proctor_metadata. Example: "proctor-mcp-client-init-tools-list"')
    mcp_json: str = Field(
        min_length=1,
        description='JSON string of the mcp.json configuration for the server under test. Example: '
                    '{"my-server": {"type": "streamable-http", "url": "https://example.com/mcp"}}. '
                    'Underscore-prefixed fields such as _proctor_files are used for exam setup only.')
    server_json: Optional[str] = Field(None, description="Optional server.json string used to enrich results")
    custom_runtime_image: Optional[str] = Field(
        None, description='Required if runtime_id is "__custom__". Docker image in the form registry/image:tag')
    max_retries: Optional[int] = Field(None, ge=0, le=10, description="Maximum retry attempts (0-10). Default 0")


class SaveResultInput(ToolInput):
    runtime_id: str = Field(min_length=1, description='Runtime ID used for the exam, or "__custom__"')
    exam_id: str = Field(min_length=1, description="Exam ID that was executed")
    mcp_server_slug: str = Field(min_length=1, description="Slug of the MCP server that was tested")
    mirror_id: int = Field(description="ID of the unofficial mirror associated with this test")
    results: Union[str, Dict[str, Any]] = Field(description="Exam results as a JSON string or object, as returned by run_exam")
    custom_runtime_image: Optional[str] = Field(None, description='Required if runtime_id is "__custom__"')


class PriorResultInput(ToolInput):
    mirror_id: int = Field(description="ID of the unofficial mirror to get prior results for")
    exam_id: str = Field(min_length=1, description="Exam ID to filter results by")
    input_json: Optional[str] = Field(
        None, description="Optional mcp.json string; when given the most recent result with a matching config is returned")


class MachineInput(ToolInput):
    machine_id: str = Field(pattern=ID_PATTERN, description="Fly.io machine ID from get_machines")


class CancelExamInput(MachineInput):
    exam_id: str = Field(pattern=ID_PATTERN, description="ID of the exam running on the machine")


def _flag(value: Any) -> str:
    return "true" if value else "false"


def _json_block(value: Any) -> str:
    return "```json\n" + json.dumps(value, indent=2, default=str) + "\n```"


def format_metadata(metadata: Dict[str, Any]) -> str:
    lines = ["## Available Proctor Runtimes", ""]
    for runtime in metadata.get("runtimes", []):
        lines.append(f"- **{runtime.get('name', runtime.get('id'))}** (`{runtime.get('id')}`)")
        if runtime.get("image"):
            lines.append(f"  Image: {runtime['image']}")
    lines += ["", "## Available Exams", ""]
    for exam in metadata.get("exams", []):
        lines.append(f"- **{exam.get('name', exam.get('id'))}** (`{exam.get('id')}`)")
        if exam.get("description"):
            lines.append(f"  {exam['description']}")
    lines += ["", f'Use runtime_id "{CUSTOM_RUNTIME}" with custom_runtime_image to run a custom Docker image.']
    return "\n".join(lines)


def format_machines(response: Dict[str, Any]) -> str:
    machines = response.get("machines", [])
    if not machines:
        return "No active Fly.io machines found."

    lines = [f"## Active Machines ({len(machines)})", ""]
    for machine in machines:
        name = f" ({machine['name']})" if machine.get("name") else ""
        lines.append(f"- **{machine.get('id')}**{name}")
        for label, key in (("State", "state"), ("Region", "region"), ("Created", "created_at")):
            if machine.get(key):
                lines.append(f"  {label}: {machine[key]}")
    return "\n".join(lines)


def format_log(data: Dict[str, Any]) -> str:
    if data.get("message"):
        return f"[{data.get('time') or 'LOG'}] {data['message']}"
    return f"[LOG] {json.dumps(data, default=str)}"


def create_tools(client_factory: ClientFactory) -> List[ToolSpec]:

    async def get_proctor_metadata(params: EmptyInput) -> str:
        try:
            metadata = await client_factory().get_metadata()
        except Exception as e:
            raise ToolError(f"Error getting Proctor metadata: {e}") from e
        return format_metadata(metadata)

    async def run_exam(params: RunExamInput) -> str:
        try:
            json.loads(params.mcp_json)
        except ValueError:
            raise ToolError("Error: mcp_json must be a valid JSON string") from None
        if params.runtime_id == CUSTOM_RUNTIME and not params.custom_runtime_image:
            raise ToolError('Error: custom_runtime_image is required when runtime_id is "__custom__"')

        logs: List[str] = []
        final_result: Optional[Dict[str, Any]] = None
        error_message: Optional[str] = None
        try:
            async for entry in client_factory().run_exam(params.model_dump(exclude_none=True)):
                if entry["type"] == "log":
                    logs.append(format_log(entry["data"]))
                elif entry["type"] == "result":
                    final_result = entry["data"]
                elif entry["type"] == "error":
                    error_message = str(entry["data"].get("error") or entry["data"])
        except Exception as e:
            raise ToolError(f"Error running exam: {e}") from e

        content = f"## Exam Execution\n\n**Runtime:** {params.runtime_id}\n**Exam:** {params.exam_id}\n\n"
        if logs:
            content += "### Logs\n\n```\n" + "\n".join(logs) + "\n```\n\n"
        if error_message:
            content += f"### Error\n\n{error_message}\n"
            raise ToolError(content.strip())
        if final_result is not None:
            content += "### Result\n\n" + _json_block(final_result) + "\n"
        return content.strip()

    async def save_result(params: SaveResultInput) -> str:
        if params.runtime_id == CUSTOM_RUNTIME and not params.custom_runtime_image:
            raise ToolError('Error: custom_runtime_image is required when runtime_id is "__custom__"')
        try:
            response = await client_factory().save_result(params.model_dump(exclude_none=True))
        except Exception as e:
            raise ToolError(f"Error saving result: {e}") from e
        return (
            "## Result Saved\n\n"
            f"**Success:** {_flag(response.get('success'))}\n"
            f"**Result ID:** {response.get('id')}\n\n"
            "The exam result has been saved and can be retrieved for comparison using get_prior_result."
        )

    async def get_prior_result(params: PriorResultInput) -> str:
        try:
            response = await client_factory().get_prior_result(
                params.mirror_id, params.exam_id, params.input_json)
        except Exception as e:
            if is_no_prior_result(e):
                return "No prior result found for this mirror and exam combination."
            raise ToolError(f"Error getting prior result: {e}") from e
        return (
            "## Prior Result\n\n"
            f"**Result ID:** {response.get('id')}\n"
            f"**Date Performed:** {response.get('datetime_performed')}\n"
            f"**Runtime Image:** {response.get('runtime_image')}\n"
            f"**Match Type:** {response.get('match_type')}\n\n"
            "### Results\n\n" + _json_block(response.get("results"))
        )

    async def get_machines(params: EmptyInput) -> str:
        try:
            response = await client_factory().get_machines()
        except Exception as e:
            raise ToolError(f"Error getting machines: {e}") from e
        return format_machines(response)

    async def destroy_machine(params: MachineInput) -> str:
        try:
            response = await client_factory().destroy_machine(params.machine_id)
        except Exception as e:
            raise ToolError(f"Error destroying machine: {e}") from e
        return (
            "## Machine Destroyed\n\n"
            f"**Machine ID:** {params.machine_id}\n"
            f"**Success:** {_flag(response.get('success', True))}"
        )

    async def cancel_exam(params: CancelExamInput) -> str:
        try:
            response = await client_factory().cancel_exam(params.machine_id, params.exam_id)
        except Exception as e:
            raise ToolError(f"Error cancelling exam: {e}") from e
        content = (
            "## Exam Cancellation\n\n"
            f"**Machine ID:** {params.machine_id}\n"
            f"**Exam ID:** {params.exam_id}\n"
            f"**Success:** {_flag(response.get('success'))}"
        )
        if response.get("message"):
            content += f"\n**Message:** {response['message']}"
        return content

    return [
        ToolSpec("get_proctor_metadata",
                 "List the Proctor runtimes and exams available for testing MCP servers. Call this "
                 "before run_exam to discover valid runtime_id and exam_id values.",
                 EmptyInput, get_proctor_metadata, ("exams",)),
        ToolSpec("run_exam",
                 "Execute a Proctor exam against an MCP server described by an mcp.json string. "
                 "Streams logs while the exam runs and returns them with the final result.",
                 RunExamInput, run_exam, ("exams",), is_write=True),
        ToolSpec("save_result",
                 "Save exam results so later runs can be compared with get_prior_result.",
                 SaveResultInput, save_result, ("exams",), is_write=True),
        ToolSpec("get_prior_result",
                 "Retrieve the most recent saved result for a mirror and exam. match_type is "
                 '"exact" when the mcp.json matches and "entry_key" when only the entry key matches.',
                 PriorResultInput, get_prior_result, ("exams",)),
        ToolSpec("get_machines",
                 "List the Fly.io machines currently running Proctor exams.",
                 EmptyInput, get_machines, ("machines",)),
        ToolSpec("destroy_machine",
                 "Destroy a Fly.io machine, stopping any exam running on it.",
                 MachineInput, destroy_machine, ("machines",), is_write=True),
        ToolSpec("cancel_exam",
                 "Cancel an exam running on a Fly.io machine.",
                 CancelExamInput, cancel_exam, ("machines",), is_write=True),
    ]


def enabled_tools(tool_groups: Optional[str], client_factory: ClientFactory) -> List[ToolSpec]:
    enabled = parse_scoped_groups(tool_groups, BASE_GROUPS, logger=logger)
    return [
        tool for tool in create_tools(client_factory)
        if is_scoped_tool_enabled(tool.groups[0], tool.is_write, enabled)
    ]


def create_server(config: ProctorConfig, client_factory: Optional[ClientFactory] = None):
    if client_factory is None:
        client = HttpProctorClient(config)
        client_factory = lambda: client
    return build_server(SERVER_NAME, enabled_tools(config.tool_groups, client_factory))


async def main():
    """Run the MCP server"""
    config = ProctorConfig.from_environment()
    require_environment(config, SERVER_NAME)
    client = HttpProctorClient(config)
    server = create_server(config, lambda: client)
    logger.info(f"Starting {SERVER_NAME} v{__version__} against {config.api_url}")
    try:
        await run_stdio(server, __version__)
    finally:
        await client.close()


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
