#!/usr/bin/env python3
"""
SSH MCP Server

Runs commands on a remote host, transfers files over SFTP and lists remote
directories. What an agent may do is limited by ENABLED_TOOLGROUPS:
``readonly`` can inspect, ``write`` can also upload and ``admin`` can run
arbitrary commands.
"""

from typing import Callable, List, Optional

from pydantic import Field

from .. import __version__
from ..core.config import SSHConfig, require_environment
from ..core.errors import ToolError
from ..core.health import parse_health_check_timeout, run_health_check
from ..core.tool_groups import is_tool_enabled, parse_tool_groups
from ..core.tooling import EmptyInput, ToolInput, ToolSpec, build_server, json_text, run_main, run_stdio
from ..utils.logger import get_logger
from .client import ParamikoSSHClient, SSHClient, check_connection

SERVER_NAME = "ssh-mcp-server"
TOOL_GROUPS = ("readonly", "write", "admin")

logger = get_logger("ssh-mcp-server")

ClientFactory = Callable[[], SSHClient]


class ExecuteInput(ToolInput):
    command: str = Field(min_length=1, description="Shell command to execute on the remote host")
    cwd: Optional[str] = Field(None, description="Working directory to run the command in")
    timeout: Optional[int] = Field(
        None, gt=0,
        description="Inactivity timeout in milliseconds; resets whenever the command produces output. Default 60000")


class UploadInput(ToolInput):
    local_path: str = Field(alias="localPath", description="Path of the local file to upload")
    remote_path: str = Field(alias="remotePath", description="Destination path on the remote host")


class DownloadInput(ToolInput):
    remote_path: str = Field(alias="remotePath", description="Path of the remote file to download")
    local_path: str = Field(alias="localPath", description="Destination path on the local machine")


class ListDirectoryInput(ToolInput):
    path: str = Field(description="Remote directory to list")


def create_tools(client_factory: ClientFactory, config: Optional[SSHConfig] = None) -> List[ToolSpec]:
    config = config or SSHConfig()

    async def ssh_execute(params: ExecuteInput) -> str:
        try:
            result = await client_factory().execute(params.command, params.cwd, params.timeout)
        except Exception as e:
            raise ToolError(f"Error executing command: {e}") from e
        return json_text(result)

    async def ssh_upload(params: UploadInput) -> str:
        try:
            await client_factory().upload(params.local_path, params.remote_path)
        except Exception as e:
            raise ToolError(f"Error uploading file: {e}") from e
        return f"Successfully uploaded {params.local_path} to {params.remote_path}"

    async def ssh_download(params: DownloadInput) -> str:
        try:
            await client_factory().download(params.remote_path, params.local_path)
        except Exception as e:
            raise ToolError(f"Error downloading file: {e}") from e
        return f"Successfully downloaded {params.remote_path} to {params.local_path}"

    async def ssh_list_directory(params: ListDirectoryInput) -> str:
        try:
            entries = await client_factory().list_directory(params.path)
        except Exception as e:
            raise ToolError(f"Error listing directory: {e}") from e
        return json_text(entries)

    async def ssh_connection_info(params: EmptyInput) -> str:
        return json_text({
            "host": config.host or "not configured",
            "username": config.username or "not configured",
            "port": config.port,
        })

    return [
        ToolSpec("ssh_execute",
                 "Execute a shell command on the remote host. Returns stdout, stderr and the exit code. "
                 "Use cwd to run in a specific directory.",
                 ExecuteInput, ssh_execute, ("admin",), is_write=True),
        ToolSpec("ssh_upload",
                 "Upload a local file to the remote host over SFTP.",
                 UploadInput, ssh_upload, ("write", "admin"), is_write=True),
        ToolSpec("ssh_download",
                 "Download a file from the remote host over SFTP.",
                 DownloadInput, ssh_download, TOOL_GROUPS),
        ToolSpec("ssh_list_directory",
                 "List a remote directory with file sizes, modification times and permissions.",
                 ListDirectoryInput, ssh_list_directory, TOOL_GROUPS),
        ToolSpec("ssh_connection_info",
                 "Show the host, username and port this server connects to.",
                 EmptyInput, ssh_connection_info, TOOL_GROUPS),
    ]


def enabled_tools(config: SSHConfig, client_factory: ClientFactory) -> List[ToolSpec]:
    enabled = parse_tool_groups(config.enabled_toolgroups, TOOL_GROUPS, logger=logger)
    return [tool for tool in create_tools(client_factory, config) if is_tool_enabled(tool.groups, enabled)]


def create_server(config: SSHConfig, client_factory: Optional[ClientFactory] = None):
    if client_factory is None:
        client = ParamikoSSHClient(config)
        client_factory = lambda: client
    return build_server(SERVER_NAME, enabled_tools(config, client_factory))


async def main():
    """Run the MCP server"""
    config = SSHConfig.from_environment()
    require_environment(config, SERVER_NAME)

    if config.health.skip:
        logger.info("Skipping SSH health check")
    else:
        timeout = parse_health_check_timeout(config.health.timeout, logger)
        await run_health_check(
            lambda: check_connection(ParamikoSSHClient(config)), timeout, "the SSH server", logger)

    server = create_server(config)
    logger.info(f"Starting {SERVER_NAME} v{__version__} for {config.username}@{config.host}:{config.port}")
    await run_stdio(server, __version__)


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
