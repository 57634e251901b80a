"""
Tests for the SSH tools, helpers and tool-group gating.
"""

import json
import stat
from unittest.mock import MagicMock

import paramiko
import pytest

from pulse_mcp.core.config import SSHConfig
from pulse_mcp.core.errors import ToolError
from pulse_mcp.core.health import get_error_hint
from pulse_mcp.ssh.client import (
    ParamikoSSHClient,
    build_command,
    directory_entry,
    escape_shell_arg,
    format_permissions,
)
from pulse_mcp.ssh.mocks import MockSSHClient
from pulse_mcp.ssh.server import create_tools, enabled_tools


class TestHelpers:

    def test_escape_plain_path(self):
        assert escape_shell_arg("/var/www") == "'/var/www'"

    def test_escape_embedded_quote(self):
        assert escape_shell_arg("it's") == "'it'\\''s'"

    def test_build_command_with_cwd(self):
        assert build_command("ls -la", "/srv/app") == "cd '/srv/app' && ls -la"
        assert build_command("ls -la") == "ls -la"

    def test_permissions(self):
        assert format_permissions(stat.S_IFDIR | 0o755) == "drwxr-xr-x"
        assert format_permissions(stat.S_IFREG | 0o640) == "-rw-r-----"

    def test_directory_entry(self):
        attributes = paramiko.SFTPAttributes()
        attributes.filename = "logs"
        attributes.st_mode = stat.S_IFDIR | 0o750
        attributes.st_size = 4096
        attributes.st_mtime = 0
        assert directory_entry(attributes) == {
            "name": "logs",
            "isDirectory": True,
            "size": 4096,
            "modifyTime": "1970-01-01T00:00:00Z",
            "permissions": "drwxr-x---",
        }

    def test_refused_connection_hint(self):
        hint = get_error_hint("Connection refused (ECONNREFUSED) by example.com:22", 10000, "the SSH server")
        assert "refused" in hint


class LateOutputChannel:
    """Delivers its last output only once the exit status is already known"""

    def __init__(self):
        self.stdout = [b"first\n"]
        self.stderr = []
        self.closed = False

    def exec_command(self, command):
        self.command = command

    def recv_ready(self):
        return bool(self.stdout)

    def recv(self, size):
        return self.stdout.pop(0)

    def recv_stderr_ready(self):
        return bool(self.stderr)

    def recv_stderr(self, size):
        return self.stderr.pop(0)

    def exit_status_ready(self):
        self.stdout.append(b"last\n")
        self.stderr.append(b"warning\n")
        return True

    def recv_exit_status(self):
        return 0

    def close(self):
        self.closed = True


class TestCommandExecution:

    def test_output_arriving_with_exit_status_is_kept(self):
        channel = LateOutputChannel()
        client = ParamikoSSHClient(SSHConfig(host="example.com", username="deploy"))
        client._client = MagicMock()
        client._client.get_transport.return_value.open_session.return_value = channel

        result = client._execute_sync("ls", 1000)

        assert result == {"stdout": "first\nlast", "stderr": "warning", "exitCode": 0}
        assert channel.closed


class TestConfig:

    def test_from_environment(self, clean_environment):
        clean_environment.setenv("SSH_HOST", "example.com")
        clean_environment.setenv("SSH_USERNAME", "deploy")
        clean_environment.setenv("SSH_PORT", "2222")
        clean_environment.setenv("SSH_PRIVATE_KEY_PATH", "~/.ssh/id_ed25519")
        clean_environment.setenv("SKIP_HEALTH_CHECKS", "true")
        config = SSHConfig.from_environment()
        assert config.port == 2222
        assert not config.private_key_path.startswith("~")
        assert config.health.skip is True
        assert config.missing_variables() == []

    def test_missing_required(self, clean_environment):
        assert SSHConfig.from_environment().missing_variables() == ["SSH_HOST", "SSH_USERNAME"]


class TestSSHTools:

    def setup_method(self):
        self.client = MockSSHClient(
            commands={"cd '/srv/app' && git status": {"stdout": "clean", "stderr": "", "exitCode": 0}},
            files={"/etc/motd": b"welcome"},
            directories={"/srv": [{"name": "app", "isDirectory": True, "size": 4096,
                                   "modifyTime": "2024-01-01T00:00:00Z", "permissions": "drwxr-xr-x"}]},
        )
        self.config = SSHConfig(host="example.com", username="deploy")
        self.tools = {t.name: t for t in create_tools(lambda: self.client, self.config)}

    @pytest.mark.asyncio
    async def test_execute_with_cwd(self):
        result = json.loads(await self.tools["ssh_execute"].invoke(
            {"command": "git status", "cwd": "/srv/app", "timeout": 5000}))
        assert result == {"stdout": "clean", "stderr": "", "exitCode": 0}
        assert self.client.calls[-1] == ("execute", "cd '/srv/app' && git status", 5000)

    @pytest.mark.asyncio
    async def test_execute_failure(self):
        self.client.errors["execute"] = TimeoutError("Command timeout after 5000ms of inactivity")
        with pytest.raises(ToolError, match="Error executing command: Command timeout after 5000ms"):
            await self.tools["ssh_execute"].invoke({"command": "sleep 60"})

    @pytest.mark.asyncio
    async def test_upload_and_download(self, tmp_path):
        local = tmp_path / "deploy.sh"
        local.write_text("#!/bin/sh\n")
        text = await self.tools["ssh_upload"].invoke({"localPath": str(local), "remotePath": "/tmp/deploy.sh"})
        assert text == f"Successfully uploaded {local} to /tmp/deploy.sh"
        assert self.client.files["/tmp/deploy.sh"] == b"#!/bin/sh\n"

        target = tmp_path / "motd"
        text = await self.tools["ssh_download"].invoke({"remotePath": "/etc/motd", "localPath": str(target)})
        assert text == f"Successfully downloaded /etc/motd to {target}"
        assert target.read_bytes() == b"welcome"

    @pytest.mark.asyncio
    async def test_download_missing(self, tmp_path):
        with pytest.raises(ToolError, match="Error downloading file: No such file"):
            await self.tools["ssh_download"].invoke(
                {"remotePath": "/nope", "localPath": str(tmp_path / "x")})

    @pytest.mark.asyncio
    async def test_list_directory(self):
        entries = json.loads(await self.tools["ssh_list_directory"].invoke({"path": "/srv"}))
        assert entries[0]["name"] == "app"
        assert entries[0]["permissions"] == "drwxr-xr-x"

    @pytest.mark.asyncio
    async def test_list_directory_failure(self):
        with pytest.raises(ToolError, match="Error listing directory"):
            await self.tools["ssh_list_directory"].invoke({"path": "/missing"})

    @pytest.mark.asyncio
    async def test_connection_info(self):
        info = json.loads(await self.tools["ssh_connection_info"].invoke({}))
        assert info == {"host": "example.com", "username": "deploy", "port": 22}

    @pytest.mark.asyncio
    async def test_connection_info_unconfigured(self):
        tools = {t.name: t for t in create_tools(lambda: self.client)}
        info = json.loads(await tools["ssh_connection_info"].invoke({}))
        assert info["host"] == "not configured"
        assert info["username"] == "not configured"


class TestSSHToolGroups:

    def _names(self, groups):
        config = SSHConfig(host="h", username="u", enabled_toolgroups=groups)
        return sorted(t.name for t in enabled_tools(config, MockSSHClient))

    def test_all_tools_by_default(self):
        assert len(self._names(None)) == 5

    def test_readonly(self):
        assert self._names("readonly") == ["ssh_connection_info", "ssh_download", "ssh_list_directory"]

    def test_write_adds_upload(self):
        assert "ssh_upload" in self._names("write")
        assert "ssh_execute" not in self._names("write")

    def test_admin_only_execute(self):
        assert "ssh_execute" in self._names("admin")

    def test_invalid_falls_back_to_all(self):
        assert len(self._names("bogus")) == 5
