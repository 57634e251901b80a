"""
SSH client built on paramiko.

paramiko is blocking, so every network call runs in a worker thread through
``asyncio.to_thread``. Authentication tries the SSH agent first, then the
configured private key file.
"""

import asyncio
import os
import stat
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import paramiko
from paramiko.ssh_exception import NoValidConnectionsError

from ..core.config import SSHConfig
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.ssh")

DEFAULT_COMMAND_TIMEOUT = 60000
_READ_SIZE = 32768
_POLL_INTERVAL = 0.05


class CommandTimeoutError(TimeoutError):
    pass


def escape_shell_arg(value: str) -> str:
    """Single-quote a value for a POSIX shell"""
    return "'" + value.replace("'", "'\\''") + "'"


def build_command(command: str, cwd: Optional[str] = None) -> str:
    if cwd:
        return f"cd {escape_shell_arg(cwd)} && {command}"
    return command


def format_permissions(mode: int) -> str:
    """Render a mode like ``drwxr-xr-x``"""
    return stat.filemode(mode)


def directory_entry(attributes: paramiko.SFTPAttributes) -> Dict[str, Any]:
    mode = attributes.st_mode or 0
    modified = datetime.fromtimestamp(attributes.st_mtime or 0, tz=timezone.utc)
    return {
        "name": attributes.filename,
        "isDirectory": stat.S_ISDIR(mode),
        "size": attributes.st_size or 0,
        "modifyTime": modified.isoformat().replace("+00:00", "Z"),
        "permissions": format_permissions(mode),
    }


def _drain(channel: paramiko.Channel, stdout: List[bytes], stderr: List[bytes]) -> bool:
    """Read whatever the channel has buffered; True if anything arrived"""
    received = False
    while channel.recv_ready():
        stdout.append(channel.recv(_READ_SIZE))
        received = True
    while channel.recv_stderr_ready():
        stderr.append(channel.recv_stderr(_READ_SIZE))
        received = True
    return received


class SSHClient(ABC):

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def disconnect(self) -> None: ...

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def execute(self, command: str, cwd: Optional[str] = None,
                      timeout_ms: Optional[int] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def upload(self, local_path: str, remote_path: str) -> None: ...

    @abstractmethod
    async def download(self, remote_path: str, local_path: str) -> None: ...

    @abstractmethod
    async def list_directory(self, remote_path: str) -> List[Dict[str, Any]]: ...


class ParamikoSSHClient(SSHClient):
    """
    One persistent SSH connection, opened on first use.

    Command timeouts are measured from the last output received, so a long
    running command that keeps printing is never cut off.
    """

    def __init__(self, config: SSHConfig, command_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT):
        self.config = config
        self.command_timeout_ms = command_timeout_ms
        self._client: Optional[paramiko.SSHClient] = None

    @property
    def is_connected(self) -> bool:
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def _connect_options(self) -> Dict[str, Any]:
        timeout = self.config.timeout / 1000
        options: Dict[str, Any] = {
            "hostname": self.config.host,
            "port": self.config.port,
            "username": self.config.username,
            "timeout": timeout,
            "banner_timeout": timeout,
            "auth_timeout": timeout,
            "allow_agent": bool(self.config.agent_socket),
            "look_for_keys": False,
        }
        if self.config.agent_socket:
            logger.debug("Using SSH agent authentication")

        key_path = self.config.private_key_path
        if key_path:
            if os.path.exists(key_path):
                options["key_filename"] = key_path
                if self.config.passphrase:
                    options["passphrase"] = self.config.passphrase
                logger.debug(f"Using private key: {key_path}")
            else:
                logger.error(f"Private key not found: {key_path}")
        return options

    def _connect_sync(self) -> None:
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(**self._connect_options())
        except NoValidConnectionsError as e:
            client.close()
            raise ConnectionRefusedError(
                f"Connection refused (ECONNREFUSED) by {self.config.host}:{self.config.port}"
            ) from e
        except Exception:
            client.close()
            raise
        self._client = client
        logger.info(f"Connected to {self.config.host}:{self.config.port}")

    async def connect(self):
        if self.is_connected:
            return
        await asyncio.to_thread(self._connect_sync)

    async def disconnect(self):
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug("Disconnected")

    def _execute_sync(self, command: str, timeout_ms: int) -> Dict[str, Any]:
        channel = self._client.get_transport().open_session()
        stdout: List[bytes] = []
        stderr: List[bytes] = []
        try:
            channel.exec_command(command)
            last_activity = time.monotonic()
            while True:
                if _drain(channel, stdout, stderr):
                    last_activity = time.monotonic()
                elif channel.exit_status_ready():
                    # output can land between the drain and the exit check
                    _drain(channel, stdout, stderr)
                    break
                elif (time.monotonic() - last_activity) * 1000 > timeout_ms:
                    raise CommandTimeoutError(f"Command timeout after {timeout_ms}ms of inactivity")
                else:
                    time.sleep(_POLL_INTERVAL)

            exit_code = channel.recv_exit_status()
        finally:
            channel.close()

        return {
            "stdout": b"".join(stdout).decode("utf-8", errors="replace").strip(),
            "stderr": b"".join(stderr).decode("utf-8", errors="replace").strip(),
            "exitCode": exit_code if exit_code >= 0 else 0,
        }

    async def execute(self, command, cwd=None, timeout_ms=None):
        await self.connect()
        timeout_ms = self.command_timeout_ms if timeout_ms is None else timeout_ms
        full_command = build_command(command, cwd)
        logger.debug(f"Executing: {full_command}")
        return await asyncio.to_thread(self._execute_sync, full_command, timeout_ms)

    def _with_sftp(self, operation):
        sftp = self._client.open_sftp()
        try:
            return operation(sftp)
        finally:
            sftp.close()

    async def upload(self, local_path, remote_path):
        await self.connect()
        await asyncio.to_thread(self._with_sftp, lambda sftp: sftp.put(local_path, remote_path))

    async def download(self, remote_path, local_path):
        await self.connect()
        await asyncio.to_thread(self._with_sftp, lambda sftp: sftp.get(remote_path, local_path))

    async def list_directory(self, remote_path):
        await self.connect()
        attributes = await asyncio.to_thread(self._with_sftp, lambda sftp: sftp.listdir_attr(remote_path))
        return [directory_entry(a) for a in attributes]


async def check_connection(client: SSHClient) -> None:
    """Open and close a connection, used by the startup health check"""
    await client.connect()
    await client.disconnect()
