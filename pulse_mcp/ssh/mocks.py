"""
In-memory SSH client for tests.
"""

from typing import Any, Dict, List, Optional

from .client import SSHClient, build_command


class MockSSHClient(SSHClient):
    """
    ``commands`` maps a full command line (after any ``cd``) to its result.
    ``files`` is the remote filesystem, keyed by remote path.
    ``directories`` maps a remote directory to its listing.
    """

    def __init__(self, commands: Optional[Dict[str, Dict[str, Any]]] = None,
                 files: Optional[Dict[str, bytes]] = None,
                 directories: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.commands = commands or {}
        self.files = files or {}
        self.directories = directories or {}
        self.errors = errors or {}
        self.calls: List[tuple] = []
        self._connected = False

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self):
        self._record("connect")
        self._connected = True

    async def disconnect(self):
        self._record("disconnect")
        self._connected = False

    async def execute(self, command, cwd=None, timeout_ms=None):
        full_command = build_command(command, cwd)
        self._record("execute", full_command, timeout_ms)
        return dict(self.commands.get(full_command, {"stdout": "", "stderr": "", "exitCode": 0}))

    async def upload(self, local_path, remote_path):
        self._record("upload", local_path, remote_path)
        with open(local_path, "rb") as f:
            self.files[remote_path] = f.read()

    async def download(self, remote_path, local_path):
        self._record("download", remote_path, local_path)
        if remote_path not in self.files:
            raise FileNotFoundError(f"No such file: {remote_path}")
        with open(local_path, "wb") as f:
            f.write(self.files[remote_path])

    async def list_directory(self, remote_path):
        self._record("list_directory", remote_path)
        if remote_path not in self.directories:
            raise FileNotFoundError(f"No such directory: {remote_path}")
        return [dict(entry) for entry in self.directories[remote_path]]
