"""
In-memory storage client for tests.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .client import FileMetadata, StorageClient, guess_content_type, is_text_type, validate_path

FIXED_TIME = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


class MockStorageClient(StorageClient):
    """
    Files are kept as ``{path: {"content": bytes, "content_type": str, "metadata": dict}}``.

    Page tokens are stringified offsets into the sorted path list.
    """

    def __init__(self, files: Optional[Dict[str, Dict[str, Any]]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.files: Dict[str, Dict[str, Any]] = {}
        for path, entry in (files or {}).items():
            content = entry.get("content", b"")
            self.files[path] = {
                "content": content.encode("utf-8") if isinstance(content, str) else content,
                "content_type": entry.get("content_type") or guess_content_type(path),
                "metadata": entry.get("metadata"),
            }
        self.errors = errors or {}
        self.calls: List[tuple] = []

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def _metadata(self, path: str) -> FileMetadata:
        entry = self.files[path]
        return FileMetadata(
            path=path,
            size=len(entry["content"]),
            content_type=entry["content_type"],
            created_at=FIXED_TIME,
            updated_at=FIXED_TIME,
            custom_metadata=entry["metadata"],
        )

    async def save_file(self, path, content, content_type=None, custom_metadata=None):
        self._record("save_file", path, content_type, custom_metadata)
        validate_path(path)
        path = path.lstrip("/")
        self.files[path] = {
            "content": content.encode("utf-8") if isinstance(content, str) else content,
            "content_type": content_type or guess_content_type(path),
            "metadata": custom_metadata,
        }
        return self._metadata(path)

    async def get_file(self, path):
        self._record("get_file", path)
        validate_path(path)
        path = path.lstrip("/")
        if path not in self.files:
            raise FileNotFoundError(f"File not found: {path}")
        metadata = self._metadata(path)
        data = self.files[path]["content"]
        if is_text_type(metadata.content_type):
            return data.decode("utf-8"), metadata
        return data, metadata

    async def delete_file(self, path):
        self._record("delete_file", path)
        validate_path(path)
        path = path.lstrip("/")
        if path not in self.files:
            raise FileNotFoundError(f"File not found: {path}")
        del self.files[path]

    async def search_files(self, prefix=None, limit=100, page_token=None, delimiter=None):
        self._record("search_files", prefix, limit, page_token, delimiter)
        if prefix:
            validate_path(prefix)
        prefix = (prefix or "").lstrip("/")
        paths = sorted(
            p for p in self.files
            if p.startswith(prefix) and not (delimiter and delimiter in p[len(prefix):])
        )
        offset = int(page_token) if page_token else 0
        page = paths[offset:offset + limit]
        next_token = str(offset + limit) if offset + limit < len(paths) else None
        return {
            "files": [self._metadata(p) for p in page],
            "hasMore": next_token is not None,
            "nextPageToken": next_token,
        }

    async def file_exists(self, path):
        self._record("file_exists", path)
        validate_path(path)
        return path.lstrip("/") in self.files
