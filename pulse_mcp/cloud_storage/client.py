"""
Google Cloud Storage client.

All paths are relative to the configured root directory, which acts as a
prefix inside the bucket. Paths containing ``..`` are rejected.
"""

import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from google.cloud import storage
from google.oauth2 import service_account

from ..core.config import CloudStorageConfig
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.cloud_storage")

DEFAULT_CONTENT_TYPE = "application/octet-stream"
TEXT_CONTENT_TYPES = {"application/json", "application/xml", "application/javascript"}

# Extensions mimetypes gets wrong or does not know on every platform
EXTENSION_TYPES = {
    "md": "text/markdown",
    "ts": "text/typescript",
    "json": "application/json",
    "js": "application/javascript",
    "csv": "text/csv",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "gz": "application/gzip",
}

TOKEN_URI = "https://oauth2.googleapis.com/token"


def guess_content_type(path: str) -> str:
    extension = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    if extension in EXTENSION_TYPES:
        return EXTENSION_TYPES[extension]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or DEFAULT_CONTENT_TYPE


def is_text_type(content_type: str) -> bool:
    return content_type.startswith("text/") or content_type in TEXT_CONTENT_TYPES


def validate_path(path: str) -> None:
    if ".." in path:
        raise ValueError('Path traversal not allowed: paths cannot contain ".."')


def normalize_root(root_directory: Optional[str]) -> str:
    if not root_directory:
        return ""
    return root_directory.rstrip("/") + "/"


def _iso(value: Optional[datetime]) -> str:
    value = value or datetime.now(timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class FileMetadata:
    path: str
    size: int = 0
    content_type: str = DEFAULT_CONTENT_TYPE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    custom_metadata: Optional[Dict[str, str]] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "contentType": self.content_type,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "customMetadata": self.custom_metadata,
        }


FileContent = Union[str, bytes]


class StorageClient(ABC):

    @abstractmethod
    async def save_file(self, path: str, content: FileContent, content_type: Optional[str] = None,
                        custom_metadata: Optional[Dict[str, str]] = None) -> FileMetadata: ...

    @abstractmethod
    async def get_file(self, path: str) -> Tuple[FileContent, FileMetadata]:
        """Return text for text content types and bytes otherwise"""

    @abstractmethod
    async def delete_file(self, path: str) -> None: ...

    @abstractmethod
    async def search_files(self, prefix: Optional[str] = None, limit: int = 100,
                           page_token: Optional[str] = None,
                           delimiter: Optional[str] = None) -> Dict[str, Any]:
        """Return ``{files, hasMore, nextPageToken}`` with FileMetadata entries"""

    async def list_all_files(self) -> List[FileMetadata]:
        files: List[FileMetadata] = []
        page_token = None
        while True:
            result = await self.search_files(limit=1000, page_token=page_token)
            files.extend(result["files"])
            page_token = result.get("nextPageToken")
            if not page_token:
                return files

    @abstractmethod
    async def file_exists(self, path: str) -> bool: ...


def build_storage_client(config: CloudStorageConfig) -> storage.Client:
    """Individual credentials win over a key file; otherwise application default credentials"""
    if config.client_email and config.private_key:
        credentials = service_account.Credentials.from_service_account_info({
            "type": "service_account",
            "client_email": config.client_email,
            "private_key": config.private_key,
            "token_uri": TOKEN_URI,
        })
        return storage.Client(project=config.project_id, credentials=credentials)
    if config.key_file:
        return storage.Client.from_service_account_json(config.key_file, project=config.project_id)
    return storage.Client(project=config.project_id)


class GCSStorageClient(StorageClient):

    def __init__(self, config: CloudStorageConfig, client: Optional[storage.Client] = None):
        self.config = config
        self.root = normalize_root(config.root_directory)
        self._client = client

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = build_storage_client(self.config)
        return self._client

    @property
    def bucket(self) -> storage.Bucket:
        return self.client.bucket(self.config.bucket)

    def full_path(self, path: str) -> str:
        validate_path(path)
        return self.root + path.lstrip("/")

    def relative_path(self, name: str) -> str:
        if self.root and name.startswith(self.root):
            return name[len(self.root):]
        return name

    def _metadata(self, blob: storage.Blob) -> FileMetadata:
        return FileMetadata(
            path=self.relative_path(blob.name),
            size=int(blob.size or 0),
            content_type=blob.content_type or DEFAULT_CONTENT_TYPE,
            created_at=blob.time_created,
            updated_at=blob.updated,
            custom_metadata=blob.metadata,
        )

    def _existing_blob(self, path: str) -> storage.Blob:
        blob = self.bucket.get_blob(self.full_path(path))
        if blob is None:
            raise FileNotFoundError(f"File not found: {path}")
        return blob

    async def save_file(self, path, content, content_type=None, custom_metadata=None):
        blob = self.bucket.blob(self.full_path(path))
        if custom_metadata:
            blob.metadata = custom_metadata
        data = content.encode("utf-8") if isinstance(content, str) else content
        blob.upload_from_string(data, content_type=content_type or guess_content_type(path))
        blob.reload()
        logger.info(f"Saved gs://{self.config.bucket}/{blob.name} ({len(data)} bytes)")
        return self._metadata(blob)

    async def get_file(self, path):
        blob = self._existing_blob(path)
        data = blob.download_as_bytes()
        metadata = self._metadata(blob)
        if is_text_type(metadata.content_type):
            return data.decode("utf-8", errors="replace"), metadata
        return data, metadata

    async def delete_file(self, path):
        self._existing_blob(path).delete()
        logger.info(f"Deleted gs://{self.config.bucket}/{self.full_path(path)}")

    async def search_files(self, prefix=None, limit=100, page_token=None, delimiter=None):
        full_prefix = self.full_path(prefix) if prefix else (self.root or None)
        iterator = self.client.list_blobs(
            self.config.bucket,
            prefix=full_prefix,
            page_size=limit,
            page_token=page_token,
            delimiter=delimiter,
        )
        page = next(iterator.pages, None)
        blobs = list(page) if page is not None else []
        next_token = iterator.next_page_token
        return {
            "files": [self._metadata(blob) for blob in blobs],
            "hasMore": bool(next_token),
            "nextPageToken": next_token,
        }

    async def file_exists(self, path):
        return self.bucket.blob(self.full_path(path)).exists()
