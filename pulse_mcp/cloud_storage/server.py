#!/usr/bin/env python3
"""
Cloud Storage MCP Server

Saves, reads, searches and deletes files in a Google Cloud Storage bucket,
and exposes every file in the bucket as an MCP resource.
"""

import os
from typing import Callable, Dict, List, Optional, Tuple

from mcp.types import Resource
from pydantic import Field, model_validator

from .. import __version__
from ..core.config import CloudStorageConfig, require_environment
from ..core.errors import ToolError
from ..core.tool_groups import is_tool_enabled, parse_tool_groups
from ..core.tooling import ToolInput, ToolSpec, build_server, json_text, run_main, run_stdio
from ..utils.formatting import format_bytes
from ..utils.logger import get_logger
from .client import GCSStorageClient, StorageClient

SERVER_NAME = "cloud-storage-mcp-server"
TOOL_GROUPS = ("readonly", "write", "admin")
URI_PREFIX = "cloud-storage://"
CONFIG_URI = f"{URI_PREFIX}config"
FILE_URI_PREFIX = f"{URI_PREFIX}file/"

logger = get_logger("cloud-storage-mcp-server")

ClientFactory = Callable[[], StorageClient]


class SaveFileInput(ToolInput):
    path: str = Field(
        min_length=1,
        description='Path where the file is stored in the bucket. Examples: "documents/report.pdf", "data/config.json"')
    content: Optional[str] = Field(None, description="Inline text content to save")
    local_file_path: Optional[str] = Field(
        None, description='Local file to upload instead of inline content, e.g. for binary files. Example: "/tmp/report.pdf"')
    content_type: Optional[str] = Field(
        None, description="MIME type. Detected from the file extension when omitted")
    metadata: Optional[Dict[str, str]] = Field(None, description="Custom key-value metadata stored with the file")

    @model_validator(mode="after")
    def require_source(self):
        if self.content is None and self.local_file_path is None:
            raise ValueError("Either content or local_file_path must be provided")
        return self


class GetFileInput(ToolInput):
    path: str = Field(min_length=1, description='Path of the file in the bucket. Example: "data/config.json"')
    local_file_path: Optional[str] = Field(
        None, description="Write the file to this local path instead of returning it inline")
    include_content: Optional[bool] = Field(
        None, description="Include file content in the response. Default true, or false when local_file_path is given")


class SearchFilesInput(ToolInput):
    prefix: Optional[str] = Field(None, description='Only return files under this path prefix. Example: "documents/"')
    limit: int = Field(100, ge=1, le=1000, description="Maximum number of files to return (1-1000)")
    page_token: Optional[str] = Field(None, description="Token from a previous search to fetch the next page")
    delimiter: Optional[str] = Field(
        None, description='Folder delimiter, usually "/", to list one level without descending into sub-folders')


class DeleteFileInput(ToolInput):
    path: str = Field(min_length=1, description="Path of the file to delete")


def create_tools(client_factory: ClientFactory) -> List[ToolSpec]:

    async def save_file(params: SaveFileInput) -> str:
        try:
            if params.local_file_path:
                if not os.path.exists(params.local_file_path):
                    raise FileNotFoundError(f"Local file not found: {params.local_file_path}")
                with open(params.local_file_path, "rb") as f:
                    content = f.read()
            else:
                content = params.content
            metadata = await client_factory().save_file(
                params.path, content, params.content_type, params.metadata)
        except Exception as e:
            raise ToolError(f"Error saving file: {e}") from e
        return json_text({
            "success": True,
            "message": f"File saved successfully to {params.path}",
            "file": metadata.to_dict(),
        })

    async def get_file(params: GetFileInput) -> str:
        try:
            content, metadata = await client_factory().get_file(params.path)
            if params.local_file_path:
                data = content.encode("utf-8") if isinstance(content, str) else content
                with open(params.local_file_path, "wb") as f:
                    f.write(data)
        except Exception as e:
            raise ToolError(f"Error getting file: {e}") from e

        include_content = params.include_content
        if include_content is None:
            include_content = not params.local_file_path

        response = {"success": True, "file": metadata.to_dict()}
        if params.local_file_path:
            response["savedTo"] = params.local_file_path
            response["message"] = f"File downloaded and saved to {params.local_file_path}"
        if include_content:
            if isinstance(content, bytes):
                response["content"] = f"[Binary content - {metadata.size} bytes]"
                response["isBinary"] = True
            else:
                response["content"] = content
        return json_text(response)

    async def search_files(params: SearchFilesInput) -> str:
        try:
            result = await client_factory().search_files(
                params.prefix, params.limit, params.page_token, params.delimiter)
        except Exception as e:
            raise ToolError(f"Error searching files: {e}") from e
        return json_text({
            "success": True,
            "totalReturned": len(result["files"]),
            "hasMore": result["hasMore"],
            "nextPageToken": result.get("nextPageToken"),
            "files": [f.to_dict() for f in result["files"]],
        })

    async def delete_file(params: DeleteFileInput) -> str:
        try:
            await client_factory().delete_file(params.path)
        except Exception as e:
            raise ToolError(f"Error deleting file: {e}") from e
        return json_text({"success": True, "message": f"File deleted successfully: {params.path}"})

    return [
        ToolSpec("save_file",
                 "Save a file to cloud storage from inline content or a local file. Returns the saved "
                 "file's metadata. Use local_file_path for binary files.",
                 SaveFileInput, save_file, ("write", "admin"), is_write=True),
        ToolSpec("get_file",
                 "Get a file's metadata and content from cloud storage. Text content is returned inline; "
                 "use local_file_path for binary or large files.",
                 GetFileInput, get_file, TOOL_GROUPS),
        ToolSpec("search_files",
                 "List files in cloud storage, optionally under a prefix. Supports pagination through "
                 "page_token and folder-style listing through delimiter.",
                 SearchFilesInput, search_files, TOOL_GROUPS),
        ToolSpec("delete_file",
                 "Permanently delete a file from cloud storage.",
                 DeleteFileInput, delete_file, ("admin",), is_write=True),
    ]


def _configured(value: Optional[str]) -> str:
    return "***configured***" if value else "not set"


class StorageResources:
    """Config resource plus one resource per file in the bucket"""

    def __init__(self, client_factory: ClientFactory, config: CloudStorageConfig,
                 tool_names: List[str]):
        self.client_factory = client_factory
        self.config = config
        self.tool_names = tool_names

    def _config_resource(self) -> Resource:
        return Resource(
            uri=CONFIG_URI,
            name="Server Configuration",
            description="Current server configuration and status. Useful for debugging and verifying setup.",
            mimeType="application/json",
        )

    def config_document(self) -> Dict:
        return {
            "server": {"name": SERVER_NAME, "version": __version__, "transport": "stdio"},
            "environment": {
                "GCS_BUCKET": _configured(self.config.bucket),
                "GCS_ROOT_DIRECTORY": self.config.root_directory or "not set (bucket root)",
                "GCS_PROJECT_ID": _configured(self.config.project_id),
                "GCS_KEY_FILE": _configured(self.config.key_file),
                "GCS_CLIENT_EMAIL": _configured(self.config.client_email),
                "GCS_PRIVATE_KEY": _configured(self.config.private_key),
                "ENABLED_TOOLGROUPS": self.config.enabled_toolgroups or "all (default)",
            },
            "capabilities": {"tools": self.tool_names, "resources": True},
            "provider": "gcs",
        }

    async def list_resources(self) -> List[Resource]:
        resources = [self._config_resource()]
        try:
            files = await self.client_factory().list_all_files()
        except Exception as e:
            logger.warning(f"Could not list files for resources: {e}")
            return resources
        for f in files:
            resources.append(Resource(
                uri=f"{FILE_URI_PREFIX}{f.path}",
                name=f.path,
                description=f"File: {f.path} ({format_bytes(f.size)}, {f.content_type})",
                mimeType=f.content_type,
            ))
        return resources

    async def read_resource(self, uri: str) -> Tuple[str, str]:
        if uri == CONFIG_URI:
            return json_text(self.config_document()), "application/json"

        if uri.startswith(FILE_URI_PREFIX):
            path = uri[len(FILE_URI_PREFIX):]
            try:
                content, metadata = await self.client_factory().get_file(path)
            except Exception as e:
                raise ValueError(f"Failed to read file: {e}") from e
            if isinstance(content, bytes):
                content = (
                    f"[Binary content - {metadata.size} bytes]\n\n"
                    "Use the get_file tool with local_file_path to download binary files."
                )
            return content, metadata.content_type

        raise ValueError(f"Resource not found: {uri}")


def enabled_tools(config: CloudStorageConfig, client_factory: ClientFactory) -> List[ToolSpec]:
    enabled = parse_tool_groups(config.enabled_toolgroups, TOOL_GROUPS, logger=logger)
    return [tool for tool in create_tools(client_factory) if is_tool_enabled(tool.groups, enabled)]


def create_server(config: CloudStorageConfig, client_factory: Optional[ClientFactory] = None):
    if client_factory is None:
        client = GCSStorageClient(config)
        client_factory = lambda: client
    tools = enabled_tools(config, client_factory)
    resources = StorageResources(client_factory, config, [t.name for t in tools])
    return build_server(SERVER_NAME, tools, resources)


async def main():
    """Run the MCP server"""
    config = CloudStorageConfig.from_environment()
    require_environment(config, SERVER_NAME)
    server = create_server(config)
    logger.info(f"Starting {SERVER_NAME} v{__version__} for bucket {config.bucket}")
    await run_stdio(server, __version__)


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
