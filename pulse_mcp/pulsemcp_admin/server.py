#!/usr/bin/env python3
"""
PulseMCP CMS Admin MCP Server

Newsletter drafting, server-queue curation, registry mirror management and
background job inspection for the PulseMCP admin API. Tools are exposed in
groups selected with TOOL_GROUPS; each group has a ``_readonly`` variant.
"""

import json
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import Field

from .. import __version__
from ..core.config import PulseMCPAdminConfig, require_environment
from ..core.errors import ToolError
from ..core.health import parse_health_check_timeout, run_health_check
from ..core.tool_groups import is_scoped_tool_enabled, parse_scoped_groups
from ..core.tooling import ToolInput, ToolSpec, build_server, json_text, run_main, run_stdio
from ..utils.logger import get_logger
from ..utils.truncation import exclude_fields, truncate_strings
from .client import HttpPulseMCPAdminClient, PulseMCPAdminClient, check_connection

SERVER_NAME = "pulsemcp-cms-admin-mcp-server"
BASE_GROUPS = ("newsletter", "server_queue", "unofficial_mirrors", "official_mirrors", "good_jobs")

logger = get_logger("pulsemcp-cms-admin-mcp-server")

ClientFactory = Callable[[], PulseMCPAdminClient]


# =============================================================================
# Input models
# =============================================================================

class GetPostsInput(ToolInput):
    search: Optional[str] = Field(None, description='Filter posts by title, content or author. Example: "MCP guide"')
    sort: Optional[str] = Field(None, description='Sort field: "created_at", "updated_at", "title" or "status"')
    direction: Optional[Literal["asc", "desc"]] = Field(None, description='Sort direction. Default "desc"')
    page: Optional[int] = Field(None, ge=1, description="Page number starting from 1")


class PostSlugInput(ToolInput):
    slug: str = Field(min_length=1, description='Post slug. Example: "getting-started-mcp-servers"')


class PostFields(ToolInput):
    title: Optional[str] = Field(None, description="Post title")
    body: Optional[str] = Field(None, description="Full HTML body of the post")
    category: Optional[Literal["newsletter", "other"]] = Field(None, description="Post category")
    image_url: Optional[str] = Field(None, description="Hero image URL")
    preview_image_url: Optional[str] = Field(None, description="Image shown in post listings")
    share_image: Optional[str] = Field(None, description="Open Graph image URL")
    title_tag: Optional[str] = Field(None, description="SEO title tag")
    short_title: Optional[str] = Field(None, description="Abbreviated title for navigation")
    short_description: Optional[str] = Field(None, description="One or two sentence summary")
    description_tag: Optional[str] = Field(None, description="SEO meta description, under 160 characters")
    last_updated: Optional[str] = Field(None, description="ISO 8601 date the content was last revised")
    table_of_contents: Optional[Any] = Field(None, description="Table of contents structure")
    featured_mcp_server_slugs: Optional[List[str]] = Field(
        None, description='MCP server slugs to feature. Example: ["github-mcp"]')
    featured_mcp_client_slugs: Optional[List[str]] = Field(
        None, description='MCP client slugs to feature. Example: ["claude-desktop"]')


class DraftPostInput(PostFields):
    title: str = Field(min_length=1, description='Post title. Example: "Getting Started with MCP Servers"')
    body: str = Field(description="Full HTML body of the post")
    slug: str = Field(min_length=1, description="Unique URL-friendly identifier")
    author_slug: str = Field(min_length=1, description="Author slug; use get_authors to find valid slugs")
    category: Literal["newsletter", "other"] = Field("newsletter", description="Post category")


class UpdatePostInput(PostFields):
    slug: str = Field(min_length=1, description="Slug of the post to update")
    new_slug: Optional[str] = Field(None, description="New slug for the post")
    author_slug: Optional[str] = Field(None, description="New author slug")


class UploadImageInput(ToolInput):
    post_slug: str = Field(min_length=1, description="Slug of the post the image belongs to")
    file_name: str = Field(min_length=1, description='Name to store the image under. Example: "hero.png"')
    file_path: str = Field(min_length=1, description="Local path of the image file to upload")


class GetAuthorsInput(ToolInput):
    search: Optional[str] = Field(None, description="Filter authors by name or slug")
    page: Optional[int] = Field(None, ge=1, description="Page number starting from 1")


class SearchImplementationsInput(ToolInput):
    query: str = Field(min_length=1, description="Search by name, description, provider or slug")
    type: Literal["server", "client", "all"] = Field("all", description='"server", "client" or "all"')
    status: Literal["draft", "live", "archived", "all"] = Field("live", description='Implementation status or "all"')
    limit: int = Field(30, ge=1, le=100, description="Maximum number of results (1-100)")
    offset: int = Field(0, ge=0, description="Number of results to skip")


class DraftImplementationsInput(ToolInput):
    page: Optional[int] = Field(None, ge=1, description="Page number starting from 1")
    search: Optional[str] = Field(None, description="Filter drafts by name or slug")


class SaveImplementationInput(ToolInput):
    id: int = Field(description="ID of the MCP implementation to update")
    name: Optional[str] = None
    short_description: Optional[str] = None
    description: Optional[str] = None
    type: Optional[Literal["server", "client"]] = None
    status: Optional[Literal["draft", "live", "archived"]] = None
    slug: Optional[str] = None
    url: Optional[str] = Field(None, description="Marketing URL")
    provider_name: Optional[str] = None
    classification: Optional[Literal["official", "community", "reference"]] = None
    implementation_language: Optional[str] = None
    mcp_server_id: Optional[int] = None
    mcp_client_id: Optional[int] = None
    internal_notes: Optional[str] = None


class MirrorListInput(ToolInput):
    q: Optional[str] = Field(None, description="Search mirrors by name")
    mcp_server_id: Optional[int] = Field(None, description="Only mirrors linked to this MCP server")
    limit: Optional[int] = Field(None, ge=1, le=100, description="Maximum number of results (1-100)")
    offset: Optional[int] = Field(None, ge=0, description="Number of results to skip")


class OfficialMirrorListInput(MirrorListInput):
    status: Optional[Literal["pending", "approved", "rejected"]] = Field(None, description="Queue status")
    processed: Optional[bool] = Field(None, description="Filter by processing state")


class MirrorIdInput(ToolInput):
    id: int = Field(description="Mirror ID")


class CreateMirrorInput(ToolInput):
    name: str = Field(min_length=1, description='Server name. Example: "io.github.owner/server"')
    version: str = Field(min_length=1, description='Server version. Example: "1.0.0"')
    jsonb_data: Union[Dict[str, Any], str] = Field(description="server.json content as an object or JSON string")
    mcp_server_id: Optional[int] = Field(None, description="MCP server to link the mirror to")


class UpdateMirrorInput(ToolInput):
    id: int = Field(description="ID of the unofficial mirror to update")
    name: Optional[str] = None
    version: Optional[str] = None
    jsonb_data: Optional[Union[Dict[str, Any], str]] = None
    mcp_server_id: Optional[int] = None


class GetOfficialMirrorInput(ToolInput):
    id: Optional[int] = Field(None, description="Official mirror ID")
    name: Optional[str] = Field(None, description="Look up the first mirror whose name matches")
    expand_fields: Optional[List[str]] = Field(
        None, description='Paths to return untruncated. Example: ["jsonb_data.packages[]"]')
    exclude_fields: Optional[List[str]] = Field(
        None, description='Paths to drop from the response. Example: ["jsonb_data.remotes"]')


class GoodJobsInput(ToolInput):
    queue_name: Optional[str] = Field(None, description="Filter by queue name")
    status: Optional[Literal["scheduled", "queued", "running", "succeeded", "failed", "discarded"]] = None
    job_class: Optional[str] = Field(None, description="Filter by job class name")
    after: Optional[str] = Field(None, description="Only jobs scheduled after this ISO 8601 time")
    before: Optional[str] = Field(None, description="Only jobs scheduled before this ISO 8601 time")
    limit: Optional[int] = Field(None, ge=1, le=100, description="Maximum number of jobs (1-100)")
    offset: Optional[int] = Field(None, ge=0, description="Number of jobs to skip")


# =============================================================================
# Formatting
# =============================================================================

def _date(value: Optional[str]) -> str:
    return value[:10] if value else "unknown"


def _listing_header(count: int, noun: str, pagination: Optional[Dict[str, Any]],
                    with_total: bool = False) -> str:
    header = f"Found {count} {noun}"
    if pagination:
        header += f" (page {pagination.get('current_page')} of {pagination.get('total_pages')}"
        if with_total:
            header += f", total: {pagination.get('total_count')}"
        header += ")"
    return header + ":\n\n"


def format_posts(response: Dict[str, Any]) -> str:
    posts = response.get("posts", [])
    content = _listing_header(len(posts), "newsletter posts", response.get("pagination"))
    for index, post in enumerate(posts, 1):
        content += f"{index}. **{post.get('title')}** ({post.get('slug')})\n"
        content += f"   Status: {post.get('status')} | Category: {post.get('category')}\n"
        if post.get("author"):
            content += f"   Author: {post['author'].get('name')}\n"
        content += f"   Created: {_date(post.get('created_at'))}\n"
        if post.get("short_description"):
            content += f"   {post['short_description']}\n"
        content += "\n"
    return content.strip()


def format_post(post: Dict[str, Any]) -> str:
    lines = [f"# {post.get('title')}", ""]
    for label, key in (("Slug", "slug"), ("Status", "status"), ("Category", "category"),
                       ("Short Title", "short_title"), ("Summary", "short_description"),
                       ("Title Tag", "title_tag"), ("Description Tag", "description_tag"),
                       ("Image URL", "image_url"), ("Preview Image URL", "preview_image_url"),
                       ("Share Image", "share_image"), ("Last Updated", "last_updated")):
        if post.get(key):
            lines.append(f"**{label}:** {post[key]}")
    if post.get("author"):
        lines.append(f"**Author:** {post['author'].get('name')}")
    for label, key in (("Featured MCP Server IDs", "featured_mcp_server_ids"),
                       ("Featured MCP Client IDs", "featured_mcp_client_ids")):
        if post.get(key):
            lines.append(f"**{label}:** {', '.join(str(i) for i in post[key])}")
    lines.append(f"**Created:** {_date(post.get('created_at'))}")
    if post.get("body"):
        lines += ["", "## Content", "", post["body"]]
    return "\n".join(lines)


def format_post_saved(post: Dict[str, Any], verb: str) -> str:
    content = f"Successfully {verb}!\n\n"
    content += f"**Title:** {post.get('title')}\n"
    content += f"**Slug:** {post.get('slug')}\n"
    content += f"**Status:** {post.get('status')}\n"
    content += f"**Category:** {post.get('category')}\n"
    if post.get("author"):
        content += f"**Author:** {post['author'].get('name')}\n"
    if post.get("short_description"):
        content += f"**Summary:** {post['short_description']}\n"
    return content.strip()


def format_authors(response: Dict[str, Any]) -> str:
    authors = response.get("authors", [])
    content = _listing_header(len(authors), "authors", response.get("pagination"))
    for index, author in enumerate(authors, 1):
        content += f"{index}. **{author.get('name')}** ({author.get('slug')})\n"
        content += f"   ID: {author.get('id')}\n"
        if author.get("bio"):
            content += f"   {author['bio']}\n"
        content += "\n"
    return content.strip()


def format_implementation(impl: Dict[str, Any], index: Optional[int] = None) -> str:
    prefix = f"{index}. " if index is not None else ""
    lines = [f"{prefix}**{impl.get('name')}** ({impl.get('type')})"]
    indent = "   " if index is not None else ""
    lines.append(f"{indent}Slug: {impl.get('slug')} | ID: {impl.get('id')}")
    status = f"{indent}Status: {impl.get('status')}"
    if impl.get("classification"):
        status += f" | Classification: {impl['classification']}"
    lines.append(status)
    for label, key in (("Provider", "provider_name"), ("Language", "implementation_language"),
                       ("GitHub Stars", "github_stars"), ("URL", "url"),
                       ("MCP Server ID", "mcp_server_id"), ("MCP Client ID", "mcp_client_id")):
        if impl.get(key) is not None:
            lines.append(f"{indent}{label}: {impl[key]}")
    if impl.get("short_description"):
        lines.append(f"{indent}{impl['short_description']}")
    return "\n".join(lines)


def format_mirror(mirror: Dict[str, Any], index: int, official: bool) -> str:
    lines = [f"{index}. **{mirror.get('name')}** (ID: {mirror.get('id')})",
             f"   Version: {mirror.get('version')}"]
    if official and mirror.get("official_version_id"):
        lines.append(f"   Official Version ID: {mirror['official_version_id']}")
    if mirror.get("mcp_server_slug"):
        lines.append(f"   Linked Server: {mirror['mcp_server_slug']} (ID: {mirror.get('mcp_server_id')})")
    if official:
        lines.append(f"   Processed: {'Yes' if mirror.get('processed') else 'No'}")
        if mirror.get("queue_status"):
            lines.append(f"   Queue Status: {mirror['queue_status']}")
        if mirror.get("processing_failure_reason"):
            lines.append(f"   Failure Reason: {mirror['processing_failure_reason']}")
    else:
        if mirror.get("proctor_results_count") is not None:
            lines.append(f"   Proctor Results: {mirror['proctor_results_count']}")
        if mirror.get("mcp_jsons_count") is not None:
            lines.append(f"   MCP JSONs: {mirror['mcp_jsons_count']}")
    if mirror.get("datetime_ingested"):
        lines.append(f"   Ingested: {_date(mirror['datetime_ingested'])}")
    return "\n".join(lines)


def format_mirrors(response: Dict[str, Any], noun: str, official: bool) -> str:
    mirrors = response.get("mirrors", [])
    content = _listing_header(len(mirrors), noun, response.get("pagination"), with_total=True)
    content += "\n\n".join(format_mirror(m, i, official) for i, m in enumerate(mirrors, 1))
    return content.strip()


def format_jobs(response: Dict[str, Any]) -> str:
    jobs = response.get("jobs", [])
    content = _listing_header(len(jobs), "jobs", response.get("pagination"), with_total=True)
    for index, job in enumerate(jobs, 1):
        content += f"{index}. **{job.get('job_class')}** (ID: {job.get('id')})\n"
        content += f"   Queue: {job.get('queue_name')} | Status: {job.get('status')}\n"
        if job.get("scheduled_at"):
            content += f"   Scheduled: {job['scheduled_at']}\n"
        if job.get("error"):
            content += f"   Error: {job['error']}\n"
        content += "\n"
    return content.strip()


def _decode_json_data(value: Union[Dict[str, Any], str, None]) -> Optional[Dict[str, Any]]:
    if value is None or isinstance(value, dict):
        return value
    try:
        decoded = json.loads(value)
    except ValueError:
        raise ToolError("Error: jsonb_data must be a JSON object or a valid JSON string") from None
    if not isinstance(decoded, dict):
        raise ToolError("Error: jsonb_data must be a JSON object or a valid JSON string")
    return decoded


# =============================================================================
# Tools
# =============================================================================

def create_tools(client_factory: ClientFactory) -> List[ToolSpec]:

    async def resolve_featured(client: PulseMCPAdminClient, fields: Dict[str, Any]) -> None:
        server_slugs = fields.pop("featured_mcp_server_slugs", None)
        client_slugs = fields.pop("featured_mcp_client_slugs", None)
        if server_slugs is not None:
            fields["featured_mcp_server_ids"] = [
                (await client.get_mcp_server_by_slug(slug))["id"] for slug in server_slugs]
        if client_slugs is not None:
            fields["featured_mcp_client_ids"] = [
                (await client.get_mcp_client_by_slug(slug))["id"] for slug in client_slugs]

    async def get_newsletter_posts(params: GetPostsInput) -> str:
        try:
            response = await client_factory().get_posts(params.model_dump(exclude_none=True))
        except Exception as e:
            raise ToolError(f"Error fetching newsletter posts: {e}") from e
        return format_posts(response)

    async def get_newsletter_post(params: PostSlugInput) -> str:
        try:
            post = await client_factory().get_post(params.slug)
        except Exception as e:
            raise ToolError(f"Error fetching newsletter post: {e}") from e
        return format_post(post)

    async def draft_newsletter_post(params: DraftPostInput) -> str:
        client = client_factory()
        fields = params.model_dump(exclude_none=True)
        author_slug = fields.pop("author_slug")
        try:
            author = await client.get_author_by_slug(author_slug)
            await resolve_featured(client, fields)
            fields.update(author_id=author["id"], status="draft")
            post = await client.create_post(fields)
        except Exception as e:
            raise ToolError(f"Error creating draft post: {e}") from e
        return format_post_saved(post, "created draft newsletter post") + \
            "\n\nThe draft has been saved and can be edited or published later."

    async def update_newsletter_post(params: UpdatePostInput) -> str:
        client = client_factory()
        fields = params.model_dump(exclude_none=True)
        slug = fields.pop("slug")
        if "new_slug" in fields:
            fields["slug"] = fields.pop("new_slug")
        if not fields:
            raise ToolError("Error: No changes provided. Please specify at least one field to update.")
        try:
            if "author_slug" in fields:
                fields["author_id"] = (await client.get_author_by_slug(fields.pop("author_slug")))["id"]
            await resolve_featured(client, fields)
            post = await client.update_post(slug, fields)
        except Exception as e:
            raise ToolError(f"Error updating post: {e}") from e
        updated = "\n".join(f"- {name}" for name in fields)
        return format_post_saved(post, "updated newsletter post") + f"\n\n**Fields updated:**\n{updated}"

    async def upload_image(params: UploadImageInput) -> str:
        try:
            with open(params.file_path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise ToolError(f"Error uploading image: Failed to read file at {params.file_path}: {e}") from e
        try:
            response = await client_factory().upload_image(params.post_slug, params.file_name, data)
        except Exception as e:
            raise ToolError(f"Error uploading image: {e}") from e
        return (
            "Successfully uploaded image!\n\n"
            f"**File Name:** {params.file_name}\n"
            f"**Post Slug:** {params.post_slug}\n"
            f"**URL:** {response.get('url')}\n\n"
            "Use this URL in the post's image_url, preview_image_url or share_image fields."
        )

    async def get_authors(params: GetAuthorsInput) -> str:
        try:
            response = await client_factory().get_authors(params.model_dump(exclude_none=True))
        except Exception as e:
            raise ToolError(f"Error fetching authors: {e}") from e
        return format_authors(response)

    async def search_mcp_implementations(params: SearchImplementationsInput) -> str:
        try:
            response = await client_factory().search_mcp_implementations(params.model_dump())
        except Exception as e:
            raise ToolError(f"Error searching MCP implementations: {e}") from e

        implementations = response.get("implementations", [])
        pagination = response.get("pagination") or {}
        content = f'Found {len(implementations)} MCP implementation(s) matching "{params.query}"'
        if pagination:
            content += f" (showing {len(implementations)} of {pagination.get('total_count')} total)"
        content += ":\n\n"
        content += "\n\n".join(format_implementation(impl, i) for i, impl in enumerate(implementations, 1))
        if pagination.get("has_next"):
            content += f"\n\n---\nMore results available. Use offset={params.offset + params.limit} to see the next page."
        return content.strip()

    async def get_draft_mcp_implementations(params: DraftImplementationsInput) -> str:
        try:
            response = await client_factory().get_draft_mcp_implementations(params.model_dump(exclude_none=True))
        except Exception as e:
            raise ToolError(f"Error fetching draft MCP implementations: {e}") from e
        implementations = response.get("implementations", [])
        content = _listing_header(len(implementations), "draft MCP implementations", response.get("pagination"))
        content += "\n\n".join(format_implementation(impl, i) for i, impl in enumerate(implementations, 1))
        return content.strip()

    async def save_mcp_implementation(params: SaveImplementationInput) -> str:
        fields = params.model_dump(exclude_none=True)
        implementation_id = fields.pop("id")
        if not fields:
            raise ToolError("Error: No changes provided. Please specify at least one field to update.")
        if "url" in fields:
            # The API stores the public link as marketing_url
            fields["marketing_url"] = fields.pop("url")
        try:
            implementation = await client_factory().save_mcp_implementation(implementation_id, fields)
        except Exception as e:
            raise ToolError(f"Error saving MCP implementation: {e}") from e
        updated = "\n".join(f"- {name}" for name in fields)
        return (
            "Successfully saved MCP implementation!\n\n"
            + format_implementation(implementation)
            + f"\n\n**Fields updated:**\n{updated}"
        )

    async def get_unofficial_mirrors(params: MirrorListInput) -> str:
        try:
            response = await client_factory().get_unofficial_mirrors(params.model_dump(exclude_none=True))
        except Exception as e:
            raise ToolError(f"Error fetching unofficial mirrors: {e}") from e
        return format_mirrors(response, "unofficial mirrors", official=False)

    async def get_unofficial_mirror(params: MirrorIdInput) -> str:
        try:
            mirror = await client_factory().get_unofficial_mirror(params.id)
        except Exception as e:
            raise ToolError(f"Error fetching unofficial mirror: {e}") from e
        return json_text(mirror)

    async def create_unofficial_mirror(params: CreateMirrorInput) -> str:
        fields = params.model_dump(exclude_none=True)
        fields["jsonb_data"] = _decode_json_data(params.jsonb_data)
        try:
            mirror = await client_factory().create_unofficial_mirror(fields)
        except Exception as e:
            raise ToolError(f"Error creating unofficial mirror: {e}") from e
        return f"Successfully created unofficial mirror!\n\n**ID:** {mirror.get('id')}\n" \
               f"**Name:** {mirror.get('name')}\n**Version:** {mirror.get('version')}"

    async def update_unofficial_mirror(params: UpdateMirrorInput) -> str:
        fields = params.model_dump(exclude_none=True)
        mirror_id = fields.pop("id")
        if not fields:
            raise ToolError("Error: No changes provided. Please specify at least one field to update.")
        if "jsonb_data" in fields:
            fields["jsonb_data"] = _decode_json_data(params.jsonb_data)
        try:
            mirror = await client_factory().update_unofficial_mirror(mirror_id, fields)
        except Exception as e:
            raise ToolError(f"Error updating unofficial mirror: {e}") from e
        updated = "\n".join(f"- {name}" for name in fields)
        return f"Successfully updated unofficial mirror {mirror.get('id')} ({mirror.get('name')})\n\n" \
               f"**Fields updated:**\n{updated}"

    async def delete_unofficial_mirror(params: MirrorIdInput) -> str:
        try:
            response = await client_factory().delete_unofficial_mirror(params.id)
        except Exception as e:
            raise ToolError(f"Error deleting unofficial mirror: {e}") from e
        return response.get("message") or f"Successfully deleted unofficial mirror {params.id}"

    async def get_official_mirrors(params: OfficialMirrorListInput) -> str:
        try:
            response = await client_factory().get_official_mirrors(params.model_dump(exclude_none=True))
        except Exception as e:
            raise ToolError(f"Error fetching official mirrors: {e}") from e
        return format_mirrors(response, "official mirrors", official=True)

    async def get_official_mirror(params: GetOfficialMirrorInput) -> str:
        if params.id is None and not params.name:
            raise ToolError("Error: Either id or name must be provided")
        client = client_factory()
        try:
            mirror_id = params.id
            if mirror_id is None:
                matches = (await client.get_official_mirrors({"q": params.name, "limit": 1})).get("mirrors", [])
                if not matches:
                    raise ToolError(f'No official mirror found with name matching "{params.name}"')
                mirror_id = matches[0]["id"]
            mirror = await client.get_official_mirror(mirror_id)
        except ToolError:
            raise
        except Exception as e:
            raise ToolError(f"Error fetching official mirror: {e}") from e
        mirror = exclude_fields(mirror, params.exclude_fields or [])
        return json_text(truncate_strings(mirror, params.expand_fields or ()))

    async def list_good_jobs(params: GoodJobsInput) -> str:
        try:
            response = await client_factory().list_good_jobs(params.model_dump(exclude_none=True))
        except Exception as e:
            raise ToolError(f"Error fetching good jobs: {e}") from e
        return format_jobs(response)

    return [
        ToolSpec("get_newsletter_posts",
                 "List newsletter posts with search, sorting and pagination. Status is draft for "
                 "unpublished posts and live for published ones.",
                 GetPostsInput, get_newsletter_posts, ("newsletter",)),
        ToolSpec("get_newsletter_post",
                 "Get one newsletter post by slug including its full HTML body and SEO metadata.",
                 PostSlugInput, get_newsletter_post, ("newsletter",)),
        ToolSpec("draft_newsletter_post",
                 "Create a new newsletter post. Posts are always created as drafts. author_slug and "
                 "the featured server and client slugs are resolved to ids before saving.",
                 DraftPostInput, draft_newsletter_post, ("newsletter",), is_write=True),
        ToolSpec("update_newsletter_post",
                 "Update fields of an existing newsletter post. Only the fields given are changed.",
                 UpdatePostInput, update_newsletter_post, ("newsletter",), is_write=True),
        ToolSpec("upload_image",
                 "Upload a local image file for a post and return its public URL.",
                 UploadImageInput, upload_image, ("newsletter",), is_write=True),
        ToolSpec("get_authors",
                 "List newsletter authors with their slugs, for use with draft_newsletter_post.",
                 GetAuthorsInput, get_authors, ("newsletter",)),
        ToolSpec("search_mcp_implementations",
                 "Search MCP servers and clients by name, description, provider or slug.",
                 SearchImplementationsInput, search_mcp_implementations, ("server_queue",)),
        ToolSpec("get_draft_mcp_implementations",
                 "List MCP implementations still in draft, waiting to be reviewed and published.",
                 DraftImplementationsInput, get_draft_mcp_implementations, ("server_queue",)),
        ToolSpec("save_mcp_implementation",
                 "Update an MCP implementation. Only the fields given are changed.",
                 SaveImplementationInput, save_mcp_implementation, ("server_queue",), is_write=True),
        ToolSpec("get_unofficial_mirrors",
                 "List community-submitted server.json mirrors with their linked servers.",
                 MirrorListInput, get_unofficial_mirrors, ("unofficial_mirrors",)),
        ToolSpec("get_unofficial_mirror",
                 "Get one unofficial mirror by ID including its server.json data.",
                 MirrorIdInput, get_unofficial_mirror, ("unofficial_mirrors",)),
        ToolSpec("create_unofficial_mirror",
                 "Create an unofficial mirror from server.json data.",
                 CreateMirrorInput, create_unofficial_mirror, ("unofficial_mirrors",), is_write=True),
        ToolSpec("update_unofficial_mirror",
                 "Update an unofficial mirror's name, version, data or linked MCP server.",
                 UpdateMirrorInput, update_unofficial_mirror, ("unofficial_mirrors",), is_write=True),
        ToolSpec("delete_unofficial_mirror",
                 "Delete an unofficial mirror.",
                 MirrorIdInput, delete_unofficial_mirror, ("unofficial_mirrors",), is_write=True),
        ToolSpec("get_official_mirrors",
                 "List mirrors ingested from the official MCP Registry with their processing state.",
                 OfficialMirrorListInput, get_official_mirrors, ("official_mirrors",)),
        ToolSpec("get_official_mirror",
                 "Get one official mirror by ID or name as JSON. Long values are truncated; pass "
                 "expand_fields to see them and exclude_fields to drop large sections.",
                 GetOfficialMirrorInput, get_official_mirror, ("official_mirrors",)),
        ToolSpec("list_good_jobs",
                 "List background jobs with queue, status and error details.",
                 GoodJobsInput, list_good_jobs, ("good_jobs",)),
    ]


def enabled_tools(tool_groups: Optional[str], client_factory: ClientFactory) -> List[ToolSpec]:
    enabled = parse_scoped_groups(tool_groups, BASE_GROUPS, logger=logger)
    return [
        tool for tool in create_tools(client_factory)
        if is_scoped_tool_enabled(tool.groups[0], tool.is_write, enabled)
    ]


def create_server(config: PulseMCPAdminConfig, client_factory: Optional[ClientFactory] = None):
    if client_factory is None:
        client = HttpPulseMCPAdminClient(config)
        client_factory = lambda: client
    tools = enabled_tools(config.tool_groups, client_factory)
    logger.info(f"Registering {len(tools)} PulseMCP admin tools")
    return build_server(SERVER_NAME, tools)


async def main():
    """Run the MCP server"""
    config = PulseMCPAdminConfig.from_environment()
    require_environment(config, SERVER_NAME)

    if config.health.skip:
        logger.info("Skipping health check")
    else:
        timeout = parse_health_check_timeout(config.health.timeout, logger)
        async with HttpPulseMCPAdminClient(config) as health_client:
            await run_health_check(lambda: check_connection(health_client), timeout,
                                   "the PulseMCP admin API", logger)

    client = HttpPulseMCPAdminClient(config)
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
