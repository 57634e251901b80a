"""
In-memory PulseMCP admin client backed by plain lists of records.
"""

import copy
from typing import Any, Dict, List, Optional

from ..core.errors import NotFoundError
from .client import PulseMCPAdminClient


def _page(items: List[Dict[str, Any]], key: str, page: int = 1, per_page: int = 30) -> Dict[str, Any]:
    total_pages = max(1, -(-len(items) // per_page))
    start = (page - 1) * per_page
    return {
        key: copy.deepcopy(items[start:start + per_page]),
        "pagination": {"current_page": page, "total_pages": total_pages, "total_count": len(items)},
    }


def _offset_page(items: List[Dict[str, Any]], key: str, params: Dict[str, Any]) -> Dict[str, Any]:
    limit = params.get("limit") or 30
    offset = params.get("offset") or 0
    return {
        key: copy.deepcopy(items[offset:offset + limit]),
        "pagination": {
            "current_page": offset // limit + 1,
            "total_pages": max(1, -(-len(items) // limit)),
            "total_count": len(items),
            "has_next": offset + limit < len(items),
        },
    }


def _matches(record: Dict[str, Any], query: Optional[str], *fields: str) -> bool:
    if not query:
        return True
    query = query.lower()
    return any(query in str(record.get(f) or "").lower() for f in fields)


class MockPulseMCPAdminClient(PulseMCPAdminClient):
    """Records every write in ``calls`` so tests can assert on the payloads"""

    def __init__(self, data: Optional[Dict[str, Any]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.data: Dict[str, List[Dict[str, Any]]] = {
            "posts": [],
            "authors": [],
            "mcp_servers": [],
            "mcp_clients": [],
            "implementations": [],
            "unofficial_mirrors": [],
            "official_mirrors": [],
            "good_jobs": [],
        }
        self.data.update(copy.deepcopy(data or {}))
        self.errors = errors or {}
        self.calls: List[tuple] = []

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def _find(self, kind: str, field: str, value: Any, label: str) -> Dict[str, Any]:
        for record in self.data[kind]:
            if str(record.get(field)) == str(value):
                return record
        raise NotFoundError(f"{label} not found: {value}")

    async def get_posts(self, params):
        self._record("get_posts", params)
        posts = [p for p in self.data["posts"] if _matches(p, params.get("search"), "title", "slug")]
        return _page(posts, "posts", params.get("page") or 1)

    async def get_post(self, slug):
        self._record("get_post", slug)
        return copy.deepcopy(self._find("posts", "slug", slug, "Post"))

    async def create_post(self, fields):
        self._record("create_post", fields)
        post = dict(fields, id=len(self.data["posts"]) + 1, created_at="2024-01-20T15:45:00Z")
        author = next((a for a in self.data["authors"] if a.get("id") == fields.get("author_id")), None)
        if author:
            post["author"] = {"id": author["id"], "name": author["name"]}
        self.data["posts"].append(post)
        return copy.deepcopy(post)

    async def update_post(self, slug, fields):
        self._record("update_post", slug, fields)
        post = self._find("posts", "slug", slug, "Post")
        post.update(fields)
        return copy.deepcopy(post)

    async def upload_image(self, post_slug, file_name, data):
        self._record("upload_image", post_slug, file_name, len(data))
        return {"url": f"https://storage.example.com/posts/{post_slug}/{file_name}"}

    async def get_authors(self, params):
        self._record("get_authors", params)
        authors = [a for a in self.data["authors"] if _matches(a, params.get("search"), "name", "slug")]
        return _page(authors, "authors", params.get("page") or 1)

    async def get_author_by_slug(self, slug):
        self._record("get_author_by_slug", slug)
        return copy.deepcopy(self._find("authors", "slug", slug, "Author"))

    async def get_mcp_server_by_slug(self, slug):
        self._record("get_mcp_server_by_slug", slug)
        return copy.deepcopy(self._find("mcp_servers", "slug", slug, "MCP server"))

    async def get_mcp_client_by_slug(self, slug):
        self._record("get_mcp_client_by_slug", slug)
        return copy.deepcopy(self._find("mcp_clients", "slug", slug, "MCP client"))

    async def search_mcp_implementations(self, params):
        self._record("search_mcp_implementations", params)
        items = [
            i for i in self.data["implementations"]
            if _matches(i, params.get("query"), "name", "slug", "short_description", "provider_name")
            and params.get("type") in (None, "all", i.get("type"))
            and params.get("status", "live") in ("all", i.get("status"))
        ]
        return _offset_page(items, "implementations", params)

    async def get_draft_mcp_implementations(self, params):
        self._record("get_draft_mcp_implementations", params)
        items = [i for i in self.data["implementations"] if i.get("status") == "draft"]
        return _page(items, "implementations", params.get("page") or 1)

    async def save_mcp_implementation(self, implementation_id, fields):
        self._record("save_mcp_implementation", implementation_id, fields)
        implementation = self._find("implementations", "id", implementation_id, "MCP implementation")
        implementation.update(fields)
        return copy.deepcopy(implementation)

    async def get_unofficial_mirrors(self, params):
        self._record("get_unofficial_mirrors", params)
        mirrors = [m for m in self.data["unofficial_mirrors"] if _matches(m, params.get("q"), "name")]
        return _offset_page(mirrors, "mirrors", params)

    async def get_unofficial_mirror(self, mirror_id):
        self._record("get_unofficial_mirror", mirror_id)
        return copy.deepcopy(self._find("unofficial_mirrors", "id", mirror_id, "Unofficial mirror"))

    async def create_unofficial_mirror(self, fields):
        self._record("create_unofficial_mirror", fields)
        mirror = dict(fields, id=len(self.data["unofficial_mirrors"]) + 1)
        self.data["unofficial_mirrors"].append(mirror)
        return copy.deepcopy(mirror)

    async def update_unofficial_mirror(self, mirror_id, fields):
        self._record("update_unofficial_mirror", mirror_id, fields)
        mirror = self._find("unofficial_mirrors", "id", mirror_id, "Unofficial mirror")
        mirror.update(fields)
        return copy.deepcopy(mirror)

    async def delete_unofficial_mirror(self, mirror_id):
        self._record("delete_unofficial_mirror", mirror_id)
        mirror = self._find("unofficial_mirrors", "id", mirror_id, "Unofficial mirror")
        self.data["unofficial_mirrors"].remove(mirror)
        return {"success": True, "message": f"Unofficial mirror {mirror_id} deleted"}

    async def get_official_mirrors(self, params):
        self._record("get_official_mirrors", params)
        mirrors = [m for m in self.data["official_mirrors"] if _matches(m, params.get("q"), "name")]
        return _offset_page(mirrors, "mirrors", params)

    async def get_official_mirror(self, mirror_id):
        self._record("get_official_mirror", mirror_id)
        return copy.deepcopy(self._find("official_mirrors", "id", mirror_id, "Official mirror"))

    async def list_good_jobs(self, params):
        self._record("list_good_jobs", params)
        jobs = [
            j for j in self.data["good_jobs"]
            if params.get("status") in (None, j.get("status"))
            and params.get("queue_name") in (None, j.get("queue_name"))
        ]
        return _offset_page(jobs, "jobs", params)
