"""
Gmail API client backed by googleapiclient.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from googleapiclient.discovery import build

from ..core.config import GmailConfig
from ..core.state import SingleSlotCache
from ..utils.logger import get_logger
from .auth import build_gmail_credentials
from .messages import build_raw_message

logger = get_logger("pulse_mcp.gmail")

USER_ID = "me"


class GmailClient(ABC):

    @abstractmethod
    async def list_messages(self, q: Optional[str] = None, max_results: Optional[int] = None,
                            page_token: Optional[str] = None,
                            label_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        """Return ``{messages: [{id, threadId}], nextPageToken, resultSizeEstimate}``"""

    @abstractmethod
    async def get_message(self, message_id: str, format: str = "full",
                          metadata_headers: Optional[List[str]] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def modify_message(self, message_id: str, add_label_ids: Optional[List[str]] = None,
                             remove_label_ids: Optional[List[str]] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def create_draft(self, to: str, subject: str, body: str, cc: Optional[str] = None,
                           bcc: Optional[str] = None, thread_id: Optional[str] = None,
                           in_reply_to: Optional[str] = None,
                           references: Optional[str] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def send_draft(self, draft_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def send_message(self, to: str, subject: str, body: str, cc: Optional[str] = None,
                           bcc: Optional[str] = None, thread_id: Optional[str] = None,
                           in_reply_to: Optional[str] = None,
                           references: Optional[str] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_attachment(self, message_id: str, attachment_id: str) -> Dict[str, Any]:
        """Return ``{data, size}`` with base64url data"""


def _message_body(raw: str, thread_id: Optional[str]) -> Dict[str, Any]:
    body: Dict[str, Any] = {"raw": raw}
    if thread_id:
        body["threadId"] = thread_id
    return body


class GoogleGmailClient(GmailClient):
    """The service is built once on first use and reused until the process exits"""

    def __init__(self, config: GmailConfig):
        self.config = config
        self._service = SingleSlotCache(self._build_service)

    async def _build_service(self):
        credentials = build_gmail_credentials(self.config)
        service = build("gmail", "v1", credentials=credentials, cache_discovery=False)
        logger.info(f"Gmail API service initialized ({self.config.auth_mode} auth)")
        return service

    async def _users(self):
        return (await self._service.get()).users()

    async def list_messages(self, q=None, max_results=None, page_token=None, label_ids=None):
        params = {"userId": USER_ID}
        if q:
            params["q"] = q
        if max_results:
            params["maxResults"] = max_results
        if page_token:
            params["pageToken"] = page_token
        if label_ids:
            params["labelIds"] = label_ids
        response = (await self._users()).messages().list(**params).execute()
        return {
            "messages": response.get("messages", []),
            "nextPageToken": response.get("nextPageToken"),
            "resultSizeEstimate": response.get("resultSizeEstimate"),
        }

    async def get_message(self, message_id, format="full", metadata_headers=None):
        params = {"userId": USER_ID, "id": message_id, "format": format}
        if metadata_headers:
            params["metadataHeaders"] = metadata_headers
        return (await self._users()).messages().get(**params).execute()

    async def modify_message(self, message_id, add_label_ids=None, remove_label_ids=None):
        body = {}
        if add_label_ids:
            body["addLabelIds"] = add_label_ids
        if remove_label_ids:
            body["removeLabelIds"] = remove_label_ids
        return (await self._users()).messages().modify(userId=USER_ID, id=message_id, body=body).execute()

    async def create_draft(self, to, subject, body, cc=None, bcc=None, thread_id=None,
                           in_reply_to=None, references=None):
        raw = build_raw_message(to, subject, body, cc, bcc, in_reply_to, references)
        request_body = {"message": _message_body(raw, thread_id)}
        return (await self._users()).drafts().create(userId=USER_ID, body=request_body).execute()

    async def send_draft(self, draft_id):
        return (await self._users()).drafts().send(userId=USER_ID, body={"id": draft_id}).execute()

    async def send_message(self, to, subject, body, cc=None, bcc=None, thread_id=None,
                           in_reply_to=None, references=None):
        raw = build_raw_message(to, subject, body, cc, bcc, in_reply_to, references)
        return (await self._users()).messages().send(
            userId=USER_ID, body=_message_body(raw, thread_id)).execute()

    async def get_attachment(self, message_id, attachment_id):
        return (await self._users()).messages().attachments().get(
            userId=USER_ID, messageId=message_id, id=attachment_id).execute()
