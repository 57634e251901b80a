"""
In-memory Gmail client for tests.
"""

import base64
import copy
from typing import Any, Dict, List, Optional

from .client import GmailClient
from .messages import get_header


def encode(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_message(message_id: str, subject: str, sender: str = "alice@example.com",
                 body: str = "Hello", labels: Optional[List[str]] = None,
                 internal_date: int = 1705312200000, thread_id: Optional[str] = None,
                 extra_headers: Optional[Dict[str, str]] = None,
                 parts: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """A Gmail API message resource in ``full`` format"""
    headers = {"Subject": subject, "From": sender, "To": "me@example.com",
               "Date": "Mon, 15 Jan 2024 10:30:00 +0000"}
    headers.update(extra_headers or {})
    payload: Dict[str, Any] = {"mimeType": "text/plain", "headers": [
        {"name": name, "value": value} for name, value in headers.items()
    ]}
    if parts is None:
        payload["body"] = {"data": encode(body), "size": len(body)}
    else:
        payload["mimeType"] = "multipart/mixed"
        payload["body"] = {"size": 0}
        payload["parts"] = parts
    return {
        "id": message_id,
        "threadId": thread_id or f"thread-{message_id}",
        "labelIds": list(labels or ["INBOX"]),
        "snippet": body[:100],
        "internalDate": str(internal_date),
        "payload": payload,
    }


class MockGmailClient(GmailClient):
    """
    Messages are matched by label and by plain search terms against the
    subject, sender and snippet. Gmail operators such as ``after:`` are
    ignored.
    """

    def __init__(self, messages: Optional[List[Dict[str, Any]]] = None,
                 attachments: Optional[Dict[str, str]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.messages = {m["id"]: copy.deepcopy(m) for m in messages or []}
        self.attachments = dict(attachments or {})
        self.drafts: Dict[str, Dict[str, Any]] = {}
        self.sent: List[Dict[str, Any]] = []
        self.errors = errors or {}
        self.calls: List[tuple] = []

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def _message(self, message_id: str) -> Dict[str, Any]:
        if message_id not in self.messages:
            raise LookupError(f"Message not found: {message_id}")
        return self.messages[message_id]

    def _matches(self, message: Dict[str, Any], q: Optional[str]) -> bool:
        terms = [t.lower() for t in (q or "").split() if ":" not in t]
        haystack = " ".join([
            get_header(message, "Subject") or "",
            get_header(message, "From") or "",
            message.get("snippet", ""),
        ]).lower()
        return all(term in haystack for term in terms)

    async def list_messages(self, q=None, max_results=None, page_token=None, label_ids=None):
        self._record("list_messages", q, max_results, page_token, label_ids)
        matches = [
            m for m in self.messages.values()
            if (not label_ids or set(label_ids) <= set(m.get("labelIds", [])))
            and self._matches(m, q)
        ]
        offset = int(page_token) if page_token else 0
        limit = max_results or 100
        page = matches[offset:offset + limit]
        next_token = str(offset + limit) if offset + limit < len(matches) else None
        return {
            "messages": [{"id": m["id"], "threadId": m["threadId"]} for m in page],
            "nextPageToken": next_token,
            "resultSizeEstimate": len(matches),
        }

    async def get_message(self, message_id, format="full", metadata_headers=None):
        self._record("get_message", message_id, format)
        return copy.deepcopy(self._message(message_id))

    async def modify_message(self, message_id, add_label_ids=None, remove_label_ids=None):
        self._record("modify_message", message_id, add_label_ids, remove_label_ids)
        message = self._message(message_id)
        labels = [label for label in message["labelIds"] if label not in (remove_label_ids or [])]
        for label in add_label_ids or []:
            if label not in labels:
                labels.append(label)
        message["labelIds"] = labels
        return {"id": message_id, "threadId": message["threadId"], "labelIds": list(labels)}

    async def create_draft(self, to, subject, body, cc=None, bcc=None, thread_id=None,
                           in_reply_to=None, references=None):
        self._record("create_draft", to, subject, thread_id, in_reply_to, references)
        draft_id = f"draft-{len(self.drafts) + 1}"
        self.drafts[draft_id] = {"to": to, "subject": subject, "body": body, "cc": cc, "bcc": bcc,
                                 "threadId": thread_id}
        return {"id": draft_id, "message": {"id": f"msg-{draft_id}", "threadId": thread_id}}

    async def send_draft(self, draft_id):
        self._record("send_draft", draft_id)
        if draft_id not in self.drafts:
            raise LookupError(f"Draft not found: {draft_id}")
        draft = self.drafts.pop(draft_id)
        sent = {"id": f"sent-{len(self.sent) + 1}", "threadId": draft["threadId"] or f"thread-{draft_id}"}
        self.sent.append(dict(draft, **sent))
        return sent

    async def send_message(self, to, subject, body, cc=None, bcc=None, thread_id=None,
                           in_reply_to=None, references=None):
        self._record("send_message", to, subject, thread_id, in_reply_to, references)
        sent = {"id": f"sent-{len(self.sent) + 1}", "threadId": thread_id or f"thread-sent-{len(self.sent) + 1}"}
        self.sent.append({"to": to, "subject": subject, "body": body, "cc": cc, "bcc": bcc, **sent})
        return sent

    async def get_attachment(self, message_id, attachment_id):
        self._record("get_attachment", message_id, attachment_id)
        if attachment_id not in self.attachments:
            raise LookupError(f"Attachment not found: {attachment_id}")
        data = self.attachments[attachment_id]
        return {"data": data, "size": len(data)}
