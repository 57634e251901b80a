#!/usr/bin/env python3
"""
Gmail MCP Server

Lists, searches, reads, labels, drafts and sends email, and downloads
attachments. GMAIL_ENABLED_TOOLGROUPS limits the server to ``readonly``,
``readwrite`` (labels and drafts) or ``readwrite_external`` (sending).
"""

import asyncio
from typing import Callable, List, Literal, Optional, Tuple

from pydantic import Field, model_validator

from .. import __version__
from ..core.config import GmailConfig, require_environment
from ..core.errors import ToolError
from ..core.tool_groups import is_tool_enabled, parse_tool_groups
from ..core.tooling import ToolInput, ToolSpec, build_server, run_main, run_stdio
from ..utils.logger import get_logger
from .client import GmailClient, GoogleGmailClient
from .messages import (
    base64url_to_base64,
    decode_base64url,
    format_attachment_lines,
    format_email_summary,
    format_full_email,
    get_attachments,
    get_header,
    is_text_mime_type,
)

SERVER_NAME = "gmail-mcp-server"
TOOL_GROUPS = ("readonly", "readwrite", "readwrite_external")
READ_GROUPS = TOOL_GROUPS
WRITE_GROUPS = ("readwrite", "readwrite_external")
SEND_GROUPS = ("readwrite_external",)

MAX_ATTACHMENT_BYTES = 25 * 1024 * 1024
SUMMARY_HEADERS = ["Subject", "From", "Date"]
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

logger = get_logger("gmail-mcp-server")

ClientFactory = Callable[[], GmailClient]


class ListConversationsInput(ToolInput):
    count: int = Field(10, ge=1, le=100, description="Maximum number of conversations to return (1-100). Default 10")
    labels: str = Field(
        "INBOX",
        description="Comma-separated label IDs to filter by. Default INBOX. "
                    "Common labels: INBOX, SENT, DRAFTS, SPAM, TRASH, STARRED, IMPORTANT, UNREAD")
    sort_by: Literal["recent", "oldest"] = Field("recent", description="recent (newest first) or oldest")
    after_date: Optional[str] = Field(None, pattern=DATE_PATTERN, description="Only emails after this date, YYYY-MM-DD")
    before_date: Optional[str] = Field(None, pattern=DATE_PATTERN, description="Only emails before this date, YYYY-MM-DD")


class SearchConversationsInput(ToolInput):
    query: str = Field(
        min_length=1,
        description='Gmail search query, e.g. "from:alice@example.com is:unread" or "subject:invoice after:2024/01/01"')
    count: int = Field(10, ge=1, le=100, description="Maximum number of results (1-100). Default 10")
    page_token: Optional[str] = Field(None, description="Token from a previous search to fetch the next page")


class GetConversationInput(ToolInput):
    email_id: str = Field(min_length=1, description="Email ID from list_email_conversations or search_email_conversations")
    include_html: bool = Field(False, description="Also include the raw HTML body when available")


class ChangeConversationInput(ToolInput):
    email_id: str = Field(min_length=1, description="ID of the email to modify")
    status: Optional[Literal["read", "unread", "archived"]] = Field(
        None, description="read removes UNREAD, unread adds UNREAD, archived removes INBOX")
    is_starred: Optional[bool] = Field(None, description="Star or unstar the email")
    labels: Optional[str] = Field(None, description="Comma-separated label IDs to add")
    remove_labels: Optional[str] = Field(None, description="Comma-separated label IDs to remove")


class ReplyFields(ToolInput):
    cc: Optional[str] = Field(None, description="CC recipients, comma-separated")
    bcc: Optional[str] = Field(None, description="BCC recipients, comma-separated")
    thread_id: Optional[str] = Field(None, description="Thread ID when replying in an existing conversation")
    reply_to_email_id: Optional[str] = Field(
        None, description="ID of the email being replied to; used with thread_id to set In-Reply-To and References")


class DraftEmailInput(ReplyFields):
    to: str = Field(min_length=1, description="Recipient email address(es), comma-separated")
    subject: str = Field(min_length=1, description="Email subject")
    body: str = Field(min_length=1, description="Plain text email body")


class SendEmailInput(ReplyFields):
    to: Optional[str] = Field(None, description="Recipient email address(es). Required unless from_draft_id is given")
    subject: Optional[str] = Field(None, description="Email subject. Required unless from_draft_id is given")
    body: Optional[str] = Field(None, description="Plain text body. Required unless from_draft_id is given")
    from_draft_id: Optional[str] = Field(None, description="Send an existing draft instead of composing a new email")

    @model_validator(mode="after")
    def require_message_or_draft(self):
        if not self.from_draft_id and not (self.to and self.subject and self.body):
            raise ValueError("Either from_draft_id or to, subject and body must be provided")
        return self


class DownloadAttachmentsInput(ToolInput):
    email_id: str = Field(min_length=1, description="ID of the email with attachments")
    filename: Optional[str] = Field(None, description="Only download the attachment with this exact filename")


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


async def _fetch_summaries(client: GmailClient, messages):
    return await asyncio.gather(*[
        client.get_message(m["id"], format="metadata", metadata_headers=SUMMARY_HEADERS)
        for m in messages
    ])


async def _reply_headers(client: GmailClient, params: ReplyFields) -> Tuple[Optional[str], Optional[str]]:
    """In-Reply-To and References for a reply, or (None, None)"""
    if not (params.reply_to_email_id and params.thread_id):
        return None, None
    original = await client.get_message(
        params.reply_to_email_id, format="metadata", metadata_headers=["Message-ID", "References"])
    message_id = get_header(original, "Message-ID")
    if not message_id:
        return None, None
    previous = get_header(original, "References")
    return message_id, f"{previous} {message_id}" if previous else message_id


def create_tools(client_factory: ClientFactory) -> List[ToolSpec]:

    async def list_email_conversations(params: ListConversationsInput) -> str:
        label_ids = [label.upper() for label in _split(params.labels)]
        terms = []
        if params.after_date:
            terms.append(f"after:{params.after_date.replace('-', '/')}")
        if params.before_date:
            terms.append(f"before:{params.before_date.replace('-', '/')}")

        client = client_factory()
        try:
            response = await client.list_messages(
                q=" ".join(terms) or None, max_results=params.count, label_ids=label_ids)
            messages = response["messages"]
            if not messages:
                return f"No email conversations found with labels: {', '.join(label_ids)}"
            details = await _fetch_summaries(client, messages)
        except Exception as e:
            raise ToolError(f"Error listing email conversations: {e}") from e

        details = sorted(details, key=lambda m: int(m.get("internalDate") or 0),
                         reverse=params.sort_by == "recent")
        formatted = "\n\n---\n\n".join(format_email_summary(m) for m in details)
        return f"Found {len(details)} email conversation(s):\n\n{formatted}"

    async def search_email_conversations(params: SearchConversationsInput) -> str:
        client = client_factory()
        try:
            response = await client.list_messages(
                q=params.query, max_results=params.count, page_token=params.page_token)
            messages = response["messages"]
            if not messages:
                return f'No emails found matching query: "{params.query}"'
            details = await _fetch_summaries(client, messages)
        except Exception as e:
            raise ToolError(f"Error searching emails: {e}") from e

        formatted = "\n\n---\n\n".join(format_email_summary(m) for m in details)
        text = f'Found {len(details)} email(s) matching "{params.query}":\n\n{formatted}'
        if response.get("nextPageToken"):
            text += f"\n\n**Next page token:** {response['nextPageToken']}"
        return text

    async def get_email_conversation(params: GetConversationInput) -> str:
        try:
            message = await client_factory().get_message(params.email_id, format="full")
        except Exception as e:
            raise ToolError(f"Error retrieving email: {e}") from e
        return format_full_email(message, include_html=params.include_html)

    async def change_email_conversation(params: ChangeConversationInput) -> str:
        add: List[str] = []
        remove: List[str] = []
        if params.status == "read":
            remove.append("UNREAD")
        elif params.status == "unread":
            add.append("UNREAD")
        elif params.status == "archived":
            remove.append("INBOX")
        if params.is_starred is True:
            add.append("STARRED")
        elif params.is_starred is False:
            remove.append("STARRED")
        if params.labels:
            add.extend(_split(params.labels))
        if params.remove_labels:
            remove.extend(_split(params.remove_labels))

        if not add and not remove:
            return "No changes specified. Provide at least one of: status, labels, remove_labels, or is_starred."

        try:
            updated = await client_factory().modify_message(params.email_id, add or None, remove or None)
        except Exception as e:
            raise ToolError(f"Error modifying email: {e}") from e

        changes = []
        if add:
            changes.append(f"Added labels: {', '.join(add)}")
        if remove:
            changes.append(f"Removed labels: {', '.join(remove)}")
        current = ", ".join(updated.get("labelIds") or []) or "None"
        return f"Email {params.email_id} updated successfully.\n\n" + "\n".join(changes) + f"\n\nCurrent labels: {current}"

    async def draft_email(params: DraftEmailInput) -> str:
        client = client_factory()
        try:
            in_reply_to, references = await _reply_headers(client, params)
            draft = await client.create_draft(
                params.to, params.subject, params.body, params.cc, params.bcc,
                params.thread_id, in_reply_to, references)
        except Exception as e:
            raise ToolError(f"Error creating draft: {e}") from e

        text = f"Draft created successfully!\n\n**Draft ID:** {draft.get('id')}"
        if params.thread_id:
            text += f"\n**Thread ID:** {params.thread_id}\n\nThis draft is a reply in an existing conversation."
        text += f"\n\n**To:** {params.to}\n**Subject:** {params.subject}"
        if params.cc:
            text += f"\n**CC:** {params.cc}"
        if params.bcc:
            text += f"\n**BCC:** {params.bcc}"
        return text + (
            "\n\nUse send_email with from_draft_id parameter to send this draft, "
            "or find it in Gmail's Drafts folder."
        )

    async def send_email(params: SendEmailInput) -> str:
        client = client_factory()
        try:
            if params.from_draft_id:
                sent = await client.send_draft(params.from_draft_id)
                return (
                    f"Draft sent successfully!\n\n**Message ID:** {sent.get('id')}\n"
                    f"**Thread ID:** {sent.get('threadId')}\n\n"
                    "The draft has been sent and removed from Drafts."
                )
            in_reply_to, references = await _reply_headers(client, params)
            sent = await client.send_message(
                params.to, params.subject, params.body, params.cc, params.bcc,
                params.thread_id, in_reply_to, references)
        except Exception as e:
            raise ToolError(f"Error sending email: {e}") from e

        text = f"Email sent successfully!\n\n**Message ID:** {sent.get('id')}\n**Thread ID:** {sent.get('threadId')}"
        if params.thread_id:
            text += "\n\nThis email was sent as a reply in an existing conversation."
        text += f"\n\n**To:** {params.to}\n**Subject:** {params.subject}"
        if params.cc:
            text += f"\n**CC:** {params.cc}"
        return text

    async def download_email_attachments(params: DownloadAttachmentsInput) -> str:
        client = client_factory()
        try:
            message = await client.get_message(params.email_id, format="full")
        except Exception as e:
            raise ToolError(f"Error downloading attachment(s): {e}") from e

        attachments = get_attachments(message.get("payload", {}).get("parts"))
        if not attachments:
            return "No attachments found on this email."

        if params.filename:
            selected = [a for a in attachments if a["filename"] == params.filename]
            if not selected:
                available = ", ".join(a["filename"] for a in attachments)
                raise ToolError(f'Attachment "{params.filename}" not found. Available attachments: {available}')
            attachments = selected

        total = sum(a["size"] for a in attachments)
        if total > MAX_ATTACHMENT_BYTES:
            raise ToolError(
                f"Total attachment size ({total / (1024 * 1024):.1f} MB) exceeds the 25 MB limit. "
                "Use the filename parameter to download attachments individually."
            )

        try:
            payloads = await asyncio.gather(*[
                client.get_attachment(params.email_id, a["attachmentId"]) for a in attachments
            ])
        except Exception as e:
            raise ToolError(f"Error downloading attachment(s): {e}") from e

        sections = [f"# Downloaded Attachments ({len(attachments)})\n\n" + "\n".join(format_attachment_lines(attachments))]
        for attachment, payload in zip(attachments, payloads):
            data = payload.get("data", "")
            if is_text_mime_type(attachment["mimeType"]):
                content = decode_base64url(data).decode("utf-8", errors="replace")
                sections.append(f"---\n## {attachment['filename']}\n\n{content}")
            else:
                sections.append(
                    f"---\n## {attachment['filename']}\n\n"
                    f"**MIME Type:** {attachment['mimeType']}\n"
                    "**Encoding:** base64\n\n"
                    f"```\n{base64url_to_base64(data)}\n```"
                )
        return "\n\n".join(sections)

    return [
        ToolSpec("list_email_conversations",
                 "List email conversations with sender, subject, date and a snippet. Use "
                 "get_email_conversation with an ID to read the full message.",
                 ListConversationsInput, list_email_conversations, READ_GROUPS),
        ToolSpec("get_email_conversation",
                 "Retrieve the full content of an email: headers, body, labels and attachment list.",
                 GetConversationInput, get_email_conversation, READ_GROUPS),
        ToolSpec("search_email_conversations",
                 "Search email using Gmail query syntax (from:, to:, subject:, is:unread, has:attachment, "
                 "after:, before:). Supports pagination through page_token.",
                 SearchConversationsInput, search_email_conversations, READ_GROUPS),
        ToolSpec("change_email_conversation",
                 "Mark an email read, unread or archived, star it, or add and remove labels.",
                 ChangeConversationInput, change_email_conversation, WRITE_GROUPS, is_write=True),
        ToolSpec("draft_email",
                 "Create a draft email, optionally as a reply in an existing thread. The draft is "
                 "not sent.",
                 DraftEmailInput, draft_email, WRITE_GROUPS, is_write=True),
        ToolSpec("send_email",
                 "Send a new email or an existing draft. Sending cannot be undone.",
                 SendEmailInput, send_email, SEND_GROUPS, is_write=True),
        ToolSpec("download_email_attachments",
                 "Download attachments from an email. Text attachments are returned as text and "
                 "others as base64. The total size is limited to 25 MB.",
                 DownloadAttachmentsInput, download_email_attachments, READ_GROUPS),
    ]


def enabled_tools(config: GmailConfig, client_factory: ClientFactory) -> List[ToolSpec]:
    enabled = parse_tool_groups(config.enabled_toolgroups, TOOL_GROUPS,
                                env_name="GMAIL_ENABLED_TOOLGROUPS", logger=logger)
    return [tool for tool in create_tools(client_factory) if is_tool_enabled(tool.groups, enabled)]


def create_server(config: GmailConfig, client_factory: Optional[ClientFactory] = None):
    if client_factory is None:
        client = GoogleGmailClient(config)
        client_factory = lambda: client
    return build_server(SERVER_NAME, enabled_tools(config, client_factory))


async def main():
    """Run the MCP server"""
    config = GmailConfig.from_environment()
    require_environment(config, SERVER_NAME)
    server = create_server(config)
    logger.info(f"Starting {SERVER_NAME} v{__version__} with {config.auth_mode} authentication")
    await run_stdio(server, __version__)


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
