"""
Tests for the Gmail tools, message helpers, credentials and OAuth setup CLI.
"""

import base64
import email

import pytest
from google.oauth2 import credentials as user_credentials

from pulse_mcp.core.config import GmailConfig
from pulse_mcp.core.errors import ConfigurationError, ToolError
from pulse_mcp.gmail.auth import SCOPES, build_gmail_credentials
from pulse_mcp.gmail.messages import build_raw_message, decode_base64url, get_body
from pulse_mcp.gmail.mocks import MockGmailClient, encode, make_message
from pulse_mcp.gmail.oauth_setup import client_config, environment_lines, parse_args
from pulse_mcp.gmail.server import create_tools, enabled_tools


ATTACHMENT_PARTS = [
    {"mimeType": "text/plain", "body": {"data": encode("See attached"), "size": 12}},
    {"mimeType": "text/csv", "filename": "report.csv", "body": {"attachmentId": "att-1", "size": 2048}},
    {"mimeType": "image/png", "filename": "chart.png", "body": {"attachmentId": "att-2", "size": 4096}},
]


def sample_messages():
    return [
        make_message("m1", "Quarterly report", body="Numbers attached", internal_date=1000,
                     parts=ATTACHMENT_PARTS),
        make_message("m2", "Lunch?", sender="bob@example.com", body="Are you free today", internal_date=3000,
                     extra_headers={"Message-ID": "<m2@example.com>", "References": "<m0@example.com>"}),
        make_message("m3", "Archived", labels=["SENT"], internal_date=2000),
    ]


class TestMessageHelpers:

    def test_html_fallback(self):
        message = make_message("h", "HTML", parts=[
            {"mimeType": "text/html", "body": {"data": encode("<p>Hi <b>there</b></p><style>p{}</style>")}},
        ])
        assert get_body(message) == "Hi there"

    def test_raw_message_headers(self):
        raw = build_raw_message("bob@example.com", "Re: Lunch", "Sure", cc="carol@example.com",
                                in_reply_to="<m2@example.com>", references="<m0@example.com> <m2@example.com>")
        parsed = email.message_from_bytes(decode_base64url(raw))
        assert parsed["To"] == "bob@example.com"
        assert parsed["Cc"] == "carol@example.com"
        assert parsed["In-Reply-To"] == "<m2@example.com>"
        assert parsed["References"] == "<m0@example.com> <m2@example.com>"
        assert parsed.get_payload().strip() == "Sure"


class TestCredentials:

    def test_access_token(self):
        creds = build_gmail_credentials(GmailConfig(access_token="ya29.token"))
        assert isinstance(creds, user_credentials.Credentials)
        assert creds.token == "ya29.token"

    def test_refresh_token(self):
        creds = build_gmail_credentials(GmailConfig(
            oauth_client_id="id", oauth_client_secret="secret", oauth_refresh_token="refresh"))
        assert creds.refresh_token == "refresh"
        assert creds.scopes == SCOPES

    def test_not_configured(self):
        with pytest.raises(ConfigurationError, match="Gmail authentication not configured"):
            build_gmail_credentials(GmailConfig())

    def test_partial_oauth_reports_missing(self):
        config = GmailConfig(oauth_client_id="id")
        assert config.missing_variables() == ["GMAIL_OAUTH_CLIENT_SECRET", "GMAIL_OAUTH_REFRESH_TOKEN"]


class TestOAuthSetup:

    def test_arguments_from_environment(self, clean_environment):
        clean_environment.setenv("GMAIL_OAUTH_CLIENT_ID", "env-id")
        clean_environment.setenv("GMAIL_OAUTH_CLIENT_SECRET", "env-secret")
        clean_environment.setenv("PORT", "4000")
        args = parse_args([])
        assert (args.client_id, args.client_secret, args.port) == ("env-id", "env-secret", 4000)

    def test_missing_credentials_exit(self, clean_environment):
        clean_environment.delenv("PORT", raising=False)
        with pytest.raises(SystemExit):
            parse_args([])

    def test_client_config_and_output(self):
        config = client_config("id", "secret", 3000)
        assert config["installed"]["redirect_uris"] == ["http://localhost:3000/"]
        assert environment_lines("id", "secret", "tok") == [
            "GMAIL_OAUTH_CLIENT_ID=id", "GMAIL_OAUTH_CLIENT_SECRET=secret", "GMAIL_OAUTH_REFRESH_TOKEN=tok"]


class TestReadTools:

    def setup_method(self):
        self.client = MockGmailClient(sample_messages(), attachments={
            "att-1": encode("a,b\n1,2"),
            "att-2": base64.urlsafe_b64encode(b"\x89PNG").decode("ascii"),
        })
        self.tools = {t.name: t for t in create_tools(lambda: self.client)}

    @pytest.mark.asyncio
    async def test_list_sorted_recent_first(self):
        text = await self.tools["list_email_conversations"].invoke({})
        assert text.startswith("Found 2 email conversation(s):")
        assert text.index("Lunch?") < text.index("Quarterly report")
        assert "\n\n---\n\n" in text

    @pytest.mark.asyncio
    async def test_list_oldest_with_dates(self):
        text = await self.tools["list_email_conversations"].invoke(
            {"sort_by": "oldest", "after_date": "2024-01-01", "before_date": "2024-02-01", "labels": "inbox"})
        assert text.index("Quarterly report") < text.index("Lunch?")
        assert self.client.calls[0] == ("list_messages", "after:2024/01/01 before:2024/02/01", 10, None, ["INBOX"])

    @pytest.mark.asyncio
    async def test_list_empty(self):
        text = await self.tools["list_email_conversations"].invoke({"labels": "STARRED"})
        assert text == "No email conversations found with labels: STARRED"

    @pytest.mark.asyncio
    async def test_list_rejects_bad_date(self):
        with pytest.raises(ToolError, match="Invalid arguments for list_email_conversations"):
            await self.tools["list_email_conversations"].invoke({"after_date": "01/02/2024"})

    @pytest.mark.asyncio
    async def test_search_with_next_page(self):
        text = await self.tools["search_email_conversations"].invoke({"query": "example.com", "count": 1})
        assert text.startswith('Found 1 email(s) matching "example.com":')
        assert "**Next page token:** 1" in text

    @pytest.mark.asyncio
    async def test_search_no_results(self):
        text = await self.tools["search_email_conversations"].invoke({"query": "nothing-matches"})
        assert text == 'No emails found matching query: "nothing-matches"'

    @pytest.mark.asyncio
    async def test_get_conversation(self):
        text = await self.tools["get_email_conversation"].invoke({"email_id": "m1"})
        assert text.startswith("# Email Details")
        assert "**Thread ID:** thread-m1" in text
        assert "## Body\n\nSee attached" in text
        assert "## Attachments (2)" in text
        assert "1. report.csv (text/csv, 2 KB)" in text

    @pytest.mark.asyncio
    async def test_get_conversation_html_missing(self):
        text = await self.tools["get_email_conversation"].invoke({"email_id": "m2", "include_html": True})
        assert "## HTML Body\n\n(No HTML content available)" in text

    @pytest.mark.asyncio
    async def test_get_unknown(self):
        with pytest.raises(ToolError, match="Error retrieving email: Message not found: nope"):
            await self.tools["get_email_conversation"].invoke({"email_id": "nope"})

    @pytest.mark.asyncio
    async def test_download_all(self):
        text = await self.tools["download_email_attachments"].invoke({"email_id": "m1"})
        assert text.startswith("# Downloaded Attachments (2)")
        assert "## report.csv\n\na,b\n1,2" in text
        assert "**Encoding:** base64" in text
        assert base64.b64encode(b"\x89PNG").decode("ascii") in text

    @pytest.mark.asyncio
    async def test_download_unknown_filename(self):
        with pytest.raises(ToolError, match='Attachment "x.pdf" not found. Available attachments: report.csv, chart.png'):
            await self.tools["download_email_attachments"].invoke({"email_id": "m1", "filename": "x.pdf"})

    @pytest.mark.asyncio
    async def test_download_size_limit(self):
        big = [{"mimeType": "application/zip", "filename": "big.zip",
                "body": {"attachmentId": "att-big", "size": 30 * 1024 * 1024}}]
        self.client.messages["big"] = make_message("big", "Big", parts=big)
        with pytest.raises(ToolError, match="exceeds the 25 MB limit"):
            await self.tools["download_email_attachments"].invoke({"email_id": "big"})

    @pytest.mark.asyncio
    async def test_download_without_attachments(self):
        text = await self.tools["download_email_attachments"].invoke({"email_id": "m2"})
        assert text == "No attachments found on this email."


class TestWriteTools:

    def setup_method(self):
        self.client = MockGmailClient(sample_messages())
        self.tools = {t.name: t for t in create_tools(lambda: self.client)}

    @pytest.mark.asyncio
    async def test_mark_read_and_star(self):
        self.client.messages["m2"]["labelIds"].append("UNREAD")
        text = await self.tools["change_email_conversation"].invoke(
            {"email_id": "m2", "status": "read", "is_starred": True, "labels": "Label_1"})
        assert "Added labels: STARRED, Label_1" in text
        assert "Removed labels: UNREAD" in text
        assert "Current labels: INBOX, STARRED, Label_1" in text

    @pytest.mark.asyncio
    async def test_archive(self):
        await self.tools["change_email_conversation"].invoke({"email_id": "m1", "status": "archived"})
        assert "INBOX" not in self.client.messages["m1"]["labelIds"]

    @pytest.mark.asyncio
    async def test_no_changes(self):
        text = await self.tools["change_email_conversation"].invoke({"email_id": "m1"})
        assert text == "No changes specified. Provide at least one of: status, labels, remove_labels, or is_starred."
        assert not any(call[0] == "modify_message" for call in self.client.calls)

    @pytest.mark.asyncio
    async def test_draft_reply_threading(self):
        text = await self.tools["draft_email"].invoke({
            "to": "bob@example.com", "subject": "Re: Lunch?", "body": "Sure",
            "thread_id": "thread-m2", "reply_to_email_id": "m2"})
        assert "**Draft ID:** draft-1" in text
        assert "This draft is a reply in an existing conversation." in text
        assert self.client.calls[-1] == (
            "create_draft", "bob@example.com", "Re: Lunch?", "thread-m2",
            "<m2@example.com>", "<m0@example.com> <m2@example.com>")

    @pytest.mark.asyncio
    async def test_send_from_draft(self):
        await self.tools["draft_email"].invoke({"to": "bob@example.com", "subject": "Hi", "body": "Hello"})
        text = await self.tools["send_email"].invoke({"from_draft_id": "draft-1"})
        assert text.startswith("Draft sent successfully!")
        assert "**Message ID:** sent-1" in text
        assert self.client.drafts == {}

    @pytest.mark.asyncio
    async def test_send_new_message(self):
        text = await self.tools["send_email"].invoke(
            {"to": "bob@example.com", "subject": "Hi", "body": "Hello", "cc": "carol@example.com"})
        assert "Email sent successfully!" in text
        assert "**CC:** carol@example.com" in text
        assert self.client.sent[0]["body"] == "Hello"

    @pytest.mark.asyncio
    async def test_send_requires_content(self):
        with pytest.raises(ToolError, match="Either from_draft_id or to, subject and body must be provided"):
            await self.tools["send_email"].invoke({"to": "bob@example.com"})


class TestGmailToolGroups:

    def _names(self, groups):
        return {t.name for t in enabled_tools(GmailConfig(enabled_toolgroups=groups), MockGmailClient)}

    def test_readonly(self):
        assert self._names("readonly") == {
            "list_email_conversations", "get_email_conversation",
            "search_email_conversations", "download_email_attachments"}

    def test_readwrite_excludes_send(self):
        names = self._names("readwrite")
        assert {"change_email_conversation", "draft_email"} <= names
        assert "send_email" not in names

    def test_external_includes_send(self):
        assert "send_email" in self._names("readwrite_external")

    def test_invalid_falls_back_to_all(self):
        assert len(self._names("nope")) == 7
