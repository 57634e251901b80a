"""
Helpers for Gmail message payloads: headers, bodies, attachments and
outgoing MIME messages.
"""

import base64
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from ..utils.formatting import strip_html

TEXT_ATTACHMENT_TYPES = {"application/json", "application/xml"}


def decode_base64url(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def base64url_to_base64(data: str) -> str:
    return base64.b64encode(decode_base64url(data)).decode("ascii")


def get_header(message: Dict[str, Any], name: str) -> Optional[str]:
    for header in message.get("payload", {}).get("headers", []):
        if header.get("name", "").lower() == name.lower():
            return header.get("value")
    return None


def _find_part(parts: Optional[List[Dict[str, Any]]], mime_type: str) -> Optional[str]:
    for part in parts or []:
        data = part.get("body", {}).get("data")
        if part.get("mimeType") == mime_type and data:
            return decode_base64url(data).decode("utf-8", errors="replace")
        nested = _find_part(part.get("parts"), mime_type)
        if nested:
            return nested
    return None


def get_body(message: Dict[str, Any]) -> str:
    """Plain text body, falling back to HTML reduced to text"""
    payload = message.get("payload", {})
    data = payload.get("body", {}).get("data")
    if data:
        text = decode_base64url(data).decode("utf-8", errors="replace")
        return strip_html(text) if payload.get("mimeType") == "text/html" else text

    plain = _find_part(payload.get("parts"), "text/plain")
    if plain:
        return plain
    html = _find_part(payload.get("parts"), "text/html")
    if html:
        return strip_html(html)
    return "(No body content available)"


def get_html_body(message: Dict[str, Any]) -> Optional[str]:
    payload = message.get("payload", {})
    data = payload.get("body", {}).get("data")
    if data and payload.get("mimeType") == "text/html":
        return decode_base64url(data).decode("utf-8", errors="replace")
    return _find_part(payload.get("parts"), "text/html")


def get_attachments(parts: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    attachments = []
    for part in parts or []:
        body = part.get("body", {})
        if part.get("filename") and body.get("attachmentId"):
            attachments.append({
                "filename": part["filename"],
                "mimeType": part.get("mimeType", "application/octet-stream"),
                "size": body.get("size", 0),
                "attachmentId": body["attachmentId"],
            })
        attachments.extend(get_attachments(part.get("parts")))
    return attachments


def is_text_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in TEXT_ATTACHMENT_TYPES


def build_raw_message(to: str, subject: str, body: str, cc: Optional[str] = None,
                      bcc: Optional[str] = None, in_reply_to: Optional[str] = None,
                      references: Optional[str] = None) -> str:
    """Build a plain-text MIME message and return it base64url encoded"""
    message = EmailMessage()
    message["To"] = to
    if cc:
        message["Cc"] = cc
    if bcc:
        message["Bcc"] = bcc
    message["Subject"] = subject
    if in_reply_to:
        message["In-Reply-To"] = in_reply_to
    if references:
        message["References"] = references
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


def format_email_summary(message: Dict[str, Any]) -> str:
    return "\n".join([
        f"**ID:** {message.get('id')}",
        f"**Thread:** {message.get('threadId')}",
        f"**From:** {get_header(message, 'From') or 'Unknown'}",
        f"**Subject:** {get_header(message, 'Subject') or '(No Subject)'}",
        f"**Date:** {get_header(message, 'Date') or 'Unknown date'}",
        f"**Snippet:** {message.get('snippet', '')}",
    ])


def _size_kb(size: int) -> int:
    return round(size / 1024)


def format_attachment_lines(attachments: List[Dict[str, Any]]) -> List[str]:
    return [
        f"{i}. {a['filename']} ({a['mimeType']}, {_size_kb(a['size'])} KB)"
        for i, a in enumerate(attachments, 1)
    ]


def format_full_email(message: Dict[str, Any], include_html: bool = False) -> str:
    lines = [
        "# Email Details",
        "",
        f"**ID:** {message.get('id')}",
        f"**Thread ID:** {message.get('threadId')}",
        "",
        "## Headers",
        f"**Subject:** {get_header(message, 'Subject') or '(No Subject)'}",
        f"**From:** {get_header(message, 'From') or 'Unknown'}",
        f"**To:** {get_header(message, 'To') or 'Unknown'}",
    ]
    cc = get_header(message, "Cc")
    if cc:
        lines.append(f"**Cc:** {cc}")
    lines += [
        f"**Date:** {get_header(message, 'Date') or 'Unknown date'}",
        f"**Labels:** {', '.join(message.get('labelIds') or []) or 'None'}",
        "",
        "## Body",
        "",
        get_body(message),
    ]
    output = "\n".join(lines)

    if include_html:
        html = get_html_body(message)
        if html:
            output += f"\n\n## HTML Body\n\n```html\n{html}\n```"
        else:
            output += "\n\n## HTML Body\n\n(No HTML content available)"

    attachments = get_attachments(message.get("payload", {}).get("parts"))
    if attachments:
        output += f"\n\n## Attachments ({len(attachments)})\n" + "\n".join(format_attachment_lines(attachments))
    return output
