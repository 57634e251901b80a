"""
Helpers for turning API payloads into model-friendly values and text.
"""

import html
import re
from decimal import Decimal
from typing import Any


def convert_decimals(obj: Any) -> Any:
    """Convert Decimal objects to int/float for JSON serialization"""
    if isinstance(obj, Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        return float(obj)
    elif isinstance(obj, dict):
        return {key: convert_decimals(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_decimals(item) for item in obj]
    elif isinstance(obj, set):
        return [convert_decimals(item) for item in sorted(obj, key=str)]
    return obj


def prepare_item(obj: Any) -> Any:
    """Convert floats to Decimal for DynamoDB storage"""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, float):
        return Decimal(str(obj))
    elif isinstance(obj, dict):
        return {key: prepare_item(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [prepare_item(item) for item in obj]
    return obj


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if index == 0:
        return f"{int(value)} B"
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {units[index]}"


_BLOCK_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_BREAK_RE = re.compile(r"<br\s*/?>|</p>|</div>|</li>|</h[1-6]>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


def strip_html(markup: str) -> str:
    """Reduce an HTML body to readable plain text"""
    text = _BLOCK_RE.sub("", markup)
    text = _BREAK_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.split("\n")]
    text = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
