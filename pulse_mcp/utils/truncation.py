"""
Shrinks large JSON responses before they reach the model.

Long strings and large deeply nested values are replaced by a marker telling
the caller which ``expand_fields`` path returns the full content, and
``exclude_fields`` drops whole subtrees.
"""

import copy
import json
import re
from typing import Any, Iterable, Sequence


STRING_MAX_LENGTH = 200
DEEP_VALUE_MAX_LENGTH = 500
DEPTH_THRESHOLD = 5

_INDEX_RE = re.compile(r"\[\d+\]")


def _wildcard(path: str) -> str:
    return _INDEX_RE.sub("[]", path)


def _truncation_message(path: str, deep: bool) -> str:
    prefix = "DEEP OBJECT TRUNCATED" if deep else "TRUNCATED"
    return f'[{prefix} - use expand_fields: ["{_wildcard(path)}"] to see full content]'


def path_depth(path: str) -> int:
    """Count key and index accesses in a path: ``servers[0].server`` has depth 3"""
    if not path:
        return 0

    depth = 0
    i = 0
    while i < len(path):
        if path[i] == ".":
            i += 1
            continue
        depth += 1
        if path[i] == "[":
            close = path.find("]", i)
            if close == -1:
                break
            i = close + 1
        else:
            while i < len(path) and path[i] not in ".[":
                i += 1
    return depth


def should_expand(path: str, expand_fields: Sequence[str]) -> bool:
    if not path or not expand_fields:
        return False

    normalized = _wildcard(path)
    for field in expand_fields:
        for candidate in (path, normalized):
            if candidate == field or candidate.startswith(field + ".") or candidate.startswith(field + "["):
                return True
    return False


def _child_path(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def truncate_strings(obj: Any, expand_fields: Sequence[str] = (), path: str = "") -> Any:
    """
    Recursively replace oversized values with expansion hints.

    Strings longer than 200 characters are truncated anywhere. At depth 5 or
    more, any container that serializes to more than 500 characters is
    replaced wholesale. Paths matching ``expand_fields`` (exactly, by prefix,
    or with array indices written as ``[]``) are left intact.
    """
    if obj is None:
        return obj

    expanded = should_expand(path, expand_fields)

    if not expanded:
        if path_depth(path) >= DEPTH_THRESHOLD and isinstance(obj, (dict, list)):
            if len(json.dumps(obj, default=str)) > DEEP_VALUE_MAX_LENGTH:
                return _truncation_message(path, deep=True)
        if isinstance(obj, str):
            if len(obj) > STRING_MAX_LENGTH:
                return _truncation_message(path, deep=False)
            return obj

    if isinstance(obj, list):
        return [truncate_strings(item, expand_fields, _child_path(path, i)) for i, item in enumerate(obj)]
    if isinstance(obj, dict):
        return {key: truncate_strings(value, expand_fields, _child_path(path, key)) for key, value in obj.items()}
    return obj


def _delete_path(obj: Any, parts: Sequence[str]) -> None:
    if not isinstance(obj, dict) or not parts:
        return

    head, rest = parts[0], parts[1:]
    if head.endswith("[]"):
        items = obj.get(head[:-2])
        if isinstance(items, list) and rest:
            for item in items:
                _delete_path(item, rest)
    elif rest:
        _delete_path(obj.get(head), rest)
    else:
        obj.pop(head, None)


def exclude_fields(obj: Any, fields: Iterable[str]) -> Any:
    """Return a copy of obj without the given dot paths; ``items[].meta`` applies to every element"""
    fields = [f for f in (fields or []) if f]
    if not fields:
        return obj

    cloned = copy.deepcopy(obj)
    for field in fields:
        _delete_path(cloned, field.split("."))
    return cloned
