"""
Tool-group capability gating.

Servers expose their tools in named groups so an operator can restrict what an
agent may do through environment variables. Two styles exist:

* flat groups (``readonly,readwrite``) where each tool lists the groups it
  belongs to, and
* scoped groups (``newsletter,server_queue_readonly``) where every base group
  also has a ``_readonly`` variant that only admits non-write tools.

DynamoDB additionally supports per-tool allow and deny lists and a table
allow-list.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set

from .config import parse_csv


READONLY_SUFFIX = "_readonly"


def parse_tool_groups(value: Optional[str], all_groups: Sequence[str],
                      env_name: str = "ENABLED_TOOLGROUPS",
                      logger: Optional[logging.Logger] = None) -> List[str]:
    """
    Parse a flat tool-group list.

    Unset or blank enables every group. Unknown names are reported and
    ignored; if nothing valid remains every group is enabled again.
    """
    if not value or not value.strip():
        return list(all_groups)

    requested = [group.lower() for group in parse_csv(value)]
    valid: List[str] = []
    invalid: List[str] = []
    for group in requested:
        if group in all_groups:
            if group not in valid:
                valid.append(group)
        else:
            invalid.append(group)

    if invalid and logger:
        logger.warning(
            f"Invalid {env_name} value(s): {', '.join(invalid)}. "
            f"Valid groups are: {', '.join(all_groups)}"
        )

    if not valid:
        if logger:
            logger.warning(f"No valid tool groups in {env_name}, enabling all groups")
        return list(all_groups)

    return valid


def is_tool_enabled(tool_groups: Iterable[str], enabled_groups: Iterable[str]) -> bool:
    return bool(set(tool_groups) & set(enabled_groups))


def all_scoped_groups(base_groups: Sequence[str]) -> List[str]:
    groups: List[str] = []
    for base in base_groups:
        groups.append(base)
        groups.append(f"{base}{READONLY_SUFFIX}")
    return groups


def parse_scoped_groups(value: Optional[str], base_groups: Sequence[str],
                        env_name: str = "TOOL_GROUPS",
                        logger: Optional[logging.Logger] = None) -> List[str]:
    """
    Parse base/readonly scoped groups.

    Unset or blank enables every base group with full access. Unknown names
    are dropped with a warning, so a value with no valid entries exposes no
    tools at all.
    """
    if value is None or not value.strip():
        return list(base_groups)

    valid_names = set(all_scoped_groups(base_groups))
    enabled: List[str] = []
    for group in (g.lower() for g in parse_csv(value)):
        if group in valid_names:
            if group not in enabled:
                enabled.append(group)
        elif logger:
            logger.warning(f"Unknown tool group in {env_name}: {group}")
    return enabled


def is_scoped_tool_enabled(group: str, is_write: bool, enabled_groups: Iterable[str]) -> bool:
    """A base group admits all its tools; the readonly variant admits only reads"""
    enabled = set(enabled_groups)
    if group in enabled:
        return True
    return not is_write and f"{group}{READONLY_SUFFIX}" in enabled


@dataclass
class ToolFilter:
    """
    Per-tool selection with priority: explicit allow list, then deny list,
    then enabled groups.
    """
    enabled_groups: Optional[Set[str]] = None
    enabled_tools: Optional[Set[str]] = None
    disabled_tools: Set[str] = field(default_factory=set)

    @classmethod
    def from_values(cls, groups_value: Optional[str], tools_value: Optional[str],
                    disabled_value: Optional[str], all_groups: Sequence[str],
                    all_tools: Sequence[str],
                    logger: Optional[logging.Logger] = None) -> "ToolFilter":
        def _pick(value: Optional[str], allowed: Sequence[str], label: str) -> Optional[Set[str]]:
            if not value or not value.strip():
                return None
            picked = set()
            for name in (v.lower() for v in parse_csv(value)):
                if name in allowed:
                    picked.add(name)
                elif logger:
                    logger.warning(f"Ignoring unknown {label}: {name}")
            return picked or None

        return cls(
            enabled_groups=_pick(groups_value, all_groups, "tool group"),
            enabled_tools=_pick(tools_value, all_tools, "tool"),
            disabled_tools=_pick(disabled_value, all_tools, "tool") or set(),
        )

    def is_enabled(self, tool_name: str, tool_group: str) -> bool:
        if self.enabled_tools is not None:
            return tool_name in self.enabled_tools
        if tool_name in self.disabled_tools:
            return False
        if self.enabled_groups is not None:
            return tool_group in self.enabled_groups
        return True


def is_table_allowed(table_name: str, allowed_tables: Sequence[str]) -> bool:
    """An empty allow-list permits every table"""
    if not allowed_tables:
        return True
    return table_name in allowed_tables


def filter_allowed_tables(table_names: Iterable[str], allowed_tables: Sequence[str]) -> List[str]:
    return [name for name in table_names if is_table_allowed(name, allowed_tables)]
