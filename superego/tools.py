"""
Tool classification for superego gating.

Read tools are always allowed (no phase check needed).
Write tools (edit, create, execute, delegate) require READY phase or an
override. Unknown tools are gated until explicitly classified.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# Tools that only read - always allowed. Names are compared lowercased so
# Claude Code ("Read") and OpenCode ("read") spellings both match.
READ_TOOLS = frozenset({
    "glob",
    "grep",
    "read",
    "ls",
    "list",
    "webfetch",
    "websearch",
    "taskoutput",
    "bashoutput",
    "exitplanmode",
    "askuserquestion",
})

# Tools that modify state - require READY phase
WRITE_TOOLS = frozenset({
    "edit",
    "multiedit",
    "write",
    "notebookedit",
    "bash",
    "killshell",
    "task",
    "todowrite",
    "patch",
    "apply_patch",
    "shell",
})


class ToolClass(str, Enum):
    READ = "read"
    WRITE = "write"
    UNKNOWN = "unknown"


def classify(tool_name: str) -> ToolClass:
    """Classify a tool by name."""
    name = (tool_name or "").strip().lower()
    if name in READ_TOOLS:
        return ToolClass.READ
    if name in WRITE_TOOLS:
        return ToolClass.WRITE
    return ToolClass.UNKNOWN


def requires_gating(tool_name: str) -> bool:
    """Unknown tools are gated like write tools."""
    return classify(tool_name) != ToolClass.READ


def change_size(tool_input: dict[str, Any] | None) -> int:
    """
    Approximate number of lines an edit-type call changes.

    Counts the larger side of Edit's old/new strings, Write's content, and
    the sum over MultiEdit's edits.
    """
    if not isinstance(tool_input, dict):
        return 0

    def lines(value: Any) -> int:
        return len(value.splitlines()) if isinstance(value, str) and value else 0

    if isinstance(tool_input.get("edits"), list):
        return sum(change_size(edit) for edit in tool_input["edits"] if isinstance(edit, dict))

    if "content" in tool_input:
        return lines(tool_input.get("content"))

    return max(lines(tool_input.get("old_string")), lines(tool_input.get("new_string")))


__all__ = [
    "READ_TOOLS",
    "WRITE_TOOLS",
    "ToolClass",
    "change_size",
    "classify",
    "requires_gating",
]
