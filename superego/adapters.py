"""
Host payload adapters.

Each host sends hook input in its own shape. These models describe those
shapes and translate them into a single HookRequest, so nothing past this
module needs to know which host is calling.

Supported hosts:
- Claude Code: snake_case hook JSON (session_id, transcript_path, tool_name)
- OpenCode: plugin events ({"type": "session.idle", "properties": {...}})
- Codex: hook JSON with hyphenated keys (thread-id, turn-id)
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class Host(str, Enum):
    CLAUDE_CODE = "claude-code"
    OPENCODE = "opencode"
    CODEX = "codex"


class HookEvent(str, Enum):
    SESSION_START = "SessionStart"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    PRE_TOOL_USE = "PreToolUse"
    STOP = "Stop"
    PRE_COMPACT = "PreCompact"


# OpenCode plugin event types
OPENCODE_EVENTS = {
    "session.created": HookEvent.SESSION_START,
    "message.updated": HookEvent.USER_PROMPT_SUBMIT,
    "tool.execute.before": HookEvent.PRE_TOOL_USE,
    "session.idle": HookEvent.STOP,
    "session.compacted": HookEvent.PRE_COMPACT,
}

# Codex notification types
CODEX_EVENTS = {
    "session-start": HookEvent.SESSION_START,
    "user-prompt-submit": HookEvent.USER_PROMPT_SUBMIT,
    "pre-tool-use": HookEvent.PRE_TOOL_USE,
    "agent-turn-complete": HookEvent.STOP,
}


class HookInputError(ValueError):
    """Hook stdin could not be understood."""


class HookRequest(BaseModel):
    """Host-independent hook invocation."""

    host: Host
    event: HookEvent
    session_id: str | None = None
    transcript_path: str | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] = Field(default_factory=dict)
    cwd: str | None = None


class ClaudeCodePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hook_event_name: str | None = None
    session_id: str | None = None
    transcript_path: str | None = None
    cwd: str | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] = Field(default_factory=dict)

    def to_request(self, event: HookEvent | None = None) -> HookRequest:
        return HookRequest(
            host=Host.CLAUDE_CODE,
            event=event or HookEvent(self.hook_event_name),
            session_id=self.session_id,
            transcript_path=self.transcript_path,
            tool_name=self.tool_name,
            tool_input=self.tool_input,
            cwd=self.cwd,
        )


class OpenCodePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_request(self, event: HookEvent | None = None) -> HookRequest:
        props = self.properties
        session_id = props.get("sessionID") or props.get("id")
        args = props.get("args")
        return HookRequest(
            host=Host.OPENCODE,
            event=event or OPENCODE_EVENTS[self.type],
            session_id=session_id,
            transcript_path=props.get("transcriptPath"),
            tool_name=props.get("tool"),
            tool_input=args if isinstance(args, dict) else {},
            cwd=props.get("directory"),
        )


class CodexPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str
    thread_id: str | None = Field(default=None, alias="thread-id")
    transcript_path: str | None = Field(default=None, alias="transcript-path")
    cwd: str | None = None
    tool_name: str | None = Field(default=None, alias="tool-name")
    tool_input: dict[str, Any] = Field(default_factory=dict, alias="tool-input")

    def to_request(self, event: HookEvent | None = None) -> HookRequest:
        return HookRequest(
            host=Host.CODEX,
            event=event or CODEX_EVENTS[self.type],
            session_id=self.thread_id,
            transcript_path=self.transcript_path,
            tool_name=self.tool_name,
            tool_input=self.tool_input,
            cwd=self.cwd,
        )


def detect_host(data: dict[str, Any]) -> Host:
    """Guess the host from payload shape."""
    event_type = data.get("type")
    if isinstance(event_type, str) and "properties" in data:
        return Host.OPENCODE
    if isinstance(event_type, str) and ("thread-id" in data or event_type in CODEX_EVENTS):
        return Host.CODEX
    return Host.CLAUDE_CODE


def session_id_from_transcript(transcript_path: str | None) -> str | None:
    """Claude Code names transcripts {session_id}.jsonl."""
    if not transcript_path:
        return None
    stem = Path(transcript_path).stem
    return stem or None


def parse_hook_input(raw: str, event: HookEvent | str | None = None) -> HookRequest:
    """
    Translate raw hook stdin into a HookRequest.

    Args:
        raw: JSON text read from stdin (may be empty)
        event: Event name given on the command line; overrides the payload

    Raises:
        HookInputError: If the payload is not JSON or the event is unknown
    """
    forced = HookEvent(event) if isinstance(event, str) else event

    try:
        data = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as e:
        raise HookInputError(f"Hook input is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise HookInputError("Hook input must be a JSON object")

    host = detect_host(data)
    try:
        if host == Host.OPENCODE:
            request = OpenCodePayload.model_validate(data).to_request(forced)
        elif host == Host.CODEX:
            request = CodexPayload.model_validate(data).to_request(forced)
        else:
            payload = ClaudeCodePayload.model_validate(data)
            if forced is None and payload.hook_event_name is None:
                raise HookInputError("Hook event not given and not present in payload")
            request = payload.to_request(forced)
    except (ValidationError, KeyError, ValueError) as e:
        if isinstance(e, HookInputError):
            raise
        raise HookInputError(f"Unrecognized {host.value} hook input: {e}") from e

    if request.session_id is None:
        request = request.model_copy(update={"session_id": session_id_from_transcript(request.transcript_path)})
    logger.debug(f"Hook input: host={request.host.value} event={request.event.value} session={request.session_id}")
    return request


__all__ = [
    "ClaudeCodePayload",
    "CodexPayload",
    "Host",
    "HookEvent",
    "HookInputError",
    "HookRequest",
    "OpenCodePayload",
    "parse_hook_input",
    "session_id_from_transcript",
]
