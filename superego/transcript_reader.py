"""
Incremental reader for assistant transcript logs.

Reads the JSONL transcript files that Claude Code maintains at:
~/.claude/projects/{project_hash}/{session_id}.jsonl

Entries are yielded in file order starting after a cursor, so a hook
process can pick up exactly where the previous one stopped. The byte
offset of each line is part of the entry; the cursor is a byte offset
with a timestamp fallback for logs that were rewritten.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .paths import InvalidPathError, is_within

logger = logging.getLogger(__name__)

# Tool results can be huge; keep only a preview in the entry text
TOOL_RESULT_PREVIEW_CHARS = 500


class EntryKind(str, Enum):
    """Kind of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"
    SUMMARY = "summary"
    OTHER = "other"


@dataclass(frozen=True)
class TranscriptEntry:
    """A single logical turn read from the transcript."""

    kind: EntryKind
    text: str
    timestamp: datetime | None
    offset: int  # byte offset of the line start
    end_offset: int  # byte offset just past the line
    uuid: str | None = None
    tool_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class TranscriptCursor:
    """
    Resumption point for a transcript read.

    ``offset`` is authoritative. ``timestamp`` is only consulted when no
    offset is known or the log no longer matches it.
    """

    timestamp: datetime | None = None
    offset: int | None = None

    @classmethod
    def start(cls) -> "TranscriptCursor":
        return cls()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC3339 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def default_transcript_roots(project_dir: Path | None = None) -> list[Path]:
    """Directories transcripts may legitimately live in."""
    home = Path.home()
    roots = [
        home / ".claude" / "projects",
        home / ".codex" / "sessions",
        home / ".local" / "share" / "opencode",
    ]
    if project_dir is not None:
        roots.insert(0, Path(project_dir))
    return roots


class TranscriptReader:
    """
    Read transcript entries after a cursor.

    The transcript is a JSONL file where each line is a JSON object.
    Key entry types:
    - "user": User message or tool result
    - "assistant": Assistant response with possible tool calls
    - "summary": Compaction summary
    - anything else ("progress", "system", ...) is kept as OTHER

    Lines that are not JSON objects are skipped.
    """

    def __init__(self, transcript_path: str | Path, allowed_roots: Sequence[Path] | None = None):
        """
        Args:
            transcript_path: Path to the JSONL transcript
            allowed_roots: Directories the transcript must live under
                (default: the host transcript directories)

        Raises:
            InvalidPathError: If the path resolves outside every allowed root
        """
        self.transcript_path = Path(transcript_path).expanduser()
        roots = list(allowed_roots) if allowed_roots is not None else default_transcript_roots()
        if not any(is_within(self.transcript_path, root) for root in roots):
            raise InvalidPathError(f"Transcript outside allowed directories: {self.transcript_path}")

    def entries_since(self, cursor: TranscriptCursor | None = None) -> Iterator[TranscriptEntry]:
        """
        Lazily yield every entry positioned after ``cursor``.

        Calling again with the same cursor on an unchanged log yields the
        same entries. A trailing line without a newline is treated as still
        being written and is not yielded.
        """
        cursor = cursor or TranscriptCursor.start()
        if not self.transcript_path.exists():
            return

        with open(self.transcript_path, "rb") as f:
            start = self._resolve_start(f, cursor)
            f.seek(start)
            position = start
            for raw in f:
                line_start = position
                position += len(raw)
                if not raw.endswith(b"\n"):
                    break
                entry = self._parse_line(raw, line_start, position)
                if entry is not None:
                    yield entry

    def _resolve_start(self, f: Any, cursor: TranscriptCursor) -> int:
        """Byte position to start reading from."""
        size = self.transcript_path.stat().st_size

        if cursor.offset is not None and 0 <= cursor.offset <= size:
            if cursor.offset == 0:
                return 0
            # The cursor must sit on a line boundary of this file
            f.seek(cursor.offset - 1)
            if f.read(1) == b"\n":
                return cursor.offset
            logger.warning(
                f"Cursor offset {cursor.offset} is not a line boundary in {self.transcript_path}"
            )
        elif cursor.offset is not None:
            logger.warning(
                f"Transcript {self.transcript_path} shrank below cursor offset {cursor.offset}"
            )

        if cursor.timestamp is None:
            return 0
        return self._boundary_for_timestamp(f, cursor.timestamp)

    def _boundary_for_timestamp(self, f: Any, timestamp: datetime) -> int:
        """End of the last complete line whose timestamp is <= ``timestamp``."""
        f.seek(0)
        boundary = 0
        position = 0
        for raw in f:
            line_start = position
            position += len(raw)
            if not raw.endswith(b"\n"):
                break
            entry = self._parse_line(raw, line_start, position)
            if entry is not None and entry.timestamp is not None and entry.timestamp <= timestamp:
                boundary = position
        return boundary

    def _parse_line(self, raw: bytes, offset: int, end_offset: int) -> TranscriptEntry | None:
        """Parse one line; None for lines that are not transcript entries."""
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return None
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed transcript line at byte {offset}")
            return None
        if not isinstance(data, dict):
            return None

        entry_type = data.get("type", "")
        timestamp = parse_timestamp(data.get("timestamp"))
        uuid = data.get("uuid") if isinstance(data.get("uuid"), str) else None

        if entry_type == "user":
            text, tools = self._extract_message(data)
            kind = EntryKind.USER
        elif entry_type == "assistant":
            text, tools = self._extract_message(data)
            kind = EntryKind.ASSISTANT
        elif entry_type == "summary":
            text, tools = str(data.get("summary", "")), ()
            kind = EntryKind.SUMMARY
        else:
            text, tools = "", ()
            kind = EntryKind.OTHER

        return TranscriptEntry(
            kind=kind,
            text=text,
            timestamp=timestamp,
            offset=offset,
            end_offset=end_offset,
            uuid=uuid,
            tool_names=tools,
        )

    def _extract_message(self, data: dict[str, Any]) -> tuple[str, tuple[str, ...]]:
        """Extract text and tool names from a user/assistant message."""
        message = data.get("message", {})
        if not isinstance(message, dict):
            return "", ()
        content = message.get("content", "")

        if isinstance(content, str):
            return content, ()
        if not isinstance(content, list):
            return "", ()

        text_parts: list[str] = []
        tool_names: list[str] = []
        for block in content:
            if isinstance(block, str):
                text_parts.append(block)
                continue
            if not isinstance(block, dict):
                continue

            block_type = block.get("type", "")
            if block_type == "text":
                text_parts.append(block.get("text", ""))
            elif block_type == "tool_use":
                name = block.get("name", "unknown")
                tool_names.append(name)
                text_parts.append(f"[tool_use {name}] {json.dumps(block.get('input', {}))[:TOOL_RESULT_PREVIEW_CHARS]}")
            elif block_type == "tool_result":
                result = block.get("content", "")
                if isinstance(result, list):
                    result = self._extract_text_from_blocks(result)
                text_parts.append(f"[tool_result] {str(result)[:TOOL_RESULT_PREVIEW_CHARS]}")

        return "\n".join(p for p in text_parts if p), tuple(tool_names)

    def _extract_text_from_blocks(self, blocks: list[Any]) -> str:
        """Extract text from content blocks."""
        parts = []
        for block in blocks:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "\n".join(parts)


def format_entries(entries: Sequence[TranscriptEntry], max_chars: int = 60_000) -> str:
    """
    Render entries as a conversation excerpt for the evaluator.

    OTHER entries are omitted. When the excerpt exceeds ``max_chars`` the
    oldest turns are dropped first.
    """
    rendered = [
        f"{entry.kind.value.upper()}: {entry.text}"
        for entry in entries
        if entry.kind != EntryKind.OTHER and entry.text.strip()
    ]
    separator = "\n\n---\n\n"

    kept: list[str] = []
    total = 0
    for block in reversed(rendered):
        cost = len(block) + len(separator)
        if kept and total + cost > max_chars:
            break
        kept.insert(0, block[-max_chars:])
        total += cost

    text = separator.join(kept)
    if len(kept) < len(rendered):
        text = "[earlier messages truncated]" + separator + text
    return text


__all__ = [
    "EntryKind",
    "TranscriptCursor",
    "TranscriptEntry",
    "TranscriptReader",
    "default_transcript_roots",
    "format_entries",
    "parse_timestamp",
]
