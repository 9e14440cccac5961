"""Unit tests for host payload adapters."""

import json

import pytest

from superego.adapters import Host, HookEvent, HookInputError, parse_hook_input


class TestClaudeCode:
    def test_pre_tool_use(self):
        raw = json.dumps(
            {
                "hook_event_name": "PreToolUse",
                "session_id": "abc",
                "transcript_path": "/home/u/.claude/projects/p/abc.jsonl",
                "cwd": "/work/p",
                "tool_name": "Edit",
                "tool_input": {"file_path": "a.py"},
            }
        )

        request = parse_hook_input(raw)

        assert request.host == Host.CLAUDE_CODE
        assert request.event == HookEvent.PRE_TOOL_USE
        assert request.session_id == "abc"
        assert request.tool_name == "Edit"
        assert request.tool_input == {"file_path": "a.py"}
        assert request.cwd == "/work/p"

    def test_event_from_command_line_wins(self):
        request = parse_hook_input(json.dumps({"session_id": "abc"}), "Stop")
        assert request.event == HookEvent.STOP

    def test_session_id_from_transcript_name(self):
        request = parse_hook_input(json.dumps({"transcript_path": "/t/xyz.jsonl"}), "Stop")
        assert request.session_id == "xyz"

    def test_missing_event(self):
        with pytest.raises(HookInputError):
            parse_hook_input(json.dumps({"session_id": "abc"}))


class TestOpenCode:
    def test_tool_execute_before(self):
        raw = json.dumps(
            {
                "type": "tool.execute.before",
                "properties": {"sessionID": "ses_1", "tool": "edit", "args": {"filePath": "a.ts"}, "directory": "/w"},
            }
        )

        request = parse_hook_input(raw)

        assert request.host == Host.OPENCODE
        assert request.event == HookEvent.PRE_TOOL_USE
        assert request.session_id == "ses_1"
        assert request.tool_name == "edit"
        assert request.cwd == "/w"

    def test_session_idle(self):
        request = parse_hook_input(json.dumps({"type": "session.idle", "properties": {"id": "ses_2"}}))
        assert request.event == HookEvent.STOP
        assert request.session_id == "ses_2"

    def test_unknown_event(self):
        with pytest.raises(HookInputError):
            parse_hook_input(json.dumps({"type": "file.watched", "properties": {}}))


class TestCodex:
    def test_turn_complete(self):
        raw = json.dumps({"type": "agent-turn-complete", "thread-id": "t-9", "cwd": "/w"})

        request = parse_hook_input(raw)

        assert request.host == Host.CODEX
        assert request.event == HookEvent.STOP
        assert request.session_id == "t-9"


class TestMalformed:
    @pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
    def test_rejected(self, raw):
        with pytest.raises(HookInputError):
            parse_hook_input(raw, "Stop")
