"""
Unit tests for hook handlers.

Drives run_hook with host payloads the way `sg hook <Event>` does.
"""

import json

import pytest

from superego.config import Settings
from superego.decision_journal import DecisionJournal
from superego.engine import PhaseEngine
from superego.feedback_queue import FeedbackQueue
from superego.hooks import EXIT_OK, HookOutput, run_hook
from superego.prompts import FEEDBACK_HEADER

T1 = "2026-01-01T10:00:00Z"


@pytest.fixture
def environ(project_dir):
    return {"SUPEREGO_PROJECT_DIR": str(project_dir)}


@pytest.fixture
def hook(environ, project_dir, fake_llm):
    """Invoke a hook and return (parsed output, exit code)."""

    def invoke(event, payload, llm=None, env=None):
        def factory(settings):
            return PhaseEngine(settings, llm=llm or fake_llm, transcript_roots=[project_dir])

        output, code = run_hook(json.dumps(payload), event, env or environ, engine_factory=factory)
        return json.loads(output.to_json()), code

    return invoke


class TestHookOutput:
    def test_serializes_host_field_names(self):
        data = json.loads(HookOutput.permission("deny", "Phase is exploring.").to_json())

        assert data["continue"] is True
        assert data["hookSpecificOutput"] == {
            "hookEventName": "PreToolUse",
            "permissionDecision": "deny",
            "permissionDecisionReason": "Phase is exploring.",
        }


class TestSessionStart:
    def test_injects_contract(self, hook):
        data, code = hook("SessionStart", {"session_id": "s1"})

        assert code == EXIT_OK
        assert "SUPEREGO ACTIVE" in data["hookSpecificOutput"]["additionalContext"]


class TestUserPromptSubmit:
    def test_delivers_pending_feedback_once(self, hook, paths):
        FeedbackQueue(paths).write("s1", "Ask before adding dependencies.")

        data, _ = hook("UserPromptSubmit", {"session_id": "s1", "prompt": "continue"})
        again, _ = hook("UserPromptSubmit", {"session_id": "s1", "prompt": "continue"})

        context = data["hookSpecificOutput"]["additionalContext"]
        assert context.startswith(FEEDBACK_HEADER)
        assert "Ask before adding dependencies." in context
        assert "hookSpecificOutput" not in again


class TestPreToolUse:
    def test_denies_write_while_exploring(self, hook):
        data, code = hook("PreToolUse", {"session_id": "s1", "tool_name": "Edit", "tool_input": {}})

        assert code == EXIT_OK
        specific = data["hookSpecificOutput"]
        assert specific["permissionDecision"] == "deny"
        assert "exploring" in specific["permissionDecisionReason"]

    def test_allows_read(self, hook):
        data, _ = hook("PreToolUse", {"session_id": "s1", "tool_name": "Grep", "tool_input": {}})
        assert data["hookSpecificOutput"]["permissionDecision"] == "allow"

    def test_disabled_allows(self, hook, environ):
        env = dict(environ, SUPEREGO_DISABLED="1")
        data, _ = hook("PreToolUse", {"session_id": "s1", "tool_name": "Edit"}, env=env)
        assert data["hookSpecificOutput"]["permissionDecision"] == "allow"

    def test_not_initialized_allows(self, hook, tmp_path):
        env = {"SUPEREGO_PROJECT_DIR": str(tmp_path / "bare")}
        data, _ = hook("PreToolUse", {"session_id": "s1", "tool_name": "Edit"}, env=env)
        assert data["hookSpecificOutput"]["permissionDecision"] == "allow"

    def test_internal_error_does_not_block(self, hook):
        data, code = hook("PreToolUse", {"session_id": "../escape", "tool_name": "Edit"})

        assert code == EXIT_OK
        assert data["hookSpecificOutput"]["permissionDecision"] == "allow"


class TestStop:
    def test_evaluates_and_never_blocks(self, hook, make_llm, transcript, paths):
        transcript.append("user", "Refactor everything", T1)
        llm = make_llm("DECISION: BLOCK\n\nScope this down first.")

        data, code = hook(
            "Stop",
            {"session_id": "s1", "transcript_path": str(transcript.path)},
            llm=llm,
        )

        assert code == EXIT_OK
        assert data == {"continue": True}
        assert len(llm.calls) == 1
        assert paths.feedback_file("s1").exists()

    def test_pull_mode_skips_evaluation(self, hook, fake_llm, transcript, paths):
        paths.config_file.write_text(json.dumps({"mode": "pull"}))
        transcript.append("user", "hi", T1)

        hook("Stop", {"session_id": "s1", "transcript_path": str(transcript.path)})

        assert fake_llm.calls == []

    def test_precompact_trigger(self, hook, transcript):
        transcript.append("user", "hi", T1)
        _, code = hook("PreCompact", {"session_id": "s1", "transcript_path": str(transcript.path)})

        settings = Settings.from_environment({}, cwd=transcript.path.parent.parent)
        assert code == EXIT_OK
        assert DecisionJournal(settings.paths).read_all("s1")[0].trigger == "precompact"


class TestMalformedInput:
    def test_garbage_stdin_exits_ok(self, environ):
        output, code = run_hook("{{{", "PreToolUse", environ)
        assert code == EXIT_OK
        assert json.loads(output.to_json()) == {"continue": True}
