"""
Superego prompt templates.

The evaluator system prompt normally comes from .superego/prompt.md;
DEFAULT_PROMPT is written there by `sg init` and used as the fallback text.
"""

from __future__ import annotations

from collections.abc import Sequence

from .session_schema import DecisionRecord, SessionState
from .transcript_reader import TranscriptEntry, format_entries

DEFAULT_PROMPT = """# Superego System Prompt

You are **Superego**, a metacognitive advisor watching an AI coding assistant work.
You see the part of the conversation that happened since your last review.

Check for:
- Writing code before the approach has been agreed with the user
- Local maxima: committing to the first idea without considering alternatives
- Scope creep beyond what the user asked for
- Ignored errors, skipped tests, or claims that are not backed by evidence

Respond in exactly this format:

DECISION: ALLOW
or
DECISION: BLOCK

PHASE: EXPLORING | DISCUSSING | READY   (optional)

[Your feedback: concrete, brief, addressed to the assistant]

Use BLOCK only when the assistant should stop and reconsider.
"""

SUPEREGO_CONTRACT = (
    "SUPEREGO ACTIVE: This project uses superego, a metacognitive advisor that monitors your work. "
    "When you receive SUPEREGO FEEDBACK, critically evaluate it: if you agree, incorporate it into "
    "your approach; if you disagree on non-trivial feedback, escalate to the user explaining both "
    "perspectives."
)

FEEDBACK_HEADER = "SUPEREGO FEEDBACK:"


def build_evaluation_message(
    entries: Sequence[TranscriptEntry],
    state: SessionState,
    recent_decisions: Sequence[DecisionRecord] = (),
    carryover: Sequence[TranscriptEntry] = (),
    trigger: str | None = None,
    max_chars: int = 60_000,
) -> str:
    """
    Build the user message for one evaluation.

    Args:
        entries: New transcript entries to judge
        state: Current session state (phase, scope)
        recent_decisions: Last few journal records for continuity
        carryover: Already-evaluated entries replayed as context
        trigger: What caused the evaluation (stop, precompact, tool name)
        max_chars: Budget for the conversation excerpt

    Returns:
        Message text
    """
    parts = [
        "## Current State",
        f"- Phase: {state.phase.value}",
    ]
    if state.approved_scope:
        parts.append(f"- Approved scope: {state.approved_scope}")
    if trigger:
        parts.append(f"- Trigger: {trigger}")

    if recent_decisions:
        parts.append("\n## Recent Decisions")
        for record in recent_decisions:
            summary = record.context.strip().splitlines()[0][:200] if record.context.strip() else ""
            parts.append(f"- {record.timestamp.isoformat()} {record.kind.value.upper()}: {summary}")

    if carryover:
        parts.append("\n## Earlier Context (already reviewed)")
        parts.append(format_entries(carryover, max_chars=max_chars // 4))

    parts.append("\n## Conversation to Evaluate")
    parts.append(format_entries(entries, max_chars=max_chars))

    return "\n".join(parts)


def build_pre_action_message(
    tool_name: str,
    tool_input_preview: str,
    state: SessionState,
    entries: Sequence[TranscriptEntry] = (),
    max_chars: int = 60_000,
) -> str:
    """Message for evaluating a large change before it is applied."""
    parts = [
        "## Pending Action",
        f"The assistant is about to run `{tool_name}` with a large change.",
        "```",
        tool_input_preview,
        "```",
        "",
        "## Current State",
        f"- Phase: {state.phase.value}",
    ]
    if state.approved_scope:
        parts.append(f"- Approved scope: {state.approved_scope}")
    if entries:
        parts.append("\n## Recent Conversation")
        parts.append(format_entries(entries, max_chars=max_chars))
    return "\n".join(parts)


__all__ = [
    "DEFAULT_PROMPT",
    "FEEDBACK_HEADER",
    "SUPEREGO_CONTRACT",
    "build_evaluation_message",
    "build_pre_action_message",
]
