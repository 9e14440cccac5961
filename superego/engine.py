"""
Phase/decision engine.

Consumes transcript entries (or the task tracker's live state) plus the
session state, decides a phase and an allow/block verdict, and drives the
session store, decision journal and feedback queue.

No lock is held across the LLM call: the call happens between an
unlocked read and a compare-and-set commit.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from .config import Settings
from .decision import Verdict, parse_decision
from .decision_journal import DecisionJournal
from .feedback_queue import FeedbackQueue
from .llm_client import EvaluatorClient, LLMError, create_client
from .prompts import DEFAULT_PROMPT, build_evaluation_message, build_pre_action_message
from .recursion_guard import should_bypass
from .session_schema import DecisionKind, DecisionRecord, Phase, SessionState
from .session_store import SessionStore
from .task_tracker import BdTracker, TrackerError
from .tools import change_size, requires_gating
from .transcript_reader import (
    TranscriptCursor,
    TranscriptEntry,
    TranscriptReader,
    default_transcript_roots,
)

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Outcome of one evaluation pass."""

    evaluated: bool
    state: SessionState | None = None
    verdict: Verdict | None = None
    entries: int = 0
    committed: bool = True
    transport_error: str | None = None
    skipped_reason: str | None = None


@dataclass
class GateDecision:
    """Outcome of a tool gate check."""

    allowed: bool
    reason: str
    phase: Phase | None = None
    via_override: bool = False


def cursor_for(state: SessionState) -> TranscriptCursor:
    return TranscriptCursor(timestamp=state.last_evaluated, offset=state.last_offset)


def deny_reason(phase: Phase) -> str:
    return f"Phase is {phase.value}. Confirm approach with the user before writing code."


class PhaseEngine:
    """
    The superego state machine.

    Phases: exploring -> discussing -> ready. Write-category tools are
    allowed only in ready, or through a use-limited override.
    """

    def __init__(
        self,
        settings: Settings,
        llm: EvaluatorClient | None = None,
        tracker: BdTracker | None = None,
        store: SessionStore | None = None,
        journal: DecisionJournal | None = None,
        feedback: FeedbackQueue | None = None,
        transcript_roots: list[Path] | None = None,
    ):
        self.settings = settings
        config = settings.config
        self.store = store or SessionStore(
            settings.paths,
            lock_timeout=config.lock_timeout_seconds,
            max_attempts=config.cas_max_attempts,
        )
        self.journal = journal or DecisionJournal(settings.paths)
        self.feedback = feedback or FeedbackQueue(settings.paths)
        self.tracker = tracker or BdTracker(cwd=settings.project_dir)
        self.transcript_roots = transcript_roots or default_transcript_roots(settings.project_dir)
        self._llm = llm

    @property
    def llm(self) -> EvaluatorClient:
        if self._llm is None:
            self._llm = create_client(self.settings.config, self.settings.paths)
        return self._llm

    @property
    def uses_tracker(self) -> bool:
        return self.settings.config.phase_source == "tracker"

    def _inactive_reason(self, transcript_path: str | Path | None = None) -> str | None:
        """Why the engine should do nothing, or None when active."""
        if should_bypass(self.settings.disabled, transcript_path):
            return "superego disabled"
        if not self.settings.initialized:
            return "superego not initialized"
        if self.settings.project_disabled:
            return "superego disabled for this project"
        return None

    def load_prompt(self) -> str | None:
        prompt_file = self.settings.paths.prompt_file
        if not prompt_file.exists():
            return None
        try:
            return prompt_file.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read prompt {prompt_file}: {e}")
            return None

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(
        self,
        session_id: str,
        transcript_path: str | Path,
        trigger: str = "stop",
    ) -> EvaluationResult:
        """
        Evaluate transcript entries since the session's cursor.

        The cursor advances to the last entry considered. On transport
        failure the verdict is BLOCK, the failure is journaled, and phase
        and cursor stay put so the entries are re-evaluated next time.
        """
        inactive = self._inactive_reason(transcript_path)
        if inactive:
            return EvaluationResult(evaluated=False, skipped_reason=inactive)

        prompt = None
        if not self.uses_tracker:
            prompt = self.load_prompt()
            if prompt is None:
                return EvaluationResult(evaluated=False, skipped_reason="no prompt.md")

        reader = TranscriptReader(transcript_path, self.transcript_roots)
        state = self.store.read(session_id)
        entries = list(reader.entries_since(cursor_for(state)))
        if not entries:
            return EvaluationResult(evaluated=False, state=state, skipped_reason="no new entries")

        if self.uses_tracker:
            new_phase, verdict = self._tracker_verdict()
        else:
            message = build_evaluation_message(
                entries,
                state,
                recent_decisions=self.journal.recent(session_id, self.settings.config.carryover_decision_count),
                carryover=self._carryover_entries(reader, state),
                trigger=trigger,
                max_chars=self.settings.config.max_context_chars,
            )
            try:
                raw = self.llm.complete(prompt or DEFAULT_PROMPT, message)
            except LLMError as e:
                return self._transport_failure(session_id, state, entries, trigger, e)
            verdict = parse_decision(raw)
            new_phase = verdict.next_phase()
            if not verdict.recognized:
                logger.warning(f"Unrecognized evaluator response for session {session_id}; defaulting to BLOCK")

        update = self.store.update(session_id, self._commit_evaluation(entries, new_phase, verdict))
        if not update.committed:
            logger.warning(f"Evaluation result for session {session_id} not persisted (contention)")

        context = verdict.feedback
        if not verdict.recognized:
            context = f"Unrecognized evaluator response, defaulted to BLOCK.\n{verdict.feedback}"
        self.journal.append(
            session_id,
            DecisionRecord(
                session_id=session_id,
                kind=DecisionKind.BLOCK if verdict.block else DecisionKind.ALLOW,
                context=context,
                trigger=trigger,
            ),
        )
        if verdict.block and verdict.feedback:
            self.feedback.write(session_id, verdict.feedback)

        logger.info(
            f"Session {session_id}: {verdict.label} after {len(entries)} entries, "
            f"phase={update.state.phase.value}"
        )
        return EvaluationResult(
            evaluated=True,
            state=update.state,
            verdict=verdict,
            entries=len(entries),
            committed=update.committed,
        )

    def _commit_evaluation(self, entries: list[TranscriptEntry], new_phase: Phase | None, verdict: Verdict):
        last = entries[-1]
        last_timestamp = next((e.timestamp for e in reversed(entries) if e.timestamp is not None), None)

        def mutate(current: SessionState) -> SessionState:
            fresher = current.last_offset is None or current.last_offset < last.end_offset
            # A concurrent evaluator already judged later entries; keep its phase
            updated = current.transition_to(new_phase) if fresher and new_phase is not None else current
            changes: dict[str, Any] = {
                "evaluations": current.evaluations + 1,
                "blocks": current.blocks + (1 if verdict.block else 0),
            }
            # Never move the cursor backwards past a concurrent evaluator
            if fresher:
                changes["last_offset"] = last.end_offset
                changes["last_evaluated"] = last_timestamp or current.last_evaluated
            return updated.model_copy(update=changes)

        return mutate

    def _tracker_verdict(self) -> tuple[Phase | None, Verdict]:
        try:
            evaluation = self.tracker.evaluate()
        except TrackerError as e:
            logger.warning(f"Task tracker unavailable, leaving phase unchanged: {e}")
            return None, Verdict(block=False, feedback=f"Task tracker unavailable: {e}")

        block = evaluation.phase == Phase.EXPLORING
        return evaluation.phase, Verdict(block=block, feedback=evaluation.feedback or "", phase=evaluation.phase)

    def _transport_failure(
        self,
        session_id: str,
        state: SessionState,
        entries: list[TranscriptEntry],
        trigger: str,
        error: LLMError,
    ) -> EvaluationResult:
        logger.warning(f"Evaluation failed for session {session_id}: {error}")
        context = f"Evaluation failed, defaulted to BLOCK: {error}"
        if error.raw_output:
            context += f"\nRaw output:\n{error.raw_output}"
        self.journal.append(
            session_id,
            DecisionRecord(session_id=session_id, kind=DecisionKind.BLOCK, context=context, trigger=trigger),
        )
        feedback = (
            f"Superego could not evaluate the latest work ({error}). "
            "Pause and confirm your approach with the user before continuing."
        )
        self.feedback.write(session_id, feedback)
        return EvaluationResult(
            evaluated=True,
            state=state,
            verdict=Verdict(block=True, feedback=feedback, recognized=False),
            entries=len(entries),
            committed=False,
            transport_error=str(error),
        )

    def _carryover_entries(self, reader: TranscriptReader, state: SessionState) -> list[TranscriptEntry]:
        """Already-evaluated entries from the last few minutes, for continuity."""
        window = self.settings.config.carryover_window_minutes
        if window <= 0 or state.last_offset is None or state.last_evaluated is None:
            return []

        since = state.last_evaluated - timedelta(minutes=window)
        carryover = []
        for entry in reader.entries_since(TranscriptCursor.start()):
            if entry.end_offset > state.last_offset:
                break
            if entry.timestamp is not None and entry.timestamp >= since:
                carryover.append(entry)
        return carryover

    # =========================================================================
    # Gating
    # =========================================================================

    def check(
        self,
        session_id: str,
        tool_name: str,
        tool_input: dict[str, Any] | None = None,
        transcript_path: str | Path | None = None,
    ) -> GateDecision:
        """
        Decide whether a tool call may proceed.

        Read tools always pass. Write tools pass in READY or by consuming
        one override use; otherwise they are denied with a reason naming
        the phase.
        """
        inactive = self._inactive_reason(transcript_path)
        if inactive:
            return GateDecision(allowed=True, reason=inactive)
        if not requires_gating(tool_name):
            return GateDecision(allowed=True, reason="read-only tool")

        if self.uses_tracker:
            self._refresh_phase_from_tracker(session_id)

        outcome = {"via_override": False}

        def consume(current: SessionState) -> SessionState | None:
            outcome["via_override"] = False
            if current.phase == Phase.READY or not current.has_override():
                return None
            outcome["via_override"] = True
            return current.consume_override()

        update = self.store.update(session_id, consume)
        state = update.state

        if outcome["via_override"]:
            if not update.committed:
                logger.warning(f"Override for session {session_id} used without recording consumption")
            reason = f"Override: {state.override or 'approved'}" if state.override else "Override used"
            self._journal(session_id, DecisionKind.OVERRIDE, f"{tool_name} allowed by override", tool_name)
            return GateDecision(allowed=True, reason=reason, phase=state.phase, via_override=True)

        if state.phase == Phase.READY:
            pre_action = self._pre_action_check(session_id, tool_name, tool_input, transcript_path, state)
            if pre_action is not None:
                return pre_action
            self._journal(session_id, DecisionKind.ALLOW, f"{tool_name} allowed in ready", tool_name)
            return GateDecision(allowed=True, reason="phase is ready", phase=state.phase)

        reason = deny_reason(state.phase)
        self._journal(session_id, DecisionKind.BLOCK, f"{tool_name} denied: {reason}", tool_name)
        return GateDecision(allowed=False, reason=reason, phase=state.phase)

    def _refresh_phase_from_tracker(self, session_id: str) -> None:
        try:
            evaluation = self.tracker.evaluate()
        except TrackerError as e:
            logger.warning(f"Task tracker unavailable, gating on stored phase: {e}")
            return
        if evaluation.phase is None:
            # No tracker = no constraints
            self.store.update(
                session_id,
                lambda s: None if s.phase == Phase.READY else s.transition_to(Phase.READY),
            )
            return
        self.store.update(
            session_id,
            lambda s: None if s.phase == evaluation.phase else s.transition_to(evaluation.phase),
        )

    def _pre_action_check(
        self,
        session_id: str,
        tool_name: str,
        tool_input: dict[str, Any] | None,
        transcript_path: str | Path | None,
        state: SessionState,
    ) -> GateDecision | None:
        """Evaluate a large change before it happens; None means no objection."""
        config = self.settings.config
        if config.mode != "always" or self.uses_tracker:
            return None
        if change_size(tool_input) <= config.change_threshold_lines:
            return None
        prompt = self.load_prompt()
        if prompt is None:
            return None

        entries: list[TranscriptEntry] = []
        if transcript_path:
            try:
                reader = TranscriptReader(transcript_path, self.transcript_roots)
                entries = list(reader.entries_since(cursor_for(state)))
            except ValueError as e:
                logger.warning(f"Ignoring transcript for pre-action check: {e}")

        preview = json.dumps(tool_input, indent=2)[:4000]
        message = build_pre_action_message(tool_name, preview, state, entries, config.max_context_chars)
        trigger = f"pre_tool_use:{tool_name}"
        try:
            verdict = parse_decision(self.llm.complete(prompt, message))
        except LLMError as e:
            logger.warning(f"Pre-action evaluation failed for session {session_id}: {e}")
            verdict = Verdict(block=True, feedback=f"Pre-action evaluation failed: {e}", recognized=False)

        if not verdict.block:
            return None

        self._journal(session_id, DecisionKind.BLOCK, verdict.feedback, trigger)
        return GateDecision(
            allowed=False,
            reason=f"Superego blocked this change: {verdict.feedback}",
            phase=state.phase,
        )

    # =========================================================================
    # Overrides and feedback
    # =========================================================================

    def grant_override(self, session_id: str, reason: str, uses: int = 1) -> GateDecision:
        """Allow the next ``uses`` blocked write actions."""
        inactive = self._inactive_reason()
        if inactive:
            return GateDecision(allowed=True, reason=inactive)

        update = self.store.update(session_id, lambda s: s.with_override(reason, uses))
        if not update.committed:
            return GateDecision(allowed=False, reason="Could not record override (state busy); try again")
        self._journal(session_id, DecisionKind.OVERRIDE, f"Override granted for {uses} use(s): {reason}", "grant")
        return GateDecision(allowed=True, reason=reason, phase=update.state.phase, via_override=True)

    def deliver_feedback(self, session_id: str, transcript_path: str | Path | None = None) -> str | None:
        """Take pending feedback for delivery to the assistant."""
        if self._inactive_reason(transcript_path):
            return None
        item = self.feedback.peek_or_take(session_id)
        if item is None:
            return None
        self._journal(session_id, DecisionKind.FEEDBACK_DELIVERED, item.text, "user_prompt_submit")
        return item.text

    def _journal(self, session_id: str, kind: DecisionKind, context: str, trigger: str | None) -> None:
        self.journal.append(
            session_id,
            DecisionRecord(session_id=session_id, kind=kind, context=context, trigger=trigger),
        )


__all__ = [
    "EvaluationResult",
    "GateDecision",
    "PhaseEngine",
    "cursor_for",
    "deny_reason",
]
