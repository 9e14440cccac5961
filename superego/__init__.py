"""Superego: metacognitive advisor for AI coding assistants.

Hook processes share state only through files under .superego/:

- Transcript reader: resumable, byte-offset cursor over host JSONL logs
- Session store: per-session phase state with compare-and-set commits
- Decision journal: append-only audit trail, per session and aggregate
- Feedback queue: single-slot mailbox with at-most-once delivery
- Phase engine: LLM or task-tracker driven phase, tool gating
"""

__version__ = "0.1.0"

# Persistence
from .paths import InvalidPathError, SuperegoPaths
from .session_schema import DecisionKind, DecisionRecord, FeedbackItem, Phase, SessionState
from .session_store import SessionStore, StateUpdate
from .decision_journal import DecisionJournal
from .feedback_queue import FeedbackQueue
from .transcript_reader import TranscriptCursor, TranscriptEntry, TranscriptReader

# Decisions
from .decision import Verdict, parse_decision
from .engine import EvaluationResult, GateDecision, PhaseEngine
from .llm_client import EvaluatorClient, LLMError, create_client

# Config & hooks
from .config import Settings, SuperegoConfig
from .hooks import HookOutput, run_hook

__all__ = [
    # Persistence
    "InvalidPathError",
    "SuperegoPaths",
    "DecisionKind",
    "DecisionRecord",
    "FeedbackItem",
    "Phase",
    "SessionState",
    "SessionStore",
    "StateUpdate",
    "DecisionJournal",
    "FeedbackQueue",
    "TranscriptCursor",
    "TranscriptEntry",
    "TranscriptReader",
    # Decisions
    "Verdict",
    "parse_decision",
    "EvaluationResult",
    "GateDecision",
    "PhaseEngine",
    "EvaluatorClient",
    "LLMError",
    "create_client",
    # Config & hooks
    "Settings",
    "SuperegoConfig",
    "HookOutput",
    "run_hook",
]
