"""
Session schema models for superego.

Pydantic models for the per-session state record (state.json), the
decision journal records and the feedback slot.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    """Coarse conversation phase gating write-type tools."""

    EXPLORING = "exploring"
    DISCUSSING = "discussing"
    READY = "ready"


class DecisionKind(str, Enum):
    """Kind of a journaled decision."""

    FEEDBACK_DELIVERED = "feedback_delivered"
    ALLOW = "allow"
    BLOCK = "block"
    OVERRIDE = "override"


class SessionState(BaseModel):
    """
    Durable per-session record stored in sessions/{session_id}/state.json.

    The byte cursor (last_offset) is authoritative for resuming transcript
    reads; last_evaluated is the timestamp of the last entry considered.
    """

    last_evaluated: datetime | None = None
    last_offset: int | None = None
    phase: Phase = Phase.EXPLORING
    phase_since: datetime | None = None
    approved_scope: str | None = None
    override: str | None = None
    override_expires_after_uses: int = 0
    revision: int = 0

    # Counters
    evaluations: int = 0
    blocks: int = 0
    overrides_used: int = 0

    def has_override(self) -> bool:
        """True when an override with remaining uses is present."""
        return self.override is not None and self.override_expires_after_uses > 0

    def allows_write(self) -> bool:
        """Writes are allowed in READY or with a valid override."""
        return self.phase == Phase.READY or self.has_override()

    def transition_to(self, phase: Phase, scope: str | None = None) -> "SessionState":
        """Return a copy moved to ``phase``; phase_since only changes on a real transition."""
        if phase == self.phase:
            return self.model_copy(update={"approved_scope": scope or self.approved_scope})
        return self.model_copy(
            update={"phase": phase, "phase_since": utc_now(), "approved_scope": scope}
        )

    def with_override(self, reason: str, uses: int = 1) -> "SessionState":
        """Return a copy carrying a use-limited override."""
        if uses < 1:
            raise ValueError("Override must allow at least one use")
        return self.model_copy(update={"override": reason, "override_expires_after_uses": uses})

    def consume_override(self) -> "SessionState":
        """Return a copy with one override use spent; cleared once exhausted."""
        remaining = self.override_expires_after_uses - 1
        if remaining <= 0:
            return self.model_copy(
                update={
                    "override": None,
                    "override_expires_after_uses": 0,
                    "overrides_used": self.overrides_used + 1,
                }
            )
        return self.model_copy(
            update={
                "override_expires_after_uses": remaining,
                "overrides_used": self.overrides_used + 1,
            }
        )


class DecisionRecord(BaseModel):
    """Immutable journal entry."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    session_id: str
    kind: DecisionKind
    context: str = ""
    trigger: str | None = None


class FeedbackItem(BaseModel):
    """Content of the single feedback slot."""

    text: str


__all__ = [
    "DecisionKind",
    "DecisionRecord",
    "FeedbackItem",
    "Phase",
    "SessionState",
    "utc_now",
]
