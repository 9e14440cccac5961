"""Single-slot feedback mailbox per session.

Evaluators write advisory text into .superego/sessions/{session_id}/feedback;
the next user-facing hook takes it. Taking claims the slot with an atomic
rename, so an item is delivered to at most one consumer.
"""

from __future__ import annotations

import logging
import os
import uuid

from .atomic import atomic_write_text
from .paths import SuperegoPaths
from .session_schema import FeedbackItem

logger = logging.getLogger(__name__)


class FeedbackQueue:
    """Pending feedback slot with at-most-once delivery."""

    def __init__(self, paths: SuperegoPaths):
        self.paths = paths

    def has_pending(self, session_id: str) -> bool:
        return self.paths.feedback_file(session_id).exists()

    def write(self, session_id: str, text: str) -> None:
        """Create or overwrite the slot (last write wins, never torn)."""
        atomic_write_text(self.paths.feedback_file(session_id), text, prefix=".feedback_")

    def peek(self, session_id: str) -> FeedbackItem | None:
        """Read pending feedback without consuming it."""
        try:
            text = self.paths.feedback_file(session_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return FeedbackItem(text=text)

    def peek_or_take(self, session_id: str) -> FeedbackItem | None:
        """
        Atomically read and clear the slot.

        The slot is first renamed to a private name; only one caller can win
        that rename, so concurrent takers get at most one item between them.

        Returns:
            The pending item, or None if the slot was empty
        """
        slot = self.paths.feedback_file(session_id)
        claimed = slot.with_name(f".feedback.{os.getpid()}.{uuid.uuid4().hex}.taking")
        try:
            os.rename(slot, claimed)
        except FileNotFoundError:
            return None

        try:
            text = claimed.read_text(encoding="utf-8")
        finally:
            try:
                claimed.unlink()
            except OSError as e:
                logger.warning(f"Could not remove claimed feedback file {claimed}: {e}")
        return FeedbackItem(text=text)

    def discard(self, session_id: str) -> bool:
        """Drop pending feedback without delivering it."""
        return self.peek_or_take(session_id) is not None


__all__ = ["FeedbackQueue"]
