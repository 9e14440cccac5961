"""
Session Store for superego.

Manages per-session state in .superego/sessions/{session_id}/state.json.

Every mutation is a compare-and-set performed under an advisory file lock
scoped to the session directory, and the record itself is replaced with
write-to-temp-then-rename, so concurrent hook processes never observe a
half-written record and never lose a transition.
"""

from __future__ import annotations

import json
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from filelock import FileLock, Timeout as FileLockTimeout
from pydantic import ValidationError

from .atomic import atomic_write_text
from .paths import SuperegoPaths
from .session_schema import SessionState

logger = logging.getLogger(__name__)

# Retry policy for read-modify-write under contention
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LOCK_TIMEOUT = 2.0  # seconds, per attempt
BACKOFF_BASE = 0.02  # seconds
BACKOFF_CAP = 0.25  # seconds


@dataclass
class StateUpdate:
    """Outcome of a read-modify-write-retry loop."""

    state: SessionState
    committed: bool
    attempts: int


class SessionStore:
    """
    Durable per-session state with atomic compare-and-set.

    Readers take no lock: the record is only ever replaced atomically.
    Writers hold the session's state.lock for one brief read-compare-write.
    """

    def __init__(
        self,
        paths: SuperegoPaths,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.paths = paths
        self.lock_timeout = lock_timeout
        self.max_attempts = max_attempts

    def read(self, session_id: str) -> SessionState:
        """
        Load session state (default state if missing or corrupt).

        Raises:
            InvalidPathError: If the session id is not a valid directory name
        """
        return self._load(self.paths.state_file(session_id))

    def _load(self, state_file: Path) -> SessionState:
        if not state_file.exists():
            return SessionState()
        try:
            return SessionState.model_validate_json(state_file.read_text(encoding="utf-8"))
        except (ValidationError, ValueError, OSError) as e:
            logger.warning(f"Corrupt session state {state_file}, using defaults: {e}")
            return SessionState()

    def compare_and_set(
        self,
        session_id: str,
        expected_prior: SessionState,
        new_state: SessionState,
    ) -> bool:
        """
        Persist ``new_state`` only if the on-disk state equals ``expected_prior``.

        The stored revision becomes ``expected_prior.revision + 1``.

        Returns:
            True if written, False on mismatch or lock timeout (nothing written)
        """
        session_dir = self.paths.session_dir(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        state_file = self.paths.state_file(session_id)

        lock = FileLock(str(self.paths.state_lock(session_id)), timeout=self.lock_timeout)
        try:
            with lock:
                current = self._load(state_file)
                if current != expected_prior:
                    return False
                committed = new_state.model_copy(update={"revision": expected_prior.revision + 1})
                atomic_write_text(state_file, committed.model_dump_json(indent=2), prefix="state_")
                return True
        except FileLockTimeout:
            logger.warning(f"Timed out acquiring state lock for session {session_id}")
            return False

    def update(
        self,
        session_id: str,
        mutate: Callable[[SessionState], SessionState | None],
    ) -> StateUpdate:
        """
        Read-modify-write with bounded retries.

        Args:
            session_id: Session to update
            mutate: Receives the current state, returns the new state or
                None when no change is needed

        Returns:
            StateUpdate; on exhausted retries ``committed`` is False and
            ``state`` is the last successfully read state
        """
        current = self.read(session_id)
        for attempt in range(1, self.max_attempts + 1):
            proposed = mutate(current.model_copy())
            if proposed is None:
                return StateUpdate(state=current, committed=True, attempts=attempt)

            if self.compare_and_set(session_id, current, proposed):
                stored = proposed.model_copy(update={"revision": current.revision + 1})
                return StateUpdate(state=stored, committed=True, attempts=attempt)

            if attempt < self.max_attempts:
                time.sleep(self._backoff(attempt))
            current = self.read(session_id)

        logger.warning(
            f"State update for session {session_id} gave up after {self.max_attempts} attempts; "
            "continuing with last read state"
        )
        return StateUpdate(state=current, committed=False, attempts=self.max_attempts)

    @staticmethod
    def _backoff(attempt: int) -> float:
        """Jittered exponential backoff."""
        ceiling = min(BACKOFF_CAP, BACKOFF_BASE * (2 ** (attempt - 1)))
        return random.uniform(ceiling / 2, ceiling)

    def reset(self, session_id: str) -> bool:
        """
        Delete a session's state record (explicit recovery).

        Returns:
            True if a record was removed; False if none existed or the
            lock could not be acquired
        """
        state_file = self.paths.state_file(session_id)
        if not state_file.exists():
            return False
        lock = FileLock(str(self.paths.state_lock(session_id)), timeout=self.lock_timeout)
        try:
            with lock:
                try:
                    state_file.unlink()
                except FileNotFoundError:
                    return False
        except FileLockTimeout:
            logger.warning(f"Timed out acquiring state lock to reset session {session_id}")
            return False
        return True

    def list_sessions(self) -> list[str]:
        """List session ids that have a state record."""
        sessions_dir = self.paths.sessions_dir
        if not sessions_dir.exists():
            return []

        sessions = []
        for session_dir in sessions_dir.iterdir():
            if not session_dir.is_dir():
                continue
            if (session_dir / "state.json").exists():
                sessions.append(session_dir.name)
        return sorted(sessions)

    def snapshot(self, session_id: str) -> dict:
        """State as a JSON-compatible dict (for status output)."""
        return json.loads(self.read(session_id).model_dump_json())


__all__ = [
    "SessionStore",
    "StateUpdate",
]
