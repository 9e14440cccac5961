"""
Layout of the project-local .superego directory.

All persisted state lives under <project>/.superego/:

    prompt.md, config.json, .disabled, superego.log
    decisions/                      aggregate decision journal
    sessions/{session_id}/          state.json, state.lock, decisions/, feedback
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

SUPEREGO_DIRNAME = ".superego"


class InvalidPathError(ValueError):
    """A path or session id escapes the expected sandbox."""


def validate_session_id(session_id: str) -> str:
    """
    Check that a session id can be used as a single directory name.

    Raises:
        InvalidPathError: For empty ids, dot names and ids containing separators
    """
    if not session_id or session_id in (".", ".."):
        raise InvalidPathError(f"Invalid session id: {session_id!r}")
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if any(sep in session_id for sep in separators) or "\x00" in session_id:
        raise InvalidPathError(f"Invalid session id: {session_id!r}")
    return session_id


def is_within(path: Path, root: Path) -> bool:
    """True when ``path`` resolves inside ``root``."""
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class SuperegoPaths:
    """Resolved locations inside one project's .superego directory."""

    root: Path

    @classmethod
    def for_project(cls, project_dir: Path | str) -> "SuperegoPaths":
        return cls(Path(project_dir) / SUPEREGO_DIRNAME)

    @property
    def prompt_file(self) -> Path:
        return self.root / "prompt.md"

    @property
    def config_file(self) -> Path:
        return self.root / "config.json"

    @property
    def env_file(self) -> Path:
        return self.root / ".env"

    @property
    def disabled_marker(self) -> Path:
        return self.root / ".disabled"

    @property
    def log_file(self) -> Path:
        return self.root / "superego.log"

    @property
    def decisions_dir(self) -> Path:
        return self.root / "decisions"

    @property
    def sessions_dir(self) -> Path:
        return self.root / "sessions"

    def session_dir(self, session_id: str) -> Path:
        return self.sessions_dir / validate_session_id(session_id)

    def state_file(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "state.json"

    def state_lock(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "state.lock"

    def session_decisions_dir(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "decisions"

    def feedback_file(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "feedback"

    def is_initialized(self) -> bool:
        return self.root.is_dir()


__all__ = [
    "InvalidPathError",
    "SUPEREGO_DIRNAME",
    "SuperegoPaths",
    "is_within",
    "validate_session_id",
]
