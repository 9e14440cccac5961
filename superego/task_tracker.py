"""
Task-tracker (bd) integration for phase detection.

When the tracker is the phase source, phase comes from live task state
instead of LLM conversation analysis: no task in progress means read-only
exploring, at least one task in progress means ready.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .session_schema import Phase

logger = logging.getLogger(__name__)

BD_TIMEOUT_SECONDS = 10


class TrackerError(Exception):
    """Task tracker invocation failed."""


@dataclass
class TrackerTask:
    id: str
    title: str


@dataclass
class TrackerEvaluation:
    """Phase implied by the tracker's live task state."""

    phase: Phase | None  # None when the tracker imposes no constraint
    current_task: TrackerTask | None = None
    feedback: str | None = None


class BdTracker:
    """Reads in-progress tasks from the ``bd`` command-line tracker."""

    def __init__(self, cwd: Path | None = None, executable: str = "bd"):
        self.cwd = cwd
        self.executable = executable

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                [self.executable, *args],
                capture_output=True,
                text=True,
                cwd=self.cwd,
                timeout=BD_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TrackerError(f"bd command failed: {e}") from e

    def is_initialized(self) -> bool:
        try:
            return self._run("stats").returncode == 0
        except TrackerError:
            return False

    def in_progress(self) -> list[TrackerTask]:
        """Tasks with status in_progress."""
        result = self._run("list", "--status", "in_progress", "--json")
        if result.returncode != 0:
            raise TrackerError(f"bd command failed: {result.stderr.strip()}")

        stdout = result.stdout.strip()
        if not stdout or stdout == "[]":
            return []
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise TrackerError(f"Failed to parse bd output: {e}: {stdout[:200]}") from e

        return [
            TrackerTask(id=str(item.get("id", "")), title=str(item.get("title", "")))
            for item in data
            if isinstance(item, dict)
        ]

    def evaluate(self) -> TrackerEvaluation:
        """Map live task state to a phase."""
        if not self.is_initialized():
            # No tracker = no constraints
            return TrackerEvaluation(phase=None)

        tasks = self.in_progress()
        if not tasks:
            return TrackerEvaluation(
                phase=Phase.EXPLORING,
                feedback=(
                    "No task in progress. Claim a task with "
                    "`bd update <id> --status in_progress` before making changes."
                ),
            )
        if len(tasks) > 1:
            task_list = ", ".join(f"{t.id}: {t.title}" for t in tasks)
            return TrackerEvaluation(
                phase=Phase.READY,
                current_task=tasks[0],
                feedback=f"Multiple tasks in progress ({task_list}). Consider focusing on one at a time.",
            )
        return TrackerEvaluation(phase=Phase.READY, current_task=tasks[0])


__all__ = [
    "BdTracker",
    "TrackerError",
    "TrackerEvaluation",
    "TrackerTask",
]
