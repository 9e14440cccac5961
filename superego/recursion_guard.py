"""
Recursion guard.

The evaluator runs an LLM sub-process that is itself an assistant session
with hooks. Those nested hooks must not evaluate again. The guard is a
flag read once at process entry and passed explicitly to every entry
point; the evaluator sets it in its sub-process environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from .paths import SUPEREGO_DIRNAME

DISABLE_ENV_VAR = "SUPEREGO_DISABLED"


def disabled_from_env(environ: Mapping[str, str] | None = None) -> bool:
    """Read the disable flag from an environment mapping."""
    environ = os.environ if environ is None else environ
    return environ.get(DISABLE_ENV_VAR, "").strip().lower() in ("1", "true", "yes")


def is_internal_transcript(transcript_path: str | Path | None) -> bool:
    """True for transcripts produced inside a .superego directory."""
    if not transcript_path:
        return False
    return SUPEREGO_DIRNAME in Path(transcript_path).parts


def should_bypass(disabled: bool, transcript_path: str | Path | None = None) -> bool:
    """Checked first by every entry point; True means succeed trivially."""
    return disabled or is_internal_transcript(transcript_path)


def child_environment(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment for evaluator sub-processes, with the guard set."""
    env = dict(os.environ if environ is None else environ)
    env[DISABLE_ENV_VAR] = "1"
    return env


__all__ = [
    "DISABLE_ENV_VAR",
    "child_environment",
    "disabled_from_env",
    "is_internal_transcript",
    "should_bypass",
]
