"""
Parse evaluator responses into allow/block verdicts.

The evaluator is asked to answer with:

    DECISION: ALLOW | DECISION: BLOCK

    <feedback>

Anything that is not exactly one of those tokens on the first non-blank
line is treated as BLOCK. This fail-closed asymmetry is intentional.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .session_schema import Phase

ALLOW_TOKEN = "DECISION: ALLOW"
BLOCK_TOKEN = "DECISION: BLOCK"

PHASE_LINE = re.compile(r"^\s*PHASE:\s*(EXPLORING|DISCUSSING|READY)\s*$", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class Verdict:
    """Parsed evaluator decision."""

    block: bool
    feedback: str
    phase: Phase | None = None  # explicit PHASE line, if any
    recognized: bool = True  # False when the response had no decision token

    @property
    def label(self) -> str:
        return "BLOCK" if self.block else "ALLOW"

    def next_phase(self) -> Phase:
        """Phase implied by this verdict."""
        if self.phase is not None and self.recognized:
            return self.phase
        return Phase.DISCUSSING if self.block else Phase.READY


def parse_decision(response: str | None) -> Verdict:
    """
    Parse an evaluator response.

    Args:
        response: Raw LLM output

    Returns:
        Verdict; BLOCK unless the first non-blank line is exactly
        ``DECISION: ALLOW``
    """
    text = (response or "").strip()
    lines = text.splitlines()
    first = lines[0].strip() if lines else ""
    rest = "\n".join(lines[1:]).strip()

    if first not in (ALLOW_TOKEN, BLOCK_TOKEN):
        # Default to BLOCK for safety (including malformed responses).
        # A PHASE line without a decision token is not trusted.
        return Verdict(block=True, feedback=text, recognized=False)

    phase = None
    match = PHASE_LINE.search(rest)
    if match:
        phase = Phase(match.group(1).lower())
        rest = PHASE_LINE.sub("", rest).strip()

    if first == ALLOW_TOKEN:
        return Verdict(block=False, feedback=rest, phase=phase)
    return Verdict(block=True, feedback=rest or text, phase=phase)


__all__ = ["ALLOW_TOKEN", "BLOCK_TOKEN", "Verdict", "parse_decision"]
