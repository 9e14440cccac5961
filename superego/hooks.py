"""
Hook handlers.

Called by: host hook configuration (``sg hook <Event>``)

Each invocation is a short-lived process: read the payload from stdin,
act through the engine, print a HookOutput as JSON, exit. Exit code 0
lets the host proceed, 2 is a blocking error, anything else is a
non-blocking error.

Internal failures never become a universal block: they are logged and
the hook exits 0 without a decision.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .adapters import HookEvent, HookInputError, HookRequest, parse_hook_input
from .config import Settings
from .engine import PhaseEngine
from .prompts import FEEDBACK_HEADER, SUPEREGO_CONTRACT
from .recursion_guard import should_bypass

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BLOCKING_ERROR = 2


class HookSpecificOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hook_event_name: str = Field(alias="hookEventName")
    permission_decision: Literal["allow", "deny", "ask"] | None = Field(default=None, alias="permissionDecision")
    permission_decision_reason: str | None = Field(default=None, alias="permissionDecisionReason")
    updated_input: dict[str, Any] | None = Field(default=None, alias="updatedInput")
    additional_context: str | None = Field(default=None, alias="additionalContext")


class HookOutput(BaseModel):
    """JSON printed on stdout for the host."""

    model_config = ConfigDict(populate_by_name=True)

    continue_: bool = Field(default=True, alias="continue")
    stop_reason: str | None = Field(default=None, alias="stopReason")
    reason: str | None = None
    hook_specific_output: HookSpecificOutput | None = Field(default=None, alias="hookSpecificOutput")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def context(cls, event: HookEvent, text: str) -> "HookOutput":
        return cls(
            hook_specific_output=HookSpecificOutput(hook_event_name=event.value, additional_context=text)
        )

    @classmethod
    def permission(cls, decision: Literal["allow", "deny", "ask"], reason: str) -> "HookOutput":
        return cls(
            hook_specific_output=HookSpecificOutput(
                hook_event_name=HookEvent.PRE_TOOL_USE.value,
                permission_decision=decision,
                permission_decision_reason=reason,
            )
        )


EngineFactory = Callable[[Settings], PhaseEngine]


def handle_session_start(engine: PhaseEngine, request: HookRequest) -> HookOutput:
    return HookOutput.context(HookEvent.SESSION_START, SUPEREGO_CONTRACT)


def handle_user_prompt_submit(engine: PhaseEngine, request: HookRequest) -> HookOutput:
    if not request.session_id:
        return HookOutput()
    text = engine.deliver_feedback(request.session_id, request.transcript_path)
    if not text:
        return HookOutput()
    return HookOutput.context(HookEvent.USER_PROMPT_SUBMIT, f"{FEEDBACK_HEADER}\n{text}")


def handle_pre_tool_use(engine: PhaseEngine, request: HookRequest) -> HookOutput:
    if not request.session_id:
        return HookOutput.permission("allow", "no session id")
    decision = engine.check(
        request.session_id,
        request.tool_name or "unknown",
        request.tool_input,
        request.transcript_path,
    )
    return HookOutput.permission("allow" if decision.allowed else "deny", decision.reason)


def handle_evaluation(engine: PhaseEngine, request: HookRequest) -> HookOutput:
    """Stop and PreCompact: evaluate new transcript entries, never block the host."""
    if engine.settings.config.mode != "always":
        return HookOutput()
    if not request.session_id or not request.transcript_path:
        logger.info(f"{request.event.value}: no session or transcript, skipping evaluation")
        return HookOutput()

    trigger = "precompact" if request.event == HookEvent.PRE_COMPACT else "stop"
    result = engine.evaluate(request.session_id, request.transcript_path, trigger=trigger)
    if result.skipped_reason:
        logger.debug(f"{request.event.value}: {result.skipped_reason}")
    return HookOutput()


HANDLERS: dict[HookEvent, Callable[[PhaseEngine, HookRequest], HookOutput]] = {
    HookEvent.SESSION_START: handle_session_start,
    HookEvent.USER_PROMPT_SUBMIT: handle_user_prompt_submit,
    HookEvent.PRE_TOOL_USE: handle_pre_tool_use,
    HookEvent.STOP: handle_evaluation,
    HookEvent.PRE_COMPACT: handle_evaluation,
}


def run_hook(
    raw_input: str,
    event: HookEvent | str | None = None,
    environ: dict[str, str] | None = None,
    engine_factory: EngineFactory = PhaseEngine,
) -> tuple[HookOutput, int]:
    """
    Run one hook invocation.

    Args:
        raw_input: Hook stdin
        event: Event name from the command line
        environ: Environment mapping (default: process environment)
        engine_factory: Builds the engine from resolved settings

    Returns:
        (output, exit_code)
    """
    try:
        request = parse_hook_input(raw_input, event)
    except (HookInputError, ValueError) as e:
        logger.warning(f"Ignoring hook input: {e}")
        return HookOutput(), EXIT_OK

    try:
        settings = Settings.from_environment(environ, cwd=request.cwd)
        if should_bypass(settings.disabled, request.transcript_path):
            return _passthrough(request, "superego disabled"), EXIT_OK
        if not settings.initialized:
            return _passthrough(request, "superego not initialized"), EXIT_OK
        if settings.project_disabled:
            return _passthrough(request, "superego disabled for this project"), EXIT_OK

        engine = engine_factory(settings)
        return HANDLERS[request.event](engine, request), EXIT_OK
    except Exception as e:
        logger.exception(f"{request.event.value} hook failed: {e}")
        return _passthrough(request, "superego error (see .superego/superego.log)"), EXIT_OK


def _passthrough(request: HookRequest, reason: str) -> HookOutput:
    if request.event == HookEvent.PRE_TOOL_USE:
        return HookOutput.permission("allow", reason)
    return HookOutput()


__all__ = [
    "EXIT_BLOCKING_ERROR",
    "EXIT_OK",
    "HookOutput",
    "HookSpecificOutput",
    "run_hook",
]
