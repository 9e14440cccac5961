"""
sg - superego command line.

Usage:
    sg init
    sg hook PreToolUse < payload.json
    sg evaluate --transcript-path ~/.claude/projects/x/abc.jsonl
    sg check --tool-name Edit --session-id abc
    sg override "user approved the refactor" --uses 3 --session-id abc
    sg history --limit 20 --all

Hook commands print JSON on stdout; all diagnostics go to stderr and
.superego/superego.log.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from .adapters import session_id_from_transcript
from .config import Settings, SuperegoConfig
from .engine import PhaseEngine
from .hooks import run_hook
from .prompts import DEFAULT_PROMPT
from .session_store import SessionStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(process)d %(levelname)s %(name)s: %(message)s"
SESSION_ENV_VARS = ("SUPEREGO_SESSION_ID", "CLAUDE_SESSION_ID")


def configure_logging(settings: Settings) -> None:
    """Log to .superego/superego.log (when initialized) and to stderr."""
    root = logging.getLogger("superego")
    root.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.propagate = False

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.DEBUG if settings.debug else logging.WARNING)
    stderr_handler.setFormatter(logging.Formatter("superego: %(levelname)s %(message)s"))
    root.addHandler(stderr_handler)

    if settings.initialized:
        file_handler = RotatingFileHandler(
            settings.paths.log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)


def resolve_session_id(args: argparse.Namespace) -> str | None:
    if getattr(args, "session_id", None):
        return args.session_id
    for var in SESSION_ENV_VARS:
        if os.environ.get(var):
            return os.environ[var]
    return session_id_from_transcript(getattr(args, "transcript_path", None))


def require_session(args: argparse.Namespace) -> str:
    session_id = resolve_session_id(args)
    if not session_id:
        raise SystemExit("sg: no session id (pass --session-id or set SUPEREGO_SESSION_ID)")
    return session_id


def print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


# =============================================================================
# Commands
# =============================================================================


def cmd_init(settings: Settings, args: argparse.Namespace) -> int:
    paths = settings.paths
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.sessions_dir.mkdir(exist_ok=True)
    paths.decisions_dir.mkdir(exist_ok=True)

    if args.force or not paths.prompt_file.exists():
        paths.prompt_file.write_text(DEFAULT_PROMPT, encoding="utf-8")
    if args.force or not paths.config_file.exists():
        SuperegoConfig().save(paths.config_file)

    print(f"Initialized superego in {paths.root}")
    return 0


def cmd_hook(settings: Settings, args: argparse.Namespace) -> int:
    output, exit_code = run_hook(sys.stdin.read(), args.event)
    print(output.to_json())
    return exit_code


def cmd_evaluate(settings: Settings, args: argparse.Namespace) -> int:
    session_id = require_session(args)
    result = PhaseEngine(settings).evaluate(session_id, args.transcript_path, trigger=args.trigger)
    print_json(
        {
            "evaluated": result.evaluated,
            "decision": result.verdict.label.lower() if result.verdict else None,
            "feedback": result.verdict.feedback if result.verdict else None,
            "phase": result.state.phase.value if result.state else None,
            "entries": result.entries,
            "skipped": result.skipped_reason,
            "error": result.transport_error,
        }
    )
    return 0


def cmd_check(settings: Settings, args: argparse.Namespace) -> int:
    session_id = require_session(args)
    tool_input = json.loads(args.tool_input) if args.tool_input else None
    decision = PhaseEngine(settings).check(session_id, args.tool_name, tool_input)
    print_json(
        {
            "decision": "allow" if decision.allowed else "deny",
            "reason": decision.reason,
            "phase": decision.phase.value if decision.phase else None,
        }
    )
    return 0


def cmd_has_feedback(settings: Settings, args: argparse.Namespace) -> int:
    return 0 if PhaseEngine(settings).feedback.has_pending(require_session(args)) else 1


def cmd_get_feedback(settings: Settings, args: argparse.Namespace) -> int:
    text = PhaseEngine(settings).deliver_feedback(require_session(args))
    if text:
        print(text)
    return 0


def cmd_acknowledge(settings: Settings, args: argparse.Namespace) -> int:
    cleared = PhaseEngine(settings).feedback.discard(require_session(args))
    print("Feedback acknowledged" if cleared else "No pending feedback")
    return 0


def cmd_override(settings: Settings, args: argparse.Namespace) -> int:
    decision = PhaseEngine(settings).grant_override(require_session(args), args.reason, uses=args.uses)
    print(decision.reason)
    return 0 if decision.allowed else 1


def cmd_history(settings: Settings, args: argparse.Namespace) -> int:
    session_id = None if args.all else require_session(args)
    records = PhaseEngine(settings).journal.recent(session_id, args.limit)
    for record in records:
        line = record.context.strip().splitlines()[0] if record.context.strip() else ""
        print(f"{record.timestamp.isoformat()} [{record.session_id}] {record.kind.value.upper()}: {line}")
    return 0


def cmd_status(settings: Settings, args: argparse.Namespace) -> int:
    store = SessionStore(settings.paths)
    session_id = resolve_session_id(args)
    status: dict[str, object] = {
        "initialized": settings.initialized,
        "disabled": settings.disabled or settings.project_disabled,
        "mode": settings.config.mode,
        "phase_source": settings.config.phase_source,
    }
    if session_id:
        status["session_id"] = session_id
        status["state"] = store.snapshot(session_id)
        status["pending_feedback"] = settings.paths.feedback_file(session_id).exists()
    else:
        status["sessions"] = store.list_sessions()
    print_json(status)
    return 0


def cmd_reset(settings: Settings, args: argparse.Namespace) -> int:
    session_id = require_session(args)
    removed = SessionStore(settings.paths).reset(session_id)
    print(f"Reset session {session_id}" if removed else f"No state for session {session_id}")
    return 0


def cmd_disable(settings: Settings, args: argparse.Namespace) -> int:
    if not settings.initialized:
        print("superego is not initialized here")
        return 1
    settings.paths.disabled_marker.touch()
    print("superego disabled for this project")
    return 0


def cmd_enable(settings: Settings, args: argparse.Namespace) -> int:
    settings.paths.disabled_marker.unlink(missing_ok=True)
    print("superego enabled for this project")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sg", description="Superego metacognitive advisor")
    sub = parser.add_subparsers(dest="command", required=True)

    def with_session(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
        p.add_argument("--session-id", help="Session id (default: $SUPEREGO_SESSION_ID)")
        return p

    p = sub.add_parser("init", help="Create .superego in the project")
    p.add_argument("--force", action="store_true", help="Overwrite prompt.md and config.json")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("hook", help="Handle a host hook (payload on stdin)")
    p.add_argument(
        "event",
        choices=["SessionStart", "UserPromptSubmit", "PreToolUse", "Stop", "PreCompact"],
    )
    p.set_defaults(func=cmd_hook)

    p = with_session(sub.add_parser("evaluate", help="Evaluate new transcript entries"))
    p.add_argument("--transcript-path", required=True)
    p.add_argument("--trigger", default="manual")
    p.set_defaults(func=cmd_evaluate)

    p = with_session(sub.add_parser("check", help="Check whether a tool may run"))
    p.add_argument("--tool-name", required=True)
    p.add_argument("--tool-input", help="Tool input as JSON")
    p.set_defaults(func=cmd_check)

    with_session(sub.add_parser("has-feedback", help="Exit 0 if feedback is pending")).set_defaults(
        func=cmd_has_feedback
    )
    with_session(sub.add_parser("get-feedback", help="Print and consume pending feedback")).set_defaults(
        func=cmd_get_feedback
    )
    with_session(sub.add_parser("acknowledge", help="Discard pending feedback")).set_defaults(
        func=cmd_acknowledge
    )

    p = with_session(sub.add_parser("override", help="Allow blocked write actions"))
    p.add_argument("reason")
    p.add_argument("--uses", type=int, default=1)
    p.set_defaults(func=cmd_override)

    p = with_session(sub.add_parser("history", help="Show recent decisions"))
    p.add_argument("--limit", type=int, default=10)
    p.add_argument("--all", action="store_true", help="Read the aggregate journal")
    p.set_defaults(func=cmd_history)

    with_session(sub.add_parser("status", help="Show state")).set_defaults(func=cmd_status)
    with_session(sub.add_parser("reset", help="Delete a session's state")).set_defaults(func=cmd_reset)
    sub.add_parser("disable", help="Disable superego for this project").set_defaults(func=cmd_disable)
    sub.add_parser("enable", help="Re-enable superego for this project").set_defaults(func=cmd_enable)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_environment()
    configure_logging(settings)

    try:
        return args.func(settings, args)
    except ValueError as e:
        print(f"sg: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
