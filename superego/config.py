"""
Configuration management for superego.

Project configuration lives in .superego/config.json. Environment
variables take priority over the file; missing keys fall back to
defaults and unreadable files are treated as empty.
"""

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Literal

from .paths import SuperegoPaths
from .recursion_guard import disabled_from_env

logger = logging.getLogger(__name__)


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class SuperegoConfig:
    """
    Project configuration.

    Modes:
    - "always": automatic evaluation at Stop, PreCompact and large changes
    - "pull": evaluation only when explicitly requested (sg evaluate)

    Phase sources:
    - "llm": phase follows the evaluator's verdicts
    - "tracker": phase follows the bd task tracker's live state
    """

    mode: Literal["always", "pull"] = "always"
    phase_source: Literal["llm", "tracker"] = "llm"
    backend: Literal["claude-cli", "api"] = "claude-cli"
    model: str = "sonnet"
    llm_timeout_seconds: float = 120.0
    change_threshold_lines: int = 50
    carryover_decision_count: int = 2
    carryover_window_minutes: int = 5
    max_context_chars: int = 60_000
    lock_timeout_seconds: float = 2.0
    cas_max_attempts: int = 5

    @classmethod
    def load(cls, path: Path) -> "SuperegoConfig":
        """Load configuration from file, falling back to defaults."""
        if not path.exists():
            return cls()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable config {path}: {e}")
            return cls()

        if not isinstance(data, dict):
            logger.warning(f"Ignoring config {path}: expected a JSON object")
            return cls()

        config = cls(**_filter_dataclass_fields(data, cls))
        if config.mode not in ("always", "pull"):
            logger.warning(f"Unknown mode {config.mode!r}, using 'always'")
            config.mode = "always"
        if config.phase_source not in ("llm", "tracker"):
            logger.warning(f"Unknown phase_source {config.phase_source!r}, using 'llm'")
            config.phase_source = "llm"
        return config

    def save(self, path: Path) -> None:
        """Save configuration to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    def apply_env(self, environ: Mapping[str, str]) -> "SuperegoConfig":
        """Apply environment overrides (highest priority)."""
        threshold = environ.get("SUPEREGO_CHANGE_THRESHOLD")
        if threshold:
            try:
                self.change_threshold_lines = int(threshold)
            except ValueError:
                logger.warning(f"Ignoring non-numeric SUPEREGO_CHANGE_THRESHOLD={threshold!r}")
        model = environ.get("SUPEREGO_MODEL")
        if model:
            self.model = model
        return self


def resolve_project_dir(
    environ: Mapping[str, str] | None = None,
    cwd: str | Path | None = None,
) -> Path:
    """
    Determine the project root.

    Priority order:
    1. SUPEREGO_PROJECT_DIR
    2. CLAUDE_PROJECT_DIR
    3. cwd from the hook payload
    4. process working directory
    """
    environ = os.environ if environ is None else environ
    for var in ("SUPEREGO_PROJECT_DIR", "CLAUDE_PROJECT_DIR"):
        value = environ.get(var)
        if value:
            return Path(value)
    if cwd:
        return Path(cwd)
    return Path.cwd()


@dataclass
class Settings:
    """Everything an entry point needs, resolved once per process."""

    project_dir: Path
    paths: SuperegoPaths
    config: SuperegoConfig
    disabled: bool = False
    debug: bool = False

    @classmethod
    def from_environment(
        cls,
        environ: Mapping[str, str] | None = None,
        cwd: str | Path | None = None,
    ) -> "Settings":
        environ = os.environ if environ is None else environ
        project_dir = resolve_project_dir(environ, cwd)
        paths = SuperegoPaths.for_project(project_dir)
        config = SuperegoConfig.load(paths.config_file).apply_env(environ)
        return cls(
            project_dir=project_dir,
            paths=paths,
            config=config,
            disabled=disabled_from_env(environ),
            debug=environ.get("SUPEREGO_DEBUG", "") == "1",
        )

    @property
    def initialized(self) -> bool:
        return self.paths.is_initialized()

    @property
    def project_disabled(self) -> bool:
        """Disabled for this project via `sg disable`."""
        return self.paths.disabled_marker.exists()


__all__ = [
    "Settings",
    "SuperegoConfig",
    "resolve_project_dir",
]
