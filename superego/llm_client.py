"""
LLM backends for the superego evaluator.

Supports:
- Claude Code CLI (``claude -p``), the default: uses whatever account the
  host assistant is logged in with
- Anthropic API (Claude Sonnet, Haiku, Opus) - including custom endpoints
- OpenAI API (GPT-4o family, o-series)

Every call carries a timeout. All failures surface as LLMError so the
engine can treat them uniformly as transport errors.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import anthropic
import openai
from dotenv import load_dotenv

from .config import SuperegoConfig
from .paths import SuperegoPaths
from .recursion_guard import child_environment

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """LLM call failed to start, timed out or returned an error."""

    def __init__(self, message: str, raw_output: str = ""):
        super().__init__(message)
        self.raw_output = raw_output


class Provider(Enum):
    """LLM provider."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


# Model registry with provider info
MODEL_REGISTRY: dict[str, tuple[Provider, str]] = {
    # Anthropic models
    "opus": (Provider.ANTHROPIC, "claude-opus-4-5-20251101"),
    "sonnet": (Provider.ANTHROPIC, "claude-sonnet-4-20250514"),
    "haiku": (Provider.ANTHROPIC, "claude-haiku-4-5-20251001"),
    # OpenAI models
    "gpt-4o": (Provider.OPENAI, "gpt-4o"),
    "gpt-4o-mini": (Provider.OPENAI, "gpt-4o-mini"),
    "o3-mini": (Provider.OPENAI, "o3-mini"),
}


def resolve_model(model: str) -> tuple[Provider, str]:
    """Resolve model shorthand to (provider, full_model_id)."""
    if model in MODEL_REGISTRY:
        return MODEL_REGISTRY[model]
    # Guess provider from model name
    if model.startswith(("gpt-", "o1", "o3", "o4")):
        return (Provider.OPENAI, model)
    # Default to Anthropic
    return (Provider.ANTHROPIC, model)


def load_project_env(paths: SuperegoPaths) -> None:
    """Load provider keys from .superego/.env without overriding the environment."""
    if paths.env_file.exists():
        load_dotenv(paths.env_file, override=False)


class EvaluatorClient(ABC):
    """Text in, text out."""

    def __init__(self, model: str, timeout: float):
        self.model = model
        self.timeout = timeout

    @abstractmethod
    def complete(self, system: str, message: str) -> str:
        """
        Run one evaluation.

        Raises:
            LLMError: On any failure, including timeout
        """


class ClaudeCLIClient(EvaluatorClient):
    """
    Evaluate through the Claude Code CLI in non-interactive mode.

    The child process gets SUPEREGO_DISABLED=1 so its own hooks do not
    re-enter superego.
    """

    def __init__(self, model: str = "sonnet", timeout: float = 120.0, executable: str = "claude"):
        super().__init__(model, timeout)
        self.executable = executable

    def build_command(self, system: str, message: str) -> list[str]:
        return [
            self.executable,
            "-p",
            "--output-format",
            "json",
            "--system-prompt",
            system,
            "--model",
            self.model,
            "--no-session-persistence",
            message,
        ]

    def complete(self, system: str, message: str) -> str:
        try:
            output = subprocess.run(
                self.build_command(system, message),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=child_environment(),
            )
        except subprocess.TimeoutExpired as e:
            raise LLMError(f"Claude command timed out after {self.timeout}s") from e
        except OSError as e:
            raise LLMError(f"Claude command failed to start: {e}") from e

        if output.returncode != 0:
            raise LLMError(f"Claude command failed: {output.stderr.strip()}", raw_output=output.stdout)

        try:
            response = json.loads(output.stdout)
        except json.JSONDecodeError as e:
            raise LLMError(f"Failed to parse Claude response: {e}", raw_output=output.stdout) from e

        if not isinstance(response, dict):
            raise LLMError("Unexpected Claude response shape", raw_output=output.stdout)
        if response.get("is_error"):
            raise LLMError(f"Claude reported an error: {response.get('result', '')}", raw_output=output.stdout)

        return str(response.get("result", ""))


class AnthropicClient(EvaluatorClient):
    """Anthropic Claude API client."""

    def __init__(
        self,
        model: str = "sonnet",
        timeout: float = 120.0,
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: int = 2048,
    ):
        super().__init__(resolve_model(model)[1], timeout)
        # Support both ANTHROPIC_API_KEY and ANTHROPIC_AUTH_TOKEN
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_AUTH_TOKEN")
        if not self.api_key:
            raise LLMError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN environment variable."
            )
        # Support custom base URL for alternative endpoints
        self.base_url = base_url or os.environ.get("ANTHROPIC_BASE_URL")
        self.max_tokens = max_tokens
        client_kwargs: dict[str, Any] = {"api_key": self.api_key, "timeout": timeout, "max_retries": 1}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url
        self.client = anthropic.Anthropic(**client_kwargs)

    def complete(self, system: str, message: str) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.0,
                system=system,
                messages=[{"role": "user", "content": message}],
            )
        except anthropic.APIError as e:
            raise LLMError(f"Anthropic API error: {e}") from e

        content = ""
        for block in response.content:
            if block.type == "text":
                content += block.text
        return content


class OpenAIClient(EvaluatorClient):
    """OpenAI GPT API client."""

    def __init__(
        self,
        model: str = "gpt-4o",
        timeout: float = 120.0,
        api_key: str | None = None,
        max_tokens: int = 2048,
    ):
        super().__init__(resolve_model(model)[1], timeout)
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise LLMError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")
        self.max_tokens = max_tokens
        self.client = openai.OpenAI(api_key=self.api_key, timeout=timeout, max_retries=1)

    def complete(self, system: str, message: str) -> str:
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": message},
        ]
        try:
            # Reasoning models use max_completion_tokens instead of max_tokens
            if self.model.startswith(("o1", "o3", "o4", "gpt-5")):
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_completion_tokens=self.max_tokens,
                )
            else:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.max_tokens,
                    temperature=0.0,
                )
        except openai.OpenAIError as e:
            raise LLMError(f"OpenAI API error: {e}") from e

        return response.choices[0].message.content or ""


def create_client(config: SuperegoConfig, paths: SuperegoPaths | None = None) -> EvaluatorClient:
    """
    Build the evaluator backend selected by configuration.

    Raises:
        LLMError: If an API backend is selected but no key is available
    """
    if config.backend == "claude-cli":
        return ClaudeCLIClient(model=config.model, timeout=config.llm_timeout_seconds)

    if paths is not None:
        load_project_env(paths)
    provider, _ = resolve_model(config.model)
    if provider == Provider.OPENAI:
        return OpenAIClient(model=config.model, timeout=config.llm_timeout_seconds)
    return AnthropicClient(model=config.model, timeout=config.llm_timeout_seconds)


__all__ = [
    "AnthropicClient",
    "ClaudeCLIClient",
    "EvaluatorClient",
    "LLMError",
    "MODEL_REGISTRY",
    "OpenAIClient",
    "Provider",
    "create_client",
    "load_project_env",
    "resolve_model",
]
