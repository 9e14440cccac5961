"""Shared fixtures for superego tests."""

import json
from pathlib import Path

import pytest

from superego.config import Settings, SuperegoConfig
from superego.llm_client import EvaluatorClient, LLMError
from superego.paths import SuperegoPaths
from superego.prompts import DEFAULT_PROMPT


class FakeLLM(EvaluatorClient):
    """Evaluator returning canned responses and recording calls."""

    def __init__(self, *responses):
        super().__init__(model="fake", timeout=1.0)
        self.responses = list(responses)
        self.calls = []

    def complete(self, system, message):
        self.calls.append((system, message))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class TranscriptWriter:
    """Appends Claude Code style JSONL lines to a transcript file."""

    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch()

    def append(self, entry_type, text, timestamp, newline=True):
        if entry_type == "summary":
            data = {"type": "summary", "summary": text, "timestamp": timestamp}
        else:
            data = {
                "type": entry_type,
                "timestamp": timestamp,
                "message": {"role": entry_type, "content": [{"type": "text", "text": text}]},
            }
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(data) + ("\n" if newline else ""))

    def append_raw(self, line):
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)


@pytest.fixture
def project_dir(tmp_path):
    """Project directory with an initialized .superego."""
    paths = SuperegoPaths.for_project(tmp_path)
    paths.root.mkdir()
    paths.prompt_file.write_text(DEFAULT_PROMPT, encoding="utf-8")
    SuperegoConfig().save(paths.config_file)
    return tmp_path


@pytest.fixture
def paths(project_dir):
    return SuperegoPaths.for_project(project_dir)


@pytest.fixture
def settings(project_dir):
    return Settings.from_environment(environ={}, cwd=project_dir)


@pytest.fixture
def transcript(project_dir):
    return TranscriptWriter(project_dir / "transcripts" / "session-1.jsonl")


@pytest.fixture
def fake_llm():
    return FakeLLM("DECISION: ALLOW\n\nLooks good.")


@pytest.fixture
def failing_llm():
    return FakeLLM(LLMError("Claude command timed out after 1.0s", raw_output="partial"))


@pytest.fixture
def make_llm():
    """Build a FakeLLM with the given responses."""
    return FakeLLM
