"""Pytest fixtures for stagedit tests."""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from stagedit.mode import Mode
from stagedit.store import MemoryProjectStore
from stagedit.tools.base import ToolContext
from stagedit.tools.executor import ToolExecutor


PROJECT_ID = "p1"

SAMPLE_FILES = {
    "README.md": "# Demo\n\nA small demo project.\n",
    "src/app.py": (
        "from src.util import greet\n"
        "\n"
        "\n"
        "def main():\n"
        "    print(greet(\"world\"))\n"
    ),
    "src/util.py": (
        "def greet(name):\n"
        "    return f\"Hello, {name}!\"\n"
    ),
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def memory_store():
    """In-memory store seeded with a small project."""
    return MemoryProjectStore.from_files(SAMPLE_FILES, PROJECT_ID)


@pytest.fixture
def review_context(memory_store):
    """AGENT mode context with review on."""
    return ToolContext(project_id=PROJECT_ID, store=memory_store, mode=Mode.AGENT, review_mode=True)


@pytest.fixture
def direct_context(memory_store):
    """AGENT mode context writing straight to the store."""
    return ToolContext(project_id=PROJECT_ID, store=memory_store, mode=Mode.AGENT, review_mode=False)


@pytest.fixture
def ask_context(memory_store):
    """ASK mode context with review on."""
    return ToolContext(project_id=PROJECT_ID, store=memory_store, mode=Mode.ASK, review_mode=True)


@pytest.fixture
def executor():
    """Executor over every built-in tool."""
    return ToolExecutor()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Clean environment variables that might affect tests.

    HOME points at an empty directory so no global config is picked up.
    """
    env_vars = [
        "ANTHROPIC_API_KEY",
        "OPENAI_API_KEY",
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "STAGEDIT_MODEL",
        "STAGEDIT_MAX_ITERATIONS",
        "STAGEDIT_DEBUG",
        "STAGEDIT_SSL_CERT_PATH",
        "STAGEDIT_SSL_VERIFY",
        "SSL_CERT_FILE",
        "APPDATA",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
