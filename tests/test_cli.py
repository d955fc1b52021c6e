"""Tests for the command line front end."""

import json

import pytest
from click.testing import CliRunner

from stagedit.changeset import apply_change
from stagedit.cli import cli
from stagedit.llm.base import LLMResponse, MockLLMProvider, ToolCall
from stagedit.llm.registry import ProviderRegistry
from stagedit.store import StoreError


@pytest.fixture
def project(temp_dir):
    (temp_dir / "README.md").write_text("# Demo\n")
    return temp_dir


@pytest.fixture
def scripted(monkeypatch):
    """Route every model id to one scripted provider."""
    provider = MockLLMProvider()
    registry = ProviderRegistry()
    registry.register("mock", ("",), lambda *args: provider, requires_key=False)
    monkeypatch.setattr(ProviderRegistry, "create_default", classmethod(lambda cls, **kw: registry))
    return provider


def create_call(path, content):
    return LLMResponse(
        content="",
        tool_calls=[ToolCall(id="c1", name="create_file", arguments={"path": path, "content": content})],
    )


class TestAsk:
    """Tests for the ask command."""

    def test_shows_proposed_changes(self, project, scripted):
        scripted.responses = [create_call("notes.md", "hello"), "Added notes."]
        result = CliRunner().invoke(cli, ["ask", "add notes", "--project", str(project)])

        assert result.exit_code == 0, result.output
        assert "Added notes." in result.output
        assert "CREATE notes.md" in result.output
        assert "+hello" in result.output
        assert not (project / "notes.md").exists()

    def test_apply_then_undo_redo(self, project, scripted):
        scripted.responses = [create_call("notes.md", "hello"), "Added notes."]
        runner = CliRunner()

        result = runner.invoke(cli, ["ask", "add notes", "--project", str(project), "--apply"])
        assert result.exit_code == 0, result.output
        assert (project / "notes.md").read_text() == "hello"
        assert "Checkpoint" in result.output

        listing = runner.invoke(cli, ["checkpoints", "--project", str(project)])
        assert "add notes" in listing.output

        result = runner.invoke(cli, ["undo", "--project", str(project)])
        assert result.exit_code == 0, result.output
        assert not (project / "notes.md").exists()

        result = runner.invoke(cli, ["undo", "--project", str(project)])
        assert "Nothing to undo." in result.output

        result = runner.invoke(cli, ["redo", "--project", str(project)])
        assert result.exit_code == 0, result.output
        assert (project / "notes.md").read_text() == "hello"

    def test_json_output(self, project, scripted):
        scripted.responses = ["Just an answer."]
        result = CliRunner().invoke(cli, ["ask", "hi", "--project", str(project), "--json", "--mode", "ask"])

        data = json.loads(result.output)
        assert data["content"] == "Just an answer."
        assert data["proposedChanges"] == []

    def test_file_option(self, project, scripted):
        scripted.responses = ["ok"]
        result = CliRunner().invoke(
            cli, ["ask", "explain", "--project", str(project), "--file", "README.md"]
        )

        assert result.exit_code == 0, result.output
        assert "# Demo" in scripted.calls[0]["messages"][0].content

    def test_error_exit_code(self, project, scripted):
        result = CliRunner().invoke(cli, ["ask", "   ", "--project", str(project)])

        assert result.exit_code == 1
        assert "prompt is required" in result.output


def two_creates():
    return LLMResponse(
        content="",
        tool_calls=[
            ToolCall(id="c1", name="create_file", arguments={"path": "a.md", "content": "a"}),
            ToolCall(id="c2", name="create_file", arguments={"path": "b.md", "content": "b"}),
        ],
    )


@pytest.fixture
def fail_on_call(monkeypatch):
    """Make the n-th apply_change call (1-based) raise StoreError, once."""
    def install(n):
        calls = []

        def flaky(store, project_id, change):
            calls.append(change.file_path)
            if len(calls) == n:
                raise StoreError(f"disk full writing {change.file_path}")
            return apply_change(store, project_id, change)

        monkeypatch.setattr("stagedit.cli.apply_change", flaky)
        return calls
    return install


class TestPartialApply:
    """A failure halfway through a batch leaves history consistent with disk."""

    def test_apply_records_what_was_written(self, project, scripted, fail_on_call):
        scripted.responses = [two_creates(), "Added files."]
        fail_on_call(2)
        runner = CliRunner()

        result = runner.invoke(cli, ["ask", "add files", "--project", str(project), "--apply"])
        assert result.exit_code == 1
        assert "Apply failed: disk full writing b.md (1 of 2 change(s) applied)" in result.output
        assert (project / "a.md").read_text() == "a"
        assert not (project / "b.md").exists()

        result = runner.invoke(cli, ["undo", "--project", str(project)])
        assert result.exit_code == 0, result.output
        assert not (project / "a.md").exists()

    def test_undo_rolls_back_and_keeps_head(self, project, scripted, fail_on_call):
        scripted.responses = [two_creates(), "Added files."]
        runner = CliRunner()
        result = runner.invoke(cli, ["ask", "add files", "--project", str(project), "--apply"])
        assert result.exit_code == 0, result.output

        fail_on_call(2)
        result = runner.invoke(cli, ["undo", "--project", str(project)])
        assert result.exit_code == 1
        assert "Partial changes were rolled back" in result.output
        assert (project / "a.md").read_text() == "a"
        assert (project / "b.md").read_text() == "b"

        result = runner.invoke(cli, ["undo", "--project", str(project)])
        assert result.exit_code == 0, result.output
        assert not (project / "a.md").exists()
        assert not (project / "b.md").exists()


class TestMisc:
    """Tests for the remaining commands."""

    def test_no_checkpoints(self, project):
        result = CliRunner().invoke(cli, ["checkpoints", "--project", str(project)])
        assert "No checkpoints." in result.output

    def test_redo_nothing(self, project):
        result = CliRunner().invoke(cli, ["redo", "--project", str(project)])
        assert "Nothing to redo." in result.output

    def test_config(self, project, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        result = CliRunner().invoke(cli, ["config", "--project", str(project)])

        assert result.exit_code == 0
        assert "openai: configured" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert "0.1.0" in result.output
