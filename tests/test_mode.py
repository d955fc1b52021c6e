"""Tests for operating modes and the tool gate."""

import pytest

from stagedit.mode import Mode, require_agent
from stagedit.tools.registry import MUTATING_TOOLS, READ_ONLY_TOOLS, allowed_names


class TestMode:
    """Tests for Mode parsing and properties."""

    @pytest.mark.parametrize("value,expected", [
        ("ask", Mode.ASK),
        ("PLAN", Mode.PLAN),
        (" agent ", Mode.AGENT),
        (None, Mode.AGENT),
        ("", Mode.AGENT),
        (Mode.ASK, Mode.ASK),
    ])
    def test_parse(self, value, expected):
        assert Mode.parse(value) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown mode"):
            Mode.parse("yolo")

    def test_only_agent_mutates(self):
        assert Mode.AGENT.allows_mutation
        assert Mode.ASK.is_read_only
        assert Mode.PLAN.is_read_only

    def test_require_agent(self):
        require_agent(Mode.AGENT, "create_file")
        with pytest.raises(PermissionError, match="not allowed in current mode"):
            require_agent(Mode.ASK, "create_file")


class TestAllowedNames:
    """Tests for per-mode tool visibility."""

    @pytest.mark.parametrize("mode", [Mode.ASK, Mode.PLAN])
    def test_read_only_modes(self, mode):
        assert allowed_names(mode) == READ_ONLY_TOOLS
        assert not allowed_names(mode) & MUTATING_TOOLS

    def test_agent_sees_everything(self):
        assert allowed_names(Mode.AGENT) == READ_ONLY_TOOLS | MUTATING_TOOLS

    def test_accepts_strings(self):
        assert allowed_names("ask") == READ_ONLY_TOOLS
