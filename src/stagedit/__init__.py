"""stagedit: an LLM coding agent whose edits are staged for review."""

__version__ = "0.1.0"
