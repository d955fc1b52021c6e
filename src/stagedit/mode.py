"""Operating modes and the mutation gate."""

from enum import Enum


class Mode(Enum):
    """Operating mode for one orchestration run."""
    ASK = "ask"
    PLAN = "plan"
    AGENT = "agent"

    @classmethod
    def parse(cls, value: "str | Mode | None") -> "Mode":
        """Parse a mode name, defaulting to AGENT when empty.

        Raises:
            ValueError: If the value is not a known mode.
        """
        if isinstance(value, Mode):
            return value
        if not value:
            return cls.AGENT
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown mode '{value}'. Expected one of: {valid}")

    @property
    def allows_mutation(self) -> bool:
        """Only AGENT mode may stage or write file changes."""
        return self is Mode.AGENT

    @property
    def is_read_only(self) -> bool:
        return not self.allows_mutation


def require_agent(mode: Mode, operation: str) -> None:
    """Raise an error if the mode does not allow mutations."""
    if not mode.allows_mutation:
        raise PermissionError(
            f"Tool '{operation}' is not allowed in current mode "
            f"({mode.value.upper()}). It requires AGENT mode."
        )
