"""Tool base class with LLM schema support."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from stagedit.mode import Mode, require_agent
from stagedit.overlay import NotFoundError, ReviewState
from stagedit.store import ProjectStore, normalize_path


# JSON schema type name -> accepted Python types
JSON_TYPES = {
    "string": (str,),
    "boolean": (bool,),
    "integer": (int,),
    "number": (int, float),
}


@dataclass
class ToolResult:
    """Result of a tool execution.

    Exactly one shape reaches the model: the success payload, or
    ``{"error": message}``.

    Attributes:
        success: Whether the tool succeeded.
        data: Success payload.
        error: Error message if failed.
    """
    success: bool
    data: dict = field(default_factory=dict)
    error: str = ""

    @classmethod
    def ok(cls, data: Optional[dict] = None, **fields: Any) -> "ToolResult":
        """Create a successful result."""
        payload = dict(data or {})
        payload.update(fields)
        return cls(success=True, data=payload)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        """Create a failed result."""
        return cls(success=False, error=error)

    def to_payload(self) -> dict:
        """Payload sent back to the model and recorded in history."""
        if self.success:
            return dict(self.data)
        return {"error": self.error}


@dataclass
class ToolContext:
    """Everything a tool needs for one run.

    When review_mode is on, mutations go to review_state and reads see it;
    otherwise tools read and write the store directly.
    """
    project_id: str
    store: ProjectStore
    mode: Mode = Mode.AGENT
    review_mode: bool = True
    review_state: Optional[ReviewState] = None

    def __post_init__(self):
        if self.review_mode and self.review_state is None:
            self.review_state = ReviewState.from_store(self.store, self.project_id)


class Tool(ABC):
    """Base class for all tools.

    To create a new tool:
    1. Subclass Tool
    2. Set name, description and category
    3. Implement execute() and get_schema()
    4. Register it in tools.registry.default_tools()
    """

    name: str = "base"
    description: str = "Base tool"
    category: str = "search"  # "search" or "edit"
    requires_agent_mode: bool = False

    @abstractmethod
    def execute(self, context: ToolContext, **kwargs) -> ToolResult:
        """Execute the tool with given arguments.

        Expected failures (missing file, bad pattern, ...) are returned as
        ToolResult.fail or raised as OverlayError / StoreError for the
        executor to convert.
        """
        pass

    @abstractmethod
    def get_schema(self) -> dict:
        """Return {"properties": ..., "required": [...]} for the arguments."""
        pass

    def check_mode(self, context: ToolContext) -> None:
        """Check if current mode allows this tool."""
        if self.requires_agent_mode:
            require_agent(context.mode, self.name)

    def prepare_arguments(self, args: Optional[dict]) -> dict:
        """Keep only declared arguments and check required ones and types.

        Raises:
            ValueError: If a required argument is missing or a value does
                not match its declared type.
        """
        schema = self.get_schema()
        properties = schema.get("properties", {})
        args = args if isinstance(args, dict) else {}

        missing = [name for name in schema.get("required", []) if args.get(name) is None]
        if missing:
            raise ValueError(
                f"Missing required argument(s) for {self.name}: {', '.join(missing)}"
            )

        prepared = {}
        for key, value in args.items():
            if key not in properties:
                continue
            if value is None:
                continue
            expected = properties[key].get("type")
            accepted = JSON_TYPES.get(expected)
            # bool is an int subclass; only "boolean" accepts it
            if accepted and (
                not isinstance(value, accepted)
                or (isinstance(value, bool) and expected != "boolean")
            ):
                article = "an" if expected[0] in "aeiou" else "a"
                raise ValueError(f"Argument '{key}' must be {article} {expected}")
            prepared[key] = value
        return prepared

    # --- Shared file access (overlay aware) ---

    def _read_text(self, context: ToolContext, path: str) -> str:
        if context.review_mode:
            return context.review_state.read(path)
        text = context.store.read_file(context.project_id, normalize_path(path))
        if text is None:
            raise NotFoundError(f"File not found: {path}")
        return text

    def _visible_tree(self, context: ToolContext) -> tuple[list[str], list[str]]:
        """(file paths, folder paths) as the model should see them."""
        nodes = context.store.list_nodes(context.project_id)
        files = [n.path for n in nodes if n.is_file]
        folders = [n.path for n in nodes if n.is_folder]
        if context.review_mode:
            files = context.review_state.visible_files(files)
            folders = context.review_state.visible_folders(folders)
        return sorted(files), sorted(folders)

    # --- Schema export ---

    def to_anthropic_tool(self) -> dict:
        """Convert to Anthropic tool format (the internal schema format)."""
        schema = self.get_schema()
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": schema.get("properties", {}),
                "required": schema.get("required", []),
            }
        }

    def to_openai_tool(self) -> dict:
        """Convert to OpenAI function format."""
        schema = self.get_schema()
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": schema.get("properties", {}),
                    "required": schema.get("required", []),
                }
            }
        }
