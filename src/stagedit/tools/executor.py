"""Tool executor: the single boundary between model tool calls and tools."""

from typing import Any, Optional

from stagedit.overlay import OverlayError
from stagedit.store import StoreError, StoreTransportError
from stagedit.style import debug_log
from stagedit.tools.base import ToolContext, ToolResult
from stagedit.tools.registry import ToolRegistry, allowed_names


class ToolExecutor:
    """Dispatches one named tool call and returns a uniform payload.

    Expected failures (unknown tool, mode violation, missing argument,
    overlay and store errors) come back as ``{"error": message}``. Store
    transport failures propagate and abort the run.
    """

    def __init__(self, registry: Optional[ToolRegistry] = None, debug: bool = False):
        self.registry = registry or ToolRegistry.create_default()
        self.debug = debug

    def run(self, name: str, args: Optional[dict], context: ToolContext) -> ToolResult:
        """Execute a tool and return its ToolResult."""
        if not self.registry.has(name):
            return ToolResult.fail(f"Unknown tool: {name}")

        tool = self.registry.get(name)

        # Second gate, independent of the schema the model was shown
        if name not in allowed_names(context.mode):
            return ToolResult.fail(
                f"Tool '{name}' is not allowed in current mode "
                f"({context.mode.value.upper()}). It requires AGENT mode."
            )

        try:
            kwargs = tool.prepare_arguments(args)
            return tool.execute(context, **kwargs)
        except PermissionError as e:
            return ToolResult.fail(str(e))
        except ValueError as e:
            return ToolResult.fail(str(e))
        except OverlayError as e:
            return ToolResult.fail(str(e))
        except StoreTransportError:
            raise
        except StoreError as e:
            return ToolResult.fail(str(e))

    def execute(self, name: str, args: Optional[dict], context: ToolContext) -> dict[str, Any]:
        """Execute a tool and return the payload recorded in history."""
        if self.debug:
            debug_log(f"tool {name}", args)
        payload = self.run(name, args, context).to_payload()
        if self.debug:
            debug_log(f"tool {name} result", payload)
        return payload
