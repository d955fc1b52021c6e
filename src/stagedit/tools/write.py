"""Mutating file tools: create, update, delete files and create folders.

In review mode these stage changes on the run's ReviewState; otherwise
they write to the store immediately.
"""

from stagedit.overlay import AlreadyExistsError, NotFoundError
from stagedit.store import FILE, FOLDER, Node, normalize_path, parent_dirs
from stagedit.tools.base import Tool, ToolContext, ToolResult


def _existing_file(context: ToolContext, path: str) -> Node:
    node = context.store.find_node(context.project_id, path)
    if node is None:
        raise NotFoundError(f"File not found: {path}")
    if not node.is_file:
        raise NotFoundError(f"Not a file: {path}")
    return node


class CreateFileTool(Tool):
    """Create a new file with the given content."""

    name = "create_file"
    description = "Create a new file with the given content. Fails if the file already exists."
    category = "edit"
    requires_agent_mode = True

    def execute(self, context: ToolContext, path: str, content: str = "") -> ToolResult:
        self.check_mode(context)
        path = normalize_path(path)

        if context.review_mode:
            files, folders = self._visible_tree(context)
            if path in folders:
                raise AlreadyExistsError(f"A folder already exists at: {path}")
            for folder in parent_dirs(path):
                if folder in files:
                    raise AlreadyExistsError(f"Parent is not a folder: {folder}")
            context.review_state.create(path, content or "")
        else:
            if context.store.find_node(context.project_id, path) is not None:
                raise AlreadyExistsError(
                    f"File already exists: {path}. Use update_file to change it."
                )
            context.store.create_node(context.project_id, path, FILE, content or "")

        return ToolResult.ok(success=True, path=path, action="created")

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path of the file to create (e.g. 'components/NewComponent.tsx')"
                },
                "content": {
                    "type": "string",
                    "description": "Content of the new file"
                }
            },
            "required": ["path"]
        }


class UpdateFileTool(Tool):
    """Replace the whole content of an existing file."""

    name = "update_file"
    description = "Replace the entire content of an existing file."
    category = "edit"
    requires_agent_mode = True

    def execute(self, context: ToolContext, path: str, content: str) -> ToolResult:
        self.check_mode(context)
        path = normalize_path(path)

        if context.review_mode:
            context.review_state.update(path, content)
        else:
            node = _existing_file(context, path)
            context.store.update_content(context.project_id, node.id, content)

        return ToolResult.ok(success=True, path=path, action="updated")

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path of the file to update"
                },
                "content": {
                    "type": "string",
                    "description": "The new, complete content of the file"
                }
            },
            "required": ["path", "content"]
        }


class DeleteFileTool(Tool):
    """Delete a file."""

    name = "delete_file"
    description = "Delete a file."
    category = "edit"
    requires_agent_mode = True

    def execute(self, context: ToolContext, path: str) -> ToolResult:
        self.check_mode(context)
        path = normalize_path(path)

        if context.review_mode:
            context.review_state.delete(path)
        else:
            node = _existing_file(context, path)
            context.store.delete_node(context.project_id, node.id)

        return ToolResult.ok(success=True, path=path, action="deleted")

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path of the file to delete"
                }
            },
            "required": ["path"]
        }


class CreateFolderTool(Tool):
    """Create a folder (and any missing parents)."""

    name = "create_folder"
    description = "Create a new folder, including any missing parent folders."
    category = "edit"
    requires_agent_mode = True

    def execute(self, context: ToolContext, path: str) -> ToolResult:
        self.check_mode(context)
        path = normalize_path(path)

        files, folders = self._visible_tree(context)
        if path in files or path in folders:
            raise AlreadyExistsError(f"Path already exists: {path}")

        if context.review_mode:
            context.review_state.add_folder(path)
        else:
            context.store.create_node(context.project_id, path, FOLDER)

        return ToolResult.ok(success=True, path=path, action="folder_created")

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path of the folder to create"
                }
            },
            "required": ["path"]
        }
