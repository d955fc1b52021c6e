"""Persisted project store interface and two local implementations.

The orchestrator only needs five operations from the store that owns a
project's file tree: read a file by path, list every node with its
materialized path, create a node (creating missing parent folders), delete
a node and replace a file node's text. Any backend that implements
``ProjectStore`` can be plugged in.

``MemoryProjectStore`` keeps everything in dictionaries and is what the
tests use. ``DirectoryProjectStore`` maps a directory on disk and backs the
command line front end.
"""

import itertools
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional


FILE = "file"
FOLDER = "folder"

# Directories never exposed by the directory store
IGNORED_DIRS = {".git", ".stagedit", "node_modules", "__pycache__", ".venv", "venv"}


class StoreError(Exception):
    """Recoverable store failure (missing node, name clash, bad path).

    These are reported back to the model as tool-result errors.
    """
    pass


class InvalidPathError(StoreError):
    """Path is empty or escapes the project root."""
    pass


class StoreTransportError(StoreError):
    """The store could not be reached at all. Aborts the run."""
    pass


@dataclass
class Node:
    """A file or folder in the persisted tree."""
    id: str
    name: str
    type: str  # "file" or "folder"
    parent_id: Optional[str]
    path: str

    @property
    def is_file(self) -> bool:
        return self.type == FILE

    @property
    def is_folder(self) -> bool:
        return self.type == FOLDER


def normalize_path(path: str) -> str:
    """Normalize a project-relative path.

    Strips leading ``/`` and ``./``, collapses duplicate slashes and resolves
    ``.`` and ``..`` segments.

    Raises:
        InvalidPathError: If the path is empty or escapes the project root.
    """
    raw = (path or "").replace("\\", "/").strip()
    if not raw:
        raise InvalidPathError("Path is required")

    parts: list[str] = []
    for segment in raw.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                raise InvalidPathError(f"Path escapes the project root: {path}")
            parts.pop()
            continue
        parts.append(segment)

    if not parts:
        raise InvalidPathError(f"Path does not name a file: {path}")
    return "/".join(parts)


def normalize_dir(path: Optional[str]) -> str:
    """Like normalize_path, but the root ("", "." or "/") maps to ""."""
    if path is None or path.strip() in ("", ".", "/", "./"):
        return ""
    return normalize_path(path)


def parent_dirs(path: str) -> list[str]:
    """All ancestor directories of a normalized path, outermost first."""
    parts = path.split("/")[:-1]
    return ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]


class ProjectStore(ABC):
    """Operations the orchestrator consumes from the persisted store."""

    @abstractmethod
    def read_file(self, project_id: str, path: str) -> Optional[str]:
        """Return the text of the file at path, or None if there is none."""
        pass

    @abstractmethod
    def list_nodes(self, project_id: str) -> list[Node]:
        """Return every node of the project with its materialized path."""
        pass

    @abstractmethod
    def create_node(
        self,
        project_id: str,
        path: str,
        node_type: str = FILE,
        content: str = "",
    ) -> Node:
        """Create a file or folder, creating missing parent folders.

        Raises:
            StoreError: If a node already exists at path.
        """
        pass

    @abstractmethod
    def delete_node(self, project_id: str, node_id: str) -> None:
        """Delete a node (and everything under it for folders)."""
        pass

    @abstractmethod
    def update_content(self, project_id: str, node_id: str, text: str) -> None:
        """Replace the text content of a file node."""
        pass

    def file_ids_by_path(self, project_id: str) -> dict[str, str]:
        """Snapshot of path -> node id for every file node."""
        return {n.path: n.id for n in self.list_nodes(project_id) if n.is_file}

    def find_node(self, project_id: str, path: str) -> Optional[Node]:
        """Find a node by normalized path."""
        for node in self.list_nodes(project_id):
            if node.path == path:
                return node
        return None


class MemoryProjectStore(ProjectStore):
    """Dictionary-backed store. Node ids are sequential ("node-1", ...)."""

    def __init__(self):
        self._nodes: dict[str, dict[str, Node]] = {}
        self._contents: dict[str, str] = {}
        self._ids = itertools.count(1)

    @classmethod
    def from_files(cls, files: dict[str, str], project_id: str = "default") -> "MemoryProjectStore":
        """Build a store seeded with {path: text} for one project."""
        store = cls()
        for path, text in files.items():
            store.create_node(project_id, path, FILE, text)
        return store

    def _project(self, project_id: str) -> dict[str, Node]:
        return self._nodes.setdefault(project_id, {})

    def _path_of(self, nodes: dict[str, Node], node: Node) -> str:
        parts = [node.name]
        parent_id = node.parent_id
        while parent_id is not None:
            parent = nodes[parent_id]
            parts.append(parent.name)
            parent_id = parent.parent_id
        return "/".join(reversed(parts))

    def list_nodes(self, project_id: str) -> list[Node]:
        nodes = self._project(project_id)
        listed = []
        for node in nodes.values():
            node.path = self._path_of(nodes, node)
            listed.append(node)
        listed.sort(key=lambda n: n.path)
        return listed

    def read_file(self, project_id: str, path: str) -> Optional[str]:
        node = self.find_node(project_id, normalize_path(path))
        if node is None or not node.is_file:
            return None
        return self._contents.get(node.id, "")

    def create_node(
        self,
        project_id: str,
        path: str,
        node_type: str = FILE,
        content: str = "",
    ) -> Node:
        path = normalize_path(path)
        nodes = self._project(project_id)
        by_path = {n.path: n for n in self.list_nodes(project_id)}

        if path in by_path:
            raise StoreError(f"A node already exists at: {path}")

        # mkdir -p for missing parents
        parent_id = None
        for folder in parent_dirs(path):
            existing = by_path.get(folder)
            if existing is None:
                existing = self._add(nodes, folder, FOLDER, parent_id)
                by_path[folder] = existing
            elif not existing.is_folder:
                raise StoreError(f"Parent is not a folder: {folder}")
            parent_id = existing.id

        node = self._add(nodes, path, node_type, parent_id)
        if node.is_file:
            self._contents[node.id] = content or ""
        return node

    def _add(self, nodes: dict[str, Node], path: str, node_type: str, parent_id: Optional[str]) -> Node:
        node = Node(
            id=f"node-{next(self._ids)}",
            name=posixpath.basename(path),
            type=node_type,
            parent_id=parent_id,
            path=path,
        )
        nodes[node.id] = node
        return node

    def delete_node(self, project_id: str, node_id: str) -> None:
        nodes = self._project(project_id)
        if node_id not in nodes:
            raise StoreError(f"Node not found: {node_id}")
        doomed = {node_id}
        changed = True
        while changed:
            changed = False
            for node in nodes.values():
                if node.parent_id in doomed and node.id not in doomed:
                    doomed.add(node.id)
                    changed = True
        for nid in doomed:
            nodes.pop(nid, None)
            self._contents.pop(nid, None)

    def update_content(self, project_id: str, node_id: str, text: str) -> None:
        node = self._project(project_id).get(node_id)
        if node is None:
            raise StoreError(f"Node not found: {node_id}")
        if not node.is_file:
            raise StoreError(f"Not a file: {node.path}")
        self._contents[node_id] = text


class DirectoryProjectStore(ProjectStore):
    """Store backed by a directory on disk.

    Node ids are the project-relative POSIX paths; the project id is
    accepted for interface compatibility and otherwise ignored.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / normalize_path(path)).resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise InvalidPathError(f"Path is outside the project: {path}")
        return resolved

    def _iter_paths(self) -> Iterable[Path]:
        for entry in sorted(self.root.rglob("*")):
            rel = entry.relative_to(self.root)
            if any(part in IGNORED_DIRS for part in rel.parts):
                continue
            yield entry

    def list_nodes(self, project_id: str) -> list[Node]:
        nodes = []
        for entry in self._iter_paths():
            rel = entry.relative_to(self.root).as_posix()
            parent = posixpath.dirname(rel)
            nodes.append(Node(
                id=rel,
                name=entry.name,
                type=FOLDER if entry.is_dir() else FILE,
                parent_id=parent or None,
                path=rel,
            ))
        return nodes

    def read_file(self, project_id: str, path: str) -> Optional[str]:
        target = self._resolve(path)
        if not target.is_file():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise StoreError(f"Not a text file: {path}")
        except OSError as e:
            raise StoreError(f"Cannot read {path}: {e}")

    def create_node(
        self,
        project_id: str,
        path: str,
        node_type: str = FILE,
        content: str = "",
    ) -> Node:
        target = self._resolve(path)
        if target.exists():
            raise StoreError(f"A node already exists at: {normalize_path(path)}")
        try:
            if node_type == FOLDER:
                target.mkdir(parents=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content or "", encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Cannot create {path}: {e}")
        rel = target.relative_to(self.root).as_posix()
        return Node(
            id=rel,
            name=target.name,
            type=node_type,
            parent_id=posixpath.dirname(rel) or None,
            path=rel,
        )

    def delete_node(self, project_id: str, node_id: str) -> None:
        target = self._resolve(node_id)
        if not target.exists():
            raise StoreError(f"Node not found: {node_id}")
        try:
            if target.is_dir():
                for child in sorted(target.rglob("*"), reverse=True):
                    if child.is_dir():
                        child.rmdir()
                    else:
                        child.unlink()
                target.rmdir()
            else:
                target.unlink()
        except OSError as e:
            raise StoreError(f"Cannot delete {node_id}: {e}")

    def update_content(self, project_id: str, node_id: str, text: str) -> None:
        target = self._resolve(node_id)
        if not target.is_file():
            raise StoreError(f"Not a file: {node_id}")
        try:
            target.write_text(text, encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Cannot write {node_id}: {e}")
