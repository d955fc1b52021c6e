"""Virtual overlay: staged file mutations for one orchestration run.

A ``ReviewState`` shadows the persisted store while the model works. Tools
running in review mode read and write the overlay instead of the store, so
nothing becomes durable until a reviewer accepts the resulting changeset.

Each staged path moves through an explicit state machine (``transition``)
that is a pure function of the current status and the requested operation:

    (absent)            + create  -> created
    (absent)/unchanged  + update  -> updated     (path must exist)
    created             + update  -> created
    any non-deleted     + delete  -> deleted
    created, no node id + delete  -> (entry removed)
    deleted             + create  -> updated     (node id is kept)
    created/updated     + create  -> AlreadyExistsError
    deleted             + read/update/edit/delete -> NotFoundError
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, TYPE_CHECKING

from stagedit.store import normalize_path, parent_dirs

if TYPE_CHECKING:
    from stagedit.store import ProjectStore


class OverlayError(Exception):
    """Base for overlay domain errors. Reported to the model, never fatal."""
    pass


class NotFoundError(OverlayError):
    pass


class AlreadyExistsError(OverlayError):
    pass


class SearchStringAbsentError(OverlayError):
    pass


class FileStatus(Enum):
    """Status of a staged path relative to the persisted store."""
    UNCHANGED = "unchanged"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class FileOp(Enum):
    """Operations the overlay understands."""
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    EDIT = "edit"
    DELETE = "delete"


def transition(
    status: Optional[FileStatus],
    op: FileOp,
    path: str,
    persisted: bool,
) -> Optional[FileStatus]:
    """Compute the next status of a path.

    Args:
        status: Current status, or None if the path has no overlay entry.
        op: Requested operation.
        path: Path, used for error messages.
        persisted: Whether the path has a node in the store snapshot.

    Returns:
        The next status, or None when the entry should be removed.

    Raises:
        NotFoundError: The path does not exist (or was deleted in this run).
        AlreadyExistsError: Creating a path that already exists.
    """
    if status is FileStatus.DELETED:
        if op is FileOp.CREATE:
            # Re-creating a persisted file keeps its identity
            return FileStatus.UPDATED
        raise NotFoundError(f"File not found: {path}")

    if op is FileOp.CREATE:
        if status is not None or persisted:
            raise AlreadyExistsError(
                f"File already exists: {path}. Use update_file to change it."
            )
        return FileStatus.CREATED

    if status is None and not persisted:
        raise NotFoundError(f"File not found: {path}")

    if op is FileOp.READ:
        return status or FileStatus.UNCHANGED

    if op in (FileOp.UPDATE, FileOp.EDIT):
        if status is FileStatus.CREATED:
            return FileStatus.CREATED
        return FileStatus.UPDATED

    if op is FileOp.DELETE:
        if status is FileStatus.CREATED and not persisted:
            # Nothing was ever durable
            return None
        return FileStatus.DELETED

    raise ValueError(f"Unknown operation: {op}")


@dataclass
class StagedFile:
    """One path tracked by the overlay."""
    path: str
    node_id: Optional[str] = None
    original_content: Optional[str] = None  # None until loaded
    content: Optional[str] = None
    status: FileStatus = FileStatus.UNCHANGED
    created_in_run: bool = False

    @property
    def loaded(self) -> bool:
        return self.original_content is not None

    def load_original(self, text: str) -> None:
        """Set the original content once; later loads are ignored."""
        if self.original_content is None:
            self.original_content = text
        if self.content is None:
            self.content = self.original_content


class ReviewState:
    """In-memory shadow filesystem for one run.

    Attributes:
        node_id_by_path: Read-only snapshot of persisted file ids taken at
            run start. Never changes during the run.
        files_by_path: Staged entries, keyed by normalized path.
        folders: Folders created during the run (review mode only).
    """

    def __init__(
        self,
        node_id_by_path: Mapping[str, str],
        fetch: Callable[[str], Optional[str]],
    ):
        """Create an empty overlay.

        Args:
            node_id_by_path: Persisted file ids by path.
            fetch: Reads original content from the store. May raise
                StoreTransportError, which is left to propagate.
        """
        self.node_id_by_path = MappingProxyType(dict(node_id_by_path))
        self.files_by_path: dict[str, StagedFile] = {}
        self.folders: set[str] = set()
        self._fetch = fetch

    @classmethod
    def from_store(cls, store: "ProjectStore", project_id: str) -> "ReviewState":
        """Snapshot the store's file ids and read originals from it lazily."""
        return cls(
            node_id_by_path=store.file_ids_by_path(project_id),
            fetch=lambda path: store.read_file(project_id, path),
        )

    def is_persisted(self, path: str) -> bool:
        return path in self.node_id_by_path

    def status_of(self, path: str) -> Optional[FileStatus]:
        staged = self.files_by_path.get(normalize_path(path))
        return staged.status if staged else None

    def _touch(self, path: str) -> Optional[StagedFile]:
        """Return the entry for path, loading original content on first use."""
        staged = self.files_by_path.get(path)
        if staged is not None and (staged.created_in_run or staged.loaded):
            return staged
        if staged is None and not self.is_persisted(path):
            return None

        if staged is None:
            staged = StagedFile(path=path, node_id=self.node_id_by_path[path])
            self.files_by_path[path] = staged
        text = self._fetch(path)
        staged.load_original(text if text is not None else "")
        return staged

    def _status(self, staged: Optional[StagedFile]) -> Optional[FileStatus]:
        return staged.status if staged else None

    def read(self, path: str) -> str:
        """Return the current staged content of a file."""
        path = normalize_path(path)
        staged = self._touch(path)
        transition(self._status(staged), FileOp.READ, path, self.is_persisted(path))
        return staged.content or ""

    def create(self, path: str, content: str = "") -> StagedFile:
        """Stage a new file (or re-create a file deleted in this run)."""
        path = normalize_path(path)
        staged = self.files_by_path.get(path)
        next_status = transition(
            self._status(staged), FileOp.CREATE, path, self.is_persisted(path)
        )

        if staged is None:
            staged = StagedFile(
                path=path,
                original_content="",
                content=content or "",
                status=next_status,
                created_in_run=True,
            )
            self.files_by_path[path] = staged
        else:
            staged.content = content or ""
            staged.status = next_status
        return staged

    def update(self, path: str, content: str) -> StagedFile:
        """Replace the full content of an existing file."""
        path = normalize_path(path)
        staged = self._touch(path)
        next_status = transition(
            self._status(staged), FileOp.UPDATE, path, self.is_persisted(path)
        )
        staged.content = content or ""
        staged.status = next_status
        return staged

    def edit(self, path: str, search: str, replace: str) -> StagedFile:
        """Replace the first occurrence of search in the staged content."""
        path = normalize_path(path)
        staged = self._touch(path)
        next_status = transition(
            self._status(staged), FileOp.EDIT, path, self.is_persisted(path)
        )
        current = staged.content or ""
        if not search or search not in current:
            raise SearchStringAbsentError(
                f"Search string not found in {path}. "
                "Read the file and use an exact substring of its current content."
            )
        staged.content = current.replace(search, replace or "", 1)
        staged.status = next_status
        return staged

    def delete(self, path: str) -> Optional[StagedFile]:
        """Stage a deletion. Returns None when the entry was dropped."""
        path = normalize_path(path)
        staged = self.files_by_path.get(path)
        if staged is None or not staged.created_in_run:
            staged = self._touch(path)
        next_status = transition(
            self._status(staged), FileOp.DELETE, path, self.is_persisted(path)
        )
        if next_status is None:
            del self.files_by_path[path]
            return None
        staged.content = ""
        staged.status = next_status
        return staged

    def add_folder(self, path: str) -> str:
        path = normalize_path(path)
        self.folders.add(path)
        return path

    def visible_files(self, persisted_paths: Iterable[str]) -> list[str]:
        """Persisted file paths as seen through the overlay, sorted."""
        hidden = set()
        created = set()
        for path, staged in self.files_by_path.items():
            if staged.status is FileStatus.DELETED:
                hidden.add(path)
            elif staged.status is FileStatus.CREATED:
                created.add(path)
        return sorted((set(persisted_paths) - hidden) | created)

    def visible_folders(self, persisted_folders: Iterable[str]) -> list[str]:
        """Persisted folders plus folders implied by staged creations."""
        folders = set(persisted_folders) | self.folders
        for folder in list(self.folders):
            folders.update(parent_dirs(folder))
        for path, staged in self.files_by_path.items():
            if staged.status is FileStatus.CREATED:
                folders.update(parent_dirs(path))
        return sorted(folders)
