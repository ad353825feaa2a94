"""Tree nodes and path resolution for gitleaf.

A :class:`TreeNode` is an editable, in-memory copy of one git tree,
built from the listing lines an object store returns for it
(``<mode> <type> <hash>\\t<name>``, the ``git ls-tree`` format) and
serialised back to the same format for writing.  :func:`resolve_path`
loads the chain of nodes a single-file edit has to rewrite.
"""

from __future__ import annotations

import enum
import os
from typing import TYPE_CHECKING, Iterable, Iterator, NamedTuple

from .escape import decode_name, encode_name
from .exceptions import FormatError

if TYPE_CHECKING:
    from .store import ObjectStore

__all__ = [
    "EntryType",
    "TreeEntry",
    "TreeNode",
    "parse_listing_line",
    "format_listing_line",
    "resolve_path",
    "split_path",
]

GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755
GIT_FILEMODE_LINK = 0o120000
GIT_FILEMODE_COMMIT = 0o160000


class EntryType(enum.Enum):
    """Kind of object a tree entry points at (the listing's type word)."""

    TREE = "tree"
    BLOB = "blob"
    COMMIT = "commit"

    @property
    def default_mode(self) -> int:
        return _DEFAULT_MODES[self]

    @classmethod
    def from_filemode(cls, mode: int) -> EntryType:
        if mode == GIT_FILEMODE_TREE:
            return cls.TREE
        if mode == GIT_FILEMODE_COMMIT:
            return cls.COMMIT
        return cls.BLOB


_DEFAULT_MODES = {
    EntryType.TREE: GIT_FILEMODE_TREE,
    EntryType.BLOB: GIT_FILEMODE_BLOB,
    EntryType.COMMIT: GIT_FILEMODE_COMMIT,
}


class TreeEntry(NamedTuple):
    """One entry of a tree; *name* is the decoded name."""

    name: str
    type: EntryType
    hash: str
    mode: int


def parse_listing_line(line: str) -> TreeEntry:
    """Parse one ``<mode> <type> <hash>\\t<escaped-name>`` line.

    Raises:
        FormatError: If the line does not have that shape.
    """
    meta, sep, literal = line.partition("\t")
    if not sep or not literal:
        raise FormatError(f"Malformed tree listing line: {line!r}")
    fields = meta.split(" ")
    if len(fields) != 3:
        raise FormatError(f"Malformed tree listing line: {line!r}")
    mode_str, type_str, obj_hash = fields
    try:
        mode = int(mode_str, 8)
        entry_type = EntryType(type_str)
    except ValueError as exc:
        raise FormatError(f"Malformed tree listing line: {line!r}") from exc
    if not obj_hash:
        raise FormatError(f"Malformed tree listing line: {line!r}")
    return TreeEntry(decode_name(literal), entry_type, obj_hash, mode)


def format_listing_line(entry: TreeEntry) -> str:
    """Render *entry* as a listing line, quoting its name if needed."""
    return f"{entry.mode:06o} {entry.type.value} {entry.hash}\t{encode_name(entry.name)}"


class TreeNode:
    """Editable copy of a single tree level.

    Edits never touch the stored tree; writing :meth:`serialize` back to
    the store yields a new tree object.
    """

    def __init__(self, lines: Iterable[str] = ()):
        self._entries: dict[str, TreeEntry] = {}
        for line in lines:
            if not line:
                continue
            entry = parse_listing_line(line)
            self._entries[entry.name] = entry

    def __repr__(self) -> str:
        return f"TreeNode({sorted(self._entries)!r})"

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, name: str) -> str | None:
        """Return the hash of entry *name*, or ``None`` if absent."""
        entry = self._entries.get(name)
        return entry.hash if entry is not None else None

    def entry(self, name: str) -> TreeEntry | None:
        return self._entries.get(name)

    def set(self, name: str, obj_hash: str, entry_type: EntryType, mode: int | None = None) -> None:
        """Insert or replace entry *name*.

        *mode* defaults to the regular mode for *entry_type*
        (``040000`` for trees, ``100644`` for blobs).
        """
        if not name or "/" in name:
            raise ValueError(f"Invalid entry name: {name!r}")
        if mode is None:
            mode = entry_type.default_mode
        self._entries[name] = TreeEntry(name, entry_type, obj_hash, mode)

    def remove(self, name: str) -> None:
        """Remove entry *name*; a missing entry is not an error."""
        self._entries.pop(name, None)

    def serialize(self) -> list[str]:
        return [format_listing_line(entry) for entry in self._entries.values()]


def _is_root_path(path: str | os.PathLike[str] | None) -> bool:
    """Return True if path represents the root (None, empty or only slashes)."""
    if path is None:
        return True
    return os.fspath(path).strip("/") == ""


def _normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a path: strip leading/trailing slashes, reject bad segments."""
    path = os.fspath(path)
    path = path.strip("/")
    if not path:
        raise ValueError("Path must not be empty")
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


def split_path(path: str | os.PathLike[str]) -> list[str]:
    """Normalize *path* and split it into components."""
    return _normalize_path(path).split("/")


def resolve_path(store: ObjectStore, root_hash: str | None, components: list[str]) -> list[TreeNode]:
    """Load the trees along *components*, root first.

    Returns one node per component: the root tree, then the tree reached
    through each component except the last (the leaf), whether or not
    the leaf exists yet.  Directories that do not exist yet, and a
    ``None`` root, come back as empty nodes so a write can create them.

    Raises:
        NotADirectoryError: If an intermediate component names a file.
    """
    if not components:
        raise ValueError("Path must have at least one component")

    node = TreeNode(store.read_tree_listing(root_hash)) if root_hash is not None else TreeNode()
    nodes = [node]
    for depth, name in enumerate(components[:-1]):
        entry = node.entry(name)
        if entry is None:
            node = TreeNode()
        elif entry.type is not EntryType.TREE:
            raise NotADirectoryError("/".join(components[:depth + 1]))
        else:
            node = TreeNode(store.read_tree_listing(entry.hash))
        nodes.append(node)
    return nodes
