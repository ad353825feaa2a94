"""Single-file commits built bottom-up from one leaf edit.

Both entry points load the trees along the path, change the leaf entry
in the innermost one, then write each tree back from the leaf towards
the root so that every parent can record its child's new hash.  Only
the trees on that path are rewritten; everything else is shared with
the source commit.  Nothing here moves a branch: the returned commit is
unreachable until the caller points a ref at it.
"""

from __future__ import annotations

import logging
import os

from .store import ObjectStore
from .tree import EntryType, TreeNode, resolve_path, split_path

__all__ = ["write_file", "delete_file"]

logger = logging.getLogger(__name__)


def _root_tree(store: ObjectStore, source_commit: str | None) -> str | None:
    if source_commit is None:
        return None
    return store.read_commit(source_commit).tree


def _rewrite_ancestors(store: ObjectStore, trees: list[TreeNode], components: list[str]) -> str:
    """Write *trees* from the innermost node up and return the new root tree hash.

    A directory left empty by the edit is dropped from its parent rather
    than stored as an empty tree.  Callers only pass chains whose leaf
    node was actually changed, so every node here held the edited path
    before the edit.
    """
    child_hash = store.write_tree(trees[-1].serialize())
    child_empty = len(trees[-1]) == 0
    for depth in range(len(trees) - 2, -1, -1):
        node = trees[depth]
        name = components[depth]
        if child_empty:
            node.remove(name)
        else:
            node.set(name, child_hash, EntryType.TREE)
        child_hash = store.write_tree(node.serialize())
        child_empty = len(node) == 0
    return child_hash


def _commit(store: ObjectStore, tree_hash: str, source_commit: str | None, message: str) -> str:
    parents = [source_commit] if source_commit is not None else []
    return store.write_commit(tree_hash, parents, message)


def write_file(
    store: ObjectStore,
    source_commit: str | None,
    path: str | os.PathLike[str],
    content: bytes | str,
    message: str,
    *,
    mode: int | None = None,
) -> str:
    """Commit *content* at *path* on top of *source_commit*.

    Missing intermediate directories are created.  *mode* overrides the
    blob's filemode (e.g. ``0o100755``).  With ``source_commit=None`` a
    root commit holding just this file is created.

    Returns:
        Hash of the new commit, whose only parent is *source_commit*.

    Raises:
        NotFoundError: If *source_commit* does not exist.
        NotADirectoryError: If a directory on *path* is a file.
        StoreOperationError: If the store fails at any step.
    """
    components = split_path(path)
    if isinstance(content, str):
        content = content.encode("utf-8")

    trees = resolve_path(store, _root_tree(store, source_commit), components)
    blob_hash = store.write_blob(content)
    trees[-1].set(components[-1], blob_hash, EntryType.BLOB, mode)
    tree_hash = _rewrite_ancestors(store, trees, components)

    commit_hash = _commit(store, tree_hash, source_commit, message)
    logger.debug("write %s: blob %s, tree %s, commit %s", "/".join(components), blob_hash, tree_hash, commit_hash)
    return commit_hash


def delete_file(
    store: ObjectStore,
    source_commit: str | None,
    path: str | os.PathLike[str],
    message: str,
) -> str:
    """Commit the removal of *path* on top of *source_commit*.

    Deleting a path that does not exist is not an error: the new commit
    simply carries the source commit's tree.
    """
    components = split_path(path)

    root_hash = _root_tree(store, source_commit)
    trees = resolve_path(store, root_hash, components)
    if components[-1] in trees[-1]:
        trees[-1].remove(components[-1])
        tree_hash = _rewrite_ancestors(store, trees, components)
    elif root_hash is not None:
        # nothing to remove; directories that were already empty stay put
        tree_hash = root_hash
    else:
        tree_hash = store.write_tree([])

    commit_hash = _commit(store, tree_hash, source_commit, message)
    logger.debug("delete %s: tree %s, commit %s", "/".join(components), tree_hash, commit_hash)
    return commit_hash
