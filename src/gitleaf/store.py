"""The object store contract gitleaf builds on.

An :class:`ObjectStore` exposes the handful of git plumbing operations
the mutation engine and branch controller need: reading and writing
blobs, trees and commits, and reading and compare-and-setting refs.
Two implementations ship with gitleaf:

* :class:`gitleaf._dulwich.DulwichObjectStore` talks to the repository
  through dulwich.
* :class:`gitleaf._git.GitCommandObjectStore` runs git plumbing commands
  in a subprocess.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

__all__ = ["CommitInfo", "ObjectStore", "BRANCH_PREFIX", "branch_ref"]

BRANCH_PREFIX = "refs/heads/"


def branch_ref(name: str) -> str:
    """Return the full ref name of branch *name*."""
    return f"{BRANCH_PREFIX}{name}"


@dataclass(frozen=True)
class CommitInfo:
    """Read-only view of a commit."""

    hash: str
    tree: str
    parents: tuple[str, ...]
    message: str


class ObjectStore:
    """Abstract object store.

    Hashes are 40-character hex strings.  Methods that look an object up
    raise :class:`~gitleaf.exceptions.NotFoundError` when it does not
    exist and :class:`~gitleaf.exceptions.StoreOperationError` when the
    store itself fails.
    """

    #: Directory of the repository; keys the per-repository lock.
    path: str

    def read_commit(self, commit_hash: str) -> CommitInfo:
        """Return tree, parents and message of a commit."""
        raise NotImplementedError(self.read_commit)

    def read_tree_listing(self, tree_hash: str) -> list[str]:
        """Return ``<mode> <type> <hash>\\t<escaped-name>`` lines for a tree."""
        raise NotImplementedError(self.read_tree_listing)

    def write_blob(self, data: bytes) -> str:
        raise NotImplementedError(self.write_blob)

    def write_tree(self, lines: Sequence[str]) -> str:
        """Store a tree given as listing lines and return its hash."""
        raise NotImplementedError(self.write_tree)

    def write_commit(self, tree_hash: str, parents: Sequence[str], message: str) -> str:
        raise NotImplementedError(self.write_commit)

    def resolve_ref(self, ref_name: str) -> str | None:
        """Return the commit a ref points at, or ``None`` if it does not exist."""
        raise NotImplementedError(self.resolve_ref)

    def update_ref(
        self,
        ref_name: str,
        new_hash: str,
        expected: str | None,
        message: str | None = None,
    ) -> bool:
        """Point *ref_name* at *new_hash* if it currently equals *expected*.

        ``expected=None`` means the ref must not exist yet.  Returns False,
        leaving the ref alone, when the current value does not match.
        """
        raise NotImplementedError(self.update_ref)

    def read_blob_at(self, rev: str, path: str) -> bytes:
        """Read the file at *path* in *rev* (a branch name or commit hash)."""
        raise NotImplementedError(self.read_blob_at)

    def list_tree_at(self, rev: str, path: str | None) -> list[str]:
        """Return the decoded entry names of directory *path* in *rev*."""
        raise NotImplementedError(self.list_tree_at)

    def list_branch_names(self) -> list[str]:
        raise NotImplementedError(self.list_branch_names)

    def close(self) -> None:
        """Release any resources held by the store."""
