"""Repository: branch control and file access on top of an object store."""

from __future__ import annotations

import logging
import os
import random
import time
from pathlib import Path
from typing import Callable

from ._lock import repo_lock
from .exceptions import ConcurrentUpdateError, NotFoundError
from .mutate import delete_file, write_file
from .store import ObjectStore, branch_ref

__all__ = ["Repository", "BACKENDS"]

logger = logging.getLogger(__name__)


def _dulwich_backend():
    from ._dulwich import DulwichObjectStore
    return DulwichObjectStore


def _git_backend():
    from ._git import GitCommandObjectStore
    return GitCommandObjectStore


BACKENDS: dict[str, Callable[[], type]] = {
    "dulwich": _dulwich_backend,
    "git": _git_backend,
}


def _validate_branch_name(name: str) -> None:
    """Reject branch names git would refuse or misparse."""
    if not name or name.startswith("-") or name.endswith("/") or name.endswith(".lock"):
        raise ValueError(f"Invalid branch name {name!r}")
    for ch, label in ((":", "colon"), (" ", "space"), ("\t", "tab"), ("\n", "newline"), ("..", "'..'")):
        if ch in name:
            raise ValueError(f"Invalid branch name {name!r}: contains {label}")


class Repository:
    """A bare git repository edited one file per commit.

    Writes never touch a branch directly: :meth:`write_file` and
    :meth:`delete_file` return a new commit, and :meth:`move_branch`
    advances a branch onto it only if nobody else got there first.
    :meth:`retry_write` and :meth:`retry_delete` wrap that cycle.
    """

    def __init__(self, store: ObjectStore):
        self._store = store

    def __repr__(self) -> str:
        return f"Repository({self._store.path!r})"

    def __enter__(self) -> Repository:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        create: bool = True,
        branch: str | None = "main",
        backend: str = "dulwich",
        author: str = "gitleaf",
        email: str = "gitleaf@localhost",
    ) -> Repository:
        """Open or create a bare git repository.

        Args:
            path: Path to the bare repository.
            create: If True (default), create the repo when it doesn't exist.
                    If False, raise FileNotFoundError when missing.
            branch: Initial branch name when creating (default "main").
                    None to create a bare repo with no branches.
            backend: ``"dulwich"`` (default) or ``"git"`` to run the git
                     executable.
            author: Author and committer name for new commits.
            email: Author and committer email for new commits.
        """
        try:
            store_cls = BACKENDS[backend]()
        except KeyError:
            raise ValueError(f"Unknown backend {backend!r} (choose from {', '.join(BACKENDS)})")

        path = Path(path)
        if path.exists():
            return cls(store_cls(path, author=author, email=email))
        if not create:
            raise FileNotFoundError(f"Repository not found: {path}")
        if branch is not None:
            _validate_branch_name(branch)
        logger.info("creating repository %s", path)
        return cls(store_cls.init(path, branch=branch, author=author, email=email))

    @property
    def store(self) -> ObjectStore:
        """The underlying object store."""
        return self._store

    @property
    def path(self) -> str:
        return self._store.path

    def close(self) -> None:
        self._store.close()

    # --- Branch control ---

    def list_branches(self) -> list[str]:
        """Return all branch names, sorted."""
        return self._store.list_branch_names()

    def resolve_branch(self, name: str) -> str | None:
        """Return the commit *name* points at, or ``None`` if there is no such branch."""
        return self._store.resolve_ref(branch_ref(name))

    def commit_parents(self, commit_hash: str) -> list[str]:
        return list(self._store.read_commit(commit_hash).parents)

    def commit_message(self, commit_hash: str) -> str:
        """The commit message (trailing newline stripped)."""
        return self._store.read_commit(commit_hash).message.rstrip("\n")

    def move_branch(self, branch: str, commit_hash: str) -> bool:
        """Advance *branch* to *commit_hash* if it was built on the branch tip.

        The move happens when the branch does not exist yet or currently
        points at one of the commit's parents.  Otherwise someone else
        advanced the branch first and False is returned with the branch
        untouched; rebuild the change on the new tip and try again.
        """
        _validate_branch_name(branch)
        parents = self.commit_parents(commit_hash)
        ref_name = branch_ref(branch)
        with repo_lock(self._store.path):
            current = self._store.resolve_ref(ref_name)
            if current is not None and current not in parents:
                logger.debug("branch %s is at %s, not a parent of %s", branch, current, commit_hash)
                return False
            message = self.commit_message(commit_hash).split("\n", 1)[0]
            moved = self._store.update_ref(ref_name, commit_hash, current, message=f"commit: {message}")
        if moved:
            logger.debug("branch %s: %s -> %s", branch, current, commit_hash)
        else:
            logger.debug("branch %s changed under update-ref", branch)
        return moved

    # --- Read operations ---

    def read_file(self, rev: str, path: str | os.PathLike[str]) -> bytes:
        """Read a file from *rev* (branch name or commit hash) without a checkout.

        Raises:
            NotFoundError: If *rev* or *path* does not exist.
            IsADirectoryError: If *path* is a directory.
        """
        return self._store.read_blob_at(rev, os.fspath(path))

    def read_text(self, rev: str, path: str | os.PathLike[str], encoding: str = "utf-8") -> str:
        return self.read_file(rev, path).decode(encoding)

    def list_files(self, rev: str, path: str | os.PathLike[str] | None = None) -> list[str]:
        """List entry names in directory *path* of *rev* (root if ``None``).

        Raises:
            NotFoundError: If *rev* or *path* does not exist.
            NotADirectoryError: If *path* is a file.
        """
        return self._store.list_tree_at(rev, os.fspath(path) if path is not None else None)

    def exists(self, rev: str, path: str | os.PathLike[str]) -> bool:
        """Return True if *path* is a file in *rev*."""
        try:
            self.read_file(rev, path)
        except (NotFoundError, IsADirectoryError, NotADirectoryError):
            return False
        return True

    # --- Write operations ---

    def write_file(
        self,
        source_commit: str | None,
        path: str | os.PathLike[str],
        content: bytes | str,
        message: str,
        *,
        mode: int | None = None,
    ) -> str:
        """Create a commit on top of *source_commit* with *content* at *path*.

        No branch moves; see :meth:`move_branch`.
        """
        return write_file(self._store, source_commit, path, content, message, mode=mode)

    def delete_file(self, source_commit: str | None, path: str | os.PathLike[str], message: str) -> str:
        """Create a commit on top of *source_commit* without *path*.

        No branch moves; see :meth:`move_branch`.
        """
        return delete_file(self._store, source_commit, path, message)

    def _retry(self, branch: str, build: Callable[[str | None], str], retries: int, create: bool) -> str:
        for attempt in range(retries):
            tip = self.resolve_branch(branch)
            if tip is None and not create:
                raise NotFoundError(f"Branch not found: {branch}")
            commit_hash = build(tip)
            if self.move_branch(branch, commit_hash):
                return commit_hash
            if attempt < retries - 1:
                delay = min(0.01 * (2 ** attempt), 0.2)
                time.sleep(random.uniform(0, delay))
        raise ConcurrentUpdateError(
            f"Branch {branch!r} kept advancing; gave up after {retries} attempts"
        )

    def retry_write(
        self,
        branch: str,
        path: str | os.PathLike[str],
        content: bytes | str,
        message: str,
        *,
        mode: int | None = None,
        retries: int = 5,
        create: bool = False,
    ) -> str:
        """Write *content* to *path* on *branch* with automatic retry on concurrent modification.

        Re-reads the branch tip on each attempt.  Uses exponential backoff
        with jitter (base 10ms, factor 2x, cap 200ms) to avoid thundering-herd.
        With *create*, a missing branch is started with a root commit.

        Returns:
            The commit the branch now points at.

        Raises:
            NotFoundError: If the branch does not exist and *create* is False.
            ConcurrentUpdateError: If all attempts are exhausted.
        """
        return self._retry(
            branch,
            lambda tip: self.write_file(tip, path, content, message, mode=mode),
            retries,
            create,
        )

    def retry_delete(
        self,
        branch: str,
        path: str | os.PathLike[str],
        message: str,
        *,
        retries: int = 5,
    ) -> str:
        """Delete *path* on *branch*, retrying like :meth:`retry_write`."""
        return self._retry(
            branch,
            lambda tip: self.delete_file(tip, path, message),
            retries,
            False,
        )
