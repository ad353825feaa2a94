"""Object store backed by dulwich.

Trees cross the :class:`~gitleaf.store.ObjectStore` boundary as listing
lines, so names read from dulwich are quoted with
:func:`~gitleaf.tree.format_listing_line` and lines written back are
parsed with :func:`~gitleaf.tree.parse_listing_line`, exactly as they
would be when talking to ``git ls-tree`` / ``git mktree``.
"""

from __future__ import annotations

import logging
import time as _time
from contextlib import contextmanager
from pathlib import Path
from typing import Sequence

from dulwich.errors import NotGitRepository
from dulwich.file import FileLocked
from dulwich.objects import Blob as _DBlob
from dulwich.objects import Commit as _DCommit
from dulwich.objects import Tree as _DTree
from dulwich.objects import valid_hexsha
from dulwich.repo import Repo as _DRepo

from .exceptions import FormatError, NotFoundError, StoreOperationError
from .store import BRANCH_PREFIX, CommitInfo, ObjectStore, branch_ref
from .tree import (
    GIT_FILEMODE_COMMIT,
    GIT_FILEMODE_TREE,
    EntryType,
    TreeEntry,
    _is_root_path,
    _normalize_path,
    format_listing_line,
    parse_listing_line,
)

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors():
    """Report filesystem failures inside dulwich as store errors."""
    try:
        yield
    except OSError as exc:
        raise StoreOperationError(str(exc)) from exc


def _decode_name(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError(f"Entry name is not valid UTF-8: {raw!r}") from exc


class DulwichObjectStore(ObjectStore):
    """An :class:`~gitleaf.store.ObjectStore` over a dulwich ``Repo``."""

    def __init__(self, path_or_repo: str | Path | _DRepo, *, author: str = "gitleaf", email: str = "gitleaf@localhost"):
        if isinstance(path_or_repo, _DRepo):
            self._repo = path_or_repo
        else:
            try:
                self._repo = _DRepo(str(path_or_repo))
            except NotGitRepository as exc:
                raise StoreOperationError(f"Not a git repository: {path_or_repo}") from exc
        self.path = self._repo.path
        self._identity = f"{author} <{email}>".encode()

    def __repr__(self) -> str:
        return f"DulwichObjectStore({self.path!r})"

    @classmethod
    def init(
        cls,
        path: str | Path,
        *,
        branch: str | None = "main",
        author: str = "gitleaf",
        email: str = "gitleaf@localhost",
    ) -> DulwichObjectStore:
        """Create a bare repository, with an empty first commit on *branch*."""
        with _store_errors():
            repo = _DRepo.init_bare(str(path), mkdir=True)
        store = cls(repo, author=author, email=email)
        if branch is not None:
            tree_hash = store.write_tree([])
            commit_hash = store.write_commit(tree_hash, [], f"Initialize {branch}")
            store.update_ref(branch_ref(branch), commit_hash, None, message=f"branch: Created {branch}")
            with _store_errors():
                repo.refs.set_symbolic_ref(b"HEAD", branch_ref(branch).encode())
        return store

    def close(self) -> None:
        self._repo.close()

    # -- object access -------------------------------------------------------

    def _get(self, obj_hash: str, kind: type, label: str):
        if not valid_hexsha(obj_hash):
            raise NotFoundError(f"Not a {label} hash: {obj_hash!r}")
        try:
            with _store_errors():
                obj = self._repo.object_store[obj_hash.encode("ascii")]
        except KeyError:
            raise NotFoundError(f"{label.capitalize()} not found: {obj_hash}")
        if not isinstance(obj, kind):
            raise NotFoundError(f"Object {obj_hash} is not a {label}")
        return obj

    def _add(self, obj) -> str:
        with _store_errors():
            self._repo.object_store.add_object(obj)
        return obj.id.decode("ascii")

    def read_commit(self, commit_hash: str) -> CommitInfo:
        commit = self._get(commit_hash, _DCommit, "commit")
        return CommitInfo(
            hash=commit_hash,
            tree=commit.tree.decode("ascii"),
            parents=tuple(p.decode("ascii") for p in commit.parents),
            message=commit.message.decode("utf-8", "replace"),
        )

    def read_tree_listing(self, tree_hash: str) -> list[str]:
        tree = self._get(tree_hash, _DTree, "tree")
        return [
            format_listing_line(TreeEntry(
                _decode_name(item.path),
                EntryType.from_filemode(item.mode),
                item.sha.decode("ascii"),
                item.mode,
            ))
            for item in tree.iteritems()
        ]

    def write_blob(self, data: bytes) -> str:
        return self._add(_DBlob.from_string(data))

    def write_tree(self, lines: Sequence[str]) -> str:
        tree = _DTree()
        for line in lines:
            if not line:
                continue
            entry = parse_listing_line(line)
            tree.add(entry.name.encode("utf-8"), entry.mode, entry.hash.encode("ascii"))
        tree_hash = self._add(tree)
        logger.debug("wrote tree %s (%d entries)", tree_hash, len(tree))
        return tree_hash

    def write_commit(self, tree_hash: str, parents: Sequence[str], message: str) -> str:
        c = _DCommit()
        c.tree = tree_hash.encode("ascii")
        c.parents = [p.encode("ascii") for p in parents]
        c.author = c.committer = self._identity
        now = int(_time.time())
        c.author_time = c.commit_time = now
        c.author_timezone = c.commit_timezone = 0
        msg = message.encode("utf-8")
        if not msg.endswith(b"\n"):
            msg += b"\n"
        c.message = msg
        c.encoding = b"UTF-8"
        commit_hash = self._add(c)
        logger.debug("wrote commit %s (tree %s)", commit_hash, tree_hash)
        return commit_hash

    # -- refs ----------------------------------------------------------------

    def resolve_ref(self, ref_name: str) -> str | None:
        try:
            with _store_errors():
                sha = self._repo.refs[ref_name.encode()]
        except KeyError:
            return None
        return sha.decode("ascii")

    def update_ref(
        self,
        ref_name: str,
        new_hash: str,
        expected: str | None,
        message: str | None = None,
    ) -> bool:
        ref_bytes = ref_name.encode()
        msg = message.encode() if message is not None else None
        with _store_errors():
            try:
                if expected is None:
                    return self._repo.refs.add_if_new(
                        ref_bytes, new_hash.encode("ascii"),
                        committer=self._identity, message=msg,
                    )
                return self._repo.refs.set_if_equals(
                    ref_bytes, expected.encode("ascii"), new_hash.encode("ascii"),
                    committer=self._identity, message=msg,
                )
            except FileLocked:
                # another writer holds the ref's lock file
                logger.debug("ref %s is locked by another writer", ref_name)
                return False

    def list_branch_names(self) -> list[str]:
        with _store_errors():
            names = self._repo.refs.keys(base=BRANCH_PREFIX.rstrip("/").encode())
        return sorted(name.decode() for name in names)

    # -- path reads ----------------------------------------------------------

    def _resolve_rev(self, rev: str) -> str:
        """Turn a branch name, full ref or commit hash into a commit hash."""
        candidates = [branch_ref(rev)]
        if rev == "HEAD" or rev.startswith("refs/"):
            candidates.insert(0, rev)
        for ref_name in candidates:
            sha = self.resolve_ref(ref_name)
            if sha is not None:
                return sha
        if valid_hexsha(rev):
            self._get(rev, _DCommit, "commit")
            return rev
        raise NotFoundError(f"Unknown revision: {rev}")

    def _entry_at(self, tree_hash: str, path: str) -> tuple[int, str]:
        """Walk down from a tree and return ``(mode, hash)`` of the entry at *path*.

        Only trees are descended into; the entry itself is not loaded, so a
        gitlink pointing outside this repository can still be reported.
        """
        segments = path.split("/")
        tree = self._get(tree_hash, _DTree, "tree")
        for i, seg in enumerate(segments):
            try:
                mode, sha = tree[seg.encode("utf-8")]
            except KeyError:
                raise NotFoundError(f"Path not found: {path}")
            if i == len(segments) - 1:
                return mode, sha.decode("ascii")
            if mode != GIT_FILEMODE_TREE:
                raise NotADirectoryError("/".join(segments[:i + 1]))
            tree = self._get(sha.decode("ascii"), _DTree, "tree")

    def read_blob_at(self, rev: str, path: str) -> bytes:
        path = _normalize_path(path)
        commit = self.read_commit(self._resolve_rev(rev))
        mode, sha = self._entry_at(commit.tree, path)
        if mode == GIT_FILEMODE_TREE:
            raise IsADirectoryError(path)
        if mode == GIT_FILEMODE_COMMIT:
            raise NotFoundError(f"Not a file: {path}")
        return self._get(sha, _DBlob, "blob").data

    def list_tree_at(self, rev: str, path: str | None) -> list[str]:
        commit = self.read_commit(self._resolve_rev(rev))
        if _is_root_path(path):
            tree_hash = commit.tree
        else:
            path = _normalize_path(path)
            mode, tree_hash = self._entry_at(commit.tree, path)
            if mode != GIT_FILEMODE_TREE:
                raise NotADirectoryError(path)
        tree = self._get(tree_hash, _DTree, "tree")
        return [_decode_name(item.path) for item in tree.iteritems()]
