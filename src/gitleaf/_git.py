"""Object store that runs git plumbing commands in a subprocess.

Every operation maps onto one or two plumbing commands (``cat-file``,
``ls-tree``, ``hash-object``, ``mktree``, ``commit-tree``, ``rev-parse``,
``update-ref``, ``for-each-ref``).  A non-zero exit becomes a
:class:`~gitleaf.exceptions.StoreOperationError` carrying git's stderr.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from .escape import decode_name
from .exceptions import NotFoundError, StoreOperationError
from .store import BRANCH_PREFIX, CommitInfo, ObjectStore, branch_ref
from .tree import EntryType, TreeEntry, _is_root_path, _normalize_path, parse_listing_line

logger = logging.getLogger(__name__)

_HEX_SHA = re.compile(r"^[0-9a-f]{40}$")
_ZERO_SHA = "0" * 40

# stderr fragments git prints when update-ref loses to another writer: the
# old-value check failed or the ref's lock file is held
_CAS_MISMATCH = (
    "but expected",
    "already exists",
    "unable to resolve reference",
    ".lock': File exists",
)


def _find_git() -> str:
    git = shutil.which("git")
    if git is None:
        raise StoreOperationError("git is not installed or not on PATH")
    return git


def _run_git(
    args: list[str],
    *,
    git_dir: str | None = None,
    input: bytes | None = None,
    env: dict[str, str] | None = None,
    ok: tuple[int, ...] | None = (0,),
) -> subprocess.CompletedProcess:
    """Run ``git [--git-dir=...] args`` and return the completed process.

    Exit codes outside *ok* raise :class:`StoreOperationError`; pass
    ``ok=None`` to inspect the result yourself.
    """
    command = [_find_git()]
    if git_dir is not None:
        command.append(f"--git-dir={git_dir}")
    command.extend(args)
    logger.debug("running %s", " ".join(command))
    try:
        result = subprocess.run(
            command,
            input=input,
            capture_output=True,
            env=env,
        )
    except OSError as exc:
        raise StoreOperationError(str(exc), command) from exc
    if ok is not None and result.returncode not in ok:
        msg = result.stderr.decode("utf-8", "replace").strip()
        raise StoreOperationError(msg or f"exit status {result.returncode}", command)
    return result


class GitCommandObjectStore(ObjectStore):
    """An :class:`~gitleaf.store.ObjectStore` driving the ``git`` executable."""

    def __init__(self, path: str | Path, *, author: str = "gitleaf", email: str = "gitleaf@localhost"):
        self.path = os.fspath(path)
        self._env = dict(
            os.environ,
            GIT_AUTHOR_NAME=author,
            GIT_AUTHOR_EMAIL=email,
            GIT_COMMITTER_NAME=author,
            GIT_COMMITTER_EMAIL=email,
            GIT_LITERAL_PATHSPECS="1",
        )
        try:
            self._git(["rev-parse", "--git-dir"])
        except StoreOperationError as exc:
            if exc.command is None:
                raise
            raise StoreOperationError(f"Not a git repository: {self.path}", exc.command) from exc

    def __repr__(self) -> str:
        return f"GitCommandObjectStore({self.path!r})"

    @classmethod
    def init(
        cls,
        path: str | Path,
        *,
        branch: str | None = "main",
        author: str = "gitleaf",
        email: str = "gitleaf@localhost",
    ) -> GitCommandObjectStore:
        """Create a bare repository, with an empty first commit on *branch*."""
        _run_git(["init", "--bare", "--quiet", os.fspath(path)])
        store = cls(path, author=author, email=email)
        if branch is not None:
            tree_hash = store.write_tree([])
            commit_hash = store.write_commit(tree_hash, [], f"Initialize {branch}")
            store.update_ref(branch_ref(branch), commit_hash, None, message=f"branch: Created {branch}")
            store._git(["symbolic-ref", "HEAD", branch_ref(branch)])
        return store

    def close(self) -> None:
        pass

    def _git(self, args: list[str], **kwargs) -> subprocess.CompletedProcess:
        return _run_git(args, git_dir=self.path, env=self._env, **kwargs)

    def _output(self, args: list[str], **kwargs) -> str:
        return self._git(args, **kwargs).stdout.decode("utf-8").strip()

    def _object_type(self, obj_hash: str) -> str | None:
        if not _HEX_SHA.match(obj_hash):
            return None
        if self._git(["cat-file", "-e", obj_hash], ok=(0, 1)).returncode != 0:
            return None
        return self._output(["cat-file", "-t", obj_hash])

    def _require(self, obj_hash: str, label: str) -> None:
        kind = self._object_type(obj_hash)
        if kind is None:
            raise NotFoundError(f"{label.capitalize()} not found: {obj_hash}")
        if kind != label:
            raise NotFoundError(f"Object {obj_hash} is not a {label}")

    # -- objects -------------------------------------------------------------

    def read_commit(self, commit_hash: str) -> CommitInfo:
        self._require(commit_hash, "commit")
        raw = self._git(["cat-file", "commit", commit_hash]).stdout
        header, _, message = raw.partition(b"\n\n")
        tree = None
        parents = []
        for line in header.decode("utf-8", "replace").split("\n"):
            key, _, value = line.partition(" ")
            if key == "tree":
                tree = value
            elif key == "parent":
                parents.append(value)
        if tree is None:
            raise StoreOperationError(f"Commit {commit_hash} has no tree")
        return CommitInfo(commit_hash, tree, tuple(parents), message.decode("utf-8", "replace"))

    def read_tree_listing(self, tree_hash: str) -> list[str]:
        self._require(tree_hash, "tree")
        out = self._git(["ls-tree", tree_hash]).stdout.decode("utf-8")
        return [line for line in out.split("\n") if line]

    def write_blob(self, data: bytes) -> str:
        return self._output(["hash-object", "-w", "--stdin"], input=data)

    def write_tree(self, lines: Sequence[str]) -> str:
        entries = [line for line in lines if line]
        text = "".join(f"{line}\n" for line in entries)
        tree_hash = self._output(["mktree"], input=text.encode("utf-8"))
        logger.debug("wrote tree %s (%d entries)", tree_hash, len(entries))
        return tree_hash

    def write_commit(self, tree_hash: str, parents: Sequence[str], message: str) -> str:
        args = ["commit-tree", tree_hash]
        for parent in parents:
            args.extend(["-p", parent])
        commit_hash = self._output(args, input=message.encode("utf-8"))
        logger.debug("wrote commit %s (tree %s)", commit_hash, tree_hash)
        return commit_hash

    # -- refs ----------------------------------------------------------------

    def resolve_ref(self, ref_name: str) -> str | None:
        result = self._git(["rev-parse", "--verify", "--quiet", ref_name], ok=(0, 1))
        if result.returncode != 0:
            return None
        return result.stdout.decode("ascii").strip()

    def update_ref(
        self,
        ref_name: str,
        new_hash: str,
        expected: str | None,
        message: str | None = None,
    ) -> bool:
        args = ["update-ref"]
        if message is not None:
            args.extend(["-m", message])
        args.extend([ref_name, new_hash, expected or _ZERO_SHA])
        result = self._git(args, ok=None)
        if result.returncode == 0:
            return True
        msg = result.stderr.decode("utf-8", "replace").strip()
        if any(marker in msg for marker in _CAS_MISMATCH):
            logger.debug("update-ref %s rejected: %s", ref_name, msg)
            return False
        raise StoreOperationError(msg or f"exit status {result.returncode}", ["git", *args])

    def list_branch_names(self) -> list[str]:
        out = self._output(["for-each-ref", "--format=%(refname)", BRANCH_PREFIX])
        return sorted(line[len(BRANCH_PREFIX):] for line in out.split("\n") if line)

    # -- path reads ----------------------------------------------------------

    def _resolve_rev(self, rev: str) -> str:
        candidates = [branch_ref(rev)]
        if rev == "HEAD" or rev.startswith("refs/"):
            candidates.insert(0, rev)
        for ref_name in candidates:
            sha = self.resolve_ref(ref_name)
            if sha is not None:
                return sha
        if self._object_type(rev) == "commit":
            return rev
        raise NotFoundError(f"Unknown revision: {rev}")

    def _entry(self, commit_hash: str, path: str) -> TreeEntry | None:
        out = self._git(["ls-tree", "--full-tree", commit_hash, "--", path]).stdout.decode("utf-8")
        for line in out.split("\n"):
            if line:
                entry = parse_listing_line(line)
                if entry.name == path:
                    return entry
        return None

    def _lookup(self, commit_hash: str, path: str) -> TreeEntry:
        """Return the tree entry at *path* in a commit, named by its full path.

        ``ls-tree`` reports the entry without loading its object, so gitlinks
        to commits outside this repository resolve too.
        """
        entry = self._entry(commit_hash, path)
        if entry is not None:
            return entry
        segments = path.split("/")
        for i in range(1, len(segments)):
            parent = self._entry(commit_hash, "/".join(segments[:i]))
            if parent is None:
                break
            if parent.type is not EntryType.TREE:
                raise NotADirectoryError("/".join(segments[:i]))
        raise NotFoundError(f"Path not found: {path}")

    def read_blob_at(self, rev: str, path: str) -> bytes:
        path = _normalize_path(path)
        entry = self._lookup(self._resolve_rev(rev), path)
        if entry.type is EntryType.TREE:
            raise IsADirectoryError(path)
        if entry.type is not EntryType.BLOB:
            raise NotFoundError(f"Not a file: {path}")
        return self._git(["cat-file", "blob", entry.hash]).stdout

    def list_tree_at(self, rev: str, path: str | None) -> list[str]:
        commit_hash = self._resolve_rev(rev)
        if _is_root_path(path):
            tree_hash = self.read_commit(commit_hash).tree
        else:
            path = _normalize_path(path)
            entry = self._lookup(commit_hash, path)
            if entry.type is not EntryType.TREE:
                raise NotADirectoryError(path)
            tree_hash = entry.hash
        out = self._git(["ls-tree", "--name-only", tree_hash]).stdout.decode("utf-8")
        return [decode_name(line) for line in out.split("\n") if line]
