"""Backend-level tests for the ObjectStore implementations."""

import logging
import shutil

import pytest

from gitleaf import Repository
from gitleaf._dulwich import DulwichObjectStore
from gitleaf.exceptions import NotFoundError, StoreOperationError
from gitleaf.store import branch_ref
from gitleaf.tree import TreeNode

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not found")

EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
HELLO_BLOB = "ce013625030ba8dba906f756967f9e9ca394464a"  # "hello\n"


class TestObjectStore:
    def test_empty_tree_hash(self, store):
        assert store.write_tree([]) == EMPTY_TREE

    def test_blob_hash_matches_git(self, store):
        assert store.write_blob(b"hello\n") == HELLO_BLOB

    def test_listing_lines(self, store):
        blob = store.write_blob(b"hello\n")
        tree = store.write_tree([f"100644 blob {blob}\thello.txt"])
        assert store.read_tree_listing(tree) == [f"100644 blob {blob}\thello.txt"]

    def test_listing_quotes_special_names(self, store):
        blob = store.write_blob(b"x")
        tree = store.write_tree([f'100644 blob {blob}\t"a\\tb"'])
        node = TreeNode(store.read_tree_listing(tree))
        assert list(node) == ["a\tb"]

    def test_listing_is_canonically_sorted(self, store):
        blob = store.write_blob(b"x")
        t1 = store.write_tree([f"100644 blob {blob}\tb", f"100644 blob {blob}\ta"])
        t2 = store.write_tree([f"100644 blob {blob}\ta", f"100644 blob {blob}\tb"])
        assert t1 == t2

    def test_read_commit(self, store):
        c = store.write_commit(EMPTY_TREE, [], "hello commit")
        info = store.read_commit(c)
        assert info.hash == c
        assert info.tree == EMPTY_TREE
        assert info.parents == ()
        assert info.message.rstrip("\n") == "hello commit"

    def test_read_commit_missing(self, store):
        with pytest.raises(NotFoundError):
            store.read_commit("deadbeef" * 5)

    def test_read_commit_not_a_commit(self, store):
        tree = store.write_tree([])
        with pytest.raises(NotFoundError):
            store.read_commit(tree)

    def test_read_tree_missing(self, store):
        with pytest.raises(NotFoundError):
            store.read_tree_listing("deadbeef" * 5)

    def test_resolve_ref_missing(self, store):
        assert store.resolve_ref("refs/heads/nope") is None

    def test_update_ref_create_only_if_absent(self, store, main_tip):
        c = store.write_commit(EMPTY_TREE, [main_tip], "x")
        assert store.update_ref("refs/heads/new", c, None) is True
        assert store.update_ref("refs/heads/new", c, None) is False

    def test_update_ref_compare_and_set(self, store, main_tip):
        c1 = store.write_commit(EMPTY_TREE, [main_tip], "one")
        c2 = store.write_commit(EMPTY_TREE, [c1], "two")
        assert store.update_ref("refs/heads/main", c2, c1) is False
        assert store.resolve_ref("refs/heads/main") == main_tip
        assert store.update_ref("refs/heads/main", c1, main_tip) is True
        assert store.resolve_ref("refs/heads/main") == c1

    def test_gitlink_is_not_a_file(self, store, main_tip):
        tree = store.write_tree([f"160000 commit {'deadbeef' * 5}\tvendor"])
        c = store.write_commit(tree, [main_tip], "add submodule")
        with pytest.raises(NotFoundError, match="Not a file"):
            store.read_blob_at(c, "vendor")
        with pytest.raises(NotADirectoryError):
            store.list_tree_at(c, "vendor")
        with pytest.raises(NotADirectoryError):
            store.read_blob_at(c, "vendor/README")
        assert store.list_tree_at(c, None) == ["vendor"]

    def test_path_through_file(self, store, main_tip):
        blob = store.write_blob(b"x")
        tree = store.write_tree([f"100644 blob {blob}\ta"])
        c = store.write_commit(tree, [main_tip], "file a")
        with pytest.raises(NotADirectoryError):
            store.read_blob_at(c, "a/b.txt")
        with pytest.raises(NotFoundError):
            store.read_blob_at(c, "missing/b.txt")

    def test_list_branch_names(self, store, main_tip):
        store.update_ref(branch_ref("zeta"), main_tip, None)
        store.update_ref(branch_ref("alpha/nested"), main_tip, None)
        assert store.list_branch_names() == ["alpha/nested", "main", "zeta"]


def test_open_non_repository(tmp_path, backend):
    (tmp_path / "plain").mkdir()
    with pytest.raises(StoreOperationError, match="Not a git repository"):
        Repository.open(tmp_path / "plain", backend=backend)


class TestDulwichStore:
    def test_init_existing_dir_fails(self, tmp_path):
        (tmp_path / "x.git").mkdir()
        with pytest.raises(StoreOperationError):
            DulwichObjectStore.init(tmp_path / "x.git")

    def test_rejects_non_hex(self, tmp_path):
        store = DulwichObjectStore.init(tmp_path / "x.git")
        with pytest.raises(NotFoundError):
            store.read_commit("main")
        store.close()


@requires_git
class TestGitCommandStore:
    def test_failure_carries_diagnostic(self, tmp_path):
        from gitleaf._git import GitCommandObjectStore

        store = GitCommandObjectStore.init(tmp_path / "x.git")
        with pytest.raises(StoreOperationError) as excinfo:
            store.write_tree(["100644 blob deadbeefdeadbeefdeadbeefdeadbeefdeadbeef\tmissing"])
        assert excinfo.value.diagnostic
        assert "mktree" in str(excinfo.value)

    def test_non_ascii_names_listed_quoted(self, tmp_path):
        from gitleaf._git import GitCommandObjectStore

        store = GitCommandObjectStore.init(tmp_path / "x.git")
        blob = store.write_blob(b"x")
        tree = store.write_tree([f"100644 blob {blob}\tcafé—.xml"])
        (line,) = store.read_tree_listing(tree)
        assert line.endswith('"caf\\303\\251\\342\\200\\224.xml"')
        assert list(TreeNode([line])) == ["café—.xml"]

    def test_backends_share_one_repository(self, tmp_path):
        path = tmp_path / "shared.git"
        with Repository.open(path, backend="dulwich") as repo:
            repo.retry_write("main", "docs/tab\there.txt", b"from dulwich", "dulwich write")
        with Repository.open(path, backend="git") as repo:
            assert repo.read_file("main", "docs/tab\there.txt") == b"from dulwich"
            repo.retry_write("main", "docs/git.txt", b"from git", "git write")
        with Repository.open(path, backend="dulwich") as repo:
            assert sorted(repo.list_files("main", "docs")) == ["git.txt", "tab\there.txt"]

    def test_write_tree_logs_entry_count(self, tmp_path, caplog):
        from gitleaf._git import GitCommandObjectStore

        store = GitCommandObjectStore.init(tmp_path / "x.git")
        blob = store.write_blob(b"x")
        with caplog.at_level(logging.DEBUG, logger="gitleaf._git"):
            store.write_tree([f"100644 blob {blob}\ta", "", ""])
        assert any("(1 entries)" in r.getMessage() for r in caplog.records)
