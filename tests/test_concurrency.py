"""Concurrent writers racing on one branch."""

import os
import threading
import time

import pytest

from gitleaf import ConcurrentUpdateError, Repository
from gitleaf._lock import get_repo_lock


def test_threads_all_land(repo):
    n = 6
    errors = []
    barrier = threading.Barrier(n)

    def writer(i):
        try:
            barrier.wait()
            repo.retry_write("main", f"w/{i}.txt", f"writer {i}".encode(), f"writer {i}", retries=100)
        except Exception as exc:  # collected and asserted below
            errors.append(exc)

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(repo.list_files("main", "w")) == sorted(f"{i}.txt" for i in range(n))

    # history is linear: n writes on top of the initial commit
    depth = 0
    commit = repo.resolve_branch("main")
    while True:
        parents = repo.commit_parents(commit)
        if not parents:
            break
        assert len(parents) == 1
        commit = parents[0]
        depth += 1
    assert depth == n


def _race(repo, candidates):
    results = []
    barrier = threading.Barrier(len(candidates))

    def mover(commit):
        barrier.wait()
        results.append((commit, repo.move_branch("main", commit)))

    threads = [threading.Thread(target=mover, args=(c,)) for c in candidates]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return [c for c, ok in results if ok]


def test_stale_racers_exactly_one_wins(repo, main_tip):
    candidates = [repo.write_file(main_tip, f"f{i}.txt", b"x", f"c{i}") for i in range(8)]
    winners = _race(repo, candidates)
    assert len(winners) == 1
    assert repo.resolve_branch("main") == winners[0]


class BlindRefStore:
    """Store whose ref update overwrites whatever the ref holds, slowly."""

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def update_ref(self, ref_name, new_hash, expected, message=None):
        time.sleep(0.05)
        current = self._inner.resolve_ref(ref_name)
        return self._inner.update_ref(ref_name, new_hash, current, message=message)


def test_move_branch_checks_and_updates_under_one_lock(repo, main_tip):
    candidates = [repo.write_file(main_tip, f"f{i}.txt", b"x", f"c{i}") for i in range(4)]
    blind = Repository(BlindRefStore(repo.store))
    winners = _race(blind, candidates)
    assert len(winners) == 1
    assert repo.resolve_branch("main") == winners[0]


class TestRefLockFile:
    """Another process holding ``<ref>.lock`` is a lost race, not an error."""

    @pytest.fixture
    def held_lock(self, repo):
        lock_path = os.path.join(repo.path, "refs", "heads", "main.lock")
        with open(lock_path, "wb"):
            pass
        yield lock_path
        if os.path.exists(lock_path):
            os.remove(lock_path)

    def test_move_branch_returns_false(self, repo, main_tip, held_lock):
        c = repo.write_file(main_tip, "f.txt", b"x", "add")
        assert repo.move_branch("main", c) is False
        assert repo.resolve_branch("main") == main_tip

    def test_retry_write_gives_up(self, repo, held_lock, monkeypatch):
        monkeypatch.setattr("gitleaf.repo.time.sleep", lambda s: None)
        with pytest.raises(ConcurrentUpdateError):
            repo.retry_write("main", "f.txt", b"x", "msg", retries=3)

    def test_write_lands_after_release(self, repo, main_tip, held_lock):
        c = repo.write_file(main_tip, "f.txt", b"x", "add")
        assert repo.move_branch("main", c) is False
        os.remove(held_lock)
        assert repo.move_branch("main", c) is True


class TestRepoLock:
    def test_same_repo_same_lock(self, tmp_path):
        path = tmp_path / "test.git"
        Repository.open(path).close()
        assert get_repo_lock(str(path)) is get_repo_lock(str(path) + "/")

    def test_different_repos_do_not_share(self, tmp_path):
        a = tmp_path / "a.git"
        b = tmp_path / "b.git"
        Repository.open(a).close()
        Repository.open(b).close()
        assert get_repo_lock(str(a)) is not get_repo_lock(str(b))

    def test_lock_held_only_by_one_repo(self, tmp_path):
        a = tmp_path / "a.git"
        b = tmp_path / "b.git"
        Repository.open(a).close()
        Repository.open(b).close()
        with get_repo_lock(str(a)):
            lock_b = get_repo_lock(str(b))
            assert lock_b.acquire(blocking=False)
            lock_b.release()
