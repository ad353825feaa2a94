"""Shared fixtures for gitleaf tests."""

import shutil

import pytest
from click.testing import CliRunner

from gitleaf import Repository
from gitleaf.cli import main

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not found")


@pytest.fixture(params=["dulwich", pytest.param("git", marks=requires_git)])
def backend(request):
    """Run a test once per object store backend."""
    return request.param


@pytest.fixture
def repo(tmp_path, backend):
    """A fresh repository with an empty first commit on 'main'."""
    r = Repository.open(tmp_path / "test.git", backend=backend)
    yield r
    r.close()


@pytest.fixture
def store(repo):
    return repo.store


@pytest.fixture
def main_tip(repo):
    return repo.resolve_branch("main")


# ---------------------------------------------------------------------------
# CLI fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def initialized_repo(tmp_path, runner):
    """Create a repo with a 'main' branch and return its path."""
    p = str(tmp_path / "test.git")
    result = runner.invoke(main, ["init", "--repo", p, "--branch", "main"])
    assert result.exit_code == 0, result.output
    return p


@pytest.fixture
def repo_with_files(initialized_repo, runner):
    """Repo with hello.txt and data/data.bin on 'main'."""
    p = initialized_repo
    r = runner.invoke(main, ["write", "--repo", p, "hello.txt"], input="hello world\n")
    assert r.exit_code == 0, r.output
    r = runner.invoke(main, ["write", "--repo", p, ":data/data.bin"], input="bin")
    assert r.exit_code == 0, r.output
    return p
