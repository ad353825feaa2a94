"""Basic commands: init, cat, ls, write, rm."""

from __future__ import annotations

import os
import shutil
import sys

import click

from ..exceptions import GitleafError
from ._helpers import (
    main,
    _branch_option,
    _message_option,
    _normalize_repo_path,
    _open_repo,
    _repo_option,
    _require_repo,
    _status,
    _strip_colon,
)


def _ref_or_branch(ref: str | None, branch: str) -> str:
    return ref if ref else branch


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.option("--branch", "-b", default="main", help="Initial branch name (default: main).")
@click.option("-f", "--force", is_flag=True, help="Destroy existing repo and recreate.")
@click.pass_context
def init(ctx, branch, force):
    """Create a new bare git repository."""
    repo_path = _require_repo(ctx)
    if force and os.path.exists(repo_path):
        shutil.rmtree(repo_path)
    elif os.path.exists(repo_path):
        raise click.ClickException(f"Repository already exists: {repo_path}")
    try:
        _open_repo(ctx, create=True, branch=branch).close()
    except ValueError as exc:
        raise click.ClickException(str(exc))
    _status(ctx, f"Initialized {repo_path}")


# ---------------------------------------------------------------------------
# cat
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("path")
@_branch_option
@click.option("--ref", default=None, help="Read from this branch or commit hash instead.")
@click.pass_context
def cat(ctx, path, branch, ref):
    """Print the contents of PATH."""
    path = _normalize_repo_path(_strip_colon(path))
    with _open_repo(ctx) as repo:
        try:
            data = repo.read_file(_ref_or_branch(ref, branch), path)
        except IsADirectoryError:
            raise click.ClickException(f"{path} is a directory")
        except NotADirectoryError as exc:
            raise click.ClickException(f"Not a directory: {exc}")
        except GitleafError as exc:
            raise click.ClickException(str(exc))
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


# ---------------------------------------------------------------------------
# ls
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("path", required=False, default=None)
@_branch_option
@click.option("--ref", default=None, help="List this branch or commit hash instead.")
@click.pass_context
def ls(ctx, path, branch, ref):
    """List the entries of directory PATH (default: the root)."""
    if path is not None:
        path = _strip_colon(path)
        path = _normalize_repo_path(path) if path.strip("/") else None
    with _open_repo(ctx) as repo:
        try:
            names = repo.list_files(_ref_or_branch(ref, branch), path)
        except NotADirectoryError:
            raise click.ClickException(f"Not a directory: {path}")
        except GitleafError as exc:
            raise click.ClickException(str(exc))
    for name in sorted(names):
        click.echo(name)


# ---------------------------------------------------------------------------
# write
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("path")
@_branch_option
@_message_option
@click.option("--file", "-f", "source", type=click.File("rb"), default="-",
              help="Read content from this file instead of stdin.")
@click.option("--executable", is_flag=True, help="Store the file as executable (mode 100755).")
@click.option("--create-branch", is_flag=True, help="Start the branch if it does not exist.")
@click.option("--retries", default=5, show_default=True, type=click.IntRange(min=1),
              help="Attempts when the branch moves concurrently.")
@click.pass_context
def write(ctx, path, branch, message, source, executable, create_branch, retries):
    """Commit content from stdin (or --file) to PATH on a branch."""
    path = _normalize_repo_path(_strip_colon(path))
    data = source.read()
    if message is None:
        message = f"Update {path}"
    mode = 0o100755 if executable else None
    with _open_repo(ctx) as repo:
        try:
            commit_hash = repo.retry_write(
                branch, path, data, message,
                mode=mode, retries=retries, create=create_branch,
            )
        except NotADirectoryError as exc:
            raise click.ClickException(f"Not a directory: {exc}")
        except (GitleafError, ValueError) as exc:
            raise click.ClickException(str(exc))
    _status(ctx, f"{branch}: {commit_hash}")


# ---------------------------------------------------------------------------
# rm
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("path")
@_branch_option
@_message_option
@click.option("--retries", default=5, show_default=True, type=click.IntRange(min=1),
              help="Attempts when the branch moves concurrently.")
@click.pass_context
def rm(ctx, path, branch, message, retries):
    """Commit the removal of file PATH on a branch."""
    path = _normalize_repo_path(_strip_colon(path))
    if message is None:
        message = f"Remove {path}"
    with _open_repo(ctx) as repo:
        try:
            if not repo.exists(branch, path):
                raise click.ClickException(f"File not found: {path}")
            commit_hash = repo.retry_delete(branch, path, message, retries=retries)
        except (GitleafError, ValueError) as exc:
            raise click.ClickException(str(exc))
    _status(ctx, f"{branch}: {commit_hash}")
