"""Branch commands: branch list, branch show, branch move."""

from __future__ import annotations

import click

from ..exceptions import GitleafError
from . import _helpers
from ._helpers import branch, _open_repo, _repo_option, _status


@branch.command("list")
@_repo_option
@click.pass_context
def branch_list(ctx):
    """List branch names."""
    with _open_repo(ctx) as repo:
        for name in repo.list_branches():
            click.echo(name)


@branch.command("show")
@_repo_option
@click.argument("name")
@click.pass_context
def branch_show(ctx, name):
    """Print the commit hash branch NAME points at."""
    with _open_repo(ctx) as repo:
        commit_hash = repo.resolve_branch(name)
    if commit_hash is None:
        raise click.ClickException(f"Branch not found: {name}")
    click.echo(commit_hash)


@branch.command("move")
@_repo_option
@click.argument("name")
@click.argument("commit")
@click.pass_context
def branch_move(ctx, name, commit):
    """Advance branch NAME to COMMIT.

    Succeeds only if NAME does not exist yet or points at a parent of
    COMMIT.
    """
    with _open_repo(ctx) as repo:
        try:
            moved = repo.move_branch(name, commit)
        except (GitleafError, ValueError) as exc:
            raise click.ClickException(str(exc))
    if not moved:
        raise click.ClickException(
            f"Branch {name!r} is not at a parent of {commit}; re-read it and retry"
        )
    _status(ctx, f"{name}: {commit}")


# Wire into the group so a bare ``branch`` lists
_helpers.branch_list = branch_list
