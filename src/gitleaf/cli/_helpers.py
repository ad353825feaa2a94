"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import logging
import sys

import click

from ..exceptions import GitleafError
from ..repo import BACKENDS, Repository
from ..tree import _normalize_path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _strip_colon(raw: str) -> str:
    """Strip an optional leading ':' from a repo-side path."""
    return raw[1:] if raw.startswith(":") else raw


def _normalize_repo_path(path: str) -> str:
    """Normalize and validate a repo-side path via the library's _normalize_path."""
    if not path:
        raise click.ClickException("Repo path must not be empty")
    try:
        return _normalize_path(path)
    except ValueError as exc:
        raise click.ClickException(f"Invalid repo path: {exc}")


def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _store_repo(ctx, param, value):
    """Click callback: store --repo value in the context."""
    ctx.ensure_object(dict)
    if value is not None:
        ctx.obj["repo_path"] = value
    return value


def _repo_option(f):
    """Shared --repo/-r option decorator for all commands."""
    return click.option(
        "--repo", "-r", type=click.Path(), envvar="GITLEAF_REPO",
        help="Path to bare git repository (or set GITLEAF_REPO).",
        expose_value=False, callback=_store_repo, is_eager=True,
    )(f)


def _branch_option(f):
    return click.option(
        "--branch", "-b", default="main", envvar="GITLEAF_BRANCH", show_default=True,
        help="Branch to operate on (or set GITLEAF_BRANCH).",
    )(f)


def _message_option(f):
    return click.option("--message", "-m", default=None, help="Commit message.")(f)


def _require_repo(ctx) -> str:
    """Get the repo path from context, raising a clear error if missing."""
    repo = ctx.obj.get("repo_path")
    if not repo:
        raise click.ClickException(
            "No repository specified. Use --repo or set GITLEAF_REPO."
        )
    return repo


def _open_repo(ctx, *, create: bool = False, branch: str | None = "main") -> Repository:
    repo_path = _require_repo(ctx)
    try:
        return Repository.open(
            repo_path,
            create=create,
            branch=branch,
            backend=ctx.obj["backend"],
            author=ctx.obj["author"],
            email=ctx.obj["email"],
        )
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc))
    except GitleafError as exc:
        raise click.ClickException(str(exc))


_log_handler: logging.Handler | None = None


def _configure_logging(verbose: bool) -> None:
    """Send gitleaf's DEBUG log to stderr when -v is given."""
    global _log_handler
    logger = logging.getLogger("gitleaf")
    if _log_handler is not None:
        logger.removeHandler(_log_handler)
        _log_handler = None
    if not verbose:
        return
    _log_handler = logging.StreamHandler(sys.stderr)
    _log_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(_log_handler)
    logger.setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--repo", "-r", type=click.Path(), envvar="GITLEAF_REPO",
              help="Path to bare git repository (or set GITLEAF_REPO).",
              expose_value=False, callback=_store_repo, is_eager=True)
@click.option("--backend", type=click.Choice(sorted(BACKENDS)), default="dulwich",
              envvar="GITLEAF_BACKEND", show_default=True,
              help="Object store backend (or set GITLEAF_BACKEND).")
@click.option("--author", default="gitleaf", envvar="GITLEAF_AUTHOR",
              help="Author name for new commits.")
@click.option("--email", default="gitleaf@localhost", envvar="GITLEAF_EMAIL",
              help="Author email for new commits.")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, backend, author, email, verbose):
    """gitleaf: edit files in a bare git repository, one commit at a time.

    Reads and writes go straight to git objects; no working tree is
    checked out.  Writes are committed on top of the branch tip and
    the branch is advanced only if no one else moved it meanwhile
    (retrying otherwise).

    \b
    Quick start:
      gitleaf init -r data.git
      echo hello | gitleaf write docs/hello.txt
      gitleaf cat docs/hello.txt
      gitleaf ls docs
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["backend"] = backend
    ctx.obj["author"] = author
    ctx.obj["email"] = email
    _configure_logging(verbose)


@main.group(invoke_without_command=True)
@_repo_option
@click.pass_context
def branch(ctx):
    """Manage branches."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(branch_list)


# Set by _refs.py during import to avoid a circular dependency
branch_list = None
