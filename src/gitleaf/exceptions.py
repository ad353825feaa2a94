"""Exceptions for gitleaf."""

from __future__ import annotations


class GitleafError(Exception):
    """Base class for all gitleaf errors."""


class FormatError(GitleafError, ValueError):
    """Raised when an escaped entry name or a tree listing line is malformed."""


class NotFoundError(GitleafError, KeyError):
    """Raised when a commit, tree, branch, or path does not exist.

    Subclasses :class:`KeyError` so mapping-style callers can catch it the
    usual way.
    """

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class StoreOperationError(GitleafError):
    """Raised when the underlying object store fails.

    *diagnostic* holds the store's own error text (e.g. git's stderr) and
    *command* the failing command line, when there is one.
    """

    def __init__(self, diagnostic: str, command: list[str] | None = None):
        super().__init__(diagnostic)
        self.diagnostic = diagnostic
        self.command = command

    def __str__(self) -> str:
        if self.command:
            return f"{' '.join(self.command)}: {self.diagnostic}"
        return self.diagnostic


class ConcurrentUpdateError(GitleafError):
    """Raised when a branch keeps advancing under a write.

    Only the retrying helpers raise this; :meth:`Repository.move_branch`
    reports a lost race by returning ``False``.
    """
