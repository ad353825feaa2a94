"""gitleaf CLI: read and commit single files in bare git repos."""

from ._helpers import main  # noqa: F401

# Import command modules to register Click commands with the main group.
from . import _basic, _refs  # noqa: F401
