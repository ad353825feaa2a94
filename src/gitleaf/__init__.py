import logging

from .repo import Repository
from .store import CommitInfo, ObjectStore
from .tree import EntryType, TreeEntry, TreeNode, resolve_path
from .mutate import write_file, delete_file
from .escape import decode_name, encode_name
from .exceptions import (
    GitleafError,
    FormatError,
    NotFoundError,
    StoreOperationError,
    ConcurrentUpdateError,
)

# Library logging stays silent unless the application configures handlers.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Repository", "CommitInfo", "ObjectStore",
    "EntryType", "TreeEntry", "TreeNode", "resolve_path",
    "write_file", "delete_file",
    "decode_name", "encode_name",
    "GitleafError", "FormatError", "NotFoundError", "StoreOperationError",
    "ConcurrentUpdateError",
]
