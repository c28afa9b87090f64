"""Helpers shared across services.

- Clock helpers for UTC timestamps (clock.py)
- File-tree validation, stamping and merging (file_tree.py)
"""

from .clock import Clock, as_utc, isoformat, utcnow
from .file_tree import (
    FileTree,
    FileTreeValidationError,
    is_directory_node,
    is_file_node,
    iter_file_tree,
    merge_file_trees,
    stamp_file_tree,
    validate_file_tree,
)

__all__ = [
    # Clock
    "Clock",
    "as_utc",
    "isoformat",
    "utcnow",
    # File trees
    "FileTree",
    "FileTreeValidationError",
    "is_directory_node",
    "is_file_node",
    "iter_file_tree",
    "merge_file_trees",
    "stamp_file_tree",
    "validate_file_tree",
]
