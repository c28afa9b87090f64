"""File-tree helpers shared by the REST patch endpoint and AI replies.

A tree maps entry names to nodes. A file node looks like
``{"file": {"contents": "..."}, "lastModified": "..."}`` and a directory node
like ``{"directory": {<name>: <node>, ...}}``. Every node is exactly one of
the two.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from .clock import isoformat, utcnow

FileTree = dict[str, Any]


class FileTreeValidationError(ValueError):
    """Raised when a mapping does not describe a well-formed file tree."""


def is_file_node(node: Any) -> bool:
    return isinstance(node, Mapping) and "file" in node and "directory" not in node


def is_directory_node(node: Any) -> bool:
    return isinstance(node, Mapping) and "directory" in node and "file" not in node


def validate_file_tree(tree: Any, *, path: str = "") -> FileTree:
    """Check the shape of *tree* and return it unchanged."""

    if not isinstance(tree, Mapping):
        raise FileTreeValidationError(f"Expected a mapping at '{path or '/'}'")

    for name, node in tree.items():
        location = f"{path}/{name}" if path else name
        if not isinstance(name, str) or not name or "/" in name:
            raise FileTreeValidationError(f"Invalid entry name '{location}'")
        if is_file_node(node):
            contents = node["file"].get("contents") if isinstance(node["file"], Mapping) else None
            if not isinstance(contents, str):
                raise FileTreeValidationError(f"File '{location}' has no string contents")
            stamp = node.get("lastModified")
            if stamp is not None and not isinstance(stamp, (str, int, float)):
                raise FileTreeValidationError(f"File '{location}' has an invalid lastModified")
        elif is_directory_node(node):
            validate_file_tree(node["directory"], path=location)
        else:
            raise FileTreeValidationError(
                f"Entry '{location}' must be exactly one of a file or a directory"
            )
    return dict(tree)


def stamp_file_tree(tree: Mapping[str, Any], *, now: datetime | None = None) -> FileTree:
    """Return a copy of *tree* with ``lastModified`` set on unstamped files."""

    stamp = isoformat(now or utcnow())
    stamped: FileTree = {}
    for name, node in tree.items():
        if is_directory_node(node):
            stamped[name] = {"directory": stamp_file_tree(node["directory"], now=now)}
            continue
        copied = copy.deepcopy(node)
        if is_file_node(copied) and not copied.get("lastModified"):
            copied["lastModified"] = stamp
        stamped[name] = copied
    return stamped


def merge_file_trees(
    target: Mapping[str, Any],
    source: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> FileTree:
    """Merge the partial tree *source* into *target* without mutating either.

    Keys only in one side are kept as they are. Two directories under the
    same name are merged recursively. Any other collision is won by the
    source node; a resulting file node carries the source ``lastModified``
    or the merge time. A source file whose contents equal the target file
    leaves the target node untouched.
    """

    if not source:
        return copy.deepcopy(dict(target))

    merge_time = now or utcnow()
    merged: FileTree = {name: copy.deepcopy(node) for name, node in target.items()}

    for name, incoming in source.items():
        existing = merged.get(name)
        if existing is None:
            merged[name] = copy.deepcopy(incoming)
            continue

        if is_directory_node(existing) and is_directory_node(incoming):
            merged[name] = {
                "directory": merge_file_trees(
                    existing["directory"],
                    incoming["directory"],
                    now=merge_time,
                )
            }
            continue

        if (
            is_file_node(existing)
            and is_file_node(incoming)
            and existing["file"].get("contents") == incoming["file"].get("contents")
            and not incoming.get("lastModified")
        ):
            continue

        replacement = copy.deepcopy(incoming)
        if is_file_node(replacement):
            replacement["lastModified"] = incoming.get("lastModified") or isoformat(merge_time)
        merged[name] = replacement

    return merged


def iter_file_tree(tree: Mapping[str, Any], prefix: str = ""):
    """Yield ``(path, name, node)`` for every entry, depth first."""

    for name, node in tree.items():
        path = f"{prefix}/{name}" if prefix else name
        yield path, name, node
        if is_directory_node(node):
            yield from iter_file_tree(node["directory"], path)
