"""Dot-path updates over nested parameter trees.

Merge semantics for ``set_path(tree, 'a.b.c', value)``:

- missing intermediate levels are created as empty mappings
- the leaf is overwritten, whatever it held before
- nothing is deleted unless a path targets it explicitly
- traversing through a non-mapping value is an error
"""

from __future__ import annotations

from typing import Any, MutableMapping

from flowdiff.exceptions import InvalidPathError

Tree = MutableMapping[str, Any]


def split_path(path: str) -> list[str]:
    """Split a dot path, rejecting empty paths and empty segments."""
    if not isinstance(path, str) or not path:
        raise InvalidPathError(f"Invalid update path: {path!r}")
    segments = path.split('.')
    if any(not segment for segment in segments):
        raise InvalidPathError(f"Invalid update path (empty segment): {path!r}")
    return segments


def set_path(tree: Tree, path: str, value: Any) -> Tree:
    """Set ``value`` at ``path`` inside ``tree`` in place and return the tree."""
    segments = split_path(path)
    current: Any = tree
    for depth, key in enumerate(segments[:-1]):
        child = current.get(key)
        if child is None:
            child = {}
            current[key] = child
        elif not isinstance(child, MutableMapping):
            walked = '.'.join(segments[: depth + 1])
            raise InvalidPathError(
                f"Cannot set {path!r}: {walked!r} holds a {type(child).__name__}, not an object",
                details={'path': path, 'blocked_at': walked},
            )
        current = child
    current[segments[-1]] = value
    return tree


def get_path(tree: Tree, path: str, default: Any = None) -> Any:
    """Return the value at ``path`` or ``default`` when any level is missing."""
    current: Any = tree
    for key in split_path(path):
        if not isinstance(current, MutableMapping) or key not in current:
            return default
        current = current[key]
    return current
