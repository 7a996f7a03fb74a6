"""Blacklist of metric path patterns.

Patterns are grouped by the number of path segments; each group is a
prefix tree, kept both left-to-right and right-to-left so that reversed
paths can be checked as well. A "*" segment matches any one segment.
"""

from collections.abc import Iterable

_Tree = dict


def _insert(tree: _Tree, parts: Iterable[str]) -> None:
    node = tree
    for part in parts:
        node = node.setdefault(part, {})


def _match(node: _Tree, parts: list[str], start: int) -> bool:
    if start == len(parts):
        return True
    for key in (parts[start], "*"):
        child = node.get(key)
        if child is not None and _match(child, parts, start + 1):
            return True
    return False


class Blacklist:
    """A set of ignored patterns such as "a.*.c"."""

    def __init__(self, ignored_patterns: Iterable[str]) -> None:
        self.patterns = list(ignored_patterns)
        self._left_to_right: dict[int, _Tree] = {}
        self._right_to_left: dict[int, _Tree] = {}
        for pattern in self.patterns:
            parts = pattern.split(".")
            length = len(parts)
            _insert(self._left_to_right.setdefault(length, {}), parts)
            _insert(self._right_to_left.setdefault(length, {}), reversed(parts))

    def contains(self, value: str, is_reverse: bool) -> bool:
        """Whether value matches a pattern; is_reverse for reversed paths."""
        parts = value.split(".")
        groups = self._right_to_left if is_reverse else self._left_to_right
        tree = groups.get(len(parts))
        if tree is None:
            return False
        return _match(tree, parts, 0)