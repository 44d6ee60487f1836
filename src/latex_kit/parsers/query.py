# parsers/query.py

"""Read-only queries over a parsed LaTeX tree.

All traversals are pre-order, so results come back in document order and
ancestors come before their descendants. Callers may treat the first match
as the most relevant one.
"""

import re
from collections.abc import Callable, Iterator

from .models import Node, NodeKind


def iter_nodes(root: Node) -> Iterator[Node]:
    """Yield `root` and every descendant in pre-order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def find_nodes(root: Node, predicate: Callable[[Node], bool]) -> list[Node]:
    return [node for node in iter_nodes(root) if predicate(node)]


def find_by_kind(root: Node, kind: NodeKind | str) -> list[Node]:
    kind = NodeKind(kind)
    return find_nodes(root, lambda node: node.kind == kind)


def find_by_content(root: Node, needle: str) -> list[Node]:
    return find_nodes(root, lambda node: needle in node.content)


def find_by_pattern(root: Node, pattern: str | re.Pattern[str]) -> list[Node]:
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    return find_nodes(root, lambda node: compiled.search(node.content) is not None)


def find_by_name(root: Node, name: str) -> list[Node]:
    return find_nodes(root, lambda node: node.name == name)


def node_at(root: Node, offset: int) -> Node | None:
    """Deepest node whose span contains `offset`, or None if out of range."""
    if not root.start <= offset < root.end:
        return None
    current = root
    while True:
        for child in current.children:
            if child.start <= offset < child.end:
                current = child
                break
        else:
            return current
