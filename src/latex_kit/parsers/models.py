# parsers/models.py

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeKind(str, Enum):
    """Structural role of a node in a LaTeX document tree."""

    ROOT = "root"
    PREAMBLE = "preamble"
    BODY = "body"
    POSTAMBLE = "postamble"
    DOCUMENT_CLASS = "documentclass"
    PACKAGE = "package"
    SECTION = "section"
    SUBSECTION = "subsection"
    SUBSUBSECTION = "subsubsection"
    PARAGRAPH = "paragraph"
    SUBPARAGRAPH = "subparagraph"
    ENVIRONMENT = "environment"
    EQUATION = "equation"
    TEXT = "text"


SECTION_KINDS = frozenset(
    {
        NodeKind.SECTION,
        NodeKind.SUBSECTION,
        NodeKind.SUBSUBSECTION,
        NodeKind.PARAGRAPH,
        NodeKind.SUBPARAGRAPH,
    }
)

CONTAINER_KINDS = frozenset({NodeKind.ROOT, NodeKind.PREAMBLE, NodeKind.BODY})


@dataclass(frozen=True, eq=False)
class Node:
    """A span of the source document.

    Immutable. `content` is always `source[start:end]`. Equality is identity:
    two nodes are the same node only if they come from the same parse.
    """

    kind: NodeKind
    start: int
    end: int
    content: str
    node_id: int
    parent_id: int | None = None  # Non-owning back reference
    name: str | None = None
    children: tuple["Node", ...] = ()
    line_start: int | None = None
    line_end: int | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name is not None else ""
        return f"<Node {self.kind.value}{label} [{self.start}:{self.end})>"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal parse problem. The parser never raises; it reports these."""

    code: str
    message: str
    offset: int


@dataclass(frozen=True)
class ParsedDocument:
    """Result of one parse: the tree, its source and the diagnostics.

    Owns every node. Parent lookups go through the node table, so nodes
    never hold references to their ancestors.
    """

    source: str
    root: Node
    nodes: tuple[Node, ...]
    diagnostics: tuple[Diagnostic, ...] = ()

    def parent(self, node: Node) -> Node | None:
        if node.parent_id is None:
            return None
        return self.nodes[node.parent_id]

    def ancestors(self, node: Node) -> Iterator[Node]:
        """Yield the parent, grandparent, ... up to and including the root."""
        current = self.parent(node)
        while current is not None:
            yield current
            current = self.parent(current)

    @property
    def body(self) -> Node | None:
        for child in self.root.children:
            if child.kind == NodeKind.BODY:
                return child
        return None

    @property
    def preamble(self) -> Node | None:
        for child in self.root.children:
            if child.kind == NodeKind.PREAMBLE:
                return child
        return None
