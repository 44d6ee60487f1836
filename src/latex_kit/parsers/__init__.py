from .base import DocumentParser
from .latex_parser import LatexParser
from .models import Diagnostic, Node, NodeKind, ParsedDocument
from .query import (
    find_by_content,
    find_by_kind,
    find_by_name,
    find_by_pattern,
    iter_nodes,
    node_at,
)

__all__ = [
    "DocumentParser",
    "LatexParser",
    "Diagnostic",
    "Node",
    "NodeKind",
    "ParsedDocument",
    "find_by_content",
    "find_by_kind",
    "find_by_name",
    "find_by_pattern",
    "iter_nodes",
    "node_at",
]
