# src/latex_kit/editing/intent.py

"""Map an instruction plus an LLM suggestion onto a node of the tree.

Heuristic and total: `resolve` always returns an intent. Candidates from
several independent strategies are scored, and the body (or root) is the
fallback when nothing matches.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from latex_kit.observability.base import MetricsHook, NoOpMetricsHook
from latex_kit.observability.names import INTENT_RESOLUTIONS_TOTAL
from latex_kit.parsers.models import CONTAINER_KINDS, Node, NodeKind
from latex_kit.parsers.query import find_by_content, find_by_kind, iter_nodes

logger = logging.getLogger(__name__)

EXACT_CONTENT_SCORE = 0.95
SECTION_NAME_SCORE = 0.8
ENVIRONMENT_SCORE = 0.75
KEYWORD_SCORE = 0.7
KEYWORD_DECAY = 0.05
FALLBACK_SCORE = 0.5

MIN_QUOTE_CHARS = 10
MIN_KEYWORD_CHARS = 3
MATCHES_PER_KEYWORD = 3
MAX_EQUATIONS = 2


class EditType(str, Enum):
    INSERT = "insert"
    REPLACE = "replace"
    DELETE = "delete"


@dataclass(frozen=True)
class EditIntent:
    edit_type: EditType
    target: Node  # borrowed from a tree that must outlive the intent
    content: str
    confidence: float
    strategy: str = "fallback"


@dataclass(frozen=True)
class SectionReference:
    qualifier: str  # section, subsection, chapter, ...
    name: str


_DELETE_RE = re.compile(r"\b(delete|remove|eliminate)", re.IGNORECASE)
_REPLACE_RE = re.compile(r"\b(replace|change|modify|update|rewrite)", re.IGNORECASE)

_SECTION_REF_RE = re.compile(
    r"\b(subsubsection|subsection|section|chapter|part)\s+"
    r"(?:called|named|titled|about|on)?\s*[\"']?([\w\s]+)[\"']?",
    re.IGNORECASE,
)
_COMMAND_RE = re.compile(r"\\(\w+)")
_QUOTED_RE = re.compile(r"[\"']([\w\s]+)[\"']")
_EXACT_QUOTE_RE = re.compile(r"[\"']([\w\s.,;:!?]+)[\"']")

_DOMAIN_KEYWORDS = (
    (("equation", "math"), ("equation", "math", "$", "\\begin{equation}")),
    (("figure", "image"), ("figure", "\\includegraphics", "\\begin{figure}")),
    (("table",), ("table", "\\begin{table}", "\\begin{tabular}")),
)

_FENCED_RE = re.compile(r"```(?:latex)?[ \t]*\n([\s\S]*?)\n```")
_DOLLARS_RE = re.compile(r"\$\$([\s\S]*?)\$\$|\$([\s\S]*?)\$")
_ENVIRONMENT_BLOCK_RE = re.compile(r"\\begin\{(\w+\*?)\}[\s\S]*?\\end\{\1\}")
_BEGIN_RE = re.compile(r"\\begin\{(\w+\*?)\}")

_MARKDOWN_CLEANUP = (
    (re.compile(r"^#+ .*$", re.MULTILINE), ""),
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),
)


def detect_edit_type(instruction: str) -> EditType:
    if _DELETE_RE.search(instruction):
        return EditType.DELETE
    if _REPLACE_RE.search(instruction):
        return EditType.REPLACE
    return EditType.INSERT


def section_references(instruction: str) -> list[SectionReference]:
    return [
        SectionReference(match.group(1).lower(), match.group(2).strip())
        for match in _SECTION_REF_RE.finditer(instruction)
        if match.group(2).strip()
    ]


def extract_keywords(instruction: str) -> list[str]:
    """Search terms named by an instruction, in discovery order."""
    keywords = [ref.name for ref in section_references(instruction)]
    keywords += [f"\\{name}" for name in _COMMAND_RE.findall(instruction)]
    keywords += [q.strip() for q in _QUOTED_RE.findall(instruction) if q.strip()]

    lowered = instruction.lower()
    for triggers, injected in _DOMAIN_KEYWORDS:
        if any(trigger in lowered for trigger in triggers):
            keywords.extend(injected)
    return keywords


def extract_edit_content(suggestion: str) -> str:
    """The LaTeX a suggestion proposes, first matching rule wins.

    A fenced block, then a `$$...$$`/`$...$` span, then a whole
    environment, then the suggestion itself with markdown stripped.
    """
    fenced = _FENCED_RE.search(suggestion)
    if fenced:
        return fenced.group(1).strip()

    dollars = _DOLLARS_RE.search(suggestion)
    if dollars:
        return dollars.group(1) if dollars.group(1) is not None else dollars.group(2)

    environment = _ENVIRONMENT_BLOCK_RE.search(suggestion)
    if environment:
        return environment.group(0)

    text = suggestion
    for pattern, replacement in _MARKDOWN_CLEANUP:
        text = pattern.sub(replacement, text)
    return text.strip()


def _exact_content_matches(root: Node, suggestion: str) -> list[Node]:
    """Innermost non-container nodes holding a quoted phrase."""
    results: list[Node] = []
    for quoted in _EXACT_QUOTE_RE.findall(suggestion):
        quoted = quoted.strip()
        if len(quoted) < MIN_QUOTE_CHARS:
            continue
        results.extend(
            node
            for node in find_by_content(root, quoted)
            if node.kind not in CONTAINER_KINDS
            and not any(quoted in child.content for child in node.children)
        )
    return results


def _named_nodes(root: Node, name: str) -> list[Node]:
    """Nodes named `name` or by the longest word-prefix of it, any case."""
    words = name.split()
    for size in range(len(words), 0, -1):
        wanted = " ".join(words[:size]).lower()
        found = [
            node
            for node in iter_nodes(root)
            if node.name is not None and node.name.strip().lower() == wanted
        ]
        if found:
            return found
    return []


def _section_matches(root: Node, instruction: str) -> list[Node]:
    results: list[Node] = []
    for ref in section_references(instruction):
        named = _named_nodes(root, ref.name)
        same_kind = [node for node in named if node.kind.value == ref.qualifier]
        results.extend(same_kind or named)
    return results


def _keyword_matches(root: Node, keywords: list[str]) -> list[Node]:
    results: list[Node] = []
    for keyword in keywords:
        if len(keyword) < MIN_KEYWORD_CHARS:
            continue
        matches = [
            node
            for node in find_by_content(root, keyword)
            if node.kind not in CONTAINER_KINDS
        ]
        results.extend(matches[:MATCHES_PER_KEYWORD])
    return results


def _environment_matches(root: Node, suggestion: str) -> list[Node]:
    results: list[Node] = []
    begin = _BEGIN_RE.search(suggestion)
    if begin:
        results.extend(
            node
            for node in find_by_kind(root, NodeKind.ENVIRONMENT)
            if node.name == begin.group(1)
        )
    if "$" in suggestion or "\\begin{equation}" in suggestion:
        results.extend(find_by_kind(root, NodeKind.EQUATION)[:MAX_EQUATIONS])
    return results


def _candidates(
    root: Node, instruction: str, suggestion: str
) -> list[tuple[Node, float, str]]:
    candidates = [
        (node, EXACT_CONTENT_SCORE, "exact_content")
        for node in _exact_content_matches(root, suggestion)
    ]
    candidates += [
        (node, SECTION_NAME_SCORE, "section_name")
        for node in _section_matches(root, instruction)
    ]
    candidates += [
        (node, max(KEYWORD_SCORE - i * KEYWORD_DECAY, 0.0), "keyword")
        for i, node in enumerate(_keyword_matches(root, extract_keywords(instruction)))
    ]
    candidates += [
        (node, ENVIRONMENT_SCORE, "environment")
        for node in _environment_matches(root, suggestion)
    ]
    # sorted() is stable, so ties keep discovery order
    return sorted(candidates, key=lambda candidate: candidate[1], reverse=True)


def _fallback_target(root: Node) -> Node:
    for child in root.children:
        if child.kind == NodeKind.BODY:
            return child
    return root


def resolve(
    root: Node,
    instruction: str,
    suggestion: str,
    *,
    metrics_hook: MetricsHook | None = None,
) -> EditIntent:
    """Pick edit type, target node and content. Never raises."""
    metrics = metrics_hook or NoOpMetricsHook()
    edit_type = detect_edit_type(instruction)
    content = extract_edit_content(suggestion)
    candidates = _candidates(root, instruction, suggestion)

    if candidates:
        target, confidence, strategy = candidates[0]
    else:
        target, confidence, strategy = _fallback_target(root), FALLBACK_SCORE, "fallback"

    metrics.increment(INTENT_RESOLUTIONS_TOTAL, labels={"strategy": strategy})
    logger.debug(
        "Resolved edit intent: type=%s, target=%r, confidence=%.2f, strategy=%s, candidates=%d",
        edit_type.value,
        target,
        confidence,
        strategy,
        len(candidates),
    )
    return EditIntent(edit_type, target, content, confidence, strategy)


def edit_range(intent: EditIntent) -> tuple[int, int, str]:
    """`[start, end)` plus replacement text for a persistence layer.

    Inserted content goes right after the target and always ends with a
    newline so it does not run into what follows.
    """
    target = intent.target
    if intent.edit_type is EditType.DELETE:
        return target.start, target.end, ""
    if intent.edit_type is EditType.REPLACE:
        return target.start, target.end, intent.content
    text = intent.content if intent.content.endswith("\n") else intent.content + "\n"
    return target.end, target.end, text


def apply_edit(source: str, intent: EditIntent) -> str:
    start, end, replacement = edit_range(intent)
    return source[:start] + replacement + source[end:]
