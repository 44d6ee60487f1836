# parsers/latex_parser.py

"""LaTeX source to structural tree.

Phases, each working on half-open spans of the one immutable source string:
    1. Split the source into preamble, body and postamble.
    2. Extract \\documentclass and \\usepackage commands from the preamble.
    3. Cut the body at sectioning commands (flat, document order).
    4. Match \\begin/\\end tokens with a cursor and a stack of open names.
    5. Find $...$, $$...$$, \\(...\\) and \\[...\\] outside environments.
    6. Fill the remaining gaps with Text nodes.
    7. Freeze the drafts into immutable nodes and assign line numbers.

Never raises on any input. Problems are recorded as diagnostics.
"""

import logging
import re
from bisect import bisect_left
from dataclasses import dataclass, field
from time import monotonic
from typing import Any

from latex_kit.observability import names
from latex_kit.observability.base import MetricsHook, NoOpMetricsHook

from .base import DocumentParser
from .models import Diagnostic, Node, NodeKind, ParsedDocument

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 20

_BEGIN_DOCUMENT_RE = re.compile(r"\\begin\s*\{document\}")
_END_DOCUMENT_RE = re.compile(r"\\end\s*\{document\}")

_DOCUMENTCLASS_RE = re.compile(r"\\documentclass\s*(?:\[([^\]]*)\])?\s*\{([^}]*)\}")
_USEPACKAGE_RE = re.compile(r"\\usepackage\s*(?:\[([^\]]*)\])?\s*\{([^}]*)\}")

_SECTION_RE = re.compile(
    r"\\(subsubsection|subsection|section|subparagraph|paragraph)\b(\*?)"
)

_ENV_TOKEN_RE = re.compile(r"\\(begin|end)\s*\{([^{}]*)\}")

# $$ must be tried before $. Inline math may not cross a blank line.
_EQUATION_RE = re.compile(
    r"(?<!\\)\$\$(?P<dollars>.+?)(?<!\\)\$\$"
    r"|(?<!\\)\$(?P<dollar>(?:(?!\n[ \t]*\n)[^$])+?)(?<!\\)\$"
    r"|(?<!\\)\\\((?P<paren>.+?)\\\)"
    r"|(?<!\\)\\\[(?P<bracket>.+?)\\\]",
    re.DOTALL,
)

_COMMENT_RE = re.compile(r"(?<!\\)%")
_WHITESPACE_RE = re.compile(r"\s*")

VERBATIM_ENVIRONMENTS = frozenset({"verbatim", "verbatim*", "lstlisting", "minted", "comment"})

MATH_ENVIRONMENTS = frozenset(
    {
        "equation",
        "align",
        "alignat",
        "flalign",
        "gather",
        "multline",
        "eqnarray",
        "math",
        "displaymath",
        "split",
        "aligned",
        "gathered",
    }
)


def is_math_environment(name: str) -> bool:
    return name.rstrip("*") in MATH_ENVIRONMENTS


@dataclass
class _Draft:
    """Mutable node under construction. Frozen into a Node at the end."""

    kind: NodeKind
    start: int
    end: int
    name: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    children: list["_Draft"] = field(default_factory=list)


@dataclass
class _OpenEnvironment:
    name: str
    begin_start: int
    begin_end: int
    children: list[_Draft] = field(default_factory=list)


class LatexParser(DocumentParser):
    """
    Tolerant LaTeX structure parser.
    - One parse per complete source snapshot
    - Same-name nested environments matched correctly
    - Bounded nesting depth
    - Diagnostics returned with the result, also logged
    """

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be >= 1")
        self._max_depth = max_depth
        self.metrics_hook = metrics_hook

    def parse(self, source: str) -> ParsedDocument:
        start = monotonic()

        run = _ParseRun(source, self._max_depth)
        document = run.build()

        elapsed_ms = 1000 * (monotonic() - start)
        self.metrics_hook.record_latency(names.LATEX_PARSE_DURATION, elapsed_ms)
        self.metrics_hook.increment(names.LATEX_PARSE_NODES_CREATED, len(document.nodes))
        if document.diagnostics:
            self.metrics_hook.increment(
                names.LATEX_PARSE_DIAGNOSTICS_TOTAL, len(document.diagnostics)
            )

        logger.debug(
            "Parsed LaTeX source: chars=%d, nodes=%d, diagnostics=%d, latency=%.1fms",
            len(source),
            len(document.nodes),
            len(document.diagnostics),
            elapsed_ms,
        )
        return document


class _ParseRun:
    """State for a single parse. Not reused."""

    def __init__(self, source: str, max_depth: int) -> None:
        self.source = source
        self.max_depth = max_depth
        self.diagnostics: list[Diagnostic] = []
        self._depth_reported = False
        self._newlines = [i for i, ch in enumerate(source) if ch == "\n"]

    # ------------------------------------------------------------------
    # Phase 1: document split
    # ------------------------------------------------------------------

    def build(self) -> ParsedDocument:
        source = self.source
        root = _Draft(NodeKind.ROOT, 0, len(source))

        begin = _BEGIN_DOCUMENT_RE.search(source)
        if begin is not None:
            preamble = _Draft(NodeKind.PREAMBLE, 0, begin.end())
            preamble.children = self._preamble_children(0, begin.start())
            root.children.append(preamble)
            body_start = begin.end()
        else:
            self._diagnose(
                "missing-begin-document",
                "No \\begin{document} found; treating the whole source as body",
                0,
            )
            body_start = 0

        end = _END_DOCUMENT_RE.search(source, body_start)
        if end is None and begin is not None:
            self._diagnose(
                "missing-end-document",
                "No \\end{document} found; body runs to the end of the source",
                len(source),
            )
        body_end = end.start() if end is not None else len(source)

        body = _Draft(NodeKind.BODY, body_start, body_end)
        body.children = self._body_children(body_start, body_end)
        root.children.append(body)

        if end is not None and source[end.end() :].strip():
            root.children.append(_Draft(NodeKind.POSTAMBLE, end.end(), len(source)))

        nodes: list[Node | None] = []
        root_node = self._freeze(root, None, nodes)
        return ParsedDocument(
            source=source,
            root=root_node,
            nodes=tuple(n for n in nodes if n is not None),
            diagnostics=tuple(self.diagnostics),
        )

    # ------------------------------------------------------------------
    # Phase 2: preamble commands
    # ------------------------------------------------------------------

    def _preamble_children(self, lo: int, hi: int) -> list[_Draft]:
        environments = self._environments(lo, hi)

        def outside_environments(pos: int) -> bool:
            return not any(env.start <= pos < env.end for env in environments)

        commands: list[_Draft] = []

        docclass = next(
            (
                m
                for m in _DOCUMENTCLASS_RE.finditer(self.source, lo, hi)
                if not self._is_commented(m.start())
            ),
            None,
        )
        if docclass is not None and outside_environments(docclass.start()):
            commands.append(
                _Draft(
                    NodeKind.DOCUMENT_CLASS,
                    docclass.start(),
                    docclass.end(),
                    name=docclass.group(2).strip(),
                    meta={"options": docclass.group(1) or ""},
                )
            )

        for match in _USEPACKAGE_RE.finditer(self.source, lo, hi):
            if self._is_commented(match.start()) or not outside_environments(match.start()):
                continue
            package_list = match.group(2)
            commands.append(
                _Draft(
                    NodeKind.PACKAGE,
                    match.start(),
                    match.end(),
                    name=package_list.strip(),
                    meta={
                        "options": match.group(1) or "",
                        "packages": tuple(
                            p.strip() for p in package_list.split(",") if p.strip()
                        ),
                    },
                )
            )

        return self._with_text(lo, hi, environments + commands)

    # ------------------------------------------------------------------
    # Phase 3: sections
    # ------------------------------------------------------------------

    def _body_children(self, lo: int, hi: int) -> list[_Draft]:
        headings = self._section_headings(lo, hi)
        if not headings:
            return self._content(lo, hi)

        children = self._content(lo, headings[0].start)
        for i, heading in enumerate(headings):
            section_end = headings[i + 1].start if i + 1 < len(headings) else hi
            heading.end = section_end
            heading.children = self._content(heading.meta["content_start"], section_end)
            children.append(heading)
        return children

    def _section_headings(self, lo: int, hi: int) -> list[_Draft]:
        source = self.source
        headings: list[_Draft] = []
        hidden = self._verbatim_spans(lo, hi)

        for match in _SECTION_RE.finditer(source, lo, hi):
            if self._is_commented(match.start()):
                continue
            if any(start <= match.start() < end for start, end in hidden):
                continue

            pos = _WHITESPACE_RE.match(source, match.end(), hi).end()
            short_title = None
            short_end = self._read_group(pos, hi, "[", "]")
            if short_end is not None:
                short_title = source[pos + 1 : short_end - 1]
                pos = _WHITESPACE_RE.match(source, short_end, hi).end()

            title_end = self._read_group(pos, hi, "{", "}")
            if title_end is None:
                # \section without an argument is not a heading we can use
                continue

            title = source[pos + 1 : title_end - 1].strip()
            headings.append(
                _Draft(
                    NodeKind(match.group(1)),
                    match.start(),
                    title_end,
                    name=title,
                    meta={
                        "title": title,
                        "starred": match.group(2) == "*",
                        "short_title": short_title,
                        "content_start": title_end,
                    },
                )
            )

        return headings

    def _verbatim_spans(self, lo: int, hi: int) -> list[tuple[int, int]]:
        """Closed verbatim-like environments in [lo, hi).

        Same token rules as `_environments`. An unclosed one hides nothing.
        """
        spans: list[tuple[int, int]] = []
        open_name: str | None = None
        open_start = lo
        for token in _ENV_TOKEN_RE.finditer(self.source, lo, hi):
            verb = token.group(1)
            name = token.group(2).strip()
            if self._is_commented(token.start()):
                continue
            if open_name is None:
                if verb == "begin" and name in VERBATIM_ENVIRONMENTS:
                    open_name, open_start = name, token.start()
            elif verb == "end" and name == open_name:
                spans.append((open_start, token.end()))
                open_name = None
        return spans

    def _read_group(self, pos: int, hi: int, open_char: str, close_char: str) -> int | None:
        """Offset just past a balanced group starting at `pos`, else None."""
        source = self.source
        if pos >= hi or source[pos] != open_char:
            return None
        depth = 0
        i = pos
        while i < hi:
            ch = source[i]
            if ch == "\\":
                i += 2
                continue
            if ch == open_char:
                depth += 1
            elif ch == close_char:
                depth -= 1
                if depth == 0:
                    return i + 1
            i += 1
        return None

    # ------------------------------------------------------------------
    # Phase 4: environments
    # ------------------------------------------------------------------

    def _content(self, lo: int, hi: int) -> list[_Draft]:
        """Environments, equations between them, and text for one span."""
        environments = self._environments(lo, hi)
        equations: list[_Draft] = []
        for gap_start, gap_end in _gaps(lo, hi, environments):
            equations.extend(self._equations(gap_start, gap_end))
        return self._with_text(lo, hi, environments + equations)

    def _environments(self, lo: int, hi: int) -> list[_Draft]:
        """Top-level environments in [lo, hi), nested ones attached.

        Single forward pass. Each \\end{X} closes the innermost open X;
        anything opened above it and still open is unmatched.
        """
        top: list[_Draft] = []
        stack: list[_OpenEnvironment] = []

        for token in _ENV_TOKEN_RE.finditer(self.source, lo, hi):
            verb = token.group(1)
            name = token.group(2).strip()

            # Verbatim content is opaque until its own \end
            if stack and stack[-1].name in VERBATIM_ENVIRONMENTS:
                if not (verb == "end" and name == stack[-1].name):
                    continue

            if self._is_commented(token.start()):
                continue

            if verb == "begin":
                stack.append(_OpenEnvironment(name, token.start(), token.end()))
                continue

            index = _innermost(stack, name)
            if index is None:
                self._diagnose(
                    "unmatched-end",
                    f"\\end{{{name}}} has no matching \\begin{{{name}}}",
                    token.start(),
                )
                continue

            while len(stack) - 1 > index:
                self._close_unmatched(stack, top)

            frame = stack.pop()
            depth = len(stack) + 1
            if depth > self.max_depth:
                if not self._depth_reported:
                    self._depth_reported = True
                    self._diagnose(
                        "max-depth-exceeded",
                        f"Environment nesting deeper than {self.max_depth}; "
                        "inner environments are not represented",
                        frame.begin_start,
                    )
                _attach(stack, top, frame.children)
                continue

            environment = _Draft(
                NodeKind.ENVIRONMENT,
                frame.begin_start,
                token.end(),
                name=name,
                meta={
                    "inner_start": frame.begin_end,
                    "inner_end": token.start(),
                    "math": is_math_environment(name),
                    "verbatim": name in VERBATIM_ENVIRONMENTS,
                },
            )
            environment.children = self._environment_children(environment, frame.children)
            _attach(stack, top, [environment])

        while stack:
            self._close_unmatched(stack, top)

        return top

    def _close_unmatched(self, stack: list[_OpenEnvironment], top: list[_Draft]) -> None:
        frame = stack.pop()
        self._diagnose(
            "unmatched-begin",
            f"\\begin{{{frame.name}}} has no matching \\end{{{frame.name}}}",
            frame.begin_start,
        )
        # Whatever was matched inside it belongs to the enclosing level
        _attach(stack, top, frame.children)

    def _environment_children(self, environment: _Draft, nested: list[_Draft]) -> list[_Draft]:
        lo = environment.meta["inner_start"]
        hi = environment.meta["inner_end"]
        if environment.meta["verbatim"]:
            return self._with_text(lo, hi, [])

        placed = list(nested)
        if not environment.meta["math"]:
            for gap_start, gap_end in _gaps(lo, hi, nested):
                placed.extend(self._equations(gap_start, gap_end))
        return self._with_text(lo, hi, placed)

    # ------------------------------------------------------------------
    # Phase 5: equations
    # ------------------------------------------------------------------

    def _equations(self, lo: int, hi: int) -> list[_Draft]:
        equations = []
        pos = lo
        while True:
            match = _EQUATION_RE.search(self.source, pos, hi)
            if match is None:
                break
            if self._is_commented(match.start()):
                # resume on the next line, the rest of this one is a comment
                newline = self.source.find("\n", match.start(), hi)
                pos = hi if newline == -1 else newline + 1
                continue
            pos = match.end()
            delimiter = match.lastgroup
            mode = "inline" if delimiter in ("dollar", "paren") else "display"
            equations.append(
                _Draft(
                    NodeKind.EQUATION,
                    match.start(),
                    match.end(),
                    meta={
                        "mode": mode,
                        "delimiter": delimiter,
                        "inner": match.group(delimiter),
                    },
                )
            )
        return equations

    # ------------------------------------------------------------------
    # Phase 6: text gaps
    # ------------------------------------------------------------------

    def _with_text(self, lo: int, hi: int, placed: list[_Draft]) -> list[_Draft]:
        placed = sorted(placed, key=lambda d: d.start)
        children: list[_Draft] = []
        cursor = lo
        for draft in placed:
            if draft.start < cursor:
                self._diagnose(
                    "overlapping-node",
                    f"{draft.kind.value} at {draft.start} overlaps a previous sibling; dropped",
                    draft.start,
                )
                continue
            self._append_text(cursor, draft.start, children)
            children.append(draft)
            cursor = draft.end
        self._append_text(cursor, hi, children)
        return children

    def _append_text(self, start: int, end: int, children: list[_Draft]) -> None:
        if start < end and self.source[start:end].strip():
            children.append(_Draft(NodeKind.TEXT, start, end))

    # ------------------------------------------------------------------
    # Phase 7: freeze
    # ------------------------------------------------------------------

    def _freeze(self, draft: _Draft, parent_id: int | None, table: list[Node | None]) -> Node:
        node_id = len(table)
        table.append(None)  # reserve pre-order slot
        children = tuple(self._freeze(child, node_id, table) for child in draft.children)
        node = Node(
            kind=draft.kind,
            start=draft.start,
            end=draft.end,
            content=self.source[draft.start : draft.end],
            node_id=node_id,
            parent_id=parent_id,
            name=draft.name,
            children=children,
            line_start=self._line_of(draft.start),
            line_end=self._line_of(max(draft.start, draft.end - 1)),
            meta=draft.meta,
        )
        table[node_id] = node
        return node

    def _line_of(self, offset: int) -> int:
        return bisect_left(self._newlines, offset) + 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_commented(self, pos: int) -> bool:
        line_start = self.source.rfind("\n", 0, pos) + 1
        return _COMMENT_RE.search(self.source, line_start, pos) is not None

    def _diagnose(self, code: str, message: str, offset: int) -> None:
        self.diagnostics.append(Diagnostic(code=code, message=message, offset=offset))
        logger.warning("LaTeX parse diagnostic [%s] at offset %d: %s", code, offset, message)


def _innermost(stack: list[_OpenEnvironment], name: str) -> int | None:
    for index in range(len(stack) - 1, -1, -1):
        if stack[index].name == name:
            return index
    return None


def _attach(stack: list[_OpenEnvironment], top: list[_Draft], drafts: list[_Draft]) -> None:
    if stack:
        stack[-1].children.extend(drafts)
    else:
        top.extend(drafts)


def _gaps(lo: int, hi: int, placed: list[_Draft]) -> list[tuple[int, int]]:
    gaps = []
    cursor = lo
    for draft in sorted(placed, key=lambda d: d.start):
        if draft.start > cursor:
            gaps.append((cursor, draft.start))
        cursor = max(cursor, draft.end)
    if cursor < hi:
        gaps.append((cursor, hi))
    return gaps
