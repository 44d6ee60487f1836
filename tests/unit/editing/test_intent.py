# tests/unit/editing/test_intent.py

import pytest

from latex_kit.editing.intent import (
    EditIntent,
    EditType,
    apply_edit,
    detect_edit_type,
    edit_range,
    extract_edit_content,
    extract_keywords,
    resolve,
)
from latex_kit.observability import InMemoryMetricsHook
from latex_kit.parsers import LatexParser, Node, NodeKind, ParsedDocument, find_by_name

SOURCE = r"""\documentclass{article}
\begin{document}
\section{Introduction}
We study mass and energy.
\section{Theory}
The famous relation:
\begin{equation}\label{eq:energy}
E = mc^2
\end{equation}
\end{document}
"""

ENERGY_SUGGESTION = """Remove the energy equation from the Theory section:
```latex
\\begin{equation}\\label{eq:energy}
E = mc^2
\\end{equation}
```"""


@pytest.fixture
def document() -> ParsedDocument:
    return LatexParser().parse(SOURCE)


class TestDetectEditType:
    @pytest.mark.parametrize(
        "instruction, expected",
        [
            ("Delete the second paragraph", EditType.DELETE),
            ("please REMOVE this", EditType.DELETE),
            ("Replace the title", EditType.REPLACE),
            ("Could you update the abstract?", EditType.REPLACE),
            ("Rewrite the conclusion", EditType.REPLACE),
            ("Add a figure", EditType.INSERT),
            ("Delete the table and replace it with a list", EditType.DELETE),
        ],
    )
    def test_edit_type(self, instruction: str, expected: EditType) -> None:
        assert detect_edit_type(instruction) is expected


class TestExtractKeywords:
    def test_all_sources(self) -> None:
        keywords = extract_keywords('Change \\textbf in section "Results" for the table')

        assert keywords == [
            "Results",
            "\\textbf",
            "Results",
            "table",
            "\\begin{table}",
            "\\begin{tabular}",
        ]

    def test_domain_injection(self) -> None:
        assert extract_keywords("fix the math") == [
            "equation",
            "math",
            "$",
            "\\begin{equation}",
        ]
        assert "\\includegraphics" in extract_keywords("Resize the Image")

    def test_nothing_found(self) -> None:
        assert extract_keywords("make it better") == []


class TestExtractEditContent:
    def test_fenced_block(self) -> None:
        assert extract_edit_content("Use:\n```latex\n\\section{X}\n```\nok") == "\\section{X}"

    def test_untagged_fence(self) -> None:
        assert extract_edit_content("```\nplain\n```") == "plain"

    def test_display_math(self) -> None:
        assert extract_edit_content("Try $$a^2$$ here") == "a^2"

    def test_inline_math(self) -> None:
        assert extract_edit_content("Try $b$ here") == "b"

    def test_environment_block(self) -> None:
        text = "Use \\begin{align}x &= 1\\end{align} there"

        assert extract_edit_content(text) == "\\begin{align}x &= 1\\end{align}"

    def test_markdown_stripped(self) -> None:
        text = "## Heading\n**Bold** and *it* see [docs](http://example.com)"

        assert extract_edit_content(text) == "Bold and it see docs"


class TestResolve:
    def test_delete_equation_about_energy(self, document: ParsedDocument) -> None:
        intent = resolve(document.root, "delete the equation about energy", ENERGY_SUGGESTION)

        (equation,) = find_by_name(document.root, "equation")
        assert intent.edit_type is EditType.DELETE
        assert intent.target is equation
        assert intent.confidence >= 0.7
        assert intent.content.startswith("\\begin{equation}\\label{eq:energy}")

    def test_no_match_falls_back_to_body(self, document: ParsedDocument) -> None:
        intent = resolve(document.root, "make it better", "Some nicer wording")

        assert intent.confidence == 0.5
        assert intent.target is document.body
        assert intent.strategy == "fallback"

    def test_fallback_to_root_without_body(self) -> None:
        root = Node(kind=NodeKind.ROOT, start=0, end=0, content="", node_id=0)

        intent = resolve(root, "add something", "")

        assert intent.target is root
        assert intent.confidence == 0.5

    def test_section_name(self, document: ParsedDocument) -> None:
        intent = resolve(
            document.root,
            "Rewrite the section called Introduction to be shorter",
            "We study energy.",
        )

        assert intent.edit_type is EditType.REPLACE
        assert intent.target.name == "Introduction"
        assert intent.confidence == 0.8
        assert intent.strategy == "section_name"

    def test_section_qualifier_preferred(self) -> None:
        document = LatexParser().parse(
            "\\section{Methods}\nA\n\\subsection{Methods}\nB\n"
        )

        intent = resolve(document.root, "update the subsection named methods", "B2")

        assert intent.target.kind == NodeKind.SUBSECTION

    def test_exact_content_wins(self, document: ParsedDocument) -> None:
        intent = resolve(
            document.root,
            "change the section about Theory",
            'Replace "We study mass and energy." with a longer sentence.',
        )

        assert intent.confidence == 0.95
        assert intent.target.kind == NodeKind.TEXT
        assert intent.target.content.strip() == "We study mass and energy."

    def test_keyword_scores_decay(self, document: ParsedDocument) -> None:
        intent = resolve(document.root, "tweak the equation", "A shorter form.")

        assert intent.strategy == "keyword"
        assert intent.confidence == 0.7
        assert intent.target.name == "Theory"

    def test_metrics(self, document: ParsedDocument) -> None:
        metrics = InMemoryMetricsHook()

        resolve(document.root, "make it better", "x", metrics_hook=metrics)

        assert metrics.count("intent_resolutions_total", strategy="fallback") == 1


class TestApplyEdit:
    def test_replace(self, document: ParsedDocument) -> None:
        (intro,) = find_by_name(document.root, "Introduction")
        intent = EditIntent(EditType.REPLACE, intro, "\\section{Overview}\n", 0.8)

        result = apply_edit(SOURCE, intent)

        assert "\\section{Overview}\n\\section{Theory}" in result
        assert "Introduction" not in result

    def test_delete(self, document: ParsedDocument) -> None:
        (equation,) = find_by_name(document.root, "equation")
        intent = EditIntent(EditType.DELETE, equation, "", 0.75)

        start, end, replacement = edit_range(intent)

        assert (start, end, replacement) == (equation.start, equation.end, "")
        assert "mc^2" not in apply_edit(SOURCE, intent)

    def test_insert_after_target(self, document: ParsedDocument) -> None:
        (equation,) = find_by_name(document.root, "equation")
        intent = EditIntent(EditType.INSERT, equation, "\nWhere $c$ is the speed of light.", 0.75)

        result = apply_edit(SOURCE, intent)

        assert "\\end{equation}\nWhere $c$ is the speed of light.\n\n\\end{document}" in result
        assert edit_range(intent)[0] == edit_range(intent)[1] == equation.end
