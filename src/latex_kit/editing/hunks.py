# src/latex_kit/editing/hunks.py

"""Unified diff hunk parsing.

A diff block from the model may hold file headers, several hunks and
stray fence lines. Only hunk bodies matter for application: the header
numbers are kept for validation and for choosing between repeated
matches, never for locating text.
"""

import re
from dataclasses import dataclass

from .errors import HunkFormatError

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass(frozen=True)
class Hunk:
    header: str
    lines: tuple[str, ...]  # body lines, prefix included
    old_start: int | None = None
    old_count: int | None = None
    new_start: int | None = None
    new_count: int | None = None

    @property
    def old_lines(self) -> list[str]:
        """Context and removed lines, prefix stripped."""
        return [line[1:] for line in self.lines if not line or line[0] in " -"]

    @property
    def new_lines(self) -> list[str]:
        """Context and added lines, prefix stripped."""
        return [line[1:] for line in self.lines if not line or line[0] in " +"]

    def count_mismatch(self) -> str | None:
        """Describe a header/body disagreement, or None if the counts hold."""
        old_counted = len(self.old_lines)
        new_counted = len(self.new_lines)
        if self.old_count is not None and old_counted != self.old_count:
            return (
                f"header '{self.header}' declares {self.old_count} old lines, "
                f"body has {old_counted}"
            )
        if self.new_count is not None and new_counted != self.new_count:
            return (
                f"header '{self.header}' declares {self.new_count} new lines, "
                f"body has {new_counted}"
            )
        return None


def parse_hunks(diff: str) -> list[Hunk]:
    """Split a diff block into hunks.

    Blank lines inside a hunk are read as blank context lines (models
    often drop the leading space). Blank lines trailing a hunk beyond its
    declared counts are discarded.

    Raises:
        HunkFormatError: If the block contains no hunk header.
    """
    lines = diff.splitlines()
    hunks: list[Hunk] = []
    header: str | None = None
    numbers: tuple[int | None, ...] = ()
    body: list[str] = []

    def close() -> None:
        if header is not None:
            hunks.append(_build(header, numbers, body))

    for i, line in enumerate(lines):
        if line.startswith("@@"):
            close()
            header, numbers, body = line, _header_numbers(line), []
            continue
        if header is None:
            continue
        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            # Next file's headers
            close()
            header, body = None, []
            continue
        if line.startswith("\\"):
            continue  # "\ No newline at end of file"
        if not line or line[0] in " +-":
            body.append(line)
            continue
        close()
        header, body = None, []

    close()

    if not hunks:
        raise HunkFormatError("Diff contains no '@@' hunk header", raw=diff)
    return hunks


def _header_numbers(header: str) -> tuple[int | None, ...]:
    match = _HUNK_HEADER_RE.match(header)
    if match is None:
        return (None, None, None, None)
    old_start, old_count, new_start, new_count = match.groups()
    return (
        int(old_start),
        int(old_count) if old_count is not None else 1,
        int(new_start),
        int(new_count) if new_count is not None else 1,
    )


def _build(header: str, numbers: tuple[int | None, ...], body: list[str]) -> Hunk:
    old_start, old_count, new_start, new_count = numbers
    trimmed = list(body)
    while trimmed and trimmed[-1] == "":
        hunk = Hunk(header, tuple(trimmed), old_start, old_count, new_start, new_count)
        if old_count is not None and len(hunk.old_lines) <= old_count:
            break
        trimmed.pop()
    return Hunk(header, tuple(trimmed), old_start, old_count, new_start, new_count)
