# src/latex_kit/editing/patching.py

"""Apply validated edit sets to source text.

Items are applied one after another in the order the model emitted them,
each against the content produced so far. A failing item is reported
and skipped; its siblings still apply.

CRLF sources are patched as LF text and written back with CRLF endings.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from time import monotonic

from latex_kit.observability.base import MetricsHook, NoOpMetricsHook
from latex_kit.observability.names import (
    PATCH_APPLY_DURATION,
    PATCH_FAILURES_TOTAL,
    PATCH_ITEMS_APPLIED,
)

from .errors import ExtractionError, PatchConflictError
from .hunks import Hunk, parse_hunks
from .types import EditFormat, EditResult, SearchReplaceBlock

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 80


@dataclass(frozen=True)
class PatchFailure:
    index: int
    reason: str
    excerpt: str


@dataclass(frozen=True)
class PatchResult:
    content: str
    applied: int
    failures: tuple[PatchFailure, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failures


def _excerpt(text: str) -> str:
    text = text.strip()
    if len(text) <= EXCERPT_CHARS:
        return text
    return text[:EXCERPT_CHARS] + "..."


def _normalize_newlines(source: str) -> tuple[str, bool]:
    """LF-only text, and whether the source used CRLF line endings."""
    if "\r\n" not in source:
        return source, False
    return source.replace("\r\n", "\n"), True


def _restore_newlines(content: str, crlf: bool) -> str:
    return content.replace("\n", "\r\n") if crlf else content


def _locate(lines: list[str], old: list[str], expected: int | None) -> int:
    width = len(old)
    positions = [
        i for i in range(len(lines) - width + 1) if lines[i : i + width] == old
    ]
    if not positions:
        raise PatchConflictError("context lines not found in source")
    if len(positions) == 1 or expected is None:
        if len(positions) > 1:
            logger.debug("Old block occurs %d times, using the first", len(positions))
        return positions[0]
    return min(positions, key=lambda i: abs(i - expected))


def _apply_hunk(lines: list[str], hunk: Hunk, delta: int) -> tuple[list[str], int]:
    old, new = hunk.old_lines, hunk.new_lines
    if not old:
        if hunk.old_start is None:
            raise PatchConflictError("insertion hunk has no line number")
        # "-k,0" inserts after line k
        index = min(max(hunk.old_start + delta, 0), len(lines))
    else:
        expected = None if hunk.old_start is None else hunk.old_start - 1 + delta
        index = _locate(lines, old, expected)
    updated = lines[:index] + new + lines[index + len(old) :]
    return updated, delta + len(new) - len(old)


def _apply_diff(content: str, diff: str) -> str:
    lines = content.split("\n")
    delta = 0
    for hunk in parse_hunks(diff):
        lines, delta = _apply_hunk(lines, hunk, delta)
    return "\n".join(lines)


def apply_hunks(
    source: str,
    diffs: Sequence[str],
    metrics_hook: MetricsHook | None = None,
) -> PatchResult:
    """Apply unified diff blocks.

    A block is all-or-nothing: if any of its hunks cannot be placed, the
    whole block is reported as failed and the content is left as it was
    before that block.
    """
    metrics = metrics_hook or NoOpMetricsHook()
    start = monotonic()
    content, crlf = _normalize_newlines(source)
    applied = 0
    failures: list[PatchFailure] = []

    for index, diff in enumerate(diffs):
        try:
            content = _apply_diff(content, diff)
        except (PatchConflictError, ExtractionError) as e:
            logger.warning("Diff block %d failed to apply: %s", index, e)
            failures.append(PatchFailure(index, str(e), _excerpt(diff)))
            continue
        applied += 1

    _record(metrics, EditFormat.UNIFIED_DIFF, start, applied, len(failures))
    return PatchResult(_restore_newlines(content, crlf), applied, tuple(failures))


def apply_search_replace(
    source: str,
    blocks: Sequence[SearchReplaceBlock],
    metrics_hook: MetricsHook | None = None,
) -> PatchResult:
    """Apply search/replace blocks.

    `search` must occur exactly once in the current content.
    """
    metrics = metrics_hook or NoOpMetricsHook()
    start = monotonic()
    content, crlf = _normalize_newlines(source)
    applied = 0
    failures: list[PatchFailure] = []

    for index, block in enumerate(blocks):
        search = block.search.replace("\r\n", "\n")
        replace = block.replace.replace("\r\n", "\n")
        position = content.find(search) if search else -1
        if not search:
            reason = "search text is empty"
        elif position == -1:
            reason = "search text not found"
        elif content.find(search, position + 1) != -1:
            reason = "search text matches more than once"
        else:
            content = content[:position] + replace + content[position + len(search) :]
            applied += 1
            continue
        logger.warning("Search/replace block %d failed: %s", index, reason)
        failures.append(PatchFailure(index, reason, _excerpt(search)))

    _record(metrics, EditFormat.SEARCH_REPLACE, start, applied, len(failures))
    return PatchResult(_restore_newlines(content, crlf), applied, tuple(failures))


def apply_result(
    source: str,
    result: EditResult,
    metrics_hook: MetricsHook | None = None,
) -> PatchResult:
    """Apply whichever edit set an escalation produced."""
    if result.format is EditFormat.UNIFIED_DIFF:
        return apply_hunks(source, result.hunks, metrics_hook)
    return apply_search_replace(source, result.blocks, metrics_hook)


def _record(
    metrics: MetricsHook,
    edit_format: EditFormat,
    start: float,
    applied: int,
    failed: int,
) -> None:
    labels = {"format": edit_format.value}
    metrics.record_latency(PATCH_APPLY_DURATION, (monotonic() - start) * 1000, labels)
    metrics.increment(PATCH_ITEMS_APPLIED, applied, labels)
    if failed:
        metrics.increment(PATCH_FAILURES_TOTAL, failed, labels)
    logger.debug("Patch applied: format=%s, applied=%d, failed=%d", edit_format.value, applied, failed)
