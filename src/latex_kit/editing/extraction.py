# src/latex_kit/editing/extraction.py

"""Read edit sets out of raw LLM completions.

Two grammars, tried in escalating order by the escalation protocol:

- tier 1: unified diff, preferably inside ```diff fences
- tier 2: search/replace, as delimiter blocks or JSON
"""

import json
import logging
import re

from pydantic import TypeAdapter, ValidationError

from .errors import DiffFormatError, HunkFormatError, SearchReplaceFormatError
from .hunks import Hunk, parse_hunks
from .types import SearchReplaceBlock, SearchReplacePayload, SearchReplaceResult

logger = logging.getLogger(__name__)

EMPTY_DIFF_RESPONSES = frozenset({"", "```diff", "```diff```", "```diff\n```"})

_DIFF_FENCE_RE = re.compile(r"```diff\s*([\s\S]*?)\s*```")
_DIFF_MARKERS = ("@@", "--- ", "+++ ")
_CHANGE_LINE_RE = re.compile(r"^[+-]", re.MULTILINE)

_DELIMITED_RE = re.compile(
    r"<<<<<<< SEARCH\s*([\s\S]*?)\s*=======\s*([\s\S]*?)\s*>>>>>>> REPLACE"
)
_CODE_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?([\s\S]*?)\s*```$")
_CHANGE_WORDS_RE = re.compile(
    r"\b(chang|modif|updat|replac|add|insert|remov|delet|rewr|fix)", re.IGNORECASE
)
_NO_CHANGE_RE = re.compile(
    r"\bno\s+(?:\w+\s+)?(?:changes?|modifications?|edits?)\b", re.IGNORECASE
)

_BLOCK_LIST = TypeAdapter(list[SearchReplaceBlock])


def _has_diff_markers(text: str) -> bool:
    return all(marker in text for marker in _DIFF_MARKERS)


def is_empty_diff_response(text: str) -> bool:
    """True when the model answered "no changes" in the tier-1 grammar."""
    return text.strip() in EMPTY_DIFF_RESPONSES


def extract_unified_diff(text: str) -> list[str]:
    """Return the diff blocks of a tier-1 response, in emission order.

    An empty list means the model decided no change was needed.

    Raises:
        DiffFormatError: If the response is non-empty and holds no
            acceptable diff.
    """
    if is_empty_diff_response(text):
        logger.info("Diff response is empty, no changes needed")
        return []

    diffs: list[str] = []
    for match in _DIFF_FENCE_RE.finditer(text):
        body = match.group(1).strip()
        if _has_diff_markers(body):
            diffs.append(body)
        else:
            logger.debug("Rejected diff block without required markers: %.80r", body)

    if diffs:
        logger.debug("Extracted %d fenced diff blocks", len(diffs))
        return diffs

    stripped = text.strip()
    if _has_diff_markers(stripped) and _CHANGE_LINE_RE.search(stripped):
        logger.debug("Accepting unfenced response as a single diff")
        return [stripped]

    raise DiffFormatError("Response contains no valid unified diff block", raw=text)


def validate_hunk_counts(hunk: Hunk) -> None:
    """Check a hunk's header counts against its body.

    Headers without numbers (`@@ ... @@`) have nothing to check.

    Raises:
        HunkFormatError: On a mismatch.
    """
    problem = hunk.count_mismatch()
    if problem is not None:
        raise HunkFormatError(f"Hunk line counts do not match: {problem}")


def validate_diff(diff: str) -> list[Hunk]:
    """Parse a diff block and verify every hunk's counts."""
    try:
        hunks = parse_hunks(diff)
        for hunk in hunks:
            validate_hunk_counts(hunk)
    except HunkFormatError as e:
        raise HunkFormatError(str(e), raw=diff) from e
    return hunks


def extract_search_replace(text: str) -> SearchReplaceResult:
    """Return the search/replace blocks of a tier-2 response.

    Delimiter blocks are tried first, then JSON: either the documented
    object or a bare array of blocks.

    Raises:
        SearchReplaceFormatError: If nothing usable is found, or the
            block list is empty while the explanation describes a change.
    """
    blocks = _delimited_blocks(text)
    if blocks:
        logger.debug("Extracted %d delimited search/replace blocks", len(blocks))
        return SearchReplaceResult(explanation="", blocks=tuple(blocks))

    payload = _json_payload(text)
    if payload is None:
        raise SearchReplaceFormatError(
            "Response contains no search/replace blocks or parsable JSON", raw=text
        )

    try:
        if isinstance(payload, list):
            result = SearchReplaceResult(
                explanation="", blocks=tuple(_BLOCK_LIST.validate_python(payload))
            )
        else:
            parsed = SearchReplacePayload.model_validate(payload)
            result = SearchReplaceResult(
                explanation=parsed.explanation,
                blocks=tuple(parsed.search_replace_blocks),
            )
    except ValidationError as e:
        raise SearchReplaceFormatError(
            f"Invalid search/replace structure: {e.error_count()} errors", raw=text
        ) from e

    if not result.blocks and _implies_change(result.explanation):
        raise SearchReplaceFormatError(
            "Explanation describes a change but no blocks were returned", raw=text
        )

    logger.debug("Extracted %d JSON search/replace blocks", len(result.blocks))
    return result


def _delimited_blocks(text: str) -> list[SearchReplaceBlock]:
    blocks = []
    for match in _DELIMITED_RE.finditer(text):
        search = match.group(1).strip()
        if not search:
            continue
        blocks.append(SearchReplaceBlock(search=search, replace=match.group(2).strip()))
    return blocks


def _json_payload(text: str) -> dict | list | None:
    stripped = text.strip()
    fenced = _CODE_FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1).strip()

    candidates = [stripped]
    for opener, closer in (("{", "}"), ("[", "]")):
        first, last = stripped.find(opener), stripped.rfind(closer)
        if first != -1 and last > first:
            candidates.append(stripped[first : last + 1])

    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, (dict, list)):
            return payload
    return None


def _implies_change(explanation: str) -> bool:
    if _NO_CHANGE_RE.search(explanation):
        return False
    return bool(_CHANGE_WORDS_RE.search(explanation))
