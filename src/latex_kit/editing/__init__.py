# src/latex_kit/editing/__init__.py

"""Edit generation and application for LaTeX sources.

Pipeline:
- `resolve` maps an instruction and a suggestion onto a tree node
- `EditEscalation` asks the model for a unified diff, then falls back
  to search/replace blocks
- `apply_hunks` / `apply_search_replace` produce the new source

`EditWorkflow` runs the whole pipeline for one request.
"""

from .config import EscalationConfig
from .errors import (
    DiffFormatError,
    EditGenerationError,
    ExtractionError,
    HunkFormatError,
    PatchConflictError,
    SearchReplaceFormatError,
)
from .escalation import (
    AttemptState,
    EditEscalation,
    ErrorClass,
    classify_error,
    next_state,
    retry_delay,
)
from .extraction import (
    extract_search_replace,
    extract_unified_diff,
    validate_diff,
    validate_hunk_counts,
)
from .hunks import Hunk, parse_hunks
from .intent import (
    EditIntent,
    EditType,
    apply_edit,
    detect_edit_type,
    edit_range,
    extract_edit_content,
    extract_keywords,
    resolve,
)
from .patching import (
    PatchFailure,
    PatchResult,
    apply_hunks,
    apply_result,
    apply_search_replace,
)
from .types import EditFormat, EditResult, SearchReplaceBlock, SearchReplaceResult
from .workflow import EditOutcome, EditWorkflow

__all__ = [
    # Workflow
    "EditWorkflow",
    "EditOutcome",
    # Config
    "EscalationConfig",
    # Intent
    "EditIntent",
    "EditType",
    "resolve",
    "detect_edit_type",
    "extract_keywords",
    "extract_edit_content",
    "edit_range",
    "apply_edit",
    # Extraction
    "extract_unified_diff",
    "extract_search_replace",
    "validate_diff",
    "validate_hunk_counts",
    "Hunk",
    "parse_hunks",
    # Escalation
    "EditEscalation",
    "AttemptState",
    "ErrorClass",
    "classify_error",
    "next_state",
    "retry_delay",
    # Patching
    "PatchFailure",
    "PatchResult",
    "apply_hunks",
    "apply_search_replace",
    "apply_result",
    # Types
    "EditFormat",
    "EditResult",
    "SearchReplaceBlock",
    "SearchReplaceResult",
    # Errors
    "ExtractionError",
    "DiffFormatError",
    "SearchReplaceFormatError",
    "HunkFormatError",
    "PatchConflictError",
    "EditGenerationError",
]
