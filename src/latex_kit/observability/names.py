# src/latex_kit/observability/names.py

"""Standard metric names for latex-kit observability.

Use these constants instead of hardcoded strings for consistency
across the codebase.

Note: All duration metrics are in milliseconds by convention.
Units are handled by the metrics backend (e.g., converted to seconds in Prometheus).
"""

# ============================================================================
# LLM Metrics
# ============================================================================

# Duration
LLM_COMPLETION_DURATION = "llm_completion_duration"

# Counters
LLM_REQUESTS_TOTAL = "llm_requests_total"
LLM_ERRORS_TOTAL = "llm_errors_total"

# Counters (token usage - monotonic over time for cost/rate tracking)
LLM_TOKENS_PROMPT = "llm_tokens_prompt"
LLM_TOKENS_COMPLETION = "llm_tokens_completion"
LLM_TOKENS_TOTAL = "llm_tokens_total"


# ============================================================================
# Parser Metrics
# ============================================================================

# Duration
LATEX_PARSE_DURATION = "latex_parse_duration"

# Counters
LATEX_PARSE_NODES_CREATED = "latex_parse_nodes_created"
LATEX_PARSE_DIAGNOSTICS_TOTAL = "latex_parse_diagnostics_total"


# ============================================================================
# Edit Intent Metrics
# ============================================================================

# Counters (labelled by winning strategy)
INTENT_RESOLUTIONS_TOTAL = "intent_resolutions_total"


# ============================================================================
# Edit Generation Metrics
# ============================================================================

# Duration
EDIT_GENERATION_DURATION = "edit_generation_duration"

# Counters (attempts labelled by tier and outcome)
EDIT_ATTEMPTS_TOTAL = "edit_attempts_total"
EDIT_ESCALATIONS_TOTAL = "edit_escalations_total"
EDIT_FAILURES_TOTAL = "edit_failures_total"


# ============================================================================
# Patch Metrics
# ============================================================================

# Duration
PATCH_APPLY_DURATION = "patch_apply_duration"

# Counters
PATCH_ITEMS_APPLIED = "patch_items_applied"
PATCH_FAILURES_TOTAL = "patch_failures_total"
