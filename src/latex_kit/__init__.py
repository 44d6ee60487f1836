# Editing
from .editing import (
    EditGenerationError,
    EditIntent,
    EditResult,
    EditWorkflow,
    EscalationConfig,
    apply_hunks,
    apply_search_replace,
    resolve,
)

# LLMs
from .llms import LLMClient, LLMConfig, Message, Role, create_llm_client

# Observability
from .observability import InMemoryMetricsHook, MetricsHook, NoOpMetricsHook

# Parsers
from .parsers import LatexParser, Node, NodeKind, ParsedDocument

# Prompts
from .prompts import Prompt, PromptsLibrary

__all__ = [
    # Editing
    "EditGenerationError",
    "EditIntent",
    "EditResult",
    "EditWorkflow",
    "EscalationConfig",
    "apply_hunks",
    "apply_search_replace",
    "resolve",
    # LLMs
    "LLMClient",
    "LLMConfig",
    "Message",
    "Role",
    "create_llm_client",
    # Observability
    "InMemoryMetricsHook",
    "MetricsHook",
    "NoOpMetricsHook",
    # Parsers
    "LatexParser",
    "Node",
    "NodeKind",
    "ParsedDocument",
    # Prompts
    "Prompt",
    "PromptsLibrary",
]
