# src/latex_kit/llms/__init__.py

"""LLM client layer for latex-kit.

Provides a thin, stateless abstraction over LLM providers. The edit
pipeline only ever sees raw completion text and provider-agnostic errors.

Design principles:
- Stateless: Every call receives full message list
- No retries: Retry and escalation policy lives in latex_kit.editing
- No behavior: No loops, no prompt fixing, no output parsing
- No leakage: Provider objects and exceptions never escape the adapter

Example:
    >>> from latex_kit.llms import create_llm_client, LLMConfig, Message, Role
    >>>
    >>> config = LLMConfig(provider="openai", model="gpt-4o")
    >>> client = create_llm_client(config)
    >>>
    >>> response = await client.complete(
    ...     messages=[Message(role=Role.USER, content="Fix the typo in line 3")]
    ... )
    >>> print(response.text)
"""

from .base import LLMClient, LLMResponse, Message, Role, Usage
from .config import LLMConfig
from .errors import LLMConnectionError, LLMError, LLMStatusError
from .factory import create_llm_client

__all__ = [
    # Factory
    "create_llm_client",
    # Protocol
    "LLMClient",
    # Config
    "LLMConfig",
    # Types
    "Message",
    "Role",
    "LLMResponse",
    "Usage",
    # Errors
    "LLMError",
    "LLMStatusError",
    "LLMConnectionError",
]
