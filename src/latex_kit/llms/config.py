# src/latex_kit/llms/config.py

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for LLM clients.

    Immutable. Explicit. No magic defaults from environment.
    """

    provider: Literal["openai", "anthropic"]
    model: str
    api_key: str | None = None  # Falls back to provider's env var
    timeout: float = 60.0
    max_retries: int = 0  # SDK-level retries; the edit escalation retries on its own
