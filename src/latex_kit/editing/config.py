# src/latex_kit/editing/config.py

from dataclasses import dataclass


@dataclass(frozen=True)
class EscalationConfig:
    """Retry and request settings for edit generation.

    Immutable. Explicit. No magic defaults from environment.
    Delays are seconds per attempt: the n-th retry waits n * delay.
    """

    tier1_max_attempts: int = 3
    tier2_max_attempts: int = 2
    server_retry_delay: float = 1.0
    format_retry_delay: float = 1.5
    call_timeout: float = 60.0

    tier1_temperature: float = 0.1
    tier2_temperature: float = 0.3
    explain_temperature: float = 0.3
    max_tokens: int = 3000

    verify_hunk_counts: bool = True
    max_context_chars: int = 8000
    excerpt_chars: int = 300

    def __post_init__(self) -> None:
        if self.tier1_max_attempts < 1 or self.tier2_max_attempts < 1:
            raise ValueError("max attempts must be >= 1")
        if self.server_retry_delay < 0 or self.format_retry_delay < 0:
            raise ValueError("retry delays must be >= 0")
