# src/latex_kit/llms/errors.py

"""Provider-agnostic upstream errors.

Adapters translate SDK exceptions into these so that callers can decide
on retries without importing any provider package.
"""


class LLMError(Exception):
    """Base class for upstream LLM call failures."""


class LLMStatusError(LLMError):
    """The provider answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(f"LLM provider returned HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class LLMConnectionError(LLMError):
    """Network failure or timeout before a response was received."""
