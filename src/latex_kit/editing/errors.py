# src/latex_kit/editing/errors.py


class ExtractionError(ValueError):
    """LLM output could not be read in the expected edit grammar."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class DiffFormatError(ExtractionError):
    """Tier 1: no usable unified diff in the response."""


class SearchReplaceFormatError(ExtractionError):
    """Tier 2: no usable search/replace blocks in the response."""


class HunkFormatError(ExtractionError):
    """A diff block has no parsable hunk, or its header counts are wrong."""


class PatchConflictError(Exception):
    """An edit cannot be located unambiguously in the current source."""


class EditGenerationError(Exception):
    """Terminal failure of the edit escalation.

    Carries what a user needs to see: a message, the upstream status when
    the provider refused the request, and the start of the last raw
    response.
    """

    def __init__(
        self,
        message: str,
        *,
        raw_excerpt: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.raw_excerpt = raw_excerpt
        self.status_code = status_code

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message}
        if self.raw_excerpt:
            payload["raw_response"] = self.raw_excerpt
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload
