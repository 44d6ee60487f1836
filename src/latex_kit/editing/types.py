# src/latex_kit/editing/types.py

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class SearchReplaceBlock(BaseModel):
    search: str
    replace: str
    explanation: str | None = None

    class Config:
        extra = "ignore"
        frozen = True


class SearchReplacePayload(BaseModel):
    """Shape of a JSON tier-2 response."""

    explanation: str
    search_replace_blocks: list[SearchReplaceBlock]

    class Config:
        extra = "ignore"


@dataclass(frozen=True)
class SearchReplaceResult:
    explanation: str
    blocks: tuple[SearchReplaceBlock, ...]


class EditFormat(str, Enum):
    UNIFIED_DIFF = "unified_diff"
    SEARCH_REPLACE = "search_replace"


@dataclass(frozen=True)
class EditResult:
    """Validated edit set produced by the escalation.

    Exactly one of `hunks` / `blocks` is used, depending on `format`.
    Both empty means the model decided no change was needed.
    """

    format: EditFormat
    tier: int
    attempts: int
    hunks: tuple[str, ...] = ()
    blocks: tuple[SearchReplaceBlock, ...] = ()
    explanation: str | None = None

    @property
    def no_changes(self) -> bool:
        return not self.hunks and not self.blocks
