# parsers/base.py

from abc import ABC, abstractmethod

from .models import ParsedDocument


class DocumentParser(ABC):
    @abstractmethod
    def parse(self, source: str) -> ParsedDocument:
        """
        Parse a complete source snapshot into a position-indexed tree.

        Requirements:
        - Deterministic output for same input
        - Offsets are document-global, half-open [start, end)
        - Never raises on malformed input; problems become diagnostics
        """
        raise NotImplementedError
