"""Block splitters: turn a source text into candidate blocks.

Parsing source into functions and classes happens outside the index; the
engine only needs something that satisfies ``BlockSplitter``.
"""

from typing import List, Optional, Protocol, runtime_checkable

from ..core.types import SourceBlock


@runtime_checkable
class BlockSplitter(Protocol):
    def split(self, source: str, language: Optional[str] = None) -> List[SourceBlock]: ...


class WholeSourceSplitter:
    """Treats the whole source text as one block."""

    def split(self, source: str, language: Optional[str] = None) -> List[SourceBlock]:
        if not source or not source.strip():
            return []
        end_line = 1 + source.rstrip("\n").count("\n")
        return [SourceBlock(content=source, start_line=1, end_line=end_line, language=language)]
