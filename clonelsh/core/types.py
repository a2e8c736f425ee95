"""Shared data structures for the clone index.

Blocks flow in as ``SourceBlock`` (already delimited by an external
splitter), are frozen into ``CodeBlock`` records once embedded, and flow out
of the engine as ``CloneResult`` / ``CloneCluster`` objects.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np


class CloneType(str, Enum):
    """Clone categories, ordered by decreasing similarity."""

    TYPE_1 = "type-1"  # exact
    TYPE_2 = "type-2"  # parameterized (renamed identifiers)
    TYPE_3 = "type-3"  # near-miss (statements added/removed)
    TYPE_4 = "type-4"  # semantic

    @property
    def label(self) -> str:
        return {
            CloneType.TYPE_1: "exact",
            CloneType.TYPE_2: "parameterized",
            CloneType.TYPE_3: "near-miss",
            CloneType.TYPE_4: "semantic",
        }[self]


@dataclass(frozen=True)
class SourceBlock:
    """A pre-delimited candidate block handed over by a block splitter.

    Attributes:
        content: Raw block text
        start_line: First line of the block in its file (1-indexed)
        end_line: Last line (inclusive); derived from ``content`` when omitted
        language: Source language, or None to use the engine default
        kind: "function", "class", "method" or "block"
        name: Function/class name if known
    """
    content: str
    start_line: int = 1
    end_line: Optional[int] = None
    language: Optional[str] = None
    kind: str = "block"
    name: Optional[str] = None

    @property
    def last_line(self) -> int:
        if self.end_line is not None:
            return self.end_line
        return self.start_line + max(self.content.count("\n"), 0)


def content_hash(content: str) -> str:
    """Stable short digest of block content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def make_block_id(file_path: str, start_line: int, end_line: int, digest: str) -> str:
    """Block id derived from file path, span and content hash."""
    normalized = str(file_path).replace("\\", "/")
    return f"{normalized}:{start_line}-{end_line}:{digest[:12]}"


@dataclass(frozen=True)
class CodeBlock:
    """An indexed unit of code. Immutable once created.

    The embedding is cached on the block so the engine can rerank LSH
    candidates by exact cosine similarity without re-embedding.
    """
    id: str
    kind: str
    file_path: str
    start_line: int
    end_line: int
    content: str
    language: str
    token_count: int
    content_hash: str
    name: Optional[str] = None
    embedding: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"

    def preview(self, max_chars: int = 60) -> str:
        """Short preview of the content."""
        first_line = self.content.split("\n")[0].strip()
        if len(first_line) > max_chars:
            return first_line[:max_chars - 3] + "..."
        return first_line

    def to_record(self) -> Dict[str, Any]:
        """Plain-JSON record, embedding included."""
        return {
            "id": self.id,
            "kind": self.kind,
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "content": self.content,
            "language": self.language,
            "token_count": self.token_count,
            "content_hash": self.content_hash,
            "name": self.name,
            "embedding": None if self.embedding is None else [float(x) for x in self.embedding],
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "CodeBlock":
        embedding = data.get("embedding")
        return cls(
            id=str(data["id"]),
            kind=str(data["kind"]),
            file_path=str(data["file_path"]),
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
            content=str(data["content"]),
            language=str(data["language"]),
            token_count=int(data["token_count"]),
            content_hash=str(data["content_hash"]),
            name=data.get("name"),
            embedding=None if embedding is None else np.asarray(embedding, dtype=np.float64),
        )


def create_code_block(
    source: SourceBlock,
    file_path: str,
    language: str,
    token_count: int,
    embedding: Optional[np.ndarray] = None,
) -> CodeBlock:
    """Freeze a splitter block into an indexable ``CodeBlock``."""
    digest = content_hash(source.content)
    end_line = source.last_line
    return CodeBlock(
        id=make_block_id(file_path, source.start_line, end_line, digest),
        kind=source.kind,
        file_path=str(file_path).replace("\\", "/"),
        start_line=source.start_line,
        end_line=end_line,
        content=source.content,
        language=language,
        token_count=token_count,
        content_hash=digest,
        name=source.name,
        embedding=embedding,
    )


@dataclass
class CloneResult:
    """One match returned by a similarity query."""
    query_ref: Optional[str]          # block id for block queries, None for raw text
    target: CodeBlock
    similarity: float                 # exact cosine, clamped to [0, 1]
    clone_type: CloneType
    estimated_similarity: float = 0.0  # SimHash estimate from the best table
    table_matches: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query_ref,
            "target": self.target.id,
            "location": self.target.location,
            "similarity": self.similarity,
            "clone_type": self.clone_type.value,
            "estimated_similarity": self.estimated_similarity,
            "table_matches": self.table_matches,
        }


@dataclass
class QueryResult:
    """Ranked results of a query plus retrieval diagnostics."""
    query: str
    results: List[CloneResult] = field(default_factory=list)
    total_matches: int = 0
    candidates_retrieved: int = 0
    tables_queried: int = 0
    truncated: bool = False
    duration_ms: float = 0.0

    def __len__(self) -> int:
        return len(self.results)

    @property
    def block_ids(self) -> List[str]:
        return [r.target.id for r in self.results]


@dataclass
class CloneCluster:
    """A connected component of the clone graph (always 2+ blocks)."""
    id: str
    blocks: List[CodeBlock]
    representative: CodeBlock
    avg_similarity: float
    clone_type: CloneType
    duplicated_lines: int = 0

    @property
    def size(self) -> int:
        return len(self.blocks)

    @property
    def block_ids(self) -> List[str]:
        return [b.id for b in self.blocks]

    @property
    def files(self) -> List[str]:
        return sorted({b.file_path for b in self.blocks})


@dataclass
class IndexSummary:
    """Per-call outcome of ``index_code`` / ``index_blocks``."""
    file_path: str
    blocks_added: int = 0
    duplicates: int = 0
    too_small: int = 0
    too_large: int = 0
    rejected: int = 0   # no LSH table accepted the block (all buckets full)
    failed: int = 0
    block_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.duplicates + self.too_small + self.too_large + self.rejected

    @property
    def total(self) -> int:
        return self.blocks_added + self.skipped + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "blocks_added": self.blocks_added,
            "duplicates": self.duplicates,
            "too_small": self.too_small,
            "too_large": self.too_large,
            "rejected": self.rejected,
            "failed": self.failed,
            "errors": list(self.errors),
        }
