"""
Clone engine: the public surface of the index.

Indexes pre-split code blocks, answers similarity queries and groups all
indexed blocks into clone clusters. Every public method takes the engine
lock, so one engine can be shared between threads; mutations are
serialized and queries never observe a half-applied insert.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Any, Collection, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import EngineConfig
from ..core.types import (
    CloneCluster,
    CloneType,
    CodeBlock,
    IndexSummary,
    QueryResult,
    SourceBlock,
    create_code_block,
)
from ..embeddings.base import EmbeddingModel, create_embedding_model
from ..embeddings.tokenizer import tokenize
from ..errors import DimensionMismatchError
from ..lsh.lsh_index import LSHIndex
from ..persistence import LoadedIndex, build_document, parse_document, read_document, write_document
from ..utils.logging_setup import log_operation, timed
from .query_engine import (
    SIMILARITY_EPSILON,
    Edge,
    build_clusters,
    classify_clone,
    cosine_similarity,
    rank_candidates,
)
from .splitter import BlockSplitter, WholeSourceSplitter

DEFAULT_LOGGER_NAME = "clonelsh.engine"


class CloneEngine:
    """
    Clone detection over an LSH index of code embeddings.

    Args:
        config: Engine configuration (defaults if omitted)
        embedder: Embedding model; built from ``config.embedding`` if omitted
        splitter: Turns source text into candidate blocks for ``index_code``
        logger: Logger for progress and per-block failures

    Raises:
        ConfigurationError: If the embedder dimension differs from the LSH
            dimension
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        embedder: Optional[EmbeddingModel] = None,
        splitter: Optional[BlockSplitter] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or EngineConfig()
        self.embedder = embedder if embedder is not None else create_embedding_model(self.config.embedding)
        if self.embedder.dimension != self.config.lsh.dimension:
            raise DimensionMismatchError(self.config.lsh.dimension, self.embedder.dimension,
                                         context="embedder")
        self.splitter = splitter or WholeSourceSplitter()
        self.logger = logger or logging.getLogger(DEFAULT_LOGGER_NAME)
        self.lsh = LSHIndex.from_config(self.config.lsh)

        self._lock = threading.RLock()
        self._blocks: Dict[str, CodeBlock] = {}
        self._order: Dict[str, int] = {}
        self._sequence = 0

    # -------- indexing --------

    def index_code(self, source: str, file_path: str, language: Optional[str] = None) -> IndexSummary:
        """Split ``source`` into blocks and index them."""
        return self.index_blocks(self.splitter.split(source, language), file_path, language)

    def index_blocks(
        self,
        blocks: Iterable[SourceBlock],
        file_path: str,
        language: Optional[str] = None,
    ) -> IndexSummary:
        """
        Index pre-split blocks from one file.

        Blocks outside the configured token range, blocks already indexed and
        blocks no table accepts are skipped. A block that fails to embed is
        counted in ``failed`` and does not stop the others.
        """
        summary = IndexSummary(file_path=str(file_path))
        with self._lock, timed(self.logger, "index_code", file_path=str(file_path)) as fields:
            for source in blocks:
                try:
                    self._index_one(source, str(file_path), language, summary)
                except Exception as e:
                    summary.failed += 1
                    summary.errors.append(f"{file_path}:{source.start_line}: {e}")
                    self.logger.warning("Failed to index block at %s:%d: %s",
                                        file_path, source.start_line, e)
            if summary.rejected:
                self.logger.warning("%d block(s) from %s rejected by every table (buckets full)",
                                    summary.rejected, file_path)
            fields.update(summary.to_dict())
            fields.pop("errors")
        return summary

    def _index_one(self, source: SourceBlock, file_path: str,
                   language: Optional[str], summary: IndexSummary) -> None:
        lang = source.language or language or self.config.embedding.language
        token_count = len(tokenize(source.content, lang))
        parser = self.config.parser
        if token_count < parser.min_block_tokens:
            summary.too_small += 1
            self.logger.debug("Skipping %s:%d (%d tokens, minimum %d)", file_path,
                              source.start_line, token_count, parser.min_block_tokens)
            return
        if token_count > parser.max_block_tokens:
            summary.too_large += 1
            self.logger.debug("Skipping %s:%d (%d tokens, maximum %d)", file_path,
                              source.start_line, token_count, parser.max_block_tokens)
            return

        block = create_code_block(source, file_path, lang, token_count)
        if block.id in self._blocks:
            summary.duplicates += 1
            return

        embedding = np.asarray(self.embedder.embed(source.content), dtype=np.float64)
        if embedding.shape != (self.lsh.dimension,):
            raise DimensionMismatchError(self.lsh.dimension, embedding.shape[-1], context="embedding")
        embedding.setflags(write=False)
        block = dataclasses.replace(block, embedding=embedding)

        if self.lsh.insert(block.id, embedding, block) == 0:
            summary.rejected += 1
            self.logger.debug("No table accepted %s (buckets full)", block.id)
            return

        self._blocks[block.id] = block
        self._order[block.id] = self._sequence
        self._sequence += 1
        summary.blocks_added += 1
        summary.block_ids.append(block.id)

    # -------- queries --------

    def query(
        self,
        code: str,
        min_similarity: Optional[float] = None,
        max_results: Optional[int] = None,
        clone_types: Optional[Collection[CloneType]] = None,
        languages: Optional[Collection[str]] = None,
        multi_probe: Optional[bool] = None,
    ) -> QueryResult:
        """
        Find indexed blocks similar to ``code``.

        The query is embedded without changing the embedder's statistics.
        Results are sorted by exact cosine similarity, highest first.
        """
        with self._lock:
            embed_query = getattr(self.embedder, "embed_query", None) or self.embedder.embed
            vector = embed_query(code)
            return self._run_query(vector, "<code>", None, min_similarity, max_results,
                                   clone_types, languages, multi_probe, exclude_id=None)

    def query_vector(
        self,
        vector: Sequence[float],
        min_similarity: Optional[float] = None,
        max_results: Optional[int] = None,
        clone_types: Optional[Collection[CloneType]] = None,
        languages: Optional[Collection[str]] = None,
        multi_probe: Optional[bool] = None,
    ) -> QueryResult:
        """Like ``query`` for an already computed embedding."""
        with self._lock:
            return self._run_query(vector, "<vector>", None, min_similarity, max_results,
                                   clone_types, languages, multi_probe, exclude_id=None)

    def find_similar(
        self,
        block_id: str,
        min_similarity: Optional[float] = None,
        max_results: Optional[int] = None,
        clone_types: Optional[Collection[CloneType]] = None,
        languages: Optional[Collection[str]] = None,
    ) -> QueryResult:
        """Blocks similar to an indexed block, the block itself excluded."""
        with self._lock:
            block = self._blocks.get(block_id)
            if block is None:
                return QueryResult(query=block_id)
            return self._run_query(block.embedding, block_id, block_id, min_similarity,
                                   max_results, clone_types, languages, None, exclude_id=block_id)

    def _run_query(
        self,
        vector: Sequence[float],
        label: str,
        query_ref: Optional[str],
        min_similarity: Optional[float],
        max_results: Optional[int],
        clone_types: Optional[Collection[CloneType]],
        languages: Optional[Collection[str]],
        multi_probe: Optional[bool],
        exclude_id: Optional[str],
    ) -> QueryResult:
        start = time.perf_counter()
        defaults = self.config.query
        vec = np.asarray(vector, dtype=np.float64)
        candidates = self.lsh.query(
            vec,
            multi_probe=self.config.lsh.multi_probe if multi_probe is None else multi_probe,
            num_probes=self.config.lsh.num_probes,
        )
        results, total, truncated = rank_candidates(
            vec,
            candidates,
            self._order,
            self.config.thresholds,
            min_similarity=defaults.min_similarity if min_similarity is None else min_similarity,
            max_results=defaults.max_results if max_results is None else max_results,
            query_ref=query_ref,
            clone_types=clone_types,
            languages=languages,
            exclude_id=exclude_id,
        )
        return QueryResult(
            query=label,
            results=results,
            total_matches=total,
            candidates_retrieved=len(candidates),
            tables_queried=self.lsh.num_tables,
            truncated=truncated,
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )

    # -------- clustering --------

    def _clone_edges(self, min_similarity: float) -> Dict[Edge, float]:
        """Similarity graph over LSH candidate pairs, each pair scored once."""
        edges: Dict[Edge, float] = {}
        seen = set()
        for block in self._blocks.values():
            for candidate in self.lsh.query(block.embedding,
                                            multi_probe=self.config.lsh.multi_probe,
                                            num_probes=self.config.lsh.num_probes):
                other = candidate.block
                if other.id == block.id:
                    continue
                if self._order[other.id] < self._order[block.id]:
                    pair = (other.id, block.id)
                else:
                    pair = (block.id, other.id)
                if pair in seen:
                    continue
                seen.add(pair)
                similarity = cosine_similarity(block.embedding, other.embedding)
                if similarity + SIMILARITY_EPSILON >= min_similarity:
                    edges[pair] = similarity
        return edges

    def find_all_clones(self, min_similarity: Optional[float] = None) -> List[CloneCluster]:
        """
        Group every indexed block into clone clusters.

        Only pairs that share an LSH bucket are compared. Singletons are
        dropped, so every cluster has at least two blocks.
        """
        threshold = self.config.query.cluster_min_similarity if min_similarity is None else min_similarity
        with self._lock, timed(self.logger, "find_all_clones", min_similarity=threshold) as fields:
            clusters = self._find_all_clones(threshold)[0]
            fields["blocks"] = len(self._blocks)
            fields["clusters"] = len(clusters)
        return clusters

    def _find_all_clones(self, threshold: float) -> Tuple[List[CloneCluster], Dict[Edge, float]]:
        edges = self._clone_edges(threshold)
        clusters = build_clusters(list(self._blocks.values()), edges, self.config.thresholds)
        return clusters, edges

    # -------- block management --------

    def remove_block(self, block_id: str) -> bool:
        """Remove a block from the index. False if it is not indexed."""
        with self._lock:
            block = self._blocks.pop(block_id, None)
            if block is None:
                return False
            self._order.pop(block_id, None)
            removed = self.lsh.remove(block_id, block.embedding)
            self.logger.debug("Removed %s from %d tables", block_id, removed)
            return True

    def has_block(self, block_id: str) -> bool:
        with self._lock:
            return block_id in self._blocks

    def get_block(self, block_id: str) -> Optional[CodeBlock]:
        with self._lock:
            return self._blocks.get(block_id)

    def get_all_blocks(self) -> List[CodeBlock]:
        """All indexed blocks in insertion order."""
        with self._lock:
            return list(self._blocks.values())

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._blocks)

    def __len__(self) -> int:
        return self.size

    def clear(self) -> None:
        """Drop every block and reset the embedder statistics."""
        with self._lock:
            self._blocks.clear()
            self._order.clear()
            self._sequence = 0
            self.lsh.clear()
            reset = getattr(self.embedder, "reset", None)
            if reset is not None:
                reset()
            self.logger.info("Index cleared")

    # -------- reporting --------

    @property
    def embedder_kind(self) -> str:
        """Embedder kind name; the class name for embedders without one."""
        return getattr(self.embedder, "kind", type(self.embedder).__name__)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            blocks = list(self._blocks.values())
            embedder_stats: Dict[str, Any] = {
                "kind": self.embedder_kind,
                "dimension": self.embedder.dimension,
            }
            for attr in ("vocab_size", "num_documents", "dropped_terms"):
                if hasattr(self.embedder, attr):
                    embedder_stats[attr] = getattr(self.embedder, attr)
            return {
                "total_blocks": len(blocks),
                "files": len({b.file_path for b in blocks}),
                "languages": dict(Counter(b.language for b in blocks)),
                "lsh": self.lsh.get_stats(),
                "embedder": embedder_stats,
                "config": self.config.to_dict(),
            }

    def generate_summary(self, min_similarity: Optional[float] = None) -> Dict[str, Any]:
        """Index overview plus clone counts from a full clustering pass."""
        threshold = self.config.query.cluster_min_similarity if min_similarity is None else min_similarity
        with self._lock:
            blocks = list(self._blocks.values())
            clusters, edges = self._find_all_clones(threshold)
            by_type = Counter()
            for similarity in edges.values():
                clone_type = classify_clone(similarity, self.config.thresholds)
                if clone_type is not None:
                    by_type[clone_type.value] += 1
            return {
                "blocks_indexed": len(blocks),
                "files": len({b.file_path for b in blocks}),
                "languages": dict(Counter(b.language for b in blocks)),
                "clusters": len(clusters),
                "clone_pairs": len(edges),
                "by_type": {t.value: by_type.get(t.value, 0) for t in CloneType},
                "duplicated_lines": sum(c.duplicated_lines for c in clusters),
                "largest_cluster": max((c.size for c in clusters), default=0),
            }

    # -------- persistence --------

    def export_state(self) -> Dict[str, Any]:
        """Whole-index document (see ``clonelsh.persistence``)."""
        with self._lock:
            return build_document(self.config, self.embedder, self.lsh, list(self._blocks.values()))

    def import_state(self, document: Dict[str, Any]) -> None:
        """
        Replace the whole index with a previously exported document.

        Raises:
            SerializationError: If the document is invalid; the engine is
                left unchanged
        """
        self._apply(parse_document(document))

    def _apply(self, loaded: LoadedIndex) -> None:
        with self._lock:
            self.config = loaded.config
            self.embedder = loaded.embedder
            self.lsh = loaded.lsh
            self._blocks = dict(loaded.blocks)
            self._order = {block_id: i for i, block_id in enumerate(self._blocks)}
            self._sequence = len(self._blocks)

    def save(self, path: Union[str, Path]) -> None:
        with self._lock:
            document = self.export_state()
            write_document(document, path)
            log_operation(self.logger, "save", path=str(path), blocks=len(self._blocks))

    def load(self, path: Union[str, Path]) -> None:
        """Replace the index with the one saved at ``path``."""
        document = read_document(path)
        self.import_state(document)
        log_operation(self.logger, "load", path=str(path), blocks=self.size)

    @classmethod
    def from_file(cls, path: Union[str, Path], logger: Optional[logging.Logger] = None) -> "CloneEngine":
        document = read_document(path)
        loaded = parse_document(document)
        engine = cls(config=loaded.config, embedder=loaded.embedder, logger=logger)
        engine._apply(loaded)
        return engine
