"""
Multi-table hyperplane LSH index.

Holds L (hash function, hash table) pairs. Insertion hashes a vector in every
table; a query collects the matching bucket of every table (plus multi-probe
neighbors) and returns the de-duplicated union as a candidate superset.
Exact similarity is left to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..config import LSHConfig
from ..core.types import CodeBlock
from ..errors import ConfigurationError, DimensionMismatchError, SerializationError
from .hash_table import DEFAULT_MAX_BUCKET_SIZE, HashTable
from .hyperplane import (
    MAX_BITS,
    HashFunction,
    compute_projections,
    create_hash_function,
    estimate_cosine_similarity,
    generate_probes,
    hamming_distance,
    pack_bits,
    projection_quality,
)

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """A block retrieved from at least one table."""
    block: CodeBlock
    table_matches: int = 1
    min_hamming: int = 0             # closest probed bucket to the query code
    estimated_similarity: float = 1.0

    @property
    def block_id(self) -> str:
        return self.block.id


class LSHIndex:
    """
    L independent SimHash tables.

    Args:
        num_tables: Number of tables (L)
        num_bits: Bits per table (K), at most 64
        dimension: Vector length (D)
        seed: Seed for hyperplane generation
        max_bucket_size: Per-bucket capacity
    """

    def __init__(
        self,
        num_tables: int = 20,
        num_bits: int = 12,
        dimension: int = 384,
        seed: int = 42,
        max_bucket_size: int = DEFAULT_MAX_BUCKET_SIZE,
        hash_functions: Optional[List[HashFunction]] = None,
    ):
        if num_tables <= 0:
            raise ConfigurationError("num_tables must be positive",
                                     parameter="num_tables", value=num_tables)
        if not 1 <= num_bits <= MAX_BITS:
            raise ConfigurationError(f"num_bits must be between 1 and {MAX_BITS}, got {num_bits}",
                                     parameter="num_bits", value=num_bits)
        if dimension <= 0:
            raise ConfigurationError("dimension must be positive",
                                     parameter="dimension", value=dimension)
        self.num_tables = num_tables
        self.num_bits = num_bits
        self.dimension = dimension
        self.seed = seed
        self.max_bucket_size = max_bucket_size

        if hash_functions is None:
            hash_functions = [
                create_hash_function(seed, i, num_bits, dimension) for i in range(num_tables)
            ]
        elif len(hash_functions) != num_tables:
            raise ConfigurationError(
                f"expected {num_tables} hash functions, got {len(hash_functions)}",
                parameter="hash_functions", value=len(hash_functions),
            )
        for fn in hash_functions:
            if fn.num_bits != num_bits or fn.dimension != dimension:
                raise ConfigurationError(
                    f"hash function {fn.table_index} has shape "
                    f"{(fn.num_bits, fn.dimension)}, expected {(num_bits, dimension)}",
                    parameter="hash_functions",
                )
        self.hash_functions = hash_functions
        self.tables = [HashTable(i, max_bucket_size) for i in range(num_tables)]

    @classmethod
    def from_config(cls, config: LSHConfig) -> "LSHIndex":
        return cls(
            num_tables=config.num_tables,
            num_bits=config.num_bits,
            dimension=config.dimension,
            seed=config.seed,
            max_bucket_size=config.max_bucket_size,
        )

    def _check_vector(self, vector: Sequence[float]) -> np.ndarray:
        vec = np.asarray(vector, dtype=np.float64)
        if vec.ndim != 1 or vec.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, vec.shape[-1] if vec.ndim else 0)
        return vec

    def hash_vector(self, vector: Sequence[float]) -> List[int]:
        """One code per table."""
        vec = self._check_vector(vector)
        return [pack_bits(compute_projections(fn, vec) >= 0) for fn in self.hash_functions]

    def insert(self, block_id: str, vector: Sequence[float], block: CodeBlock) -> int:
        """
        Insert ``block`` under ``vector`` in every table.

        Returns the number of tables that accepted it; 0 means the block is
        unreachable (duplicate id or every target bucket full).

        Raises:
            DimensionMismatchError: Before any table is touched
        """
        if block.id != block_id:
            raise ValueError(f"block id {block.id!r} does not match {block_id!r}")
        hashes = self.hash_vector(vector)
        accepted = 0
        for table, hash_value in zip(self.tables, hashes):
            if table.insert(hash_value, block):
                accepted += 1
        if accepted < self.num_tables:
            logger.debug("Block %s accepted by %d of %d tables",
                         block_id, accepted, self.num_tables)
        return accepted

    def query(
        self,
        vector: Sequence[float],
        multi_probe: bool = True,
        num_probes: int = 3,
        max_candidates: Optional[int] = None,
    ) -> List[Candidate]:
        """
        Candidate superset for ``vector`` in first-seen order.

        With ``multi_probe`` each table also looks up up to ``num_probes``
        neighboring codes, least confident bits flipped first.
        """
        vec = self._check_vector(vector)
        found: Dict[str, Candidate] = {}

        for fn, table in zip(self.hash_functions, self.tables):
            projections = compute_projections(fn, vec)
            code = pack_bits(projections >= 0)
            if multi_probe and num_probes > 0:
                probes = generate_probes(code, num_probes, self.num_bits, projections)
            else:
                probes = [code]

            in_this_table = set()
            for probe in probes:
                bucket = table.get(probe)
                if not bucket:
                    continue
                distance = hamming_distance(code, probe)
                for block in bucket:
                    candidate = found.get(block.id)
                    if candidate is None:
                        found[block.id] = Candidate(
                            block=block, table_matches=0, min_hamming=distance,
                            estimated_similarity=estimate_cosine_similarity(code, probe, self.num_bits),
                        )
                        candidate = found[block.id]
                    elif distance < candidate.min_hamming:
                        candidate.min_hamming = distance
                        candidate.estimated_similarity = estimate_cosine_similarity(
                            code, probe, self.num_bits)
                    if block.id not in in_this_table:
                        in_this_table.add(block.id)
                        candidate.table_matches += 1

        candidates = list(found.values())
        if max_candidates is not None and len(candidates) > max_candidates:
            candidates = candidates[:max_candidates]
        return candidates

    def candidate_ids(self, vector: Sequence[float], **options: Any) -> List[str]:
        return [c.block_id for c in self.query(vector, **options)]

    def remove(self, block_id: str, vector: Sequence[float]) -> int:
        """Remove a block from every table holding it; returns how many did."""
        hashes = self.hash_vector(vector)
        return sum(1 for table, h in zip(self.tables, hashes) if table.remove(h, block_id))

    def clear(self) -> None:
        for table in self.tables:
            table.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Per-table and aggregate bucket statistics."""
        per_table = [table.get_stats() for table in self.tables]
        non_empty = [s for s in per_table if s.num_buckets]
        total_buckets = sum(s.num_buckets for s in per_table)
        total_entries = sum(s.total_entries for s in per_table)
        return {
            "num_tables": self.num_tables,
            "num_bits": self.num_bits,
            "dimension": self.dimension,
            "max_bucket_size": self.max_bucket_size,
            "total_buckets": total_buckets,
            "total_entries": total_entries,
            "min_bucket_size": min((s.min_bucket_size for s in non_empty), default=0),
            "max_bucket_size_seen": max((s.max_bucket_size for s in non_empty), default=0),
            "avg_bucket_size": total_entries / total_buckets if total_buckets else 0.0,
            "full_buckets": sum(s.full_buckets for s in per_table),
            "rejected_inserts": sum(s.rejected_inserts for s in per_table),
            "tables": [s.as_dict() for s in per_table],
        }

    def hyperplane_quality(self) -> List[Dict[str, float]]:
        return [projection_quality(fn) for fn in self.hash_functions]

    # -------- persistence --------

    def export_state(self) -> Dict[str, Any]:
        return {
            "num_tables": self.num_tables,
            "num_bits": self.num_bits,
            "dimension": self.dimension,
            "seed": self.seed,
            "max_bucket_size": self.max_bucket_size,
            "hash_functions": [fn.to_dict() for fn in self.hash_functions],
            "tables": [table.export_state() for table in self.tables],
        }

    @classmethod
    def from_state(cls, data: Dict[str, Any], blocks: Mapping[str, CodeBlock],
                   path: str = "lsh") -> "LSHIndex":
        """
        Rebuild an index from ``export_state`` output using stored coefficients.

        Raises:
            SerializationError: If any part of ``data`` is malformed
        """
        if not isinstance(data, dict):
            raise SerializationError("lsh state must be an object", path=path)
        try:
            num_tables = int(data["num_tables"])
            num_bits = int(data["num_bits"])
            dimension = int(data["dimension"])
            seed = int(data["seed"])
            max_bucket_size = int(data["max_bucket_size"])
            raw_functions = data["hash_functions"]
            raw_tables = data["tables"]
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"invalid lsh header: {e}", path=path) from e

        if not isinstance(raw_functions, list) or len(raw_functions) != num_tables:
            raise SerializationError(f"expected {num_tables} hash functions",
                                     path=f"{path}.hash_functions")
        if not isinstance(raw_tables, list) or len(raw_tables) != num_tables:
            raise SerializationError(f"expected {num_tables} tables", path=f"{path}.tables")

        functions = [
            HashFunction.from_dict(raw, num_bits, dimension, path=f"{path}.hash_functions[{i}]")
            for i, raw in enumerate(raw_functions)
        ]
        try:
            index = cls(num_tables, num_bits, dimension, seed, max_bucket_size,
                        hash_functions=functions)
        except ConfigurationError as e:
            raise SerializationError(f"invalid lsh parameters: {e.message}", path=path) from e

        index.tables = [
            HashTable.from_state(raw, blocks, table_index=i, max_bucket_size=max_bucket_size,
                                 num_bits=num_bits, path=f"{path}.tables[{i}]")
            for i, raw in enumerate(raw_tables)
        ]
        return index
