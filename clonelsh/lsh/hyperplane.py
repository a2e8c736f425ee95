"""
Random hyperplane (SimHash) hash functions.

Each table owns K unit-length hyperplanes. A vector's K-bit code has bit i
set iff its dot product with hyperplane i is non-negative; bit i is packed
as ``1 << i``. Vectors at a small angle agree on most bits, so they collide
in at least one table with high probability.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..errors import ConfigurationError, DimensionMismatchError, SerializationError

MAX_BITS = 64


@dataclass(frozen=True, eq=False)
class HashFunction:
    """The ordered hyperplanes of one LSH table (shape ``num_bits x dimension``)."""
    table_index: int
    seed: int
    hyperplanes: np.ndarray

    @property
    def num_bits(self) -> int:
        return int(self.hyperplanes.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.hyperplanes.shape[1])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_index": self.table_index,
            "seed": self.seed,
            "coefficients": [[float(x) for x in row] for row in self.hyperplanes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], num_bits: int, dimension: int,
                  path: str = "hash_function") -> "HashFunction":
        """Rebuild from stored coefficients, checking the expected shape."""
        if not isinstance(data, dict):
            raise SerializationError("hash function must be an object", path=path)
        try:
            table_index = int(data["table_index"])
            seed = int(data["seed"])
            coefficients = np.asarray(data["coefficients"], dtype=np.float64)
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"invalid hash function: {e}", path=path) from e
        if coefficients.shape != (num_bits, dimension):
            raise SerializationError(
                f"coefficients have shape {coefficients.shape}, expected {(num_bits, dimension)}",
                path=f"{path}.coefficients",
            )
        if not np.all(np.isfinite(coefficients)):
            raise SerializationError("coefficients must be finite", path=f"{path}.coefficients")
        coefficients.setflags(write=False)
        return cls(table_index=table_index, seed=seed, hyperplanes=coefficients)


def generate_hyperplane(seed: int, table_index: int, bit_index: int, dimension: int) -> np.ndarray:
    """Unit-norm hyperplane determined entirely by its arguments."""
    rng = np.random.default_rng(np.random.SeedSequence([seed, table_index, bit_index]))
    plane = rng.standard_normal(dimension)
    return plane / np.linalg.norm(plane)


def create_hash_function(seed: int, table_index: int, num_bits: int, dimension: int) -> HashFunction:
    """
    Derive the hyperplanes for one table.

    Identical arguments always yield identical hyperplanes.

    Raises:
        ConfigurationError: If ``num_bits`` is outside [1, 64] or ``dimension`` < 1
    """
    if not 1 <= num_bits <= MAX_BITS:
        raise ConfigurationError(f"num_bits must be between 1 and {MAX_BITS}, got {num_bits}",
                                 parameter="num_bits", value=num_bits)
    if dimension < 1:
        raise ConfigurationError("dimension must be positive", parameter="dimension", value=dimension)
    planes = np.stack([
        generate_hyperplane(seed, table_index, bit, dimension) for bit in range(num_bits)
    ])
    planes.setflags(write=False)
    return HashFunction(table_index=table_index, seed=seed, hyperplanes=planes)


def _as_vector(fn: HashFunction, vector: Sequence[float]) -> np.ndarray:
    vec = np.asarray(vector, dtype=np.float64)
    if vec.ndim != 1 or vec.shape[0] != fn.dimension:
        raise DimensionMismatchError(fn.dimension, vec.shape[-1] if vec.ndim else 0)
    return vec


def compute_projections(fn: HashFunction, vector: Sequence[float]) -> np.ndarray:
    """Signed distances of ``vector`` to each hyperplane."""
    return fn.hyperplanes @ _as_vector(fn, vector)


def pack_bits(bits: np.ndarray) -> int:
    """Pack a boolean array into an int, element i as ``1 << i``."""
    value = 0
    for i in np.flatnonzero(bits):
        value |= 1 << int(i)
    return value


def compute_hash(fn: HashFunction, vector: Sequence[float]) -> int:
    """K-bit code of ``vector``; zero projections count as positive."""
    return pack_bits(compute_projections(fn, vector) >= 0)


def compute_hash_batch(fn: HashFunction, vectors: Sequence[Sequence[float]]) -> List[int]:
    """Codes for a stack of vectors (shape ``n x dimension``)."""
    matrix = np.asarray(vectors, dtype=np.float64)
    if matrix.size == 0:
        return []
    if matrix.ndim != 2 or matrix.shape[1] != fn.dimension:
        raise DimensionMismatchError(fn.dimension, matrix.shape[-1], context="batch")
    projections = matrix @ fn.hyperplanes.T
    return [pack_bits(row >= 0) for row in projections]


def hamming_distance(a: int, b: int) -> int:
    return bin(a ^ b).count("1")


def estimate_cosine_similarity(a: int, b: int, num_bits: int) -> float:
    """
    SimHash estimate ``cos(pi * hamming / K)``.

    Cheap pre-filter only; final scores use exact cosine similarity.
    """
    if num_bits <= 0:
        raise ConfigurationError("num_bits must be positive", parameter="num_bits", value=num_bits)
    return math.cos(math.pi * hamming_distance(a, b) / num_bits)


def generate_probes(
    hash_value: int,
    num_probes: int,
    num_bits: int,
    projections: Optional[Sequence[float]] = None,
) -> List[int]:
    """
    The code itself followed by up to ``num_probes`` neighboring codes.

    Bits whose projection is closest to zero are the least reliable, so they
    are flipped first: all single-bit flips in order of increasing
    ``|projection|``, then two-bit flips in order of increasing combined
    margin. Without projections, bits are flipped in index order.
    """
    probes = [hash_value]
    if num_probes <= 0 or num_bits <= 0:
        return probes

    if projections is not None:
        margins = np.abs(np.asarray(projections, dtype=np.float64))
        if margins.shape != (num_bits,):
            raise DimensionMismatchError(num_bits, margins.shape[-1] if margins.ndim else 0,
                                         context="projections")
        order = [int(i) for i in np.argsort(margins, kind="stable")]
        cost = {bit: float(margins[bit]) for bit in order}
    else:
        order = list(range(num_bits))
        cost = {bit: float(bit) for bit in order}

    for bit in order:
        if len(probes) > num_probes:
            return probes
        probes.append(hash_value ^ (1 << bit))

    remaining = num_probes + 1 - len(probes)
    if remaining > 0:
        # The cheapest `remaining` pairs only involve the first remaining + 1 bits
        pool = order[:remaining + 1]
        pairs = sorted(combinations(pool, 2), key=lambda p: cost[p[0]] + cost[p[1]])
        for first, second in pairs[:remaining]:
            probes.append(hash_value ^ (1 << first) ^ (1 << second))
    return probes


def projection_quality(fn: HashFunction) -> Dict[str, float]:
    """
    Mean and max absolute correlation between distinct hyperplanes.

    Values near zero mean the bits are close to independent.
    """
    if fn.num_bits < 2:
        return {"mean_abs_correlation": 0.0, "max_abs_correlation": 0.0}
    gram = np.abs(fn.hyperplanes @ fn.hyperplanes.T)
    off_diagonal = gram[~np.eye(fn.num_bits, dtype=bool)]
    return {
        "mean_abs_correlation": float(off_diagonal.mean()),
        "max_abs_correlation": float(off_diagonal.max()),
    }
