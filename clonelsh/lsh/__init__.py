"""Random hyperplane LSH: hash functions, bucket tables and the multi-table index."""

from .hash_table import BucketStats, HashTable
from .hyperplane import (
    HashFunction,
    compute_hash,
    compute_hash_batch,
    compute_projections,
    create_hash_function,
    estimate_cosine_similarity,
    generate_probes,
    hamming_distance,
    projection_quality,
)
from .lsh_index import Candidate, LSHIndex

__all__ = [
    'BucketStats',
    'HashTable',
    'HashFunction',
    'create_hash_function',
    'compute_projections',
    'compute_hash',
    'compute_hash_batch',
    'hamming_distance',
    'estimate_cosine_similarity',
    'generate_probes',
    'projection_quality',
    'Candidate',
    'LSHIndex',
]
