"""
Bucket store for one LSH table.

Maps a K-bit code to a bounded, insertion-ordered set of blocks. A full
bucket refuses new blocks instead of growing: the refusal is reported by the
return value and counted, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.types import CodeBlock
from ..errors import ConfigurationError, SerializationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUCKET_SIZE = 1000


@dataclass
class BucketStats:
    """Bucket occupancy for health diagnostics."""
    num_buckets: int = 0
    total_entries: int = 0
    min_bucket_size: int = 0
    max_bucket_size: int = 0
    avg_bucket_size: float = 0.0
    full_buckets: int = 0
    rejected_inserts: int = 0

    def as_dict(self) -> Dict[str, float]:
        return {
            "num_buckets": self.num_buckets,
            "total_entries": self.total_entries,
            "min_bucket_size": self.min_bucket_size,
            "max_bucket_size": self.max_bucket_size,
            "avg_bucket_size": self.avg_bucket_size,
            "full_buckets": self.full_buckets,
            "rejected_inserts": self.rejected_inserts,
        }


class HashTable:
    """
    Buckets of one LSH table.

    Args:
        table_index: Position of the table in its index (for logging)
        max_bucket_size: Maximum number of blocks per bucket
    """

    def __init__(self, table_index: int = 0, max_bucket_size: int = DEFAULT_MAX_BUCKET_SIZE):
        if max_bucket_size <= 0:
            raise ConfigurationError("max_bucket_size must be positive",
                                     parameter="max_bucket_size", value=max_bucket_size)
        self.table_index = table_index
        self.max_bucket_size = max_bucket_size
        self.buckets: Dict[int, Dict[str, CodeBlock]] = {}
        self.rejected_inserts = 0

    def insert(self, hash_value: int, block: CodeBlock) -> bool:
        """
        Add ``block`` to the bucket for ``hash_value``.

        Returns False if the block is already in the bucket or the bucket is full.
        """
        bucket = self.buckets.get(hash_value)
        if bucket is None:
            bucket = self.buckets[hash_value] = {}
        if block.id in bucket:
            return False
        if len(bucket) >= self.max_bucket_size:
            self.rejected_inserts += 1
            logger.debug("Table %d bucket %d full (%d), rejecting %s",
                         self.table_index, hash_value, self.max_bucket_size, block.id)
            return False
        bucket[block.id] = block
        return True

    def get(self, hash_value: int) -> List[CodeBlock]:
        bucket = self.buckets.get(hash_value)
        return list(bucket.values()) if bucket else []

    def get_multiple(self, hash_values: Iterable[int]) -> List[CodeBlock]:
        """Union of several buckets, each block once, in first-seen order."""
        seen: Dict[str, CodeBlock] = {}
        for hash_value in hash_values:
            bucket = self.buckets.get(hash_value)
            if not bucket:
                continue
            for block_id, block in bucket.items():
                if block_id not in seen:
                    seen[block_id] = block
        return list(seen.values())

    def remove(self, hash_value: int, block_id: str) -> bool:
        """Remove a block; empty buckets are dropped. False if it was not there."""
        bucket = self.buckets.get(hash_value)
        if not bucket or block_id not in bucket:
            return False
        del bucket[block_id]
        if not bucket:
            del self.buckets[hash_value]
        return True

    def has(self, hash_value: int, block_id: Optional[str] = None) -> bool:
        """Whether the bucket exists (and holds ``block_id`` if given)."""
        bucket = self.buckets.get(hash_value)
        if not bucket:
            return False
        return block_id is None or block_id in bucket

    @property
    def num_buckets(self) -> int:
        return len(self.buckets)

    @property
    def size(self) -> int:
        """Total entries across buckets."""
        return sum(len(b) for b in self.buckets.values())

    def clear(self) -> None:
        self.buckets.clear()
        self.rejected_inserts = 0

    def get_stats(self) -> BucketStats:
        sizes = [len(b) for b in self.buckets.values()]
        if not sizes:
            return BucketStats(rejected_inserts=self.rejected_inserts)
        return BucketStats(
            num_buckets=len(sizes),
            total_entries=sum(sizes),
            min_bucket_size=min(sizes),
            max_bucket_size=max(sizes),
            avg_bucket_size=sum(sizes) / len(sizes),
            full_buckets=sum(1 for s in sizes if s >= self.max_bucket_size),
            rejected_inserts=self.rejected_inserts,
        )

    # -------- persistence --------

    def export_state(self) -> List[Dict[str, Any]]:
        """Flat ``[{hash, block_ids}]`` list; hashes as decimal strings."""
        return [
            {"hash": str(hash_value), "block_ids": list(bucket)}
            for hash_value, bucket in self.buckets.items()
        ]

    @classmethod
    def from_state(
        cls,
        entries: List[Dict[str, Any]],
        blocks: Mapping[str, CodeBlock],
        table_index: int = 0,
        max_bucket_size: int = DEFAULT_MAX_BUCKET_SIZE,
        num_bits: int = 64,
        path: str = "table",
    ) -> "HashTable":
        """
        Rebuild a table from ``export_state`` output.

        Every block id must resolve through ``blocks``.

        Raises:
            SerializationError: On malformed entries, unknown ids, out-of-range
                hashes or buckets larger than ``max_bucket_size``
        """
        if not isinstance(entries, list):
            raise SerializationError("table must be a list of buckets", path=path)
        table = cls(table_index=table_index, max_bucket_size=max_bucket_size)
        limit = 1 << num_bits
        for i, entry in enumerate(entries):
            entry_path = f"{path}[{i}]"
            if not isinstance(entry, dict) or "hash" not in entry or "block_ids" not in entry:
                raise SerializationError("bucket must have 'hash' and 'block_ids'", path=entry_path)
            raw_hash = entry["hash"]
            if not isinstance(raw_hash, str) or not (raw_hash.isascii() and raw_hash.isdigit()):
                raise SerializationError(f"hash must be a decimal string, got {raw_hash!r}",
                                         path=f"{entry_path}.hash")
            hash_value = int(raw_hash)
            if hash_value >= limit:
                raise SerializationError(f"hash {hash_value} does not fit in {num_bits} bits",
                                         path=f"{entry_path}.hash")
            if hash_value in table.buckets:
                raise SerializationError(f"duplicate bucket {hash_value}", path=f"{entry_path}.hash")
            block_ids = entry["block_ids"]
            if not isinstance(block_ids, list) or not block_ids:
                raise SerializationError("block_ids must be a non-empty list",
                                         path=f"{entry_path}.block_ids")
            if len(block_ids) > max_bucket_size:
                raise SerializationError(
                    f"bucket holds {len(block_ids)} blocks, limit is {max_bucket_size}",
                    path=f"{entry_path}.block_ids",
                )
            bucket: Dict[str, CodeBlock] = {}
            for block_id in block_ids:
                if not isinstance(block_id, str) or block_id not in blocks:
                    raise SerializationError(f"unknown block id {block_id!r}",
                                             path=f"{entry_path}.block_ids")
                if block_id in bucket:
                    raise SerializationError(f"block id {block_id!r} repeated in bucket",
                                             path=f"{entry_path}.block_ids")
                bucket[block_id] = blocks[block_id]
            table.buckets[hash_value] = bucket
        return table
