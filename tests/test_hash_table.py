"""
Tests for the per-table bucket store.
"""

import pytest

from clonelsh.errors import ConfigurationError, SerializationError
from clonelsh.lsh.hash_table import HashTable

from conftest import make_block


@pytest.fixture
def table():
    return HashTable(table_index=0, max_bucket_size=3)


class TestInsertAndGet:
    """Test bucket insertion and lookup."""

    def test_insert_creates_bucket(self, table):
        """Test that the first insert creates the bucket."""
        assert table.insert(5, make_block("a"))
        assert [b.id for b in table.get(5)] == ["a"]
        assert table.num_buckets == 1
        assert table.has(5)
        assert table.has(5, "a")
        assert not table.has(5, "b")

    def test_missing_bucket(self, table):
        """Test that an unknown hash gives an empty list."""
        assert table.get(99) == []
        assert not table.has(99)

    def test_duplicate_rejected(self, table):
        """Test that the same id is not added twice to a bucket."""
        assert table.insert(5, make_block("a"))
        assert not table.insert(5, make_block("a"))
        assert table.size == 1
        assert table.rejected_inserts == 0

    def test_same_id_in_different_buckets(self, table):
        """Test that duplicates are only checked per bucket."""
        assert table.insert(1, make_block("a"))
        assert table.insert(2, make_block("a"))
        assert table.size == 2

    def test_full_bucket_rejects(self, table):
        """Test that a full bucket refuses new blocks without raising."""
        for name in "abc":
            assert table.insert(7, make_block(name))
        assert not table.insert(7, make_block("d"))
        assert [b.id for b in table.get(7)] == ["a", "b", "c"]
        assert table.rejected_inserts == 1
        assert table.get_stats().full_buckets == 1

    def test_get_multiple_dedups_in_order(self, table):
        """Test that several buckets are merged in first-seen order."""
        table.insert(1, make_block("a"))
        table.insert(1, make_block("b"))
        table.insert(2, make_block("b"))
        table.insert(2, make_block("c"))
        merged = table.get_multiple([1, 2, 3])
        assert [b.id for b in merged] == ["a", "b", "c"]
        assert [b.id for b in table.get_multiple([2, 1])] == ["b", "c", "a"]

    def test_invalid_capacity(self):
        """Test that a non-positive bucket size is a configuration error."""
        with pytest.raises(ConfigurationError):
            HashTable(max_bucket_size=0)


class TestRemove:
    """Test block removal."""

    def test_remove(self, table):
        """Test that removal deletes the block and then the empty bucket."""
        table.insert(5, make_block("a"))
        table.insert(5, make_block("b"))
        assert table.remove(5, "a")
        assert [b.id for b in table.get(5)] == ["b"]
        assert table.remove(5, "b")
        assert table.num_buckets == 0

    def test_remove_absent(self, table):
        """Test that removing something absent returns False."""
        table.insert(5, make_block("a"))
        assert not table.remove(5, "zzz")
        assert not table.remove(6, "a")

    def test_clear(self, table):
        """Test that clear empties the table."""
        table.insert(1, make_block("a"))
        table.clear()
        assert table.size == 0
        assert table.num_buckets == 0


class TestStats:
    """Test bucket statistics."""

    def test_empty_stats(self, table):
        """Test stats of an empty table."""
        stats = table.get_stats()
        assert stats.num_buckets == 0
        assert stats.avg_bucket_size == 0.0

    def test_bucket_sizes(self, table):
        """Test min/avg/max bucket sizes."""
        table.insert(1, make_block("a"))
        table.insert(2, make_block("b"))
        table.insert(2, make_block("c"))
        table.insert(2, make_block("d"))
        stats = table.get_stats().as_dict()
        assert stats["num_buckets"] == 2
        assert stats["total_entries"] == 4
        assert stats["min_bucket_size"] == 1
        assert stats["max_bucket_size"] == 3
        assert stats["avg_bucket_size"] == pytest.approx(2.0)


class TestState:
    """Test flat-list export and reconstruction."""

    def test_round_trip(self, table):
        """Test that a table rebuilt from its export has the same buckets."""
        blocks = {name: make_block(name) for name in "abc"}
        table.insert(2 ** 40, blocks["a"])
        table.insert(2 ** 40, blocks["b"])
        table.insert(3, blocks["c"])

        exported = table.export_state()
        assert exported[0] == {"hash": str(2 ** 40), "block_ids": ["a", "b"]}

        rebuilt = HashTable.from_state(exported, blocks, max_bucket_size=3)
        assert [b.id for b in rebuilt.get(2 ** 40)] == ["a", "b"]
        assert [b.id for b in rebuilt.get(3)] == ["c"]

    def test_unknown_block(self):
        """Test that a bucket naming an unknown block is refused."""
        with pytest.raises(SerializationError) as exc_info:
            HashTable.from_state([{"hash": "1", "block_ids": ["ghost"]}], {}, path="lsh.tables[0]")
        assert exc_info.value.path == "lsh.tables[0][0].block_ids"

    @pytest.mark.parametrize("raw_hash", ["-1", "0x10", 5, "abc", "²", "１２"])
    def test_bad_hash(self, raw_hash):
        """Test that hashes must be decimal strings."""
        blocks = {"a": make_block("a")}
        with pytest.raises(SerializationError):
            HashTable.from_state([{"hash": raw_hash, "block_ids": ["a"]}], blocks)

    def test_hash_too_wide(self):
        """Test that hashes must fit the table's bit width."""
        blocks = {"a": make_block("a")}
        with pytest.raises(SerializationError):
            HashTable.from_state([{"hash": str(2 ** 12), "block_ids": ["a"]}], blocks, num_bits=12)

    def test_overfull_bucket(self):
        """Test that stored buckets cannot exceed the size cap."""
        blocks = {name: make_block(name) for name in "abc"}
        with pytest.raises(SerializationError):
            HashTable.from_state([{"hash": "1", "block_ids": ["a", "b", "c"]}], blocks,
                                 max_bucket_size=2)
