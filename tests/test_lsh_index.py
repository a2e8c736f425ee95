"""
Tests for the multi-table hyperplane LSH index.
"""

import json

import numpy as np
import pytest

from clonelsh.config import LSHConfig
from clonelsh.errors import ConfigurationError, DimensionMismatchError, SerializationError
from clonelsh.lsh.lsh_index import LSHIndex

from conftest import make_block, random_unit_vectors

DIM = 32


@pytest.fixture
def index():
    return LSHIndex(num_tables=6, num_bits=8, dimension=DIM, seed=11)


@pytest.fixture
def populated(index):
    vectors = random_unit_vectors(25, DIM, seed=1)
    blocks = {}
    for i, vec in enumerate(vectors):
        block = make_block(f"b{i}", dimension=DIM, embedding=vec)
        blocks[block.id] = block
        index.insert(block.id, vec, block)
    return index, vectors, blocks


class TestInsertAndQuery:
    """Test insertion and candidate retrieval."""

    def test_insert_into_every_table(self, index):
        """Test that a fresh block is accepted by all tables."""
        vec = random_unit_vectors(1, DIM)[0]
        assert index.insert("a", vec, make_block("a", DIM, vec)) == 6
        assert index.get_stats()["total_entries"] == 6

    def test_self_retrieval(self, populated):
        """Test that every inserted vector retrieves its own block."""
        index, vectors, _ = populated
        for i, vec in enumerate(vectors):
            assert f"b{i}" in index.candidate_ids(vec, multi_probe=False)

    def test_identical_vector_matches_all_tables(self, populated):
        """Test match counts and the estimate for an exact hit."""
        index, vectors, _ = populated
        candidates = {c.block_id: c for c in index.query(vectors[0], multi_probe=False)}
        hit = candidates["b0"]
        assert hit.table_matches == 6
        assert hit.min_hamming == 0
        assert hit.estimated_similarity == pytest.approx(1.0)

    def test_multi_probe_superset(self, populated):
        """Test that probing neighbors never loses candidates."""
        index, _, _ = populated
        query = random_unit_vectors(1, DIM, seed=99)[0]
        plain = set(index.candidate_ids(query, multi_probe=False))
        probed = set(index.candidate_ids(query, multi_probe=True, num_probes=4))
        assert plain <= probed

    def test_candidates_are_unique(self, populated):
        """Test that each block appears once however many tables match."""
        index, vectors, _ = populated
        ids = index.candidate_ids(vectors[3], num_probes=6)
        assert len(ids) == len(set(ids))

    def test_max_candidates(self, populated):
        """Test that the candidate list can be capped."""
        index, vectors, _ = populated
        assert len(index.query(vectors[0], num_probes=8, max_candidates=2)) <= 2

    def test_dimension_checked_before_mutation(self, index):
        """Test that a wrong-length vector leaves the index untouched."""
        with pytest.raises(DimensionMismatchError):
            index.insert("a", np.ones(DIM + 1), make_block("a", DIM))
        assert index.get_stats()["total_entries"] == 0
        with pytest.raises(DimensionMismatchError):
            index.query(np.ones(DIM - 1))

    def test_block_id_must_match(self, index):
        """Test that the id argument and block id must agree."""
        with pytest.raises(ValueError):
            index.insert("a", np.ones(DIM), make_block("b", DIM))


class TestCapacity:
    """Test behaviour when buckets are full."""

    def test_full_buckets_reject(self):
        """Test that a block landing only in full buckets is rejected everywhere."""
        index = LSHIndex(num_tables=4, num_bits=8, dimension=DIM, max_bucket_size=1)
        vec = random_unit_vectors(1, DIM)[0]
        assert index.insert("a", vec, make_block("a", DIM, vec)) == 4
        assert index.insert("b", vec, make_block("b", DIM, vec)) == 0
        stats = index.get_stats()
        assert stats["rejected_inserts"] == 4
        assert stats["full_buckets"] == 4
        assert index.candidate_ids(vec, multi_probe=False) == ["a"]


class TestRemove:
    """Test removal across tables."""

    def test_remove(self, populated):
        """Test that a removed block is no longer a candidate."""
        index, vectors, _ = populated
        assert index.remove("b4", vectors[4]) == 6
        assert "b4" not in index.candidate_ids(vectors[4], num_probes=8)

    def test_remove_unknown(self, populated):
        """Test that removing an unknown block is a no-op."""
        index, vectors, _ = populated
        assert index.remove("nope", vectors[0]) == 0

    def test_clear(self, populated):
        """Test that clear empties every table."""
        index, vectors, _ = populated
        index.clear()
        assert index.query(vectors[0]) == []


class TestConfigurationAndStats:
    """Test construction and statistics."""

    def test_from_config(self):
        """Test building from an LSHConfig."""
        index = LSHIndex.from_config(LSHConfig(num_tables=3, num_bits=5, dimension=16))
        assert (index.num_tables, index.num_bits, index.dimension) == (3, 5, 16)
        assert len(index.tables) == len(index.hash_functions) == 3

    def test_invalid_bits(self):
        """Test that K above 64 is refused."""
        with pytest.raises(ConfigurationError):
            LSHIndex(num_tables=2, num_bits=65, dimension=16)

    def test_stats(self, populated):
        """Test per-table and aggregate statistics."""
        index, _, _ = populated
        stats = index.get_stats()
        assert len(stats["tables"]) == 6
        assert stats["total_entries"] == 25 * 6
        assert stats["min_bucket_size"] <= stats["avg_bucket_size"] <= stats["max_bucket_size_seen"]
        assert len(index.hyperplane_quality()) == 6


class TestState:
    """Test export and reconstruction."""

    def test_round_trip_preserves_candidates(self, populated):
        """Test that a rebuilt index returns the same candidate sets."""
        index, vectors, blocks = populated
        state = json.loads(json.dumps(index.export_state()))
        rebuilt = LSHIndex.from_state(state, blocks)
        for vec in vectors:
            assert set(rebuilt.candidate_ids(vec)) == set(index.candidate_ids(vec))

    def test_wrong_table_count(self, populated):
        """Test that a truncated table list is refused."""
        index, _, blocks = populated
        state = index.export_state()
        state["tables"] = state["tables"][:-1]
        with pytest.raises(SerializationError):
            LSHIndex.from_state(state, blocks)

    def test_wrong_coefficient_shape(self, populated):
        """Test that hyperplanes of the wrong shape are refused."""
        index, _, blocks = populated
        state = index.export_state()
        state["hash_functions"][0]["coefficients"] = [[0.0] * DIM]
        with pytest.raises(SerializationError):
            LSHIndex.from_state(state, blocks)
