"""Shared fixtures for the clone index tests."""

import numpy as np
import pytest

from clonelsh.config import EngineConfig, EmbeddingConfig, LSHConfig
from clonelsh.core.types import CodeBlock, content_hash


ADD_FUNCTION = "function add(first, second) { return first + second; }"

FETCH_USER = """
async function fetchUser(userId) {
    const response = await fetch('/api/users/' + userId);
    if (!response.ok) {
        throw new Error('request failed');
    }
    return response.json();
}
"""

RENDER_TABLE = """
function renderTable(rows, columns) {
    const header = columns.map(col => '<th>' + col.title + '</th>').join('');
    const body = rows.map(row => renderRow(row, columns)).join('');
    return '<table>' + header + body + '</table>';
}
"""


def make_block(block_id: str, dimension: int = 8, embedding=None, language: str = "typescript",
               file_path: str = "src/a.ts", start_line: int = 1, end_line: int = 3) -> CodeBlock:
    """Minimal CodeBlock for table and index tests."""
    return CodeBlock(
        id=block_id,
        kind="function",
        file_path=file_path,
        start_line=start_line,
        end_line=end_line,
        content=f"// {block_id}",
        language=language,
        token_count=12,
        content_hash=content_hash(block_id),
        embedding=embedding if embedding is not None else np.zeros(dimension),
    )


def random_unit_vectors(count: int, dimension: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    vectors = rng.standard_normal((count, dimension))
    return vectors / np.linalg.norm(vectors, axis=1, keepdims=True)


@pytest.fixture
def small_config():
    """Small, fast configuration using the stateless hashing embedder."""
    return EngineConfig(
        lsh=LSHConfig(num_tables=8, num_bits=10, dimension=64, seed=7),
        embedding=EmbeddingConfig(model_type="hashing", dimension=64),
    )


@pytest.fixture
def tfidf_config():
    """Small configuration using the TF-IDF embedder."""
    return EngineConfig(
        lsh=LSHConfig(num_tables=8, num_bits=10, dimension=64, seed=7),
        embedding=EmbeddingConfig(model_type="tfidf", dimension=64, max_vocab_size=2000),
    )
