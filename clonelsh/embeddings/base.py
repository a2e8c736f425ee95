"""
Embedding model interface and the stateless hashing embedder.

The engine talks to embedders only through ``EmbeddingModel``; the concrete
model is chosen from ``EmbeddingConfig.model_type`` by
``create_embedding_model``.
"""

from __future__ import annotations

import hashlib
from collections import Counter
from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

import numpy as np

from ..config import EmbeddingConfig
from ..errors import ConfigurationError, SerializationError
from .tokenizer import extract_ngrams, get_token_frequencies, tokenize


@runtime_checkable
class EmbeddingModel(Protocol):
    """
    Anything that turns code text into a fixed-length vector.

    ``embed`` may update internal statistics (document frequencies);
    ``embed_query`` must not, so read-only queries leave the model unchanged.
    """

    kind: str

    @property
    def dimension(self) -> int: ...

    def embed(self, code: str) -> np.ndarray: ...

    def embed_query(self, code: str) -> np.ndarray: ...

    def embed_batch(self, codes: Sequence[str]) -> List[np.ndarray]: ...

    def export_state(self) -> Dict[str, Any]: ...

    def import_state(self, state: Dict[str, Any]) -> None: ...


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Unit-length copy of ``vector``; an all-zero vector is returned unchanged."""
    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        return vector / norm
    return vector


def term_frequencies(code: str, language: str, ngram_size: int) -> Dict[str, int]:
    """Unigram ``type:value`` counts plus structural n-gram counts."""
    tokens = tokenize(code, language)
    freqs = get_token_frequencies(tokens)
    if ngram_size > 1:
        for gram, count in Counter(extract_ngrams(tokens, ngram_size)).items():
            freqs[gram] = freqs.get(gram, 0) + count
    return freqs


class HashingEmbedder:
    """
    Stateless feature-hashing embedder.

    Every term gets a bipolar random vector derived from a digest of the
    term, and a document is the count-weighted bundle of its term vectors.
    Identical text always yields an identical vector, independent of what was
    embedded before, which makes it the embedder of choice for tests.
    """

    kind = "hashing"

    def __init__(self, dimension: int = 384, language: str = "typescript",
                 ngram_size: int = 2, seed: int = 42):
        if dimension <= 0:
            raise ConfigurationError("dimension must be positive",
                                     parameter="dimension", value=dimension)
        self._dimension = dimension
        self.language = language
        self.ngram_size = ngram_size
        self.seed = seed
        self._term_cache: Dict[str, np.ndarray] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    def _term_vector(self, term: str) -> np.ndarray:
        vec = self._term_cache.get(term)
        if vec is None:
            digest = hashlib.blake2b(f"{self.seed}:{term}".encode("utf-8"), digest_size=8)
            rng = np.random.default_rng(int.from_bytes(digest.digest(), "little"))
            vec = rng.choice(np.array([-1.0, 1.0]), size=self._dimension)
            self._term_cache[term] = vec
        return vec

    def embed(self, code: str) -> np.ndarray:
        """Embed code text into a unit vector (zero for input without tokens)."""
        dense = np.zeros(self._dimension, dtype=np.float64)
        for term, count in term_frequencies(code, self.language, self.ngram_size).items():
            dense += count * self._term_vector(term)
        return l2_normalize(dense)

    def embed_query(self, code: str) -> np.ndarray:
        return self.embed(code)

    def embed_batch(self, codes: Sequence[str]) -> List[np.ndarray]:
        return [self.embed(code) for code in codes]

    def export_state(self) -> Dict[str, Any]:
        return {
            "dimension": self._dimension,
            "language": self.language,
            "ngram_size": self.ngram_size,
            "seed": self.seed,
        }

    def import_state(self, state: Dict[str, Any]) -> None:
        """Check that persisted parameters match this embedder (it has no other state)."""
        if not isinstance(state, dict):
            raise SerializationError("embedder state must be an object", path="embedder.state")
        for key in ("dimension", "language", "ngram_size", "seed"):
            if key not in state:
                raise SerializationError(f"missing field '{key}'", path="embedder.state")
        current = self.export_state()
        if state != current:
            raise SerializationError(
                "hashing embedder parameters do not match the configuration",
                path="embedder.state", details={"expected": current, "actual": state},
            )


def create_embedding_model(config: EmbeddingConfig) -> EmbeddingModel:
    """Build the embedder selected by ``config.model_type``."""
    if config.model_type == "hashing":
        return HashingEmbedder(
            dimension=config.dimension,
            language=config.language,
            ngram_size=config.ngram_size,
            seed=config.seed,
        )
    if config.model_type == "tfidf":
        from .tfidf_embedder import TFIDFEmbedder
        return TFIDFEmbedder.from_config(config)
    raise ConfigurationError(f"unknown embedding model type: {config.model_type!r}",
                             parameter="model_type", value=config.model_type)
