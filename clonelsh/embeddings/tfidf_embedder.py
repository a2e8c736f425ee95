"""
Adaptive TF-IDF embedder with sparse random projection.

The vocabulary and document frequencies grow with every ``embed`` call, so
the IDF weights applied to a document depend on what was embedded before
it. ``transform`` / ``embed_query`` apply the current statistics without
changing them.

Sparse TF-IDF vectors are projected to ``dimension`` floats by a random
Gaussian matrix of shape ``dimension x max_vocab_size``. Columns are only
generated for vocabulary indices that are actually used: column ``j`` is a
pure function of ``(seed, j)`` (a linear congruential stream fed through the
Box-Muller transform), so it never needs to be stored.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config import EmbeddingConfig
from ..errors import ConfigurationError, SerializationError
from .base import l2_normalize, term_frequencies

logger = logging.getLogger(__name__)

LCG_MULTIPLIER = 1103515245
LCG_INCREMENT = 12345
LCG_MASK = 0x7FFFFFFF
BOX_MULLER_EPSILON = 1e-10


@dataclass
class VocabEntry:
    """Vocabulary slot for one term."""
    index: int
    doc_freq: int = 1
    # IDF memo and the (document count, doc freq) it was computed for
    idf: Optional[float] = None
    idf_key: Optional[Tuple[int, int]] = None


def _lcg_jump_tables(steps: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Coefficients to jump an LCG ``n`` steps ahead in one multiply-add.

    ``state_n = (mult[n-1] * state_0 + inc[n-1]) & LCG_MASK`` for n in 1..steps.
    """
    mult = np.empty(steps, dtype=np.uint64)
    inc = np.empty(steps, dtype=np.uint64)
    a, c = 1, 0
    for n in range(steps):
        a = (a * LCG_MULTIPLIER) & LCG_MASK
        c = (c * LCG_MULTIPLIER + LCG_INCREMENT) & LCG_MASK
        mult[n] = a
        inc[n] = c
    return mult, inc


def _column_seed(seed: int, index: int) -> int:
    m = hashlib.blake2b(digest_size=8)
    m.update(int(seed).to_bytes(8, "little"))
    m.update(int(index).to_bytes(8, "little"))
    return int.from_bytes(m.digest(), "little") & LCG_MASK


class TFIDFEmbedder:
    """
    TF-IDF over code tokens and structural n-grams, projected to a dense
    unit vector.

    Args:
        dimension: Output vector length
        max_vocab_size: Vocabulary capacity; terms first seen after the
            vocabulary is full are ignored (and counted in ``dropped_terms``)
        ngram_size: Size of structural token n-grams; 1 disables n-grams
        sublinear_tf: Use ``1 + ln(tf)`` instead of raw counts
        smooth_idf: Use ``ln((N+1)/(df+1)) + 1`` instead of ``ln(N/df) + 1``
        language: Keyword table for the tokenizer
        seed: Projection seed
    """

    kind = "tfidf"

    def __init__(
        self,
        dimension: int = 384,
        max_vocab_size: int = 50000,
        ngram_size: int = 2,
        sublinear_tf: bool = True,
        smooth_idf: bool = True,
        language: str = "typescript",
        seed: int = 42,
    ) -> None:
        if dimension <= 0:
            raise ConfigurationError("dimension must be positive",
                                     parameter="dimension", value=dimension)
        if max_vocab_size <= 0:
            raise ConfigurationError("max_vocab_size must be positive",
                                     parameter="max_vocab_size", value=max_vocab_size)
        if ngram_size <= 0:
            raise ConfigurationError("ngram_size must be positive",
                                     parameter="ngram_size", value=ngram_size)

        self._dimension = dimension
        self.max_vocab_size = max_vocab_size
        self.ngram_size = ngram_size
        self.sublinear_tf = sublinear_tf
        self.smooth_idf = smooth_idf
        self.language = language
        self.seed = seed

        self.vocabulary: Dict[str, VocabEntry] = {}
        self.document_count = 0
        self.dropped_terms = 0

        self._scale = 1.0 / math.sqrt(max_vocab_size)
        # Two uniforms per output component
        self._jump_mult, self._jump_inc = _lcg_jump_tables(2 * dimension)
        self._columns: Dict[int, np.ndarray] = {}

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> "TFIDFEmbedder":
        return cls(
            dimension=config.dimension,
            max_vocab_size=config.max_vocab_size,
            ngram_size=config.ngram_size,
            sublinear_tf=config.sublinear_tf,
            smooth_idf=config.smooth_idf,
            language=config.language,
            seed=config.seed,
        )

    # -------- public API --------

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def vocab_size(self) -> int:
        return len(self.vocabulary)

    @property
    def num_documents(self) -> int:
        return self.document_count

    def embed(self, code: str) -> np.ndarray:
        """
        Embed ``code`` and fold it into the corpus statistics.

        Increments the document count, registers new terms (while capacity
        remains) and bumps the document frequency of known ones before
        weighting, so a term's IDF always reflects the current document.
        """
        freqs = term_frequencies(code, self.language, self.ngram_size)
        self.document_count += 1
        self._update_vocabulary(freqs)
        return self._project(freqs)

    def embed_batch(self, codes: Sequence[str]) -> List[np.ndarray]:
        """Embed documents one after another; later documents see earlier ones."""
        return [self.embed(code) for code in codes]

    def transform(self, code: str) -> np.ndarray:
        """Embed ``code`` with the current statistics, leaving them unchanged."""
        freqs = term_frequencies(code, self.language, self.ngram_size)
        return self._project(freqs)

    def embed_query(self, code: str) -> np.ndarray:
        return self.transform(code)

    def reset(self) -> None:
        """Forget the vocabulary and document count (projection is kept)."""
        self.vocabulary.clear()
        self.document_count = 0
        self.dropped_terms = 0

    def idf(self, term: str) -> float:
        """Current IDF of ``term``; 0.0 for terms outside the vocabulary."""
        entry = self.vocabulary.get(term)
        if entry is None:
            return 0.0
        return self._idf(entry)

    def projection_column(self, index: int) -> np.ndarray:
        """Projection weights for vocabulary slot ``index`` (length ``dimension``)."""
        if not 0 <= index < self.max_vocab_size:
            raise IndexError(f"vocabulary index {index} outside [0, {self.max_vocab_size})")
        column = self._columns.get(index)
        if column is None:
            column = self._generate_column(index)
            self._columns[index] = column
        return column

    # -------- persistence --------

    def export_state(self) -> Dict[str, Any]:
        """Vocabulary, document count and parameters as plain JSON types."""
        return {
            "config": self._params(),
            "document_count": self.document_count,
            "dropped_terms": self.dropped_terms,
            # Ordered by index so the list position equals the slot
            "vocabulary": [
                [term, entry.doc_freq]
                for term, entry in sorted(self.vocabulary.items(), key=lambda kv: kv[1].index)
            ],
        }

    def import_state(self, state: Dict[str, Any]) -> None:
        """
        Restore statistics written by ``export_state``.

        The state is validated completely before anything is replaced.

        Raises:
            SerializationError: If the state is malformed or was produced with
                different projection parameters
        """
        vocabulary, document_count, dropped = self._validate_state(state)
        self.vocabulary = vocabulary
        self.document_count = document_count
        self.dropped_terms = dropped

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "TFIDFEmbedder":
        """Build an embedder from exported state, parameters included."""
        config = state.get("config") if isinstance(state, dict) else None
        if not isinstance(config, dict):
            raise SerializationError("missing embedder config", path="embedder.state.config")
        try:
            embedder = cls(**config)
        except (TypeError, ConfigurationError) as e:
            raise SerializationError(f"invalid embedder config: {e}",
                                     path="embedder.state.config") from e
        embedder.import_state(state)
        return embedder

    # -------- internals --------

    def _params(self) -> Dict[str, Any]:
        return {
            "dimension": self._dimension,
            "max_vocab_size": self.max_vocab_size,
            "ngram_size": self.ngram_size,
            "sublinear_tf": self.sublinear_tf,
            "smooth_idf": self.smooth_idf,
            "language": self.language,
            "seed": self.seed,
        }

    def _update_vocabulary(self, freqs: Dict[str, int]) -> None:
        for term in freqs:
            entry = self.vocabulary.get(term)
            if entry is not None:
                entry.doc_freq += 1
            elif len(self.vocabulary) < self.max_vocab_size:
                self.vocabulary[term] = VocabEntry(index=len(self.vocabulary))
            else:
                self.dropped_terms += 1
                logger.debug("Vocabulary full (%d terms), dropping %r",
                             self.max_vocab_size, term)

    def _idf(self, entry: VocabEntry) -> float:
        key = (self.document_count, entry.doc_freq)
        if entry.idf is None or entry.idf_key != key:
            n, df = key
            if self.smooth_idf:
                entry.idf = math.log((n + 1.0) / (df + 1.0)) + 1.0
            else:
                entry.idf = math.log(n / df) + 1.0 if n > 0 else 0.0
            entry.idf_key = key
        return entry.idf

    def _weights(self, freqs: Dict[str, int]) -> Tuple[List[int], List[float]]:
        """Sparse TF-IDF vector as parallel (index, weight) lists."""
        indices: List[int] = []
        weights: List[float] = []
        for term, tf in freqs.items():
            entry = self.vocabulary.get(term)
            if entry is None:
                continue
            tf_value = 1.0 + math.log(tf) if self.sublinear_tf else float(tf)
            score = tf_value * self._idf(entry)
            if score > 0:
                indices.append(entry.index)
                weights.append(score)
        return indices, weights

    def _project(self, freqs: Dict[str, int]) -> np.ndarray:
        indices, weights = self._weights(freqs)
        if not indices:
            return np.zeros(self._dimension, dtype=np.float64)
        columns = np.stack([self.projection_column(i) for i in indices])
        dense = np.asarray(weights, dtype=np.float64) @ columns
        return l2_normalize(dense)

    def _generate_column(self, index: int) -> np.ndarray:
        state0 = np.uint64(_column_seed(self.seed, index))
        states = (self._jump_mult * state0 + self._jump_inc) & np.uint64(LCG_MASK)
        uniforms = states.astype(np.float64) / (LCG_MASK + 1)
        u1 = uniforms[0::2]
        u2 = uniforms[1::2]
        z = np.sqrt(-2.0 * np.log(u1 + BOX_MULLER_EPSILON)) * np.cos(2.0 * np.pi * u2)
        return z * self._scale

    def _validate_state(self, state: Dict[str, Any]) -> Tuple[Dict[str, VocabEntry], int, int]:
        path = "embedder.state"
        if not isinstance(state, dict):
            raise SerializationError("embedder state must be an object", path=path)

        config = state.get("config")
        if isinstance(config, dict):
            current = self._params()
            for key in (
                "dimension", "max_vocab_size", "ngram_size", "language", "seed",
                "sublinear_tf", "smooth_idf",
            ):
                if key in config and config[key] != current[key]:
                    raise SerializationError(
                        f"embedder parameter '{key}' is {config[key]!r}, expected {current[key]!r}",
                        path=f"{path}.config.{key}",
                    )

        document_count = state.get("document_count")
        if not isinstance(document_count, int) or isinstance(document_count, bool) or document_count < 0:
            raise SerializationError("document_count must be a non-negative integer",
                                     path=f"{path}.document_count")
        dropped = state.get("dropped_terms", 0)
        if not isinstance(dropped, int) or dropped < 0:
            raise SerializationError("dropped_terms must be a non-negative integer",
                                     path=f"{path}.dropped_terms")

        raw_vocab = state.get("vocabulary")
        if not isinstance(raw_vocab, list):
            raise SerializationError("vocabulary must be a list", path=f"{path}.vocabulary")
        if len(raw_vocab) > self.max_vocab_size:
            raise SerializationError(
                f"vocabulary has {len(raw_vocab)} terms, capacity is {self.max_vocab_size}",
                path=f"{path}.vocabulary",
            )

        vocabulary: Dict[str, VocabEntry] = {}
        for i, item in enumerate(raw_vocab):
            item_path = f"{path}.vocabulary[{i}]"
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise SerializationError("vocabulary entries must be [term, doc_freq]", path=item_path)
            term, doc_freq = item
            if not isinstance(term, str):
                raise SerializationError("term must be a string", path=item_path)
            if term in vocabulary:
                raise SerializationError(f"duplicate term {term!r}", path=item_path)
            if (not isinstance(doc_freq, int) or isinstance(doc_freq, bool)
                    or not 1 <= doc_freq <= max(document_count, 1)):
                raise SerializationError(
                    f"doc_freq {doc_freq!r} outside [1, {document_count}]", path=item_path)
            vocabulary[term] = VocabEntry(index=i, doc_freq=doc_freq)

        return vocabulary, document_count, dropped
