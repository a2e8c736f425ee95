"""
Versioned JSON persistence for a whole clone index.

A document holds the configuration, the embedder state, the hyperplane
coefficients and buckets of every table, and every stored block with its
embedding. Loading validates the full document into fresh objects; nothing
is handed back unless all of it is consistent.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np

from .config import EngineConfig
from .core.types import CodeBlock
from .embeddings.base import EmbeddingModel, HashingEmbedder
from .embeddings.tfidf_embedder import TFIDFEmbedder
from .errors import CloneIndexError, SerializationError
from .lsh.lsh_index import LSHIndex

FORMAT_NAME = "clonelsh-index"
FORMAT_VERSION = 1


@dataclass
class LoadedIndex:
    """Everything needed to replace an engine's state."""
    config: EngineConfig
    embedder: EmbeddingModel
    lsh: LSHIndex
    blocks: Dict[str, CodeBlock]


def build_document(
    config: EngineConfig,
    embedder: EmbeddingModel,
    lsh: LSHIndex,
    blocks: List[CodeBlock],
) -> Dict[str, Any]:
    """Assemble the version 1 document; ``blocks`` in insertion order."""
    if not hasattr(embedder, "kind") or not hasattr(embedder, "export_state"):
        raise SerializationError(
            f"embedder {type(embedder).__name__} cannot export its state", path="embedder"
        )
    return {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "config": config.to_dict(),
        "embedder": {"kind": embedder.kind, "state": embedder.export_state()},
        "lsh": lsh.export_state(),
        "blocks": [block.to_record() for block in blocks],
    }


def _load_embedder(data: Any) -> EmbeddingModel:
    if not isinstance(data, dict) or "kind" not in data or "state" not in data:
        raise SerializationError("embedder must have 'kind' and 'state'", path="embedder")
    kind, state = data["kind"], data["state"]
    if kind == TFIDFEmbedder.kind:
        return TFIDFEmbedder.from_state(state)
    if kind == HashingEmbedder.kind:
        if not isinstance(state, dict):
            raise SerializationError("embedder state must be an object", path="embedder.state")
        try:
            embedder = HashingEmbedder(
                dimension=int(state["dimension"]),
                language=str(state["language"]),
                ngram_size=int(state["ngram_size"]),
                seed=int(state["seed"]),
            )
        except (KeyError, TypeError, ValueError, CloneIndexError) as e:
            raise SerializationError(f"invalid hashing embedder state: {e}",
                                     path="embedder.state") from e
        embedder.import_state(state)
        return embedder
    raise SerializationError(f"unknown embedder kind {kind!r}", path="embedder.kind")


def _load_blocks(records: Any, dimension: int) -> Dict[str, CodeBlock]:
    if not isinstance(records, list):
        raise SerializationError("blocks must be a list", path="blocks")
    blocks: Dict[str, CodeBlock] = {}
    for i, record in enumerate(records):
        path = f"blocks[{i}]"
        if not isinstance(record, dict):
            raise SerializationError("block record must be an object", path=path)
        try:
            block = CodeBlock.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"invalid block record: {e}", path=path) from e
        if block.id in blocks:
            raise SerializationError(f"duplicate block id {block.id!r}", path=path)
        embedding = block.embedding
        if embedding is None or embedding.shape != (dimension,):
            raise SerializationError(
                f"embedding must have length {dimension}", path=f"{path}.embedding")
        if not np.all(np.isfinite(embedding)):
            raise SerializationError("embedding must be finite", path=f"{path}.embedding")
        blocks[block.id] = block
    return blocks


def parse_document(document: Any) -> LoadedIndex:
    """
    Validate a document and build fresh index objects from it.

    Raises:
        SerializationError: On any malformed, truncated or inconsistent part
    """
    if not isinstance(document, dict):
        raise SerializationError("index document must be a JSON object")
    if document.get("format") != FORMAT_NAME:
        raise SerializationError(f"not a {FORMAT_NAME} document", path="format")
    version = document.get("version")
    if version != FORMAT_VERSION:
        raise SerializationError(f"unsupported version {version!r} (expected {FORMAT_VERSION})",
                                 path="version")
    for key in ("config", "embedder", "lsh", "blocks"):
        if key not in document:
            raise SerializationError(f"missing section '{key}'", path=key)

    try:
        config = EngineConfig.from_dict(document["config"])
    except CloneIndexError as e:
        raise SerializationError(f"invalid configuration: {e.message}", path="config") from e

    embedder = _load_embedder(document["embedder"])
    if embedder.dimension != config.lsh.dimension:
        raise SerializationError(
            f"embedder dimension {embedder.dimension} does not match {config.lsh.dimension}",
            path="embedder",
        )

    blocks = _load_blocks(document["blocks"], config.lsh.dimension)
    lsh = LSHIndex.from_state(document["lsh"], blocks)
    expected = (config.lsh.num_tables, config.lsh.num_bits, config.lsh.dimension)
    if (lsh.num_tables, lsh.num_bits, lsh.dimension) != expected:
        raise SerializationError(
            f"lsh shape {(lsh.num_tables, lsh.num_bits, lsh.dimension)} does not match "
            f"configuration {expected}",
            path="lsh",
        )
    return LoadedIndex(config=config, embedder=embedder, lsh=lsh, blocks=blocks)


def write_document(document: Dict[str, Any], path: Union[str, Path]) -> None:
    """Write atomically: a temporary file in the same directory, then rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, ensure_ascii=False, allow_nan=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def read_document(path: Union[str, Path]) -> Any:
    """
    Read a document from disk.

    Raises:
        SerializationError: If the file is missing or is not valid JSON
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise SerializationError(f"index file not found: {path}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SerializationError(f"index file {path} is not valid JSON: {e}") from e
