"""
Configuration for the clone index.

All parameters are frozen for the lifetime of an engine: changing the table
count, bits per table or embedding dimension requires a full rebuild.
Configuration files are YAML with one top-level key per section.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml

from .errors import ConfigurationError

MAX_HASH_BITS = 64
EMBEDDING_MODEL_TYPES = ("tfidf", "hashing")
DEFAULT_CONFIG_NAME = ".clonelsh.yml"

T = TypeVar("T")


def _section_from_dict(cls: Type[T], data: Optional[Dict[str, Any]], section: str) -> T:
    """Build a config section, rejecting keys the section does not define."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"section '{section}' must be a mapping, got {type(data).__name__}",
            parameter=section, value=data,
        )
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"unknown keys in section '{section}': {', '.join(unknown)}",
            parameter=section, value=unknown,
        )
    return cls(**data)


def _require_positive(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}",
                                 parameter=name, value=value)


@dataclass
class LSHConfig:
    """
    Locality-sensitive hashing parameters.

    Recall rises with ``num_tables`` and falls with ``num_bits``; precision
    does the opposite. Multi-probe recovers near-misses without adding tables.
    """

    num_tables: int = 20
    num_bits: int = 12
    dimension: int = 384
    seed: int = 42
    max_bucket_size: int = 1000
    multi_probe: bool = True
    num_probes: int = 3

    def __post_init__(self):
        _require_positive("num_tables", self.num_tables)
        _require_positive("num_bits", self.num_bits)
        _require_positive("dimension", self.dimension)
        _require_positive("max_bucket_size", self.max_bucket_size)
        if self.num_bits > MAX_HASH_BITS:
            raise ConfigurationError(
                f"num_bits must be at most {MAX_HASH_BITS}, got {self.num_bits}",
                parameter="num_bits", value=self.num_bits,
            )
        if not isinstance(self.num_probes, int) or self.num_probes < 0:
            raise ConfigurationError(f"num_probes must be >= 0, got {self.num_probes!r}",
                                     parameter="num_probes", value=self.num_probes)
        if not isinstance(self.seed, int) or self.seed < 0:
            raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed!r}",
                                     parameter="seed", value=self.seed)


@dataclass
class EmbeddingConfig:
    """Embedding model selection and TF-IDF parameters."""

    model_type: str = "tfidf"
    dimension: int = 384
    max_vocab_size: int = 50000
    ngram_size: int = 2
    sublinear_tf: bool = True
    smooth_idf: bool = True
    language: str = "typescript"
    seed: int = 42

    def __post_init__(self):
        if self.model_type not in EMBEDDING_MODEL_TYPES:
            raise ConfigurationError(
                f"model_type must be one of {EMBEDDING_MODEL_TYPES}, got {self.model_type!r}",
                parameter="model_type", value=self.model_type,
            )
        _require_positive("dimension", self.dimension)
        _require_positive("max_vocab_size", self.max_vocab_size)
        _require_positive("ngram_size", self.ngram_size)
        if not isinstance(self.seed, int) or self.seed < 0:
            raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed!r}",
                                     parameter="seed", value=self.seed)


@dataclass
class ParserConfig:
    """Block size filter applied before embedding (in tokens)."""

    min_block_tokens: int = 10
    max_block_tokens: int = 500

    def __post_init__(self):
        if self.min_block_tokens < 0:
            raise ConfigurationError("min_block_tokens must be >= 0",
                                     parameter="min_block_tokens", value=self.min_block_tokens)
        if self.max_block_tokens < self.min_block_tokens:
            raise ConfigurationError(
                f"max_block_tokens ({self.max_block_tokens}) must be >= "
                f"min_block_tokens ({self.min_block_tokens})",
                parameter="max_block_tokens", value=self.max_block_tokens,
            )


@dataclass
class CloneThresholds:
    """
    Lower bounds of the clone similarity bands.

    Bands are contiguous and inclusive on the lower bound:
    type-1 >= type1, type2 <= type-2 < type1, and so on down to type4.
    """

    type1: float = 0.99
    type2: float = 0.95
    type3: float = 0.85
    type4: float = 0.70

    def __post_init__(self):
        values = [self.type1, self.type2, self.type3, self.type4]
        for name, value in zip(("type1", "type2", "type3", "type4"), values):
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be between 0 and 1, got {value}",
                                         parameter=name, value=value)
        if not values[0] > values[1] > values[2] > values[3]:
            raise ConfigurationError(
                "clone thresholds must be strictly decreasing from type1 to type4",
                parameter="thresholds", value=values,
            )


@dataclass
class QueryDefaults:
    """Defaults applied when a query does not pass its own options."""

    min_similarity: float = 0.80
    max_results: int = 100
    cluster_min_similarity: float = 0.85

    def __post_init__(self):
        for name in ("min_similarity", "cluster_min_similarity"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be between 0 and 1, got {value}",
                                         parameter=name, value=value)
        _require_positive("max_results", self.max_results)


@dataclass
class EngineConfig:
    """
    Complete engine configuration.

    The LSH tables and the embedder must agree on the vector dimension.
    """

    lsh: LSHConfig = field(default_factory=LSHConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    thresholds: CloneThresholds = field(default_factory=CloneThresholds)
    query: QueryDefaults = field(default_factory=QueryDefaults)

    def __post_init__(self):
        if self.lsh.dimension != self.embedding.dimension:
            raise ConfigurationError(
                f"embedding dimension {self.embedding.dimension} does not match "
                f"LSH dimension {self.lsh.dimension}",
                parameter="dimension",
                value={"lsh": self.lsh.dimension, "embedding": self.embedding.dimension},
            )

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Convert to dictionary representation."""
        return {
            "lsh": {f.name: getattr(self.lsh, f.name) for f in fields(LSHConfig)},
            "embedding": {f.name: getattr(self.embedding, f.name) for f in fields(EmbeddingConfig)},
            "parser": {f.name: getattr(self.parser, f.name) for f in fields(ParserConfig)},
            "thresholds": {f.name: getattr(self.thresholds, f.name) for f in fields(CloneThresholds)},
            "query": {f.name: getattr(self.query, f.name) for f in fields(QueryDefaults)},
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        """Create from dictionary representation; missing sections use defaults."""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError("configuration must be a mapping", value=data)
        sections = {
            "lsh": LSHConfig,
            "embedding": EmbeddingConfig,
            "parser": ParserConfig,
            "thresholds": CloneThresholds,
            "query": QueryDefaults,
        }
        unknown = sorted(set(data) - set(sections))
        if unknown:
            raise ConfigurationError(f"unknown configuration sections: {', '.join(unknown)}",
                                     parameter="config", value=unknown)

        lsh_data = dict(data.get("lsh") or {})
        embedding_data = dict(data.get("embedding") or {})
        # A dimension given in one section only applies to both
        if "dimension" in lsh_data and "dimension" not in embedding_data:
            embedding_data["dimension"] = lsh_data["dimension"]
        elif "dimension" in embedding_data and "dimension" not in lsh_data:
            lsh_data["dimension"] = embedding_data["dimension"]

        try:
            return cls(
                lsh=_section_from_dict(LSHConfig, lsh_data, "lsh"),
                embedding=_section_from_dict(EmbeddingConfig, embedding_data, "embedding"),
                parser=_section_from_dict(ParserConfig, data.get("parser"), "parser"),
                thresholds=_section_from_dict(CloneThresholds, data.get("thresholds"), "thresholds"),
                query=_section_from_dict(QueryDefaults, data.get("query"), "query"),
            )
        except TypeError as e:
            raise ConfigurationError(f"invalid configuration: {e}") from e

    def save_to_file(self, file_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load_from_file(cls, file_path: Union[str, Path]) -> "EngineConfig":
        """Load configuration from YAML file."""
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(file_path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"invalid YAML in {file_path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Current directory first, then the home directory."""
        current_dir_config = Path(DEFAULT_CONFIG_NAME)
        if current_dir_config.exists():
            return current_dir_config
        return Path.home() / DEFAULT_CONFIG_NAME

    @classmethod
    def load_or_default(cls, config_path: Optional[Union[str, Path]] = None) -> "EngineConfig":
        """
        Load configuration from file or return default if not found.

        Args:
            config_path: Optional path to configuration file

        Returns:
            EngineConfig instance
        """
        if config_path:
            config_path = Path(config_path)
            if config_path.exists():
                return cls.load_from_file(config_path)
        else:
            default_path = cls.get_default_config_path()
            if default_path.exists():
                return cls.load_from_file(default_path)

        return cls()
