"""LSH Clone Index - find duplicated code with locality-sensitive hashing."""

__version__ = "0.1.0"

from .config import EngineConfig
from .core.types import CloneCluster, CloneResult, CloneType, CodeBlock, QueryResult, SourceBlock
from .engine.clone_engine import CloneEngine
from .errors import CloneIndexError, ConfigurationError, DimensionMismatchError, SerializationError

__all__ = [
    "CloneEngine",
    "EngineConfig",
    "CodeBlock",
    "SourceBlock",
    "CloneType",
    "CloneResult",
    "CloneCluster",
    "QueryResult",
    "CloneIndexError",
    "ConfigurationError",
    "DimensionMismatchError",
    "SerializationError",
    "__version__",
]
