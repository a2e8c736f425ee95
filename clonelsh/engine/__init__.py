"""Clone engine and its query/clustering helpers."""

from .clone_engine import CloneEngine
from .query_engine import build_clusters, classify_clone, cosine_similarity
from .splitter import BlockSplitter, WholeSourceSplitter

__all__ = [
    'CloneEngine',
    'BlockSplitter',
    'WholeSourceSplitter',
    'build_clusters',
    'classify_clone',
    'cosine_similarity',
]
