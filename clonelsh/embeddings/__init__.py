"""
Code tokenization and embedding models.

Token streams are turned into fixed-length unit vectors either by the
adaptive TF-IDF embedder or by the stateless hashing embedder.
"""

from .base import EmbeddingModel, HashingEmbedder, create_embedding_model
from .tfidf_embedder import TFIDFEmbedder
from .tokenizer import CodeTokenizer, Token, TokenType, extract_ngrams, get_token_frequencies, tokenize

__all__ = [
    'EmbeddingModel',
    'HashingEmbedder',
    'TFIDFEmbedder',
    'create_embedding_model',
    'CodeTokenizer',
    'Token',
    'TokenType',
    'tokenize',
    'get_token_frequencies',
    'extract_ngrams',
]
