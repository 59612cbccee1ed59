"""
Core ranking engine.

This module provides the foundational logic for:
- Text normalization and lexical token similarity
- Deterministic fallback embeddings
- Embedding generation against live providers
- Cosine similarity and top-K selection
- Rerank score fusion
- Token suggestions
"""

from simrank.core.config import ProviderConfig, ProviderKind, RerankConfig, RerankProviderKind
from simrank.core.embeddings import EmbeddingService, generate_embedding, generate_embeddings
from simrank.core.fallback import fallback_embedding
from simrank.core.similarity import cosine_similarity, find_most_similar
from simrank.core.reranking import RerankingService, rerank_passages, fuse_scores
from simrank.core.suggestions import generate_token_suggestions
from simrank.core.engine import rank_passages
from simrank.core.models import RankingReport, RerankResult, SimilarityResult, TokenSuggestion

__all__ = [
    # Configuration
    "ProviderConfig",
    "ProviderKind",
    "RerankConfig",
    "RerankProviderKind",
    # Embeddings
    "EmbeddingService",
    "generate_embedding",
    "generate_embeddings",
    "fallback_embedding",
    # Ranking
    "cosine_similarity",
    "find_most_similar",
    "RerankingService",
    "rerank_passages",
    "fuse_scores",
    "rank_passages",
    # Suggestions
    "generate_token_suggestions",
    # Models
    "RankingReport",
    "RerankResult",
    "SimilarityResult",
    "TokenSuggestion",
]
