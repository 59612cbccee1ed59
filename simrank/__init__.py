"""
SimRank - Query-to-Passage Semantic Ranking

Ranks candidate passages against a query by embedding cosine similarity,
optionally refined by a reranking pass, with a deterministic offline
fallback whenever no embedding service is reachable.
"""

from simrank.core.config import (
    ProviderConfig,
    ProviderKind,
    RerankConfig,
    RerankProviderKind,
    ConfigurationError,
    EmbeddingError,
)
from simrank.core.embeddings import (
    EmbeddingService,
    ProviderError,
    ProviderState,
    generate_embedding,
    generate_embeddings,
)
from simrank.core.fallback import fallback_embedding
from simrank.core.similarity import cosine_similarity, find_most_similar, DimensionMismatchError
from simrank.core.reranking import RerankingService, ScoreScale, rerank_passages, fuse_scores
from simrank.core.suggestions import generate_token_suggestions
from simrank.core.engine import rank_passages, RankingError
from simrank.core.models import RankingReport, RerankResult, SimilarityResult, TokenSuggestion

__version__ = "1.0.0"
__all__ = [
    # Configuration
    "ProviderConfig",
    "ProviderKind",
    "RerankConfig",
    "RerankProviderKind",
    # Embedding generation
    "EmbeddingService",
    "ProviderState",
    "generate_embedding",
    "generate_embeddings",
    "fallback_embedding",
    # Similarity ranking
    "cosine_similarity",
    "find_most_similar",
    # Rerank fusion
    "RerankingService",
    "ScoreScale",
    "rerank_passages",
    "fuse_scores",
    # Token suggestions
    "generate_token_suggestions",
    # Pipeline
    "rank_passages",
    # Models
    "RankingReport",
    "RerankResult",
    "SimilarityResult",
    "TokenSuggestion",
    # Errors
    "EmbeddingError",
    "ConfigurationError",
    "ProviderError",
    "DimensionMismatchError",
    "RankingError",
]
