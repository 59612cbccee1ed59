"""
Data models for the ranking pipeline.

These dataclasses define the structured return types used throughout
the ranking pipeline. They are intentionally simple and transparent, and
each offers to_dict() so an owning service layer can serialize them to JSON
without knowing about numpy.
"""

from dataclasses import asdict, dataclass
from typing import List, Optional
import numpy as np
from numpy.typing import NDArray


# Type alias for embedding vectors
Vector = NDArray[np.float32]


@dataclass
class SimilarityResult:
    """
    Similarity of a single passage to the query.

    Attributes:
        text: The passage text
        similarity: Cosine similarity score (-1.0 to 1.0)
        original_index: Position of the passage in the caller's input
    """
    text: str
    similarity: float
    original_index: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RerankResult:
    """
    A passage after score fusion.

    All scores are on a 0-100 scale.

    Attributes:
        text: The passage text
        original_index: Position of the passage in the reranked input
        embedding_score: Rescaled embedding similarity
        rerank_score: Second-stage relevance score
        final_score: Weighted blend of the two
        rank: 1-based position after sorting by final_score
    """
    text: str
    original_index: int
    embedding_score: float
    rerank_score: float
    final_score: float
    rank: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TokenSuggestion:
    """
    A text token with no lexical counterpart in the query.

    Attributes:
        original_token: Normalized token from the text
        position: Index of the token in the tokenized text
        suggestions: Up to 5 replacement candidates, in discovery order
        reason: Why the token was flagged
    """
    original_token: str
    position: int
    suggestions: List[str]
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RankingReport:
    """
    Complete result of ranking passages against a query.

    This is the primary return type from rank_passages().

    Attributes:
        query: The original query text
        total_passages: Number of passages supplied
        provider: Embedding provider id
        model: Embedding model id
        embedding_dim: Dimensionality of the vectors compared
        similarities: Top-K passages by cosine similarity
        reranked: Fused ranking of the top-K, or None when reranking was off
        rerank_provider: Rerank provider id, if reranking ran
        embedding_used_real_api: Every embedding came from the live backend
        rerank_used_real_api: The rerank scores came from a live backend
    """
    query: str
    total_passages: int
    provider: str
    model: str
    embedding_dim: int
    similarities: List[SimilarityResult]
    reranked: Optional[List[RerankResult]] = None
    rerank_provider: Optional[str] = None
    embedding_used_real_api: bool = False
    rerank_used_real_api: bool = False

    @property
    def used_real_api(self) -> bool:
        """Whether any stage reached a live backend."""
        return self.embedding_used_real_api or self.rerank_used_real_api

    @property
    def best(self) -> Optional[SimilarityResult]:
        """Highest-similarity passage, if any."""
        return self.similarities[0] if self.similarities else None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["used_real_api"] = self.used_real_api
        return data


def vector_to_list(vec: Vector) -> List[float]:
    """Convert a vector to plain floats for JSON transport."""
    return [float(x) for x in np.asarray(vec).ravel()]
