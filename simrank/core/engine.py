"""
Main ranking engine orchestrating the full pipeline.

This module provides the high-level API for ranking passages against a
query. It coordinates:
1. Embedding generation (live backend or fallback)
2. Similarity computation and top-K selection
3. Optional reranking of the shortlist

The primary entry point is rank_passages(), which takes raw text inputs
and returns a structured RankingReport.

Design Principles:
- Single responsibility: orchestration only, delegates to specialized modules
- Fail-fast: validate inputs early, surface clear errors
- Per-request services: every call builds its own EmbeddingService and
  RerankingService from the configs it is given
"""

from typing import List, Optional, Sequence

from simrank.core.config import ProviderConfig, RerankConfig
from simrank.core.embeddings import EmbeddingService
from simrank.core.models import RankingReport, RerankResult, SimilarityResult
from simrank.core.reranking import RerankingService, ScoreScale
from simrank.core.similarity import DEFAULT_TOP_K, find_most_similar


class RankingError(Exception):
    """Raised when the ranking pipeline is given invalid input."""
    pass


def _validate_inputs(query: str, passages: Sequence[str], top_k: int) -> None:
    """
    Validate query and passage inputs.

    Raises:
        RankingError: If inputs are invalid
    """
    if query is None:
        raise RankingError("Query cannot be None")

    if not isinstance(query, str) or not query.strip():
        raise RankingError("Query is empty or contains only whitespace")

    if passages is None or isinstance(passages, str):
        raise RankingError("Passages must be a list of strings")

    if len(passages) == 0:
        raise RankingError("Passages list is empty")

    for i, passage in enumerate(passages):
        if not isinstance(passage, str):
            raise RankingError(f"Passage at index {i} is not a string")

    if top_k < 1:
        raise RankingError(f"top_k must be at least 1, got {top_k}")


def rank_passages(
    query: str,
    passages: Sequence[str],
    provider_config: Optional[ProviderConfig] = None,
    top_k: int = DEFAULT_TOP_K,
    rerank_config: Optional[RerankConfig] = None,
) -> RankingReport:
    """
    Rank passages by semantic closeness to a query.

    This is the main entry point for the ranking engine. It:
    1. Validates inputs
    2. Embeds the query and all passages in one concurrent batch
    3. Scores passages by cosine similarity and keeps the top_k
    4. If rerank_config is given, reranks that shortlist and fuses scores

    Args:
        query: Query text
        passages: Candidate passages
        provider_config: Embedding provider settings (fallback-only if None)
        top_k: Number of passages kept after the embedding stage
        rerank_config: Rerank settings; None skips reranking

    Returns:
        RankingReport with the top-K similarities, optional fused ranking
        and which stages reached a live backend

    Raises:
        RankingError: If inputs are invalid

    Example:
        >>> report = rank_passages(
        ...     "baseball season",
        ...     ["The MLB season runs through October.", "Quantum computers use qubits."],
        ...     rerank_config=RerankConfig(),
        ... )
        >>> report.reranked[0].rank
        1
    """
    _validate_inputs(query, passages, top_k)
    passages = list(passages)

    service = EmbeddingService(provider_config)
    vectors = service.generate_embeddings([query] + passages)
    query_vec, passage_vecs = vectors[0], vectors[1:]

    similarities: List[SimilarityResult] = find_most_similar(
        query_vec, passage_vecs, passages, top_k=top_k,
    )

    report = RankingReport(
        query=query,
        total_passages=len(passages),
        provider=service.provider_id,
        model=service.model_id,
        embedding_dim=service.dimension,
        similarities=similarities,
        embedding_used_real_api=service.was_real_api_used(),
    )

    if rerank_config is None:
        return report

    reranker = RerankingService(rerank_config)
    fused: List[RerankResult] = reranker.rerank_passages(
        query,
        [result.text for result in similarities],
        [result.similarity for result in similarities],
        scale=ScoreScale.COSINE,
    )
    # Point back at positions in the caller's passage list
    for result in fused:
        result.original_index = similarities[result.original_index].original_index

    report.reranked = fused
    report.rerank_provider = reranker.provider_id
    report.rerank_used_real_api = reranker.was_real_api_used()
    return report
