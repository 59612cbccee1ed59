"""
Second-stage reranking and score fusion.

The embedding stage gives every passage a cosine similarity to the query.
Reranking adds a second relevance signal per passage and blends the two:

    final = 0.7 * embedding_score + 0.3 * rerank_score

All three scores are on a 0-100 scale. Cosine similarities are rescaled
with (s + 1) / 2 * 100; scores already expressed as percentages pass
through unchanged (clamped).

Rerank Backends:
- OPENAI / GOOGLE: embed the query and passages with the provider's
  embedding API and rescale their cosine similarity
- CROSS_ENCODER: sentence-transformers CrossEncoder over (query, passage)
  pairs; logits go through a sigmoid
- MOCK: no backend

Mock Scores:
Without a working backend each passage gets
clamp(embedding_score + offset, 0, 100) with offset uniform in [-10, 10].
The offset comes from a generator seeded with the passage's n-gram hash,
so identical inputs produce identical rankings. RerankConfig.randomize_mock
switches to an unseeded generator.
"""

import logging
import math
import time
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
from google import genai
from google.genai import types as genai_types
from openai import OpenAI
from sentence_transformers import CrossEncoder

from simrank.core.config import (
    ConfigurationError,
    EMBEDDING_WEIGHT,
    RERANK_WEIGHT,
    RerankConfig,
    RerankProviderKind,
    validate_credential,
)
from simrank.core.fallback import ngram_hash
from simrank.core.models import RerankResult
from simrank.core.similarity import cosine_similarity


logger = logging.getLogger(__name__)

# Half-width of the mock score perturbation
MOCK_VARIATION = 10.0

_cross_encoder_cache: Dict[str, CrossEncoder] = {}


class RerankError(Exception):
    """Raised when a rerank backend fails or returns unusable scores."""
    pass


class ScoreScale(Enum):
    """Scale of the embedding scores handed to rerank_passages()."""
    COSINE = "cosine"     # -1.0 to 1.0
    PERCENT = "percent"   # 0 to 100


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def to_score_100(similarity: float) -> float:
    """Rescale a cosine similarity from [-1, 1] to [0, 100]."""
    return _clamp((similarity + 1.0) / 2.0 * 100.0)


def _get_cross_encoder(model_name: str) -> CrossEncoder:
    if model_name not in _cross_encoder_cache:
        try:
            _cross_encoder_cache[model_name] = CrossEncoder(model_name)
        except Exception as e:
            raise RerankError(f"Failed to load cross-encoder '{model_name}': {e}") from e
    return _cross_encoder_cache[model_name]


def clear_cross_encoder_cache() -> None:
    """Release loaded cross-encoder models."""
    _cross_encoder_cache.clear()


def _similarities_to_scores(query_vec, passage_vecs) -> List[float]:
    return [to_score_100(cosine_similarity(query_vec, vec)) for vec in passage_vecs]


class _OpenAIReranker:
    def __init__(self, config: RerankConfig):
        self.model = config.model
        self._client = OpenAI(
            api_key=config.credential,
            timeout=config.timeout_seconds,
            max_retries=0,
        )

    def score(self, query: str, passages: List[str]) -> List[float]:
        response = self._client.embeddings.create(
            model=self.model,
            input=[query] + passages,
        )
        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(passages) + 1:
            raise RerankError(
                f"Expected {len(passages) + 1} embeddings, got {len(vectors)}"
            )
        return _similarities_to_scores(vectors[0], vectors[1:])


class _GoogleReranker:
    def __init__(self, config: RerankConfig):
        self.model = config.model
        self._client = genai.Client(
            api_key=config.credential,
            http_options=genai_types.HttpOptions(
                timeout=int(config.timeout_seconds * 1000),
            ),
        )

    def score(self, query: str, passages: List[str]) -> List[float]:
        response = self._client.models.embed_content(
            model=self.model,
            contents=[query] + passages,
        )
        vectors = [emb.values for emb in response.embeddings]
        if len(vectors) != len(passages) + 1:
            raise RerankError(
                f"Expected {len(passages) + 1} embeddings, got {len(vectors)}"
            )
        return _similarities_to_scores(vectors[0], vectors[1:])


class _CrossEncoderReranker:
    def __init__(self, config: RerankConfig):
        self.model = config.model

    def score(self, query: str, passages: List[str]) -> List[float]:
        encoder = _get_cross_encoder(self.model)
        logits = encoder.predict(
            [(query, passage) for passage in passages],
            show_progress_bar=False,
        )
        logits = np.asarray(logits, dtype=np.float64).ravel()
        return [float(100.0 / (1.0 + np.exp(-logit))) for logit in logits]


_RERANKERS = {
    RerankProviderKind.OPENAI: _OpenAIReranker,
    RerankProviderKind.GOOGLE: _GoogleReranker,
    RerankProviderKind.CROSS_ENCODER: _CrossEncoderReranker,
}


def _build_reranker(config: RerankConfig):
    reranker_cls = _RERANKERS.get(config.provider)
    if reranker_cls is None:
        return None

    family = config.credential_family
    if family is not None:
        try:
            validate_credential(family, config.credential)
        except ConfigurationError as e:
            logger.warning("%s; using mock rerank scores", e)
            return None

    try:
        return reranker_cls(config)
    except Exception as e:
        logger.warning(
            "Could not initialize %s reranker: %s; using mock rerank scores",
            config.provider.value, e,
        )
        return None


def mock_rerank_scores(
    passages: Sequence[str],
    embedding_scores: Sequence[float],
    randomize: bool = False,
) -> List[float]:
    """
    Synthesize rerank scores near the embedding scores.

    Args:
        passages: Passage texts (seed the deterministic offsets)
        embedding_scores: Embedding scores on the 0-100 scale
        randomize: Draw offsets from an unseeded generator instead

    Returns:
        One score per passage, clamped to [0, 100]
    """
    shared_rng = np.random.default_rng() if randomize else None
    scores = []
    for passage, base in zip(passages, embedding_scores):
        rng = shared_rng or np.random.default_rng(ngram_hash(passage))
        offset = rng.uniform(-MOCK_VARIATION, MOCK_VARIATION)
        scores.append(_clamp(base + float(offset)))
    return scores


def fuse_scores(
    passages: Sequence[str],
    embedding_scores: Sequence[float],
    rerank_scores: Sequence[float],
    embedding_weight: float = EMBEDDING_WEIGHT,
    rerank_weight: float = RERANK_WEIGHT,
) -> List[RerankResult]:
    """
    Blend embedding and rerank scores into a final ranking.

    Args:
        passages: Passage texts
        embedding_scores: Embedding scores, 0-100
        rerank_scores: Rerank scores, 0-100
        embedding_weight: Weight of the embedding score
        rerank_weight: Weight of the rerank score

    Returns:
        RerankResults sorted by final_score descending (ties keep input
        order) with ranks 1..N

    Raises:
        ValueError: If the three sequences differ in length
    """
    if not (len(passages) == len(embedding_scores) == len(rerank_scores)):
        raise ValueError(
            f"Length mismatch: {len(passages)} passages, "
            f"{len(embedding_scores)} embedding scores, "
            f"{len(rerank_scores)} rerank scores"
        )

    results = [
        RerankResult(
            text=passage,
            original_index=index,
            embedding_score=float(emb),
            rerank_score=float(rer),
            final_score=_clamp(embedding_weight * emb + rerank_weight * rer),
            rank=0,
        )
        for index, (passage, emb, rer) in enumerate(
            zip(passages, embedding_scores, rerank_scores)
        )
    ]

    # sorted() is stable, so equal final scores keep input order
    results = sorted(results, key=lambda r: -r.final_score)
    for position, result in enumerate(results, start=1):
        result.rank = position
    return results


class RerankingService:
    """
    Reranks passages with one configured backend, falling back to mock
    scores when it is missing or fails.
    """

    def __init__(self, config: Optional[RerankConfig] = None):
        self._config = config or RerankConfig()
        self._reranker = _build_reranker(self._config)
        self._used_real_api = False

    @property
    def provider_id(self) -> str:
        return self._config.provider.value

    @property
    def model_id(self) -> str:
        return self._config.model

    def was_real_api_used(self) -> bool:
        """Whether the last rerank_passages() call used live scores."""
        return self._used_real_api

    def _live_scores(self, query: str, passages: List[str]) -> Optional[List[float]]:
        if self._reranker is None:
            return None
        start = time.perf_counter()
        try:
            scores = list(self._reranker.score(query, passages))
            if len(scores) != len(passages):
                raise RerankError(
                    f"Expected {len(passages)} scores, got {len(scores)}"
                )
            if not all(math.isfinite(s) for s in scores):
                raise RerankError("Backend returned non-finite scores")
        except Exception as e:
            logger.warning(
                "%s rerank call failed: %s; using mock rerank scores",
                self.provider_id, e,
            )
            return None
        logger.debug(
            "%s rerank call took %.0fms",
            self.provider_id, (time.perf_counter() - start) * 1000,
        )
        return [_clamp(s) for s in scores]

    def rerank_passages(
        self,
        query: str,
        passages: Sequence[str],
        embedding_scores: Sequence[float],
        scale: ScoreScale = ScoreScale.COSINE,
    ) -> List[RerankResult]:
        """
        Rerank passages and fuse the scores.

        Args:
            query: Query text
            passages: Passage texts (typically the top-K of the embedding stage)
            embedding_scores: One embedding score per passage
            scale: Whether embedding_scores are cosine similarities or
                already percentages

        Returns:
            Fused RerankResults, best first, ranks 1..N

        Raises:
            ValueError: If passages and embedding_scores differ in length
        """
        passages = list(passages)
        if len(passages) != len(embedding_scores):
            raise ValueError(
                f"Got {len(passages)} passages but {len(embedding_scores)} embedding scores"
            )

        if scale == ScoreScale.COSINE:
            scores100 = [to_score_100(s) for s in embedding_scores]
        else:
            scores100 = [_clamp(float(s)) for s in embedding_scores]

        self._used_real_api = False
        if not passages:
            return []

        rerank_scores = self._live_scores(query, passages)
        if rerank_scores is None:
            rerank_scores = mock_rerank_scores(
                passages, scores100, randomize=self._config.randomize_mock,
            )
        else:
            self._used_real_api = True

        return fuse_scores(
            passages,
            scores100,
            rerank_scores,
            embedding_weight=self._config.embedding_weight,
            rerank_weight=self._config.rerank_weight,
        )


def rerank_passages(
    query: str,
    passages: Sequence[str],
    embedding_scores: Sequence[float],
    config: Optional[RerankConfig] = None,
    scale: ScoreScale = ScoreScale.COSINE,
) -> List[RerankResult]:
    """Rerank with a fresh RerankingService for config."""
    return RerankingService(config).rerank_passages(
        query, passages, embedding_scores, scale=scale,
    )
