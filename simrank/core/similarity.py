"""
Cosine similarity calculations and top-K ranking.

Mathematical Background:
Cosine similarity measures the angle between two vectors:
    cos(theta) = (A . B) / (||A|| * ||B||)

Interpretation:
- 1.0: Identical direction (same semantic meaning)
- 0.0: Orthogonal (unrelated)
- -1.0: Opposite direction (rare for text embeddings)

A zero vector has no direction. Its similarity to anything is defined as
0.0 (the fallback generator returns one for empty text, so this is a
normal input, not an error).

Vectors of different lengths come from different provider/model
configurations and cannot be compared. That is a caller bug and raises
DimensionMismatchError instead of being truncated or padded.
"""

from typing import List, Sequence

import numpy as np

from simrank.core.models import SimilarityResult, Vector


# Default number of passages returned by find_most_similar()
DEFAULT_TOP_K = 5


class DimensionMismatchError(ValueError):
    """Raised when comparing vectors of different lengths."""
    pass


def _as_vector(vec) -> np.ndarray:
    arr = np.asarray(vec, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"Expected a one-dimensional vector, got shape {arr.shape}")
    return arr


def cosine_similarity(vec_a: Vector, vec_b: Vector) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First embedding vector (array or sequence of floats)
        vec_b: Second embedding vector

    Returns:
        Cosine similarity score from -1.0 to 1.0, or 0.0 if either vector
        has zero magnitude

    Raises:
        DimensionMismatchError: If vectors have different lengths
    """
    a = _as_vector(vec_a)
    b = _as_vector(vec_b)

    if a.shape != b.shape:
        raise DimensionMismatchError(
            f"Vector dimension mismatch: {a.shape[0]} vs {b.shape[0]}"
        )

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = np.dot(a, b) / (norm_a * norm_b)

    # Clamp to [-1, 1] to handle floating point errors
    return float(np.clip(similarity, -1.0, 1.0))


def compute_similarities(
    query_vec: Vector,
    document_vecs: Sequence[Vector],
) -> List[float]:
    """
    Cosine similarity between a query vector and each document vector.

    Returns:
        List of similarity scores, same order as document_vecs
    """
    return [cosine_similarity(query_vec, doc_vec) for doc_vec in document_vecs]


def find_most_similar(
    query_vec: Vector,
    passage_vecs: Sequence[Vector],
    passage_texts: Sequence[str],
    top_k: int = DEFAULT_TOP_K,
) -> List[SimilarityResult]:
    """
    Rank passages by cosine similarity to the query.

    Sorting is stable: passages with equal similarity keep their input
    order.

    Args:
        query_vec: Query embedding
        passage_vecs: One embedding per passage
        passage_texts: Passage texts, parallel to passage_vecs
        top_k: Maximum number of results

    Returns:
        Up to top_k SimilarityResults, highest similarity first

    Raises:
        ValueError: If the vector and text lists differ in length or top_k
            is negative
        DimensionMismatchError: If any passage vector differs in length from
            the query vector

    Example:
        >>> results = find_most_similar(
        ...     [1, 0, 0], [[1, 0, 0], [0, 1, 0], [-1, 0, 0]], ["a", "b", "c"], top_k=2
        ... )
        >>> [(r.original_index, r.similarity) for r in results]
        [(0, 1.0), (1, 0.0)]
    """
    if len(passage_vecs) != len(passage_texts):
        raise ValueError(
            f"Got {len(passage_vecs)} passage vectors but {len(passage_texts)} texts"
        )
    if top_k < 0:
        raise ValueError(f"top_k must be non-negative, got {top_k}")

    similarities = compute_similarities(query_vec, passage_vecs)

    order = sorted(
        range(len(similarities)),
        key=lambda i: (-similarities[i], i),
    )

    return [
        SimilarityResult(
            text=passage_texts[i],
            similarity=similarities[i],
            original_index=i,
        )
        for i in order[:top_k]
    ]
