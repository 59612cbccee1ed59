"""
Deterministic n-gram hashing embeddings.

When no live embedding backend is available (no credential, a rejected
credential, a network failure, a timeout) the provider layer substitutes
vectors from this module. They are not semantic in the way a trained model's
are, but texts sharing many character and word n-grams land close together,
which keeps the ranking pipeline meaningful offline.

Algorithm (text, dimension D):
1. Normalize the text and collect its character n-grams (sizes 2-4)
   followed by its word n-grams (sizes 1-3). M = number of n-grams.
2. Hash each n-gram with a 31-based rolling polynomial hash over UTF-16
   code units, wrapped to a signed 32-bit integer, then take |h|.
3. Each n-gram contributes sin(h + i) / sqrt(M) to dimension
   (h + 97 * i) mod D, for i in 0..7.
4. L2-normalize. Empty text yields the zero vector.

Determinism:
The same (text, D) pair always yields a bit-identical vector. There is no
random or time-based seeding anywhere. Vectors for the same text at two
different dimensions are unrelated.
"""

import math
from typing import List

import numpy as np

from simrank.core.config import DEFAULT_DIMENSION
from simrank.core.models import Vector
from simrank.core.tokenizer import char_ngrams, word_ngrams


# Dimensions touched per n-gram and the stride between them.
SPREAD = 8
STRIDE = 97

CHAR_NGRAM_RANGE = (2, 4)
WORD_NGRAM_RANGE = (1, 3)

_UINT32 = 1 << 32
_INT32_MAX = (1 << 31) - 1


def ngram_hash(value: str) -> int:
    """
    Rolling polynomial hash of a string.

    h = h * 31 + code_unit over the UTF-16 code units of the string,
    truncated to a signed 32-bit integer, returned as its absolute value.

    Args:
        value: String to hash

    Returns:
        Non-negative integer in [0, 2**31]
    """
    data = value.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) % _UINT32
    if h > _INT32_MAX:
        h -= _UINT32
    return abs(h)


def collect_ngrams(text: str) -> List[str]:
    """Character n-grams followed by word n-grams of the normalized text."""
    return (
        char_ngrams(text, *CHAR_NGRAM_RANGE)
        + word_ngrams(text, *WORD_NGRAM_RANGE)
    )


def fallback_embedding(text: str, dimension: int = DEFAULT_DIMENSION) -> Vector:
    """
    Generate a deterministic embedding for text.

    Args:
        text: Text to embed (may be empty)
        dimension: Target vector length

    Returns:
        float32 vector of length `dimension`, unit L2 norm unless the text
        has no n-grams, in which case all zeros

    Raises:
        ValueError: If dimension is not positive
    """
    if dimension <= 0:
        raise ValueError(f"Embedding dimension must be positive, got {dimension}")

    ngrams = collect_ngrams(text or "")
    vector = np.zeros(dimension, dtype=np.float64)
    if not ngrams:
        return vector.astype(np.float32)

    hashes = np.array([ngram_hash(g) for g in ngrams], dtype=np.int64)
    offsets = np.arange(SPREAD, dtype=np.int64)

    dims = (hashes[:, None] + offsets * STRIDE) % dimension
    values = np.sin((hashes[:, None] + offsets).astype(np.float64))
    values /= math.sqrt(len(ngrams))

    # add.at accumulates repeated indices in order
    np.add.at(vector, dims.ravel(), values.ravel())

    norm = np.linalg.norm(vector)
    if norm > 0:
        vector /= norm
    return vector.astype(np.float32)


def fallback_embeddings(
    texts: List[str],
    dimension: int = DEFAULT_DIMENSION,
) -> List[Vector]:
    """Fallback embeddings for several texts, same order as input."""
    return [fallback_embedding(text, dimension) for text in texts]
