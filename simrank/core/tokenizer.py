"""
Text normalization, n-gram generation and lexical token similarity.

These primitives are shared by the fallback embedding generator (which
hashes n-grams into vector dimensions) and the token suggestion analyzer
(which compares individual tokens).

Normalization:
- Lowercase
- Every character that is not a Unicode letter or digit becomes a space
- Whitespace runs collapse to a single space, ends trimmed

"Letter or digit" means Unicode general category L* or N*, so accented
and non-Latin scripts survive normalization intact.
"""

import unicodedata
from typing import List


def _is_letter_or_digit(char: str) -> bool:
    return unicodedata.category(char)[0] in ("L", "N")


def normalize(text: str) -> str:
    """
    Normalize text for tokenization.

    Args:
        text: Raw input text

    Returns:
        Lowercased text containing only letters, digits and single spaces
    """
    cleaned = "".join(
        ch if _is_letter_or_digit(ch) else " " for ch in text.lower()
    )
    return " ".join(cleaned.split())


def tokenize_words(text: str) -> List[str]:
    """Split text into normalized, nonempty word tokens."""
    return normalize(text).split()


def char_ngrams(text: str, min_n: int = 2, max_n: int = 4) -> List[str]:
    """
    All contiguous character substrings of sizes min_n..max_n.

    Computed over the normalized character stream (spaces included), grouped
    by size and then by position.
    """
    stream = normalize(text)
    ngrams: List[str] = []
    for n in range(min_n, max_n + 1):
        for i in range(len(stream) - n + 1):
            ngrams.append(stream[i:i + n])
    return ngrams


def word_ngrams(text: str, min_n: int = 1, max_n: int = 3) -> List[str]:
    """
    All contiguous token sequences of sizes min_n..max_n, space-joined.
    """
    tokens = tokenize_words(text)
    ngrams: List[str] = []
    for n in range(min_n, max_n + 1):
        for i in range(len(tokens) - n + 1):
            ngrams.append(" ".join(tokens[i:i + n]))
    return ngrams


def edit_distance(a: str, b: str) -> int:
    """
    Levenshtein distance between two strings.

    Uses the two-row dynamic programming formulation, O(len(a) * len(b))
    time and O(len(b)) memory.
    """
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the character sets of two tokens."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 1.0
    return len(set_a & set_b) / len(union)


def token_similarity(a: str, b: str) -> float:
    """
    Lexical similarity of two tokens.

    The mean of character-set Jaccard similarity and normalized edit
    similarity (1 - distance / longer length).

    Args:
        a: First token
        b: Second token

    Returns:
        Score from 0.0 to 1.0; 1.0 when both tokens are empty
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    edit_similarity = 1.0 - edit_distance(a, b) / max_len
    return (edit_similarity + jaccard_similarity(a, b)) / 2
