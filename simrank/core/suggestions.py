"""
Token suggestions for improving lexical overlap with a query.

For a (text, query) pair, every text token that has no close lexical
counterpart among the query tokens is flagged, and a handful of
replacement candidates is proposed for it.

Matching:
A text token is matched when token_similarity(token, q) > 0.5 for at least
one query token q.

Candidates (in discovery order, deduplicated, at most 5):
1. Irregular verb forms from a small lookup table, similarity > 0.3
2. Morphological variants (strip or add ing/ed/er/ly/s), similarity > 0.4
3. Query tokens, similarity > 0.5

This module does NOT:
- Rewrite the text
- Consult embeddings or any external service
- Persist anything between calls
"""

import logging
from typing import Dict, List

from simrank.core.models import TokenSuggestion
from simrank.core.tokenizer import token_similarity, tokenize_words


logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.5
COMMON_VARIATION_THRESHOLD = 0.3
MORPHOLOGICAL_THRESHOLD = 0.4
QUERY_TOKEN_THRESHOLD = 0.5
MAX_SUGGESTIONS = 5

UNMATCHED_REASON = "No semantic match with query tokens"

IRREGULAR_FORMS: Dict[str, List[str]] = {
    "run": ["running", "runs", "ran"],
    "walk": ["walking", "walks", "walked"],
    "go": ["going", "goes", "went", "gone"],
    "see": ["seeing", "sees", "saw", "seen"],
    "come": ["coming", "comes", "came"],
    "get": ["getting", "gets", "got", "gotten"],
    "make": ["making", "makes", "made"],
    "take": ["taking", "takes", "took", "taken"],
    "give": ["giving", "gives", "gave", "given"],
    "know": ["knowing", "knows", "knew", "known"],
}

# Suffixes tried when stripping or adding. Those in _E_DROPPING swallow a
# trailing "e" (make -> making) and may need one restored (making -> make).
SUFFIXES = ("ing", "ed", "er", "ly", "s")
_E_DROPPING = ("ing", "ed", "er")


def _build_form_index() -> Dict[str, List[str]]:
    index: Dict[str, List[str]] = {}
    for base, forms in IRREGULAR_FORMS.items():
        index[base] = list(forms)
        for form in forms:
            index.setdefault(form, [base] + [f for f in forms if f != form])
    return index


# Any form maps to the rest of its family, so "ran" suggests "run" too
_FORM_INDEX = _build_form_index()


def common_word_variations(word: str) -> List[str]:
    """Irregular inflections of word from the lookup table."""
    return list(_FORM_INDEX.get(word.lower(), []))


def morphological_variations(word: str) -> List[str]:
    """
    Suffix-based variants of a word.

    Strips each known suffix the word ends with (restoring a dropped "e"
    where relevant), then adds each suffix it does not end with. Variants
    shorter than 3 characters or equal to the word are dropped.
    """
    variations: List[str] = []

    for suffix in SUFFIXES:
        if word.endswith(suffix) and len(word) > len(suffix) + 1:
            stem = word[:-len(suffix)]
            variations.append(stem)
            if suffix in _E_DROPPING:
                variations.append(stem + "e")

    for suffix in SUFFIXES:
        if word.endswith(suffix):
            continue
        if suffix in _E_DROPPING and word.endswith("e"):
            variations.append(word[:-1] + suffix)
        else:
            variations.append(word + suffix)

    return [v for v in variations if len(v) > 2 and v != word]


def suggest_replacements(token: str, query_tokens: List[str]) -> List[str]:
    """
    Candidate replacements for a single token.

    Args:
        token: Normalized text token
        query_tokens: Normalized query tokens

    Returns:
        Up to MAX_SUGGESTIONS candidates in discovery order
    """
    candidates: List[str] = []

    def add(candidate: str) -> None:
        if candidate != token and candidate not in candidates:
            candidates.append(candidate)

    for variation in common_word_variations(token):
        if token_similarity(variation, token) > COMMON_VARIATION_THRESHOLD:
            add(variation)

    for variation in morphological_variations(token):
        if token_similarity(variation, token) > MORPHOLOGICAL_THRESHOLD:
            add(variation)

    for query_token in query_tokens:
        if token_similarity(token, query_token) > QUERY_TOKEN_THRESHOLD:
            add(query_token)

    return candidates[:MAX_SUGGESTIONS]


def is_matched(token: str, query_tokens: List[str]) -> bool:
    """Whether token has a close lexical counterpart in the query."""
    return any(
        token_similarity(token, query_token) > MATCH_THRESHOLD
        for query_token in query_tokens
    )


def generate_token_suggestions(text: str, query: str) -> List[TokenSuggestion]:
    """
    Flag text tokens that do not match the query and propose alternatives.

    Args:
        text: Passage text to analyze
        query: Query the passage should align with

    Returns:
        One TokenSuggestion per unmatched token that has candidates, in
        text order. Never contains an empty suggestion list.

    Example:
        >>> [s.original_token for s in generate_token_suggestions(
        ...     "the quick fox", "quick brown fox")]
        ['the']
    """
    text_tokens = tokenize_words(text)
    query_tokens = tokenize_words(query)

    suggestions: List[TokenSuggestion] = []
    for position, token in enumerate(text_tokens):
        if is_matched(token, query_tokens):
            continue
        candidates = suggest_replacements(token, query_tokens)
        if candidates:
            suggestions.append(TokenSuggestion(
                original_token=token,
                position=position,
                suggestions=candidates,
                reason=UNMATCHED_REASON,
            ))

    logger.debug(
        "Generated %d token suggestions for %d text tokens",
        len(suggestions), len(text_tokens),
    )
    return suggestions
