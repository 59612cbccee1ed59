"""
Provider-agnostic embedding generation.

An EmbeddingService wraps exactly one backend, chosen from a closed set by
ProviderConfig.provider:

- GOOGLE: google-genai, client.models.embed_content
- OPENAI: openai, client.embeddings.create
- LOCAL: sentence-transformers model running in-process
- NONE: no backend

Fallback Behavior:
Whenever a live backend is missing or fails, the deterministic n-gram
hashing generator (simrank.core.fallback) produces the vector instead, at
the dimensionality declared for the configured provider/model. Failures
are handled per item: one rejected or slow text is replaced by its
fallback vector while the rest of the batch keeps its live vectors. The
caller never sees an exception because a backend is unreachable.

Lifecycle:
    UNCONFIGURED  no usable backend (missing/malformed credential, NONE)
    CONFIGURED    backend ready, no call issued yet
    IN_FLIGHT     a call is running
    SUCCEEDED     every item of the last call came from the backend
    FALLBACK_USED at least one item of the last call used the fallback

Each request builds its own EmbeddingService from an explicit config.
Instances are not meant to be shared across concurrent requests.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
from google import genai
from google.genai import types as genai_types
from openai import OpenAI
from sentence_transformers import SentenceTransformer

from simrank.core.config import (
    ConfigurationError,
    EmbeddingError,
    ProviderConfig,
    ProviderKind,
    validate_credential,
)
from simrank.core.fallback import fallback_embedding
from simrank.core.models import Vector


logger = logging.getLogger(__name__)

# Module-level model cache to avoid reloading sentence-transformer weights.
# Models are read-only inference handles, not per-request state.
_model_cache: Dict[str, SentenceTransformer] = {}


class ProviderError(EmbeddingError):
    """Raised when a live backend call fails for any reason."""
    pass


class ProviderState(Enum):
    """Lifecycle of an EmbeddingService."""
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FALLBACK_USED = "fallback_used"


def _get_model(model_name: str) -> SentenceTransformer:
    """
    Get or load a sentence-transformer model.

    Args:
        model_name: Name of the sentence-transformer model

    Returns:
        Loaded SentenceTransformer model

    Raises:
        ProviderError: If model cannot be loaded
    """
    if model_name not in _model_cache:
        try:
            _model_cache[model_name] = SentenceTransformer(model_name)
        except Exception as e:
            raise ProviderError(f"Failed to load model '{model_name}': {e}") from e
    return _model_cache[model_name]


def clear_model_cache() -> None:
    """
    Clear the model cache to free memory.

    Call this if you need to release GPU/CPU memory used by loaded models.
    """
    _model_cache.clear()


class _GoogleBackend:
    """Google Generative AI embeddings."""

    batched = False

    def __init__(self, config: ProviderConfig):
        self.model = config.model
        self.dimension = config.dimension
        self._client = genai.Client(
            api_key=config.credential,
            http_options=genai_types.HttpOptions(
                timeout=int(config.timeout_seconds * 1000),
            ),
        )

    def embed(self, text: str) -> Vector:
        response = self._client.models.embed_content(
            model=self.model,
            contents=text,
            config=genai_types.EmbedContentConfig(
                output_dimensionality=self.dimension,
            ),
        )
        return np.asarray(response.embeddings[0].values, dtype=np.float32)


class _OpenAIBackend:
    """OpenAI embeddings."""

    batched = False

    def __init__(self, config: ProviderConfig):
        self.model = config.model
        self.dimension = config.dimension
        # Retries belong to the calling layer; a failure here means fallback.
        self._client = OpenAI(
            api_key=config.credential,
            timeout=config.timeout_seconds,
            max_retries=0,
        )

    def embed(self, text: str) -> Vector:
        response = self._client.embeddings.create(model=self.model, input=text)
        return np.asarray(response.data[0].embedding, dtype=np.float32)


class _LocalBackend:
    """sentence-transformers model, encoded in one batch."""

    batched = True

    def __init__(self, config: ProviderConfig):
        self.model = config.model
        self.dimension = config.dimension

    def embed(self, text: str) -> Vector:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[Vector]:
        model = _get_model(self.model)
        embeddings = model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,  # L2 normalize for cosine similarity
            show_progress_bar=False,
        )
        return [np.asarray(emb, dtype=np.float32) for emb in embeddings]


_BACKENDS = {
    ProviderKind.GOOGLE: _GoogleBackend,
    ProviderKind.OPENAI: _OpenAIBackend,
    ProviderKind.LOCAL: _LocalBackend,
}


def _build_backend(config: ProviderConfig):
    """Create the backend for a config, or None when only fallback is possible."""
    backend_cls = _BACKENDS.get(config.provider)
    if backend_cls is None:
        return None

    family = config.credential_family
    if family is not None:
        try:
            validate_credential(family, config.credential)
        except ConfigurationError as e:
            if config.credential:
                logger.warning("%s; using fallback embeddings", e)
            else:
                logger.info("%s; using fallback embeddings", e)
            return None

    try:
        return backend_cls(config)
    except Exception as e:
        logger.warning(
            "Could not initialize %s client: %s; using fallback embeddings",
            config.provider.value, e,
        )
        return None


class EmbeddingService:
    """
    Embedding generation against one configured backend.

    Usage:
        service = EmbeddingService(ProviderConfig.from_env("openai"))
        vectors = service.generate_embeddings(["first", "second"])
        if not service.was_real_api_used():
            ...  # some or all vectors came from the fallback generator
    """

    def __init__(self, config: Optional[ProviderConfig] = None):
        self._config = config or ProviderConfig()
        self._dimension = self._config.dimension
        self._backend = _build_backend(self._config)
        self._last_statuses: List[Optional[bool]] = []
        self.state = (
            ProviderState.CONFIGURED if self._backend is not None
            else ProviderState.UNCONFIGURED
        )
        logger.debug(
            "EmbeddingService provider=%s model=%s dim=%d credential=%s state=%s",
            self.provider_id, self.model_id, self._dimension,
            "present" if self._config.credential else "absent", self.state.value,
        )

    @property
    def provider_id(self) -> str:
        return self._config.provider.value

    @property
    def model_id(self) -> str:
        return self._config.model

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_configured(self) -> bool:
        """Whether a live backend is available at all."""
        return self._backend is not None

    def was_real_api_used(self) -> bool:
        """
        Whether the last call got every vector it sent from the live backend.

        Blank texts are never sent and do not count either way. A partially
        failed batch reports False; see last_item_statuses() for the per-item
        picture.
        """
        sent = [status for status in self._last_statuses if status is not None]
        return bool(sent) and all(sent)

    def last_item_statuses(self) -> List[Optional[bool]]:
        """
        Per-item live success flags for the last call, in input order.

        None marks a blank text that never went to a backend.
        """
        return list(self._last_statuses)

    def generate_embedding(self, text: str) -> Vector:
        """
        Generate an embedding for a single text.

        Args:
            text: Text to embed; empty text yields the zero vector

        Returns:
            Embedding vector of length self.dimension
        """
        return self.generate_embeddings([text])[0]

    def generate_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        """
        Generate embeddings for several texts.

        Live calls for all texts run concurrently; each failed or timed-out
        item is replaced by its fallback vector.

        Args:
            texts: Texts to embed

        Returns:
            List of embedding vectors, same order as input texts

        Raises:
            EmbeddingError: If texts is not a sequence of strings
        """
        if isinstance(texts, str) or not isinstance(texts, (list, tuple)):
            raise EmbeddingError("texts must be a list of strings")
        for i, text in enumerate(texts):
            if not isinstance(text, str):
                raise EmbeddingError(f"Text at index {i} is not a string")

        live: Dict[int, Vector] = {}
        if self._backend is not None:
            # Blank texts never go to a backend
            indices = [i for i, text in enumerate(texts) if text.strip()]
            if indices:
                self.state = ProviderState.IN_FLIGHT
                live = self._embed_live(texts, indices)

        vectors: List[Vector] = []
        statuses: List[Optional[bool]] = []
        for i, text in enumerate(texts):
            if i in live:
                vectors.append(live[i])
                statuses.append(True)
            else:
                vectors.append(fallback_embedding(text, self._dimension))
                statuses.append(False if text.strip() else None)

        self._last_statuses = statuses
        if self._backend is not None:
            self.state = (
                ProviderState.SUCCEEDED if self.was_real_api_used()
                else ProviderState.FALLBACK_USED
            )
        fallback_count = len(statuses) - statuses.count(True)
        if fallback_count:
            logger.info(
                "Used fallback embeddings for %d of %d texts (provider=%s)",
                fallback_count, len(texts), self.provider_id,
            )
        return vectors

    def _check_dimension(self, vector: Vector) -> Vector:
        if vector.ndim != 1 or vector.shape[0] != self._dimension:
            raise ProviderError(
                f"{self.provider_id}/{self.model_id} returned a vector of shape "
                f"{vector.shape}, expected ({self._dimension},)"
            )
        return vector

    def _embed_one(self, text: str) -> Vector:
        start = time.perf_counter()
        try:
            vector = self._backend.embed(text)
        except Exception as e:
            raise ProviderError(f"{self.provider_id} embedding call failed: {e}") from e
        logger.debug(
            "%s embedding call took %.0fms",
            self.provider_id, (time.perf_counter() - start) * 1000,
        )
        return self._check_dimension(vector)

    def _embed_live(self, texts: Sequence[str], indices: List[int]) -> Dict[int, Vector]:
        if self._backend.batched:
            return self._embed_batched(texts, indices)
        return self._embed_concurrently(texts, indices)

    def _embed_batched(self, texts: Sequence[str], indices: List[int]) -> Dict[int, Vector]:
        try:
            batch = self._backend.embed_batch([texts[i] for i in indices])
            return {i: self._check_dimension(vec) for i, vec in zip(indices, batch)}
        except Exception as e:
            logger.warning(
                "%s batch embedding failed for %d texts: %s",
                self.provider_id, len(indices), e,
            )
            return {}

    def _embed_concurrently(
        self,
        texts: Sequence[str],
        indices: List[int],
    ) -> Dict[int, Vector]:
        workers = min(self._config.max_concurrency, len(indices))
        # Queued items wait for a free worker, so the deadline scales with rounds
        deadline = self._config.timeout_seconds * math.ceil(len(indices) / workers)

        executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="simrank-embed",
        )
        futures = {executor.submit(self._embed_one, texts[i]): i for i in indices}
        try:
            done, pending = wait(futures, timeout=deadline)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        results: Dict[int, Vector] = {}
        for future in done:
            index = futures[future]
            try:
                results[index] = future.result()
            except ProviderError as e:
                logger.warning("Text %d: %s", index, e)
        for future in pending:
            logger.warning(
                "Text %d: %s embedding call timed out after %.1fs",
                futures[future], self.provider_id, deadline,
            )
        return results


def generate_embedding(text: str, config: Optional[ProviderConfig] = None) -> Vector:
    """Embed one text with a fresh EmbeddingService for config."""
    return EmbeddingService(config).generate_embedding(text)


def generate_embeddings(
    texts: Sequence[str],
    config: Optional[ProviderConfig] = None,
) -> List[Vector]:
    """Embed several texts with a fresh EmbeddingService for config."""
    return EmbeddingService(config).generate_embeddings(texts)
