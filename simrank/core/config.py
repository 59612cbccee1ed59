"""
Provider configuration for embedding and reranking backends.

Every request builds its own ProviderConfig / RerankConfig and hands it to
the service it creates. Nothing in the core reads process-wide state after
construction: the from_env() helpers read the credential once and freeze it
into the config.

Dimension Coupling:
The fallback generator must produce vectors of the same length as the live
backend it stands in for, otherwise a batch that mixes live and fallback
vectors cannot be compared. EMBEDDING_DIMENSIONS is the single source of
truth for that length, keyed by (provider, model).
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class EmbeddingError(Exception):
    """Base class for embedding-layer failures."""
    pass


class ConfigurationError(EmbeddingError):
    """Raised when a credential is missing/malformed or a model is unknown."""
    pass


class ProviderKind(Enum):
    """Embedding backends the core knows how to talk to."""
    GOOGLE = "google"    # google-genai embed_content
    OPENAI = "openai"    # openai embeddings.create
    LOCAL = "local"      # sentence-transformers, runs in-process
    NONE = "none"        # fallback only


class RerankProviderKind(Enum):
    """Second-stage scoring backends."""
    OPENAI = "openai"
    GOOGLE = "google-vertex"
    CROSS_ENCODER = "cross-encoder"
    MOCK = "mock"


# Fallback dimensionality when no live backend is involved.
DEFAULT_DIMENSION = 768

# Bound on every live call, in seconds.
DEFAULT_TIMEOUT_SECONDS = 30.0

# Upper bound on concurrent live calls per batch.
DEFAULT_MAX_CONCURRENCY = 8

DEFAULT_MODELS: Dict[ProviderKind, str] = {
    ProviderKind.GOOGLE: "gemini-embedding-001",
    ProviderKind.OPENAI: "text-embedding-3-small",
    ProviderKind.LOCAL: "BAAI/bge-base-en-v1.5",
    ProviderKind.NONE: "fallback-ngram-hash",
}

DEFAULT_RERANK_MODELS: Dict[RerankProviderKind, str] = {
    RerankProviderKind.OPENAI: "text-embedding-3-small",
    RerankProviderKind.GOOGLE: "text-embedding-004",
    RerankProviderKind.CROSS_ENCODER: "cross-encoder/ms-marco-MiniLM-L-6-v2",
    RerankProviderKind.MOCK: "mock",
}

# (provider, model) -> vector length. Google's gemini-embedding-001 natively
# returns 3072 values; we request 768 via output_dimensionality so it lines
# up with the other Google models and the default fallback.
EMBEDDING_DIMENSIONS: Dict[Tuple[ProviderKind, str], int] = {
    (ProviderKind.GOOGLE, "gemini-embedding-001"): 768,
    (ProviderKind.GOOGLE, "text-embedding-004"): 768,
    (ProviderKind.GOOGLE, "embedding-001"): 768,
    (ProviderKind.OPENAI, "text-embedding-3-small"): 1536,
    (ProviderKind.OPENAI, "text-embedding-3-large"): 3072,
    (ProviderKind.OPENAI, "text-embedding-ada-002"): 1536,
    (ProviderKind.LOCAL, "BAAI/bge-base-en-v1.5"): 768,
    (ProviderKind.LOCAL, "BAAI/bge-large-en-v1.5"): 1024,
    (ProviderKind.LOCAL, "all-MiniLM-L6-v2"): 384,
}

# Environment variables consulted by from_env().
CREDENTIAL_ENV_VARS: Dict[str, str] = {
    "google": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
}

# Credential shapes. A key that does not match is rejected before any
# network call is made.
CREDENTIAL_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    "google": re.compile(r"^AIza[0-9A-Za-z_-]{35}$"),
    "openai": re.compile(r"^sk-[0-9A-Za-z_-]{20,200}$"),
}


def _coerce_kind(value, enum_cls):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        valid = ", ".join(k.value for k in enum_cls)
        raise ConfigurationError(
            f"Unknown provider '{value}' (expected one of: {valid})"
        )


def resolve_dimension(provider: Union[ProviderKind, str], model: str) -> int:
    """
    Look up the vector length for a provider/model pair.

    Args:
        provider: Embedding provider kind (enum or its string value)
        model: Model identifier

    Returns:
        Embedding dimensionality

    Raises:
        ConfigurationError: If a live provider is paired with an unknown model
    """
    provider = _coerce_kind(provider, ProviderKind)
    if provider == ProviderKind.NONE:
        return DEFAULT_DIMENSION
    try:
        return EMBEDDING_DIMENSIONS[(provider, model)]
    except KeyError:
        raise ConfigurationError(
            f"Unknown model '{model}' for provider '{provider.value}'"
        )


def validate_credential(family: str, credential: Optional[str]) -> None:
    """
    Check a credential's format for a provider family ("google"/"openai").

    Raises:
        ConfigurationError: If the credential is missing or malformed
    """
    if not credential:
        raise ConfigurationError(f"No {family} credential configured")
    pattern = CREDENTIAL_PATTERNS.get(family)
    if pattern is not None and not pattern.match(credential):
        raise ConfigurationError(f"Malformed {family} credential")


def _credential_family(kind: Enum) -> Optional[str]:
    if kind in (ProviderKind.GOOGLE, RerankProviderKind.GOOGLE):
        return "google"
    if kind in (ProviderKind.OPENAI, RerankProviderKind.OPENAI):
        return "openai"
    return None


def _credential_from_env(kind: Enum) -> Optional[str]:
    family = _credential_family(kind)
    if family is None:
        return None
    return os.environ.get(CREDENTIAL_ENV_VARS[family]) or None


@dataclass(frozen=True)
class ProviderConfig:
    """
    Immutable embedding provider settings for one request.

    Attributes:
        provider: Backend kind (strings are coerced to ProviderKind)
        model: Model identifier; defaults per provider
        credential: Opaque API key; never logged or persisted
        timeout_seconds: Deadline for each live call
        max_concurrency: Worker bound for batch calls
    """
    provider: ProviderKind = ProviderKind.NONE
    model: Optional[str] = None
    credential: Optional[str] = field(default=None, repr=False)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def __post_init__(self):
        kind = _coerce_kind(self.provider, ProviderKind)
        object.__setattr__(self, "provider", kind)
        if not self.model:
            object.__setattr__(self, "model", DEFAULT_MODELS[kind])
        resolve_dimension(kind, self.model)
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")

    @property
    def dimension(self) -> int:
        """Vector length produced for this provider/model."""
        return resolve_dimension(self.provider, self.model)

    @property
    def credential_family(self) -> Optional[str]:
        return _credential_family(self.provider)

    @classmethod
    def from_env(
        cls,
        provider: Union[ProviderKind, str],
        model: Optional[str] = None,
        **kwargs,
    ) -> "ProviderConfig":
        """Build a config, taking the credential from the environment."""
        kind = _coerce_kind(provider, ProviderKind)
        return cls(
            provider=kind,
            model=model,
            credential=_credential_from_env(kind),
            **kwargs,
        )


# Fusion weights. Embedding similarity dominates; the rerank stage nudges.
EMBEDDING_WEIGHT = 0.7
RERANK_WEIGHT = 0.3


@dataclass(frozen=True)
class RerankConfig:
    """
    Immutable reranking settings for one request.

    Attributes:
        provider: Rerank backend kind (strings are coerced)
        model: Model identifier; defaults per provider
        credential: Opaque API key for remote backends
        timeout_seconds: Deadline for the rerank backend call
        randomize_mock: Use unseeded randomness for mock scores
        embedding_weight: Weight of the embedding score in the fused score
        rerank_weight: Weight of the rerank score in the fused score
    """
    provider: RerankProviderKind = RerankProviderKind.MOCK
    model: Optional[str] = None
    credential: Optional[str] = field(default=None, repr=False)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    randomize_mock: bool = False
    embedding_weight: float = EMBEDDING_WEIGHT
    rerank_weight: float = RERANK_WEIGHT

    def __post_init__(self):
        kind = _coerce_kind(self.provider, RerankProviderKind)
        object.__setattr__(self, "provider", kind)
        if not self.model:
            object.__setattr__(self, "model", DEFAULT_RERANK_MODELS[kind])
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")
        if self.embedding_weight < 0 or self.rerank_weight < 0:
            raise ConfigurationError("Fusion weights must be non-negative")
        if abs(self.embedding_weight + self.rerank_weight - 1.0) > 1e-9:
            raise ConfigurationError("Fusion weights must sum to 1")

    @property
    def credential_family(self) -> Optional[str]:
        return _credential_family(self.provider)

    @classmethod
    def from_env(
        cls,
        provider: Union[RerankProviderKind, str],
        model: Optional[str] = None,
        **kwargs,
    ) -> "RerankConfig":
        """Build a config, taking the credential from the environment."""
        kind = _coerce_kind(provider, RerankProviderKind)
        return cls(
            provider=kind,
            model=model,
            credential=_credential_from_env(kind),
            **kwargs,
        )
