"""Tests for provider-agnostic embedding generation.

Live backends are replaced with mocks, so these tests need neither network
access nor model downloads.
"""

import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from simrank.core.config import ProviderConfig, ProviderKind, EmbeddingError
from simrank.core.embeddings import (
    EmbeddingService,
    ProviderState,
    clear_model_cache,
    generate_embedding,
    generate_embeddings,
)
from simrank.core.fallback import fallback_embedding


OPENAI_KEY = "sk-" + "a" * 40
GOOGLE_KEY = "AIza" + "B" * 35


def openai_response(vector):
    return SimpleNamespace(data=[SimpleNamespace(embedding=list(vector))])


def google_response(vector):
    return SimpleNamespace(embeddings=[SimpleNamespace(values=list(vector))])


def vector_for(text, dim):
    """A recognizable live vector: all entries equal to len(text)."""
    return np.full(dim, float(len(text)), dtype=np.float32)


@pytest.fixture(autouse=True)
def _clear_cache():
    clear_model_cache()
    yield
    clear_model_cache()


@pytest.fixture
def openai_client():
    with patch("simrank.core.embeddings.OpenAI") as client_cls:
        client = MagicMock()
        client_cls.return_value = client
        client.embeddings.create.side_effect = (
            lambda model, input: openai_response(vector_for(input, 1536))
        )
        yield client


@pytest.fixture
def google_client():
    with patch("simrank.core.embeddings.genai.Client") as client_cls:
        client = MagicMock()
        client_cls.return_value = client
        client.models.embed_content.side_effect = (
            lambda model, contents, config: google_response(vector_for(contents, 768))
        )
        yield client


class TestNoCredential:
    """Services without a credential use the fallback only."""

    def test_none_provider_uses_fallback(self):
        service = EmbeddingService(ProviderConfig())
        vec = service.generate_embedding("hello world")
        np.testing.assert_array_equal(vec, fallback_embedding("hello world", 768))
        assert service.was_real_api_used() is False
        assert service.state == ProviderState.UNCONFIGURED

    def test_missing_credential_never_calls_backend(self):
        with patch("simrank.core.embeddings.OpenAI") as client_cls:
            service = EmbeddingService(ProviderConfig(provider="openai"))
            vecs = service.generate_embeddings(["a b", "c d"])
        client_cls.assert_not_called()
        assert all(v.shape == (1536,) for v in vecs)
        assert service.was_real_api_used() is False
        assert not service.is_configured

    def test_fallback_dimension_follows_model(self):
        service = EmbeddingService(ProviderConfig(provider="openai", model="text-embedding-3-large"))
        assert service.generate_embedding("text").shape == (3072,)

    def test_malformed_credential_uses_fallback(self, openai_client):
        service = EmbeddingService(ProviderConfig(provider="openai", credential="not-a-key"))
        vec = service.generate_embedding("hello")
        openai_client.embeddings.create.assert_not_called()
        np.testing.assert_array_equal(vec, fallback_embedding("hello", 1536))
        assert service.was_real_api_used() is False


class TestOpenAIBackend:
    """Tests against a mocked OpenAI client."""

    def test_success_uses_live_vectors(self, openai_client):
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        vecs = service.generate_embeddings(["abc", "abcdef"])
        np.testing.assert_array_equal(vecs[0], vector_for("abc", 1536))
        np.testing.assert_array_equal(vecs[1], vector_for("abcdef", 1536))
        assert service.was_real_api_used() is True
        assert service.last_item_statuses() == [True, True]
        assert service.state == ProviderState.SUCCEEDED

    def test_authentication_error_falls_back(self, openai_client):
        """A rejected key yields fallback vectors, never an exception."""
        openai_client.embeddings.create.side_effect = RuntimeError("401 invalid api key")
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        vec = service.generate_embedding("query text")
        assert vec.shape == (1536,)
        assert np.linalg.norm(vec) == pytest.approx(1.0, abs=1e-5)
        assert service.was_real_api_used() is False
        assert service.state == ProviderState.FALLBACK_USED

    def test_partial_failure_is_per_item(self, openai_client):
        def create(model, input):
            if input == "bad":
                raise RuntimeError("429 Too Many Requests")
            return openai_response(vector_for(input, 1536))

        openai_client.embeddings.create.side_effect = create
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        vecs = service.generate_embeddings(["good", "bad", "fine"])

        np.testing.assert_array_equal(vecs[0], vector_for("good", 1536))
        np.testing.assert_array_equal(vecs[1], fallback_embedding("bad", 1536))
        np.testing.assert_array_equal(vecs[2], vector_for("fine", 1536))
        assert service.last_item_statuses() == [True, False, True]
        assert service.was_real_api_used() is False

    def test_wrong_dimension_treated_as_failure(self, openai_client):
        openai_client.embeddings.create.side_effect = (
            lambda model, input: openai_response([0.5] * 10)
        )
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        vec = service.generate_embedding("hello")
        np.testing.assert_array_equal(vec, fallback_embedding("hello", 1536))
        assert service.was_real_api_used() is False

    def test_blank_text_skips_backend(self, openai_client):
        """Blank texts are never sent and do not spoil the live verdict."""
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        vecs = service.generate_embeddings(["text", "   "])
        assert openai_client.embeddings.create.call_count == 1
        assert not vecs[1].any()
        assert service.last_item_statuses() == [True, None]
        assert service.was_real_api_used() is True
        assert service.state == ProviderState.SUCCEEDED

    def test_only_blank_texts_not_live(self, openai_client):
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        service.generate_embeddings(["", "  "])
        openai_client.embeddings.create.assert_not_called()
        assert service.last_item_statuses() == [None, None]
        assert service.was_real_api_used() is False

    def test_timeout_falls_back(self, openai_client):
        release = threading.Event()

        def create(model, input):
            if input == "slow":
                release.wait(5)
            return openai_response(vector_for(input, 1536))

        openai_client.embeddings.create.side_effect = create
        service = EmbeddingService(ProviderConfig(
            provider="openai", credential=OPENAI_KEY, timeout_seconds=0.2,
        ))
        try:
            start = time.perf_counter()
            vecs = service.generate_embeddings(["fast", "slow"])
            elapsed = time.perf_counter() - start
        finally:
            release.set()

        assert elapsed < 2.0
        np.testing.assert_array_equal(vecs[0], vector_for("fast", 1536))
        np.testing.assert_array_equal(vecs[1], fallback_embedding("slow", 1536))
        assert service.last_item_statuses() == [True, False]

    def test_queued_items_get_their_own_timeout(self, openai_client):
        """With one worker the second call starts late but still counts as live."""
        def create(model, input):
            time.sleep(0.15)
            return openai_response(vector_for(input, 1536))

        openai_client.embeddings.create.side_effect = create
        service = EmbeddingService(ProviderConfig(
            provider="openai", credential=OPENAI_KEY,
            timeout_seconds=0.25, max_concurrency=1,
        ))
        vecs = service.generate_embeddings(["first", "second"])

        np.testing.assert_array_equal(vecs[1], vector_for("second", 1536))
        assert service.last_item_statuses() == [True, True]
        assert service.was_real_api_used() is True

    def test_calls_run_concurrently(self, openai_client):
        """All items of a batch should be in flight at the same time."""
        barrier = threading.Barrier(3, timeout=5)

        def create(model, input):
            barrier.wait()
            return openai_response(vector_for(input, 1536))

        openai_client.embeddings.create.side_effect = create
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        service.generate_embeddings(["a", "b", "c"])
        assert service.was_real_api_used() is True

    def test_status_reflects_last_call_only(self, openai_client):
        service = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        service.generate_embedding("ok")
        assert service.was_real_api_used() is True
        openai_client.embeddings.create.side_effect = RuntimeError("network down")
        service.generate_embedding("ok")
        assert service.was_real_api_used() is False


class TestGoogleBackend:
    """Tests against a mocked google-genai client."""

    def test_success(self, google_client):
        service = EmbeddingService(ProviderConfig(provider="google", credential=GOOGLE_KEY))
        vec = service.generate_embedding("hello")
        np.testing.assert_array_equal(vec, vector_for("hello", 768))
        assert service.was_real_api_used() is True

    def test_requests_declared_dimension(self, google_client):
        service = EmbeddingService(ProviderConfig(provider="google", credential=GOOGLE_KEY))
        service.generate_embedding("hello")
        config = google_client.models.embed_content.call_args.kwargs["config"]
        assert config.output_dimensionality == 768

    def test_quota_error_falls_back(self, google_client):
        google_client.models.embed_content.side_effect = RuntimeError("quota exceeded")
        service = EmbeddingService(ProviderConfig(provider="google", credential=GOOGLE_KEY))
        vec = service.generate_embedding("hello")
        np.testing.assert_array_equal(vec, fallback_embedding("hello", 768))
        assert service.was_real_api_used() is False

    def test_client_init_failure_falls_back(self):
        with patch("simrank.core.embeddings.genai.Client", side_effect=RuntimeError("boom")):
            service = EmbeddingService(ProviderConfig(provider="google", credential=GOOGLE_KEY))
        assert not service.is_configured
        assert service.generate_embedding("x").shape == (768,)


class TestLocalBackend:
    """Tests against a mocked sentence-transformers model."""

    def test_batch_encode(self):
        with patch("simrank.core.embeddings.SentenceTransformer") as model_cls:
            model_cls.return_value.encode.side_effect = (
                lambda texts, **kwargs: np.ones((len(texts), 768), dtype=np.float32)
            )
            service = EmbeddingService(ProviderConfig(provider="local"))
            vecs = service.generate_embeddings(["one", "two"])
        assert len(vecs) == 2
        assert all(v.shape == (768,) for v in vecs)
        assert service.was_real_api_used() is True
        model_cls.return_value.encode.assert_called_once()

    def test_model_load_failure_falls_back(self):
        with patch("simrank.core.embeddings.SentenceTransformer", side_effect=OSError("no model")):
            service = EmbeddingService(ProviderConfig(provider="local"))
            vecs = service.generate_embeddings(["one", "two"])
        np.testing.assert_array_equal(vecs[0], fallback_embedding("one", 768))
        assert service.last_item_statuses() == [False, False]

    def test_model_cached(self):
        with patch("simrank.core.embeddings.SentenceTransformer") as model_cls:
            model_cls.return_value.encode.side_effect = (
                lambda texts, **kwargs: np.zeros((len(texts), 768), dtype=np.float32)
            )
            EmbeddingService(ProviderConfig(provider="local")).generate_embedding("a")
            EmbeddingService(ProviderConfig(provider="local")).generate_embedding("b")
        assert model_cls.call_count == 1


class TestInputValidation:
    """Malformed inputs are caller bugs and raise."""

    def test_string_instead_of_list_raises(self):
        with pytest.raises(EmbeddingError, match="list"):
            EmbeddingService().generate_embeddings("not a list")

    def test_non_string_item_raises(self):
        with pytest.raises(EmbeddingError, match="index 1"):
            EmbeddingService().generate_embeddings(["ok", 42])

    def test_empty_list(self):
        service = EmbeddingService()
        assert service.generate_embeddings([]) == []
        assert service.was_real_api_used() is False


class TestAccessors:
    """Tests for status accessors and module-level helpers."""

    def test_provider_and_model_ids(self):
        service = EmbeddingService(ProviderConfig(provider=ProviderKind.OPENAI))
        assert service.provider_id == "openai"
        assert service.model_id == "text-embedding-3-small"
        assert service.dimension == 1536

    def test_module_level_functions(self):
        config = ProviderConfig()
        np.testing.assert_array_equal(
            generate_embedding("cat", config),
            fallback_embedding("cat", 768),
        )
        assert len(generate_embeddings(["a", "b"], config)) == 2

    def test_instances_are_independent(self, openai_client):
        live = EmbeddingService(ProviderConfig(provider="openai", credential=OPENAI_KEY))
        offline = EmbeddingService(ProviderConfig(provider="openai"))
        live.generate_embedding("x")
        offline.generate_embedding("x")
        assert live.was_real_api_used() is True
        assert offline.was_real_api_used() is False
