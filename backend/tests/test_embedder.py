"""
Tests for the embedding client with a mocked HTTP session.
"""
import pytest
import requests
from unittest.mock import MagicMock

from apps.core.errors import UpstreamModelError
from apps.indexing.embedder import EmbeddingClient, EmbeddingError


def make_response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    return response


def make_client(provider="ollama", dimensions=3, response=None, side_effect=None):
    session = MagicMock()
    if side_effect is not None:
        session.post.side_effect = side_effect
    else:
        session.post.return_value = response
    client = EmbeddingClient(
        provider=provider,
        base_url="http://model-server:11434",
        model="test-embed",
        dimensions=dimensions,
        timeout=5,
        api_key="sk-test",
        session=session,
    )
    return client, session


# ============================================================================
# Ollama
# ============================================================================

class TestOllamaEmbeddings:
    """Ollama /api/embed provider."""

    def test_embed_batch_single_round_trip(self):
        """Should send all texts in one request and return vectors in order."""
        client, session = make_client(response=make_response(payload={
            "embeddings": [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]
        }))

        vectors = client.embed_batch(["first", "second"])

        assert vectors == [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]
        session.post.assert_called_once()
        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "http://model-server:11434/api/embed"
        assert body == {"model": "test-embed", "input": ["first", "second"]}

    def test_embed_single(self):
        client, _ = make_client(response=make_response(payload={"embeddings": [[1.0, 0.0, 0.0]]}))
        assert client.embed("hello") == [1.0, 0.0, 0.0]

    def test_empty_batch_makes_no_call(self):
        client, session = make_client()

        assert client.embed_batch([]) == []
        session.post.assert_not_called()

    def test_count_mismatch_raises(self):
        client, _ = make_client(response=make_response(payload={"embeddings": [[0.1, 0.2, 0.3]]}))

        with pytest.raises(EmbeddingError) as exc_info:
            client.embed_batch(["a", "b"])
        assert not exc_info.value.retriable

    def test_wrong_dimension_raises(self):
        client, _ = make_client(response=make_response(payload={"embeddings": [[0.1, 0.2]]}))

        with pytest.raises(EmbeddingError, match="dimensions"):
            client.embed_batch(["a"])

    def test_missing_embeddings_key_raises(self):
        client, _ = make_client(response=make_response(payload={"error": "nope"}))

        with pytest.raises(EmbeddingError):
            client.embed_batch(["a"])


# ============================================================================
# OpenAI-compatible
# ============================================================================

class TestOpenAIEmbeddings:
    """OpenAI-compatible /embeddings provider."""

    def test_ordered_response(self):
        client, session = make_client(provider="openai", response=make_response(payload={
            "data": [
                {"index": 0, "embedding": [0.1, 0.2, 0.3]},
                {"index": 1, "embedding": [0.4, 0.5, 0.6]},
            ]
        }))

        vectors = client.embed_batch(["a", "b"])

        assert vectors == [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]
        assert session.post.call_args.args[0] == "http://model-server:11434/embeddings"
        assert session.post.call_args.kwargs["headers"] == {"Authorization": "Bearer sk-test"}

    def test_out_of_order_response_raises(self):
        client, _ = make_client(provider="openai", response=make_response(payload={
            "data": [
                {"index": 1, "embedding": [0.4, 0.5, 0.6]},
                {"index": 0, "embedding": [0.1, 0.2, 0.3]},
            ]
        }))

        with pytest.raises(EmbeddingError, match="out of order"):
            client.embed_batch(["a", "b"])

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            EmbeddingClient(provider="carrier-pigeon", session=MagicMock())


# ============================================================================
# Transport failures
# ============================================================================

class TestEmbeddingFailures:
    """Failures map to EmbeddingError with a retriable flag."""

    def test_embedding_error_is_upstream_model_error(self):
        assert issubclass(EmbeddingError, UpstreamModelError)

    def test_timeout_is_retriable(self):
        client, _ = make_client(side_effect=requests.exceptions.Timeout("slow"))

        with pytest.raises(EmbeddingError) as exc_info:
            client.embed_batch(["a"])
        assert exc_info.value.retriable

    def test_connection_error_is_retriable(self):
        client, _ = make_client(side_effect=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(EmbeddingError) as exc_info:
            client.embed_batch(["a"])
        assert exc_info.value.retriable

    def test_server_error_is_retriable(self):
        client, _ = make_client(response=make_response(status_code=503, text="overloaded"))

        with pytest.raises(EmbeddingError) as exc_info:
            client.embed_batch(["a"])
        assert exc_info.value.retriable

    def test_client_error_is_not_retriable(self):
        client, _ = make_client(response=make_response(status_code=404, text="model not found"))

        with pytest.raises(EmbeddingError) as exc_info:
            client.embed_batch(["a"])
        assert not exc_info.value.retriable


class TestStorageFormat:
    """pgvector literal formatting."""

    def test_fixed_precision_literal(self):
        assert EmbeddingClient.to_storage_format([0.1234567, -0.5, 1]) == "[0.123457,-0.500000,1.000000]"

    def test_empty_vector(self):
        assert EmbeddingClient.to_storage_format([]) == "[]"
