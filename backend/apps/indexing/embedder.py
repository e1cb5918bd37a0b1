"""
Embedding generation over HTTP.

Calls the embedding provider (Ollama or an OpenAI-compatible server) to
turn text into fixed-size vectors. The default model, nomic-embed-text,
produces 768-dimensional vectors; every returned vector is checked
against EMBEDDING_DIMENSIONS before it is used.
"""
import logging
from typing import List, Optional

import requests
from django.conf import settings

from apps.core.errors import UpstreamModelError

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_EMBEDDING_DIMENSIONS = 768
DEFAULT_EMBED_TIMEOUT = 120


class EmbeddingError(UpstreamModelError):
    """Raised when embedding generation fails."""
    default_code = 'EMBEDDING_FAILED'


class EmbeddingClient:
    """
    Client for the embedding provider.
    
    One HTTP round trip per embed_batch call. The provider is chosen by
    EMBEDDING_PROVIDER ('ollama' or 'openai'); constructor arguments
    override settings.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.provider = (provider or getattr(settings, 'EMBEDDING_PROVIDER', 'ollama')).lower()
        if self.provider not in ('ollama', 'openai'):
            raise ValueError(f"Unknown embedding provider: {self.provider}")

        if self.provider == 'openai':
            default_url = getattr(settings, 'OPENAI_BASE_URL', 'https://api.openai.com/v1')
            default_model = getattr(settings, 'OPENAI_EMBED_MODEL', 'text-embedding-3-small')
        else:
            default_url = getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')
            default_model = getattr(settings, 'OLLAMA_EMBED_MODEL', DEFAULT_EMBEDDING_MODEL)

        self.base_url = (base_url or default_url).rstrip('/')
        self.model = model or default_model
        self.dimensions = dimensions or getattr(
            settings, 'EMBEDDING_DIMENSIONS', DEFAULT_EMBEDDING_DIMENSIONS
        )
        self.timeout = timeout or getattr(settings, 'OLLAMA_EMBED_TIMEOUT', DEFAULT_EMBED_TIMEOUT)
        self.api_key = api_key or getattr(settings, 'OPENAI_API_KEY', '')
        self.session = session or requests.Session()

    def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts in one provider call.
        
        Args:
            texts: Texts to embed
            
        Returns:
            One vector per text, in input order
            
        Raises:
            EmbeddingError: On transport failure or a malformed response
        """
        if not texts:
            return []

        if self.provider == 'openai':
            vectors = self._embed_openai(texts)
        else:
            vectors = self._embed_ollama(texts)

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} embeddings for {len(texts)} inputs"
            )

        for i, vector in enumerate(vectors):
            if not vector:
                raise EmbeddingError(f"No embedding in response for input {i}")
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    f"Expected {self.dimensions} dimensions, got {len(vector)} for input {i}"
                )

        logger.debug(f"Generated {len(vectors)} embeddings with {self.model}")
        return vectors

    def _post(self, url: str, payload: dict, headers: Optional[dict] = None) -> dict:
        try:
            response = self.session.post(
                url,
                json=payload,
                headers=headers,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise EmbeddingError("Embedding provider timed out", retriable=True)
        except requests.exceptions.ConnectionError:
            raise EmbeddingError(f"Cannot connect to embedding provider at {self.base_url}", retriable=True)
        except requests.exceptions.RequestException as e:
            raise EmbeddingError(f"Request failed: {e}", retriable=True)

        if response.status_code != 200:
            error_detail = response.text[:500] if response.text else "No details"
            raise EmbeddingError(
                f"Embedding provider returned {response.status_code}: {error_detail}",
                retriable=response.status_code >= 500
            )

        try:
            return response.json()
        except ValueError:
            raise EmbeddingError("Embedding provider returned invalid JSON")

    def _embed_ollama(self, texts: List[str]) -> List[List[float]]:
        data = self._post(
            f"{self.base_url}/api/embed",
            {"model": self.model, "input": texts}
        )
        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list):
            raise EmbeddingError("No embeddings in response")
        return embeddings

    def _embed_openai(self, texts: List[str]) -> List[List[float]]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        data = self._post(
            f"{self.base_url}/embeddings",
            {"model": self.model, "input": texts},
            headers=headers
        )
        items = data.get("data")
        if not isinstance(items, list):
            raise EmbeddingError("No embeddings in response")

        vectors = []
        for position, item in enumerate(items):
            if item.get("index") != position:
                raise EmbeddingError(
                    f"Embedding out of order: expected index {position}, got {item.get('index')}"
                )
            vectors.append(item.get("embedding"))
        return vectors

    @staticmethod
    def to_storage_format(vector: List[float]) -> str:
        """Format a vector as a pgvector literal with 6-decimal precision."""
        return "[" + ",".join(f"{value:.6f}" for value in vector) + "]"
