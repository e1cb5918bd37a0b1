"""
LLM Client Abstraction Layer.

Provides a unified interface for generation calls that can switch between:
- Ollama (local inference)
- OpenAI-compatible APIs (OpenAI, Groq, vLLM, LM Studio, ...)

Embeddings are handled separately by apps.indexing.embedder.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

from apps.core.errors import UpstreamModelError

logger = logging.getLogger(__name__)


@dataclass
class LLMMessage:
    """A message in a chat conversation."""
    role: str  # "system", "user", or "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None  # token usage if available


class LLMError(UpstreamModelError):
    """Raised when LLM call fails."""
    default_code = 'GENERATION_FAILED'


class BaseLLMClient(ABC):
    """
    Abstract base class for LLM clients.

    Subclasses build the provider payload and parse its reply; the HTTP
    call and its error mapping are shared.
    """

    provider = 'LLM'
    model: str
    timeout: float

    @property
    def model_name(self) -> str:
        return self.model

    @abstractmethod
    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.2,
        max_tokens: int = 500,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of messages in the conversation
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with the model's response

        Raises:
            LLMError: If the request fails
        """

    def _post(self, url: str, payload: dict, headers: Optional[dict] = None) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded body.

        Timeouts, connection failures and 5xx responses raise a retriable
        LLMError; other failures raise a non-retriable one.
        """
        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"{self.provider} HTTP error: {status}")
            raise LLMError(f"{self.provider} returned HTTP {status}", retriable=status >= 500)
        except httpx.TimeoutException:
            logger.error(f"{self.provider} request timed out after {self.timeout}s")
            raise LLMError(f"{self.provider} timed out", retriable=True)
        except httpx.RequestError as e:
            logger.error(f"{self.provider} connection error: {e}")
            raise LLMError(f"Could not connect to {self.provider}", retriable=True)
        except ValueError:
            raise LLMError(f"Invalid JSON from {self.provider}")

    @staticmethod
    def _serialize(messages: List[LLMMessage]) -> List[Dict[str, str]]:
        return [{"role": msg.role, "content": msg.content} for msg in messages]

    def _response(self, content: Optional[str], usage: Optional[dict] = None) -> LLMResponse:
        if not content:
            raise LLMError(f"Empty response from {self.provider}")
        logger.info(f"{self.provider} response: {len(content)} chars")
        return LLMResponse(content=content, model=self.model, usage=usage)


class OllamaClient(BaseLLMClient):
    """LLM client for Ollama local inference (/api/chat, non-streaming)."""

    provider = 'Ollama'

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')).rstrip('/')
        self.model = model or getattr(settings, 'OLLAMA_CHAT_MODEL', 'llama3.2')
        self.timeout = timeout or getattr(settings, 'OLLAMA_CHAT_TIMEOUT', 600)

    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.2,
        max_tokens: int = 500,
    ) -> LLMResponse:
        logger.info(f"Calling Ollama chat: model={self.model}, temp={temperature}")

        data = self._post(f"{self.base_url}/api/chat", {
            "model": self.model,
            "messages": self._serialize(messages),
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        })

        return self._response((data.get("message") or {}).get("content"))


class OpenAICompatibleClient(BaseLLMClient):
    """
    LLM client for OpenAI-compatible APIs.

    Works with: OpenAI, Azure OpenAI, Groq, Together, local servers, etc.
    """

    provider = 'OpenAI API'

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or getattr(settings, 'OPENAI_API_KEY', '')
        self.base_url = (base_url or getattr(settings, 'OPENAI_BASE_URL', 'https://api.openai.com/v1')).rstrip('/')
        self.model = model or getattr(settings, 'OPENAI_MODEL', 'gpt-4o-mini')
        self.timeout = timeout or getattr(settings, 'OPENAI_TIMEOUT', 120)

        if not self.api_key:
            raise LLMError("OPENAI_API_KEY not configured")

    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.2,
        max_tokens: int = 500,
    ) -> LLMResponse:
        logger.info(f"Calling OpenAI API: model={self.model}, temp={temperature}")

        data = self._post(
            f"{self.base_url}/chat/completions",
            {
                "model": self.model,
                "messages": self._serialize(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

        choices = data.get("choices") or []
        if not choices:
            raise LLMError("No choices in OpenAI response")

        return self._response(
            (choices[0].get("message") or {}).get("content"),
            usage=data.get("usage"),
        )


# =============================================================================
# Client Factory
# =============================================================================

_client_instance: Optional[BaseLLMClient] = None


def get_llm_client() -> BaseLLMClient:
    """
    Get the configured LLM client instance.

    Uses LLM_PROVIDER setting to determine which client to use:
    - "ollama" (default): Local Ollama inference
    - "openai": OpenAI or compatible API
    """
    global _client_instance

    if _client_instance is None:
        provider = getattr(settings, 'LLM_PROVIDER', 'ollama').lower()
        if provider == 'openai':
            logger.info("Using OpenAI-compatible API for LLM inference")
            _client_instance = OpenAICompatibleClient()
        else:
            logger.info("Using Ollama for LLM inference")
            _client_instance = OllamaClient()

    return _client_instance


def reset_llm_client():
    """Reset the cached client instance. Useful for testing."""
    global _client_instance
    _client_instance = None
