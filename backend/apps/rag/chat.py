"""
Answer synthesis for RAG.

Retrieves the owner's most relevant chunks, assembles them into a
bounded context block and asks the generation provider for an answer
grounded only in that context. One provider call per question; when
nothing is retrieved the provider is not called at all.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.conf import settings

from apps.core.errors import ValidationError
from apps.rag.llm_client import BaseLLMClient, LLMMessage, get_llm_client
from apps.rag.retrieval import RetrievalEngine, SearchHit

logger = logging.getLogger(__name__)

# Default chat parameters
DEFAULT_TEMPERATURE = 0.2  # Low for factuality
DEFAULT_MAX_TOKENS = 500

DEFAULT_CONTEXT_SIZE = 5
MAX_CONTEXT_SIZE = 10
MAX_CONTEXT_CHARS = 12000

# Returned verbatim when retrieval finds nothing
NO_CONTEXT_ANSWER = "I don't have enough information in your documents to answer this question."

PROMPT_TEMPLATE = """You are a helpful AI assistant that answers questions based on the provided context.
Use ONLY the information from the context below to answer the question.
If the context doesn't contain enough information to answer, say so honestly.
Be concise but thorough. Use a professional, friendly tone.

CONTEXT:
{context}

QUESTION:
{question}

ANSWER:
"""


@dataclass
class ChatResponse:
    """Response from the answer synthesizer."""
    answer: str
    citations: List[SearchHit]
    model: Optional[str]  # None when no provider was called

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "answer": self.answer,
            "contextChunksUsed": len(self.citations),
            "citations": [
                {
                    "chunkId": hit.chunk_id,
                    "documentId": hit.document_id,
                    "chunkIndex": hit.chunk_index,
                    "filename": hit.filename,
                    "similarity": round(hit.similarity, 4),
                }
                for hit in self.citations
            ],
            "model": self.model,
        }


def format_context_entry(hit: SearchHit, content: Optional[str] = None) -> str:
    return f"Document: {hit.filename}\nContent: {hit.content if content is None else content}\n\n"


def build_context_block(
    hits: List[SearchHit],
    max_chars: int = MAX_CONTEXT_CHARS,
) -> Tuple[str, List[SearchHit]]:
    """
    Assemble ranked hits into a context block of at most max_chars.
    
    Hits are kept in rank order. A hit that would overflow the budget is
    truncated if it is the first one, otherwise it and every later hit
    are dropped.
    
    Returns:
        (context text, hits actually included)
    """
    parts: List[str] = []
    included: List[SearchHit] = []
    used = 0

    for hit in hits:
        entry = format_context_entry(hit)
        if used + len(entry) > max_chars:
            if not included:
                overhead = len(format_context_entry(hit, content=''))
                room = max_chars - overhead
                if room > 0:
                    parts.append(format_context_entry(hit, content=hit.content[:room]))
                    included.append(hit)
            break
        parts.append(entry)
        included.append(hit)
        used += len(entry)

    return "".join(parts), included


def build_prompt(question: str, context: str) -> str:
    """Render the fixed RAG template."""
    return PROMPT_TEMPLATE.format(context=context, question=question)


class AnswerSynthesizer:
    """
    Answers questions from the owner's documents.
    
    Both entry points share _synthesize, so the per-document variant can
    only differ in which hits it retrieves.
    """

    def __init__(
        self,
        engine: Optional[RetrievalEngine] = None,
        llm_client: Optional[BaseLLMClient] = None,
        max_context_chars: Optional[int] = None,
    ):
        self.engine = engine or RetrievalEngine()
        self._llm_client = llm_client
        self.max_context_chars = max_context_chars or getattr(
            settings, 'MAX_CONTEXT_CHARS', MAX_CONTEXT_CHARS
        )

    @property
    def llm_client(self) -> BaseLLMClient:
        # Resolved lazily: the no-context path never needs a provider
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    @staticmethod
    def _check_context_size(context_size: int) -> None:
        if (
            not isinstance(context_size, int)
            or isinstance(context_size, bool)
            or not 1 <= context_size <= MAX_CONTEXT_SIZE
        ):
            raise ValidationError(
                f"contextSize must be an integer between 1 and {MAX_CONTEXT_SIZE}",
                code='INVALID_CONTEXT_SIZE'
            )

    def answer(
        self,
        question: str,
        owner_id: int,
        context_size: int = DEFAULT_CONTEXT_SIZE,
    ) -> ChatResponse:
        """Answer from all of the owner's documents."""
        self._check_context_size(context_size)
        hits = self.engine.search(question, owner_id, context_size)
        return self._synthesize(question, hits)

    def answer_in_document(
        self,
        document_id,
        question: str,
        owner_id: int,
        context_size: int = DEFAULT_CONTEXT_SIZE,
    ) -> ChatResponse:
        """
        Answer from a single document.
        
        Raises:
            NotFoundError: Unknown document
            ForbiddenError: The document belongs to another user
        """
        self._check_context_size(context_size)
        hits = self.engine.search_in_document(document_id, question, owner_id, context_size)
        return self._synthesize(question, hits)

    def _synthesize(self, question: str, hits: List[SearchHit]) -> ChatResponse:
        if not hits:
            logger.info("No context available, returning default response")
            return ChatResponse(answer=NO_CONTEXT_ANSWER, citations=[], model=None)

        context, included = build_context_block(hits, self.max_context_chars)
        if len(included) < len(hits):
            logger.info(f"Context budget kept {len(included)} of {len(hits)} chunks")

        prompt = build_prompt(question, context)
        logger.debug(f"Prompt length: {len(prompt)} chars")

        response = self.llm_client.chat(
            [LLMMessage(role="user", content=prompt)],
            temperature=DEFAULT_TEMPERATURE,
            max_tokens=DEFAULT_MAX_TOKENS,
        )

        return ChatResponse(
            answer=response.content,
            citations=included,
            model=response.model,
        )
