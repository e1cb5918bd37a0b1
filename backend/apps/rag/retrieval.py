"""
Retrieval service for RAG queries.

Performs owner-scoped vector similarity search over document chunks.
The owner (and, for per-document search, the document) filter is part
of the SQL WHERE clause; results are never filtered after the fact.
Chunks whose embedding is still NULL are not searchable yet.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.conf import settings
from django.db import connection

from apps.core.errors import ValidationError
from apps.docs.access import get_owned_document
from apps.indexing.embedder import EmbeddingClient

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
MAX_TOP_K = 20
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50
MAX_RESULT_OFFSET = 10_000  # deepest row a page may start at


@dataclass
class SearchHit:
    """A chunk matched by a similarity search."""
    chunk_id: int
    document_id: str
    chunk_index: int
    content: str
    token_count: int
    filename: str
    similarity: float  # 1 - cosine distance, higher is more similar

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "chunkId": self.chunk_id,
            "documentId": self.document_id,
            "chunkIndex": self.chunk_index,
            "content": self.content,
            "filename": self.filename,
            "similarity": round(self.similarity, 4),
        }


@dataclass
class SearchPage:
    """One page of search results with the total hit count."""
    items: List[SearchHit]
    total_count: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return (self.total_count + self.size - 1) // self.size

    def to_dict(self) -> dict:
        return {
            "items": [hit.to_dict() for hit in self.items],
            "totalCount": self.total_count,
            "page": self.page,
            "size": self.size,
            "totalPages": self.total_pages,
        }


class ChunkVectorStore:
    """
    Raw SQL access to doc_chunks using pgvector's cosine distance (<=>).
    
    The page query and the count query share the same WHERE clause, so a
    page's items and the total count always describe the same result set.
    """

    SELECT_SQL = """
        SELECT
            c.id,
            c.document_id,
            c.chunk_index,
            c.content,
            c.token_count,
            d.filename,
            1 - (c.embedding <=> %s::vector) AS similarity
        FROM doc_chunks c
        INNER JOIN documents d ON c.document_id = d.id
        {where}
        ORDER BY c.embedding <=> %s::vector, c.id
        LIMIT %s OFFSET %s
    """

    COUNT_SQL = """
        SELECT COUNT(*)
        FROM doc_chunks c
        INNER JOIN documents d ON c.document_id = d.id
        {where}
    """

    @staticmethod
    def _where(owner_id: int, document_id: Optional[str]) -> Tuple[str, list]:
        clauses = ["d.owner_id = %s", "c.embedding IS NOT NULL"]
        params: list = [owner_id]
        if document_id is not None:
            clauses.append("c.document_id = %s")
            params.append(str(document_id))
        return "WHERE " + " AND ".join(clauses), params

    def fetch(
        self,
        vector_literal: str,
        owner_id: int,
        limit: int,
        offset: int = 0,
        document_id: Optional[str] = None,
    ) -> List[SearchHit]:
        where, where_params = self._where(owner_id, document_id)
        sql = self.SELECT_SQL.format(where=where)
        params = [vector_literal, *where_params, vector_literal, limit, offset]

        with connection.cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()

        return [
            SearchHit(
                chunk_id=chunk_id,
                document_id=str(doc_id),
                chunk_index=chunk_index,
                content=content,
                token_count=token_count,
                filename=filename,
                similarity=float(similarity),
            )
            for chunk_id, doc_id, chunk_index, content, token_count, filename, similarity in rows
        ]

    def count(self, owner_id: int, document_id: Optional[str] = None) -> int:
        where, params = self._where(owner_id, document_id)

        with connection.cursor() as cursor:
            cursor.execute(self.COUNT_SQL.format(where=where), params)
            row = cursor.fetchone()

        return int(row[0]) if row else 0


class RetrievalEngine:
    """
    Owner-scoped similarity search.
    
    Every call embeds the query afresh; nothing is cached.
    """

    def __init__(
        self,
        embedder: Optional[EmbeddingClient] = None,
        store: Optional[ChunkVectorStore] = None,
    ):
        self.embedder = embedder or EmbeddingClient()
        self.store = store or ChunkVectorStore()

    @staticmethod
    def _check_limit(limit: int) -> None:
        max_top_k = getattr(settings, 'MAX_TOP_K', MAX_TOP_K)
        if not isinstance(limit, int) or isinstance(limit, bool) or not 1 <= limit <= max_top_k:
            raise ValidationError(
                f"limit must be an integer between 1 and {max_top_k}",
                code='INVALID_LIMIT'
            )

    def _embed(self, query_text: str) -> str:
        vector = self.embedder.embed(query_text)
        return self.embedder.to_storage_format(vector)

    def search(self, query_text: str, owner_id: int, limit: int = DEFAULT_TOP_K) -> List[SearchHit]:
        """
        Return the `limit` chunks most similar to the query among the
        owner's documents, best first.
        """
        self._check_limit(limit)
        hits = self.store.fetch(self._embed(query_text), owner_id, limit)
        logger.info(f"Search for user {owner_id}: {len(hits)} hits (limit={limit})")
        return hits

    def search_in_document(
        self,
        document_id,
        query_text: str,
        owner_id: int,
        limit: int = DEFAULT_TOP_K,
    ) -> List[SearchHit]:
        """
        Search a single document.
        
        Raises:
            NotFoundError: Unknown document
            ForbiddenError: The document belongs to another user
        """
        document = get_owned_document(document_id, owner_id)
        self._check_limit(limit)
        hits = self.store.fetch(
            self._embed(query_text), owner_id, limit, document_id=str(document.id)
        )
        logger.info(
            f"Search in document {document.id} for user {owner_id}: {len(hits)} hits"
        )
        return hits

    def search_paginated(
        self,
        query_text: str,
        owner_id: int,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> SearchPage:
        """
        Return page `page` (0-based) of `size` hits, plus the total count.
        
        Concatenating pages 0..k of an unchanged corpus yields the same
        sequence as one query of the combined size.
        """
        if not isinstance(page, int) or isinstance(page, bool) or page < 0:
            raise ValidationError("page must be a non-negative integer", code='INVALID_PAGE')
        max_page_size = getattr(settings, 'MAX_PAGE_SIZE', MAX_PAGE_SIZE)
        if not isinstance(size, int) or isinstance(size, bool) or not 1 <= size <= max_page_size:
            raise ValidationError(
                f"size must be an integer between 1 and {max_page_size}",
                code='INVALID_PAGE_SIZE'
            )
        max_offset = getattr(settings, 'MAX_RESULT_OFFSET', MAX_RESULT_OFFSET)
        if page * size > max_offset:
            raise ValidationError(
                f"page * size must not exceed {max_offset}",
                code='INVALID_PAGE'
            )

        vector_literal = self._embed(query_text)
        items = self.store.fetch(vector_literal, owner_id, size, offset=page * size)
        total = self.store.count(owner_id)

        logger.info(
            f"Paginated search for user {owner_id}: page={page} size={size} "
            f"items={len(items)} total={total}"
        )
        return SearchPage(items=items, total_count=total, page=page, size=size)
