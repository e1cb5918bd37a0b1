"""
Tests for owner-scoped retrieval.

The SQL itself is checked against a mocked cursor; engine behaviour
(limits, pagination, access checks) runs against an in-memory store.
"""
import math
import uuid

import pytest
from unittest.mock import MagicMock, patch

from apps.core.errors import ForbiddenError, NotFoundError, ValidationError
from apps.docs.models import Document
from apps.indexing.embedder import EmbeddingClient
from apps.rag.retrieval import ChunkVectorStore, RetrievalEngine, SearchHit, SearchPage


class InMemoryStore:
    """
    Mimics ChunkVectorStore over a list of rows:
    (chunk_id, document_id, owner_id, vector, content, filename).
    Rows with vector None are not searchable.
    """

    def __init__(self, rows):
        self.rows = rows
        self.fetch_calls = []

    @staticmethod
    def _parse(literal):
        return [float(x) for x in literal.strip('[]').split(',')]

    @staticmethod
    def _cosine(a, b):
        dot = sum(x * y for x, y in zip(a, b))
        return dot / (math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b)))

    def _matching(self, owner_id, document_id):
        return [
            r for r in self.rows
            if r[2] == owner_id and r[3] is not None
            and (document_id is None or r[1] == document_id)
        ]

    def fetch(self, vector_literal, owner_id, limit, offset=0, document_id=None):
        self.fetch_calls.append((owner_id, limit, offset, document_id))
        query = self._parse(vector_literal)
        scored = sorted(
            self._matching(owner_id, document_id),
            key=lambda r: (-round(self._cosine(r[3], query), 6), r[0])
        )
        return [
            SearchHit(
                chunk_id=r[0], document_id=r[1], chunk_index=0, content=r[4],
                token_count=len(r[4]) // 4, filename=r[5],
                similarity=self._cosine(r[3], query),
            )
            for r in scored[offset:offset + limit]
        ]

    def count(self, owner_id, document_id=None):
        return len(self._matching(owner_id, document_id))


class FixedEmbedder:
    """Always embeds to the same query vector."""

    def __init__(self, vector):
        self.vector = vector
        self.calls = 0

    def embed(self, text):
        self.calls += 1
        return self.vector

    to_storage_format = staticmethod(EmbeddingClient.to_storage_format)


@pytest.fixture
def rows():
    # owner 1 has 12 searchable chunks and one pending; owner 2 has 3
    data = []
    for i in range(12):
        data.append((i + 1, 'doc-a' if i < 6 else 'doc-b', 1, [1.0, i / 10.0, 0.0], f"chunk {i}", 'a.txt'))
    data.append((13, 'doc-a', 1, None, "pending", 'a.txt'))
    for i in range(3):
        data.append((100 + i, 'doc-x', 2, [1.0, 0.0, 0.0], f"secret {i}", 'x.txt'))
    return data


@pytest.fixture
def engine(rows):
    return RetrievalEngine(embedder=FixedEmbedder([1.0, 0.0, 0.0]), store=InMemoryStore(rows))


# ============================================================================
# search
# ============================================================================

class TestSearch:
    """Tests for RetrievalEngine.search."""

    def test_results_ordered_by_similarity(self, engine):
        hits = engine.search("query", owner_id=1, limit=5)

        assert [h.chunk_id for h in hits] == [1, 2, 3, 4, 5]
        sims = [h.similarity for h in hits]
        assert sims == sorted(sims, reverse=True)

    def test_never_returns_other_owners_chunks(self, engine):
        hits = engine.search("query", owner_id=1, limit=20)

        assert all(not h.content.startswith("secret") for h in hits)
        assert len(hits) == 12  # pending chunk excluded

    def test_other_owner_sees_only_own(self, engine):
        hits = engine.search("query", owner_id=2, limit=20)
        assert {h.document_id for h in hits} == {'doc-x'}

    def test_owner_without_documents_gets_empty(self, engine):
        assert engine.search("query", owner_id=99, limit=5) == []

    def test_identical_queries_identical_results(self, engine):
        first = engine.search("query", owner_id=1, limit=10)
        second = engine.search("query", owner_id=1, limit=10)
        assert first == second

    def test_each_call_reembeds(self, engine):
        engine.search("query", owner_id=1, limit=1)
        engine.search("query", owner_id=1, limit=1)
        assert engine.embedder.calls == 2

    @pytest.mark.parametrize("limit", [0, -1, 21, "5", 2.5, True])
    def test_invalid_limit_rejected(self, engine, limit):
        with pytest.raises(ValidationError):
            engine.search("query", owner_id=1, limit=limit)
        assert engine.embedder.calls == 0

    @pytest.mark.parametrize("limit", [1, 20])
    def test_limit_bounds_accepted(self, engine, limit):
        assert len(engine.search("query", owner_id=1, limit=limit)) == min(limit, 12)


# ============================================================================
# search_paginated
# ============================================================================

class TestSearchPaginated:
    """Tests for RetrievalEngine.search_paginated."""

    def test_page_fields(self, engine):
        page = engine.search_paginated("query", owner_id=1, page=0, size=5)

        assert isinstance(page, SearchPage)
        assert page.total_count == 12
        assert page.total_pages == 3
        assert len(page.items) == 5
        assert page.to_dict()["totalPages"] == 3

    def test_pages_concatenate_to_single_query(self, engine):
        pages = [engine.search_paginated("query", owner_id=1, page=p, size=4) for p in range(3)]
        concatenated = [h.chunk_id for page in pages for h in page.items]

        single = engine.search("query", owner_id=1, limit=12)

        assert concatenated == [h.chunk_id for h in single]

    def test_total_count_stable_across_pages(self, engine):
        totals = {engine.search_paginated("query", owner_id=1, page=p, size=5).total_count for p in range(4)}
        assert totals == {12}

    def test_page_past_end_is_empty(self, engine):
        page = engine.search_paginated("query", owner_id=1, page=10, size=5)
        assert page.items == []
        assert page.total_count == 12

    def test_total_count_scoped_to_owner(self, engine):
        assert engine.search_paginated("query", owner_id=2, page=0, size=5).total_count == 3

    @pytest.mark.parametrize("page,size", [(-1, 5), (0, 0), (0, 51), (0, -3)])
    def test_invalid_paging_rejected(self, engine, page, size):
        with pytest.raises(ValidationError):
            engine.search_paginated("query", owner_id=1, page=page, size=size)

    def test_max_page_size_accepted(self, engine):
        page = engine.search_paginated("query", owner_id=1, page=0, size=50)
        assert len(page.items) == 12

    def test_huge_page_rejected_before_query(self, engine):
        """Should reject an offset the database cannot represent."""
        with pytest.raises(ValidationError) as exc_info:
            engine.search_paginated("query", owner_id=1, page=10 ** 18, size=50)

        assert exc_info.value.code == 'INVALID_PAGE'
        assert engine.embedder.calls == 0
        assert engine.store.fetch_calls == []

    def test_offset_limit_is_inclusive(self, engine, settings):
        settings.MAX_RESULT_OFFSET = 100

        assert engine.search_paginated("query", owner_id=1, page=20, size=5).items == []
        with pytest.raises(ValidationError):
            engine.search_paginated("query", owner_id=1, page=21, size=5)


# ============================================================================
# search_in_document
# ============================================================================

@pytest.mark.django_db
class TestSearchInDocument:
    """Per-document search runs the access check first."""

    @pytest.fixture
    def document(self, user):
        return Document.objects.create(
            owner_id=user.id, filename='a.txt', content_type='text/plain',
            size_bytes=10, storage_path='a.txt'
        )

    def test_filters_by_document_and_owner(self, user, document):
        store = MagicMock()
        store.fetch.return_value = []
        engine = RetrievalEngine(embedder=FixedEmbedder([1.0, 0.0, 0.0]), store=store)

        engine.search_in_document(document.id, "query", user.id, limit=3)

        args, kwargs = store.fetch.call_args
        assert args[1] == user.id
        assert args[2] == 3
        assert kwargs["document_id"] == str(document.id)

    def test_unknown_document_not_found(self, user):
        engine = RetrievalEngine(embedder=FixedEmbedder([1.0]), store=MagicMock())

        with pytest.raises(NotFoundError):
            engine.search_in_document(uuid.uuid4(), "query", user.id, limit=3)

    def test_other_owner_forbidden(self, other_user, document):
        store = MagicMock()
        engine = RetrievalEngine(embedder=FixedEmbedder([1.0]), store=store)

        with pytest.raises(ForbiddenError):
            engine.search_in_document(document.id, "query", other_user.id, limit=3)
        store.fetch.assert_not_called()


# ============================================================================
# SQL
# ============================================================================

class TestChunkVectorStoreSQL:
    """The owner filter lives in the WHERE clause of both queries."""

    @pytest.fixture
    def cursor(self):
        cursor = MagicMock()
        cursor.fetchall.return_value = [
            (7, uuid.UUID('11111111-1111-1111-1111-111111111111'), 2, "text", 1, "f.pdf", 0.91),
        ]
        cursor.fetchone.return_value = (42,)
        return cursor

    @pytest.fixture
    def connection(self, cursor):
        with patch('apps.rag.retrieval.connection') as mock_connection:
            mock_connection.cursor.return_value.__enter__.return_value = cursor
            yield mock_connection

    def test_fetch_sql_and_params(self, connection, cursor):
        hits = ChunkVectorStore().fetch("[1.0]", owner_id=5, limit=10, offset=20)

        sql, params = cursor.execute.call_args.args
        assert "d.owner_id = %s" in sql
        assert "c.embedding IS NOT NULL" in sql
        assert "1 - (c.embedding <=> %s::vector) AS similarity" in sql
        assert "ORDER BY c.embedding <=> %s::vector, c.id" in sql
        assert "c.document_id = %s" not in sql
        assert params == ["[1.0]", 5, "[1.0]", 10, 20]

        assert hits == [SearchHit(
            chunk_id=7, document_id='11111111-1111-1111-1111-111111111111',
            chunk_index=2, content="text", token_count=1, filename="f.pdf", similarity=0.91
        )]

    def test_fetch_with_document_filter(self, connection, cursor):
        ChunkVectorStore().fetch("[1.0]", owner_id=5, limit=3, document_id="doc-1")

        sql, params = cursor.execute.call_args.args
        assert "c.document_id = %s" in sql
        assert params == ["[1.0]", 5, "doc-1", "[1.0]", 3, 0]

    def test_count_uses_same_filter(self, connection, cursor):
        total = ChunkVectorStore().count(owner_id=5)

        sql, params = cursor.execute.call_args.args
        assert "COUNT(*)" in sql
        assert "d.owner_id = %s" in sql
        assert "c.embedding IS NOT NULL" in sql
        assert params == [5]
        assert total == 42
