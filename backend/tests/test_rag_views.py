"""
Tests for the RAG endpoints with the retrieval engine and synthesizer mocked.
"""
import json
import uuid

import pytest
from unittest.mock import MagicMock, patch

from apps.core.errors import ForbiddenError, NotFoundError, ValidationError
from apps.rag.chat import ChatResponse
from apps.rag.llm_client import LLMError
from apps.rag.retrieval import SearchHit, SearchPage


def make_hit(chunk_id=1, index=0, similarity=0.912345):
    return SearchHit(
        chunk_id=chunk_id,
        document_id='6f1c0d6e-0000-4000-8000-000000000001',
        chunk_index=index,
        content=f"chunk {index}",
        token_count=2,
        filename='handbook.pdf',
        similarity=similarity,
    )


def post_json(client, url, payload, **extra):
    return client.post(url, data=json.dumps(payload), content_type='application/json', **extra)


@pytest.fixture
def engine():
    mock_engine = MagicMock()
    with patch('apps.rag.views.get_retrieval_engine', return_value=mock_engine):
        yield mock_engine


@pytest.fixture
def synthesizer():
    mock_synthesizer = MagicMock()
    with patch('apps.rag.views.get_answer_synthesizer', return_value=mock_synthesizer):
        yield mock_synthesizer


# ============================================================================
# Search
# ============================================================================

@pytest.mark.django_db
class TestSearchView:
    """Tests for POST /api/rag/search."""

    def test_search_success(self, client, user, auth_for, engine):
        """Should pass the token subject as owner and serialize hits."""
        engine.search.return_value = [make_hit(1, 0), make_hit(2, 3, 0.5)]

        response = post_json(
            client, '/api/rag/search', {'query': '  refund   policy ', 'limit': 2},
            **auth_for(user)
        )

        assert response.status_code == 200
        data = response.json()
        assert data['query'] == 'refund policy'
        assert [r['chunkId'] for r in data['results']] == [1, 2]
        assert data['results'][0]['similarity'] == 0.9123
        engine.search.assert_called_once_with('refund policy', user.id, 2)

    def test_default_limit(self, client, user, auth_for, engine):
        engine.search.return_value = []

        post_json(client, '/api/rag/search', {'query': 'refunds'}, **auth_for(user))

        engine.search.assert_called_once_with('refunds', user.id, 5)

    def test_owner_id_in_body_ignored(self, client, user, other_user, auth_for, engine):
        engine.search.return_value = []

        post_json(
            client, '/api/rag/search',
            {'query': 'refunds', 'ownerId': other_user.id, 'userId': other_user.id},
            **auth_for(user)
        )

        assert engine.search.call_args.args[1] == user.id

    @pytest.mark.parametrize('payload,code', [
        ({}, 'INVALID_QUERY'),
        ({'query': '   '}, 'INVALID_QUERY'),
        ({'query': 'x' * 2001}, 'INVALID_QUERY'),
        ({'query': 'refunds', 'limit': 'five'}, 'INVALID_PARAMETER'),
        ({'query': 'refunds', 'limit': True}, 'INVALID_PARAMETER'),
    ])
    def test_bad_request(self, client, user, auth_for, engine, payload, code):
        response = post_json(client, '/api/rag/search', payload, **auth_for(user))

        assert response.status_code == 400
        assert response.json()['code'] == code
        engine.search.assert_not_called()

    def test_limit_out_of_range(self, client, user, auth_for, engine):
        engine.search.side_effect = ValidationError("limit", code='INVALID_LIMIT')

        response = post_json(
            client, '/api/rag/search', {'query': 'refunds', 'limit': 21}, **auth_for(user)
        )

        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_LIMIT'

    def test_invalid_json(self, client, user, auth_for, engine):
        response = client.post(
            '/api/rag/search', data='not json', content_type='application/json',
            **auth_for(user)
        )

        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_JSON'

    def test_requires_token(self, client, engine):
        response = post_json(client, '/api/rag/search', {'query': 'refunds'})

        assert response.status_code == 401
        engine.search.assert_not_called()

    def test_get_not_allowed(self, client, user, auth_for, engine):
        response = client.get('/api/rag/search', **auth_for(user))

        assert response.status_code == 405

    def test_provider_failure_is_502(self, client, user, auth_for, engine):
        """Should report a generic message, not the provider's detail."""
        engine.search.side_effect = LLMError("connection refused to 10.0.0.5")

        response = post_json(client, '/api/rag/search', {'query': 'refunds'}, **auth_for(user))

        assert response.status_code == 502
        assert response.json() == {'error': 'Model service unavailable', 'code': 'UPSTREAM_MODEL'}


@pytest.mark.django_db
class TestPaginatedSearchView:
    """Tests for POST /api/rag/search/paginated."""

    def test_page_response(self, client, user, auth_for, engine):
        engine.search_paginated.return_value = SearchPage(
            items=[make_hit(11, 0)], total_count=11, page=1, size=10
        )

        response = post_json(
            client, '/api/rag/search/paginated', {'query': 'refunds', 'page': 1},
            **auth_for(user)
        )

        data = response.json()
        assert data['totalCount'] == 11
        assert data['totalPages'] == 2
        assert data['page'] == 1
        assert data['size'] == 10
        assert [i['chunkId'] for i in data['items']] == [11]
        engine.search_paginated.assert_called_once_with('refunds', user.id, 1, 10)


@pytest.mark.django_db
class TestDocumentSearchView:
    """Tests for POST /api/rag/documents/<id>/search."""

    def test_forbidden(self, client, user, auth_for, engine):
        engine.search_in_document.side_effect = ForbiddenError("not yours")
        document_id = uuid.uuid4()

        response = post_json(
            client, f'/api/rag/documents/{document_id}/search', {'query': 'refunds'},
            **auth_for(user)
        )

        assert response.status_code == 403

    def test_not_found(self, client, user, auth_for, engine):
        engine.search_in_document.side_effect = NotFoundError("Document not found")

        response = post_json(
            client, f'/api/rag/documents/{uuid.uuid4()}/search', {'query': 'refunds'},
            **auth_for(user)
        )

        assert response.status_code == 404

    def test_success(self, client, user, auth_for, engine):
        document_id = uuid.uuid4()
        engine.search_in_document.return_value = [make_hit()]

        response = post_json(
            client, f'/api/rag/documents/{document_id}/search', {'query': 'refunds'},
            **auth_for(user)
        )

        data = response.json()
        assert data['documentId'] == str(document_id)
        assert len(data['results']) == 1
        engine.search_in_document.assert_called_once_with(document_id, 'refunds', user.id, 5)


# ============================================================================
# Ask
# ============================================================================

@pytest.mark.django_db
class TestAskView:
    """Tests for POST /api/rag/ask."""

    def test_ask_success(self, client, user, auth_for, synthesizer):
        synthesizer.answer.return_value = ChatResponse(
            answer="Refunds take 14 days.", citations=[make_hit()], model='llama3.2'
        )

        response = post_json(
            client, '/api/rag/ask', {'question': 'How long do refunds take?', 'contextSize': 3},
            **auth_for(user)
        )

        assert response.status_code == 200
        data = response.json()
        assert data['question'] == 'How long do refunds take?'
        assert data['answer'] == "Refunds take 14 days."
        assert data['contextChunksUsed'] == 1
        assert data['citations'][0]['filename'] == 'handbook.pdf'
        assert 'content' not in data['citations'][0]
        assert data['model'] == 'llama3.2'
        synthesizer.answer.assert_called_once_with('How long do refunds take?', user.id, 3)

    def test_no_context_answer(self, client, user, auth_for, synthesizer):
        synthesizer.answer.return_value = ChatResponse(
            answer="I don't have enough information in your documents to answer this question.",
            citations=[],
            model=None,
        )

        response = post_json(client, '/api/rag/ask', {'question': 'Anything?'}, **auth_for(user))

        data = response.json()
        assert data['citations'] == []
        assert data['contextChunksUsed'] == 0
        assert data['model'] is None

    def test_question_too_short(self, client, user, auth_for, synthesizer):
        response = post_json(client, '/api/rag/ask', {'question': 'hi'}, **auth_for(user))

        assert response.status_code == 400
        synthesizer.answer.assert_not_called()

    def test_audited_without_question_text(self, client, user, auth_for, synthesizer):
        synthesizer.answer.return_value = ChatResponse(answer="ok", citations=[], model=None)

        with patch('apps.rag.views.audit_rag_query') as mock_audit:
            post_json(client, '/api/rag/ask', {'question': 'secret plans?'}, **auth_for(user))

        kwargs = mock_audit.call_args.kwargs
        assert kwargs['question_length'] == len('secret plans?')
        assert 'secret plans?' not in json.dumps(kwargs, default=str)

    def test_generation_failure(self, client, user, auth_for, synthesizer):
        synthesizer.answer.side_effect = LLMError("model exploded")

        response = post_json(client, '/api/rag/ask', {'question': 'Why?'}, **auth_for(user))

        assert response.status_code == 502
        assert 'exploded' not in response.json()['error']

    def test_document_ask(self, client, user, auth_for, synthesizer):
        document_id = uuid.uuid4()
        synthesizer.answer_in_document.return_value = ChatResponse(
            answer="From the handbook.", citations=[make_hit()], model='llama3.2'
        )

        response = post_json(
            client, f'/api/rag/documents/{document_id}/ask', {'question': 'What is covered?'},
            **auth_for(user)
        )

        data = response.json()
        assert data['documentId'] == str(document_id)
        synthesizer.answer_in_document.assert_called_once_with(
            document_id, 'What is covered?', user.id, 5
        )


# ============================================================================
# Ownership end to end
# ============================================================================

@pytest.mark.django_db
class TestDocumentScopeOwnership:
    """The real engine checks ownership before any provider call."""

    def test_other_users_document_forbidden(self, client, user, other_user, auth_for,
                                            upload_root, fake_embedder):
        from apps.docs.storage import FileStorage
        from apps.indexing.pipeline import IngestionPipeline

        document = IngestionPipeline(
            storage=FileStorage(upload_root), embedder=fake_embedder, defer_embeddings=False
        ).ingest(b"Private notes.", 'private.txt', 'text/plain', user.id).document
        provider = MagicMock()

        with patch('apps.rag.retrieval.EmbeddingClient', return_value=provider):
            response = post_json(
                client, f'/api/rag/documents/{document.id}/search', {'query': 'notes'},
                **auth_for(other_user)
            )

        assert response.status_code == 403
        provider.embed.assert_not_called()
