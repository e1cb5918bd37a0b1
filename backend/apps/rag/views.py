"""
RAG API views.

Provides endpoints for:
- Similarity search over the caller's documents (plain, paginated, per document)
- Ask endpoints (retrieval + LLM answer)

The caller's identity always comes from the verified token
(request.user_claims.sub) and is passed explicitly into the core.
"""
import logging

from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from apps.authn.middleware import auth_required
from apps.authn.audit import audit_rag_query
from apps.core.responses import handles_service_errors
from apps.rag.chat import AnswerSynthesizer
from apps.rag.inputs import (
    parse_ask_request,
    parse_paginated_search_request,
    parse_search_request,
)
from apps.rag.retrieval import RetrievalEngine

logger = logging.getLogger(__name__)


def get_retrieval_engine() -> RetrievalEngine:
    return RetrievalEngine()


def get_answer_synthesizer() -> AnswerSynthesizer:
    return AnswerSynthesizer(engine=get_retrieval_engine())


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
@method_decorator(handles_service_errors, name='dispatch')
class SearchView(View):
    """
    POST /api/rag/search
    
    Request body:
        {
            "query": "What is the main topic?",
            "limit": 5  // optional, 1..20
        }
    
    Response:
        {
            "query": "What is the main topic?",
            "results": [
                {
                    "chunkId": 42,
                    "chunkIndex": 3,
                    "content": "...",
                    "filename": "file.pdf",
                    "documentId": "...",
                    "similarity": 0.8123
                }
            ]
        }
    """
    
    def post(self, request):
        params = parse_search_request(request.body)
        hits = get_retrieval_engine().search(
            params.query, request.user_claims.sub, params.limit
        )
        return JsonResponse({
            "query": params.query,
            "results": [hit.to_dict() for hit in hits],
        })


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
@method_decorator(handles_service_errors, name='dispatch')
class PaginatedSearchView(View):
    """
    POST /api/rag/search/paginated
    
    Request body: {"query": "...", "page": 0, "size": 10}
    Response: {"items": [...], "totalCount": 37, "page": 0, "size": 10, "totalPages": 4}
    """
    
    def post(self, request):
        params = parse_paginated_search_request(request.body)
        page = get_retrieval_engine().search_paginated(
            params.query, request.user_claims.sub, params.page, params.size
        )
        return JsonResponse(page.to_dict())


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
@method_decorator(handles_service_errors, name='dispatch')
class DocumentSearchView(View):
    """
    POST /api/rag/documents/<document_id>/search
    
    Same body and response as /api/rag/search, restricted to one document.
    """
    
    def post(self, request, document_id):
        params = parse_search_request(request.body)
        hits = get_retrieval_engine().search_in_document(
            document_id, params.query, request.user_claims.sub, params.limit
        )
        return JsonResponse({
            "query": params.query,
            "documentId": str(document_id),
            "results": [hit.to_dict() for hit in hits],
        })


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
@method_decorator(handles_service_errors, name='dispatch')
class AskView(View):
    """
    POST /api/rag/ask
    
    Full RAG pipeline: retrieve + LLM generation.
    
    Request body:
        {
            "question": "What is the main topic?",
            "contextSize": 5  // optional, 1..10
        }
    
    Response:
        {
            "question": "What is the main topic?",
            "answer": "The documents describe...",
            "contextChunksUsed": 3,
            "citations": [
                {"chunkId": 42, "documentId": "...", "chunkIndex": 3,
                 "filename": "file.pdf", "similarity": 0.8123}
            ],
            "model": "llama3.2"
        }
    """
    
    def post(self, request):
        params = parse_ask_request(request.body)
        chat_response = get_answer_synthesizer().answer(
            params.question, request.user_claims.sub, params.context_size
        )
        
        audit_rag_query(
            request,
            question_length=len(params.question),
            context_size=params.context_size,
            citation_count=len(chat_response.citations)
        )
        
        return JsonResponse({"question": params.question, **chat_response.to_dict()})


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
@method_decorator(handles_service_errors, name='dispatch')
class DocumentAskView(View):
    """
    POST /api/rag/documents/<document_id>/ask
    
    Same body and response as /api/rag/ask, answered from one document.
    """
    
    def post(self, request, document_id):
        params = parse_ask_request(request.body)
        chat_response = get_answer_synthesizer().answer_in_document(
            document_id, params.question, request.user_claims.sub, params.context_size
        )
        
        audit_rag_query(
            request,
            question_length=len(params.question),
            context_size=params.context_size,
            citation_count=len(chat_response.citations),
            document_id=str(document_id)
        )
        
        return JsonResponse({
            "question": params.question,
            "documentId": str(document_id),
            **chat_response.to_dict()
        })
