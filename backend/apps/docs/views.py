"""
Document upload and management views.

Provides endpoints for:
- POST /api/docs/upload - Upload and ingest a new document
- GET /api/docs - List the caller's documents
- GET /api/docs/stats - Document and chunk totals
- GET|DELETE /api/docs/<id> - Document details / delete
- GET /api/docs/<id>/chunks[/<n>] - Chunk listing / single chunk
- GET /api/docs/<id>/content - Original file
- GET /api/docs/<id>/preview - Extracted text
"""
import logging

from django.http import FileResponse, HttpResponse, JsonResponse
from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.authn.middleware import auth_required
from apps.authn.audit import audit_document_deleted, audit_document_uploaded
from apps.core.errors import ValidationError
from apps.core.responses import handles_service_errors
from apps.indexing.pipeline import IngestionPipeline
from . import services
from .models import Document

logger = logging.getLogger(__name__)


def serialize_document(document: Document, chunk_count: int) -> dict:
    return {
        'id': str(document.id),
        'filename': document.filename,
        'contentType': document.content_type,
        'sizeBytes': document.size_bytes,
        'chunkCount': chunk_count,
        'createdAt': document.created_at.isoformat(),
    }


@csrf_exempt
@require_http_methods(["POST"])
@auth_required
@handles_service_errors
def upload_document(request):
    """
    Upload a new document.
    
    POST /api/docs/upload
    
    Accepts multipart/form-data with a 'file' field.
    
    Allowed file types: PDF, DOCX, TXT
    Max size: 10MB (configurable)
    
    Returns (201):
        {
            "documentId": "uuid",
            "filename": "original.pdf",
            "message": "Document uploaded and processed successfully",
            "sizeBytes": 12345,
            "contentType": "application/pdf",
            "chunkCount": 7
        }
    """
    user_id = request.user_claims.sub
    
    if 'file' not in request.FILES:
        raise ValidationError('No file provided', code='MISSING_FILE')
    
    uploaded_file = request.FILES['file']
    
    logger.info(
        f"Upload request: {uploaded_file.name}, {uploaded_file.content_type}, "
        f"{uploaded_file.size} bytes from user {user_id}"
    )
    
    result = IngestionPipeline().ingest(
        data=uploaded_file.read(),
        filename=uploaded_file.name,
        content_type=uploaded_file.content_type,
        owner_id=user_id,
    )
    document = result.document
    
    audit_document_uploaded(
        request,
        document_id=str(document.id),
        size_bytes=document.size_bytes,
        chunk_count=result.chunk_count
    )
    
    return JsonResponse({
        'documentId': str(document.id),
        'filename': document.filename,
        'message': 'Document uploaded and processed successfully',
        'sizeBytes': document.size_bytes,
        'contentType': document.content_type,
        'chunkCount': result.chunk_count,
    }, status=201)


@require_http_methods(["GET"])
@auth_required
def list_documents(request):
    """
    List all documents for the authenticated user.
    
    GET /api/docs
    
    Returns:
        {"documents": [{"id", "filename", "contentType", "sizeBytes",
                        "chunkCount", "createdAt"}, ...]}
    """
    documents = services.list_documents(request.user_claims.sub)
    return JsonResponse({
        'documents': [serialize_document(doc, count) for doc, count in documents]
    })


@require_http_methods(["GET"])
@auth_required
def document_stats(request):
    """GET /api/docs/stats"""
    return JsonResponse(services.document_stats(request.user_claims.sub))


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
@auth_required
@handles_service_errors
def document_detail(request, document_id):
    """
    GET /api/docs/<document_id> - document metadata
    DELETE /api/docs/<document_id> - delete rows and stored file (204)
    """
    user_id = request.user_claims.sub
    
    if request.method == 'DELETE':
        services.delete_document(document_id, user_id)
        audit_document_deleted(request, str(document_id))
        return HttpResponse(status=204)
    
    document, chunk_count = services.get_document_detail(document_id, user_id)
    return JsonResponse(serialize_document(document, chunk_count))


@require_http_methods(["GET"])
@auth_required
@handles_service_errors
def list_chunks(request, document_id):
    """
    GET /api/docs/<document_id>/chunks
    
    Returns:
        {"documentId": "uuid", "chunks": [{"chunkIndex", "content", "tokenCount"}, ...]}
    """
    chunks = services.list_chunks(document_id, request.user_claims.sub)
    return JsonResponse({
        'documentId': str(document_id),
        'chunks': [
            {
                'chunkIndex': chunk.chunk_index,
                'content': chunk.content,
                'tokenCount': chunk.token_count,
            }
            for chunk in chunks
        ],
    })


@require_http_methods(["GET"])
@auth_required
@handles_service_errors
def get_chunk(request, document_id, chunk_index):
    """
    Get a specific chunk from a document.
    
    GET /api/docs/<document_id>/chunks/<chunk_index>
    
    Used for viewing citation sources.
    """
    document, chunk = services.get_chunk(document_id, chunk_index, request.user_claims.sub)
    return JsonResponse({
        'documentId': str(document.id),
        'chunkId': chunk.id,
        'chunkIndex': chunk.chunk_index,
        'content': chunk.content,
        'tokenCount': chunk.token_count,
        'filename': document.filename,
    })


@require_http_methods(["GET"])
@auth_required
@handles_service_errors
def document_content(request, document_id):
    """
    GET /api/docs/<document_id>/content
    
    Streams the original file inline with its stored content type.
    """
    document, path = services.get_content_path(document_id, request.user_claims.sub)
    response = FileResponse(
        open(path, 'rb'),
        content_type=document.content_type,
        as_attachment=False,
        filename=document.filename,
    )
    return response


@require_http_methods(["GET"])
@auth_required
@handles_service_errors
def document_preview(request, document_id):
    """
    GET /api/docs/<document_id>/preview
    
    Returns:
        {"documentId", "filename", "text", "totalCharacters", "truncated"}
    """
    document, preview = services.preview_text(document_id, request.user_claims.sub)
    return JsonResponse({
        'documentId': str(document.id),
        'filename': document.filename,
        **preview,
    })
