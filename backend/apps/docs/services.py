"""
Document queries and lifecycle operations.

All functions take the requester's id explicitly. Document-level
operations go through the access controller first; listings are scoped
by an owner_id filter in the query itself.
"""
import logging
from typing import Dict, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import Count

from apps.core.errors import NotFoundError
from apps.docs.access import get_owned_document
from apps.docs.models import Document
from apps.docs.storage import FileStorage, get_storage
from apps.indexing.extractor import extract_text
from apps.indexing.models import DocumentChunk

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_MAX_CHARS = 5000


def chunk_counts(document_ids: List) -> Dict[str, int]:
    """Map document id -> number of chunks, for the given documents."""
    rows = (
        DocumentChunk.objects.filter(document_id__in=document_ids)
        .values('document_id')
        .annotate(count=Count('id'))
    )
    return {str(row['document_id']): row['count'] for row in rows}


def list_documents(owner_id: int) -> List[Tuple[Document, int]]:
    """The owner's documents, newest first, each with its chunk count."""
    documents = list(Document.objects.filter(owner_id=owner_id).order_by('-created_at'))
    counts = chunk_counts([doc.id for doc in documents])
    return [(doc, counts.get(str(doc.id), 0)) for doc in documents]


def document_stats(owner_id: int) -> dict:
    """Totals over the owner's documents."""
    return {
        'totalDocuments': Document.objects.filter(owner_id=owner_id).count(),
        'totalChunks': DocumentChunk.objects.filter(document__owner_id=owner_id).count(),
    }


def get_document_detail(document_id, requester_id: int) -> Tuple[Document, int]:
    document = get_owned_document(document_id, requester_id)
    count = DocumentChunk.objects.filter(document_id=document.id).count()
    return document, count


def list_chunks(document_id, requester_id: int) -> List[DocumentChunk]:
    """All chunks of a document in chunk_index order."""
    document = get_owned_document(document_id, requester_id)
    return list(
        DocumentChunk.objects.filter(document_id=document.id)
        .order_by('chunk_index')
        .only('id', 'chunk_index', 'content', 'token_count')
    )


def get_chunk(document_id, chunk_index: int, requester_id: int) -> Tuple[Document, DocumentChunk]:
    """One chunk by position (used to open a citation)."""
    document = get_owned_document(document_id, requester_id)
    chunk = DocumentChunk.objects.filter(document_id=document.id, chunk_index=chunk_index).first()
    if chunk is None:
        raise NotFoundError("Chunk not found")
    return document, chunk


def get_content_path(document_id, requester_id: int, storage: Optional[FileStorage] = None):
    """Document row and filesystem path of its original bytes."""
    document = get_owned_document(document_id, requester_id)
    storage = storage or get_storage()
    return document, storage.get_path(document.storage_path)


def preview_text(
    document_id,
    requester_id: int,
    storage: Optional[FileStorage] = None,
    max_chars: Optional[int] = None,
) -> Tuple[Document, dict]:
    """
    Re-extract the document's text for display.
    
    Returns:
        (document, {'text', 'totalCharacters', 'truncated'})
    """
    document = get_owned_document(document_id, requester_id)
    storage = storage or get_storage()
    max_chars = max_chars or getattr(settings, 'PREVIEW_MAX_CHARS', DEFAULT_PREVIEW_MAX_CHARS)

    text = extract_text(storage.read(document.storage_path), document.content_type)

    return document, {
        'text': text[:max_chars],
        'totalCharacters': len(text),
        'truncated': len(text) > max_chars,
    }


def delete_document(document_id, requester_id: int, storage: Optional[FileStorage] = None) -> Document:
    """
    Delete a document, its chunks and its blob.
    
    Rows are removed in one transaction first. A blob that cannot be
    removed afterwards is logged and left behind; the rows are gone
    either way.
    """
    document = get_owned_document(document_id, requester_id)
    storage = storage or get_storage()
    storage_path = document.storage_path

    with transaction.atomic():
        deleted_chunks, _ = DocumentChunk.objects.filter(document_id=document.id).delete()
        Document.objects.filter(id=document.id).delete()

    logger.info(f"Deleted document {document.id} ({deleted_chunks} chunks) for user {requester_id}")

    try:
        storage.delete(storage_path)
    except Exception as e:
        logger.error(f"Orphaned blob {storage_path} after deleting document {document.id}: {e}")

    return document
