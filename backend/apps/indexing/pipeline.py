"""
Ingestion pipeline - turns one upload into a Document and its chunks.

Stages:
1. VALIDATING: Reject empty, oversized or unsupported files
2. STORING: Write the bytes to the blob store
3. PARSING: Extract text
4. CHUNKING: Split text into overlapping segments
5. EMBEDDING: Embed all chunks in one provider call (skipped when deferred)
6. PERSISTING: Create the Document and all chunk rows in one transaction

Any failure after STORING deletes the stored blob before the error
propagates, so a failed upload leaves neither rows nor bytes behind.
"""
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from django.conf import settings
from django.db import transaction

from apps.core.errors import ValidationError
from apps.docs.models import Document
from apps.docs.storage import FileStorage, get_storage
from apps.indexing.chunker import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    TextChunk,
    chunk_text,
)
from apps.indexing.embedder import EmbeddingClient, EmbeddingError
from apps.indexing.extractor import extract_text, get_extension, resolve_content_type
from apps.indexing.models import DocumentChunk
from apps.indexing.retry import EMBEDDING_RETRY_POLICY, RetryExhausted, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_SIZE = 10 * 1024 * 1024
DEFAULT_ALLOWED_CONTENT_TYPES = [
    'application/pdf',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'text/plain',
]


class IngestionStage(str, Enum):
    """Current stage of an ingestion."""
    VALIDATING = 'VALIDATING'
    STORING = 'STORING'
    PARSING = 'PARSING'
    CHUNKING = 'CHUNKING'
    EMBEDDING = 'EMBEDDING'
    PERSISTING = 'PERSISTING'
    COMPLETE = 'COMPLETE'
    FAILED = 'FAILED'


@dataclass
class IngestResult:
    """Outcome of a successful ingestion."""
    document: Document
    chunk_count: int
    embedded: bool


class IngestionPipeline:
    """
    Orchestrates validate -> store -> parse -> chunk -> embed -> persist
    for a single upload, as one logical unit of work.
    """

    def __init__(
        self,
        storage: Optional[FileStorage] = None,
        embedder: Optional[EmbeddingClient] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        defer_embeddings: Optional[bool] = None,
    ):
        self.storage = storage or get_storage()
        self.embedder = embedder or EmbeddingClient()
        self.chunk_size = chunk_size or getattr(settings, 'CHUNK_SIZE', DEFAULT_CHUNK_SIZE)
        self.chunk_overlap = (
            chunk_overlap if chunk_overlap is not None
            else getattr(settings, 'CHUNK_OVERLAP', DEFAULT_CHUNK_OVERLAP)
        )
        self.defer_embeddings = (
            defer_embeddings if defer_embeddings is not None
            else getattr(settings, 'DEFER_EMBEDDINGS', False)
        )
        self.stage = IngestionStage.VALIDATING

    def _enter(self, stage: IngestionStage, document_id: Optional[str] = None) -> None:
        logger.info(f"Ingestion {document_id or '-'}: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def validate(self, data: bytes, filename: str, content_type: Optional[str]) -> str:
        """
        Check size and type before anything is written.
        
        Returns:
            The resolved content type
            
        Raises:
            ValidationError: Empty, oversized or unsupported file
        """
        if not data:
            raise ValidationError("File is empty", code='EMPTY_FILE')

        max_size = getattr(settings, 'MAX_UPLOAD_SIZE', DEFAULT_MAX_UPLOAD_SIZE)
        if len(data) > max_size:
            max_mb = max_size // (1024 * 1024)
            raise ValidationError(
                f"File too large. Maximum size is {max_mb}MB",
                code='FILE_TOO_LARGE'
            )

        resolved = resolve_content_type(content_type, filename)
        allowed = getattr(settings, 'ALLOWED_CONTENT_TYPES', DEFAULT_ALLOWED_CONTENT_TYPES)
        if resolved not in allowed:
            raise ValidationError(
                "Invalid file type. Allowed: PDF, DOCX, TXT",
                code='INVALID_FILE_TYPE'
            )

        return resolved

    def ingest(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str],
        owner_id: int,
    ) -> IngestResult:
        """
        Ingest one upload for owner_id.
        
        Args:
            data: Raw file content
            filename: Original filename (also used to resolve generic types)
            content_type: Declared MIME type
            owner_id: Authenticated uploader
            
        Returns:
            IngestResult with the persisted Document
            
        Raises:
            ValidationError: Bad file or no extractable text
            UpstreamModelError: Embedding provider failure
            StorageError: Blob write failure
        """
        self.stage = IngestionStage.VALIDATING
        logger.info(
            f"Ingesting {filename} ({content_type}, {len(data) if data else 0} bytes) "
            f"for user {owner_id}"
        )

        try:
            resolved_type = self.validate(data, filename, content_type)
        except BaseException:
            self._enter(IngestionStage.FAILED)
            raise

        document_id = uuid.uuid4()
        doc_id = str(document_id)

        self._enter(IngestionStage.STORING, doc_id)
        try:
            storage_path = self.storage.save(f"{doc_id}{get_extension(filename)}", data)
        except BaseException:
            self._enter(IngestionStage.FAILED, doc_id)
            raise

        try:
            result = self._process(
                document_id, data, filename, resolved_type, owner_id, storage_path
            )
        except BaseException as e:
            logger.warning(f"Ingestion {doc_id} failed in {self.stage.value}: {e!r}")
            self._enter(IngestionStage.FAILED, doc_id)
            self._compensate(storage_path)
            raise

        self._enter(IngestionStage.COMPLETE, doc_id)
        return result

    def _process(
        self,
        document_id: uuid.UUID,
        data: bytes,
        filename: str,
        content_type: str,
        owner_id: int,
        storage_path: str,
    ) -> IngestResult:
        doc_id = str(document_id)

        self._enter(IngestionStage.PARSING, doc_id)
        text = extract_text(data, content_type)
        if not text or not text.strip():
            raise ValidationError("No text could be extracted from the document", code='NO_TEXT')
        logger.info(f"Extracted {len(text)} characters from {filename}")

        self._enter(IngestionStage.CHUNKING, doc_id)
        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        if not chunks:
            raise ValidationError("No text could be extracted from the document", code='NO_TEXT')
        logger.info(f"Created {len(chunks)} chunks from {filename}")

        vectors: Optional[List[List[float]]] = None
        if self.defer_embeddings:
            logger.info(f"Ingestion {doc_id}: embeddings deferred")
        else:
            self._enter(IngestionStage.EMBEDDING, doc_id)
            vectors = self.embedder.embed_batch([chunk.text for chunk in chunks])

        self._enter(IngestionStage.PERSISTING, doc_id)
        document = self._persist(
            document_id, filename, content_type, len(data), storage_path, owner_id,
            chunks, vectors
        )

        return IngestResult(
            document=document,
            chunk_count=len(chunks),
            embedded=vectors is not None
        )

    def _persist(
        self,
        document_id: uuid.UUID,
        filename: str,
        content_type: str,
        size_bytes: int,
        storage_path: str,
        owner_id: int,
        chunks: List[TextChunk],
        vectors: Optional[List[List[float]]],
    ) -> Document:
        # All chunk rows or none
        with transaction.atomic():
            document = Document.objects.create(
                id=document_id,
                owner_id=owner_id,
                filename=filename,
                content_type=content_type,
                size_bytes=size_bytes,
                storage_path=storage_path,
            )
            DocumentChunk.objects.bulk_create([
                DocumentChunk(
                    document_id=document.id,
                    chunk_index=chunk.index,
                    content=chunk.text,
                    token_count=chunk.token_count,
                    embedding=vectors[i] if vectors is not None else None,
                )
                for i, chunk in enumerate(chunks)
            ])
        return document

    def _compensate(self, storage_path: str) -> None:
        try:
            self.storage.delete(storage_path)
            logger.info(f"Removed blob {storage_path} after failed ingestion")
        except Exception as e:
            # The original error is what the caller needs to see
            logger.error(f"Failed to remove blob {storage_path} after failed ingestion: {e}")


def populate_embeddings(
    document_id=None,
    batch_size: int = 32,
    embedder: Optional[EmbeddingClient] = None,
    sleep=None,
) -> int:
    """
    Fill in NULL embeddings, batch by batch.
    
    Each batch is embedded with bounded exponential backoff. Rows are
    only updated while their embedding is still NULL, so the function is
    idempotent and safe to rerun after a partial failure.
    
    Args:
        document_id: Restrict to one document (all documents if None)
        batch_size: Chunks per provider call
        embedder: Embedding client override
        sleep: Sleep function override for the retry backoff
        
    Returns:
        Number of chunks that received an embedding
        
    Raises:
        EmbeddingError: A batch failed permanently
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    embedder = embedder or EmbeddingClient()
    retry_kwargs = {'sleep': sleep} if sleep else {}

    pending = DocumentChunk.objects.filter(embedding__isnull=True)
    if document_id is not None:
        pending = pending.filter(document_id=document_id)

    populated = 0
    last_id = 0

    while True:
        batch = list(
            pending.filter(id__gt=last_id)
            .order_by('id')
            .values_list('id', 'content')[:batch_size]
        )
        if not batch:
            break

        last_id = batch[-1][0]
        texts = [content for _, content in batch]

        try:
            vectors = retry_with_backoff(
                func=lambda: embedder.embed_batch(texts),
                policy=EMBEDDING_RETRY_POLICY,
                exceptions=(EmbeddingError,),
                on_retry=lambda attempt, err, backoff: logger.warning(
                    f"Embedding retry {attempt + 1} for batch ending at chunk {last_id}: {err}"
                ),
                **retry_kwargs
            )
        except RetryExhausted as e:
            raise EmbeddingError(
                f"Failed to embed batch ending at chunk {last_id} after "
                f"{e.attempts} attempts: {e.last_exception}",
                retriable=True
            )

        for (chunk_id, _), vector in zip(batch, vectors):
            populated += DocumentChunk.objects.filter(
                id=chunk_id, embedding__isnull=True
            ).update(embedding=vector)

        logger.info(f"Embedded {len(batch)} chunks (through id {last_id})")

    logger.info(f"Populated {populated} embeddings")
    return populated
