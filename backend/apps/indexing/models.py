"""
Document chunk model for storing text chunks with embeddings.
"""
from django.db import models
from pgvector.django import VectorField

from apps.docs.models import Document

EMBEDDING_DIMENSIONS = 768


class DocumentChunk(models.Model):
    """
    A text chunk from a document with its embedding vector.
    
    Chunks are created in one transaction with their document and are
    never modified afterwards, except that a NULL embedding (deferred
    embedding mode) may be filled in once by the embed_chunks command.
    The chunk carries no owner column: its owner is the document's.
    """
    id = models.BigAutoField(primary_key=True)
    
    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='chunks',
        help_text="The source document"
    )
    
    # Position within the document, contiguous from 0
    chunk_index = models.PositiveIntegerField(
        help_text="Index of this chunk within the document (0-based)"
    )
    
    content = models.TextField(
        help_text="The text content of this chunk"
    )
    
    token_count = models.PositiveIntegerField(
        default=0,
        help_text="Estimated token count (characters / 4)"
    )
    
    embedding = VectorField(
        dimensions=EMBEDDING_DIMENSIONS,
        null=True,
        blank=True,
        help_text="Vector embedding, NULL until populated"
    )
    
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'doc_chunks'
        ordering = ['document', 'chunk_index']
        constraints = [
            models.UniqueConstraint(
                fields=['document', 'chunk_index'],
                name='unique_document_chunk'
            )
        ]

    def __str__(self):
        preview = self.content[:50] + '...' if len(self.content) > 50 else self.content
        return f"Chunk {self.chunk_index} of document {self.document_id}: {preview}"
