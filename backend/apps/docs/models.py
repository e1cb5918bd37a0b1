"""
Document model for DocuInsight.

A Document is the metadata record of one uploaded file. It is created
once, at the end of a successful ingestion, and is only ever deleted.
"""
import uuid
from django.db import models

from apps.authn.models import User


class Document(models.Model):
    """
    A file uploaded by a user.
    
    The bytes live in the blob store under `storage_path`; the text
    derived from them lives in DocumentChunk rows. Ownership is the
    `owner_id` foreign key value and is checked on every access.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    
    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='documents',
        help_text="The user who uploaded the document"
    )
    
    # File metadata
    filename = models.CharField(
        max_length=255,
        help_text="Original filename"
    )
    content_type = models.CharField(
        max_length=100,
        help_text="MIME type of the file"
    )
    size_bytes = models.PositiveIntegerField(
        help_text="File size in bytes"
    )
    
    # Storage location
    storage_path = models.CharField(
        max_length=500,
        help_text="Blob key (relative to upload root)"
    )
    
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'documents'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner', 'created_at'], name='documents_owner_created_idx'),
        ]

    def __str__(self):
        return f"{self.filename} ({self.id})"
