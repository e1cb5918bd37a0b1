"""
Document access control.

Every document-level operation goes through get_owned_document (or
assert_owner when the document row is already loaded). Existence is
checked before ownership: an unknown id is NotFound, someone else's
document is Forbidden.
"""
import logging

from apps.authn.audit import audit_access_denied
from apps.core.errors import ForbiddenError, NotFoundError
from .models import Document

logger = logging.getLogger(__name__)


def assert_owner(document: Document, requester_id: int) -> None:
    """
    Raise ForbiddenError unless requester_id owns the document.
    
    Denials are written to the audit log.
    """
    if document.owner_id != requester_id:
        logger.warning(
            f"Access denied: user {requester_id} on document {document.id} "
            f"(owner {document.owner_id})"
        )
        audit_access_denied(
            document_id=str(document.id),
            requester_id=requester_id,
            owner_id=document.owner_id,
        )
        raise ForbiddenError("You do not have access to this document")


def get_owned_document(document_id, requester_id: int) -> Document:
    """
    Load a document and check that requester_id owns it.
    
    Args:
        document_id: Document UUID (str or uuid.UUID)
        requester_id: Authenticated user id, taken from the verified token
        
    Returns:
        The Document
        
    Raises:
        NotFoundError: No document with this id
        ForbiddenError: The document belongs to another user
    """
    document = Document.objects.filter(id=document_id).first()
    if document is None:
        raise NotFoundError("Document not found")

    assert_owner(document, requester_id)
    return document
