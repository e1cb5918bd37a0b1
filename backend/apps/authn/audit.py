"""
Audit logging for security-relevant events.

Emits one JSON object per event on the dedicated 'audit' logger.
Events carry ids, sizes and outcomes only; never document content,
questions, passwords or tokens.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Dedicated audit logger
audit_logger = logging.getLogger('audit')


class AuditEvent:
    """Standard audit event types."""
    # Auth events
    AUTH_REGISTERED = 'auth.registered'
    AUTH_LOGIN = 'auth.login'
    AUTH_TOKEN_REJECTED = 'auth.token_rejected'

    # Document events
    DOCUMENT_UPLOADED = 'document.uploaded'
    DOCUMENT_DELETED = 'document.deleted'
    DOCUMENT_ACCESS_DENIED = 'document.access_denied'

    # RAG events
    RAG_QUERY = 'rag.query'


def get_client_ip(request) -> str:
    """Extract client IP from request, handling proxies."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        # First IP in the chain is the client
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def get_request_id(request) -> str:
    """Get or generate a request ID for correlation."""
    request_id = request.META.get('HTTP_X_REQUEST_ID')
    if not request_id:
        request_id = str(uuid.uuid4())[:8]
    return request_id


def log_audit(
    event_type: str,
    user_id: Optional[int] = None,
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Log a structured audit event.
    
    Args:
        event_type: One of AuditEvent constants
        user_id: Authenticated user ID, if any
        request_id: Correlation ID for request tracing
        client_ip: Client IP address
        outcome: 'success' or 'failure'
        metadata: Event-specific data (no PII/secrets)
    """
    event = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event_type': event_type,
        'user_id': user_id,
        'request_id': request_id,
        'client_ip': client_ip,
        'outcome': outcome,
        'metadata': metadata or {}
    }

    audit_logger.info(json.dumps(event, default=str))


def log_audit_from_request(
    request,
    event_type: str,
    outcome: str = 'success',
    user_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
):
    """Log an audit event with request context auto-populated."""
    if user_id is None:
        claims = getattr(request, 'user_claims', None)
        user_id = getattr(claims, 'sub', None)

    log_audit(
        event_type=event_type,
        user_id=user_id,
        request_id=get_request_id(request),
        client_ip=get_client_ip(request),
        outcome=outcome,
        metadata=metadata
    )


# Convenience functions for common events

def audit_registered(request, user_id: int):
    log_audit_from_request(request, AuditEvent.AUTH_REGISTERED, user_id=user_id)


def audit_login(request, user_id: Optional[int], success: bool):
    log_audit_from_request(
        request,
        AuditEvent.AUTH_LOGIN,
        outcome='success' if success else 'failure',
        user_id=user_id
    )


def audit_token_rejected(request, reason: str):
    """Log failed token validation."""
    log_audit_from_request(
        request,
        AuditEvent.AUTH_TOKEN_REJECTED,
        outcome='failure',
        metadata={'reason': reason[:200]}
    )


def audit_document_uploaded(request, document_id: str, size_bytes: int, chunk_count: int):
    """Log successful document upload."""
    log_audit_from_request(
        request,
        AuditEvent.DOCUMENT_UPLOADED,
        metadata={
            'document_id': document_id,
            'size_bytes': size_bytes,
            'chunk_count': chunk_count,
        }
    )


def audit_document_deleted(request, document_id: str):
    log_audit_from_request(
        request,
        AuditEvent.DOCUMENT_DELETED,
        metadata={'document_id': document_id}
    )


def audit_access_denied(document_id: str, requester_id: int, owner_id: int):
    """
    Log an attempt to touch another user's document.
    
    Called from the access controller, which has no request object.
    """
    log_audit(
        AuditEvent.DOCUMENT_ACCESS_DENIED,
        user_id=requester_id,
        outcome='failure',
        metadata={
            'document_id': document_id,
            'owner_id': owner_id,
        }
    )


def audit_rag_query(request, question_length: int, context_size: int, citation_count: int,
                    document_id: Optional[str] = None):
    """Log RAG query (without the actual question text)."""
    log_audit_from_request(
        request,
        AuditEvent.RAG_QUERY,
        metadata={
            'question_length': question_length,
            'context_size': context_size,
            'citation_count': citation_count,
            'document_id': document_id,
        }
    )
