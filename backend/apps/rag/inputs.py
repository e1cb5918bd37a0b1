"""
Request parsing for the RAG endpoints.

Each endpoint body is parsed into a dataclass by an explicit function.
Range checks on limit/page/size/contextSize stay in the core, which
raises ValidationError itself; here we only check shape and types.
"""
import json
import re
from dataclasses import dataclass
from typing import Any

from apps.core.errors import ValidationError
from apps.rag.chat import DEFAULT_CONTEXT_SIZE
from apps.rag.retrieval import DEFAULT_PAGE_SIZE, DEFAULT_TOP_K

MAX_TEXT_LENGTH = 2000
MIN_QUESTION_LENGTH = 3


@dataclass
class SearchRequest:
    query: str
    limit: int


@dataclass
class PaginatedSearchRequest:
    query: str
    page: int
    size: int


@dataclass
class AskRequest:
    question: str
    context_size: int


def normalize_query(text: Any, field: str = 'query', min_length: int = 1) -> str:
    """
    Normalize user text for embedding.
    
    - Strip leading/trailing whitespace
    - Collapse multiple whitespace to single space
    - Enforce min_length..2000 characters
    
    Raises:
        ValidationError: If the text is missing, too short or too long
    """
    if not isinstance(text, str):
        raise ValidationError(f"{field} must be a string", code='INVALID_QUERY')

    normalized = re.sub(r'\s+', ' ', text.strip())

    if not normalized:
        raise ValidationError(f"{field} cannot be empty", code='INVALID_QUERY')

    if len(normalized) < min_length:
        raise ValidationError(
            f"{field} too short (min {min_length} characters)",
            code='INVALID_QUERY'
        )

    if len(normalized) > MAX_TEXT_LENGTH:
        raise ValidationError(
            f"{field} too long (max {MAX_TEXT_LENGTH} characters)",
            code='INVALID_QUERY'
        )

    return normalized


def parse_json_body(raw: bytes) -> dict:
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON", code='INVALID_JSON')

    if not isinstance(body, dict):
        raise ValidationError("Request body must be an object", code='INVALID_JSON')

    return body


def _int_field(body: dict, name: str, default: int) -> int:
    value = body.get(name, default)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", code='INVALID_PARAMETER')
    return value


def parse_search_request(raw: bytes) -> SearchRequest:
    body = parse_json_body(raw)
    return SearchRequest(
        query=normalize_query(body.get('query'), field='query'),
        limit=_int_field(body, 'limit', DEFAULT_TOP_K),
    )


def parse_paginated_search_request(raw: bytes) -> PaginatedSearchRequest:
    body = parse_json_body(raw)
    return PaginatedSearchRequest(
        query=normalize_query(body.get('query'), field='query'),
        page=_int_field(body, 'page', 0),
        size=_int_field(body, 'size', DEFAULT_PAGE_SIZE),
    )


def parse_ask_request(raw: bytes) -> AskRequest:
    body = parse_json_body(raw)
    return AskRequest(
        question=normalize_query(
            body.get('question'), field='question', min_length=MIN_QUESTION_LENGTH
        ),
        context_size=_int_field(body, 'contextSize', DEFAULT_CONTEXT_SIZE),
    )
