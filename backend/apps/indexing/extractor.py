"""
Text extraction from uploaded document bytes.

Supports:
- text/plain: UTF-8 text (lossy fallback for encoding errors)
- application/pdf: Best-effort text extraction using PyMuPDF
- .docx: Paragraph text using python-docx
"""
import io
import logging
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF
import docx

from apps.core.errors import ValidationError

logger = logging.getLogger(__name__)

PDF = 'application/pdf'
DOCX = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
TEXT = 'text/plain'

EXTENSION_TO_CONTENT_TYPE = {
    '.pdf': PDF,
    '.docx': DOCX,
    '.txt': TEXT,
}

GENERIC_CONTENT_TYPES = ('application/octet-stream', 'binary/octet-stream', '')


class ExtractionError(ValidationError):
    """Raised when a file cannot be parsed into text."""
    default_code = 'EXTRACTION_FAILED'


def get_extension(filename: str) -> str:
    """Extract the lowercase file extension from a filename."""
    return Path(filename or '').suffix.lower()


def resolve_content_type(content_type: Optional[str], filename: str) -> str:
    """
    Normalize a declared content type, using the file extension as fallback.
    
    Some browsers/clients send a generic MIME type, so a generic or
    missing type is resolved from the extension. Parameters such as
    '; charset=utf-8' are dropped.
    """
    content_type = (content_type or '').split(';')[0].strip().lower()
    
    if content_type in GENERIC_CONTENT_TYPES:
        return EXTENSION_TO_CONTENT_TYPE.get(get_extension(filename), content_type)
    
    return content_type


def extract_text_from_txt(data: bytes) -> str:
    """Decode plain text, replacing undecodable bytes."""
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        logger.warning("UTF-8 decode failed, decoding with errors='replace'")
        return data.decode('utf-8', errors='replace')


def extract_text_from_pdf(data: bytes) -> str:
    """
    Extract text from a PDF using PyMuPDF.
    
    This is a best-effort extraction - scanned, image-based PDFs may not
    yield text. There is no OCR.
    """
    try:
        text_parts = []
        
        with fitz.open(stream=data, filetype='pdf') as doc:
            for page in doc:
                page_text = page.get_text()
                if page_text.strip():
                    text_parts.append(page_text)
        
        if not text_parts:
            logger.warning("No text extracted from PDF (may be image-based)")
        
        return "\n\n".join(text_parts)
        
    except Exception as e:
        raise ExtractionError(f"Failed to extract text from PDF: {e}")


def extract_text_from_docx(data: bytes) -> str:
    """Extract non-empty paragraphs from a Word document."""
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as e:
        raise ExtractionError(f"Failed to extract text from DOCX: {e}")
    
    paragraphs = [p.text for p in document.paragraphs if p.text.strip()]
    return "\n\n".join(paragraphs)


def extract_text(data: bytes, content_type: str) -> str:
    """
    Extract text from document bytes.
    
    Args:
        data: Raw file content
        content_type: Resolved MIME type (see resolve_content_type)
        
    Returns:
        Extracted text content (may be empty)
        
    Raises:
        ExtractionError: If parsing fails or the format is not supported
    """
    logger.info(f"Extracting text ({len(data)} bytes, content_type={content_type})")
    
    if content_type == TEXT:
        return extract_text_from_txt(data)
    
    elif content_type == PDF:
        return extract_text_from_pdf(data)
    
    elif content_type == DOCX:
        return extract_text_from_docx(data)
    
    else:
        raise ExtractionError(
            f"Unsupported file format: {content_type}",
            code='UNSUPPORTED_FORMAT'
        )
