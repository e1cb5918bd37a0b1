"""
Deterministic text chunking for document indexing.

Chunking is designed to be:
- Deterministic: Same input always produces same chunks
- Overlap-aware: Consecutive chunks share up to `chunk_overlap` characters
- Complete: Every character of the input lands in at least one chunk
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

# Default chunking parameters
DEFAULT_CHUNK_SIZE = 2000  # characters (approximately 500 tokens)
DEFAULT_CHUNK_OVERLAP = 200  # characters of overlap between chunks

SENTENCE_BOUNDARY = '. '


@dataclass
class TextChunk:
    """A chunk of text with its index and source offsets."""
    index: int
    text: str
    start_char: int
    end_char: int
    
    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def token_count(self) -> int:
        return estimate_token_count(self.text)


def estimate_token_count(segment: str) -> int:
    """Rough token estimate: one token per four characters."""
    return len(segment) // 4


def chunk_text(
    text: Optional[str],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[TextChunk]:
    """
    Split text into overlapping chunks.
    
    Each window covers at most `chunk_size` characters. When the window
    contains a sentence boundary ('. ') in its second half, the window is
    cut just after that period. The next window starts `chunk_overlap`
    characters before the previous cut, and always moves forward. Once the
    remaining text fits in a single window it becomes the final chunk.
    
    Args:
        text: The text to chunk (None and '' yield no chunks)
        chunk_size: Maximum size for each chunk in characters
        chunk_overlap: Number of characters to overlap between chunks
        
    Returns:
        List of TextChunk objects, indexed 0..N-1 in document order
        
    Raises:
        ValueError: If the size/overlap combination is invalid
    """
    if chunk_size <= 0 or chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError(
            f"Invalid chunking parameters: size={chunk_size}, overlap={chunk_overlap} "
            f"(need 0 <= overlap < size)"
        )
    
    if not text:
        return []
    
    chunks: List[TextChunk] = []
    length = len(text)
    start = 0
    
    def add(segment_start: int, segment_end: int) -> None:
        content = text[segment_start:segment_end].strip()
        if content:
            chunks.append(TextChunk(
                index=len(chunks),
                text=content,
                start_char=segment_start,
                end_char=segment_end
            ))
    
    while start < length:
        if length - start <= chunk_size:
            add(start, length)
            break
        
        end = start + chunk_size
        
        # Prefer to cut after the last full sentence in the window
        boundary = text.rfind(SENTENCE_BOUNDARY, start, end)
        if boundary > start + chunk_size // 2:
            end = boundary + 1
        
        add(start, end)
        
        next_start = end - chunk_overlap
        if next_start <= start:
            next_start = end
        start = next_start
    
    logger.debug(f"Created {len(chunks)} chunks from {length} characters")
    
    return chunks
